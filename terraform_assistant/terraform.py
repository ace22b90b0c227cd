"""Thin wrapper around the terraform binary."""

from __future__ import annotations

import logging
import shutil
import subprocess
from dataclasses import dataclass
from pathlib import Path

logger = logging.getLogger(__name__)

TERRAFORM_BINARY_NAME = "terraform"
DEFAULT_INIT_TIMEOUT_SECONDS = 300
DEFAULT_APPLY_TIMEOUT_SECONDS = 1800


class TerraformNotFoundError(FileNotFoundError):
    """Raised when no terraform executable can be located."""


class TerraformError(RuntimeError):
    """Raised when a terraform command fails or times out."""

    def __init__(
        self,
        message: str,
        *,
        command: tuple[str, ...],
        returncode: int | None,
        output: str,
    ) -> None:
        super().__init__(message)
        self.command = command
        self.returncode = returncode
        self.output = output


def find_terraform_executable() -> Path:
    """Locate terraform on PATH."""
    located = shutil.which(TERRAFORM_BINARY_NAME)
    if located is None:
        raise TerraformNotFoundError(
            "Could not find a terraform executable on PATH. "
            "Install terraform or pass --terraform-path."
        )
    return Path(located)


@dataclass(frozen=True, slots=True)
class TerraformRunner:
    """Runs terraform subcommands against one working directory."""

    working_dir: Path
    executable: Path
    init_timeout_seconds: int = DEFAULT_INIT_TIMEOUT_SECONDS
    apply_timeout_seconds: int = DEFAULT_APPLY_TIMEOUT_SECONDS

    def _run(self, *args: str, timeout_seconds: int) -> str:
        command = (str(self.executable), *args)
        logger.info("Running %s in %s", " ".join(command), self.working_dir)
        try:
            result = subprocess.run(
                command,
                cwd=self.working_dir,
                capture_output=True,
                text=True,
                check=False,
                timeout=timeout_seconds,
            )
        except subprocess.TimeoutExpired as error:
            raise TerraformError(
                f"terraform {args[0]} timed out after {timeout_seconds}s.",
                command=command,
                returncode=None,
                output=_decode_output(error.stdout) + _decode_output(error.stderr),
            ) from error
        except OSError as error:
            raise TerraformError(
                f"Failed to start terraform at '{self.executable}': {error}",
                command=command,
                returncode=None,
                output="",
            ) from error

        output = (result.stdout or "") + (result.stderr or "")
        if result.returncode != 0:
            raise TerraformError(
                f"terraform {args[0]} failed with exit code {result.returncode}.",
                command=command,
                returncode=result.returncode,
                output=output,
            )
        return output

    def init(self) -> str:
        """Run terraform init."""
        return self._run("init", "-input=false", "-no-color", timeout_seconds=self.init_timeout_seconds)

    def apply(self) -> str:
        """Run terraform apply without an interactive approval prompt."""
        return self._run(
            "apply",
            "-input=false",
            "-no-color",
            "-auto-approve",
            timeout_seconds=self.apply_timeout_seconds,
        )


def _decode_output(value: str | bytes | None) -> str:
    if value is None:
        return ""
    if isinstance(value, bytes):
        return value.decode("utf-8", errors="replace")
    return value
