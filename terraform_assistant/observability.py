"""Run telemetry models and logging helpers."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field

LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s: %(message)s"


@dataclass(slots=True)
class RunTelemetry:
    """Counters for one approval-loop run."""

    deployment_name: str
    backend: str
    drafts: int = 0
    rejections: int = 0
    validation_failures: int = 0
    warnings: list[str] = field(default_factory=list)

    def summary(self) -> str:
        """One-line summary for verbose output."""
        return (
            f"deployment={self.deployment_name} backend={self.backend} drafts={self.drafts} "
            f"rejections={self.rejections} validation_failures={self.validation_failures}"
        )


def configure_logging(*, verbose: bool = False, debug: bool = False) -> None:
    """Configure root logging for CLI runs."""
    level = logging.WARNING
    if verbose:
        level = logging.INFO
    if debug:
        level = logging.DEBUG
    logging.basicConfig(level=level, format=LOG_FORMAT, force=True)
    # httpx logs every request at INFO; keep it for --debug only.
    logging.getLogger("httpx").setLevel(logging.DEBUG if debug else logging.WARNING)
