"""Tests for the CLI commands."""

from __future__ import annotations

from contextlib import contextmanager
from dataclasses import dataclass, field
from pathlib import Path

import pytest
import typer
from terraform_assistant import cli
from terraform_assistant.openai_client import CompletionApiError, CompletionTransportError
from terraform_assistant.terraform import TerraformError, TerraformNotFoundError
from typer.testing import CliRunner

runner = CliRunner()

VALID_TEMPLATE = 'resource "aws_s3_bucket" "demo" {\n  bucket = "demo-bucket"\n}\n'
INVALID_TEMPLATE = 'resource "aws_s3_bucket" "demo" {\n  bucket = \n'


@dataclass
class _DummyClientContext:
    """Simple context manager to stand in for an HTTP client."""

    def __enter__(self) -> _DummyClientContext:
        return self

    def __exit__(self, exc_type, exc, tb) -> None:  # type: ignore[no-untyped-def]
        return None


@dataclass
class _FakeRunner:
    """Records terraform subcommands instead of running them."""

    working_dir: Path
    executable: Path
    calls: list[str] = field(default_factory=list)
    fail_with: TerraformError | None = None

    def init(self) -> str:
        self.calls.append("init")
        if self.fail_with is not None:
            raise self.fail_with
        return ""

    def apply(self) -> str:
        self.calls.append("apply")
        return ""


@pytest.fixture
def patched_cli(clean_env: pytest.MonkeyPatch, tmp_path: Path):  # type: ignore[no-untyped-def]
    """Patch network and terraform seams; returns the recorded state."""
    state: dict[str, object] = {"drafts": [VALID_TEMPLATE], "contexts": [], "runners": []}

    def _dispatch(context, **kwargs):  # type: ignore[no-untyped-def]
        state["contexts"].append(tuple(context))  # type: ignore[union-attr]
        drafts = state["drafts"]
        item = drafts.pop(0) if len(drafts) > 1 else drafts[0]  # type: ignore[union-attr,arg-type]
        if isinstance(item, BaseException):
            raise item
        return item

    def _runner(*, working_dir: Path, executable: Path) -> _FakeRunner:
        fake = _FakeRunner(working_dir=working_dir, executable=executable)
        fake.fail_with = state.get("terraform_error")  # type: ignore[assignment]
        state["runners"].append(fake)  # type: ignore[union-attr]
        return fake

    clean_env.setattr(cli, "build_http_client", lambda config: _DummyClientContext())
    clean_env.setattr(cli, "build_completion_backend", lambda config, client: object())
    clean_env.setattr(cli, "dispatch_completion", _dispatch)
    clean_env.setattr(cli, "TerraformRunner", _runner)
    return state


def _init_args(tmp_path: Path, *extra: str) -> list[str]:
    return [
        "init",
        "generate",
        "an",
        "S3",
        "bucket",
        "--api-key",
        "sk-test",
        "--working-dir",
        str(tmp_path),
        "--terraform-path",
        "/usr/bin/terraform",
        *extra,
    ]


@pytest.mark.unit
def test_init_accepts_writes_and_initializes(patched_cli, tmp_path: Path) -> None:  # type: ignore[no-untyped-def]
    result = runner.invoke(cli.app, _init_args(tmp_path), input="apply\n")

    assert result.exit_code == 0, result.output
    assert "Attempting to apply the following template" in result.output
    assert "terraform init completed" in result.output
    written = tmp_path / "provider.tf"
    assert written.read_text(encoding="utf-8") == VALID_TEMPLATE
    assert patched_cli["contexts"] == [("generate an S3 bucket",)]
    (fake_runner,) = patched_cli["runners"]
    assert fake_runner.calls == ["init"]
    assert fake_runner.working_dir == tmp_path
    assert fake_runner.executable == Path("/usr/bin/terraform")


@pytest.mark.unit
def test_init_with_apply_flag_runs_apply(patched_cli, tmp_path: Path) -> None:  # type: ignore[no-untyped-def]
    result = runner.invoke(cli.app, _init_args(tmp_path, "--apply"), input="\n")

    assert result.exit_code == 0, result.output
    assert patched_cli["runners"][0].calls == ["init", "apply"]


@pytest.mark.unit
def test_init_reprompt_then_accept(patched_cli, tmp_path: Path) -> None:  # type: ignore[no-untyped-def]
    patched_cli["drafts"] = ['resource "null_resource" "first" {}\n', VALID_TEMPLATE]

    result = runner.invoke(cli.app, _init_args(tmp_path), input="add versioning\napply\n")

    assert result.exit_code == 0, result.output
    first, second = patched_cli["contexts"]
    assert second[: len(first)] == first
    assert second[1:] == ('resource "null_resource" "first" {}\n', "add versioning")
    assert "(draft 2)" in result.output
    assert (tmp_path / "provider.tf").read_text(encoding="utf-8") == VALID_TEMPLATE


@pytest.mark.unit
def test_init_dont_apply_writes_nothing(patched_cli, tmp_path: Path) -> None:  # type: ignore[no-untyped-def]
    result = runner.invoke(cli.app, _init_args(tmp_path), input="Dont Apply\n")

    assert result.exit_code == 0
    assert "Template not applied. Nothing was written." in result.output
    assert not (tmp_path / "provider.tf").exists()
    assert patched_cli["runners"][0].calls == []


@pytest.mark.unit
def test_init_without_confirmation_rejects_invalid_hcl(patched_cli, tmp_path: Path) -> None:  # type: ignore[no-untyped-def]
    patched_cli["drafts"] = [INVALID_TEMPLATE]

    result = runner.invoke(cli.app, _init_args(tmp_path, "--no-require-confirmation"))

    assert result.exit_code == 1
    assert "Generated template is not valid HCL:" in result.output
    assert not (tmp_path / "provider.tf").exists()
    assert patched_cli["runners"][0].calls == []


@pytest.mark.unit
def test_init_config_error_exits_1(clean_env: pytest.MonkeyPatch, tmp_path: Path) -> None:
    result = runner.invoke(cli.app, ["init", "generate", "--working-dir", str(tmp_path)])

    assert result.exit_code == 1
    assert "Configuration error" in result.output
    assert "OPENAI_API_KEY" in result.output


@pytest.mark.unit
def test_init_missing_terraform_exits_1(clean_env: pytest.MonkeyPatch, tmp_path: Path) -> None:
    def _missing() -> Path:
        raise TerraformNotFoundError("terraform executable not found on PATH.")

    clean_env.setattr(cli, "find_terraform_executable", _missing)

    result = runner.invoke(
        cli.app, ["init", "generate", "--api-key", "sk-test", "--working-dir", str(tmp_path)]
    )

    assert result.exit_code == 1
    assert "terraform executable not found" in result.output


@pytest.mark.unit
def test_init_api_error_exits_1(patched_cli, tmp_path: Path) -> None:  # type: ignore[no-untyped-def]
    patched_cli["drafts"] = [
        CompletionApiError(
            "Incorrect API key provided.",
            endpoint="/v1/completions",
            status_code=401,
            error_type="invalid_request_error",
        )
    ]

    result = runner.invoke(cli.app, _init_args(tmp_path))

    assert result.exit_code == 1
    assert "status=401" in result.output
    assert "endpoint=/v1/completions" in result.output
    assert not (tmp_path / "provider.tf").exists()


@pytest.mark.unit
def test_init_network_error_exits_1(patched_cli, tmp_path: Path) -> None:  # type: ignore[no-untyped-def]
    patched_cli["drafts"] = [
        CompletionTransportError("Request timed out.", endpoint="/v1/completions")
    ]

    result = runner.invoke(cli.app, _init_args(tmp_path))

    assert result.exit_code == 1
    assert "network error" in result.output


@pytest.mark.unit
def test_init_unknown_deployment_exits_1(
    clean_env: pytest.MonkeyPatch, tmp_path: Path
) -> None:
    clean_env.setattr(cli, "build_http_client", lambda config: _DummyClientContext())
    clean_env.setattr(cli, "build_completion_backend", lambda config, client: object())

    result = runner.invoke(
        cli.app, _init_args(tmp_path, "--deployment-name", "my-custom-model")
    )

    assert result.exit_code == 1
    assert "Completion failed" in result.output
    assert "my-custom-model" in result.output


@pytest.mark.unit
def test_init_interrupt_exits_130(patched_cli, tmp_path: Path) -> None:  # type: ignore[no-untyped-def]
    patched_cli["drafts"] = [KeyboardInterrupt()]

    result = runner.invoke(cli.app, _init_args(tmp_path))

    assert result.exit_code == cli.INTERRUPTED_EXIT_CODE
    assert "Interrupted. Nothing was written." in result.output
    assert not (tmp_path / "provider.tf").exists()


@pytest.mark.unit
def test_init_terraform_failure_exits_1(patched_cli, tmp_path: Path) -> None:  # type: ignore[no-untyped-def]
    patched_cli["terraform_error"] = TerraformError(
        "terraform init exited with status 1.",
        command=("/usr/bin/terraform", "init"),
        returncode=1,
        output="Error: Failed to query available provider packages",
    )

    result = runner.invoke(cli.app, _init_args(tmp_path), input="apply\n")

    assert result.exit_code == 1
    assert "Terraform failed" in result.output
    assert "Failed to query available provider packages" in result.output


@pytest.mark.unit
def test_init_verbose_prints_run_summary(patched_cli, tmp_path: Path) -> None:  # type: ignore[no-untyped-def]
    result = runner.invoke(cli.app, _init_args(tmp_path, "--verbose"), input="apply\n")

    assert result.exit_code == 0, result.output
    assert "Run summary: deployment=text-davinci-003 backend=openai drafts=1" in result.output


@pytest.mark.unit
def test_validate_command_reports_result(tmp_path: Path) -> None:
    good = tmp_path / "good.tf"
    good.write_text(VALID_TEMPLATE, encoding="utf-8")
    bad = tmp_path / "bad.tf"
    bad.write_text(INVALID_TEMPLATE, encoding="utf-8")

    ok = runner.invoke(cli.app, ["validate", str(good)])
    failed = runner.invoke(cli.app, ["validate", str(bad)])

    assert ok.exit_code == 0
    assert "is valid HCL" in ok.output
    assert failed.exit_code == 1
    assert "Generated template is not valid HCL:" in failed.output


@pytest.mark.unit
def test_models_command_lists_catalog() -> None:
    result = runner.invoke(cli.app, ["models"])

    assert result.exit_code == 0
    lines = result.output.splitlines()
    assert "text-davinci-003\t4097\tcompletion" in lines
    assert "gpt-4-0314\t8192\tchat_completion" in lines


@dataclass
class _RecordingConsole:
    """Stands in for the rich console and records spinner messages."""

    statuses: list[str] = field(default_factory=list)

    @contextmanager
    def status(self, message: str):  # type: ignore[no-untyped-def]
        self.statuses.append(message)
        yield


def _ctrl_c(*args, **kwargs):  # type: ignore[no-untyped-def]
    raise typer.Abort()


@pytest.mark.unit
def test_prompt_user_decision_turns_abort_into_interrupt(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setattr(cli.typer, "prompt", _ctrl_c)

    with pytest.raises(KeyboardInterrupt):
        cli.prompt_user_decision(VALID_TEMPLATE)


@pytest.mark.unit
def test_init_ctrl_c_at_decision_prompt_exits_130(
    patched_cli, clean_env: pytest.MonkeyPatch, tmp_path: Path  # type: ignore[no-untyped-def]
) -> None:
    clean_env.setattr(cli.typer, "prompt", _ctrl_c)

    result = runner.invoke(cli.app, _init_args(tmp_path))

    assert result.exit_code == cli.INTERRUPTED_EXIT_CODE
    assert "Interrupted. Nothing was written." in result.output
    assert "Attempting to apply the following template" in result.output
    assert not (tmp_path / "provider.tf").exists()
    assert patched_cli["runners"][0].calls == []


@pytest.mark.unit
def test_init_shows_spinner_while_terraform_runs(
    patched_cli, clean_env: pytest.MonkeyPatch, tmp_path: Path  # type: ignore[no-untyped-def]
) -> None:
    console = _RecordingConsole()
    clean_env.setattr(cli, "console", console)

    result = runner.invoke(cli.app, _init_args(tmp_path, "--apply"), input="apply\n")

    assert result.exit_code == 0, result.output
    assert console.statuses == ["Running terraform init...", "Running terraform apply..."]
    assert patched_cli["runners"][0].calls == ["init", "apply"]
