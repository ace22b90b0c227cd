"""Typer CLI for the Terraform assistant."""

from __future__ import annotations

from pathlib import Path
from typing import Annotated

import typer
from rich.console import Console

from terraform_assistant.approval import (
    ApprovalDecision,
    ApprovalLoop,
    parse_decision,
)
from terraform_assistant.completion import (
    BudgetExhaustedError,
    build_completion_backend,
    build_http_client,
    classify_request_shape,
    dispatch_completion,
)
from terraform_assistant.config import AssistantConfig, ConfigurationError, load_config
from terraform_assistant.context import (
    DEPLOYMENT_MAX_TOKENS,
    PromptContext,
    TokenEncodingError,
    UnknownDeploymentError,
)
from terraform_assistant.observability import RunTelemetry, configure_logging
from terraform_assistant.openai_client import (
    CompletionApiError,
    CompletionBackend,
    CompletionProtocolError,
    CompletionTransportError,
)
from terraform_assistant.output import (
    TEMPLATE_FILENAME,
    render_diagnostics,
    render_template_preview,
    write_template_file,
)
from terraform_assistant.terraform import (
    TerraformError,
    TerraformNotFoundError,
    TerraformRunner,
    find_terraform_executable,
)
from terraform_assistant.validator import TemplateValidationError, check_template, collect_diagnostics

INTERRUPTED_EXIT_CODE = 130
DECISION_PROMPT = (
    "Would you like to apply this? [Reprompt, Apply, Dont Apply] "
    "(or type extra instructions to reprompt)"
)

app = typer.Typer(help="Generate Terraform configurations from natural-language prompts.")
console = Console(stderr=True)


def prompt_user_decision(template: str) -> ApprovalDecision:
    """Ask the user what to do with a draft.

    Click turns Ctrl-C and end of input at the prompt into ``Abort``; both are
    re-raised as ``KeyboardInterrupt`` so the loop records an interrupt.
    """
    try:
        answer = typer.prompt(DECISION_PROMPT, default="Apply")
    except typer.Abort:
        raise KeyboardInterrupt from None
    return parse_decision(answer)


def _present_template(template: str, draft_number: int) -> None:
    typer.echo(render_template_preview(template, draft_number=draft_number))


def _build_loop(
    *,
    config: AssistantConfig,
    backend: CompletionBackend,
    runner: TerraformRunner,
    apply: bool,
    telemetry: RunTelemetry,
) -> ApprovalLoop:
    def draft(context: PromptContext) -> str:
        return dispatch_completion(
            context,
            deployment_id=config.deployment_name,
            backend=backend,
            temperature=config.temperature,
            max_tokens_override=config.max_tokens,
            token_overhead=config.token_overhead,
        )

    def persist(template: str) -> Path:
        return write_template_file(config.working_dir / TEMPLATE_FILENAME, template)

    def provision() -> None:
        with console.status("Running terraform init..."):
            runner.init()
        if apply:
            with console.status("Running terraform apply..."):
                runner.apply()

    return ApprovalLoop(
        draft=draft,
        validate=check_template,
        persist=persist,
        provision=provision,
        decide=prompt_user_decision if config.require_confirmation else None,
        present=_present_template,
        notify=typer.echo,
        telemetry=telemetry,
    )


@app.command("init")
def init_command(
    prompt: Annotated[
        list[str], typer.Argument(help="Natural-language description of the infrastructure.")
    ],
    deployment_name: Annotated[
        str | None, typer.Option(help="OpenAI model or Azure deployment name.")
    ] = None,
    api_key: Annotated[str | None, typer.Option(help="API key for the completion service.")] = None,
    azure_endpoint: Annotated[
        str | None,
        typer.Option(help="Azure OpenAI endpoint. When set, Azure is used instead of OpenAI."),
    ] = None,
    require_confirmation: Annotated[
        bool | None,
        typer.Option(
            "--require-confirmation/--no-require-confirmation",
            help="Ask before writing and initializing each generated template.",
        ),
    ] = None,
    temperature: Annotated[
        float | None, typer.Option(help="Sampling temperature between 0 and 1.")
    ] = None,
    max_tokens: Annotated[
        int | None, typer.Option(help="Override the deployment's context window when positive.")
    ] = None,
    token_overhead: Annotated[
        int | None, typer.Option(help="Tokens reserved on top of the encoded prompt.")
    ] = None,
    working_dir: Annotated[
        Path | None, typer.Option(help="Directory the template is written to and initialized in.")
    ] = None,
    terraform_path: Annotated[
        Path | None, typer.Option(help="Path to the terraform executable.")
    ] = None,
    timeout_seconds: Annotated[
        int | None, typer.Option(help="Completion API timeout in seconds.")
    ] = None,
    apply: Annotated[
        bool, typer.Option(help="Run terraform apply after a successful init.")
    ] = False,
    verbose: Annotated[bool, typer.Option(help="Print progress and a run summary.")] = False,
    debug: Annotated[bool, typer.Option(help="Enable raw prompt/response logging.")] = False,
) -> None:
    """Generate a template, confirm it, write it and run terraform init."""
    configure_logging(verbose=verbose, debug=debug)
    try:
        config = load_config(
            deployment_name=deployment_name,
            api_key=api_key,
            azure_endpoint=azure_endpoint,
            require_confirmation=require_confirmation,
            temperature=temperature,
            max_tokens=max_tokens,
            token_overhead=token_overhead,
            working_dir=working_dir,
            terraform_path=terraform_path,
            timeout_seconds=timeout_seconds,
        )
        executable = config.terraform_path or find_terraform_executable()
    except (ConfigurationError, TerraformNotFoundError) as error:
        typer.echo(f"Configuration error: {error}")
        raise typer.Exit(code=1) from error

    runner = TerraformRunner(working_dir=config.working_dir, executable=executable)
    telemetry = RunTelemetry(deployment_name=config.deployment_name, backend=config.backend)

    try:
        with build_http_client(config) as client:
            backend = build_completion_backend(config, client=client)
            loop = _build_loop(
                config=config,
                backend=backend,
                runner=runner,
                apply=apply,
                telemetry=telemetry,
            )
            outcome = loop.run(" ".join(prompt))
    except (UnknownDeploymentError, BudgetExhaustedError, TokenEncodingError) as error:
        typer.echo(f"Completion failed: {error}")
        raise typer.Exit(code=1) from error
    except CompletionApiError as error:
        typer.echo(
            "Completion failed: "
            f"status={error.status_code} endpoint={error.endpoint} ({error})."
        )
        raise typer.Exit(code=1) from error
    except CompletionTransportError as error:
        typer.echo(f"Completion failed: network error ({error}).")
        raise typer.Exit(code=1) from error
    except CompletionProtocolError as error:
        typer.echo(f"Completion failed: {error}")
        raise typer.Exit(code=1) from error
    except TemplateValidationError as error:
        typer.echo(render_diagnostics(error.diagnostics))
        raise typer.Exit(code=1) from error
    except TerraformError as error:
        typer.echo(f"Terraform failed: {error}")
        if error.output:
            typer.echo(error.output)
        raise typer.Exit(code=1) from error

    if verbose:
        typer.echo(f"Run summary: {telemetry.summary()}")

    if outcome.interrupted:
        typer.echo("Interrupted. Nothing was written.")
        raise typer.Exit(code=INTERRUPTED_EXIT_CODE)
    if not outcome.accepted:
        typer.echo("Template not applied. Nothing was written.")
        return
    typer.echo(f"Template written to {outcome.path} and terraform init completed.")


@app.command("validate")
def validate_command(
    path: Annotated[
        Path, typer.Argument(exists=True, dir_okay=False, readable=True, help="Template file.")
    ],
) -> None:
    """Check a Terraform file for HCL syntax errors."""
    diagnostics = collect_diagnostics(path.read_text(encoding="utf-8"))
    if diagnostics:
        typer.echo(render_diagnostics(diagnostics))
        raise typer.Exit(code=1)
    typer.echo(f"{path} is valid HCL.")


@app.command("models")
def models_command() -> None:
    """List known deployments with their context window and request shape."""
    for deployment_id, max_tokens in DEPLOYMENT_MAX_TOKENS.items():
        shape = classify_request_shape(deployment_id)
        typer.echo(f"{deployment_id}\t{max_tokens}\t{shape}")
