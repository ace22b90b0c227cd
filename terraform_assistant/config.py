"""Runtime configuration resolved from CLI options, environment and .env."""

from __future__ import annotations

import os
import re
from dataclasses import dataclass
from enum import StrEnum
from pathlib import Path

from dotenv import load_dotenv

from terraform_assistant.context import DEFAULT_TOKEN_OVERHEAD
from terraform_assistant.openai_client import DEFAULT_TIMEOUT_SECONDS

DEFAULT_DEPLOYMENT_NAME = "text-davinci-003"
AZURE_DEPLOYMENT_NAME_PATTERN = re.compile(r"^[a-zA-Z0-9]+([_-]?[a-zA-Z0-9]+)*$")
ENDPOINT_URL_PATTERN = re.compile(r"^https?://[^\s/]+")

DEPLOYMENT_NAME_ENV_VAR = "OPENAI_DEPLOYMENT_NAME"
API_KEY_ENV_VAR = "OPENAI_API_KEY"
AZURE_ENDPOINT_ENV_VAR = "AZURE_OPENAI_ENDPOINT"
REQUIRE_CONFIRMATION_ENV_VAR = "REQUIRE_CONFIRMATION"
TEMPERATURE_ENV_VAR = "TEMPERATURE"
MAX_TOKENS_ENV_VAR = "MAX_TOKENS"
TOKEN_OVERHEAD_ENV_VAR = "TOKEN_OVERHEAD"
WORKING_DIR_ENV_VAR = "WORKING_DIR"
TERRAFORM_PATH_ENV_VAR = "TERRAFORM_PATH"
TIMEOUT_SECONDS_ENV_VAR = "OPENAI_TIMEOUT_SECONDS"

_TRUE_VALUES = frozenset({"1", "true", "t", "yes", "y", "on"})
_FALSE_VALUES = frozenset({"0", "false", "f", "no", "n", "off"})


class ConfigurationError(ValueError):
    """Raised when configuration values are missing or invalid."""


class Backend(StrEnum):
    """Completion API providers."""

    PRIMARY = "openai"
    SECONDARY = "azure"


@dataclass(frozen=True, slots=True)
class AssistantConfig:
    """Immutable settings for one assistant invocation."""

    api_key: str
    working_dir: Path
    deployment_name: str = DEFAULT_DEPLOYMENT_NAME
    azure_endpoint: str | None = None
    require_confirmation: bool = True
    temperature: float = 0.0
    max_tokens: int = 0
    token_overhead: int = DEFAULT_TOKEN_OVERHEAD
    terraform_path: Path | None = None
    timeout_seconds: int = DEFAULT_TIMEOUT_SECONDS

    @property
    def backend(self) -> Backend:
        """Azure is used whenever an endpoint is configured."""
        return Backend.SECONDARY if self.azure_endpoint else Backend.PRIMARY


def _env(name: str) -> str | None:
    """Read a non-empty environment value."""
    value = os.getenv(name)
    if value is None or not value.strip():
        return None
    return value.strip()


def parse_bool(value: str, *, name: str) -> bool:
    """Parse a boolean flag value from the environment."""
    normalized = value.strip().lower()
    if normalized in _TRUE_VALUES:
        return True
    if normalized in _FALSE_VALUES:
        return False
    raise ConfigurationError(f"{name} must be a boolean, got '{value}'.")


def _parse_int(value: str, *, name: str) -> int:
    try:
        return int(value)
    except ValueError as error:
        raise ConfigurationError(f"{name} must be an integer, got '{value}'.") from error


def _parse_float(value: str, *, name: str) -> float:
    try:
        return float(value)
    except ValueError as error:
        raise ConfigurationError(f"{name} must be a number, got '{value}'.") from error


def validate_azure_deployment_name(deployment_name: str) -> str:
    """Validate the characters Azure allows in a deployment name."""
    if not AZURE_DEPLOYMENT_NAME_PATTERN.fullmatch(deployment_name):
        raise ConfigurationError(
            f"Invalid Azure OpenAI deployment '{deployment_name}'. Deployment names can only "
            "include alphanumeric characters, '_' and '-', and cannot end with '_' or '-'."
        )
    return deployment_name


def load_config(
    *,
    deployment_name: str | None = None,
    api_key: str | None = None,
    azure_endpoint: str | None = None,
    require_confirmation: bool | None = None,
    temperature: float | None = None,
    max_tokens: int | None = None,
    token_overhead: int | None = None,
    working_dir: Path | None = None,
    terraform_path: Path | None = None,
    timeout_seconds: int | None = None,
) -> AssistantConfig:
    """Resolve each setting from explicit value, then environment, then default."""
    load_dotenv(dotenv_path=Path.cwd() / ".env", override=False)

    resolved_api_key = api_key or _env(API_KEY_ENV_VAR)
    if not resolved_api_key:
        raise ConfigurationError(
            f"Missing OpenAI API key. Set {API_KEY_ENV_VAR} or pass --api-key."
        )

    resolved_deployment = deployment_name or _env(DEPLOYMENT_NAME_ENV_VAR) or DEFAULT_DEPLOYMENT_NAME

    resolved_endpoint = azure_endpoint or _env(AZURE_ENDPOINT_ENV_VAR)
    if resolved_endpoint:
        if not ENDPOINT_URL_PATTERN.match(resolved_endpoint):
            raise ConfigurationError(
                f"Invalid Azure OpenAI endpoint '{resolved_endpoint}'. Expected an http(s) URL."
            )
        validate_azure_deployment_name(resolved_deployment)

    if require_confirmation is None:
        env_value = _env(REQUIRE_CONFIRMATION_ENV_VAR)
        require_confirmation = (
            parse_bool(env_value, name=REQUIRE_CONFIRMATION_ENV_VAR) if env_value else True
        )

    if temperature is None:
        env_value = _env(TEMPERATURE_ENV_VAR)
        temperature = _parse_float(env_value, name=TEMPERATURE_ENV_VAR) if env_value else 0.0
    if not 0.0 <= temperature <= 1.0:
        raise ConfigurationError(f"Temperature must be between 0 and 1, got {temperature}.")

    if max_tokens is None:
        env_value = _env(MAX_TOKENS_ENV_VAR)
        max_tokens = _parse_int(env_value, name=MAX_TOKENS_ENV_VAR) if env_value else 0

    if token_overhead is None:
        env_value = _env(TOKEN_OVERHEAD_ENV_VAR)
        token_overhead = (
            _parse_int(env_value, name=TOKEN_OVERHEAD_ENV_VAR)
            if env_value
            else DEFAULT_TOKEN_OVERHEAD
        )
    if token_overhead < 0:
        raise ConfigurationError(f"Token overhead cannot be negative, got {token_overhead}.")

    if timeout_seconds is None:
        env_value = _env(TIMEOUT_SECONDS_ENV_VAR)
        timeout_seconds = (
            _parse_int(env_value, name=TIMEOUT_SECONDS_ENV_VAR)
            if env_value
            else DEFAULT_TIMEOUT_SECONDS
        )
    if timeout_seconds <= 0:
        raise ConfigurationError(f"Timeout must be a positive integer, got {timeout_seconds}.")

    if working_dir is None:
        env_value = _env(WORKING_DIR_ENV_VAR)
        working_dir = Path(env_value) if env_value else Path.cwd()
    if not working_dir.is_dir():
        raise ConfigurationError(f"Working directory '{working_dir}' does not exist.")

    if terraform_path is None:
        env_value = _env(TERRAFORM_PATH_ENV_VAR)
        terraform_path = Path(env_value) if env_value else None

    return AssistantConfig(
        api_key=resolved_api_key,
        working_dir=working_dir,
        deployment_name=resolved_deployment,
        azure_endpoint=resolved_endpoint,
        require_confirmation=require_confirmation,
        temperature=temperature,
        max_tokens=max_tokens,
        token_overhead=token_overhead,
        terraform_path=terraform_path,
        timeout_seconds=timeout_seconds,
    )
