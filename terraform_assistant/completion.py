"""Completion dispatch: prompt assembly, budget check and request-shape selection."""

from __future__ import annotations

import logging
from collections.abc import Iterable
from enum import StrEnum

import httpx

from terraform_assistant.config import AssistantConfig, Backend
from terraform_assistant.context import (
    DEFAULT_TOKEN_OVERHEAD,
    TokenEncoder,
    compute_budget,
)
from terraform_assistant.openai_client import (
    AzureOpenAIBackend,
    CompletionBackend,
    CompletionProtocolError,
    OpenAIBackend,
    build_azure_openai_client,
    build_openai_client,
)
from terraform_assistant.schema import (
    ChatCompletionRequest,
    ChatMessage,
    ChatRole,
    CompletionRequest,
)

logger = logging.getLogger(__name__)

SYSTEM_INSTRUCTION = (
    "You are a Terraform HCL generator, only generate valid provider Terraform HCL templates."
)
CHAT_MODEL_FAMILIES = ("gpt-3.5-turbo", "gpt-35-turbo", "gpt-4")


class RequestShape(StrEnum):
    """Completion endpoint families."""

    COMPLETION = "completion"
    CHAT_COMPLETION = "chat_completion"


class BudgetExhaustedError(RuntimeError):
    """Raised when the prompt leaves no room for a completion."""

    def __init__(self, *, deployment_id: str, budget: int) -> None:
        super().__init__(
            f"Prompt leaves no completion tokens for deployment '{deployment_id}' "
            f"(remaining budget {budget}). Shorten the prompt or raise --max-tokens."
        )
        self.deployment_id = deployment_id
        self.budget = budget


def classify_request_shape(deployment_id: str) -> RequestShape:
    """Map a deployment id to the endpoint family it is served from."""
    if deployment_id.startswith(CHAT_MODEL_FAMILIES):
        return RequestShape.CHAT_COMPLETION
    return RequestShape.COMPLETION


def build_prompt(fragments: Iterable[str]) -> str:
    """Prefix the system instruction and join fragments one per line."""
    lines = [SYSTEM_INSTRUCTION]
    lines.extend(fragments)
    return "\n".join(lines) + "\n"


def _single_candidate(candidates: list, *, deployment_id: str) -> None:
    if len(candidates) != 1:
        raise CompletionProtocolError(
            f"Expected exactly 1 completion choice from '{deployment_id}' "
            f"but received {len(candidates)}."
        )


def dispatch_completion(
    context: Iterable[str],
    *,
    deployment_id: str,
    backend: CompletionBackend,
    temperature: float,
    max_tokens_override: int | None = None,
    token_overhead: int = DEFAULT_TOKEN_OVERHEAD,
    encoder: TokenEncoder | None = None,
) -> str:
    """Send one completion request for the prompt context and return the generated text."""
    fragments = tuple(context)
    budget = compute_budget(
        fragments,
        deployment_id,
        max_tokens_override,
        overhead=token_overhead,
        encoder=encoder,
    )
    if budget <= 0:
        raise BudgetExhaustedError(deployment_id=deployment_id, budget=budget)

    prompt = build_prompt(fragments)
    shape = classify_request_shape(deployment_id)
    logger.info(
        "Requesting %s from %s backend (deployment=%s, max_tokens=%d).",
        shape,
        backend.name,
        deployment_id,
        budget,
    )
    logger.debug("Prompt payload:\n%s", prompt)

    if shape is RequestShape.CHAT_COMPLETION:
        chat_response = backend.chat_completion(
            ChatCompletionRequest(
                messages=[ChatMessage(role=ChatRole.USER, content=prompt)],
                max_tokens=budget,
                temperature=temperature,
                n=1,
                stream=False,
            )
        )
        _single_candidate(chat_response.choices, deployment_id=deployment_id)
        text = chat_response.choices[0].message.content or ""
    else:
        response = backend.completion(
            CompletionRequest(
                prompt=[prompt],
                max_tokens=budget,
                temperature=temperature,
                n=1,
                echo=False,
                stream=False,
            )
        )
        _single_candidate(response.choices, deployment_id=deployment_id)
        text = response.choices[0].text

    logger.debug("Completion text:\n%s", text)
    return text


def build_http_client(config: AssistantConfig) -> httpx.Client:
    """Build the authenticated HTTP client for the configured backend."""
    if config.backend is Backend.SECONDARY and config.azure_endpoint:
        return build_azure_openai_client(
            config.azure_endpoint,
            config.api_key,
            timeout_seconds=config.timeout_seconds,
        )
    return build_openai_client(config.api_key, timeout_seconds=config.timeout_seconds)


def build_completion_backend(config: AssistantConfig, *, client: httpx.Client) -> CompletionBackend:
    """Select the backend implementation for the configuration."""
    if config.backend is Backend.SECONDARY:
        return AzureOpenAIBackend(client, deployment_name=config.deployment_name)
    return OpenAIBackend(client, model=config.deployment_name)
