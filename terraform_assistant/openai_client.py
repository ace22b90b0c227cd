"""OpenAI and Azure OpenAI completion backends."""

from __future__ import annotations

import logging
from typing import Any, Protocol, TypeVar

import httpx
from pydantic import BaseModel, ValidationError

from terraform_assistant.schema import (
    ApiErrorEnvelope,
    ChatCompletionRequest,
    ChatCompletionResponse,
    CompletionRequest,
    CompletionResponse,
)

logger = logging.getLogger(__name__)

OPENAI_API_BASE_URL = "https://api.openai.com"
AZURE_OPENAI_API_VERSION = "2023-03-15-preview"
DEFAULT_USER_AGENT = "terraform-assistant"
DEFAULT_TIMEOUT_SECONDS = 30

ResponseModel = TypeVar("ResponseModel", bound=BaseModel)


class CompletionTransportError(RuntimeError):
    """Raised when a completion request cannot be completed or decoded."""

    def __init__(self, message: str, *, endpoint: str, status_code: int | None = None) -> None:
        super().__init__(message)
        self.endpoint = endpoint
        self.status_code = status_code


class CompletionApiError(CompletionTransportError):
    """Raised when the completion API answers with a non-success status."""

    def __init__(
        self,
        message: str,
        *,
        endpoint: str,
        status_code: int,
        error_type: str | None = None,
    ) -> None:
        super().__init__(message, endpoint=endpoint, status_code=status_code)
        self.error_type = error_type


class CompletionProtocolError(RuntimeError):
    """Raised when the API returns a response that breaks the one-candidate contract."""


class CompletionBackend(Protocol):
    """Completion API capable of both request shapes."""

    name: str

    def completion(self, request: CompletionRequest) -> CompletionResponse:
        """Run a legacy completion request."""

    def chat_completion(self, request: ChatCompletionRequest) -> ChatCompletionResponse:
        """Run a chat completion request."""


def _raise_http_error(response: httpx.Response, endpoint: str) -> None:
    """Raise a typed error for a non-success completion API response."""
    try:
        envelope = ApiErrorEnvelope.model_validate_json(response.content)
    except ValidationError:
        raise CompletionApiError(
            f"Completion API request failed with status {response.status_code} "
            f"for '{endpoint}': {response.text.strip() or 'empty body'}",
            endpoint=endpoint,
            status_code=response.status_code,
            error_type="Unexpected",
        ) from None

    raise CompletionApiError(
        f"Completion API request failed with status {response.status_code} "
        f"for '{endpoint}': {envelope.error.message}",
        endpoint=endpoint,
        status_code=response.status_code,
        error_type=envelope.error.type,
    )


def _post_json(
    client: httpx.Client,
    endpoint: str,
    payload: dict[str, Any],
    *,
    response_model: type[ResponseModel],
    params: dict[str, str] | None = None,
) -> ResponseModel:
    """POST a JSON body and decode the response into a schema model."""
    try:
        response = client.post(endpoint, json=payload, params=params)
    except httpx.TimeoutException as error:
        raise CompletionTransportError(
            f"Completion API request to '{endpoint}' timed out.", endpoint=endpoint
        ) from error
    except httpx.HTTPError as error:
        raise CompletionTransportError(
            f"Completion API request to '{endpoint}' failed: {error}", endpoint=endpoint
        ) from error

    if not response.is_success:
        _raise_http_error(response, endpoint)

    try:
        return response_model.model_validate_json(response.content)
    except ValidationError as error:
        raise CompletionTransportError(
            f"Invalid JSON response from '{endpoint}': {error.error_count()} schema error(s).",
            endpoint=endpoint,
            status_code=response.status_code,
        ) from error


class OpenAIBackend:
    """Primary backend: the public OpenAI API."""

    name = "openai"

    def __init__(self, client: httpx.Client, *, model: str) -> None:
        self._client = client
        self._model = model

    def completion(self, request: CompletionRequest) -> CompletionResponse:
        payload = request.model_copy(update={"model": self._model, "stream": False})
        return _post_json(
            self._client,
            "/v1/completions",
            payload.model_dump(mode="json"),
            response_model=CompletionResponse,
        )

    def chat_completion(self, request: ChatCompletionRequest) -> ChatCompletionResponse:
        payload = request.model_copy(update={"model": self._model, "stream": False})
        return _post_json(
            self._client,
            "/v1/chat/completions",
            payload.model_dump(mode="json"),
            response_model=ChatCompletionResponse,
        )


class AzureOpenAIBackend:
    """Secondary backend: an Azure OpenAI resource addressed by deployment name."""

    name = "azure"

    def __init__(
        self,
        client: httpx.Client,
        *,
        deployment_name: str,
        api_version: str = AZURE_OPENAI_API_VERSION,
    ) -> None:
        self._client = client
        self._deployment_name = deployment_name
        self._api_version = api_version

    def _endpoint(self, operation: str) -> str:
        return f"/openai/deployments/{self._deployment_name}/{operation}"

    def completion(self, request: CompletionRequest) -> CompletionResponse:
        # Azure routes by deployment path, so the model field stays out of the body.
        payload = request.model_copy(update={"stream": False})
        return _post_json(
            self._client,
            self._endpoint("completions"),
            payload.model_dump(mode="json", exclude_none=True),
            response_model=CompletionResponse,
            params={"api-version": self._api_version},
        )

    def chat_completion(self, request: ChatCompletionRequest) -> ChatCompletionResponse:
        payload = request.model_copy(update={"model": self._deployment_name, "stream": False})
        return _post_json(
            self._client,
            self._endpoint("chat/completions"),
            payload.model_dump(mode="json"),
            response_model=ChatCompletionResponse,
            params={"api-version": self._api_version},
        )


def build_openai_client(
    api_key: str,
    *,
    base_url: str = OPENAI_API_BASE_URL,
    timeout_seconds: int = DEFAULT_TIMEOUT_SECONDS,
) -> httpx.Client:
    """Build an authenticated HTTP client for the public OpenAI API."""
    headers = {
        "Authorization": f"Bearer {api_key}",
        "Content-Type": "application/json",
        "User-Agent": DEFAULT_USER_AGENT,
    }
    return httpx.Client(base_url=base_url, headers=headers, timeout=timeout_seconds)


def build_azure_openai_client(
    endpoint: str,
    api_key: str,
    *,
    timeout_seconds: int = DEFAULT_TIMEOUT_SECONDS,
) -> httpx.Client:
    """Build an authenticated HTTP client for an Azure OpenAI resource."""
    headers = {
        "api-key": api_key,
        "Content-Type": "application/json",
        "User-Agent": DEFAULT_USER_AGENT,
    }
    return httpx.Client(
        base_url=endpoint.rstrip("/"), headers=headers, timeout=timeout_seconds
    )
