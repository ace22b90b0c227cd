"""Wire schema for the OpenAI and Azure OpenAI completion endpoints."""

from __future__ import annotations

from enum import StrEnum

from pydantic import BaseModel, ConfigDict, Field


class ChatRole(StrEnum):
    """Supported chat message roles."""

    SYSTEM = "system"
    USER = "user"
    ASSISTANT = "assistant"


class CompletionRequest(BaseModel):
    """Legacy completion request body."""

    model_config = ConfigDict(extra="forbid")

    model: str | None = None
    prompt: list[str] = Field(min_length=1)
    max_tokens: int = Field(ge=1)
    temperature: float = Field(default=0.0, ge=0.0, le=1.0)
    n: int = Field(default=1, ge=1)
    echo: bool = False
    stream: bool = False


class ChatMessage(BaseModel):
    """One chat message."""

    model_config = ConfigDict(extra="ignore")

    role: ChatRole
    # null when a content filter blocks the answer
    content: str | None = None


class ChatCompletionRequest(BaseModel):
    """Chat completion request body."""

    model_config = ConfigDict(extra="forbid")

    model: str | None = None
    messages: list[ChatMessage] = Field(min_length=1)
    max_tokens: int = Field(ge=1)
    temperature: float = Field(default=0.0, ge=0.0, le=1.0)
    n: int = Field(default=1, ge=1)
    stream: bool = False


class CompletionChoice(BaseModel):
    """Candidate returned by the legacy completion endpoint."""

    model_config = ConfigDict(extra="ignore")

    text: str
    index: int = 0
    finish_reason: str | None = None


class ChatCompletionChoice(BaseModel):
    """Candidate returned by the chat completion endpoint."""

    model_config = ConfigDict(extra="ignore")

    message: ChatMessage
    index: int = 0
    finish_reason: str | None = None


class Usage(BaseModel):
    """Token accounting reported by the API."""

    model_config = ConfigDict(extra="ignore")

    prompt_tokens: int = 0
    completion_tokens: int = 0
    total_tokens: int = 0


class CompletionResponse(BaseModel):
    """Legacy completion response body."""

    model_config = ConfigDict(extra="ignore")

    id: str = ""
    model: str = ""
    choices: list[CompletionChoice] = Field(default_factory=list)
    usage: Usage | None = None


class ChatCompletionResponse(BaseModel):
    """Chat completion response body."""

    model_config = ConfigDict(extra="ignore")

    id: str = ""
    model: str = ""
    choices: list[ChatCompletionChoice] = Field(default_factory=list)
    usage: Usage | None = None


class ApiErrorBody(BaseModel):
    """Error details returned with non-2xx responses."""

    model_config = ConfigDict(extra="ignore")

    message: str = ""
    type: str | None = None
    code: str | int | None = None


class ApiErrorEnvelope(BaseModel):
    """Top-level error envelope."""

    model_config = ConfigDict(extra="ignore")

    error: ApiErrorBody
