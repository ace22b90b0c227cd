"""Prompt context construction and token-budget helpers."""

from __future__ import annotations

import logging
from collections.abc import Iterable, Iterator, Mapping, Sequence
from types import MappingProxyType
from typing import Protocol

import tiktoken

logger = logging.getLogger(__name__)

# Tokenizers are approximate, so every budget reserves this many tokens.
DEFAULT_TOKEN_OVERHEAD = 100
FALLBACK_ENCODING_NAME = "cl100k_base"

DEPLOYMENT_MAX_TOKENS: Mapping[str, int] = MappingProxyType(
    {
        "code-davinci-002": 8001,
        "text-davinci-003": 4097,
        "gpt-3.5-turbo-0301": 4096,
        "gpt-3.5-turbo": 4096,
        "gpt-35-turbo-0301": 4096,
        "gpt-35-turbo": 4096,
        "gpt-4-0314": 8192,
        "gpt-4-32k-0314": 8192,
    }
)


class UnknownDeploymentError(LookupError):
    """Raised when a deployment has no entry in the context-window catalog."""

    def __init__(self, deployment_id: str) -> None:
        super().__init__(
            f"Deployment '{deployment_id}' not found in max tokens catalog. "
            f"Known deployments: {', '.join(sorted(DEPLOYMENT_MAX_TOKENS))}."
        )
        self.deployment_id = deployment_id


class TokenEncodingError(RuntimeError):
    """Raised when the subword encoder cannot be loaded or fails to encode."""


class TokenEncoder(Protocol):
    """Anything that turns text into a list of token ids."""

    def encode(self, text: str) -> list[int]:
        """Encode text into token ids."""


class PromptContext:
    """Append-only sequence of prompt fragments seen by the model."""

    def __init__(self, fragments: Iterable[str] = ()) -> None:
        self._fragments: list[str] = []
        for fragment in fragments:
            self.append(fragment)

    def append(self, fragment: str) -> None:
        """Append one fragment; blank fragments carry no context and are skipped."""
        if not fragment.strip():
            return
        self._fragments.append(fragment)

    @property
    def fragments(self) -> tuple[str, ...]:
        return tuple(self._fragments)

    def __iter__(self) -> Iterator[str]:
        return iter(tuple(self._fragments))

    def __len__(self) -> int:
        return len(self._fragments)

    def __repr__(self) -> str:
        return f"PromptContext({self._fragments!r})"


def resolve_max_tokens(deployment_id: str, override_max: int | None = None) -> int:
    """Return the context window for a deployment, honoring a positive override."""
    try:
        max_tokens = DEPLOYMENT_MAX_TOKENS[deployment_id]
    except KeyError as error:
        raise UnknownDeploymentError(deployment_id) from error

    if override_max is not None and override_max > 0:
        return override_max
    return max_tokens


def get_encoder(deployment_id: str) -> TokenEncoder:
    """Load the tiktoken encoding for a deployment, falling back to cl100k_base."""
    try:
        try:
            return tiktoken.encoding_for_model(deployment_id)
        except KeyError:
            logger.debug(
                "No tiktoken mapping for '%s'; using %s.", deployment_id, FALLBACK_ENCODING_NAME
            )
            return tiktoken.get_encoding(FALLBACK_ENCODING_NAME)
    except Exception as error:
        raise TokenEncodingError(
            f"Failed to load token encoder for deployment '{deployment_id}': {error}"
        ) from error


def count_tokens(fragments: Sequence[str], encoder: TokenEncoder) -> int:
    """Sum encoded lengths of all fragments."""
    total = 0
    for index, fragment in enumerate(fragments):
        try:
            total += len(encoder.encode(fragment))
        except Exception as error:
            raise TokenEncodingError(f"Failed to encode prompt fragment {index}: {error}") from error
    return total


def compute_budget(
    fragments: Sequence[str],
    deployment_id: str,
    override_max: int | None = None,
    *,
    overhead: int = DEFAULT_TOKEN_OVERHEAD,
    encoder: TokenEncoder | None = None,
) -> int:
    """Return tokens left for the completion after the prompt and the safety overhead.

    The result is returned as-is even when zero or negative; rejecting it is
    the caller's job.
    """
    max_tokens = resolve_max_tokens(deployment_id, override_max)
    token_encoder = encoder if encoder is not None else get_encoder(deployment_id)
    prompt_tokens = count_tokens(fragments, token_encoder)
    budget = max_tokens - (overhead + prompt_tokens)
    logger.debug(
        "Token budget for '%s': max=%d overhead=%d prompt=%d remaining=%d",
        deployment_id,
        max_tokens,
        overhead,
        prompt_tokens,
        budget,
    )
    return budget
