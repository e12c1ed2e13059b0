"""Typed contract shared by every text-generation backend used by the agents."""

from __future__ import annotations

import json
import re
from dataclasses import dataclass, field
from typing import Any, Literal, Protocol, Sequence

__all__ = [
    "ChatMessage",
    "GenerationClient",
    "GenerationError",
    "GenerationFormatError",
    "GenerationParams",
    "GenerationResult",
    "GenerationTransportError",
    "TokenUsage",
    "parse_json_payload",
    "strip_code_fence",
]


MessageRole = Literal["system", "user", "assistant"]


class GenerationError(RuntimeError):
    """Base error raised when a generation backend cannot produce text."""


class GenerationTransportError(GenerationError):
    """Raised when the underlying transport fails to return a response."""


class GenerationFormatError(GenerationError):
    """Raised when the backend returns a payload without usable text."""


@dataclass(slots=True)
class ChatMessage:
    """Role-tagged message sent to the model."""

    role: MessageRole
    content: str

    def to_payload(self) -> dict[str, str]:
        return {"role": self.role, "content": self.content}


@dataclass(slots=True)
class GenerationParams:
    """Sampling parameters forwarded with each generation request."""

    temperature: float = 0.2
    max_tokens: int = 4000


@dataclass(slots=True)
class TokenUsage:
    """Usage metering reported by the backend."""

    prompt_tokens: int = 0
    completion_tokens: int = 0
    total_tokens: int = 0


@dataclass(slots=True)
class GenerationResult:
    """Generated text together with its usage metering."""

    content: str
    token_usage: TokenUsage = field(default_factory=TokenUsage)


class GenerationClient(Protocol):
    """Protocol implemented by text-generation backends."""

    def generate(
        self,
        model_id: str,
        messages: Sequence[ChatMessage],
        params: GenerationParams,
    ) -> GenerationResult:
        """Generate a completion for ``messages``; may raise ``GenerationError``."""


_FENCE_OPEN = re.compile(r"^```(?:json)?\s*", re.IGNORECASE)
_FENCE_CLOSE = re.compile(r"\s*```$")


def strip_code_fence(payload: str) -> str:
    """Remove a Markdown code fence (```json or ```) wrapping a JSON payload."""
    text = payload.strip()
    if not text.startswith("```"):
        return text
    text = _FENCE_OPEN.sub("", text, count=1)
    return _FENCE_CLOSE.sub("", text, count=1)


def parse_json_payload(raw: str) -> Any:
    """Parse model output as JSON after stripping code fences.

    Raises ``ValueError`` (``json.JSONDecodeError``) when the payload is not JSON,
    including payloads nested too deeply to decode.
    """
    try:
        return json.loads(strip_code_fence(raw))
    except RecursionError as error:
        raise ValueError("JSON payload is nested too deeply") from error
