"""Convenience exports for the generation backends."""

from .generation import (
    ChatMessage,
    GenerationClient,
    GenerationError,
    GenerationFormatError,
    GenerationParams,
    GenerationResult,
    GenerationTransportError,
    TokenUsage,
)
from .openai_chat import OpenAIChatClient
from .offline import OfflineGenerationClient

__all__ = [
    "ChatMessage",
    "GenerationClient",
    "GenerationError",
    "GenerationFormatError",
    "GenerationParams",
    "GenerationResult",
    "GenerationTransportError",
    "OfflineGenerationClient",
    "OpenAIChatClient",
    "TokenUsage",
]
