"""Production client that speaks the OpenAI-compatible chat completions API."""

from __future__ import annotations

import json
import os
from typing import Any, Callable, Dict, Optional, Sequence

from .generation import (
    ChatMessage,
    GenerationFormatError,
    GenerationParams,
    GenerationResult,
    GenerationTransportError,
    TokenUsage,
)

__all__ = ["OpenAIChatClient"]


Transport = Callable[[Dict[str, Any]], str]


class OpenAIChatClient:
    """Thin adapter around a chat completions endpoint."""

    def __init__(
        self,
        *,
        api_key: Optional[str] = None,
        base_url: str = "https://api.openai.com/v1/chat/completions",
        transport: Optional[Transport] = None,
        timeout: float = 120.0,
    ) -> None:
        self._api_key = api_key or os.getenv("AO_API_KEY") or os.getenv("OPENAI_API_KEY")
        self._base_url = base_url
        timeout_override = os.getenv("AO_TIMEOUT")
        if timeout_override:
            try:
                parsed = float(timeout_override)
                if parsed > 0:
                    timeout = parsed
            except ValueError:
                pass
        self._timeout = timeout
        self._transport = transport or self._http_transport

        if transport is None and not self._api_key:
            raise ValueError("An API key is required when using the default transport.")

    def generate(
        self,
        model_id: str,
        messages: Sequence[ChatMessage],
        params: GenerationParams,
    ) -> GenerationResult:
        """Send the conversation and return the first completion choice."""
        payload: Dict[str, Any] = {
            "model": model_id,
            "messages": [message.to_payload() for message in messages],
            "temperature": params.temperature,
            "max_tokens": params.max_tokens,
        }
        try:
            raw_response = self._transport(payload)
        except GenerationTransportError:
            raise
        except Exception as error:
            raise GenerationTransportError(f"Transport rejected the request: {error}") from error

        return self._extract_result(raw_response)

    def _http_transport(self, payload: Dict[str, Any]) -> str:
        """Default HTTP transport built on urllib."""
        import urllib.error
        import urllib.request

        data = json.dumps(payload).encode("utf-8")
        request = urllib.request.Request(
            self._base_url,
            data=data,
            headers={
                "Content-Type": "application/json",
                "Authorization": f"Bearer {self._api_key}",
            },
            method="POST",
        )

        try:
            with urllib.request.urlopen(request, timeout=self._timeout) as response:
                raw = response.read()
                status = getattr(response, "status", 200)
        except TimeoutError as error:  # pragma: no cover - network-dependent
            raise GenerationTransportError("Chat completion timed out.") from error
        except urllib.error.HTTPError as error:  # pragma: no cover - network-dependent
            message = error.read().decode("utf-8", errors="ignore")
            raise GenerationTransportError(f"HTTP {error.code}: {message}") from error
        except urllib.error.URLError as error:  # pragma: no cover - network-dependent
            raise GenerationTransportError(f"Failed to reach endpoint: {error.reason}") from error

        if status >= 400:
            raise GenerationTransportError(f"Unexpected HTTP status {status}")

        return raw.decode("utf-8")

    @staticmethod
    def _extract_result(raw_response: str) -> GenerationResult:
        """Pull the completion text and usage counters out of the response body."""
        if not raw_response:
            raise GenerationFormatError("Endpoint returned an empty response.")
        try:
            data = json.loads(raw_response)
        except json.JSONDecodeError as error:
            raise GenerationFormatError(f"Endpoint returned invalid JSON: {raw_response[:200]}") from error
        if not isinstance(data, dict):
            raise GenerationFormatError("Endpoint returned an unexpected payload.")

        content: Optional[str] = None
        choices = data.get("choices")
        if isinstance(choices, list):
            for choice in choices:
                if not isinstance(choice, dict):
                    continue
                message = choice.get("message")
                if isinstance(message, dict) and isinstance(message.get("content"), str):
                    content = message["content"]
                    break
                # Legacy completions put the text directly on the choice.
                if isinstance(choice.get("text"), str):
                    content = choice["text"]
                    break
        if content is None:
            raise GenerationFormatError("Response did not contain completion text.")

        usage = data.get("usage") if isinstance(data.get("usage"), dict) else {}
        token_usage = TokenUsage(
            prompt_tokens=_as_int(usage.get("prompt_tokens")),
            completion_tokens=_as_int(usage.get("completion_tokens")),
            total_tokens=_as_int(usage.get("total_tokens")),
        )
        return GenerationResult(content=content, token_usage=token_usage)


def _as_int(value: Any) -> int:
    try:
        return int(value)
    except (TypeError, ValueError):
        return 0
