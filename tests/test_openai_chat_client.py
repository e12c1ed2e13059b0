from __future__ import annotations

import json

import pytest

from ao.models.generation import (
    ChatMessage,
    GenerationFormatError,
    GenerationParams,
    GenerationTransportError,
)
from ao.models.openai_chat import OpenAIChatClient


def _completion(text: str) -> str:
    return json.dumps(
        {
            "id": "chatcmpl-mock",
            "object": "chat.completion",
            "choices": [{"index": 0, "message": {"role": "assistant", "content": text}}],
            "usage": {"prompt_tokens": 11, "completion_tokens": 4, "total_tokens": 15},
        }
    )


def test_client_sends_messages_and_extracts_choice() -> None:
    captured = {}

    def transport(payload: dict) -> str:
        captured.update(payload)
        return _completion('{"type": "chat", "message": "hi"}')

    client = OpenAIChatClient(transport=transport)
    result = client.generate(
        "gpt-test",
        [ChatMessage("system", "be brief"), ChatMessage("user", "hello")],
        GenerationParams(temperature=0.4, max_tokens=50),
    )

    assert captured["model"] == "gpt-test"
    assert captured["messages"] == [
        {"role": "system", "content": "be brief"},
        {"role": "user", "content": "hello"},
    ]
    assert captured["temperature"] == 0.4
    assert captured["max_tokens"] == 50
    assert result.content == '{"type": "chat", "message": "hi"}'
    assert result.token_usage.total_tokens == 15


def test_client_accepts_legacy_text_choices() -> None:
    client = OpenAIChatClient(transport=lambda payload: json.dumps({"choices": [{"text": "legacy"}]}))

    result = client.generate("m", [ChatMessage("user", "x")], GenerationParams())

    assert result.content == "legacy"
    assert result.token_usage.prompt_tokens == 0


def test_client_rejects_payload_without_text() -> None:
    client = OpenAIChatClient(transport=lambda payload: json.dumps({"choices": []}))

    with pytest.raises(GenerationFormatError):
        client.generate("m", [ChatMessage("user", "x")], GenerationParams())

    broken = OpenAIChatClient(transport=lambda payload: "<html>")
    with pytest.raises(GenerationFormatError):
        broken.generate("m", [ChatMessage("user", "x")], GenerationParams())


def test_transport_failures_are_wrapped() -> None:
    def transport(payload: dict) -> str:
        raise ConnectionError("reset by peer")

    client = OpenAIChatClient(transport=transport)

    with pytest.raises(GenerationTransportError, match="reset by peer"):
        client.generate("m", [ChatMessage("user", "x")], GenerationParams())


def test_default_transport_requires_api_key(monkeypatch) -> None:
    monkeypatch.delenv("AO_API_KEY", raising=False)
    monkeypatch.delenv("OPENAI_API_KEY", raising=False)

    with pytest.raises(ValueError, match="API key"):
        OpenAIChatClient()


def test_api_key_read_from_environment(monkeypatch) -> None:
    monkeypatch.setenv("AO_API_KEY", "sk-test")

    client = OpenAIChatClient()

    assert client._api_key == "sk-test"
