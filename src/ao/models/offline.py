"""Deterministic generation backend used when no remote model is configured."""

from __future__ import annotations

import json
import re
from typing import Any, Sequence

from ..prompts import (
    AUTHOR_SYSTEM_PROMPT,
    NO_FILE_LABEL,
    ROLE_PROMPTS,
    TASK_PLANNER_SYSTEM_PROMPT,
)
from ..schema import AgentRole
from .generation import ChatMessage, GenerationParams, GenerationResult, TokenUsage

_FILE_CONTEXT_RE = re.compile(r"\ACurrent file: (?P<path>[^\n]*)\nContent:\n(?P<content>.*)\Z", re.DOTALL)

DEFAULT_DRAFT_PATH = "draft.md"


class OfflineGenerationClient:
    """Answers every request locally with well-formed JSON.

    The response shape is chosen from the system prompts in the request, so the
    agents, the task planner and the author agent all receive output they can
    parse. Useful for demos, the CLI without credentials, and tests.
    """

    def __init__(self) -> None:
        self.calls: list[tuple[str, list[ChatMessage]]] = []

    def generate(
        self,
        model_id: str,
        messages: Sequence[ChatMessage],
        params: GenerationParams,
    ) -> GenerationResult:
        self.calls.append((model_id, list(messages)))
        system = [message.content for message in messages if message.role == "system"]
        user_message = next(
            (message.content for message in reversed(messages) if message.role == "user"),
            "",
        )

        if TASK_PLANNER_SYSTEM_PROMPT in system:
            payload: Any = {"tasks": _offline_tasks()}
        elif AUTHOR_SYSTEM_PROMPT in system:
            payload = _offline_author_reply(user_message)
        elif ROLE_PROMPTS[AgentRole.PLANNER] in system:
            payload = {
                "type": "chat",
                "thought": "Outline the change before writing.",
                "message": f"1. Address the request: {_first_line(user_message)}\n2. Keep tone and format consistent.",
            }
        elif ROLE_PROMPTS[AgentRole.REVIEWER] in system:
            payload = {"type": "chat", "thought": "Draft checked.", "message": "Approved."}
        else:
            payload = _offline_edit(system, user_message)

        content = json.dumps(payload, ensure_ascii=False)
        prompt_tokens = sum(len(message.content.split()) for message in messages)
        completion_tokens = len(content.split())
        return GenerationResult(
            content=content,
            token_usage=TokenUsage(
                prompt_tokens=prompt_tokens,
                completion_tokens=completion_tokens,
                total_tokens=prompt_tokens + completion_tokens,
            ),
        )


def _offline_edit(system: Sequence[str], user_message: str) -> dict[str, Any]:
    path, content = DEFAULT_DRAFT_PATH, ""
    for entry in system:
        match = _FILE_CONTEXT_RE.match(entry)
        if match:
            if match.group("path") != NO_FILE_LABEL:
                path = match.group("path")
            content = match.group("content")
            break
    addition = f"<!-- draft -->\n{_first_line(user_message)}"
    new_content = f"{content.rstrip()}\n\n{addition}\n" if content.strip() else f"{addition}\n"
    return {
        "type": "modify_file",
        "thought": "Apply the requested change locally.",
        "filePath": path,
        "originalContent": content,
        "newContent": new_content,
        "reason": "offline draft" if content else "create new file",
    }


def _offline_tasks() -> list[dict[str, Any]]:
    return [
        {
            "id": "setup-1",
            "title": "Review repository layout and entry points",
            "priority": "high",
            "estimateMinutes": 30,
            "accepts": ["Entry points documented"],
            "dependsOn": [],
        },
        {
            "id": "impl-1",
            "title": "Implement the requested changes",
            "priority": "medium",
            "estimateMinutes": 90,
            "accepts": ["Changes merged", "Tests pass"],
            "dependsOn": ["setup-1"],
        },
    ]


def _offline_author_reply(user_message: str) -> dict[str, Any]:
    return {
        "reply": f"Noted: {_first_line(user_message)}",
        "intent": "note",
        "documents": {"memo": {"title": "Writing memo", "content": user_message, "format": "markdown"}},
        "suggestions": [],
        "relationships": [],
        "timeline": [],
        "consistency": {"issues": [], "score": 1.0},
        "creativity": {"score": 0.5, "notes": "offline"},
    }


def _first_line(text: str) -> str:
    for line in text.splitlines():
        stripped = line.strip()
        if stripped:
            return stripped
    return "(empty request)"


__all__ = ["OfflineGenerationClient"]
