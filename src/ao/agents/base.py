"""Role-bound agent that turns one instruction into a structured action."""

from __future__ import annotations

import json
import logging
import uuid
from dataclasses import asdict, is_dataclass
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Sequence

from pydantic import TypeAdapter, ValidationError

from ..models.generation import (
    ChatMessage,
    GenerationClient,
    GenerationParams,
    parse_json_payload,
)
from ..prompts import (
    HISTORY_INSTRUCTION,
    ROLE_PROMPTS,
    render_action_contract,
    render_file_context,
)
from ..schema import AgentAction, AgentInput, AgentOutput, AgentRole, ChatAction
from ..utils.ids import slugify

LOGGER = logging.getLogger(__name__)

_ACTION_ADAPTER: TypeAdapter[Any] = TypeAdapter(AgentAction)
_ACTION_TYPES = {"modify_file", "chat"}


class AgentCallLog:
    """Writes one JSON document per agent call for later debugging."""

    def __init__(self, logs_root: Path | str) -> None:
        self.root = Path(logs_root) / "agents"

    def write(
        self,
        role: str,
        messages: Sequence[ChatMessage],
        *,
        model_id: str,
        raw: str | None,
        action: Any | None,
        error: Exception | None,
        metadata: dict[str, Any] | None = None,
    ) -> Path | None:
        try:
            self.root.mkdir(parents=True, exist_ok=True)
        except OSError:
            return None

        timestamp = datetime.now(timezone.utc)
        entry: dict[str, Any] = {
            "timestamp": timestamp.isoformat(),
            "role": role,
            "model": model_id,
            "metadata": _json_safe(metadata or {}),
            "messages": [_json_safe(message) for message in messages],
            "raw": raw,
        }
        if action is not None:
            entry["action"] = _json_safe(action)
        if error is not None:
            entry["error"] = str(error)

        parts = [
            "agent",
            slugify(role, fallback="agent"),
            timestamp.strftime("%Y%m%dT%H%M%S%fZ"),
            uuid.uuid4().hex[:8],
        ]
        log_path = self.root / ("__".join(parts) + ".json")
        try:
            with log_path.open("w", encoding="utf-8") as handle:
                json.dump(entry, handle, indent=2, sort_keys=True, ensure_ascii=False)
        except OSError:
            return None
        return log_path


class Agent:
    """Single LLM-calling unit bound to a role.

    ``run`` is total: generation failures and malformed output are both turned
    into ``chat`` actions so callers always receive an ``AgentOutput``.
    """

    def __init__(
        self,
        role: AgentRole,
        client: GenerationClient,
        model_id: str,
        *,
        user_id: str | int | None = None,
        project_id: str | int | None = None,
        params: GenerationParams | None = None,
        system_prompt: str | None = None,
        call_log: AgentCallLog | None = None,
    ) -> None:
        self.role = AgentRole(role)
        self._client = client
        self._model_id = model_id
        self._user_id = user_id
        self._project_id = project_id
        self._params = params or GenerationParams()
        self._system_prompt = system_prompt or ROLE_PROMPTS[self.role]
        self._call_log = call_log

    def build_messages(self, agent_input: AgentInput) -> list[ChatMessage]:
        """Render the instruction messages, then history, then the user message."""
        current = agent_input.current_file
        system_messages = [
            ChatMessage("system", self._system_prompt),
            ChatMessage(
                "system",
                render_file_context(
                    current.path if current else None,
                    current.content if current else None,
                ),
            ),
            ChatMessage("system", render_action_contract(self.role)),
            ChatMessage("system", HISTORY_INSTRUCTION),
        ]
        return [
            *system_messages,
            *agent_input.history,
            ChatMessage("user", agent_input.user_message),
        ]

    def run(self, agent_input: AgentInput) -> AgentOutput:
        messages = self.build_messages(agent_input)
        try:
            content = self._client.generate(self._model_id, messages, self._params).content
        except Exception as error:
            LOGGER.warning("Agent %s generation failed: %s", self.role.value, error)
            action = ChatAction(
                message=f"(system error: agent {self.role.value} failed to generate - {error})",
                thought=f"Error during generation: {error}",
            )
            self._record(messages, raw=None, action=action, error=error)
            return AgentOutput(role=self.role, action=action)

        if not isinstance(content, str):
            content = "" if content is None else str(content)
        action = parse_action(content)
        self._record(messages, raw=content, action=action, error=None)
        return AgentOutput(role=self.role, action=action)

    def _record(
        self,
        messages: Sequence[ChatMessage],
        *,
        raw: str | None,
        action: Any,
        error: Exception | None,
    ) -> None:
        if self._call_log is None:
            return
        self._call_log.write(
            self.role.value,
            messages,
            model_id=self._model_id,
            raw=raw,
            action=action,
            error=error,
            metadata={"user_id": self._user_id, "project_id": self._project_id},
        )


def parse_action(content: str) -> AgentAction:
    """Parse raw model text into an action, wrapping anything unexpected as chat."""
    try:
        parsed = parse_json_payload(content)
    except ValueError:
        return ChatAction(message=content)
    if not isinstance(parsed, dict):
        return ChatAction(message=content)
    action_type = parsed.get("type")
    if not isinstance(action_type, str) or action_type not in _ACTION_TYPES:
        return ChatAction(message=content)
    try:
        return _ACTION_ADAPTER.validate_python(parsed)
    except (ValidationError, TypeError, ValueError):
        return ChatAction(message=content)


def _json_safe(value: Any) -> Any:
    """Coerce complex objects into JSON-serialisable representations."""
    if value is None or isinstance(value, (str, int, float, bool)):
        return value
    if isinstance(value, Path):
        return value.as_posix()
    if is_dataclass(value) and not isinstance(value, type):
        return _json_safe(asdict(value))
    if hasattr(value, "model_dump"):
        try:
            return _json_safe(value.model_dump(mode="json", by_alias=True))
        except TypeError:
            pass
    if isinstance(value, dict):
        return {str(key): _json_safe(val) for key, val in value.items()}
    if isinstance(value, (list, tuple, set)):
        return [_json_safe(item) for item in value]
    return str(value)
