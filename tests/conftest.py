from __future__ import annotations

import json
import sys
import threading
import time
from dataclasses import dataclass, field
from pathlib import Path
from typing import Callable, List, Sequence, Union

import pytest

ROOT = Path(__file__).resolve().parents[1]
SRC = ROOT / "src"

if str(SRC) not in sys.path:
    sys.path.insert(0, str(SRC))

from ao.models.generation import ChatMessage, GenerationParams, GenerationResult  # noqa: E402

Reply = Union[str, dict, list, Exception]


@dataclass
class RecordedCall:
    model_id: str
    messages: List[ChatMessage]
    params: GenerationParams

    @property
    def user_message(self) -> str:
        return self.messages[-1].content

    @property
    def system(self) -> List[str]:
        return [message.content for message in self.messages if message.role == "system"]


@dataclass
class ScriptedClient:
    """Generation client that replays scripted replies in call order.

    Dict and list replies are JSON-encoded; exceptions are raised. Once the
    script runs out, ``default`` is returned.
    """

    replies: List[Reply] = field(default_factory=list)
    default: Reply = field(default_factory=lambda: {"type": "chat", "message": "ok"})
    calls: List[RecordedCall] = field(default_factory=list)

    def __post_init__(self) -> None:
        self._lock = threading.Lock()

    def generate(
        self,
        model_id: str,
        messages: Sequence[ChatMessage],
        params: GenerationParams,
    ) -> GenerationResult:
        with self._lock:
            self.calls.append(RecordedCall(model_id, list(messages), params))
            reply = self.replies.pop(0) if self.replies else self.default
        if isinstance(reply, Exception):
            raise reply
        if isinstance(reply, (dict, list)):
            reply = json.dumps(reply)
        return GenerationResult(content=reply)


def _wait_for(predicate: Callable[[], bool], timeout: float = 5.0, interval: float = 0.01) -> bool:
    deadline = time.monotonic() + timeout
    while time.monotonic() < deadline:
        if predicate():
            return True
        time.sleep(interval)
    return predicate()


@pytest.fixture()
def wait_for() -> Callable[..., bool]:
    return _wait_for


@pytest.fixture()
def scripted_client() -> Callable[..., ScriptedClient]:
    def factory(*replies: Reply, default: Reply | None = None) -> ScriptedClient:
        client = ScriptedClient(replies=list(replies))
        if default is not None:
            client.default = default
        return client

    return factory


@pytest.fixture()
def planner_dir(tmp_path: Path) -> Path:
    path = tmp_path / "task-planner"
    path.mkdir()
    return path
