"""Contract shared by every orchestration strategy."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Callable, Optional, Protocol

from ..schema import AgentAction, AgentInput, AgentOutput, ChatAction, CurrentFile, ModifyFileAction

StepCallback = Callable[[AgentOutput], None]

UNTITLED_FILE = "untitled"


class OrchestratorStrategy(str, Enum):
    """Supported orchestration strategies."""

    LINEAR = "linear"
    GRAPH = "graph"
    SINGLE = "single"


@dataclass(slots=True)
class OrchestrationResult:
    """Final action plus the ordered per-stage trace."""

    final: AgentAction
    trace: list[AgentOutput] = field(default_factory=list)


class Orchestrator(Protocol):
    """Sequences agent calls into one overall decision."""

    def run(
        self,
        agent_input: AgentInput,
        on_step: Optional[StepCallback] = None,
    ) -> OrchestrationResult:
        """Run to completion and return the final action with its trace."""


def plan_text(action: AgentAction) -> str:
    """Extract the planning guidance carried by a planner action."""
    if isinstance(action, ModifyFileAction):
        return action.reason or ""
    return action.message or ""


def file_from_action(action: ModifyFileAction, fallback: CurrentFile | None, *, use_new: bool) -> CurrentFile:
    """Build the file context an agent should see after ``action``."""
    path = action.file_path or (fallback.path if fallback else "") or UNTITLED_FILE
    content = action.new_content if use_new else action.original_content
    return CurrentFile(path=path, content=content)


def chat(message: str) -> ChatAction:
    return ChatAction(message=message)


__all__ = [
    "OrchestrationResult",
    "Orchestrator",
    "OrchestratorStrategy",
    "StepCallback",
    "UNTITLED_FILE",
    "chat",
    "file_from_action",
    "plan_text",
]
