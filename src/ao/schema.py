"""Typed records produced by the agents, the trace store and the task planner."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import TYPE_CHECKING, Annotated, List, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field

if TYPE_CHECKING:
    from .models.generation import ChatMessage


def utc_now() -> datetime:
    """Return a timezone-aware UTC timestamp."""
    return datetime.now(timezone.utc)


class RecordModel(BaseModel):
    """Base Pydantic model with strict field handling."""

    model_config = ConfigDict(extra="forbid", frozen=False)


class AgentRole(str, Enum):
    """Roles an agent can be bound to."""

    PLANNER = "planner"
    WRITER = "writer"
    EDITOR = "editor"
    REVIEWER = "reviewer"


class ActionModel(BaseModel):
    """Base for actions parsed out of model output; unknown keys are dropped."""

    model_config = ConfigDict(extra="ignore", populate_by_name=True, frozen=True)


class ChatAction(ActionModel):
    """Plain conversational reply."""

    type: Literal["chat"] = "chat"
    message: str = ""
    thought: Optional[str] = None


class ModifyFileAction(ActionModel):
    """Proposed file change carrying both its base content and its replacement.

    An empty ``original_content`` signals that the file is being created.
    """

    type: Literal["modify_file"] = "modify_file"
    file_path: str = Field(default="", alias="filePath")
    original_content: str = Field(default="", alias="originalContent")
    new_content: str = Field(default="", alias="newContent")
    reason: Optional[str] = None
    thought: Optional[str] = None


AgentAction = Annotated[Union[ChatAction, ModifyFileAction], Field(discriminator="type")]


def action_to_json(action: ChatAction | ModifyFileAction) -> str:
    """Serialise an action the way models are asked to emit it."""
    return action.model_dump_json(by_alias=True, exclude_none=True)


class AgentOutput(BaseModel):
    """Single agent invocation result; immutable once appended to a trace."""

    model_config = ConfigDict(extra="forbid", frozen=True)

    role: AgentRole
    action: AgentAction
    notes: Optional[str] = None


@dataclass(slots=True)
class CurrentFile:
    """File the user currently has open."""

    path: str
    content: str


@dataclass(slots=True)
class AgentInput:
    """Input payload for a single agent run."""

    user_message: str
    current_file: CurrentFile | None = None
    history: list[ChatMessage] = field(default_factory=list)


class TraceStatus(str, Enum):
    """Lifecycle states for an orchestration trace."""

    RUNNING = "running"
    COMPLETED = "completed"
    ERROR = "error"


class TraceEntry(RecordModel):
    """Execution record for one orchestration request."""

    request_id: str
    status: TraceStatus = TraceStatus.RUNNING
    trace: List[AgentOutput] = Field(default_factory=list)
    final: Optional[AgentAction] = None
    error: Optional[str] = None
    created_at: datetime = Field(default_factory=utc_now)
    strategy: str = "linear"
    max_loops: int = 3


TaskItemStatus = Literal["pending", "in_progress", "completed", "paused"]
TaskPriority = Literal["high", "medium", "low"]


class TaskItem(RecordModel):
    """Single checklist item tracked by the task planner."""

    id: str
    title: str
    status: TaskItemStatus = "pending"
    priority: TaskPriority = "medium"
    estimate_minutes: Optional[float] = None
    accepts: List[str] = Field(default_factory=list)
    depends_on: List[str] = Field(default_factory=list)
    started_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None


class PlannerStatus(str, Enum):
    """Lifecycle states for a task planner run."""

    RUNNING = "running"
    COMPLETED = "completed"
    ERROR = "error"
    PAUSED = "paused"


class HistoryEvent(RecordModel):
    """Timestamped log line attached to a planner run."""

    timestamp: datetime = Field(default_factory=utc_now)
    message: str


class TaskPlannerState(RecordModel):
    """Full state of a task planner run; also the snapshot file format."""

    request_id: str
    repo_url: str
    status: PlannerStatus = PlannerStatus.RUNNING
    message: Optional[str] = None
    progress: int = 0
    created_at: datetime = Field(default_factory=utc_now)
    updated_at: datetime = Field(default_factory=utc_now)
    todo: List[TaskItem] = Field(default_factory=list)
    history: List[HistoryEvent] = Field(default_factory=list)
    snapshot_path: Optional[str] = None
    todo_path: Optional[str] = None

    def log(self, message: str) -> None:
        """Append a history entry stamped with the current time."""
        self.history.append(HistoryEvent(message=message))


__all__ = [
    "AgentAction",
    "AgentInput",
    "AgentOutput",
    "AgentRole",
    "ChatAction",
    "CurrentFile",
    "HistoryEvent",
    "ModifyFileAction",
    "PlannerStatus",
    "TaskItem",
    "TaskItemStatus",
    "TaskPlannerState",
    "TaskPriority",
    "TraceEntry",
    "TraceStatus",
    "action_to_json",
    "utc_now",
]
