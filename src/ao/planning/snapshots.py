"""Persistence sinks for task planner state and snapshot-based resume."""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Callable, List, Optional, Protocol

from pydantic import ValidationError

from ..schema import PlannerStatus, TaskItem, TaskPlannerState

LOGGER = logging.getLogger(__name__)

PutObject = Callable[[str, bytes, str], None]
"""Uploader signature: ``put_object(key, body, content_type)``."""

JSON_CONTENT_TYPE = "application/json"

STATUS_LABELS = {
    PlannerStatus.RUNNING: "Running",
    PlannerStatus.PAUSED: "Paused",
    PlannerStatus.COMPLETED: "Completed",
    PlannerStatus.ERROR: "Error",
}


class SnapshotSink(Protocol):
    """Destination that receives a full copy of planner state on every persist."""

    def write(self, state: TaskPlannerState) -> None:
        ...


def serialize_state(state: TaskPlannerState) -> str:
    return state.model_dump_json(indent=2)


class LocalSnapshotSink:
    """Writes ``<root>/<request_id>.json``."""

    def __init__(self, root: Path) -> None:
        self.root = Path(root)

    def path_for(self, request_id: str) -> Path:
        return self.root / f"{request_id}.json"

    def write(self, state: TaskPlannerState) -> None:
        self.root.mkdir(parents=True, exist_ok=True)
        path = self.path_for(state.request_id)
        state.snapshot_path = str(path)
        path.write_text(serialize_state(state), encoding="utf-8")


class TodoMarkdownSink:
    """Writes a human-readable checklist to ``<root>/<request_id>/todo.md``."""

    def __init__(self, root: Path) -> None:
        self.root = Path(root)

    def path_for(self, request_id: str) -> Path:
        return self.root / request_id / "todo.md"

    def write(self, state: TaskPlannerState) -> None:
        path = self.path_for(state.request_id)
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(render_todo_markdown(state), encoding="utf-8")
        state.todo_path = str(path)


class RemoteObjectSink:
    """Uploads the JSON snapshot through an injected object-store uploader."""

    def __init__(self, put_object: PutObject, prefix: str = "task-planner") -> None:
        self._put_object = put_object
        self.prefix = prefix.strip("/")

    def key_for(self, request_id: str) -> str:
        return f"{self.prefix}/{request_id}.json"

    def write(self, state: TaskPlannerState) -> None:
        body = serialize_state(state).encode("utf-8")
        self._put_object(self.key_for(state.request_id), body, JSON_CONTENT_TYPE)


def render_todo_markdown(state: TaskPlannerState) -> str:
    """Render planner state as a Markdown checklist."""
    lines = [
        "# Task List",
        "",
        f"- Repository: {state.repo_url}",
        f"- Status: {STATUS_LABELS.get(state.status, 'Running')}",
        f"- Progress: {state.progress}%",
        f"- Last updated: {state.updated_at.strftime('%Y-%m-%d %H:%M:%S %Z').strip()}",
        "",
        "## Tasks",
    ]
    for item in state.todo:
        lines.extend(_render_item(item))
    lines.append("")
    return "\n".join(lines)


def _render_item(item: TaskItem) -> List[str]:
    checked = "x" if item.status == "completed" else " "
    if item.estimate_minutes is None:
        estimate = "not estimated"
    else:
        estimate = f"{item.estimate_minutes:g} min"
    lines = [
        f"- [{checked}] [{item.id}] {item.title} "
        f"(status: {item.status} | priority: {item.priority} | estimate: {estimate})"
    ]
    if item.depends_on:
        lines.append(f"  - Depends on: {', '.join(item.depends_on)}")
    if item.accepts:
        lines.append("  - Acceptance criteria:")
        lines.extend(f"    - {criterion}" for criterion in item.accepts)
    return lines


def load_resumable_snapshot(root: Path, repo_url: str) -> Optional[TaskPlannerState]:
    """Return the most recently updated unfinished snapshot for ``repo_url``.

    Unreadable or invalid snapshot files are skipped.
    """
    root = Path(root)
    if not root.is_dir():
        return None

    candidates: List[TaskPlannerState] = []
    for path in sorted(root.glob("*.json")):
        if not path.is_file():
            continue
        try:
            state = TaskPlannerState.model_validate_json(path.read_text(encoding="utf-8"))
        except (OSError, ValueError, ValidationError) as error:
            LOGGER.debug("Skipping unreadable snapshot %s: %s", path, error)
            continue
        if state.repo_url == repo_url:
            candidates.append(state)

    candidates.sort(key=lambda state: state.updated_at, reverse=True)
    for state in candidates:
        if state.status != PlannerStatus.COMPLETED:
            return state
    return None


__all__ = [
    "JSON_CONTENT_TYPE",
    "LocalSnapshotSink",
    "PutObject",
    "RemoteObjectSink",
    "SnapshotSink",
    "TodoMarkdownSink",
    "load_resumable_snapshot",
    "render_todo_markdown",
    "serialize_state",
]
