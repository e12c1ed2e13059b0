"""Task planning: checklist generation, monitoring and snapshot persistence."""

from .generation import fallback_plan, fetch_reference, generate_plan, normalize_items, parse_plan
from .planner import TaskPlanner, percent_complete
from .snapshots import (
    LocalSnapshotSink,
    RemoteObjectSink,
    SnapshotSink,
    TodoMarkdownSink,
    load_resumable_snapshot,
    render_todo_markdown,
)

__all__ = [
    "LocalSnapshotSink",
    "RemoteObjectSink",
    "SnapshotSink",
    "TaskPlanner",
    "TodoMarkdownSink",
    "fallback_plan",
    "fetch_reference",
    "generate_plan",
    "load_resumable_snapshot",
    "normalize_items",
    "parse_plan",
    "percent_complete",
    "render_todo_markdown",
]
