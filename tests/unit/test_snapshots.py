from __future__ import annotations

import json
from datetime import datetime, timedelta, timezone

from ao.planning.snapshots import (
    LocalSnapshotSink,
    RemoteObjectSink,
    TodoMarkdownSink,
    load_resumable_snapshot,
    render_todo_markdown,
)
from ao.schema import PlannerStatus, TaskItem, TaskPlannerState

REPO = "https://example.com/org/repo"


def _state(request_id: str = "task-1", **overrides) -> TaskPlannerState:
    values = dict(
        request_id=request_id,
        repo_url=REPO,
        progress=50,
        updated_at=datetime(2024, 5, 1, 12, 30, tzinfo=timezone.utc),
        todo=[
            TaskItem(
                id="a",
                title="Write parser",
                status="completed",
                priority="high",
                estimate_minutes=30,
                accepts=["Parses samples", "Rejects junk"],
            ),
            TaskItem(id="b", title="Wire CLI", depends_on=["a"]),
        ],
    )
    values.update(overrides)
    return TaskPlannerState(**values)


def test_render_todo_markdown_lists_items() -> None:
    text = render_todo_markdown(_state(status=PlannerStatus.PAUSED))

    lines = text.splitlines()
    assert lines[0] == "# Task List"
    assert f"- Repository: {REPO}" in lines
    assert "- Status: Paused" in lines
    assert "- Progress: 50%" in lines
    assert "- Last updated: 2024-05-01 12:30:00 UTC" in lines
    assert "- [x] [a] Write parser (status: completed | priority: high | estimate: 30 min)" in lines
    assert "  - Acceptance criteria:" in lines
    assert "    - Rejects junk" in lines
    assert "- [ ] [b] Wire CLI (status: pending | priority: medium | estimate: not estimated)" in lines
    assert "  - Depends on: a" in lines


def test_local_and_markdown_sinks_record_paths(tmp_path) -> None:
    state = _state()

    LocalSnapshotSink(tmp_path).write(state)
    TodoMarkdownSink(tmp_path).write(state)

    snapshot = tmp_path / "task-1.json"
    todo = tmp_path / "task-1" / "todo.md"
    assert state.snapshot_path == str(snapshot)
    assert state.todo_path == str(todo)
    assert json.loads(snapshot.read_text(encoding="utf-8"))["todo"][0]["id"] == "a"
    assert todo.read_text(encoding="utf-8").startswith("# Task List")


def test_remote_sink_uses_prefixed_key() -> None:
    uploads = []
    sink = RemoteObjectSink(lambda key, body, content_type: uploads.append((key, body, content_type)), prefix="/backups/")

    sink.write(_state())

    key, body, content_type = uploads[0]
    assert key == "backups/task-1.json"
    assert content_type == "application/json"
    assert TaskPlannerState.model_validate_json(body).request_id == "task-1"


def test_load_resumable_snapshot_picks_latest_unfinished(tmp_path) -> None:
    base = datetime(2024, 5, 1, tzinfo=timezone.utc)
    sink = LocalSnapshotSink(tmp_path)
    sink.write(_state("old", updated_at=base))
    sink.write(_state("newer", updated_at=base + timedelta(hours=1)))
    sink.write(_state("done", updated_at=base + timedelta(hours=2), status=PlannerStatus.COMPLETED))
    sink.write(_state("elsewhere", updated_at=base + timedelta(hours=3), repo_url="https://other"))
    (tmp_path / "garbage.json").write_text("{not json", encoding="utf-8")

    resumed = load_resumable_snapshot(tmp_path, REPO)

    assert resumed is not None
    assert resumed.request_id == "newer"


def test_load_resumable_snapshot_handles_missing_directory(tmp_path) -> None:
    assert load_resumable_snapshot(tmp_path / "absent", REPO) is None
