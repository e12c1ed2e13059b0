from __future__ import annotations

import json
import re
import threading

from ao.config import OrchestrationSettings, Settings, TaskPlannerSettings
from ao.orchestration import OrchestrationResult
from ao.planning.planner import TaskPlanner
from ao.schema import ChatAction, CurrentFile, ModifyFileAction, PlannerStatus, TraceStatus
from ao.service import AgentService

REQUEST_ID = re.compile(r"^proj-7-\d{13}-[0-9a-f]{6}$")


def _chat(message: str) -> dict:
    return {"type": "chat", "message": message}


def _modify(new: str) -> dict:
    return {
        "type": "modify_file",
        "filePath": "notes.md",
        "originalContent": "",
        "newContent": new,
        "reason": "create new file",
    }


def _settings(tmp_path, **orchestration) -> Settings:
    return Settings(
        orchestration=OrchestrationSettings(**orchestration),
        task_planner=TaskPlannerSettings(data_dir=tmp_path / "planner"),
    )


def test_interact_records_completed_trace(scripted_client, tmp_path) -> None:
    client = scripted_client(_chat("plan"), _modify("a"), _modify("b"), _chat("ok"))
    service = AgentService(client, _settings(tmp_path))

    result = service.interact("m", "u1", "proj-7", "write notes")

    assert REQUEST_ID.match(result.request_id)
    assert isinstance(result.action, ModifyFileAction)
    assert result.action.new_content == "b"
    entry = service.get_trace(result.request_id)
    assert entry.status == TraceStatus.COMPLETED
    assert entry.final == result.action
    assert entry.trace == result.trace
    assert entry.strategy == "linear"


def test_single_agent_mode_produces_one_step(scripted_client, tmp_path) -> None:
    client = scripted_client(_modify("solo"))
    service = AgentService(client, _settings(tmp_path, multi_agent=False))

    result = service.interact("m", None, "proj-7", "write", current_file=CurrentFile("notes.md", ""))

    assert len(result.trace) == 1
    assert result.action.new_content == "solo"
    assert service.get_trace(result.request_id).strategy == "single"


def test_unknown_strategy_falls_back_to_linear(scripted_client, tmp_path) -> None:
    service = AgentService(scripted_client(), _settings(tmp_path, strategy="mesh"))

    result = service.interact("m", None, "proj-7", "hi")

    assert len(result.trace) == 4
    assert service.get_trace(result.request_id).strategy == "linear"


def test_run_async_exposes_steps_while_running(scripted_client, tmp_path, wait_for) -> None:
    client = scripted_client(_chat("plan"), _modify("a"), _modify("b"), _chat("ok"))
    release = threading.Event()
    original_generate = client.generate

    def gated_generate(model_id, messages, params):
        if len(client.calls) == 1:
            release.wait(5)
        return original_generate(model_id, messages, params)

    client.generate = gated_generate
    completed = []
    service = AgentService(client, _settings(tmp_path))

    request_id = service.run_async("m", None, "proj-7", "write", on_complete=completed.append)

    assert wait_for(lambda: len(service.get_trace(request_id).trace) == 1)
    running = service.get_trace(request_id)
    assert running.status == TraceStatus.RUNNING
    assert running.final is None

    release.set()
    assert service.wait(request_id, timeout=5)
    entry = service.get_trace(request_id)
    assert entry.status == TraceStatus.COMPLETED
    assert len(entry.trace) == 4
    assert entry.final.new_content == "b"
    assert len(completed) == 1
    assert isinstance(completed[0], OrchestrationResult)


def test_run_async_keeps_result_when_callback_raises(scripted_client, tmp_path) -> None:
    service = AgentService(scripted_client(), _settings(tmp_path, strategy="single"))

    def failing_callback(result) -> None:
        raise RuntimeError("listener gone")

    request_id = service.run_async("m", None, "proj-7", "hi", on_complete=failing_callback)

    assert service.wait(request_id, timeout=5)
    assert service.get_trace(request_id).status == TraceStatus.COMPLETED


def test_run_async_marks_error_when_orchestrator_fails(scripted_client, tmp_path) -> None:
    service = AgentService(scripted_client(), _settings(tmp_path))

    class BrokenOrchestrator:
        def run(self, agent_input, on_step=None):
            raise RuntimeError("pipeline crashed")

    service._build_orchestrator = lambda *args, **kwargs: BrokenOrchestrator()

    request_id = service.run_async("m", None, "proj-7", "hi")

    assert service.wait(request_id, timeout=5)
    entry = service.get_trace(request_id)
    assert entry.status == TraceStatus.ERROR
    assert entry.error == "pipeline crashed"
    assert entry.final is None


def test_get_trace_unknown_request_returns_none(scripted_client, tmp_path) -> None:
    service = AgentService(scripted_client(), _settings(tmp_path))

    assert service.get_trace("nope") is None


def test_author_interact_returns_normalised_result(scripted_client, tmp_path) -> None:
    client = scripted_client({"reply": "Added a rival.", "documents": {"memo": {"content": "rival"}}})
    service = AgentService(client, _settings(tmp_path))

    result = service.author_interact("m", None, "proj-7", "add a rival")

    assert result.reply == "Added a rival."
    assert result.documents["memo"].content == "rival"
    assert result.request_id.startswith("proj-7-author-")
    assert client.calls[0].params.temperature == 0.4


def test_chat_action_equality_for_final(scripted_client, tmp_path) -> None:
    client = scripted_client(_chat("p"), _chat("hello"), _chat("hello!"), _chat("fine"))
    service = AgentService(client, _settings(tmp_path))

    result = service.interact("m", None, "proj-7", "hi")

    assert result.action == ChatAction(message="hello")


def test_completing_the_only_item_finishes_the_run(scripted_client, tmp_path) -> None:
    client = scripted_client([{"id": "plan-1", "title": "Only task"}])
    planner = TaskPlanner(client, tmp_path / "planner", fetch=lambda url: "")
    service = AgentService(client, _settings(tmp_path), planner=planner)
    request_id = service.start_task_planner("m", None, "proj-7", "https://example.com/repo", autorun=False)
    snapshot = tmp_path / "planner" / f"{request_id}.json"
    before = json.loads(snapshot.read_text(encoding="utf-8"))

    item = service.update_task_planner_item(request_id, "plan-1", status="completed")

    assert item.completed_at is not None
    state = service.get_task_planner_trace(request_id)
    assert state.status == PlannerStatus.COMPLETED
    assert state.progress == 100
    after = json.loads(snapshot.read_text(encoding="utf-8"))
    assert after["status"] == "completed"
    assert after["todo"][0]["completed_at"] is not None
    assert after["updated_at"] != before["updated_at"]


def test_finished_background_requests_are_released(scripted_client, tmp_path) -> None:
    release = threading.Event()
    service = AgentService(scripted_client(), _settings(tmp_path, strategy="single"))
    request_id = service.run_async("m", None, "proj-7", "hi", on_complete=lambda result: release.wait(5))

    assert service.pending_requests() == [request_id]
    release.set()
    assert service.wait(request_id, timeout=5)

    assert service.pending_requests() == []
    assert service.get_trace(request_id).status == TraceStatus.COMPLETED
