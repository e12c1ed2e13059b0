from __future__ import annotations

from ao.agents import Agent
from ao.orchestration import AgentFactory, GraphOrchestrator, create_orchestrator
from ao.orchestration.graph import CONTINUATION_PROMPT
from ao.prompts import ROLE_PROMPTS
from ao.schema import AgentInput, AgentRole, ChatAction, CurrentFile, ModifyFileAction


def _chat(message: str) -> dict:
    return {"type": "chat", "message": message}


def _modify(new: str, original: str = "") -> dict:
    return {
        "type": "modify_file",
        "filePath": "story.md",
        "originalContent": original,
        "newContent": new,
        "reason": "continue",
    }


def _graph(client, max_loops: int) -> GraphOrchestrator:
    planner = Agent(AgentRole.PLANNER, client, "m")
    writer = Agent(AgentRole.WRITER, client, "m")
    return GraphOrchestrator(planner, writer, max_loops=max_loops)


def test_alternates_planner_and_writer_within_loop_limit(scripted_client) -> None:
    client = scripted_client(
        _chat("plan 0"),
        _modify("part 1"),
        _chat("plan 1"),
        _modify("part 1\npart 2", "part 1"),
        _chat("plan 2"),
    )

    result = _graph(client, max_loops=2).run(AgentInput(user_message="write a story"))

    roles = [step.role for step in result.trace]
    assert roles == [
        AgentRole.PLANNER,
        AgentRole.WRITER,
        AgentRole.PLANNER,
        AgentRole.WRITER,
        AgentRole.PLANNER,
    ]
    assert [step.notes for step in result.trace] == [
        "loop:0;node:planner",
        "loop:1;node:writer",
        "loop:1;node:planner",
        "loop:2;node:writer",
        "loop:2;node:planner",
    ]
    assert isinstance(result.final, ModifyFileAction)
    assert result.final.new_content == "part 1\npart 2"


def test_planner_switches_to_continuation_prompt_after_a_draft(scripted_client) -> None:
    client = scripted_client(
        _chat("plan 0"),
        _modify("part 1"),
        _chat("plan 1"),
    )

    _graph(client, max_loops=1).run(AgentInput(user_message="write a story"))

    assert client.calls[0].user_message == "write a story"
    assert client.calls[2].user_message == CONTINUATION_PROMPT


def test_writer_sees_previous_draft_as_current_file(scripted_client) -> None:
    client = scripted_client(
        _chat("plan 0"),
        _modify("draft one", "seed"),
        _chat("plan 1"),
        _modify("draft two", "draft one"),
        _chat("plan 2"),
    )

    _graph(client, max_loops=2).run(
        AgentInput(user_message="go", current_file=CurrentFile("story.md", "seed"))
    )

    assert client.calls[1].system[1] == "Current file: story.md\nContent:\nseed"
    assert client.calls[3].system[1] == "Current file: story.md\nContent:\ndraft one"
    assert "Plan / suggestions:\nplan 1" in client.calls[3].user_message


def test_max_loops_is_clamped_to_one(scripted_client) -> None:
    client = scripted_client(_chat("plan"), _chat("reply"), _chat("done"))

    result = _graph(client, max_loops=0).run(AgentInput(user_message="hello"))

    assert len(result.trace) == 3
    assert result.final == ChatAction(message="reply")


def test_step_callback_failure_becomes_chat_result(scripted_client) -> None:
    client = scripted_client(_chat("plan"))

    def explode(step) -> None:
        raise RuntimeError("sink closed")

    result = _graph(client, max_loops=1).run(AgentInput(user_message="go"), on_step=explode)

    assert result.trace == []
    assert result.final == ChatAction(message="Graph orchestration failed: sink closed")


def test_factory_builds_graph_with_configured_loops(scripted_client) -> None:
    client = scripted_client()

    orchestrator = create_orchestrator("graph", AgentFactory(client=client, model_id="m"), max_loops=4)

    assert isinstance(orchestrator, GraphOrchestrator)
    assert orchestrator.max_loops == 4


def test_chat_only_writer_stops_after_max_loops(scripted_client) -> None:
    client = scripted_client(default=_chat("still thinking"))

    result = _graph(client, max_loops=3).run(AgentInput(user_message="write a story"))

    roles = [call.system[0] for call in client.calls]
    assert roles.count(ROLE_PROMPTS[AgentRole.PLANNER]) == 4
    assert roles.count(ROLE_PROMPTS[AgentRole.WRITER]) == 3
    assert len(result.trace) == 7
    assert result.final == ChatAction(message="still thinking")
