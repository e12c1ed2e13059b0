"""Fixed four-stage pipeline: planner, writer, editor, reviewer."""

from __future__ import annotations

from dataclasses import replace
from typing import Optional, Sequence

from ..agents import ROLE_SEQUENCE, Agent
from ..models.generation import ChatMessage
from ..schema import AgentInput, AgentOutput, CurrentFile, ModifyFileAction, action_to_json
from .base import OrchestrationResult, StepCallback, UNTITLED_FILE, file_from_action, plan_text


class LinearOrchestrator:
    """Runs the four role agents strictly in order, threading context forward."""

    def __init__(self, agents: Sequence[Agent]) -> None:
        roles = [agent.role for agent in agents]
        if roles != ROLE_SEQUENCE:
            expected = ", ".join(role.value for role in ROLE_SEQUENCE)
            raise ValueError(f"Linear pipeline expects agents in order: {expected}")
        self._planner, self._writer, self._editor, self._reviewer = agents

    def run(
        self,
        agent_input: AgentInput,
        on_step: Optional[StepCallback] = None,
    ) -> OrchestrationResult:
        trace: list[AgentOutput] = []
        history = list(agent_input.history)

        def record(output: AgentOutput) -> None:
            trace.append(output)
            if on_step is not None:
                on_step(output)

        planner_out = self._planner.run(replace(agent_input, history=list(history)))
        record(planner_out)
        plan = plan_text(planner_out.action)
        history.append(ChatMessage("assistant", f"Plan: {plan}"))

        writer_message = f"User request: {agent_input.user_message}\n\nPlan / guidance:\n{plan or '(none)'}"
        writer_out = self._writer.run(
            AgentInput(
                user_message=writer_message,
                current_file=agent_input.current_file,
                history=list(history),
            )
        )
        record(writer_out)
        history.append(ChatMessage("assistant", action_to_json(writer_out.action)))

        writer_action = writer_out.action
        if isinstance(writer_action, ModifyFileAction):
            target = writer_action.file_path or _path_of(agent_input.current_file)
            editor_message = (
                "Refine this proposed change while keeping it consistent, and point out any "
                f"necessary adjustments.\nFile: {target}"
            )
        else:
            editor_message = f"Analyse the user's intent and refine this reply:\n{writer_action.message}"
        editor_out = self._editor.run(
            AgentInput(
                user_message=editor_message,
                current_file=_context_after(writer_action, agent_input.current_file),
                history=list(history),
            )
        )
        record(editor_out)
        history.append(ChatMessage("assistant", action_to_json(editor_out.action)))

        editor_action = editor_out.action
        if isinstance(editor_action, ModifyFileAction):
            reviewer_message = (
                "Perform the final review of the proposal below. If it is approved, return a valid "
                "modify_file JSON; if not, explain why in a chat JSON.\n"
                f"{action_to_json(editor_action)}"
            )
        else:
            reviewer_message = "Perform the final review of the edited reply and return a chat JSON."
        reviewer_out = self._reviewer.run(
            AgentInput(
                user_message=reviewer_message,
                current_file=_context_after(editor_action, agent_input.current_file),
                history=list(history),
            )
        )
        record(reviewer_out)

        # A reviewer rejection falls back to the editor's change instead of blocking it.
        if isinstance(reviewer_out.action, ModifyFileAction):
            final = reviewer_out.action
        elif isinstance(editor_action, ModifyFileAction):
            final = editor_action
        else:
            final = writer_action
        return OrchestrationResult(final=final, trace=trace)


def _path_of(current_file: CurrentFile | None) -> str:
    return current_file.path if current_file else UNTITLED_FILE


def _context_after(action, current_file: CurrentFile | None) -> CurrentFile | None:
    if isinstance(action, ModifyFileAction):
        return file_from_action(action, current_file, use_new=False)
    return current_file
