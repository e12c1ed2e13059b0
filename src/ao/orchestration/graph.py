"""Bounded planner/writer loop driven by an explicit shared state."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Callable, Dict, Optional

from ..agents import Agent
from ..models.generation import ChatMessage
from ..schema import (
    AgentAction,
    AgentInput,
    AgentOutput,
    CurrentFile,
    ModifyFileAction,
    action_to_json,
)
from .base import OrchestrationResult, StepCallback, chat, file_from_action, plan_text

LOGGER = logging.getLogger(__name__)

PLANNER = "planner"
WRITER = "writer"
END = "__end__"

DEFAULT_MAX_LOOPS = 3

CONTINUATION_PROMPT = "\n".join(
    [
        "Based on the latest draft, suggest what to write next.",
        "Give clear plan points and do not ask the user questions.",
    ]
)


class OrchestrationError(RuntimeError):
    """Raised when the loop-control machinery cannot finish a run."""


@dataclass(slots=True)
class GraphState:
    """Shared state threaded through every node of one run.

    ``history`` and ``trace`` only ever grow; nodes hand back their additions
    in a ``StateUpdate`` and ``apply`` concatenates them.
    """

    user_message: str
    current_file: CurrentFile | None = None
    history: list[ChatMessage] = field(default_factory=list)
    plan: str | None = None
    last_action: AgentAction | None = None
    trace: list[AgentOutput] = field(default_factory=list)
    loop_count: int = 0
    max_loops: int = DEFAULT_MAX_LOOPS

    def apply(self, update: "StateUpdate") -> None:
        self.history.extend(update.history)
        self.trace.extend(update.trace)
        if update.plan is not None:
            self.plan = update.plan
        if update.last_action is not None:
            self.last_action = update.last_action
        if update.current_file is not None:
            self.current_file = update.current_file
        if update.loop_count is not None:
            self.loop_count = update.loop_count


@dataclass(slots=True)
class StateUpdate:
    """Partial update returned by a node."""

    history: list[ChatMessage] = field(default_factory=list)
    trace: list[AgentOutput] = field(default_factory=list)
    plan: str | None = None
    last_action: AgentAction | None = None
    current_file: CurrentFile | None = None
    loop_count: int | None = None


Node = Callable[[GraphState, Optional[StepCallback]], StateUpdate]


class GraphOrchestrator:
    """Cycles planner → writer until ``max_loops`` writer turns have run.

    The run always ends on a planner step, so it issues at most
    ``max_loops + 1`` planner calls and ``max_loops`` writer calls.
    """

    def __init__(self, planner: Agent, writer: Agent, *, max_loops: int = DEFAULT_MAX_LOOPS) -> None:
        self._planner = planner
        self._writer = writer
        self.max_loops = max(1, int(max_loops))
        self._nodes: Dict[str, Node] = {
            PLANNER: self._planner_node,
            WRITER: self._writer_node,
        }

    def run(
        self,
        agent_input: AgentInput,
        on_step: Optional[StepCallback] = None,
    ) -> OrchestrationResult:
        state = GraphState(
            user_message=agent_input.user_message,
            current_file=agent_input.current_file,
            history=list(agent_input.history),
            max_loops=self.max_loops,
        )
        try:
            self._execute(state, on_step)
        except Exception as error:
            LOGGER.warning("Graph orchestration failed: %s", error)
            return OrchestrationResult(final=chat(f"Graph orchestration failed: {error}"), trace=[])

        if state.last_action is not None:
            final = state.last_action
        elif state.trace:
            final = state.trace[-1].action
        else:
            final = chat("No valid result was produced.")
        return OrchestrationResult(final=final, trace=list(state.trace))

    def _execute(self, state: GraphState, on_step: Optional[StepCallback]) -> None:
        step_budget = 2 * state.max_loops + 1
        steps = 0
        node = PLANNER
        while node != END:
            if steps >= step_budget:
                raise OrchestrationError(f"Step budget of {step_budget} exhausted without reaching the end.")
            steps += 1
            state.apply(self._nodes[node](state, on_step))
            node = self._next_node(node, state)

    @staticmethod
    def _next_node(node: str, state: GraphState) -> str:
        if node == PLANNER:
            return END if state.loop_count >= state.max_loops else WRITER
        if node == WRITER:
            return PLANNER
        raise OrchestrationError(f"Unknown node '{node}'")

    def _planner_node(self, state: GraphState, on_step: Optional[StepCallback]) -> StateUpdate:
        if isinstance(state.last_action, ModifyFileAction):
            message = CONTINUATION_PROMPT
        else:
            message = state.user_message
        output = self._planner.run(
            AgentInput(user_message=message, current_file=state.current_file, history=list(state.history))
        )
        step = output.model_copy(update={"notes": f"loop:{state.loop_count};node:planner"})
        if on_step is not None:
            on_step(step)
        plan = plan_text(output.action)
        history = [ChatMessage("assistant", f"Plan: {plan}")] if plan else []
        return StateUpdate(history=history, trace=[step], plan=plan)

    def _writer_node(self, state: GraphState, on_step: Optional[StepCallback]) -> StateUpdate:
        message = "\n\n".join(
            [
                f"User request: {state.user_message}",
                f"Plan / suggestions:\n{state.plan or '(none)'}",
                "Continue writing and return this round's change.",
            ]
        )
        output = self._writer.run(
            AgentInput(user_message=message, current_file=state.current_file, history=list(state.history))
        )
        next_loop = state.loop_count + 1
        step = output.model_copy(update={"notes": f"loop:{next_loop};node:writer"})
        if on_step is not None:
            on_step(step)
        action = output.action
        next_file = None
        if isinstance(action, ModifyFileAction):
            next_file = file_from_action(action, state.current_file, use_new=True)
        return StateUpdate(
            history=[ChatMessage("assistant", action_to_json(action))],
            trace=[step],
            last_action=action,
            current_file=next_file,
            loop_count=next_loop,
        )


__all__ = [
    "CONTINUATION_PROMPT",
    "DEFAULT_MAX_LOOPS",
    "GraphOrchestrator",
    "GraphState",
    "OrchestrationError",
    "StateUpdate",
]
