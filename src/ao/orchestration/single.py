"""Single-agent mode: one general writing assistant, no review pipeline."""

from __future__ import annotations

from typing import Optional

from ..agents import Agent
from ..schema import AgentInput
from .base import OrchestrationResult, StepCallback


class SingleAgentOrchestrator:
    """Runs one agent and returns its action as the final result."""

    def __init__(self, agent: Agent) -> None:
        self._agent = agent

    def run(
        self,
        agent_input: AgentInput,
        on_step: Optional[StepCallback] = None,
    ) -> OrchestrationResult:
        output = self._agent.run(agent_input)
        if on_step is not None:
            on_step(output)
        return OrchestrationResult(final=output.action, trace=[output])
