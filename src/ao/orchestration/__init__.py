"""Orchestration strategies and the factory that selects between them."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Callable, Dict

from ..agents import ROLE_SEQUENCE, Agent, AgentCallLog
from ..models.generation import GenerationClient, GenerationParams
from ..prompts import SINGLE_AGENT_PROMPT
from ..schema import AgentRole
from .base import (
    OrchestrationResult,
    Orchestrator,
    OrchestratorStrategy,
    StepCallback,
)
from .graph import DEFAULT_MAX_LOOPS, GraphOrchestrator, OrchestrationError
from .linear import LinearOrchestrator
from .single import SingleAgentOrchestrator


@dataclass(slots=True)
class AgentFactory:
    """Builds agents that share one client, model and request identity."""

    client: GenerationClient
    model_id: str
    user_id: str | int | None = None
    project_id: str | int | None = None
    params: GenerationParams | None = None
    call_log: AgentCallLog | None = None

    def __call__(self, role: AgentRole, *, system_prompt: str | None = None) -> Agent:
        return Agent(
            role,
            self.client,
            self.model_id,
            user_id=self.user_id,
            project_id=self.project_id,
            params=self.params,
            system_prompt=system_prompt,
            call_log=self.call_log,
        )


def _build_linear(agents: AgentFactory, max_loops: int) -> Orchestrator:
    return LinearOrchestrator([agents(role) for role in ROLE_SEQUENCE])


def _build_graph(agents: AgentFactory, max_loops: int) -> Orchestrator:
    return GraphOrchestrator(agents(AgentRole.PLANNER), agents(AgentRole.WRITER), max_loops=max_loops)


def _build_single(agents: AgentFactory, max_loops: int) -> Orchestrator:
    return SingleAgentOrchestrator(agents(AgentRole.WRITER, system_prompt=SINGLE_AGENT_PROMPT))


_REGISTRY: Dict[OrchestratorStrategy, Callable[[AgentFactory, int], Orchestrator]] = {
    OrchestratorStrategy.LINEAR: _build_linear,
    OrchestratorStrategy.GRAPH: _build_graph,
    OrchestratorStrategy.SINGLE: _build_single,
}


def resolve_strategy(value: OrchestratorStrategy | str | None) -> OrchestratorStrategy:
    """Resolve ``value`` into a strategy; anything unrecognised means linear."""
    if isinstance(value, OrchestratorStrategy):
        return value
    try:
        return OrchestratorStrategy(str(value or "").strip().lower())
    except ValueError:
        return OrchestratorStrategy.LINEAR


def create_orchestrator(
    strategy: OrchestratorStrategy | str | None,
    agents: AgentFactory,
    *,
    max_loops: int = DEFAULT_MAX_LOOPS,
) -> Orchestrator:
    """Instantiate the orchestrator registered for ``strategy``."""
    return _REGISTRY[resolve_strategy(strategy)](agents, max_loops)


__all__ = [
    "AgentFactory",
    "GraphOrchestrator",
    "LinearOrchestrator",
    "OrchestrationError",
    "OrchestrationResult",
    "Orchestrator",
    "OrchestratorStrategy",
    "SingleAgentOrchestrator",
    "StepCallback",
    "create_orchestrator",
    "resolve_strategy",
]
