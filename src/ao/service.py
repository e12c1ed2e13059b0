"""Service facade: orchestration requests, trace polling, task planning and the author agent."""

from __future__ import annotations

import functools
import logging
import threading
from dataclasses import dataclass
from typing import Any, Callable, Dict, List, Mapping, Optional, Sequence

from .agents import AgentCallLog
from .agents.author import AuthorAgent, AuthorAgentResult
from .config import Settings
from .models.generation import ChatMessage, GenerationClient, GenerationParams
from .orchestration import (
    AgentFactory,
    OrchestrationResult,
    Orchestrator,
    OrchestratorStrategy,
    create_orchestrator,
    resolve_strategy,
)
from .planning.generation import fetch_reference
from .planning.planner import TaskPlanner
from .planning.snapshots import PutObject
from .schema import (
    AgentAction,
    AgentInput,
    AgentOutput,
    CurrentFile,
    PlannerStatus,
    TaskItem,
    TaskPlannerState,
    TraceEntry,
)
from .tracing import TraceStore
from .utils.ids import new_request_id

LOGGER = logging.getLogger(__name__)

CompletionCallback = Callable[[OrchestrationResult], None]


@dataclass(slots=True)
class InteractResult:
    """Outcome of a synchronous orchestration request."""

    action: AgentAction
    trace: List[AgentOutput]
    request_id: str


class AgentService:
    """Entry points exposed to callers; one instance per process."""

    def __init__(
        self,
        client: GenerationClient,
        settings: Settings | None = None,
        *,
        traces: TraceStore | None = None,
        planner: TaskPlanner | None = None,
        put_object: PutObject | None = None,
    ) -> None:
        self._client = client
        self.settings = settings or Settings()
        self.traces = traces or TraceStore()
        self._call_log = AgentCallLog(self.settings.logs_dir) if self.settings.logs_dir else None
        self._threads: Dict[str, threading.Thread] = {}
        self._threads_lock = threading.Lock()

        planner_settings = self.settings.task_planner
        self.task_planner = planner or TaskPlanner(
            client,
            planner_settings.data_dir,
            tick_seconds=planner_settings.tick_seconds,
            autosave_every=planner_settings.autosave_every,
            put_object=put_object,
            remote_prefix=planner_settings.remote_prefix,
            params=GenerationParams(
                temperature=planner_settings.temperature,
                max_tokens=planner_settings.max_tokens,
            ),
            fetch=functools.partial(
                fetch_reference,
                timeout=planner_settings.reference_timeout,
                max_chars=planner_settings.reference_max_chars,
            ),
        )

    @property
    def strategy(self) -> OrchestratorStrategy:
        """Strategy used for new requests; single-agent mode overrides the configured one."""
        orchestration = self.settings.orchestration
        if not orchestration.multi_agent:
            return OrchestratorStrategy.SINGLE
        return resolve_strategy(orchestration.strategy)

    def interact(
        self,
        model_id: str,
        user_id: str | int | None,
        project_id: str | int,
        user_message: str,
        current_file: CurrentFile | None = None,
        history: Sequence[ChatMessage] | None = None,
    ) -> InteractResult:
        """Run the configured orchestrator to completion and record its trace."""
        strategy = self.strategy
        orchestrator = self._build_orchestrator(strategy, model_id, user_id, project_id)
        result = orchestrator.run(_agent_input(user_message, current_file, history))

        request_id = new_request_id(project_id)
        handle = self.traces.open(
            request_id,
            strategy=strategy.value,
            max_loops=self.settings.orchestration.max_loops,
        )
        handle.complete(result.final, result.trace)
        return InteractResult(action=result.final, trace=list(result.trace), request_id=request_id)

    def run_async(
        self,
        model_id: str,
        user_id: str | int | None,
        project_id: str | int,
        user_message: str,
        current_file: CurrentFile | None = None,
        history: Sequence[ChatMessage] | None = None,
        on_complete: CompletionCallback | None = None,
    ) -> str:
        """Start an orchestration in the background and return its request id.

        Steps are appended to the trace as they finish, so ``get_trace`` can be
        polled while the run is in flight.
        """
        strategy = self.strategy
        orchestrator = self._build_orchestrator(strategy, model_id, user_id, project_id)
        agent_input = _agent_input(user_message, current_file, history)

        request_id = new_request_id(project_id)
        handle = self.traces.open(
            request_id,
            strategy=strategy.value,
            max_loops=self.settings.orchestration.max_loops,
        )

        def execute() -> None:
            try:
                result = orchestrator.run(agent_input, on_step=handle.append)
                handle.complete(result.final, result.trace)
            except Exception as error:
                LOGGER.error("Orchestration %s failed: %s", request_id, error)
                handle.fail(str(error))
                return
            if on_complete is None:
                return
            try:
                on_complete(result)
            except Exception as error:
                LOGGER.warning("Completion callback for %s failed: %s", request_id, error)

        def worker() -> None:
            try:
                execute()
            finally:
                with self._threads_lock:
                    self._threads.pop(request_id, None)

        thread = threading.Thread(target=worker, name=f"orchestration-{request_id}", daemon=True)
        with self._threads_lock:
            self._threads[request_id] = thread
        thread.start()
        return request_id

    def pending_requests(self) -> List[str]:
        """Request ids of background orchestrations that are still running."""
        with self._threads_lock:
            return list(self._threads)

    def get_trace(self, request_id: str) -> Optional[TraceEntry]:
        return self.traces.get(request_id)

    def wait(self, request_id: str, timeout: float | None = None) -> bool:
        """Block until a background orchestration finishes; ``True`` when it has."""
        with self._threads_lock:
            thread = self._threads.get(request_id)
        if thread is None:
            return True
        thread.join(timeout)
        return not thread.is_alive()

    def start_task_planner(
        self,
        model_id: str,
        user_id: str | int | None,
        project_id: str | int,
        repo_url: str,
        *,
        autorun: bool = True,
    ) -> str:
        return self.task_planner.start(model_id, user_id, project_id, repo_url, autorun=autorun)

    def get_task_planner_trace(self, request_id: str) -> Optional[TaskPlannerState]:
        return self.task_planner.get_state(request_id)

    def update_task_planner_item(
        self,
        request_id: str,
        item_id: str,
        *,
        status: str | None = None,
        priority: str | None = None,
    ) -> Optional[TaskItem]:
        return self.task_planner.update_item(request_id, item_id, status=status, priority=priority)

    def set_task_planner_paused(self, request_id: str, paused: bool) -> Optional[PlannerStatus]:
        return self.task_planner.set_paused(request_id, paused)

    def author_interact(
        self,
        model_id: str,
        user_id: str | int | None,
        project_id: str | int,
        user_message: str,
        *,
        documents: Mapping[str, Any] | None = None,
        history: Sequence[ChatMessage] | None = None,
    ) -> AuthorAgentResult:
        """Ask the author agent to answer and refresh the project documents."""
        LOGGER.debug("Author request for project %s (user=%s)", project_id, user_id)
        agent = AuthorAgent(self._client, model_id)
        return agent.interact(project_id, user_message, documents=documents, history=list(history or []))

    def _build_orchestrator(
        self,
        strategy: OrchestratorStrategy,
        model_id: str,
        user_id: str | int | None,
        project_id: str | int,
    ) -> Orchestrator:
        orchestration = self.settings.orchestration
        factory = AgentFactory(
            client=self._client,
            model_id=model_id,
            user_id=user_id,
            project_id=project_id,
            params=GenerationParams(
                temperature=orchestration.temperature,
                max_tokens=orchestration.max_tokens,
            ),
            call_log=self._call_log,
        )
        return create_orchestrator(strategy, factory, max_loops=orchestration.max_loops)


def _agent_input(
    user_message: str,
    current_file: CurrentFile | None,
    history: Sequence[ChatMessage] | None,
) -> AgentInput:
    return AgentInput(user_message=user_message, current_file=current_file, history=list(history or []))


__all__ = ["AgentService", "CompletionCallback", "InteractResult"]
