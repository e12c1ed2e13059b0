"""Task planner: repository checklist generation, monitoring loop and resume."""

from __future__ import annotations

import logging
import threading
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, List, Optional, Sequence, get_args

from ..models.generation import GenerationClient, GenerationParams
from ..schema import (
    PlannerStatus,
    TaskItem,
    TaskItemStatus,
    TaskPlannerState,
    TaskPriority,
    utc_now,
)
from ..utils.ids import new_request_id
from .generation import PLAN_PARAMS, ReferenceFetcher, generate_plan
from .snapshots import (
    LocalSnapshotSink,
    PutObject,
    RemoteObjectSink,
    SnapshotSink,
    TodoMarkdownSink,
    load_resumable_snapshot,
)

LOGGER = logging.getLogger(__name__)

DEFAULT_TICK_SECONDS = 1.0
DEFAULT_AUTOSAVE_EVERY = 30

_ITEM_STATUSES = set(get_args(TaskItemStatus))
_PRIORITIES = set(get_args(TaskPriority))
_TERMINAL = {PlannerStatus.COMPLETED, PlannerStatus.ERROR}


@dataclass(slots=True)
class _Run:
    """In-memory bookkeeping for one planner run.

    ``lock`` guards ``state`` and ``ticks``; every mutation of the run goes
    through it.
    """

    state: TaskPlannerState
    model_id: str
    autorun: bool
    lock: threading.RLock = field(default_factory=threading.RLock)
    ticks: int = 0
    stop: threading.Event = field(default_factory=threading.Event)
    thread: Optional[threading.Thread] = None

    def active(self) -> bool:
        return self.thread is not None and self.thread.is_alive() and not self.stop.is_set()


def percent_complete(todo: Sequence[TaskItem]) -> int:
    """Completed share of ``todo`` as a percentage, rounding halves up."""
    total = len(todo) or 1
    done = sum(1 for item in todo if item.status == "completed")
    return int(done * 100 / total + 0.5)


class TaskPlanner:
    """Generates, monitors and persists task checklists for repositories."""

    def __init__(
        self,
        client: GenerationClient,
        data_dir: Path | str,
        *,
        tick_seconds: float = DEFAULT_TICK_SECONDS,
        autosave_every: int = DEFAULT_AUTOSAVE_EVERY,
        put_object: PutObject | None = None,
        remote_prefix: str = "task-planner",
        sinks: Sequence[SnapshotSink] | None = None,
        params: GenerationParams | None = None,
        fetch: ReferenceFetcher | None = None,
    ) -> None:
        self._client = client
        self.data_dir = Path(data_dir)
        self.tick_seconds = tick_seconds
        self.autosave_every = max(1, int(autosave_every))
        self._params = params or PLAN_PARAMS
        self._fetch = fetch
        if sinks is None:
            default_sinks: List[SnapshotSink] = [
                LocalSnapshotSink(self.data_dir),
                TodoMarkdownSink(self.data_dir),
            ]
            if put_object is not None:
                default_sinks.append(RemoteObjectSink(put_object, prefix=remote_prefix))
            sinks = default_sinks
        self._sinks: List[SnapshotSink] = list(sinks)
        self._runs: Dict[str, _Run] = {}
        self._runs_lock = threading.Lock()

    def start(
        self,
        model_id: str,
        user_id: str | int | None,
        project_id: str | int,
        repo_url: str,
        *,
        autorun: bool = True,
    ) -> str:
        """Start or resume planning for ``repo_url`` and return its request id.

        With ``autorun`` the checklist is prepared and monitored on a daemon
        thread; without it the checklist is prepared before returning and the
        caller drives ``tick``.
        """
        snapshot = load_resumable_snapshot(self.data_dir, repo_url)

        with self._runs_lock:
            run = self._runs.get(snapshot.request_id) if snapshot is not None else None
            if run is not None:
                with run.lock:
                    if run.active() and run.state.status == PlannerStatus.RUNNING:
                        return run.state.request_id
                    run.stop.set()
                    self._mark_resumed(run.state)
                    run.model_id = model_id
                    run.autorun = autorun
                    run.stop = threading.Event()
            elif snapshot is not None:
                self._mark_resumed(snapshot)
                run = _Run(state=snapshot, model_id=model_id, autorun=autorun)
            else:
                state = TaskPlannerState(
                    request_id=new_request_id(project_id, prefix="task"),
                    repo_url=repo_url,
                )
                state.log("Task planning started")
                run = _Run(state=state, model_id=model_id, autorun=autorun)
            request_id = run.state.request_id
            self._runs[request_id] = run

        LOGGER.info("Task planner %s started for %s (user=%s)", request_id, repo_url, user_id)
        if autorun:
            self._launch(run, prepare=True)
        else:
            self._prepare(run)
        return request_id

    def attach(self, request_id: str, model_id: str = "") -> Optional[TaskPlannerState]:
        """Load a run from its local snapshot without starting its monitor.

        Runs already in memory are left untouched. Lets a separate process
        inspect or drive a run through ``update_item``, ``set_paused`` and ``tick``.
        """
        with self._runs_lock:
            run = self._runs.get(request_id)
            if run is None:
                path = self.data_dir / f"{request_id}.json"
                try:
                    state = TaskPlannerState.model_validate_json(path.read_text(encoding="utf-8"))
                except FileNotFoundError:
                    return None
                run = _Run(state=state, model_id=model_id, autorun=False)
                self._runs[request_id] = run
        return self.get_state(request_id)

    def get_state(self, request_id: str) -> Optional[TaskPlannerState]:
        """Return a deep copy of the run's state, or ``None`` when unknown."""
        run = self._runs.get(request_id)
        if run is None:
            return None
        with run.lock:
            return run.state.model_copy(deep=True)

    def tick(self, request_id: str) -> Optional[PlannerStatus]:
        """Advance the monitor by one step and return the resulting status."""
        run = self._runs.get(request_id)
        if run is None:
            return None
        with run.lock:
            state = run.state
            if state.status != PlannerStatus.RUNNING:
                return state.status

            run.ticks += 1
            state.progress = percent_complete(state.todo)
            state.updated_at = utc_now()

            if run.ticks % self.autosave_every == 0:
                state.log("Auto-saved snapshot")
                self._persist(state)

            self._complete_if_done(run)
            return state.status

    def update_item(
        self,
        request_id: str,
        item_id: str,
        *,
        status: str | None = None,
        priority: str | None = None,
    ) -> Optional[TaskItem]:
        """Change an item's status or priority and persist immediately.

        Returns a copy of the updated item, or ``None`` when the run or item is
        unknown. Unknown status or priority values raise ``ValueError``.
        """
        if status is not None and status not in _ITEM_STATUSES:
            raise ValueError(f"Unknown task status '{status}'")
        if priority is not None and priority not in _PRIORITIES:
            raise ValueError(f"Unknown task priority '{priority}'")

        run = self._runs.get(request_id)
        if run is None:
            return None
        with run.lock:
            state = run.state
            item = next((entry for entry in state.todo if entry.id == item_id), None)
            if item is None:
                return None
            now = utc_now()
            if priority is not None:
                item.priority = priority  # type: ignore[assignment]
            if status is not None:
                if status == "in_progress" and item.started_at is None:
                    item.started_at = now
                if status == "completed" and item.completed_at is None:
                    item.completed_at = now
                item.status = status  # type: ignore[assignment]
                state.log(f"Task {item.id} status set to {status}")
            state.updated_at = now
            if state.status == PlannerStatus.RUNNING:
                state.progress = percent_complete(state.todo)
            if not self._complete_if_done(run):
                self._persist(state)
            return item.model_copy(deep=True)

    def set_paused(self, request_id: str, paused: bool) -> Optional[PlannerStatus]:
        """Pause or resume a run; terminal runs keep their status."""
        run = self._runs.get(request_id)
        if run is None:
            return None
        with run.lock:
            state = run.state
            target = PlannerStatus.PAUSED if paused else PlannerStatus.RUNNING
            if state.status in _TERMINAL or state.status == target:
                return state.status

            state.status = target
            state.updated_at = utc_now()
            state.log("Task planning paused" if paused else "Task planning resumed")
            self._persist(state)
            if paused:
                run.stop.set()
            elif run.autorun:
                run.stop = threading.Event()
                self._launch(run, prepare=False)
            return state.status

    def wait(self, request_id: str, timeout: float | None = None) -> bool:
        """Block until the run's monitor thread exits; ``True`` when it has."""
        run = self._runs.get(request_id)
        if run is None or run.thread is None:
            return True
        run.thread.join(timeout)
        return not run.thread.is_alive()

    def shutdown(self) -> None:
        """Signal every monitor thread to stop after its current tick."""
        for run in list(self._runs.values()):
            run.stop.set()

    def _launch(self, run: _Run, *, prepare: bool) -> None:
        stop = run.stop
        thread = threading.Thread(
            target=self._monitor,
            args=(run, stop, prepare),
            name=f"task-planner-{run.state.request_id}",
            daemon=True,
        )
        run.thread = thread
        thread.start()

    def _monitor(self, run: _Run, stop: threading.Event, prepare: bool) -> None:
        if prepare and not self._prepare(run):
            return
        request_id = run.state.request_id
        while not stop.wait(self.tick_seconds):
            if self.tick(request_id) != PlannerStatus.RUNNING:
                break

    def _prepare(self, run: _Run) -> bool:
        state = run.state
        try:
            with run.lock:
                needs_plan = not state.todo
                repo_url = state.repo_url
            if needs_plan:
                todo = generate_plan(
                    self._client,
                    run.model_id,
                    repo_url,
                    params=self._params,
                    fetch=self._fetch,
                )
                with run.lock:
                    state.todo = todo
                    state.updated_at = utc_now()
                    state.log("Generated task list with acceptance criteria")
                    self._persist(state)
            else:
                with run.lock:
                    state.updated_at = utc_now()
                    state.log("Reusing task list from snapshot")
                    self._persist(state)
            return True
        except Exception as error:
            LOGGER.error("Task planner %s failed to prepare: %s", state.request_id, error)
            with run.lock:
                state.status = PlannerStatus.ERROR
                state.message = str(error) or "Task plan generation failed"
                state.updated_at = utc_now()
                self._persist(state)
            return False

    def _complete_if_done(self, run: _Run) -> bool:
        state = run.state
        if state.status != PlannerStatus.RUNNING or not state.todo:
            return False
        if any(item.status != "completed" for item in state.todo):
            return False
        state.status = PlannerStatus.COMPLETED
        state.log("All tasks completed")
        self._persist(state)
        run.stop.set()
        LOGGER.info("Task planner %s completed", state.request_id)
        return True

    def _persist(self, state: TaskPlannerState) -> None:
        for sink in self._sinks:
            try:
                sink.write(state)
            except Exception as error:
                LOGGER.warning(
                    "Snapshot sink %s failed for %s: %s",
                    type(sink).__name__,
                    state.request_id,
                    error,
                )

    @staticmethod
    def _mark_resumed(state: TaskPlannerState) -> None:
        state.status = PlannerStatus.RUNNING
        state.message = None
        state.updated_at = utc_now()
        state.log("Resumed task planning from snapshot")


__all__ = [
    "DEFAULT_AUTOSAVE_EVERY",
    "DEFAULT_TICK_SECONDS",
    "TaskPlanner",
    "percent_complete",
]
