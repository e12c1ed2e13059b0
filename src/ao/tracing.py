"""Process-wide, pollable store of orchestration traces."""

from __future__ import annotations

import threading
from typing import Dict, Iterable, Optional

from .schema import AgentAction, AgentOutput, TraceEntry, TraceStatus

__all__ = ["TraceClosedError", "TraceHandle", "TraceStore"]


class TraceClosedError(RuntimeError):
    """Raised when a trace is written after reaching a terminal status."""


class TraceHandle:
    """Sole writer for one request id, returned when the entry is opened."""

    def __init__(self, store: "TraceStore", request_id: str) -> None:
        self._store = store
        self.request_id = request_id

    def append(self, step: AgentOutput) -> None:
        with self._store._lock:
            entry = self._open_entry()
            entry.trace.append(step)

    def complete(self, final: AgentAction, trace: Iterable[AgentOutput]) -> None:
        with self._store._lock:
            entry = self._open_entry()
            entry.trace = list(trace)
            entry.final = final
            entry.status = TraceStatus.COMPLETED

    def fail(self, error: str) -> None:
        with self._store._lock:
            entry = self._open_entry()
            entry.error = error or "Unknown error"
            entry.status = TraceStatus.ERROR

    def _open_entry(self) -> TraceEntry:
        entry = self._store._entries[self.request_id]
        if entry.status != TraceStatus.RUNNING:
            raise TraceClosedError(f"Trace {self.request_id} is already {entry.status.value}")
        return entry


class TraceStore:
    """Lock-guarded map from request id to trace entry.

    Entries live for the lifetime of the process; nothing is evicted.
    """

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._entries: Dict[str, TraceEntry] = {}

    def open(
        self,
        request_id: str,
        *,
        strategy: str,
        max_loops: int,
    ) -> TraceHandle:
        """Create a ``running`` entry and hand back its writer."""
        with self._lock:
            if request_id in self._entries:
                raise KeyError(f"Trace {request_id} already exists")
            self._entries[request_id] = TraceEntry(
                request_id=request_id,
                strategy=strategy,
                max_loops=max_loops,
            )
        return TraceHandle(self, request_id)

    def get(self, request_id: str) -> Optional[TraceEntry]:
        """Return a point-in-time copy of the entry, or ``None``."""
        with self._lock:
            entry = self._entries.get(request_id)
            return entry.model_copy(deep=True) if entry is not None else None

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)
