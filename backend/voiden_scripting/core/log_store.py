"""
Script log store: keeps the log batches produced by pre/post scripts so a
UI panel (or the /scripts/logs route) can list and clear them.
"""

import logging
import threading
import time
from collections.abc import Callable
from typing import Any

from voiden_scripting.models_script import ScriptPhaseEnum
from voiden_scripting.schemas_script import ScriptLog, ScriptLogEntry

_log = logging.getLogger(__name__)

Listener = Callable[[], None]


class ScriptLogStore:
    """Append-only list of log entries with change listeners."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._entries: list[ScriptLogEntry] = []
        self._next_id = 1
        self._listeners: list[Listener] = []

    def _notify(self) -> None:
        for listener in list(self._listeners):
            try:
                listener()
            except Exception as e:
                _log.warning("script log listener failed: %s", e)

    def push(
        self,
        phase: ScriptPhaseEnum | str,
        logs: list[ScriptLog] | list[dict[str, Any]],
        error: str | None = None,
        exit_code: int | None = None,
    ) -> ScriptLogEntry | None:
        """Record one batch. A batch with no logs and no error is ignored."""
        if not logs and not error:
            return None
        with self._lock:
            entry = ScriptLogEntry(
                id=self._next_id,
                phase=ScriptPhaseEnum(phase),
                timestamp=int(time.time() * 1000),
                logs=[ScriptLog.model_validate(x) for x in logs],
                error=error,
                exit_code=exit_code,
            )
            self._next_id += 1
            self._entries = [*self._entries, entry]
        self._notify()
        return entry

    def clear(self) -> None:
        with self._lock:
            self._entries = []
        self._notify()

    def clear_by_id(self, entry_id: int) -> bool:
        """Drop one entry. Returns False when the id is unknown."""
        with self._lock:
            kept = [e for e in self._entries if e.id != entry_id]
            removed = len(kept) != len(self._entries)
            self._entries = kept
        self._notify()
        return removed

    def get_entries(self) -> list[ScriptLogEntry]:
        """Current snapshot (the list is replaced on every change, never mutated)."""
        return self._entries

    def subscribe(self, listener: Listener) -> Callable[[], None]:
        """Register a change listener. Returns the unsubscribe function."""
        self._listeners.append(listener)

        def _unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return _unsubscribe


script_log_store = ScriptLogStore()
