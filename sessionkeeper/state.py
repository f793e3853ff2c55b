"""
Observable Session State.

Provides an injectable ``SessionStateHolder`` that owns the published
``SessionState`` snapshot for the lifetime of the process and notifies
observers on every transition.

Snapshots are immutable; an update swaps in a new snapshot under a
re-entrant lock, so readers on any thread always see a consistent state
and no two completions interleave their writes.

Usage::

    holder = SessionStateHolder(logger)
    unsubscribe = holder.subscribe(lambda state: print(state.phase))
    holder.update(is_authenticated=True)
"""

from __future__ import annotations

import threading
from typing import Callable, Optional

from sessionkeeper.logger import StructuredLogger
from sessionkeeper.models.auth_models import SessionState

StateListener = Callable[[SessionState], None]


class SessionStateHolder:
    """Holder and publisher for the current ``SessionState``."""

    def __init__(
        self,
        logger: StructuredLogger,
        initial: Optional[SessionState] = None,
    ) -> None:
        self._lock: threading.RLock = threading.RLock()
        self._logger: StructuredLogger = logger
        self._state: SessionState = initial or SessionState()
        self._listeners: list[StateListener] = []

    @property
    def state(self) -> SessionState:
        """Return the current snapshot."""
        with self._lock:
            return self._state

    def update(self, **changes: object) -> SessionState:
        """Apply *changes* as one transition and notify listeners.

        Listener exceptions are logged and do not affect the transition or
        the remaining listeners.
        """
        with self._lock:
            self._state = self._state.model_copy(update=changes)
            snapshot = self._state
            listeners = list(self._listeners)

        for listener in listeners:
            try:
                listener(snapshot)
            except Exception as exc:
                self._logger.error(
                    "Session state listener failed: %s", exc, exc_info=True,
                )
        return snapshot

    def subscribe(self, listener: StateListener) -> Callable[[], None]:
        """Register *listener* for future transitions; returns an unsubscriber."""
        with self._lock:
            self._listeners.append(listener)

        def _unsubscribe() -> None:
            with self._lock:
                if listener in self._listeners:
                    self._listeners.remove(listener)

        return _unsubscribe
