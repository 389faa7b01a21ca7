"""Per-workspace serialization and change notification."""

import threading
from collections.abc import Iterable, Iterator
from contextlib import contextmanager

from loguru import logger

from later_tree.protocols import ScopeListener


class ScopeLocks:
    """One re-entrant lock per workspace, plus one for the shared connection.

    Calls on the same workspace run one at a time. Every statement and
    transaction on the connection also holds ``database``, so units of work
    from different workspaces never share a savepoint stack. Acquire the
    workspace lock first, then ``database``.
    """

    def __init__(self) -> None:
        self._guard = threading.Lock()
        self._locks: dict[str, threading.RLock] = {}
        self.database = threading.RLock()

    def _lock_for(self, workspace_id: str) -> threading.RLock:
        with self._guard:
            lock = self._locks.get(workspace_id)
            if lock is None:
                lock = self._locks[workspace_id] = threading.RLock()
            return lock

    @contextmanager
    def hold(self, workspace_id: str) -> Iterator[None]:
        """Hold the workspace lock and then the connection lock."""
        with self._lock_for(workspace_id), self.database:
            yield

    def forget(self, workspace_id: str) -> None:
        """Drop the lock of a deleted workspace."""
        with self._guard:
            self._locks.pop(workspace_id, None)


class ChangeNotifier:
    """Fan-out of committed scope changes to subscribed listeners."""

    def __init__(self) -> None:
        self._listeners: list[ScopeListener] = []

    def subscribe(self, listener: ScopeListener) -> None:
        if listener not in self._listeners:
            self._listeners.append(listener)

    def unsubscribe(self, listener: ScopeListener) -> None:
        if listener in self._listeners:
            self._listeners.remove(listener)

    def notify(self, scope_ids: Iterable[str]) -> None:
        # A failing listener must not hide the change from the others.
        for scope_id in dict.fromkeys(scope_ids):
            for listener in list(self._listeners):
                try:
                    listener(scope_id)
                except Exception:
                    logger.exception("Scope listener failed for {}", scope_id)
