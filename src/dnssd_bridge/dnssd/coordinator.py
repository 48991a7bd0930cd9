"""
Dispatch coordinator: the locking discipline between callers, the discovery
backend and result callbacks.

One process-wide exclusive lock guards the bridge's shared state. Two rules:

* Every call *into* the backend runs with the lock released (`unlocked()`),
  since the backend may block indefinitely or call straight back into the
  bridge. The backend is never invoked while this lock is held.
* Every delivery *from* the backend (resolve/browse results arriving on a
  backend-owned thread) holds the lock for the duration of the user callback
  (`locked()`).

Callers may or may not already hold the lock when they enter the bridge; both
helpers adapt to the current thread's ownership.
"""
import threading
from collections.abc import Callable, Iterator
from contextlib import contextmanager
from typing import Any

import structlog

from ..exceptions import BackendFaultError

logger = structlog.get_logger(__name__)


class StackLock:
    """Non-reentrant lock that knows which thread owns it."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._owner: int | None = None

    def acquire(self) -> None:
        self._lock.acquire()
        self._owner = threading.get_ident()

    def release(self) -> None:
        self._owner = None
        self._lock.release()

    def held_by_current_thread(self) -> bool:
        return self._owner == threading.get_ident()

    def locked(self) -> bool:
        return self._lock.locked()


class DispatchCoordinator:
    def __init__(self, lock: StackLock | None = None):
        self.lock = lock or StackLock()

    @contextmanager
    def locked(self) -> Iterator[None]:
        """Holds the lock for the block, unless this thread already holds it."""
        if self.lock.held_by_current_thread():
            yield
            return
        self.lock.acquire()
        try:
            yield
        finally:
            self.lock.release()

    @contextmanager
    def unlocked(self) -> Iterator[None]:
        """Releases the lock for the block if this thread holds it, and takes it back afterwards."""
        if not self.lock.held_by_current_thread():
            yield
            return
        self.lock.release()
        try:
            yield
        finally:
            self.lock.acquire()

    def call_backend(self, operation: str, entry_point: Callable[..., Any], *args: Any) -> Any:
        """Invokes a backend entry point with the lock released.

        Any exception the backend raises is logged and surfaced once as
        BackendFaultError. Nothing is retried.
        """
        with self.unlocked():
            try:
                return entry_point(*args)
            except Exception as e:
                logger.exception("Backend raised during call-out", operation=operation, error=str(e))
                raise BackendFaultError(operation, str(e)) from e

    def deliver(self, callback: Callable[..., Any], *args: Any) -> None:
        """Invokes a result callback under the lock.

        Runs on backend-owned threads, so an exception from the callback is
        logged here rather than propagated into the backend.
        """
        with self.locked():
            try:
                callback(*args)
            except Exception as e:
                logger.exception("Result callback raised", callback=getattr(callback, "__qualname__", repr(callback)), error=str(e))


_default_coordinator = DispatchCoordinator()


def get_default_coordinator() -> DispatchCoordinator:
    """The process-wide coordinator shared by bridges that are not given their own."""
    return _default_coordinator
