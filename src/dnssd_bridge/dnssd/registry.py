"""
Session registry: maps opaque browse-session identifiers to the callback
supplied to browse.
"""
import itertools
from collections.abc import Callable
from typing import Any

import structlog

from ..exceptions import InvalidArgumentError, OutOfMemoryError

logger = structlog.get_logger(__name__)


class BrowseSession:
    __slots__ = ("session_id", "callback")

    def __init__(self, session_id: int, callback: Callable[..., Any]):
        self.session_id = session_id
        self.callback = callback


class SessionRegistry:
    """
    Owns every live browse session until stop_browse reclaims it.

    Only the callback is stored, never the context; the backend cancels by
    callback handle. Callers mutate the registry inside the coordinator
    lock's scope.
    """

    def __init__(self) -> None:
        self._sessions: dict[int, BrowseSession] = {}
        self._ids = itertools.count(1) # 0 is never issued

    def create(self, callback: Callable[..., Any]) -> int:
        try:
            session = BrowseSession(next(self._ids), callback)
            self._sessions[session.session_id] = session
        except MemoryError as e:
            logger.error("Failed to allocate browse session")
            raise OutOfMemoryError("Failed to allocate browse session") from e
        logger.debug("Browse session created", session_id=session.session_id)
        return session.session_id

    def reclaim(self, session_id: int) -> Callable[..., Any]:
        """Removes the session and returns its callback.

        Reclaiming an identifier twice is a caller error and surfaces as the
        KeyError of the underlying table.
        """
        if not session_id:
            raise InvalidArgumentError("Browse identifier must be non-zero")
        session = self._sessions.pop(session_id)
        logger.debug("Browse session reclaimed", session_id=session_id)
        return session.callback

    def __contains__(self, session_id: object) -> bool:
        return session_id in self._sessions

    def __len__(self) -> int:
        return len(self._sessions)
