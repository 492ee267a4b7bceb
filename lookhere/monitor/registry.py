"""Session registry: the bounded set of live agent sessions.

Every operation is atomic under one lock. Admission is a single
check-and-insert: a connection arriving when the registry is full never
gets a session object.
"""

from __future__ import annotations

import logging
import socket
import threading
from typing import TYPE_CHECKING, Callable

from lookhere.errors import CapacityError

if TYPE_CHECKING:
    from lookhere.monitor.session import AgentSession

logger = logging.getLogger(__name__)

SessionFactory = Callable[[socket.socket, tuple], "AgentSession"]


class SessionRegistry:
    """Sessions keyed by connection id, in admission order."""

    def __init__(self, capacity: int = 100) -> None:
        self.capacity = capacity
        self._sessions: dict[str, AgentSession] = {}
        self._lock = threading.Lock()

    def admit(
        self,
        conn: socket.socket,
        address: tuple,
        factory: SessionFactory,
    ) -> AgentSession:
        """Create and register a session for ``conn`` if there is room.

        Raises :class:`CapacityError` when full; ``factory`` is not called.
        """
        with self._lock:
            if len(self._sessions) >= self.capacity:
                raise CapacityError(
                    f"Registry full ({self.capacity} sessions), "
                    f"refusing {address[0]}:{address[1]}"
                )
            session = factory(conn, address)
            self._sessions[session.id] = session
            return session

    def remove(self, session: AgentSession) -> bool:
        """Unregister ``session``. Returns False if it was already gone."""
        with self._lock:
            if self._sessions.get(session.id) is not session:
                return False
            del self._sessions[session.id]
            return True

    def get(self, session_id: str) -> AgentSession | None:
        with self._lock:
            return self._sessions.get(session_id)

    def lookup_by_address(self, host: str) -> AgentSession | None:
        """Most recently admitted session whose peer host is ``host``."""
        with self._lock:
            for session in reversed(self._sessions.values()):
                if session.host == host:
                    return session
        return None

    def contains(self, session: AgentSession) -> bool:
        with self._lock:
            return self._sessions.get(session.id) is session

    def snapshot(self) -> list[AgentSession]:
        """Copy of the current sessions, safe to iterate while others mutate."""
        with self._lock:
            return list(self._sessions.values())

    def __len__(self) -> int:
        with self._lock:
            return len(self._sessions)
