"""Session manager: admission, removal, and the singleton streaming slot.

Lock order: the manager lock is taken before the registry lock, never the
other way round. The slot, each session's streaming state, and every display
call change together under the manager lock, so no frame from a session can
reach the display after that session has been evicted.
"""

from __future__ import annotations

import logging
import socket
import threading

from lookhere.config import MonitorConfig
from lookhere.errors import (
    CapacityError,
    InvalidNoticeError,
    NoActiveSessionError,
    TransportError,
    UnknownSessionError,
)
from lookhere.monitor.display import DisplaySink, NullDisplay
from lookhere.monitor.notices import NoticeLog, OperatorNotifier
from lookhere.monitor.registry import SessionRegistry
from lookhere.monitor.session import AgentSession
from lookhere.protocol import ControlCommand

logger = logging.getLogger(__name__)


class SessionManager:
    """Owns the registry and the streaming slot; carries out operator commands."""

    def __init__(
        self,
        config: MonitorConfig | None = None,
        display: DisplaySink | None = None,
        notifier: OperatorNotifier | None = None,
    ) -> None:
        self.config = config or MonitorConfig()
        self.display = display or NullDisplay()
        self.notifier = notifier or NoticeLog(self.config.notice_history)
        self.registry = SessionRegistry(self.config.capacity)
        self._lock = threading.RLock()
        self._active: AgentSession | None = None
        self._streaming: AgentSession | None = None

    # ── Admission / removal ────────────────────────────────────────

    def admit(self, conn: socket.socket, address: tuple) -> AgentSession | None:
        """Register a freshly accepted connection and start its loops.

        A full registry closes the connection; no session is created.
        """
        try:
            session = self.registry.admit(conn, address, self._new_session)
        except CapacityError as e:
            logger.warning("%s", e)
            conn.close()
            return None
        session.start()
        logger.info(
            "Agent connected from %s (%d/%d sessions)",
            session.id, len(self.registry), self.registry.capacity,
        )
        return session

    def _new_session(self, conn: socket.socket, address: tuple) -> AgentSession:
        return AgentSession(
            conn,
            address,
            self.config,
            on_frame=self.deliver_frame,
            on_closed=self.remove_session,
        )

    def remove_session(self, session: AgentSession, reason: str = "") -> bool:
        """Tear down ``session`` exactly once.

        Returns False if another caller already removed it.
        """
        with self._lock:
            if not self.registry.remove(session):
                session.close()
                return False
            held_slot = self._streaming is session
            if held_slot:
                self._streaming = None
            if self._active is session:
                self._active = None
            session.close()
            if held_slot:
                self.display.clear()
        logger.info(
            "Removed session %s (%s): %s",
            session.id, session.display_name, reason or "removed",
        )
        return True

    def heartbeat(self, host: str) -> bool:
        """Reset the liveness clock of the session for ``host``, if any."""
        session = self.registry.lookup_by_address(host)
        if session is None:
            return False
        session.reset_heartbeat()
        return True

    # ── Frames ─────────────────────────────────────────────────────

    def deliver_frame(self, session: AgentSession, frame: bytes) -> None:
        """Forward a frame if ``session`` holds the slot; otherwise drop it."""
        with self._lock:
            if self._streaming is not session or not self.registry.contains(session):
                return
            self.display.show(frame)
        logger.debug("Frame of %d bytes from %s", len(frame), session.id)

    # ── Operator commands ──────────────────────────────────────────

    def select(self, session_id: str) -> AgentSession:
        """Make ``session_id`` the active selection and stream from it."""
        with self._lock:
            session = self.registry.get(session_id)
            if session is None:
                raise UnknownSessionError(f"No agent session {session_id!r}")
            self._active = session
            self._stream_from(session)
            return session

    def toggle_stream(self) -> bool:
        """Start or stop streaming from the active selection.

        Returns True when the active session is streaming afterwards.
        """
        with self._lock:
            active = self._require_active()
            if self._streaming is active:
                self._stop_streaming(active)
                return False
            self._stream_from(active)
            return self._streaming is active

    def send_notice(self, text: str) -> None:
        if not text:
            raise InvalidNoticeError("No message!")
        if len(text) >= self.config.notice_max_length:
            raise InvalidNoticeError(
                f"Please keep notices under {self.config.notice_max_length} characters",
                level="info",
            )
        with self._lock:
            active = self._require_active()
            try:
                active.send_control(ControlCommand.notice(text))
            except TransportError as e:
                logger.warning("Notice to %s failed: %s", active.id, e)
                self.remove_session(active, "notice send failed")
                self.notifier.error("Failed to send notice")
                return
        logger.info("Sent notice to %s (%s)", active.id, active.display_name)

    def shutdown(self) -> int:
        """Remove every session. Returns how many were removed."""
        removed = 0
        for session in self.registry.snapshot():
            if self.remove_session(session, "monitor shutdown"):
                removed += 1
        with self._lock:
            self._active = None
            self._streaming = None
        return removed

    # ── Queries ────────────────────────────────────────────────────

    @property
    def active(self) -> AgentSession | None:
        return self._active

    @property
    def streaming(self) -> AgentSession | None:
        return self._streaming

    def list_sessions(self) -> list[dict]:
        with self._lock:
            active, streaming = self._active, self._streaming
        sessions = []
        for session in self.registry.snapshot():
            info = session.to_dict()
            info["active"] = session is active
            info["streaming"] = session is streaming
            sessions.append(info)
        return sessions

    # ── Slot transfer (manager lock held) ──────────────────────────

    def _require_active(self) -> AgentSession:
        if self._active is None or not self.registry.contains(self._active):
            self._active = None
            raise NoActiveSessionError("No active agent selected!")
        return self._active

    def _stream_from(self, chosen: AgentSession) -> None:
        """Move the slot to ``chosen``: STOP every other session, then START."""
        if self._streaming is chosen:
            return

        failed: list[AgentSession] = []
        for session in self.registry.snapshot():
            if session is chosen:
                continue
            try:
                session.send_control(ControlCommand.stop())
            except TransportError as e:
                logger.warning("STOP to %s failed: %s", session.id, e)
                failed.append(session)
            session.set_streaming(False)

        previous = self._streaming
        self._streaming = None
        for session in failed:
            self.remove_session(session, "stop send failed")
        if previous is not None:
            self.display.clear()

        try:
            chosen.send_control(ControlCommand.start())
        except TransportError as e:
            logger.warning("START to %s failed: %s", chosen.id, e)
            self.remove_session(chosen, "start send failed")
            self.notifier.error("Could not start streaming")
            return

        self._streaming = chosen
        chosen.set_streaming(True)
        logger.info("Streaming from %s (%s)", chosen.id, chosen.display_name)

    def _stop_streaming(self, session: AgentSession) -> None:
        self._streaming = None
        session.set_streaming(False)
        self.display.clear()
        try:
            session.send_control(ControlCommand.stop())
        except TransportError as e:
            logger.warning("STOP to %s failed: %s", session.id, e)
            self.remove_session(session, "stop send failed")
            self.notifier.error("Agent disconnected")
            return
        logger.info("Stopped streaming from %s", session.id)
