"""Monitor-side agent session.

One :class:`AgentSession` per accepted data connection. Each session runs two
threads:

  reader: reads the handshake name, then frames, until the connection ends
  watchdog: evicts the session when heartbeats stop arriving

States: HANDSHAKING → IDLE ⇄ STREAMING → DISCONNECTED
"""

from __future__ import annotations

import enum
import logging
import socket
import threading
import time
from dataclasses import dataclass
from typing import Callable

from lookhere.config import MonitorConfig
from lookhere.errors import TransportError
from lookhere.framing import Framer
from lookhere.protocol import ControlCommand, trim

logger = logging.getLogger(__name__)


class SessionState(enum.Enum):
    HANDSHAKING = "handshaking"
    IDLE = "idle"
    STREAMING = "streaming"
    DISCONNECTED = "disconnected"


@dataclass
class AgentIdentity:
    """Peer address plus the display name sent at handshake."""

    host: str
    port: int
    display_name: str = ""

    def __post_init__(self) -> None:
        if not self.display_name:
            self.display_name = self.host


FrameHandler = Callable[["AgentSession", bytes], None]
SessionHandler = Callable[["AgentSession", str], None]


class AgentSession:
    """Owns the data connection to one agent."""

    def __init__(
        self,
        conn: socket.socket,
        address: tuple,
        config: MonitorConfig,
        on_frame: FrameHandler,
        on_closed: SessionHandler,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.conn = conn
        self.identity = AgentIdentity(host=address[0], port=address[1])
        self.id = f"{address[0]}:{address[1]}"
        self.config = config
        self.framer = Framer(config.header_size, config.max_frame_size)
        self.connected_at = time.time()

        self._on_frame = on_frame
        self._on_closed = on_closed
        self._clock = clock
        self._last_heartbeat = clock()
        self._state = SessionState.HANDSHAKING
        self._state_lock = threading.Lock()
        self._send_lock = threading.Lock()
        self._closed = threading.Event()
        self._reader: threading.Thread | None = None
        self._watchdog: threading.Thread | None = None

    # ── Lifecycle ──────────────────────────────────────────────────

    def start(self) -> None:
        self._reader = threading.Thread(
            target=self._read_loop, name=f"session-read-{self.id}", daemon=True
        )
        self._watchdog = threading.Thread(
            target=self._watch, name=f"session-watchdog-{self.id}", daemon=True
        )
        self._reader.start()
        self._watchdog.start()

    def close(self) -> None:
        """Cancel both loops and close the connection. Idempotent."""
        if self._closed.is_set():
            return
        self._closed.set()
        with self._state_lock:
            self._state = SessionState.DISCONNECTED
        try:
            self.conn.shutdown(socket.SHUT_RDWR)
        except OSError:
            pass
        self.conn.close()

    @property
    def closed(self) -> bool:
        return self._closed.is_set()

    # ── State ──────────────────────────────────────────────────────

    @property
    def host(self) -> str:
        return self.identity.host

    @property
    def display_name(self) -> str:
        return self.identity.display_name

    @property
    def state(self) -> SessionState:
        return self._state

    def set_streaming(self, streaming: bool) -> None:
        """Called by the session manager as the streaming slot moves."""
        with self._state_lock:
            if self._state is SessionState.DISCONNECTED:
                return
            if streaming:
                self._state = SessionState.STREAMING
            elif self._state is SessionState.STREAMING:
                self._state = SessionState.IDLE

    def reset_heartbeat(self) -> None:
        self._last_heartbeat = self._clock()

    def heartbeat_age(self) -> float:
        """Seconds since the last heartbeat."""
        return self._clock() - self._last_heartbeat

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "host": self.identity.host,
            "port": self.identity.port,
            "display_name": self.identity.display_name,
            "state": self._state.value,
            "connected_at": self.connected_at,
            "heartbeat_age": round(self.heartbeat_age(), 3),
        }

    # ── Control ────────────────────────────────────────────────────

    def send_control(self, command: ControlCommand) -> None:
        """Write one raw control token. Raises TransportError on failure."""
        if self.closed:
            raise TransportError(f"Session {self.id} is closed")
        try:
            with self._send_lock:
                self.conn.sendall(command.encode())
        except OSError as e:
            raise TransportError(f"Send to {self.id} failed: {e}") from e
        logger.debug("Sent %s to %s", command.kind.value, self.id)

    # ── Reader ─────────────────────────────────────────────────────

    def _read_loop(self) -> None:
        reason = "connection closed"
        try:
            self._handshake()
            while not self.closed:
                frame = self.framer.receive(self.conn)
                if frame is None or self.closed:
                    continue
                self._on_frame(self, frame)
        except TransportError as e:
            reason = str(e)
        except Exception:
            logger.exception("Reader for %s failed", self.id)
            reason = "reader error"
        if not self.closed:
            logger.info("Session %s (%s) ended: %s", self.id, self.display_name, reason)
        self._on_closed(self, reason)

    def _handshake(self) -> None:
        """Read frames until one carries a non-empty display name."""
        while not self.closed:
            payload = self.framer.receive(self.conn)
            if payload is None:
                continue
            name = trim(payload.decode("utf-8", errors="replace"))
            if not name:
                continue
            self.identity.display_name = name
            with self._state_lock:
                if self._state is SessionState.HANDSHAKING:
                    self._state = SessionState.IDLE
            logger.info("Agent %s identified as %r", self.id, name)
            return

    # ── Watchdog ───────────────────────────────────────────────────

    def _watch(self) -> None:
        if self._closed.wait(self.config.watchdog_grace):
            return
        while not self._closed.wait(self.config.watchdog_interval):
            age = self.heartbeat_age()
            if age > self.config.eviction_threshold:
                logger.info(
                    "Agent %s (%s) silent for %.1fs, evicting",
                    self.id, self.display_name, age,
                )
                self._on_closed(self, "heartbeat timeout")
                return
