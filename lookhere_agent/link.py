"""Agent data link: one TCP connection to the monitor.

After connecting, the agent sends its display name as one framed message.
Two loops then share the connection:

  control reader: raw LH_START / LH_STOP / LH_SENDMSG writes from the monitor
  capture sender: while streaming, one framed capture per interval

Either loop failing ends the link; the beacon then restarts discovery.
"""

from __future__ import annotations

import logging
import socket
import threading

from lookhere.errors import ProtocolError, TransportError
from lookhere.framing import Framer
from lookhere.protocol import CommandKind, ControlCommand, parse_control
from lookhere_agent.capture import FrameCapture
from lookhere_agent.config import AgentConfig
from lookhere_agent.notice import LogNoticePresenter, NoticePresenter

logger = logging.getLogger(__name__)


class AgentLink:
    """Owns the data connection and its two loops."""

    def __init__(
        self,
        config: AgentConfig,
        capture: FrameCapture,
        notices: NoticePresenter | None = None,
    ) -> None:
        self.config = config
        self.capture = capture
        self.notices = notices or LogNoticePresenter()
        self.framer = Framer(config.header_size)
        self.frames_sent = 0
        self._sock: socket.socket | None = None
        self._lock = threading.Lock()
        self._streaming = threading.Event()
        self._closed = threading.Event()

    @property
    def streaming(self) -> bool:
        return self._streaming.is_set()

    @property
    def connected(self) -> bool:
        return self._sock is not None and not self._closed.is_set()

    # ── Session ────────────────────────────────────────────────────

    def run(self, server: str, ended: threading.Event | None = None) -> None:
        """Connect to ``server`` and stream until the link ends.

        ``ended`` is the caller's cancellation for this attempt; once set,
        no connection is made and an open one is torn down. Blocks the
        calling thread. Never raises for network failures.
        """
        self._closed.clear()
        self._streaming.clear()
        if ended is not None and ended.is_set():
            logger.info("Connection to %s abandoned before connecting", server)
            return
        logger.info("Connecting to %s:%d", server, self.config.port)
        try:
            sock = socket.create_connection(
                (server, self.config.port), timeout=self.config.connect_timeout
            )
        except OSError as e:
            logger.warning("Could not connect to %s: %s", server, e)
            return
        sock.settimeout(None)

        with self._lock:
            self._sock = sock
            aborted = self._closed.is_set() or (ended is not None and ended.is_set())
        if aborted:
            self._teardown(sock)
            return

        reader = threading.Thread(
            target=self._read_loop, args=(sock,), name="link-control", daemon=True
        )
        try:
            name = self.config.resolve_name()
            self.framer.send(sock, name.encode("utf-8"))
            logger.info("Connected to %s as %r", server, name)
            reader.start()
            self._send_loop(sock)
        except TransportError as e:
            if not self._closed.is_set():
                logger.info("Monitor disconnected: %s", e)
        except Exception:
            logger.exception("Capture loop failed")
        finally:
            self._teardown(sock)
            if reader.is_alive():
                reader.join(timeout=2.0)
            logger.info("Stopped connection to %s", server)

    def abort(self) -> None:
        """End the current link from another thread."""
        with self._lock:
            self._closed.set()
            sock = self._sock
        if sock is not None:
            try:
                sock.shutdown(socket.SHUT_RDWR)
            except OSError:
                pass

    def _teardown(self, sock: socket.socket) -> None:
        self._closed.set()
        self._streaming.clear()
        with self._lock:
            if self._sock is sock:
                self._sock = None
        try:
            sock.shutdown(socket.SHUT_RDWR)
        except OSError:
            pass
        sock.close()

    # ── Capture sender ─────────────────────────────────────────────

    def _send_loop(self, sock: socket.socket) -> None:
        while not self._closed.is_set():
            if self._streaming.is_set():
                self._send_frame(sock)
            self._closed.wait(self.config.capture_interval)

    def _send_frame(self, sock: socket.socket) -> None:
        try:
            frame = self.capture.capture()
        except Exception:
            logger.exception("Screen capture failed")
            return
        if not frame:
            return
        self.framer.send(sock, frame)
        self.frames_sent += 1
        logger.debug("Sent frame of %d bytes", len(frame))

    # ── Control reader ─────────────────────────────────────────────

    def _read_loop(self, sock: socket.socket) -> None:
        try:
            while not self._closed.is_set():
                try:
                    data = sock.recv(self.config.control_read_size)
                except OSError as e:
                    raise TransportError(f"Control read failed: {e}") from e
                if not data:
                    raise TransportError("Monitor closed the connection")
                try:
                    commands = parse_control(data)
                except ProtocolError as e:
                    logger.debug("Ignoring control data: %s", e)
                    continue
                for command in commands:
                    self.apply(command)
        except TransportError as e:
            if not self._closed.is_set():
                logger.info("%s", e)
        finally:
            self.abort()

    def apply(self, command: ControlCommand) -> None:
        if command.kind is CommandKind.START:
            logger.info("Monitor requested streaming")
            self._streaming.set()
        elif command.kind is CommandKind.STOP:
            logger.info("Monitor stopped streaming")
            self._streaming.clear()
        elif command.kind is CommandKind.NOTICE:
            try:
                self.notices.show(command.text)
            except Exception:
                logger.exception("Could not show notice")
