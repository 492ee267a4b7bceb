"""Discovery and heartbeat responder.

One long-lived UDP responder on the shared port:

  LH_DISCOVER_REQUEST  → reply LH_DISCOVER_RESPONSE
  LH_CHECK_CONNECTION  → reply LH_CONNECTED, reset the sender's liveness clock
  anything else        → logged and ignored

Heartbeats travel outside the data connection so that either side notices
the other vanishing before TCP reports anything.
"""

from __future__ import annotations

import logging
import socket
import threading
from typing import Callable

from lookhere.protocol import (
    CHECK_CONNECTION,
    CONNECTED,
    DISCOVER_REQUEST,
    DISCOVER_RESPONSE,
    decode_token,
    encode_token,
)

logger = logging.getLogger(__name__)

HeartbeatHandler = Callable[[str], bool]


class DiscoveryResponder:
    """Answers discovery requests and heartbeat pings."""

    def __init__(
        self,
        on_heartbeat: HeartbeatHandler,
        port: int,
        bind_host: str = "",
        buffer_size: int = 800,
        poll_timeout: float = 10.0,
    ) -> None:
        self.on_heartbeat = on_heartbeat
        self.port = port
        self.bind_host = bind_host
        self.buffer_size = buffer_size
        self.poll_timeout = poll_timeout
        self._sock: socket.socket | None = None
        self._thread: threading.Thread | None = None
        self._stopped = threading.Event()

    # ── Lifecycle ──────────────────────────────────────────────────

    def start(self) -> None:
        sock = socket.socket(socket.AF_INET, socket.SOCK_DGRAM)
        sock.setsockopt(socket.SOL_SOCKET, socket.SO_REUSEADDR, 1)
        sock.setsockopt(socket.SOL_SOCKET, socket.SO_BROADCAST, 1)
        sock.bind((self.bind_host, self.port))
        sock.settimeout(self.poll_timeout)
        self._sock = sock
        self.port = sock.getsockname()[1]
        self._thread = threading.Thread(
            target=self._run, name="discovery-responder", daemon=True
        )
        self._thread.start()
        logger.info("Discovery responder listening on UDP :%d", self.port)

    def stop(self) -> None:
        self._stopped.set()
        if self._sock:
            # Wakes a recvfrom already blocked on this socket
            try:
                self._sock.shutdown(socket.SHUT_RDWR)
            except OSError:
                pass
        if self._thread and self._thread is not threading.current_thread():
            self._thread.join(timeout=2.0)
        if self._sock:
            self._sock.close()
        logger.info("Discovery responder stopped")

    # ── Protocol ───────────────────────────────────────────────────

    def handle_datagram(self, data: bytes, address: tuple) -> bytes | None:
        """Return the reply for one datagram, or None to stay silent."""
        message = decode_token(data)
        host = address[0]

        if message == DISCOVER_REQUEST:
            logger.info("Discovery request from %s", host)
            return encode_token(DISCOVER_RESPONSE)

        if message == CHECK_CONNECTION:
            if not self.on_heartbeat(host):
                logger.debug("Heartbeat from %s matches no session", host)
            return encode_token(CONNECTED)

        logger.info("Ignoring unrecognised datagram %r from %s", message[:40], host)
        return None

    def _run(self) -> None:
        while not self._stopped.is_set():
            try:
                data, address = self._sock.recvfrom(self.buffer_size)
            except socket.timeout:
                continue
            except OSError:
                if not self._stopped.is_set():
                    logger.exception("Discovery socket failed")
                break

            if self._stopped.is_set():
                break

            try:
                reply = self.handle_datagram(data, address)
                if reply is not None:
                    self._sock.sendto(reply, address)
            except OSError as e:
                logger.warning("Reply to %s failed: %s", address[0], e)
            except Exception:
                logger.exception("Error handling datagram from %s", address[0])
