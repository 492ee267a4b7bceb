"""Accept loop for agent data connections."""

from __future__ import annotations

import logging
import socket
import threading
from typing import Callable

logger = logging.getLogger(__name__)

ConnectionHandler = Callable[[socket.socket, tuple], object]


class ConnectionListener:
    """Accepts TCP connections and hands each one to ``on_connection``."""

    def __init__(
        self,
        on_connection: ConnectionHandler,
        port: int,
        bind_host: str = "",
        poll_timeout: float = 1.0,
        backlog: int = 16,
    ) -> None:
        self.on_connection = on_connection
        self.port = port
        self.bind_host = bind_host
        self.poll_timeout = poll_timeout
        self.backlog = backlog
        self.on_failure: Callable[[], None] | None = None
        self._sock: socket.socket | None = None
        self._thread: threading.Thread | None = None
        self._stopped = threading.Event()

    def start(self) -> None:
        sock = socket.socket(socket.AF_INET, socket.SOCK_STREAM)
        sock.setsockopt(socket.SOL_SOCKET, socket.SO_REUSEADDR, 1)
        sock.bind((self.bind_host, self.port))
        sock.listen(self.backlog)
        sock.settimeout(self.poll_timeout)
        self._sock = sock
        self.port = sock.getsockname()[1]
        self._thread = threading.Thread(
            target=self._run, name="connection-listener", daemon=True
        )
        self._thread.start()
        logger.info("Listening for agents on TCP :%d", self.port)

    def stop(self) -> None:
        self._stopped.set()
        if self._sock:
            self._sock.close()
        if self._thread and self._thread is not threading.current_thread():
            self._thread.join(timeout=2.0)

    def _run(self) -> None:
        while not self._stopped.is_set():
            try:
                conn, address = self._sock.accept()
            except socket.timeout:
                continue
            except OSError:
                if not self._stopped.is_set():
                    logger.exception("Listener failed")
                    if self.on_failure:
                        self.on_failure()
                break

            # Accepted sockets must block regardless of the listener timeout
            conn.settimeout(None)
            try:
                self.on_connection(conn, address)
            except Exception:
                logger.exception("Failed to register connection from %s", address[0])
                conn.close()
