"""Monitor side of LookHere: responder, listener, sessions, and dispatch."""

from __future__ import annotations

import logging
import threading

from lookhere.config import MonitorConfig
from lookhere.monitor.commands import CommandDispatcher
from lookhere.monitor.discovery import DiscoveryResponder
from lookhere.monitor.display import DisplaySink, FrameBuffer
from lookhere.monitor.listener import ConnectionListener
from lookhere.monitor.manager import SessionManager
from lookhere.monitor.notices import NoticeLog, OperatorNotifier

logger = logging.getLogger(__name__)


class Monitor:
    """Wires the monitor components together and owns their lifecycle."""

    def __init__(
        self,
        config: MonitorConfig | None = None,
        display: DisplaySink | None = None,
        notifier: OperatorNotifier | None = None,
    ) -> None:
        self.config = config or MonitorConfig()
        self.display = display or FrameBuffer()
        self.notifier = notifier or NoticeLog(self.config.notice_history)
        self.manager = SessionManager(self.config, self.display, self.notifier)
        self.dispatcher = CommandDispatcher(self.manager, on_shutdown=self._stop_network)
        self.listener = ConnectionListener(
            self.manager.admit,
            port=self.config.port,
            bind_host=self.config.bind_host,
            poll_timeout=self.config.accept_poll,
        )
        self.listener.on_failure = self._on_listener_failure
        self.responder: DiscoveryResponder | None = None
        self._network_lock = threading.Lock()
        self._running = False

    def start(self) -> None:
        self.config.check()
        self.dispatcher.start()
        self.listener.start()
        # UDP shares the TCP port number (resolved when the config asks for 0)
        self.responder = DiscoveryResponder(
            self.manager.heartbeat,
            port=self.listener.port,
            bind_host=self.config.bind_host,
            buffer_size=self.config.datagram_buffer,
            poll_timeout=self.config.receive_timeout,
        )
        self.responder.start()
        self._running = True
        self.notifier.info("Monitor started")
        logger.info("Monitor running on port %d", self.port)

    def stop(self) -> None:
        self.manager.shutdown()
        self._stop_network()
        self.dispatcher.stop()
        logger.info("Monitor stopped")

    @property
    def port(self) -> int:
        return self.listener.port

    @property
    def running(self) -> bool:
        return self._running

    def _stop_network(self) -> None:
        with self._network_lock:
            if not self._running:
                return
            self._running = False
        self.listener.stop()
        if self.responder:
            self.responder.stop()
        self.notifier.info("Monitor stopping")

    def _on_listener_failure(self) -> None:
        self.notifier.error("Monitor suddenly stopped accepting agents")


__all__ = ["Monitor"]
