"""Agent orchestration.

The beacon thread reports discovery results; connection requests go through
an explicit queue to one connection worker thread, which runs the data link.
Each request carries its own "ended" event so the beacon can tell when the
link it triggered has gone away.
"""

from __future__ import annotations

import logging
import queue
import threading

from lookhere_agent.beacon import DiscoveryBeacon
from lookhere_agent.capture import FrameCapture, create_capture
from lookhere_agent.config import AgentConfig
from lookhere_agent.link import AgentLink
from lookhere_agent.notice import NoticePresenter

logger = logging.getLogger(__name__)

_STOP = object()


class Agent:
    """Runs discovery, heartbeat, and the data link until shut down."""

    def __init__(
        self,
        config: AgentConfig,
        capture: FrameCapture | None = None,
        notices: NoticePresenter | None = None,
    ) -> None:
        self.config = config
        self.capture = capture or create_capture(config)
        self.link = AgentLink(config, self.capture, notices)
        self.beacon = DiscoveryBeacon(
            config,
            on_found=self._on_found,
            on_lost=self._on_lost,
            link_ended=self._link_ended,
        )
        self._requests: queue.Queue = queue.Queue()
        self._attempt: threading.Event | None = None
        self._worker: threading.Thread | None = None
        self._running = False

    def start(self) -> None:
        logger.info("=== LookHere agent (port %d) ===", self.config.port)
        self._running = True
        self._worker = threading.Thread(
            target=self._connection_worker, name="agent-connection", daemon=True
        )
        self._worker.start()
        self.beacon.start()

    def stop(self) -> None:
        """Cancel discovery, the link loops, and the worker."""
        if not self._running:
            return
        logger.info("Shutting down agent...")
        self._running = False
        self.beacon.stop()
        self._end_attempt()
        self._requests.put(_STOP)
        if self._worker:
            self._worker.join(timeout=5.0)
        self.capture.close()

    @property
    def running(self) -> bool:
        return self._running

    # ── Beacon callbacks ───────────────────────────────────────────

    def _on_found(self, server: str) -> None:
        attempt = threading.Event()
        self._attempt = attempt
        self._requests.put((server, attempt))

    def _on_lost(self) -> None:
        logger.info("Monitor lost, abandoning session")
        self._end_attempt()

    def _link_ended(self) -> bool:
        attempt = self._attempt
        return attempt is not None and attempt.is_set()

    def _end_attempt(self) -> None:
        attempt = self._attempt
        if attempt is not None:
            attempt.set()
        self.link.abort()

    # ── Connection worker ──────────────────────────────────────────

    def _connection_worker(self) -> None:
        while True:
            request = self._requests.get()
            if request is _STOP:
                break
            server, attempt = request
            if attempt.is_set():
                continue
            try:
                self.link.run(server, ended=attempt)
            except Exception:
                logger.exception("Data link failed")
            finally:
                attempt.set()
