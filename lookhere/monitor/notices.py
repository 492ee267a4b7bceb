"""Operator-facing info and error notices.

The network core has no user-facing error surface of its own; failures reach
the operator through an :class:`OperatorNotifier`.
"""

from __future__ import annotations

import logging
import threading
import time
from abc import ABC, abstractmethod
from collections import deque

logger = logging.getLogger(__name__)


class OperatorNotifier(ABC):
    """Receives operator notices from the monitor."""

    @abstractmethod
    def info(self, message: str) -> None:
        """Report an informative message."""

    @abstractmethod
    def error(self, message: str) -> None:
        """Report an error."""

    def notify(self, level: str, message: str) -> None:
        if level == "info":
            self.info(message)
        else:
            self.error(message)


class NoticeLog(OperatorNotifier):
    """Logs every notice and keeps a bounded history for the HTTP API."""

    def __init__(self, maxlen: int = 50) -> None:
        self._history: deque[dict] = deque(maxlen=maxlen)
        self._lock = threading.Lock()

    def info(self, message: str) -> None:
        logger.info("Operator notice: %s", message)
        self._append("info", message)

    def error(self, message: str) -> None:
        logger.warning("Operator error: %s", message)
        self._append("error", message)

    def _append(self, level: str, message: str) -> None:
        with self._lock:
            self._history.append({
                "level": level,
                "message": message,
                "time": time.time(),
            })

    def recent(self) -> list[dict]:
        with self._lock:
            return list(self._history)
