"""Display sinks for the frames of the streaming session.

Sinks are called while the streaming-slot lock is held and must not block.
"""

from __future__ import annotations

import logging
import threading
import time
from abc import ABC, abstractmethod

logger = logging.getLogger(__name__)


class DisplaySink(ABC):
    """Abstract display collaborator."""

    @abstractmethod
    def show(self, frame: bytes) -> None:
        """Present one encoded frame."""

    @abstractmethod
    def clear(self) -> None:
        """Blank the display."""


class NullDisplay(DisplaySink):
    """Discards every frame."""

    def show(self, frame: bytes) -> None:
        pass

    def clear(self) -> None:
        pass


class FrameBuffer(DisplaySink):
    """Keeps only the latest frame so the HTTP API can serve it."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._frame: bytes | None = None
        self._updated_at = 0.0
        self.frames_shown = 0
        self.clears = 0

    def show(self, frame: bytes) -> None:
        with self._lock:
            self._frame = frame
            self._updated_at = time.time()
            self.frames_shown += 1

    def clear(self) -> None:
        with self._lock:
            self._frame = None
            self._updated_at = time.time()
            self.clears += 1
        logger.debug("Display cleared")

    def latest(self) -> bytes | None:
        with self._lock:
            return self._frame

    @property
    def updated_at(self) -> float:
        return self._updated_at
