"""Frame capture providers.

The network core treats every frame as an opaque encoded buffer.
"""

from __future__ import annotations

import io
import itertools
import logging
from abc import ABC, abstractmethod
from typing import Iterable

from lookhere_agent.config import AgentConfig

logger = logging.getLogger(__name__)


class FrameCapture(ABC):
    """Abstract capture provider."""

    @abstractmethod
    def capture(self) -> bytes:
        """Grab and encode one frame."""

    def close(self) -> None:
        """Release capture resources."""


class ScreenCapture(FrameCapture):
    """Full-screen grab via Pillow, encoded as JPEG."""

    def __init__(self, quality: int = 80) -> None:
        self.quality = quality

    def capture(self) -> bytes:
        from PIL import ImageGrab

        image = ImageGrab.grab()
        if image.mode != "RGB":
            image = image.convert("RGB")
        buf = io.BytesIO()
        image.save(buf, format="JPEG", quality=self.quality)
        return buf.getvalue()


class StaticCapture(FrameCapture):
    """Cycles through fixed buffers. Used for headless stations and demos."""

    def __init__(self, frames: Iterable[bytes] = (b"",)) -> None:
        self._frames = itertools.cycle(list(frames))

    def capture(self) -> bytes:
        return next(self._frames)


def create_capture(config: AgentConfig) -> FrameCapture:
    """Factory: build the capture provider named in the config."""
    if config.capture == "screen":
        return ScreenCapture(quality=config.jpeg_quality)
    if config.capture != "none":
        logger.warning("Unknown capture type %r, capturing nothing", config.capture)
    return StaticCapture()
