"""Configuration for the LookHere monitor."""

from __future__ import annotations

import json
import logging
from dataclasses import asdict, dataclass
from pathlib import Path

from lookhere.framing import HEADER_SIZE
from lookhere.protocol import DEFAULT_PORT

logger = logging.getLogger(__name__)


@dataclass
class MonitorConfig:
    """Monitor configuration: loaded from config.json."""

    # Shared by the discovery/heartbeat responder (UDP) and the listener (TCP)
    port: int = DEFAULT_PORT
    bind_host: str = ""
    capacity: int = 100

    # Timing (seconds)
    receive_timeout: float = 10.0
    watchdog_interval: float = 0.1
    watchdog_grace: float = 1.0
    eviction_threshold: float = 11.0
    accept_poll: float = 1.0

    # Wire
    header_size: int = HEADER_SIZE
    # Larger length headers are treated as unparsable; 0 disables the limit
    max_frame_size: int = 64 * 1024 * 1024
    datagram_buffer: int = 800

    # Operator
    notice_max_length: int = 200
    notice_history: int = 50

    # HTTP operator surface
    api_host: str = "0.0.0.0"
    api_port: int = 5200

    @classmethod
    def load(cls, path: str | Path) -> MonitorConfig:
        path = Path(path)
        if path.exists():
            with open(path) as f:
                data = json.load(f)
            known = {k for k in cls.__dataclass_fields__}
            filtered = {k: v for k, v in data.items() if k in known}
            return cls(**filtered)
        logger.warning("Config not found at %s, using defaults", path)
        return cls()

    def save(self, path: str | Path) -> None:
        path = Path(path)
        path.parent.mkdir(parents=True, exist_ok=True)
        with open(path, "w") as f:
            json.dump(asdict(self), f, indent=2)

    def check(self) -> None:
        """Log timing combinations that risk evicting healthy agents."""
        if self.eviction_threshold <= self.watchdog_interval:
            logger.warning(
                "eviction_threshold (%.2fs) should be far larger than "
                "watchdog_interval (%.2fs)",
                self.eviction_threshold, self.watchdog_interval,
            )
        if self.eviction_threshold < self.receive_timeout:
            logger.warning(
                "eviction_threshold (%.2fs) is below the heartbeat receive "
                "timeout (%.2fs); slow agents may be evicted",
                self.eviction_threshold, self.receive_timeout,
            )
