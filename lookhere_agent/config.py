"""Configuration for the LookHere agent."""

from __future__ import annotations

import getpass
import json
import logging
from dataclasses import asdict, dataclass, field
from pathlib import Path

from lookhere.framing import HEADER_SIZE
from lookhere.protocol import DEFAULT_PORT

logger = logging.getLogger(__name__)


@dataclass
class AgentConfig:
    """Agent configuration: loaded from config.json."""

    port: int = DEFAULT_PORT
    display_name: str = ""

    # Timing (seconds)
    discovery_timeout: float = 10.0
    heartbeat_interval: float = 0.5
    capture_interval: float = 0.1
    connect_timeout: float = 10.0

    # Wire
    header_size: int = HEADER_SIZE
    control_read_size: int = 1024
    datagram_buffer: int = 15000

    # Empty: every broadcast address of every non-loopback interface
    broadcast_addresses: list[str] = field(default_factory=list)

    # Capture
    capture: str = "screen"  # screen | none
    jpeg_quality: int = 80

    @classmethod
    def load(cls, path: str | Path) -> AgentConfig:
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

    def resolve_name(self) -> str:
        """Display name sent at handshake."""
        if self.display_name:
            return self.display_name
        try:
            return getpass.getuser()
        except Exception:
            logger.warning("Could not determine login name")
            return "unknown"
