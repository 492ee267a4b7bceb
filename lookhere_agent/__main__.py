"""LookHere agent entry point.

Usage:
    python -m lookhere_agent [--config CONFIG_PATH]
"""

from __future__ import annotations

import argparse
import logging
import signal
import threading
from pathlib import Path

from lookhere_agent.agent import Agent
from lookhere_agent.config import AgentConfig


def main() -> None:
    parser = argparse.ArgumentParser(description="LookHere Agent")
    parser.add_argument(
        "--config", "-c",
        default=None,
        help="Path to config.json (default: ~/.lookhere-agent/config.json)",
    )
    parser.add_argument(
        "--port", "-p",
        type=int,
        default=None,
        help="Discovery and data port (overrides config)",
    )
    parser.add_argument(
        "--name",
        default=None,
        help="Display name shown on the monitor (overrides config)",
    )
    parser.add_argument(
        "--broadcast",
        action="append",
        default=None,
        help="Broadcast address to probe; repeat for several (default: all interfaces)",
    )
    parser.add_argument(
        "--no-capture",
        action="store_true",
        help="Do not grab the screen (headless stations)",
    )
    parser.add_argument(
        "--debug",
        action="store_true",
        help="Enable debug logging",
    )
    args = parser.parse_args()

    level = logging.DEBUG if args.debug else logging.INFO
    logging.basicConfig(
        level=level,
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        datefmt="%H:%M:%S",
    )
    log = logging.getLogger(__name__)

    config_path = args.config
    if config_path is None:
        candidate = Path.home() / ".lookhere-agent" / "config.json"
        if candidate.exists():
            config_path = str(candidate)

    if config_path:
        config = AgentConfig.load(config_path)
        log.info("Loaded config from %s", config_path)
    else:
        config = AgentConfig()

    if args.port is not None:
        config.port = args.port
    if args.name:
        config.display_name = args.name
    if args.broadcast:
        config.broadcast_addresses = args.broadcast
    if args.no_capture:
        config.capture = "none"

    agent = Agent(config)
    stop = threading.Event()

    def _shutdown(sig: int, _frame) -> None:
        log.info("Received signal %d, shutting down", sig)
        stop.set()

    for sig in (signal.SIGINT, signal.SIGTERM):
        signal.signal(sig, _shutdown)

    agent.start()
    try:
        while not stop.wait(1.0):
            pass
    finally:
        agent.stop()


if __name__ == "__main__":
    main()
