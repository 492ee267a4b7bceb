"""Discovery beacon: finds the monitor and keeps checking it is alive.

Loop (iterative, cancellable every pass):
  1. Broadcast LH_DISCOVER_REQUEST on every interface, wait for
     LH_DISCOVER_RESPONSE. No answer within the timeout → go again.
  2. Report the responder's address (``on_found``).
  3. Every heartbeat interval send LH_CHECK_CONNECTION and require
     LH_CONNECTED within the timeout.
  4. A missed reply, or the data link ending, means the monitor is lost:
     report it (``on_lost``) and start over at step 1.
"""

from __future__ import annotations

import ipaddress
import logging
import socket
import threading
import time
from typing import Callable

import psutil

from lookhere.protocol import (
    CHECK_CONNECTION,
    CONNECTED,
    DISCOVER_REQUEST,
    DISCOVER_RESPONSE,
    decode_token,
    encode_token,
)
from lookhere_agent.config import AgentConfig

logger = logging.getLogger(__name__)


def broadcast_addresses() -> list[str]:
    """IPv4 broadcast addresses of every up, non-loopback interface."""
    stats = psutil.net_if_stats()
    addresses: list[str] = []
    for name, addrs in psutil.net_if_addrs().items():
        if name in stats and not stats[name].isup:
            continue
        for addr in addrs:
            if addr.family != socket.AF_INET or not addr.broadcast:
                continue
            if ipaddress.ip_address(addr.address).is_loopback:
                continue
            if addr.broadcast not in addresses:
                addresses.append(addr.broadcast)
    return addresses


class DiscoveryBeacon:
    """Runs the discovery and heartbeat loop on its own thread."""

    def __init__(
        self,
        config: AgentConfig,
        on_found: Callable[[str], None],
        on_lost: Callable[[], None],
        link_ended: Callable[[], bool] = lambda: False,
    ) -> None:
        self.config = config
        self.on_found = on_found
        self.on_lost = on_lost
        self.link_ended = link_ended
        self.server: str | None = None
        self._sock: socket.socket | None = None
        self._thread: threading.Thread | None = None
        self._cancelled = threading.Event()

    # ── Lifecycle ──────────────────────────────────────────────────

    def start(self) -> None:
        sock = socket.socket(socket.AF_INET, socket.SOCK_DGRAM)
        sock.setsockopt(socket.SOL_SOCKET, socket.SO_BROADCAST, 1)
        sock.settimeout(self.config.discovery_timeout)
        self._sock = sock
        self._thread = threading.Thread(
            target=self.run, name="discovery-beacon", daemon=True
        )
        self._thread.start()

    def stop(self) -> None:
        self._cancelled.set()
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

    @property
    def cancelled(self) -> bool:
        return self._cancelled.is_set()

    # ── Loop ───────────────────────────────────────────────────────

    def run(self) -> None:
        while not self.cancelled:
            try:
                server = self.discover()
            except OSError:
                if self.cancelled:
                    break
                logger.exception("Discovery socket failed")
                self._cancelled.wait(self.config.heartbeat_interval)
                continue
            if server is None:
                continue
            if self.cancelled:
                break

            self.server = server
            logger.info("Found monitor at %s", server)
            self.on_found(server)
            self._watch(server)
            self.server = None
            if self.cancelled:
                break
            self.on_lost()
            logger.info("Restarting discovery")

    def discover(self) -> str | None:
        """Broadcast one request; return the responder's address or None."""
        self._send_requests()
        logger.debug("Waiting for discovery reply")
        deadline = time.monotonic() + self.config.discovery_timeout
        address = self._await(DISCOVER_RESPONSE, deadline)
        if address is None and not self.cancelled:
            logger.info("No discovery reply, monitor not found")
        return address

    def check_connection(self, server: str) -> bool:
        """One heartbeat round trip against ``server``."""
        try:
            self._sock.sendto(encode_token(CHECK_CONNECTION), (server, self.config.port))
            deadline = time.monotonic() + self.config.discovery_timeout
            return self._await(CONNECTED, deadline, expect_from=server) is not None
        except OSError as e:
            if not self.cancelled:
                logger.warning("Heartbeat to %s failed: %s", server, e)
            return False

    def _watch(self, server: str) -> None:
        while not self.cancelled:
            if self.link_ended():
                logger.info("Data connection ended")
                return
            if not self.check_connection(server):
                if not self.cancelled:
                    logger.info("Heartbeat reply not received, monitor lost")
                return
            self._cancelled.wait(self.config.heartbeat_interval)

    def _send_requests(self) -> None:
        targets = self.config.broadcast_addresses or broadcast_addresses()
        if not targets:
            logger.warning("No broadcast-capable interface found")
        payload = encode_token(DISCOVER_REQUEST)
        for target in targets:
            try:
                self._sock.sendto(payload, (target, self.config.port))
                logger.debug("Sent discovery request to %s", target)
            except OSError as e:
                logger.warning("Could not send discovery request to %s: %s", target, e)

    def _await(
        self,
        token: str,
        deadline: float,
        expect_from: str | None = None,
    ) -> str | None:
        """Wait for ``token`` until ``deadline``; other datagrams are skipped."""
        while not self.cancelled:
            remaining = deadline - time.monotonic()
            if remaining <= 0:
                return None
            self._sock.settimeout(remaining)
            try:
                data, address = self._sock.recvfrom(self.config.datagram_buffer)
            except socket.timeout:
                return None
            if self.cancelled:
                return None
            message = decode_token(data)
            if message == token and (expect_from is None or address[0] == expect_from):
                return address[0]
            logger.debug("Skipping datagram %r from %s", message[:40], address[0])
        return None
