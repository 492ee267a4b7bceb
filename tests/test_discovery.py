"""Tests for the monitor's discovery and heartbeat responder."""

from __future__ import annotations

import socket
import time
from unittest.mock import MagicMock

import pytest

from lookhere.monitor.discovery import DiscoveryResponder

ADDR = ("192.168.1.20", 40123)


@pytest.fixture()
def on_heartbeat():
    return MagicMock(return_value=True)


@pytest.fixture()
def responder(on_heartbeat):
    return DiscoveryResponder(on_heartbeat, port=0)


class TestHandleDatagram:
    def test_discover_request(self, responder, on_heartbeat):
        assert responder.handle_datagram(b"LH_DISCOVER_REQUEST", ADDR) == b"LH_DISCOVER_RESPONSE"
        on_heartbeat.assert_not_called()

    def test_request_with_buffer_padding(self, responder):
        data = b"LH_DISCOVER_REQUEST".ljust(800, b"\x00")
        assert responder.handle_datagram(data, ADDR) == b"LH_DISCOVER_RESPONSE"

    def test_check_connection_resets_sender(self, responder, on_heartbeat):
        assert responder.handle_datagram(b"LH_CHECK_CONNECTION", ADDR) == b"LH_CONNECTED"
        on_heartbeat.assert_called_once_with("192.168.1.20")

    def test_check_from_unknown_sender_still_answered(self, responder, on_heartbeat):
        on_heartbeat.return_value = False
        assert responder.handle_datagram(b"LH_CHECK_CONNECTION", ADDR) == b"LH_CONNECTED"

    @pytest.mark.parametrize("data", [
        b"",
        b"hello",
        b"LH_DISCOVER_RESPONSE",
        b"LH_CONNECTED",
        b"LH_DISCOVER_REQUESTX",
        b"\xff\xfe\x00garbage",
    ])
    def test_unrecognised_tokens_ignored(self, responder, on_heartbeat, data):
        assert responder.handle_datagram(data, ADDR) is None
        on_heartbeat.assert_not_called()

    def test_mixed_sequence(self, responder, on_heartbeat):
        sequence = [
            b"LH_DISCOVER_REQUEST",
            b"noise",
            b"LH_CHECK_CONNECTION",
            b"LH_DISCOVER_REQUEST",
            b"LH_STOP",
        ]
        replies = [responder.handle_datagram(d, ADDR) for d in sequence]
        assert replies == [
            b"LH_DISCOVER_RESPONSE",
            None,
            b"LH_CONNECTED",
            b"LH_DISCOVER_RESPONSE",
            None,
        ]
        assert on_heartbeat.call_count == 1


class TestResponderOverUDP:
    def test_replies_on_loopback(self, on_heartbeat):
        responder = DiscoveryResponder(
            on_heartbeat, port=0, bind_host="127.0.0.1", poll_timeout=0.2
        )
        responder.start()
        client = socket.socket(socket.AF_INET, socket.SOCK_DGRAM)
        client.settimeout(2.0)
        try:
            client.sendto(b"LH_DISCOVER_REQUEST", ("127.0.0.1", responder.port))
            data, addr = client.recvfrom(1024)
            assert data == b"LH_DISCOVER_RESPONSE"
            assert addr[1] == responder.port

            client.sendto(b"LH_CHECK_CONNECTION", ("127.0.0.1", responder.port))
            data, _ = client.recvfrom(1024)
            assert data == b"LH_CONNECTED"
            on_heartbeat.assert_called_once_with("127.0.0.1")
        finally:
            client.close()
            responder.stop()

    def test_stop_ends_thread(self, on_heartbeat):
        responder = DiscoveryResponder(
            on_heartbeat, port=0, bind_host="127.0.0.1", poll_timeout=0.05
        )
        responder.start()
        responder.stop()
        assert not responder._thread.is_alive()

    def test_stop_wakes_blocked_receive(self, on_heartbeat):
        responder = DiscoveryResponder(
            on_heartbeat, port=0, bind_host="127.0.0.1", poll_timeout=10.0
        )
        responder.start()
        # Let the thread settle into its receive
        time.sleep(0.1)
        started = time.monotonic()
        responder.stop()
        assert time.monotonic() - started < 1.0
        assert not responder._thread.is_alive()

    def test_no_reply_after_stop(self, on_heartbeat):
        responder = DiscoveryResponder(
            on_heartbeat, port=0, bind_host="127.0.0.1", poll_timeout=10.0
        )
        responder.start()
        port = responder.port
        responder.stop()
        client = socket.socket(socket.AF_INET, socket.SOCK_DGRAM)
        client.settimeout(0.3)
        try:
            client.sendto(b"LH_CHECK_CONNECTION", ("127.0.0.1", port))
            with pytest.raises(OSError):
                client.recvfrom(1024)
        finally:
            client.close()
        on_heartbeat.assert_not_called()
