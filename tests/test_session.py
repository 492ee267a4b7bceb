"""Tests for the monitor-side agent session: handshake, frames, watchdog."""

from __future__ import annotations

import socket

import pytest

from lookhere.config import MonitorConfig
from lookhere.framing import HEADER_SIZE, Framer
from lookhere.monitor.session import AgentIdentity, AgentSession, SessionState
from lookhere.protocol import ControlCommand


class FakeClock:
    def __init__(self) -> None:
        self.now = 1000.0

    def __call__(self) -> float:
        return self.now


class Recorder:
    def __init__(self) -> None:
        self.frames: list[bytes] = []
        self.closed: list[str] = []

    def on_frame(self, session, frame: bytes) -> None:
        self.frames.append(frame)

    def on_closed(self, session, reason: str) -> None:
        self.closed.append(reason)


@pytest.fixture()
def pair():
    monitor_end, agent_end = socket.socketpair()
    agent_end.settimeout(2.0)
    yield monitor_end, agent_end
    agent_end.close()


@pytest.fixture()
def recorder():
    return Recorder()


def _session(conn, recorder, config=None, clock=None) -> AgentSession:
    kwargs = {"clock": clock} if clock else {}
    return AgentSession(
        conn,
        ("10.0.0.7", 5000),
        config or MonitorConfig(),
        on_frame=recorder.on_frame,
        on_closed=recorder.on_closed,
        **kwargs,
    )


class TestIdentity:
    def test_display_name_defaults_to_address(self):
        assert AgentIdentity("10.0.0.7", 5000).display_name == "10.0.0.7"

    def test_new_session(self, pair, recorder):
        session = _session(pair[0], recorder)
        assert session.id == "10.0.0.7:5000"
        assert session.state is SessionState.HANDSHAKING
        assert session.display_name == "10.0.0.7"
        session.close()


class TestHandshake:
    def test_name_then_idle(self, pair, recorder, wait_until):
        monitor_end, agent_end = pair
        session = _session(monitor_end, recorder)
        session.start()
        Framer().send(agent_end, b"alice")
        assert wait_until(lambda: session.state is SessionState.IDLE)
        assert session.display_name == "alice"
        session.close()

    def test_skips_empty_names_and_bad_headers(self, pair, recorder, wait_until):
        monitor_end, agent_end = pair
        framer = Framer()
        session = _session(monitor_end, recorder)
        session.start()
        agent_end.sendall(b"garbage".ljust(HEADER_SIZE, b"\x00"))
        framer.send(agent_end, b"")
        framer.send(agent_end, b"   ")
        framer.send(agent_end, b"bob")
        assert wait_until(lambda: session.state is SessionState.IDLE)
        assert session.display_name == "bob"
        session.close()

    def test_next_message_is_stream_data(self, pair, recorder, wait_until):
        monitor_end, agent_end = pair
        framer = Framer()
        session = _session(monitor_end, recorder)
        session.start()
        framer.send(agent_end, b"alice")
        framer.send(agent_end, b"\xff\xd8frame-1")
        framer.send(agent_end, b"\xff\xd8frame-2")
        assert wait_until(lambda: len(recorder.frames) == 2)
        assert recorder.frames == [b"\xff\xd8frame-1", b"\xff\xd8frame-2"]
        session.close()

    def test_oversized_length_header_is_skipped(self, pair, recorder, wait_until):
        monitor_end, agent_end = pair
        framer = Framer()
        session = _session(monitor_end, recorder, config=MonitorConfig(max_frame_size=100))
        session.start()
        framer.send(agent_end, b"alice")
        agent_end.sendall(framer.encode_header(10**20))
        framer.send(agent_end, b"x" * 100)
        assert wait_until(lambda: recorder.frames == [b"x" * 100])
        assert not session.closed
        session.close()


class TestReader:
    def test_peer_close_reports_once(self, pair, recorder, wait_until):
        monitor_end, agent_end = pair
        session = _session(monitor_end, recorder)
        session.start()
        Framer().send(agent_end, b"alice")
        agent_end.close()
        assert wait_until(lambda: len(recorder.closed) == 1)
        assert "End of stream" in recorder.closed[0]
        session.close()

    def test_close_unblocks_reader(self, pair, recorder, wait_until):
        session = _session(pair[0], recorder)
        session.start()
        session.close()
        assert wait_until(lambda: not session._reader.is_alive())
        assert session.state is SessionState.DISCONNECTED

    def test_close_is_idempotent(self, pair, recorder):
        session = _session(pair[0], recorder)
        session.close()
        session.close()
        assert session.closed


class TestStreamingState:
    def test_transitions(self, pair, recorder):
        session = _session(pair[0], recorder)
        session.set_streaming(True)
        assert session.state is SessionState.STREAMING
        session.set_streaming(False)
        assert session.state is SessionState.IDLE
        session.close()
        session.set_streaming(True)
        assert session.state is SessionState.DISCONNECTED


class TestSendControl:
    def test_writes_raw_token(self, pair, recorder):
        monitor_end, agent_end = pair
        session = _session(monitor_end, recorder)
        session.send_control(ControlCommand.start())
        assert agent_end.recv(1024) == b"LH_START"
        session.send_control(ControlCommand.notice("hi"))
        assert agent_end.recv(1024) == b"LH_SENDMSGhi"
        session.close()

    def test_closed_session_raises(self, pair, recorder):
        from lookhere.errors import TransportError

        session = _session(pair[0], recorder)
        session.close()
        with pytest.raises(TransportError):
            session.send_control(ControlCommand.stop())


class TestWatchdog:
    def _config(self) -> MonitorConfig:
        return MonitorConfig(
            watchdog_grace=0.01,
            watchdog_interval=0.01,
            eviction_threshold=11.0,
        )

    def test_evicts_after_threshold(self, pair, recorder, wait_until):
        clock = FakeClock()
        session = _session(pair[0], recorder, self._config(), clock)
        session.start()
        clock.now += 12.0
        assert wait_until(lambda: recorder.closed == ["heartbeat timeout"])
        assert wait_until(lambda: not session._watchdog.is_alive())
        session.close()

    def test_heartbeat_keeps_session(self, pair, recorder, wait_until):
        clock = FakeClock()
        session = _session(pair[0], recorder, self._config(), clock)
        session.start()
        for _ in range(5):
            clock.now += 5.0
            session.reset_heartbeat()
            assert not wait_until(lambda: recorder.closed, timeout=0.05)
        assert session.heartbeat_age() == 0.0
        session.close()

    def test_exactly_threshold_is_not_expired(self, pair, recorder, wait_until):
        clock = FakeClock()
        session = _session(pair[0], recorder, self._config(), clock)
        session.start()
        clock.now += 11.0
        assert not wait_until(lambda: recorder.closed, timeout=0.1)
        session.close()

    def test_close_cancels_watchdog(self, pair, recorder, wait_until):
        session = _session(pair[0], recorder, self._config(), FakeClock())
        session.start()
        session.close()
        assert wait_until(lambda: not session._watchdog.is_alive())
