"""Tests for wire tokens and control command parsing."""

from __future__ import annotations

import pytest

from lookhere.errors import ProtocolError
from lookhere.protocol import (
    CommandKind,
    ControlCommand,
    decode_token,
    parse_control,
)


class TestDecodeToken:
    def test_trims_nul_padding(self):
        assert decode_token(b"LH_CONNECTED\x00\x00\x00") == "LH_CONNECTED"

    def test_trims_whitespace(self):
        assert decode_token(b"  LH_DISCOVER_REQUEST\r\n") == "LH_DISCOVER_REQUEST"


class TestEncode:
    def test_tokens(self):
        assert ControlCommand.start().encode() == b"LH_START"
        assert ControlCommand.stop().encode() == b"LH_STOP"

    def test_notice_is_prefix_plus_text_unterminated(self):
        assert ControlCommand.notice("Pencils down").encode() == b"LH_SENDMSGPencils down"


class TestParseControl:
    def test_start(self):
        assert parse_control(b"LH_START") == [ControlCommand.start()]

    def test_stop_with_padding(self):
        assert parse_control(b"LH_STOP" + b"\x00" * 1017) == [ControlCommand.stop()]

    def test_notice(self):
        commands = parse_control(b"LH_SENDMSGPencils down\x00\x00")
        assert commands == [ControlCommand(CommandKind.NOTICE, "Pencils down")]

    def test_notice_keeps_inner_tokens_as_text(self):
        commands = parse_control(b"LH_SENDMSGsay LH_START please")
        assert commands == [ControlCommand.notice("say LH_START please")]

    def test_coalesced_tokens(self):
        assert parse_control(b"LH_STOPLH_START") == [
            ControlCommand.stop(),
            ControlCommand.start(),
        ]

    def test_tokens_then_notice(self):
        commands = parse_control(b"LH_STARTLH_SENDMSGhi")
        assert [c.kind for c in commands] == [CommandKind.START, CommandKind.NOTICE]
        assert commands[1].text == "hi"

    def test_padding_only(self):
        assert parse_control(b"\x00" * 16) == []

    def test_unknown_token(self):
        with pytest.raises(ProtocolError):
            parse_control(b"LH_REBOOT")

    def test_trailing_garbage_after_token_is_dropped(self):
        assert parse_control(b"LH_STARTjunk") == [ControlCommand.start()]
