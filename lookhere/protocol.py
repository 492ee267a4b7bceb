"""Wire tokens and control commands.

Datagram traffic (discovery and heartbeat) and monitor → agent control writes
are plain ASCII tokens:

  Agent → Monitor (UDP):  LH_DISCOVER_REQUEST, LH_CHECK_CONNECTION
  Monitor → Agent (UDP):  LH_DISCOVER_RESPONSE, LH_CONNECTED
  Monitor → Agent (TCP):  LH_START, LH_STOP, LH_SENDMSG<text>

Control writes are not length-prefixed. The agent reads whatever is buffered
and matches tokens left to right; a notice swallows the rest of the buffer.
"""

from __future__ import annotations

import enum
from dataclasses import dataclass

from lookhere.errors import ProtocolError

DISCOVER_REQUEST = "LH_DISCOVER_REQUEST"
DISCOVER_RESPONSE = "LH_DISCOVER_RESPONSE"
CHECK_CONNECTION = "LH_CHECK_CONNECTION"
CONNECTED = "LH_CONNECTED"

START = "LH_START"
STOP = "LH_STOP"
NOTICE_PREFIX = "LH_SENDMSG"

DEFAULT_PORT = 53

# Control characters and space
_PADDING = "".join(chr(c) for c in range(0x21))


def trim(text: str) -> str:
    """Strip NUL padding and whitespace from both ends."""
    return text.strip(_PADDING)


def encode_token(token: str) -> bytes:
    return token.encode("ascii")


def decode_token(data: bytes) -> str:
    """Decode a datagram or control read into a trimmed string."""
    return trim(data.decode("utf-8", errors="replace"))


class CommandKind(enum.Enum):
    START = "start"
    STOP = "stop"
    NOTICE = "notice"


@dataclass(frozen=True)
class ControlCommand:
    """A monitor → agent command. Fire-and-forget, never persisted."""

    kind: CommandKind
    text: str = ""

    @classmethod
    def start(cls) -> ControlCommand:
        return cls(CommandKind.START)

    @classmethod
    def stop(cls) -> ControlCommand:
        return cls(CommandKind.STOP)

    @classmethod
    def notice(cls, text: str) -> ControlCommand:
        return cls(CommandKind.NOTICE, text)

    def encode(self) -> bytes:
        if self.kind is CommandKind.START:
            return encode_token(START)
        if self.kind is CommandKind.STOP:
            return encode_token(STOP)
        return (NOTICE_PREFIX + self.text).encode("utf-8")


def parse_control(data: bytes) -> list[ControlCommand]:
    """Recover control commands from one best-effort read.

    Returns an empty list for a read that is nothing but padding. Raises
    :class:`ProtocolError` when the read does not start with a known token.
    Trailing garbage after at least one recognised token is dropped.
    """
    text = decode_token(data)
    commands: list[ControlCommand] = []

    while text:
        if text.startswith(NOTICE_PREFIX):
            commands.append(ControlCommand.notice(trim(text[len(NOTICE_PREFIX):])))
            break
        if text.startswith(START):
            commands.append(ControlCommand.start())
            text = text[len(START):]
        elif text.startswith(STOP):
            commands.append(ControlCommand.stop())
            text = text[len(STOP):]
        elif commands:
            break
        else:
            raise ProtocolError(f"Unrecognised control data: {text[:40]!r}")

    return commands
