"""Length-prefixed framing for agent → monitor messages.

Every message (the handshake name, every captured frame) is a fixed-size
header followed by the payload:

  Bytes 0..HEADER_SIZE-1: ASCII decimal payload length, left-justified,
                          remaining bytes zero
  Bytes HEADER_SIZE+:     payload

The sender writes the header and the payload as two sequential writes.
"""

from __future__ import annotations

import logging
import socket

from lookhere.errors import ProtocolError, TransportError

logger = logging.getLogger(__name__)

HEADER_SIZE = 32

# Returned by parse_header for an unusable header; no payload read follows
NO_FRAME = -1

_CHUNK = 65536


def read_exactly(conn: socket.socket, size: int) -> bytes:
    """Read exactly ``size`` bytes, looping over partial reads.

    Raises :class:`TransportError` if the peer closes the stream first.
    """
    buf = bytearray()
    while len(buf) < size:
        try:
            chunk = conn.recv(min(size - len(buf), _CHUNK))
        except OSError as e:
            raise TransportError(f"Read failed: {e}") from e
        if not chunk:
            raise TransportError(
                f"End of stream after {len(buf)} of {size} bytes"
            )
        buf.extend(chunk)
    return bytes(buf)


class Framer:
    """Encodes and decodes length-prefixed messages."""

    def __init__(self, header_size: int = HEADER_SIZE, max_payload: int = 0) -> None:
        self.header_size = header_size
        # 0 accepts any length the header can carry
        self.max_payload = max_payload

    def encode_header(self, length: int) -> bytes:
        digits = str(length).encode("ascii")
        if length < 0 or len(digits) > self.header_size:
            raise ValueError(f"Payload length {length} does not fit the header")
        return digits.ljust(self.header_size, b"\x00")

    def parse_header(self, header: bytes) -> int:
        """Return the payload length, or ``NO_FRAME`` if unparsable."""
        try:
            return self._length(header)
        except ProtocolError as e:
            logger.debug("Ignoring frame: %s", e)
            return NO_FRAME

    def _length(self, header: bytes) -> int:
        text = header.decode("ascii", errors="replace").strip("\x00 \t\r\n")
        if not text:
            raise ProtocolError("Empty length header")
        try:
            length = int(text)
        except ValueError:
            raise ProtocolError(f"Unparsable length header: {text[:32]!r}") from None
        if length < 0:
            raise ProtocolError(f"Negative length header: {length}")
        if self.max_payload and length > self.max_payload:
            raise ProtocolError(
                f"Length header {length} exceeds the {self.max_payload} byte limit"
            )
        return length

    def encode(self, payload: bytes) -> bytes:
        """Header and payload as one buffer."""
        return self.encode_header(len(payload)) + payload

    def send(self, conn: socket.socket, payload: bytes) -> None:
        """Write the header, then the payload."""
        header = self.encode_header(len(payload))
        try:
            conn.sendall(header)
            conn.sendall(payload)
        except OSError as e:
            raise TransportError(f"Send failed: {e}") from e

    def receive(self, conn: socket.socket) -> bytes | None:
        """Read one message.

        Returns ``None`` when the header does not parse (no payload is read).
        Raises :class:`TransportError` on end of stream or a failed read.
        """
        header = read_exactly(conn, self.header_size)
        length = self.parse_header(header)
        if length == NO_FRAME:
            return None
        return read_exactly(conn, length)
