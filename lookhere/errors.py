"""Error taxonomy shared by the monitor and the agent."""

from __future__ import annotations


class LookHereError(Exception):
    """Base error for LookHere failures."""


class TransportError(LookHereError):
    """Broken or reset connection, end-of-stream mid-read, or failed send.

    Terminal for the affected connection.
    """


class ProtocolError(LookHereError):
    """Unparsable length header or unmatched control token.

    Non-terminal: the reading loop treats it as a no-op frame.
    """


class CapacityError(LookHereError):
    """Raised when the session registry is full."""


class OperatorError(LookHereError):
    """An operator command could not be carried out."""

    level = "error"


class UnknownSessionError(OperatorError):
    """Raised when an operator command names a session that is not registered."""


class NoActiveSessionError(OperatorError):
    """Raised when a command needs an active selection and there is none."""


class InvalidNoticeError(OperatorError):
    """Raised when notice text is empty or too long."""

    def __init__(self, message: str, level: str = "error") -> None:
        super().__init__(message)
        self.level = level
