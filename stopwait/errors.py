"""
Exceptions raised by the stop-and-wait transport.

Framing and write errors are absorbed by the connection (logged, then the
retransmission timer takes over). A read error is fatal: the receive loop
stops and the connection has to be rebuilt by the caller.
"""

from enum import Enum


class StopWaitError(Exception):
    """Base class for all errors raised by this package."""


class FramingReason(Enum):
    """Why a datagram could not be decoded."""
    INVALID_OVERHEAD = "invalid overhead"
    INVALID_COMMAND = "invalid command"


class FramingError(StopWaitError):
    """A datagram that does not form a valid segment."""

    def __init__(self, reason: FramingReason, detail: str = ""):
        self.reason = reason
        message = reason.value
        if detail:
            message = f"{message}: {detail}"
        super().__init__(message)


class TransportReadError(StopWaitError):
    """Reading from the underlying datagram transport failed."""


class TransportWriteError(StopWaitError):
    """Writing to the underlying datagram transport failed."""


class WouldBlockError(StopWaitError):
    """No payload became available after one wait cycle."""


class ConnectionDeadError(StopWaitError):
    """The receive loop has terminated; the connection cannot make progress."""
