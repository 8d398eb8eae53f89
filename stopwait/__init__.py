"""
Stop-and-wait - reliable, in-order delivery over unreliable datagrams.

This package layers a stop-and-wait reliability protocol on top of a
datagram transport such as UDP: one segment in flight at a time,
acknowledged before the next one is sent, retransmitted on a fixed
timeout until it is.
"""

from .segment import Segment, Command, encode, decode
from .errors import (
    StopWaitError, FramingError, FramingReason,
    TransportReadError, TransportWriteError,
    WouldBlockError, ConnectionDeadError
)
from .buffer import DeliveryQueue
from .events import WakeSignal
from .timer import RTTSampler, RetransmissionTimer
from .transport import DatagramTransport, UdpTransport
from .connection import Connection, ConnectionConfig

__version__ = "1.0.0"

__all__ = [
    "Segment",
    "Command",
    "encode",
    "decode",
    "StopWaitError",
    "FramingError",
    "FramingReason",
    "TransportReadError",
    "TransportWriteError",
    "WouldBlockError",
    "ConnectionDeadError",
    "DeliveryQueue",
    "WakeSignal",
    "RTTSampler",
    "RetransmissionTimer",
    "DatagramTransport",
    "UdpTransport",
    "Connection",
    "ConnectionConfig",
]
