"""
Segment - Encoding and decoding of stop-and-wait segments.

Every datagram exchanged by two endpoints carries exactly one segment.
The header is deliberately tiny:

    +---------+-----------------------------+-------------------+
    | command |  sequence number (uint32)   |  payload (PUSH)   |
    | 1 byte  |  4 bytes, big-endian        |  0..MSS bytes     |
    +---------+-----------------------------+-------------------+

    command: 1 = PUSH, 2 = ACK

Acknowledgments never carry data, and since only one segment is ever in
flight the peer never needs to read a sequence number out of them. They are
therefore sent as a single command byte (the compact form). Decoders still
accept the full 5-byte form for an ACK.
"""

import struct
from dataclasses import dataclass, field
from enum import IntEnum
from typing import Any, Optional

from .errors import FramingError, FramingReason


CMD_SIZE = 1
SEQ_SIZE = 4
OVERHEAD = CMD_SIZE + SEQ_SIZE

SEQ_MASK = 0xFFFFFFFF

_HEADER = struct.Struct("!BI")


class Command(IntEnum):
    """Segment command byte."""
    PUSH = 1  # Carries data, must be acknowledged
    ACK = 2   # Acknowledges the PUSH currently in flight

    def __str__(self) -> str:
        return self.name


@dataclass
class Segment:
    """
    One unit of wire exchange.

    remote_addr is not serialized. On receive it holds the datagram's
    source address; on send it is where the segment goes when the
    transport is not connected to a single peer.
    """
    command: Command
    seq: int = 0
    payload: bytes = field(default_factory=bytes)
    remote_addr: Optional[Any] = None

    def __post_init__(self):
        if not 0 <= self.seq <= SEQ_MASK:
            raise ValueError(f"Invalid sequence number: {self.seq}")
        if self.command == Command.ACK and self.payload:
            raise ValueError("ACK segments carry no payload")

    @property
    def is_ack(self) -> bool:
        return self.command == Command.ACK

    def __str__(self) -> str:
        if self.is_ack:
            return "ACK"
        return f"PUSH seq={self.seq} len={len(self.payload)}"


def encode(segment: Segment) -> bytes:
    """Serialize a segment. ACKs always use the 1-byte compact form."""
    if segment.command == Command.ACK:
        return bytes((Command.ACK,))
    return _HEADER.pack(int(segment.command), segment.seq) + segment.payload


def decode(data: bytes, remote_addr: Optional[Any] = None) -> Segment:
    """
    Parse a datagram into a segment.

    Raises:
        FramingError: If a non-ACK datagram is shorter than the header,
            or the command byte is unknown.
    """
    if len(data) == CMD_SIZE and data[0] == Command.ACK:
        return Segment(command=Command.ACK, remote_addr=remote_addr)

    if len(data) < OVERHEAD:
        raise FramingError(FramingReason.INVALID_OVERHEAD,
                           f"{len(data)} bytes, need at least {OVERHEAD}")

    command, seq = _HEADER.unpack_from(data)
    try:
        command = Command(command)
    except ValueError:
        raise FramingError(FramingReason.INVALID_COMMAND, f"0x{command:02x}") from None

    if command == Command.ACK:
        # Full-form ACK; anything after the header is meaningless
        return Segment(command=Command.ACK, seq=seq, remote_addr=remote_addr)

    return Segment(command=command, seq=seq, payload=bytes(data[OVERHEAD:]),
                   remote_addr=remote_addr)


def create_push_segment(seq: int, payload: bytes,
                        remote_addr: Optional[Any] = None) -> Segment:
    """Create a data segment."""
    return Segment(command=Command.PUSH, seq=seq, payload=payload,
                   remote_addr=remote_addr)


def create_ack_segment(remote_addr: Optional[Any] = None) -> Segment:
    """Create an acknowledgment for the peer at remote_addr."""
    return Segment(command=Command.ACK, remote_addr=remote_addr)
