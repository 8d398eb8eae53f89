"""
Connection - reliable, in-order delivery over an unreliable datagram transport.

This module brings together the protocol components:
- Segment encoding and decoding
- The delivery queue feeding the application
- The fixed retransmission timer and RTT statistics
- The wake signals linking the receive thread to senders and consumers

A Connection runs two state machines:

1. Send (caller's thread): transmit one PUSH, wait for the ACK, retransmit
   on every timeout, forever. Only after the ACK does the next fragment go
   out, so at most one segment is ever in flight.
2. Receive (background thread): read datagrams, wake the sender on ACK,
   and accept a PUSH only if it carries exactly the expected sequence
   number. Duplicates of already-delivered data are acknowledged again,
   since the first ACK may have been lost. Segments from the future are
   dropped without an ACK; the peer's retransmission will fill the gap.

There is no handshake and no teardown. Sequence numbers start at 0 in each
direction. If the transport fails to read, the receive thread stops and
the connection is dead for good.
"""

import time
import threading
import logging
from dataclasses import asdict, dataclass
from typing import Any, Optional

from .segment import (
    Segment, OVERHEAD, SEQ_MASK, decode, encode,
    create_ack_segment, create_push_segment
)
from .buffer import DeliveryQueue
from .events import WakeSignal
from .timer import RTTSampler, RetransmissionTimer, DEFAULT_RTO
from .transport import DatagramTransport, MAX_DATAGRAM_SIZE
from .errors import (
    ConnectionDeadError, FramingError,
    TransportReadError, TransportWriteError, WouldBlockError
)


# Set up logging
logger = logging.getLogger(__name__)


DEFAULT_MSS = 1400


@dataclass
class ConnectionConfig:
    """Configuration options for a connection."""

    # Largest payload carried by one PUSH; bigger payloads are fragmented
    mss: int = DEFAULT_MSS

    # Fixed retransmission timeout in seconds
    rto: float = DEFAULT_RTO

    # Default wait window for receive_one() (None waits for a wake-up)
    receive_timeout: Optional[float] = None

    # Largest datagram read from the transport
    max_datagram_size: int = MAX_DATAGRAM_SIZE

    def __post_init__(self):
        if self.mss < 1:
            raise ValueError(f"Invalid MSS: {self.mss}")
        if self.rto <= 0:
            raise ValueError(f"Invalid RTO: {self.rto}")
        if self.receive_timeout is not None and self.receive_timeout < 0:
            raise ValueError(f"Invalid receive timeout: {self.receive_timeout}")
        if self.max_datagram_size < self.mss + OVERHEAD:
            raise ValueError(
                f"max_datagram_size {self.max_datagram_size} cannot hold "
                f"a full segment (MSS {self.mss} + 5 byte header)"
            )


@dataclass
class ConnectionStats:
    """Counters kept by a connection."""
    segments_sent: int = 0
    retransmissions: int = 0
    acks_received: int = 0
    acks_sent: int = 0
    segments_accepted: int = 0
    duplicates: int = 0
    out_of_order_dropped: int = 0
    framing_errors: int = 0
    write_errors: int = 0


class Connection:
    """
    A stop-and-wait connection.

    Usage:
        transport = UdpTransport.bind("0.0.0.0", 9000)
        conn = Connection(transport)

        # Blocks until every fragment has been acknowledged
        conn.send(b"Hello", ("127.0.0.1", 9001))

        # Next in-order payload, or WouldBlockError
        data = conn.receive_one(timeout=1.0)

        conn.close()

    The receive thread starts as soon as the connection is constructed.
    """

    def __init__(self, transport: DatagramTransport,
                 config: Optional[ConnectionConfig] = None):
        """
        Initialize a connection and start its receive thread.

        Args:
            transport: Datagram transport to run on
            config: Connection configuration options
        """
        self.config = config or ConnectionConfig()
        self._transport = transport

        # Sequence state. The sending thread owns _next_send_seq,
        # the receive thread owns _expected_recv_seq.
        self._next_send_seq = 0
        self._expected_recv_seq = 0

        # Receive side
        self._delivery = DeliveryQueue()

        # Send side
        self._ack_received = WakeSignal()
        self._timer = RetransmissionTimer(self.config.rto)
        self._rtt = RTTSampler()
        self._send_lock = threading.Lock()

        self.stats = ConnectionStats()
        # Counters are bumped from both the sending and the receive thread
        self._stats_lock = threading.Lock()

        # Set if the receive thread dies on a read error
        self.error: Optional[TransportReadError] = None
        self._dead = threading.Event()

        self._receive_thread = threading.Thread(
            target=self._receive_loop, name="stopwait-receive", daemon=True
        )
        self._receive_thread.start()

    # ========== Properties ==========

    @property
    def transport(self) -> DatagramTransport:
        return self._transport

    @property
    def next_send_seq(self) -> int:
        """Sequence number the next outbound fragment will carry."""
        return self._next_send_seq

    @property
    def expected_recv_seq(self) -> int:
        """Sequence number the receive side will accept next."""
        return self._expected_recv_seq

    @property
    def mss(self) -> int:
        return self.config.mss

    @property
    def rtt_last(self) -> int:
        """Most recent RTT in microseconds."""
        return self._rtt.last

    @property
    def rtt_min(self) -> float:
        """Smallest RTT in microseconds (+inf before the first ACK)."""
        return self._rtt.min

    @property
    def rtt_max(self) -> float:
        """Largest RTT in microseconds (-inf before the first ACK)."""
        return self._rtt.max

    @property
    def is_alive(self) -> bool:
        """False once the receive thread has stopped."""
        return not self._dead.is_set()

    def pending(self) -> int:
        """Number of payloads waiting in the delivery queue."""
        return len(self._delivery)

    # ========== Sending ==========

    def send(self, payload: bytes, addr: Optional[Any] = None):
        """
        Send a payload reliably.

        Payloads larger than the MSS are split into consecutive fragments.
        Each fragment gets its own sequence number and is acknowledged
        before the next one is sent.

        Blocks until the whole payload is acknowledged. There is no retry
        limit; the only way out without an ACK is a dead connection.

        Args:
            payload: Data to send
            addr: Peer address (ignored if the transport is connected)

        Raises:
            ConnectionDeadError: If the receive thread has stopped
        """
        data = bytes(payload)
        mss = self.config.mss

        with self._send_lock:
            if len(data) <= mss:
                self._send_fragment(data, addr)
                return

            count = (len(data) + mss - 1) // mss
            logger.debug(f"Fragmenting {len(data)} bytes into {count} segments")
            for start in range(0, len(data), mss):
                self._send_fragment(data[start:start + mss], addr)

    def send_fragment(self, payload: bytes, addr: Optional[Any] = None):
        """
        Send exactly one fragment reliably.

        Raises:
            ValueError: If the payload is larger than the MSS
            ConnectionDeadError: If the receive thread has stopped
        """
        data = bytes(payload)
        if len(data) > self.config.mss:
            raise ValueError(f"Fragment of {len(data)} bytes exceeds MSS {self.config.mss}")
        with self._send_lock:
            self._send_fragment(data, addr)

    def _send_fragment(self, payload: bytes, addr: Optional[Any]):
        """The send state machine for one fragment. Caller holds _send_lock."""
        self._check_alive()

        segment = create_push_segment(self._next_send_seq, payload, addr)

        with self._ack_received.listen() as ack:
            self._transmit(segment)
            sent_at = time.monotonic()
            self._timer.start()

            while not ack.wait(self._timer.time_remaining()):
                # Retransmission timeout
                self._timer.expire()
                self._check_alive()
                self._count("retransmissions")
                logger.debug(f"Resend seq={segment.seq}")
                self._transmit(segment)
                self._timer.start()

        rtt = self._rtt.record_elapsed(sent_at)
        self._timer.stop()
        self._next_send_seq = (self._next_send_seq + 1) & SEQ_MASK

        logger.debug(
            f"seq={segment.seq} acknowledged, rtt {rtt} "
            f"minrtt: {self._rtt.min} maxrtt: {self._rtt.max}"
        )

    def _count(self, counter: str):
        with self._stats_lock:
            setattr(self.stats, counter, getattr(self.stats, counter) + 1)

    def _check_alive(self):
        if not self.is_alive:
            raise ConnectionDeadError(f"receive loop stopped: {self.error}")

    # ========== Receiving ==========

    def receive_one(self, timeout: Optional[float] = None) -> bytes:
        """
        Return the next in-order payload.

        If nothing is queued, wait for one data-available wake-up (at most
        timeout seconds, falling back to config.receive_timeout) and check
        the queue once more.

        Raises:
            WouldBlockError: If the queue is still empty after the wait
            ConnectionDeadError: If the queue is empty and the receive
                thread has stopped
        """
        if timeout is None:
            timeout = self.config.receive_timeout

        # The liveness check runs with the consumer already registered, so
        # the receive thread's final wake() cannot slip in before we wait.
        try:
            return self._delivery.pop(timeout, before_wait=self._check_alive)
        except WouldBlockError:
            # The wake-up may have come from the receive thread dying
            self._check_alive()
            raise

    def _receive_loop(self):
        """Read, decode and dispatch datagrams until the transport fails."""
        logger.info(f"Receive loop started on {self._transport}")
        try:
            while True:
                data, remote_addr = self._transport.receive(self.config.max_datagram_size)

                try:
                    segment = decode(data, remote_addr)
                except FramingError as e:
                    self._count("framing_errors")
                    logger.warning(f"Discarding datagram from {remote_addr}: {e}")
                    continue

                if segment.is_ack:
                    self._handle_ack(segment)
                else:
                    self._handle_push(segment)
        except TransportReadError as e:
            self.error = e
            logger.error(f"Receive loop stopped: {e}")
        finally:
            self._dead.set()
            # Let a blocked consumer notice the connection is dead
            self._delivery.wake()

    def _handle_ack(self, segment: Segment):
        self._count("acks_received")
        if self._ack_received.notify():
            logger.debug(f"Received ACK from {segment.remote_addr}")
        else:
            logger.debug(f"Received ACK from {segment.remote_addr} with no sender waiting")

    def _handle_push(self, segment: Segment):
        expected = self._expected_recv_seq

        if segment.seq > expected:
            self._count("out_of_order_dropped")
            logger.warning(f"Expected seq={expected}, got seq={segment.seq}; dropped")
            return

        if segment.seq < expected:
            # Already delivered. Our ACK was probably lost, so send another.
            self._count("duplicates")
            logger.debug(f"Duplicate seq={segment.seq} (expected {expected}), re-acknowledging")
            self._send_ack(segment.remote_addr)
            return

        self._delivery.push(segment.payload)
        self._count("segments_accepted")
        self._send_ack(segment.remote_addr)
        self._expected_recv_seq = (expected + 1) & SEQ_MASK
        logger.debug(f"Accepted {segment}")

    def _send_ack(self, addr: Optional[Any]):
        self._transmit(create_ack_segment(addr))
        self._count("acks_sent")

    # ========== Transmission ==========

    def _transmit(self, segment: Segment):
        """
        Put a segment on the wire.

        Write errors are logged and otherwise ignored: for a PUSH the
        retransmission timer tries again, a lost ACK is recovered by the
        peer's retransmission.
        """
        data = encode(segment)
        try:
            if self._transport.connected:
                self._transport.send(data)
            else:
                self._transport.send_to(data, segment.remote_addr)
        except TransportWriteError as e:
            self._count("write_errors")
            logger.warning(f"Failed to send {segment}: {e}")
            return

        if not segment.is_ack:
            self._count("segments_sent")

    # ========== Lifecycle ==========

    def close(self):
        """
        Close the transport.

        The receive thread ends through the read-error path, exactly as
        it would on a transport failure.
        """
        self._transport.close()
        if threading.current_thread() is not self._receive_thread:
            self._receive_thread.join(timeout=1.0)

    def __enter__(self) -> "Connection":
        return self

    def __exit__(self, exc_type, exc, tb):
        self.close()

    # ========== Statistics and Debugging ==========

    def get_statistics(self) -> dict:
        """Get connection statistics."""
        with self._stats_lock:
            counters = asdict(self.stats)
        return {
            "next_send_seq": self._next_send_seq,
            "expected_recv_seq": self._expected_recv_seq,
            "pending": len(self._delivery),
            "rtt_last_us": self._rtt.last,
            "rtt_min_us": self._rtt.min,
            "rtt_max_us": self._rtt.max,
            "rto": self._timer.rto,
            **counters,
            "alive": self.is_alive,
        }

    def __str__(self) -> str:
        return (
            f"Connection({self._transport}, snd={self._next_send_seq}, "
            f"rcv={self._expected_recv_seq})"
        )
