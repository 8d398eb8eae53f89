"""
Retransmission Timer and RTT sampling.

Stop-and-wait keeps the retransmission timeout fixed: every fragment is
retransmitted after the same interval until its ACK arrives, with no
backoff and no retry limit. The RTT statistics are gathered only so they
can be reported; they never feed back into the timeout.
"""

import time
import threading
from typing import Optional


DEFAULT_RTO = 0.1  # 100ms


class RTTSampler:
    """
    Last/min/max round-trip time in microseconds.

    The minimum starts at +infinity and the maximum at -infinity, so the
    first sample always sets both.
    """

    def __init__(self):
        self._last = 0
        self._min = float("inf")
        self._max = float("-inf")
        self._samples = 0
        self._lock = threading.Lock()

    @property
    def last(self) -> int:
        """Most recent RTT sample in microseconds (0 before any sample)."""
        return self._last

    @property
    def min(self) -> float:
        """Smallest RTT seen, +inf before any sample."""
        return self._min

    @property
    def max(self) -> float:
        """Largest RTT seen, -inf before any sample."""
        return self._max

    @property
    def samples(self) -> int:
        return self._samples

    def record(self, rtt_us: int) -> int:
        """Record an RTT sample given in microseconds."""
        with self._lock:
            self._last = rtt_us
            if rtt_us < self._min:
                self._min = rtt_us
            if rtt_us > self._max:
                self._max = rtt_us
            self._samples += 1
            return rtt_us

    def record_elapsed(self, send_time: float, ack_time: Optional[float] = None) -> int:
        """
        Record the time between a transmission and its acknowledgment.

        Args:
            send_time: time.monotonic() value at transmission
            ack_time: time.monotonic() value at acknowledgment (default: now)

        Returns:
            The sample in microseconds
        """
        if ack_time is None:
            ack_time = time.monotonic()
        return self.record(int((ack_time - send_time) * 1_000_000))

    def __str__(self) -> str:
        if not self._samples:
            return "RTT(N/A)"
        return f"RTT(last={self._last}us, min={self._min}us, max={self._max}us)"


class RetransmissionTimer:
    """
    Fixed-interval retransmission deadline.

    The sender arms the timer after every (re)transmission and blocks on
    the ACK signal for time_remaining() seconds. If nothing arrives before
    the deadline it calls expire(), retransmits and arms the timer again.
    """

    def __init__(self, rto: float = DEFAULT_RTO):
        """
        Args:
            rto: Retransmission timeout in seconds
        """
        if rto <= 0:
            raise ValueError(f"Invalid RTO: {rto}")
        self._rto = rto
        self._deadline: Optional[float] = None
        self._timeout_count = 0

    @property
    def rto(self) -> float:
        """Retransmission timeout in seconds."""
        return self._rto

    @property
    def timeout_count(self) -> int:
        """Number of times the timer has expired."""
        return self._timeout_count

    def start(self):
        """Arm (or re-arm) the timer for one RTO from now."""
        self._deadline = time.monotonic() + self._rto

    def stop(self):
        """Cancel the timer."""
        self._deadline = None

    def is_active(self) -> bool:
        return self._deadline is not None

    def time_remaining(self) -> Optional[float]:
        """Seconds until the deadline, or None if not armed."""
        if self._deadline is None:
            return None
        return max(0.0, self._deadline - time.monotonic())

    def expire(self):
        """Record a timeout. The timer stays disarmed until start()."""
        self._timeout_count += 1
        self._deadline = None

    def __str__(self) -> str:
        return f"Timer(RTO={self._rto * 1000:.1f}ms, timeouts={self._timeout_count})"
