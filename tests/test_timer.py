"""
Tests for RTT sampling and the retransmission timer.
"""

import math
import time

import pytest
from stopwait.timer import RTTSampler, RetransmissionTimer, DEFAULT_RTO


class TestRTTSampler:
    """Test last/min/max RTT tracking."""

    def test_initial_values(self):
        rtt = RTTSampler()
        assert rtt.last == 0
        assert rtt.min == math.inf
        assert rtt.max == -math.inf
        assert rtt.samples == 0

    def test_first_sample_sets_min_and_max(self):
        rtt = RTTSampler()
        rtt.record(1500)
        assert rtt.last == 1500
        assert rtt.min == 1500
        assert rtt.max == 1500

    def test_min_max_tracking(self):
        rtt = RTTSampler()
        for sample in (300, 100, 500, 200):
            rtt.record(sample)

        assert rtt.last == 200
        assert rtt.min == 100
        assert rtt.max == 500
        assert rtt.samples == 4

    def test_record_elapsed_in_microseconds(self):
        rtt = RTTSampler()
        assert rtt.record_elapsed(send_time=10.0, ack_time=10.25) == 250000
        assert rtt.last == 250000

    def test_record_elapsed_defaults_to_now(self):
        rtt = RTTSampler()
        sample = rtt.record_elapsed(time.monotonic())
        assert 0 <= sample < 1_000_000

    def test_str(self):
        rtt = RTTSampler()
        assert str(rtt) == "RTT(N/A)"
        rtt.record(42)
        assert "last=42us" in str(rtt)


class TestRetransmissionTimer:
    """Test the fixed-interval retransmission deadline."""

    def test_default_rto(self):
        assert RetransmissionTimer().rto == DEFAULT_RTO == 0.1

    def test_invalid_rto(self):
        with pytest.raises(ValueError):
            RetransmissionTimer(rto=0)

    def test_not_active_initially(self):
        timer = RetransmissionTimer()
        assert not timer.is_active()
        assert timer.time_remaining() is None

    def test_start_and_stop(self):
        timer = RetransmissionTimer(rto=0.5)
        timer.start()
        assert timer.is_active()
        remaining = timer.time_remaining()
        assert 0 < remaining <= 0.5

        timer.stop()
        assert not timer.is_active()
        assert timer.timeout_count == 0

    def test_remaining_counts_down_to_zero(self):
        timer = RetransmissionTimer(rto=0.01)
        timer.start()
        time.sleep(0.02)
        assert timer.time_remaining() == 0.0

    def test_expire_counts_timeouts(self):
        timer = RetransmissionTimer(rto=0.01)
        for _ in range(3):
            timer.start()
            timer.expire()

        assert timer.timeout_count == 3
        assert not timer.is_active()

    def test_rto_stays_fixed(self):
        """No backoff: every re-arm uses the same interval."""
        timer = RetransmissionTimer(rto=0.2)
        timer.start()
        timer.expire()
        timer.start()
        assert timer.rto == 0.2
        assert timer.time_remaining() <= 0.2
