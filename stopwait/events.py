"""
Wake signals - single-slot "wake one waiter" notifications.

The receive thread uses these to tell the sending thread that an ACK
arrived, and to tell a blocked consumer that a payload was queued.

Unlike threading.Event, a WakeSignal never remembers a notification nobody
was listening for. A stale ACK wake-up left behind would complete the
*next* fragment's send without that fragment ever being acknowledged, so a
notify() with no listener is simply dropped.

A thread becomes a listener before it starts the operation whose outcome
it waits for (the sender before transmitting, the consumer before looking
at the queue). Otherwise an ACK that beats the sender to wait() would be
dropped and cost a full retransmission timeout.

    with signal.listen() as listener:
        transmit()
        if listener.wait(timeout):
            ...
"""

import threading
from typing import Optional


class Listener:
    """A registration on a WakeSignal. Use through WakeSignal.listen()."""

    def __init__(self, signal: "WakeSignal"):
        self._signal = signal
        self._closed = False

    def wait(self, timeout: Optional[float] = None) -> bool:
        """
        Block until notified or until timeout expires.

        Returns:
            True if a notification was consumed, False on timeout
        """
        return self._signal._consume(timeout)

    def close(self):
        if not self._closed:
            self._closed = True
            self._signal._unregister()

    def __enter__(self) -> "Listener":
        return self

    def __exit__(self, exc_type, exc, tb):
        self.close()


class WakeSignal:
    """Unbuffered notification delivered to at most one listening thread."""

    def __init__(self):
        self._cond = threading.Condition(threading.Lock())
        self._listeners = 0
        self._pending = 0  # Wake-ups handed to listeners, not yet consumed

    def listen(self) -> Listener:
        """Register the calling thread as a listener."""
        with self._cond:
            self._listeners += 1
        return Listener(self)

    def wait(self, timeout: Optional[float] = None) -> bool:
        """Listen, wait once, stop listening."""
        with self.listen() as listener:
            return listener.wait(timeout)

    def notify(self) -> bool:
        """
        Wake one listener.

        Returns:
            True if a listener will receive this notification, False if it
            was dropped because nobody was listening
        """
        with self._cond:
            if self._listeners <= self._pending:
                return False
            self._pending += 1
            self._cond.notify()
            return True

    @property
    def listeners(self) -> int:
        """Number of listeners without an unconsumed notification."""
        with self._cond:
            return self._listeners - self._pending

    def _consume(self, timeout: Optional[float]) -> bool:
        with self._cond:
            if not self._cond.wait_for(lambda: self._pending > 0, timeout):
                return False
            self._pending -= 1
            return True

    def _unregister(self):
        with self._cond:
            self._listeners -= 1
            # A wake-up handed to a listener that has left is discarded
            if self._pending > self._listeners:
                self._pending = self._listeners
