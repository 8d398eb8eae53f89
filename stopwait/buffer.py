"""
Delivery Queue - accepted payloads waiting for the application.

The receive thread appends every in-order PUSH payload here and then
raises the data-available signal. The application pops payloads in the
order they were accepted, which is strictly increasing sequence order
with no gaps and no duplicates.

Stop-and-wait needs no out-of-order storage: anything ahead of the
expected sequence number is dropped before it gets this far.
"""

import threading
from collections import deque
from typing import Callable, Deque, Optional

from .errors import WouldBlockError
from .events import WakeSignal


class DeliveryQueue:
    """
    Unbounded FIFO of payloads, guarded by a lock.

    The queue grows on accepted receives and shrinks on consumption. It has
    no capacity limit other than memory.
    """

    def __init__(self):
        self._items: Deque[bytes] = deque()
        self._lock = threading.Lock()
        self._data_available = WakeSignal()

    def push(self, payload: bytes) -> bool:
        """
        Append a payload and wake a blocked consumer, if there is one.

        Returns:
            True if a waiting consumer was woken
        """
        with self._lock:
            self._items.append(payload)
        return self._data_available.notify()

    def try_pop(self) -> Optional[bytes]:
        """Pop the front payload, or return None if the queue is empty."""
        with self._lock:
            if self._items:
                return self._items.popleft()
            return None

    def pop(self, timeout: Optional[float] = None,
            before_wait: Optional[Callable[[], None]] = None) -> bytes:
        """
        Pop the front payload, waiting at most one wake-up for it.

        If the queue is empty, block until the data-available signal fires
        (or timeout expires), then check the queue exactly once more.

        Args:
            timeout: Seconds to wait for a wake-up (None waits forever)
            before_wait: Called with the consumer already registered, just
                before it blocks. Anything it raises propagates.

        Raises:
            WouldBlockError: If the queue is still empty after the wait
        """
        # Listen before the first check so a push or wake() racing with it
        # still wakes us.
        with self._data_available.listen() as listener:
            payload = self.try_pop()
            if payload is not None:
                return payload

            if before_wait is not None:
                before_wait()

            listener.wait(timeout)

            payload = self.try_pop()
            if payload is not None:
                return payload
        raise WouldBlockError("no payload available")

    def wake(self) -> bool:
        """Wake a blocked consumer without queueing anything."""
        return self._data_available.notify()

    @property
    def waiting(self) -> int:
        """Number of consumers blocked waiting for data."""
        return self._data_available.listeners

    def __len__(self) -> int:
        with self._lock:
            return len(self._items)

    def is_empty(self) -> bool:
        """Check if there is nothing to consume."""
        return len(self) == 0
