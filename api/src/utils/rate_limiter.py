import threading
import time
from collections import deque
from typing import Callable, Deque, Optional


class RateLimiter:
    """Thread-safe rolling window allowing `max_calls` outbound calls per `period` seconds.

    Shared by every in-flight request that goes through one embedding client.
    """

    def __init__(
        self,
        max_calls: int,
        period: float = 60.0,
        *,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        if max_calls < 1:
            raise ValueError("max_calls must be >= 1")
        self.max_calls = max_calls
        self.period = period
        self._clock = clock
        self._sleep = sleep
        self._calls: Deque[float] = deque()
        self._lock = threading.Lock()

    def _reserve(self) -> float:
        """Record a call if the window allows it; otherwise return how long to wait."""
        with self._lock:
            now = self._clock()
            while self._calls and (now - self._calls[0]) >= self.period:
                self._calls.popleft()
            if len(self._calls) < self.max_calls:
                self._calls.append(now)
                return 0.0
            return max(0.0, self.period - (now - self._calls[0]))

    def acquire(self, abort: Optional[threading.Event] = None) -> bool:
        """Block until another call fits in the window.

        Returns False without taking a slot if `abort` is set before one frees up.
        """
        while True:
            if abort is not None and abort.is_set():
                return False
            wait = self._reserve()
            if wait <= 0:
                return True
            if abort is not None:
                abort.wait(wait)
            else:
                self._sleep(wait)

    def in_window(self) -> int:
        with self._lock:
            return len(self._calls)
