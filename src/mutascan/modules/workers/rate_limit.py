"""Token bucket gating request starts."""

import asyncio
import time
from collections.abc import Callable

from .cancel import CancelToken


def split_rate(rate: int) -> tuple[int, float] | None:
    """Share ``rate`` between nuclei and the engine worker pool running side by side.

    Returns ``(nuclei, pool)`` requests per second, or ``None`` when the
    budget is too small to split and the two must take turns.
    """
    if rate < 2:
        return None
    nuclei = rate // 2
    return nuclei, float(rate - nuclei)


class TokenBucket:
    """Continuously refilled token bucket.

    ``rate`` tokens are added per second up to ``capacity``. The default
    capacity of one token paces starts evenly, so any one-second window
    holds at most ``rate`` starts plus the boundary token.
    """

    def __init__(
        self,
        rate: float,
        capacity: float | None = None,
        clock: Callable[[], float] = time.monotonic,
    ):
        if rate <= 0:
            raise ValueError(f"rate must be > 0, got {rate}")
        self.rate = float(rate)
        self.capacity = max(1.0, float(capacity if capacity is not None else 1.0))
        self._clock = clock
        self._tokens = self.capacity
        self._updated = clock()
        self._lock = asyncio.Lock()

    def _refill(self) -> None:
        now = self._clock()
        elapsed = max(0.0, now - self._updated)
        self._tokens = min(self.capacity, self._tokens + elapsed * self.rate)
        self._updated = now

    def set_rate(self, rate: float) -> None:
        """Change the refill rate; tokens accrued so far are kept."""
        if rate <= 0:
            raise ValueError(f"rate must be > 0, got {rate}")
        self._refill()
        self.rate = float(rate)

    def try_acquire(self) -> bool:
        """Take a token without waiting."""
        self._refill()
        if self._tokens >= 1.0:
            self._tokens -= 1.0
            return True
        return False

    async def acquire(self, cancel: CancelToken | None = None) -> bool:
        """Wait for a token. Returns False if ``cancel`` fired while waiting.

        Waiters queue on the lock, so tokens are handed out in arrival order.
        """
        async with self._lock:
            while not self.try_acquire():
                delay = (1.0 - self._tokens) / self.rate
                if cancel is None:
                    await asyncio.sleep(delay)
                elif await cancel.sleep(delay):
                    return False
            return True
