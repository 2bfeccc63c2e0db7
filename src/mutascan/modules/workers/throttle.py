"""Adaptive backoff when a target starts refusing requests."""

import asyncio

BLOCK_STATUSES = frozenset({429, 403})
INITIAL_BACKOFF_MS = 50
MAX_DELAY_MS = 2000
DECAY_MS = 10


class ThrottleController:
    """Exponential backoff on 429/403 responses.

    Delay goes 0, 50, 100, 200 ... up to 2000 ms while blocks repeat and
    decays by 10 ms for every other response.
    """

    def __init__(self):
        self.delay_ms = 0
        self.consecutive_blocks = 0
        self.total_throttled = 0

    async def wait(self) -> None:
        if self.delay_ms > 0:
            await asyncio.sleep(self.delay_ms / 1000)

    def record_response(self, status: int) -> bool:
        """Update the delay. Returns True when this response escalated it."""
        if status in BLOCK_STATUSES:
            self.consecutive_blocks += 1
            self.total_throttled += 1
            shift = min(self.consecutive_blocks - 1, 6)
            self.delay_ms = min(INITIAL_BACKOFF_MS * (1 << shift), MAX_DELAY_MS)
            return True
        self.consecutive_blocks = 0
        if self.delay_ms > 0:
            self.delay_ms = max(0, self.delay_ms - DECAY_MS)
        return False
