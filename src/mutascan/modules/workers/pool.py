"""Fixed-size asyncio worker pool with rate limiting and cancellation."""

import asyncio
import logging
from collections.abc import Awaitable, Callable
from dataclasses import dataclass

from .cancel import CancelToken
from .rate_limit import TokenBucket

logger = logging.getLogger(__name__)

Work = Callable[[], Awaitable[object]]


@dataclass
class _Unit:
    work: Work
    label: str
    rate_limited: bool
    timeout: float | None


_STOP = object()


class WorkerPool:
    """Run submitted units on ``size`` workers pulling from one queue.

    Every rate-limited unit takes a token from ``limiter`` before it starts.
    Once ``cancel`` fires, queued units are discarded unrun; a unit already
    running finishes or hits its timeout.
    """

    def __init__(
        self,
        size: int,
        cancel: CancelToken,
        limiter: TokenBucket | None = None,
        timeout: float | None = None,
        backlog: int | None = None,
    ):
        if size <= 0:
            raise ValueError(f"pool size must be > 0, got {size}")
        self.size = size
        self._cancel = cancel
        self._limiter = limiter
        self._timeout = timeout
        self._queue: asyncio.Queue = asyncio.Queue(maxsize=backlog if backlog else size * 4)
        self._workers: list[asyncio.Task] = []
        self.in_flight = 0
        self.peak_in_flight = 0
        self.completed = 0
        self.failed = 0
        self.timed_out = 0
        self.skipped = 0

    async def __aenter__(self) -> "WorkerPool":
        self.start()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        await self.close()

    def start(self) -> None:
        if self._workers:
            return
        self._workers = [
            asyncio.create_task(self._worker(index), name=f"worker-{index}")
            for index in range(self.size)
        ]

    async def submit(
        self,
        work: Work,
        label: str = "",
        rate_limited: bool = True,
        timeout: float | None = None,
    ) -> bool:
        """Queue a unit. Returns False without queueing once cancelled."""
        if self._cancel.cancelled:
            return False
        await self._queue.put(
            _Unit(work, label, rate_limited, timeout if timeout is not None else self._timeout)
        )
        return True

    async def join(self) -> None:
        """Wait until every queued unit has run or been discarded."""
        await self._queue.join()

    async def close(self) -> None:
        if not self._workers:
            return
        for _ in self._workers:
            await self._queue.put(_STOP)
        await asyncio.gather(*self._workers)
        self._workers = []

    async def _worker(self, index: int) -> None:
        while True:
            item = await self._queue.get()
            try:
                if item is _STOP:
                    return
                await self._run(item)
            finally:
                self._queue.task_done()

    async def _run(self, unit: _Unit) -> None:
        if self._cancel.cancelled:
            self.skipped += 1
            return
        if unit.rate_limited and self._limiter is not None:
            if not await self._limiter.acquire(self._cancel):
                self.skipped += 1
                return
        # Checked again right before the call: the token wait may have been long.
        if self._cancel.cancelled:
            self.skipped += 1
            return

        self.in_flight += 1
        self.peak_in_flight = max(self.peak_in_flight, self.in_flight)
        try:
            if unit.timeout:
                await asyncio.wait_for(unit.work(), timeout=unit.timeout)
            else:
                await unit.work()
        except TimeoutError:
            self.timed_out += 1
            logger.debug("Work unit %s timed out after %ss", unit.label, unit.timeout)
        except Exception:
            self.failed += 1
            logger.warning("Work unit %s failed", unit.label, exc_info=True)
        else:
            self.completed += 1
        finally:
            self.in_flight -= 1
