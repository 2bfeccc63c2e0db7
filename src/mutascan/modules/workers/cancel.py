"""Scan-wide cancellation signal."""

import asyncio
import threading


class CancelToken:
    """Single-writer, many-reader stop flag.

    ``cancel`` may be called from any thread; coroutines either poll
    :attr:`cancelled` or await :meth:`wait`.
    """

    def __init__(self):
        self._flag = threading.Event()
        self._loop: asyncio.AbstractEventLoop | None = None
        self._event: asyncio.Event | None = None

    @property
    def cancelled(self) -> bool:
        return self._flag.is_set()

    def bind(self) -> None:
        """Attach the token to the running event loop."""
        self._loop = asyncio.get_running_loop()
        self._event = asyncio.Event()
        if self._flag.is_set():
            self._event.set()

    def cancel(self) -> bool:
        """Set the flag. Returns False when it was already set."""
        if self._flag.is_set():
            return False
        self._flag.set()
        loop, event = self._loop, self._event
        if loop is None or event is None or loop.is_closed():
            return True
        try:
            running = asyncio.get_running_loop()
        except RuntimeError:
            running = None
        if running is loop:
            event.set()
        else:
            loop.call_soon_threadsafe(event.set)
        return True

    async def wait(self) -> None:
        if self._event is None or self._loop is not asyncio.get_running_loop():
            self.bind()
        assert self._event is not None
        await self._event.wait()

    async def sleep(self, delay: float) -> bool:
        """Sleep up to ``delay`` seconds. Returns True if cancelled meanwhile."""
        if self.cancelled:
            return True
        if delay <= 0:
            return False
        try:
            await asyncio.wait_for(self.wait(), timeout=delay)
        except TimeoutError:
            return False
        return True
