"""Event loop management for the CLI."""

import asyncio
import gc
import signal
import sys
import threading
from collections.abc import Callable, Coroutine
from typing import Any, TypeVar, cast

T = TypeVar("T")

STOP_SIGNALS = (signal.SIGINT, signal.SIGTERM)


class _SignalBridge:
    """Map SIGINT/SIGTERM onto a scan running in ``loop``.

    The first signal calls ``on_interrupt`` (a graceful stop that still
    writes results); the next one, or the first when there is no callback,
    cancels every task. Handlers are only installed on the Unix main thread
    and are restored on exit.
    """

    def __init__(
        self,
        loop: asyncio.AbstractEventLoop,
        on_interrupt: Callable[[], object] | None,
    ):
        self.loop = loop
        self.on_interrupt = on_interrupt
        self.received = 0
        self.hard_stop = False
        self._previous: dict[int, Any] = {}

    @property
    def enabled(self) -> bool:
        return sys.platform != "win32" and threading.current_thread() is threading.main_thread()

    def __enter__(self) -> "_SignalBridge":
        if self.enabled:
            for sig in STOP_SIGNALS:
                self._previous[sig] = signal.signal(sig, self._handle)
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        for sig, handler in self._previous.items():
            signal.signal(sig, handler)
        self._previous.clear()

    def _handle(self, signum: int, frame: Any) -> None:
        self.received += 1
        if self.on_interrupt is not None and self.received == 1:
            self.loop.call_soon_threadsafe(self.on_interrupt)
            return
        self.hard_stop = True
        for task in asyncio.all_tasks(self.loop):
            self.loop.call_soon_threadsafe(task.cancel)


def _close_loop(loop: asyncio.AbstractEventLoop) -> None:
    try:
        pending = asyncio.all_tasks(loop)
        for task in pending:
            task.cancel()
        if pending:
            loop.run_until_complete(asyncio.gather(*pending, return_exceptions=True))
        loop.run_until_complete(loop.shutdown_asyncgens())
        loop.run_until_complete(loop.shutdown_default_executor())
    finally:
        # katana/nuclei transports must be collected while the loop is open
        gc.collect()
        asyncio.set_event_loop(None)
        loop.close()


def _run_in_fresh_loop(
    coro: Coroutine[Any, Any, T],
    on_interrupt: Callable[[], object] | None = None,
) -> T:
    loop = asyncio.new_event_loop()
    asyncio.set_event_loop(loop)
    with _SignalBridge(loop, on_interrupt) as bridge:
        try:
            return loop.run_until_complete(coro)
        except asyncio.CancelledError:
            if bridge.hard_stop:
                raise KeyboardInterrupt from None
            raise
        finally:
            _close_loop(loop)


def safe_async_run(
    coro: Coroutine[Any, Any, T],
    on_interrupt: Callable[[], object] | None = None,
) -> T:
    """
    Run an async coroutine in its own event loop and tear the loop down cleanly.

    If an event loop is already running in this thread (e.g. pytest-asyncio),
    the coroutine is executed in a separate thread with its own event loop.
    """
    try:
        asyncio.get_running_loop()
    except RuntimeError:
        return _run_in_fresh_loop(coro, on_interrupt)

    outcome: dict[str, Any] = {}

    def _runner() -> None:
        try:
            outcome["result"] = _run_in_fresh_loop(coro, on_interrupt)
        except BaseException as exc:
            outcome["error"] = exc

    thread = threading.Thread(target=_runner, name="mutascan-loop", daemon=True)
    thread.start()
    thread.join()

    if "error" in outcome:
        raise outcome["error"]
    return cast(T, outcome.get("result"))
