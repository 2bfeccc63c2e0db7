"""Scan lifecycle states and running statistics."""

import threading
import time
from dataclasses import dataclass
from enum import Enum

from mutascan.errors import MutascanError


class ScanState(str, Enum):
    """
    Scan lifecycle.

        IDLE ──start──► RUNNING ──done──► FINISHED
          │                │
          │                ├──stop──► CANCELLED
          │                └──fatal──► ERROR
          └──setup failure──► ERROR

    FINISHED, CANCELLED and ERROR are terminal; the next ``start`` begins
    from a fresh state.
    """

    IDLE = "idle"
    RUNNING = "running"
    FINISHED = "finished"
    ERROR = "error"
    CANCELLED = "cancelled"

    @property
    def terminal(self) -> bool:
        return self in (ScanState.FINISHED, ScanState.ERROR, ScanState.CANCELLED)


_TRANSITIONS = {
    ScanState.IDLE: {ScanState.RUNNING, ScanState.ERROR},
    ScanState.RUNNING: {ScanState.FINISHED, ScanState.ERROR, ScanState.CANCELLED},
}


class InvalidTransitionError(MutascanError):
    """A lifecycle transition the state machine does not allow."""


def check_transition(current: ScanState, new: ScanState) -> None:
    if new not in _TRANSITIONS.get(current, set()):
        raise InvalidTransitionError(f"cannot move scan from {current.value} to {new.value}")


@dataclass(frozen=True)
class StatsSnapshot:
    targets: int
    urls: int
    critical: int
    medium: int
    safe: int
    elapsed: float
    requests: int
    errors: int
    suppressed: int

    def to_event(self) -> dict[str, int | float]:
        """Counters carried by ``scan-complete``."""
        return {
            "targets": self.targets,
            "urls": self.urls,
            "critical": self.critical,
            "medium": self.medium,
            "safe": self.safe,
            "elapsed": round(self.elapsed, 3),
        }


class ScanStats:
    """Running counters guarded by one lock. Counters only ever grow."""

    COUNTERS = ("targets", "urls", "critical", "medium", "safe", "requests", "errors", "suppressed")

    def __init__(self):
        self._lock = threading.Lock()
        self._counts = dict.fromkeys(self.COUNTERS, 0)
        self._started: float | None = None
        self._stopped: float | None = None

    def reset(self) -> None:
        with self._lock:
            self._counts = dict.fromkeys(self.COUNTERS, 0)
            self._started = time.monotonic()
            self._stopped = None

    def freeze(self) -> None:
        """Stop the elapsed clock."""
        with self._lock:
            if self._started is not None and self._stopped is None:
                self._stopped = time.monotonic()

    def increment(self, counter: str, amount: int = 1) -> None:
        if counter not in self._counts:
            raise KeyError(counter)
        if amount < 0:
            raise ValueError("stats counters cannot decrease")
        with self._lock:
            self._counts[counter] += amount

    def snapshot(self) -> StatsSnapshot:
        with self._lock:
            if self._started is None:
                elapsed = 0.0
            else:
                end = self._stopped if self._stopped is not None else time.monotonic()
                elapsed = end - self._started
            return StatsSnapshot(elapsed=elapsed, **self._counts)
