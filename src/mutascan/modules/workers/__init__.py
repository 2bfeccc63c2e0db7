"""Bounded concurrent execution: worker pool, rate limiter, throttle, cancellation."""

from .cancel import CancelToken
from .pool import WorkerPool
from .rate_limit import TokenBucket, split_rate
from .throttle import ThrottleController

__all__ = [
    "CancelToken",
    "ThrottleController",
    "TokenBucket",
    "WorkerPool",
    "split_rate",
]
