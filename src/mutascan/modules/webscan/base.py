"""Base contract for external tool integrations."""

from abc import ABC
from collections.abc import Callable

from .runtime import stream_jsonl

# (level, message) sink, usually EventBus.log
Reporter = Callable[[str, str], object]


def _no_report(level: str, message: str) -> None:
    return None


class ToolIntegration(ABC):
    """An external binary driven through the JSON-lines process adapter.

    ``command_runner`` has the signature of :func:`stream_jsonl` and is
    swapped out in tests.
    """

    name: str
    binary: str

    def __init__(
        self,
        command_runner: Callable[..., object] | None = None,
        report: Reporter | None = None,
    ):
        self._runner = command_runner or stream_jsonl
        self._report = report or _no_report
