"""Scan lifecycle: state machine, statistics and the coordinator."""

from .state import InvalidTransitionError, ScanState, ScanStats, StatsSnapshot
from .checkpoint import ScanCheckpoint
from .coordinator import ScanCoordinator, ScanReport
from .output import build_document, write_json_atomic

__all__ = [
    "InvalidTransitionError",
    "ScanCheckpoint",
    "ScanCoordinator",
    "ScanReport",
    "ScanState",
    "ScanStats",
    "StatsSnapshot",
    "build_document",
    "write_json_atomic",
]
