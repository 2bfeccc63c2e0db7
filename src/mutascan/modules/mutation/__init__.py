"""Payload catalog, evasion transforms, injection planning and detection.

The engine that drives injection requests lives in :mod:`mutascan.modules.mutation.engine`.
"""

from .catalog import PayloadArena, load_catalog, parse_payload_line
from .detector import Baseline, Detection, detect
from .injection import injection_points, plan_attempts
from .transforms import PIPELINE, mutate_arena

__all__ = [
    "Baseline",
    "Detection",
    "PIPELINE",
    "PayloadArena",
    "detect",
    "injection_points",
    "load_catalog",
    "mutate_arena",
    "parse_payload_line",
    "plan_attempts",
]
