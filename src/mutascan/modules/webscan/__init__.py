"""External tool integrations and the JSON-lines process adapter."""

from .base import ToolIntegration
from .plugins import CrawlResult, KatanaCrawler, NucleiResult, NucleiScanner
from .runtime import JsonlResult, collect_jsonl, resolve_binary, stream_jsonl

__all__ = [
    "CrawlResult",
    "JsonlResult",
    "KatanaCrawler",
    "NucleiResult",
    "NucleiScanner",
    "ToolIntegration",
    "collect_jsonl",
    "resolve_binary",
    "stream_jsonl",
]
