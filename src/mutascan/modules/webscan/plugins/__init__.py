"""External tool integrations."""

from .katana import CrawlResult, KatanaCrawler
from .nuclei import NucleiResult, NucleiScanner

__all__ = [
    "CrawlResult",
    "KatanaCrawler",
    "NucleiResult",
    "NucleiScanner",
]
