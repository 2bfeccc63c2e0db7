"""Katana crawler integration."""

import contextlib
import logging
from dataclasses import dataclass, field
from typing import Any
from urllib.parse import urlsplit

from mutascan.config import ScanConfig
from mutascan.errors import ProcessError, ProcessNotFoundError, ProcessTimeoutError
from mutascan.modules.models import DiscoveredURL, Target
from mutascan.modules.targets import normalize_url
from mutascan.modules.workers import CancelToken

from ..base import ToolIntegration
from ..runtime import resolve_binary

logger = logging.getLogger(__name__)

SIMPLE_CRAWL_DURATION = 30


@dataclass
class CrawlResult:
    """URLs discovered for one target. ``urls[0]`` is always the seed."""

    target: Target
    urls: list[DiscoveredURL] = field(default_factory=list)
    timed_out: bool = False
    errors: list[str] = field(default_factory=list)


def extract_url(record: dict[str, Any]) -> str | None:
    """Pull the discovered URL out of a katana JSONL record."""
    for key in ("endpoint", "url"):
        value = record.get(key)
        if isinstance(value, str) and value:
            return value
    request = record.get("request")
    if isinstance(request, dict):
        for key in ("endpoint", "url"):
            value = request.get(key)
            if isinstance(value, str) and value:
                return value
    return None


def _record_depth(record: dict[str, Any]) -> int:
    request = record.get("request")
    raw = request.get("depth") if isinstance(request, dict) else record.get("depth")
    try:
        return max(1, int(raw))
    except (TypeError, ValueError):
        return 1


class KatanaCrawler(ToolIntegration):
    """Discover in-scope URLs of a target with katana."""

    name = "katana"
    binary = "katana"

    def build_command(self, binary: str, target: Target, config: ScanConfig) -> list[str]:
        command = [binary, "-u", target.url, "-jsonl", "-silent", "-d", str(config.crawler_depth)]
        if not config.advanced:
            duration = min(SIMPLE_CRAWL_DURATION, int(config.crawler_timeout))
            command.extend(["-crawl-duration", f"{max(1, duration)}s"])
        command.extend(["-timeout", str(max(1, int(config.timeout)))])
        command.extend(["-rate-limit", str(config.rate_limit)])
        if config.proxy:
            command.extend(["-proxy", config.proxy])
        for header in config.headers:
            command.extend(["-H", header])
        return command

    async def crawl(
        self,
        target: Target,
        config: ScanConfig,
        cancel: CancelToken | None = None,
    ) -> CrawlResult:
        """Return the seed plus up to ``crawler_max_urls - 1`` crawled URLs."""
        seed = DiscoveredURL(target=target, url=target.url, source="seed", depth=0)
        result = CrawlResult(target=target, urls=[seed])
        if not config.enable_crawler:
            return result

        binary = resolve_binary(self.binary)
        if not binary:
            message = f"{ProcessNotFoundError(self.binary)}; crawling skipped for {target.url}"
            result.errors.append(message)
            self._report("warn", f"[!] {message}")
            return result

        limit = max(1, config.crawler_max_urls)
        seen = {target.url}
        command = self.build_command(binary, target, config)
        self._report(
            "phase", f"[*] Starting Katana on target: {target.url} (depth: {config.crawler_depth})"
        )

        try:
            async with contextlib.aclosing(
                self._runner(
                    command,
                    timeout=config.crawler_timeout,
                    cancel=cancel,
                    verbose=config.verbose,
                )
            ) as records:
                async for record in records:
                    if len(result.urls) >= limit:
                        break
                    self._accept(record, target, config, seen, result)
                    if len(result.urls) >= limit:
                        self._report(
                            "info", f"[*] Reached URL cap ({limit}). Stopping crawler."
                        )
                        break
        except ProcessTimeoutError as exc:
            result.timed_out = True
            self._report(
                "warn",
                f"[!] Katana hit the {config.crawler_timeout:g}s crawl timeout on {target.url}; "
                f"keeping {len(result.urls)} URLs",
            )
            logger.debug("katana timeout with %d records", len(exc.records))
        except ProcessError as exc:
            result.errors.append(str(exc))
            self._report("warn", f"[!] Katana failed on {target.url}: {exc}")

        self._report("info", f"[*] Katana finished. Total unique URLs: {len(result.urls)}")
        return result

    def _accept(
        self,
        record: dict[str, Any],
        target: Target,
        config: ScanConfig,
        seen: set[str],
        result: CrawlResult,
    ) -> None:
        raw = extract_url(record)
        url = normalize_url(raw) if raw else None
        if url is None:
            return
        # Off-scope URLs never count toward the cap.
        if config.scope and (urlsplit(url).hostname or "") != target.host:
            return
        if url in seen:
            return
        seen.add(url)
        result.urls.append(
            DiscoveredURL(target=target, url=url, source="crawler", depth=_record_depth(record))
        )
        if config.verbose:
            self._report("info", f"[DEBUG] Discovered: {url}")
