"""Nuclei template scanner integration."""

import contextlib
import logging
import re
import shlex
import tempfile
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

from mutascan.config import ScanConfig
from mutascan.errors import ProcessError, ProcessNotFoundError, ProcessTimeoutError
from mutascan.modules.models import DiscoveredURL, Finding, Target
from mutascan.modules.workers import CancelToken

from ..base import ToolIntegration
from ..runtime import resolve_binary

logger = logging.getLogger(__name__)

_STATUS_LINE = re.compile(r"^HTTP/[\d.]+\s+(\d{3})")


def _normalize_severity(value: str) -> str:
    normalized = value.strip().lower()
    mapping = {
        "critical": "critical",
        "high": "critical",
        "medium": "medium",
        "low": "medium",
        "info": "medium",
        "informational": "medium",
    }
    return mapping.get(normalized, "medium")


def _status_from_response(raw: Any) -> int:
    if isinstance(raw, str):
        match = _STATUS_LINE.match(raw)
        if match:
            return int(match.group(1))
    return 0


@dataclass
class NucleiResult:
    """Findings from one nuclei run over a target's URL list."""

    target: Target
    findings: list[Finding] = field(default_factory=list)
    timed_out: bool = False
    errors: list[str] = field(default_factory=list)


class NucleiScanner(ToolIntegration):
    """Run nuclei templates over discovered URLs and map detections to findings."""

    name = "nuclei"
    binary = "nuclei"

    def available(self, config: ScanConfig) -> bool:
        """Whether a scan with ``config`` would actually run nuclei."""
        return config.enable_nuclei and resolve_binary(self.binary) is not None

    def build_command(
        self,
        binary: str,
        list_path: Path,
        config: ScanConfig,
        rate_limit: int | None = None,
    ) -> list[str]:
        concurrency = "50" if config.advanced else "25"
        command = [
            binary,
            "-l",
            str(list_path),
            "-jsonl",
            "-silent",
            "-timeout",
            str(max(1, int(config.timeout))),
            "-rate-limit",
            str(rate_limit or config.rate_limit),
            "-c",
            concurrency,
        ]
        if config.tags:
            command.extend(["-tags", config.tags])
        elif config.advanced:
            command.extend(["-severity", "low,medium,high,critical"])
        else:
            command.extend(["-type", "dns,http", "-severity", "high,critical"])
        if config.proxy:
            command.extend(["-proxy", config.proxy])
        for header in config.headers:
            command.extend(["-H", header])
        return command

    async def scan(
        self,
        target: Target,
        urls: list[DiscoveredURL],
        config: ScanConfig,
        cancel: CancelToken | None = None,
        timeout: float | None = None,
        rate_limit: int | None = None,
    ) -> NucleiResult:
        """Run nuclei over ``urls``; ``rate_limit`` overrides the configured rate."""
        result = NucleiResult(target=target)
        if not config.enable_nuclei or not urls:
            return result

        binary = resolve_binary(self.binary)
        if not binary:
            message = f"{ProcessNotFoundError(self.binary)}; template scan skipped"
            result.errors.append(message)
            self._report("warn", f"[!] {message}")
            return result

        self._report("phase", f"[*] Launching Nuclei on: {target.url} ({len(urls)} URLs)")
        if config.tags and config.verbose:
            self._report("info", f"[DEBUG] Custom tags active: {config.tags}")

        with tempfile.TemporaryDirectory(prefix="mutascan-nuclei-") as tmpdir:
            list_path = Path(tmpdir) / "urls.txt"
            list_path.write_text("\n".join(item.url for item in urls) + "\n", encoding="utf-8")
            command = self.build_command(binary, list_path, config, rate_limit)
            try:
                async with contextlib.aclosing(
                    self._runner(command, timeout=timeout, cancel=cancel, verbose=config.verbose)
                ) as records:
                    async for record in records:
                        finding = self._to_finding(record, target, config)
                        if finding is None:
                            continue
                        result.findings.append(finding)
                        if config.verbose:
                            self._report("info", f"[DEBUG] Template: {finding.vuln_type}")
            except ProcessTimeoutError:
                result.timed_out = True
                self._report(
                    "warn", f"[!] Nuclei timed out on {target.url}; keeping partial results"
                )
            except ProcessError as exc:
                result.errors.append(str(exc))
                self._report("warn", f"[!] Nuclei failed on {target.url}: {exc}")

        if result.findings:
            self._report("success", f"[*] Nuclei finished. {len(result.findings)} finding(s).")
        else:
            self._report("info", "[*] Nuclei finished. No findings.")
        return result

    def _to_finding(
        self, record: dict[str, Any], target: Target, config: ScanConfig
    ) -> Finding | None:
        info = record.get("info") if isinstance(record.get("info"), dict) else {}
        template_id = str(record.get("template-id") or record.get("template_id") or "").strip()
        name = str(info.get("name") or "").strip()
        if not (template_id or name):
            logger.debug("nuclei record without template id: %s", record)
            return None
        matched = str(
            record.get("matched-at") or record.get("matched_at") or record.get("host") or target.url
        ).strip()
        payload = str(record.get("matcher-name") or "").strip()
        if not payload:
            extracted = record.get("extracted-results")
            if isinstance(extracted, list) and extracted:
                payload = ", ".join(str(item) for item in extracted[:3])
        curl_cmd = str(record.get("curl-command") or "").strip()
        if not curl_cmd:
            curl_cmd = shlex.join(["nuclei", "-u", matched, "-id", template_id or name])
        return Finding(
            url=matched,
            vuln_type=template_id or name,
            payload=payload,
            status_code=_status_from_response(record.get("response")),
            timing_ms=0,
            curl_cmd=curl_cmd,
            severity=_normalize_severity(str(info.get("severity") or "")),
            target=target.url,
            source=self.name,
            server=None,
            details={"name": name, "severity": str(info.get("severity") or "unknown")},
        )
