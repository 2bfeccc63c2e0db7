"""Severity assignment and noise reduction for injection responses."""

import threading
from collections import defaultdict
from dataclasses import dataclass

from mutascan.modules.models import Finding, InjectionAttempt
from mutascan.modules.mutation.detector import (
    CRITICAL_CLASSES,
    Detection,
    decoded_forms,
)
from mutascan.tools.http import HTTPResponse

BODY_BUCKET_BYTES = 64
DEFAULT_NOISE_THRESHOLD = 3

FINDING = "finding"
SAFE = "safe"
SUPPRESSED = "suppressed"
DUPLICATE = "duplicate"


@dataclass(frozen=True)
class Verdict:
    outcome: str
    finding: Finding | None = None
    reason: str = ""


def severity_for(vuln_class: str) -> str:
    return "critical" if vuln_class in CRITICAL_CLASSES else "medium"


def fingerprint(response: HTTPResponse, payload: str) -> tuple[int, int]:
    """Status code plus body-length bucket with the payload echo removed."""
    body = response.body
    for form in decoded_forms(payload):
        if form:
            body = body.replace(form, "")
    return (response.status_code, len(body) // BODY_BUCKET_BYTES)


class ResponseClassifier:
    """Turn detections into findings, dropping generic pages and repeats.

    Only candidate responses enter the fingerprint history. A candidate is
    suppressed when its fingerprint was already recorded on the same page
    for at least ``noise_threshold`` payloads of other lineages; timing
    detections are exempt. Findings are unique on ``(url, vuln_type, payload)``.
    """

    def __init__(self, noise_threshold: int = DEFAULT_NOISE_THRESHOLD):
        self.noise_threshold = noise_threshold
        self._lock = threading.Lock()
        self._fingerprints: dict[tuple[str, tuple[int, int]], set[int]] = defaultdict(set)
        self._keys: set[tuple[str, str, str]] = set()

    def classify(
        self,
        attempt: InjectionAttempt,
        response: HTTPResponse,
        detection: Detection | None,
        lineage_root: int,
    ) -> Verdict:
        if detection is None:
            return Verdict(SAFE)
        page = attempt.discovered.url
        shape = fingerprint(response, attempt.payload.template)
        with self._lock:
            others = 0
            if not detection.timed:
                roots = self._fingerprints[(page, shape)]
                others = len(roots - {lineage_root})
                roots.add(lineage_root)
            if others >= self.noise_threshold:
                return Verdict(
                    SUPPRESSED,
                    reason=f"fingerprint {shape} seen for {others} unrelated payloads",
                )
            finding = Finding(
                url=attempt.url,
                vuln_type=detection.label(attempt.point),
                payload=attempt.payload.template,
                status_code=response.status_code,
                timing_ms=response.elapsed_ms,
                curl_cmd=attempt.curl_cmd,
                severity=severity_for(detection.vuln_class),
                target=attempt.discovered.target.url,
                server=response.server or None,
                details={"evidence": detection.evidence, "payload_id": attempt.payload.id},
            )
            if finding.key in self._keys:
                return Verdict(DUPLICATE)
            self._keys.add(finding.key)
            return Verdict(FINDING, finding)

    def admit(self, finding: Finding) -> bool:
        """Dedup a finding produced outside the mutation engine."""
        with self._lock:
            if finding.key in self._keys:
                return False
            self._keys.add(finding.key)
            return True
