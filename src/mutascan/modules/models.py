"""Value objects shared by the scan pipeline."""

import shlex
from dataclasses import asdict, dataclass, field
from typing import Any


@dataclass(frozen=True)
class Target:
    """A normalized scan target URL."""

    url: str
    index: int
    host: str


@dataclass(frozen=True)
class DiscoveredURL:
    """A URL found for a target, either the seed itself or a crawler hit."""

    target: Target
    url: str
    source: str = "seed"
    depth: int = 0


@dataclass(frozen=True)
class Payload:
    """One entry of the payload arena.

    ``parent`` is the arena index of the payload this one was derived from,
    ``transform`` the name of the evasion transform that derived it.
    """

    id: int
    category: str
    template: str
    parent: int | None = None
    transform: str | None = None


@dataclass(frozen=True)
class InjectionPoint:
    """Where a payload is placed: a query/form parameter or the URL path."""

    kind: str
    name: str


@dataclass(frozen=True)
class InjectionAttempt:
    """A single request: a payload placed at one point of one discovered URL."""

    discovered: DiscoveredURL
    payload: Payload
    point: InjectionPoint
    url: str
    method: str = "GET"
    body: str | None = None
    headers: tuple[tuple[str, str], ...] = ()
    proxy: str | None = None
    timeout: float = 5.0

    @property
    def curl_cmd(self) -> str:
        """Shell command reproducing this exact request."""
        parts = ["curl", "-s", "-i", "-k", "-g", "--path-as-is", "-X", self.method]
        for name, value in self.headers:
            parts.extend(["-H", f"{name}: {value}"])
        if self.body is not None:
            parts.extend(["--data-raw", self.body])
        if self.proxy:
            parts.extend(["-x", self.proxy])
        parts.append(self.url)
        return " ".join(shlex.quote(part) for part in parts)


@dataclass(frozen=True)
class Finding:
    """A classified, deduplicated detection."""

    url: str
    vuln_type: str
    payload: str
    status_code: int
    timing_ms: int
    curl_cmd: str
    severity: str
    target: str
    source: str = "engine"
    server: str | None = None
    details: dict[str, Any] = field(default_factory=dict, compare=False, hash=False)

    @property
    def key(self) -> tuple[str, str, str]:
        return (self.url, self.vuln_type, self.payload)

    def to_event(self) -> dict[str, Any]:
        """Payload of a ``scan-finding`` event."""
        return {
            "url": self.url,
            "vuln_type": self.vuln_type,
            "payload": self.payload,
            "status_code": self.status_code,
            "timing_ms": self.timing_ms,
            "server": self.server,
            "curl_cmd": self.curl_cmd,
        }

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)
