"""Injection points of a discovered URL and the attempts built from them."""

import re
from collections.abc import Iterator
from urllib.parse import parse_qsl, quote, urljoin, urlsplit, urlunsplit

from mutascan.config import ScanConfig
from mutascan.modules.models import DiscoveredURL, InjectionAttempt, InjectionPoint, Payload

from .catalog import PayloadArena, is_traversal
from .detector import request_timeout

# Parameters whose value is likely a file name.
FILE_PARAMS = frozenset(
    {
        "file",
        "path",
        "page",
        "doc",
        "document",
        "filename",
        "folder",
        "include",
        "template",
        "dir",
        "download",
    }
)
FORM_PARAMS = ("q", "id", "username")
_FORM_PATH = re.compile(
    r"(login|signin|sign-in|register|signup|search|contact|comment|feedback|subscribe|"
    r"submit|query|reset)$|\.(php|asp|aspx|jsp|cgi|pl)$",
    re.IGNORECASE,
)
_FILE_SEGMENT = re.compile(r"\.(php|asp|aspx|jsp|conf|config|ini|xml|json|yml|yaml|sql|env)$", re.I)
BACKUP_SUFFIXES = (".bak", "~", ".old", ".swp")
# Backup names are tried only next to the file they were derived from.
BACKUP_TRANSFORM = "backup"

FORM_CONTENT_TYPE = "application/x-www-form-urlencoded"
# Request headers injected once per target, on the seed URL.
HEADER_POINTS = ("User-Agent", "Referer", "X-Forwarded-For")


def encode_value(value: str) -> str:
    """Percent-encode a parameter value, keeping escapes already in it."""
    return quote(value, safe="%")


def build_query(pairs: list[tuple[str, str]], name: str, payload: str) -> str:
    parts = []
    for key, value in pairs:
        encoded = encode_value(payload) if key == name else quote(value, safe="")
        parts.append(f"{quote(key, safe='')}={encoded}")
    return "&".join(parts)


def is_form_like(url: str) -> bool:
    parts = urlsplit(url)
    last = parts.path.rstrip("/").rsplit("/", 1)[-1]
    return not parts.query and bool(last) and bool(_FORM_PATH.search(last))


def injection_points(url: str, headers: bool = False) -> list[InjectionPoint]:
    """Query parameters, form parameters for form-like paths, and the path itself.

    With ``headers`` the request headers in :data:`HEADER_POINTS` are added.
    """
    points: list[InjectionPoint] = []
    seen: set[str] = set()
    for key, _ in parse_qsl(urlsplit(url).query, keep_blank_values=True):
        if key and key not in seen:
            seen.add(key)
            points.append(InjectionPoint("query", key))
    if is_form_like(url):
        points.extend(InjectionPoint("form", name) for name in FORM_PARAMS)
    points.append(InjectionPoint("path", "path"))
    if headers:
        points.extend(InjectionPoint("header", name) for name in HEADER_POINTS)
    return points


def path_candidate(url: str, payload: Payload) -> str:
    """Resolve a file payload against the directory of ``url``."""
    parts = urlsplit(url)
    base = urlunsplit((parts.scheme, parts.netloc, parts.path, "", ""))
    return urljoin(base, payload.template)


def backup_candidates(url: str) -> list[str]:
    """Backup copies of a file-like last path segment (``config.php`` -> ``config.php.bak``)."""
    parts = urlsplit(url)
    last = parts.path.rsplit("/", 1)[-1]
    if not last or not _FILE_SEGMENT.search(last):
        return []
    return [
        urlunsplit((parts.scheme, parts.netloc, parts.path + suffix, "", ""))
        for suffix in BACKUP_SUFFIXES
    ]


def payloads_for(point: InjectionPoint, arena: PayloadArena) -> list[Payload]:
    if point.kind == "path":
        return [
            p
            for p in arena.by_category("file")
            if not is_traversal(p.template) and p.transform != BACKUP_TRANSFORM
        ]
    if point.kind == "header":
        # httpx only sends printable ASCII header values.
        return [
            p
            for p in arena.by_category("sqli", "custom")
            if p.template.isascii() and p.template.isprintable()
        ]
    payloads = arena.by_category("xss", "sqli", "custom")
    if point.name.lower() in FILE_PARAMS:
        payloads += [p for p in arena.by_category("file") if is_traversal(p.template)]
    return payloads


def plan_attempts(
    discovered: DiscoveredURL,
    arena: PayloadArena,
    config: ScanConfig,
    planned: set[tuple[str, str, str | None, str | None]] | None = None,
) -> Iterator[InjectionAttempt]:
    """Yield every attempt for one discovered URL in a stable order.

    ``planned`` holds ``(method, url, body, header)`` of requests already
    planned in this scan; repeats (e.g. ``/.env`` reached from many pages) are skipped.
    """
    planned = planned if planned is not None else set()
    headers = tuple(config.parsed_headers().items())
    url = discovered.url
    parts = urlsplit(url)
    pairs = parse_qsl(parts.query, keep_blank_values=True)

    def make(point: InjectionPoint, payload: Payload, method: str, target: str, body=None):
        injected = point.name if point.kind == "header" else None
        key = (method, target, body, injected)
        if key in planned:
            return None
        planned.add(key)
        request_headers = headers
        if injected is not None:
            request_headers = tuple(
                (name, value) for name, value in headers if name.lower() != injected.lower()
            ) + ((injected, payload.template),)
        if body is not None:
            request_headers = headers + (("Content-Type", FORM_CONTENT_TYPE),)
        return InjectionAttempt(
            discovered=discovered,
            payload=payload,
            point=point,
            url=target,
            method=method,
            body=body,
            headers=request_headers,
            proxy=config.proxy,
            timeout=request_timeout(payload, config),
        )

    for point in injection_points(url, headers=discovered.source == "seed"):
        for payload in payloads_for(point, arena):
            if point.kind == "query":
                query = build_query(pairs, point.name, payload.template)
                target = urlunsplit((parts.scheme, parts.netloc, parts.path, query, ""))
                attempt = make(point, payload, "GET", target)
            elif point.kind == "header":
                attempt = make(point, payload, "GET", url)
            elif point.kind == "form":
                body = f"{point.name}={encode_value(payload.template)}"
                attempt = make(point, payload, "POST", url, body)
            else:
                attempt = make(point, payload, "GET", path_candidate(url, payload))
            if attempt is not None:
                yield attempt

    backup_point = InjectionPoint("path", "backup")
    for target in backup_candidates(url):
        payload = arena.add("file", target.rsplit("/", 1)[-1], transform=BACKUP_TRANSFORM)
        attempt = make(backup_point, payload, "GET", target)
        if attempt is not None:
            yield attempt
