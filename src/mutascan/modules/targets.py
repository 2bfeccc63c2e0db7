"""Turn a target URL or a list file into the ordered set of scan targets."""

import logging
from collections.abc import Callable
from pathlib import Path
from urllib.parse import urlsplit, urlunsplit

from mutascan.errors import ConfigError

from .models import Target

logger = logging.getLogger(__name__)

DEFAULT_PORTS = {"http": 80, "https": 443}


def normalize_url(raw: str) -> str | None:
    """Return the canonical form of ``raw`` or ``None`` when it is not a web URL."""
    candidate = raw.strip()
    if not candidate:
        return None
    try:
        parts = urlsplit(candidate)
        port = parts.port
    except ValueError:
        return None
    scheme = parts.scheme.lower()
    host = (parts.hostname or "").lower()
    if scheme not in DEFAULT_PORTS or not host:
        return None
    if ":" in host:
        host = f"[{host}]"
    netloc = host if port in (None, DEFAULT_PORTS[scheme]) else f"{host}:{port}"
    if parts.username:
        credentials = parts.username
        if parts.password:
            credentials = f"{credentials}:{parts.password}"
        netloc = f"{credentials}@{netloc}"
    return urlunsplit((scheme, netloc, parts.path or "/", parts.query, ""))


def _read_list_file(path: Path) -> list[str]:
    try:
        text = path.read_text(encoding="utf-8", errors="replace")
    except OSError as exc:
        raise ConfigError(f"cannot read target list {path}: {exc.strerror or exc}") from exc
    return text.splitlines()


def resolve_targets(
    target: str | None,
    list_file: str | Path | None = None,
    warn: Callable[[str], None] | None = None,
) -> list[Target]:
    """Resolve scan targets preserving first-seen order.

    The list file wins over ``target`` when both are given. Invalid lines
    are reported through ``warn`` and skipped.
    """
    if list_file:
        path = Path(list_file)
        lines = _read_list_file(path)
        origin = str(path)
    elif target and target.strip():
        lines = [target]
        origin = "target argument"
    else:
        raise ConfigError("no target given: pass a URL or a list file with -l/--list")
    return build_targets(lines, origin, warn)


def build_targets(
    lines: list[str],
    origin: str,
    warn: Callable[[str], None] | None = None,
) -> list[Target]:
    """Normalize and dedupe ``lines`` into indexed targets.

    ``origin`` names the source in warnings and in the error raised when
    no valid URL remains.
    """
    targets: list[Target] = []
    seen: set[str] = set()
    for lineno, line in enumerate(lines, start=1):
        entry = line.strip()
        if not entry or entry.startswith("#"):
            continue
        url = normalize_url(entry)
        if url is None:
            message = f"Skipping invalid target on line {lineno} of {origin}: {entry!r}"
            logger.warning(message)
            if warn is not None:
                warn(message)
            continue
        if url in seen:
            continue
        seen.add(url)
        targets.append(Target(url=url, index=len(targets), host=urlsplit(url).hostname or ""))

    if not targets:
        raise ConfigError(f"no valid target URLs in {origin}")
    return targets
