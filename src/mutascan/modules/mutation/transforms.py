"""Deterministic WAF-evasion transforms.

Every transform is a pure function of ``(payload, seed)``. A transform
returns the payload unchanged when it has nothing to rewrite; such no-op
results are not added to the arena.
"""

import re
from collections.abc import Callable
from dataclasses import dataclass

from .catalog import PayloadArena

_SQL_KEYWORDS = re.compile(
    r"\b(select|union|or|and|sleep|waitfor|delay|null|from|where|order|by|benchmark|"
    r"pg_sleep|extractvalue|concat|version)\b",
    re.IGNORECASE,
)
_HTML_NAMES = re.compile(r"(?<=<)/?[a-z]+|\bon[a-z]+(?==)|javascript(?=:)", re.IGNORECASE)

_SQL_WHITESPACE = ("%09", "%0a", "%0d", "%0b")
_XSS_WHITESPACE = ("%09", "%0a", "%0c", "/")


def _alternate(word: str, parity: int) -> str:
    out = []
    position = parity
    for char in word:
        if char.isalpha():
            out.append(char.upper() if position % 2 == 0 else char.lower())
            position += 1
        else:
            out.append(char)
    return "".join(out)


def case_alternation(payload: str, category: str, seed: int = 0) -> str:
    """``select`` -> ``SeLeCt`` on SQL keywords and HTML tag/handler names."""
    pattern = _SQL_KEYWORDS if category == "sqli" else _HTML_NAMES
    return pattern.sub(lambda match: _alternate(match.group(0), seed % 2), payload)


def comment_injection(payload: str, category: str, seed: int = 0) -> str:
    if category == "sqli":
        return payload.replace(" ", "/**/")
    if category == "xss" and "<" in payload:
        index = payload.index("<")
        return f"{payload[:index]}<!---->{payload[index:]}"
    return payload


def whitespace_substitution(payload: str, category: str, seed: int = 0) -> str:
    choices = _SQL_WHITESPACE if category == "sqli" else _XSS_WHITESPACE
    return payload.replace(" ", choices[seed % len(choices)])


def encoding_substitution(payload: str, category: str, seed: int = 0) -> str:
    """Rewrite filtered characters in a form the target decodes back.

    XSS gets HTML entities for call parentheses, SQLi and traversal payloads
    get double percent-encoding of quotes, spaces and slashes.
    """
    if category == "xss":
        return payload.replace("(", "&#40;").replace(")", "&#41;")
    slash = "%252f" if seed % 2 else "%252F"
    if category == "file":
        return payload.replace("../", f"..{slash}")
    return payload.replace("'", "%2527").replace(" ", "%2520")


@dataclass(frozen=True)
class Transform:
    name: str
    categories: frozenset[str]
    apply: Callable[[str, str, int], str]

    def __call__(self, payload: str, category: str, seed: int = 0) -> str:
        if category not in self.categories:
            return payload
        return self.apply(payload, category, seed)


PIPELINE: tuple[Transform, ...] = (
    Transform("case_alternation", frozenset({"xss", "sqli"}), case_alternation),
    Transform("comment_injection", frozenset({"xss", "sqli"}), comment_injection),
    Transform("whitespace_substitution", frozenset({"xss", "sqli"}), whitespace_substitution),
    Transform("encoding_substitution", frozenset({"xss", "sqli", "file"}), encoding_substitution),
)


def mutate_arena(arena: PayloadArena, advanced: bool = False, seed: int = 0) -> PayloadArena:
    """Derive mutated payloads from every base payload in ``arena``.

    Each applicable transform yields one child of the base payload. In
    advanced mode the whole pipeline is also chained, each step being the
    child of the previous one.
    """
    for base in arena.roots():
        for index, transform in enumerate(PIPELINE):
            mutated = transform(base.template, base.category, seed + index)
            if mutated != base.template:
                arena.add(base.category, mutated, parent=base.id, transform=transform.name)

        if not advanced:
            continue
        current = base
        for index, transform in enumerate(PIPELINE):
            mutated = transform(current.template, current.category, seed + index)
            if mutated == current.template:
                continue
            current = arena.add(
                current.category, mutated, parent=current.id, transform=transform.name
            )
    return arena
