"""Tests for the payload catalog, evasion transforms and injection planning."""

import shlex
from pathlib import Path

import pytest

from mutascan.config import ScanConfig
from mutascan.errors import ConfigError
from mutascan.modules.models import DiscoveredURL, InjectionPoint, Target
from mutascan.modules.mutation import catalog, injection, transforms
from mutascan.modules.mutation.engine import build_payload_arena


class TestCatalog:
    @pytest.mark.parametrize(
        ("line", "expected"),
        [
            ("xss:<b>hi</b>", ("xss", "<b>hi</b>")),
            ("SQLI: 1 OR 1=1", ("sqli", "1 OR 1=1")),
            ("<img src=x onerror=alert(1)>", ("xss", "<img src=x onerror=alert(1)>")),
            ("' UNION SELECT 1--", ("sqli", "' UNION SELECT 1--")),
            ("../../etc/passwd", ("file", "../../etc/passwd")),
            ("{{7*7}}", ("custom", "{{7*7}}")),
            ("# comment", None),
            ("   ", None),
            ("xss:", None),
        ],
    )
    def test_parse_payload_line(self, line, expected):
        assert catalog.parse_payload_line(line) == expected

    def test_custom_file_extends_builtins(self, temp_dir: Path):
        path = temp_dir / "payloads.txt"
        path.write_text("custom:{{7*7}}\n")
        entries = catalog.load_catalog(path)
        assert ("custom", "{{7*7}}") in entries
        assert len(entries) == len(catalog.builtin_payloads()) + 1

    def test_custom_file_can_replace_builtins(self, temp_dir: Path):
        path = temp_dir / "payloads.txt"
        path.write_text("custom:{{7*7}}\n")
        assert catalog.load_catalog(path, replace=True) == [("custom", "{{7*7}}")]

    def test_unreadable_payload_file(self, temp_dir: Path):
        with pytest.raises(ConfigError, match="payload file"):
            catalog.load_catalog(temp_dir / "missing.txt")

    def test_arena_dedups_and_tracks_lineage(self):
        arena = catalog.PayloadArena()
        base = arena.add("sqli", "' OR 1=1")
        child = arena.add("sqli", "'/**/OR/**/1=1", parent=base.id, transform="comment_injection")
        again = arena.add("sqli", "' OR 1=1")
        grandchild = arena.add("sqli", "'/**/Or/**/1=1", parent=child.id, transform="case")

        assert again is base
        assert len(arena) == 3
        assert [p.id for p in arena.lineage(grandchild.id)] == [base.id, child.id, grandchild.id]
        assert arena.root_of(grandchild.id) == base.id
        assert arena.children(base.id) == [child]
        assert arena.roots() == [base]

    def test_arena_rejects_unknown_category(self):
        with pytest.raises(ValueError):
            catalog.PayloadArena().add("rce", "id")


class TestTransforms:
    def test_case_alternation(self):
        assert transforms.case_alternation("' OR SLEEP(5)--", "sqli", 0) == "' Or SlEeP(5)--"
        assert transforms.case_alternation("' OR SLEEP(5)--", "sqli", 1) == "' oR sLeEp(5)--"
        assert transforms.case_alternation("<svg onload=x>", "xss", 0) == "<SvG OnLoAd=x>"

    def test_comment_injection(self):
        assert transforms.comment_injection("' OR 1=1", "sqli") == "'/**/OR/**/1=1"
        assert transforms.comment_injection("x<svg>", "xss") == "x<!----><svg>"
        assert transforms.comment_injection("alert()", "xss") == "alert()"

    def test_whitespace_substitution_uses_seed(self):
        assert transforms.whitespace_substitution("' OR 1", "sqli", 0) == "'%09OR%091"
        assert transforms.whitespace_substitution("' OR 1", "sqli", 1) == "'%0aOR%0a1"

    def test_encoding_substitution(self):
        assert transforms.encoding_substitution("alert()", "xss") == "alert&#40;&#41;"
        assert transforms.encoding_substitution("../../etc/passwd", "file", 0) == (
            "..%252F..%252Fetc/passwd"
        )
        assert transforms.encoding_substitution("' OR 1", "sqli") == "%2527%2520OR%25201"

    def test_transform_skips_other_categories(self):
        transform = transforms.PIPELINE[0]
        assert transform("' OR 1", "file") == "' OR 1"

    def test_mutation_is_deterministic(self):
        config = ScanConfig(mode="advanced", mutation_seed=7)
        first = [(p.category, p.template, p.parent) for p in build_payload_arena(config)]
        second = [(p.category, p.template, p.parent) for p in build_payload_arena(config)]
        assert first == second

    def test_every_mutation_descends_from_a_base_payload(self):
        arena = build_payload_arena(ScanConfig(mode="advanced"))
        roots = {p.id for p in arena.roots()}
        mutated = [p for p in arena if p.parent is not None]
        assert mutated
        for payload in mutated:
            assert payload.transform
            assert arena.root_of(payload.id) in roots
            assert arena[arena.root_of(payload.id)].category == payload.category

    def test_advanced_mode_adds_chained_mutations(self):
        simple = build_payload_arena(ScanConfig())
        advanced = build_payload_arena(ScanConfig(mode="advanced"))
        assert len(advanced) > len(simple)
        depths = {len(advanced.lineage(p.id)) for p in advanced}
        assert max(depths) > 2


@pytest.fixture
def discovered() -> DiscoveredURL:
    target = Target(url="https://example.com/", index=0, host="example.com")
    return DiscoveredURL(target=target, url="https://example.com/item.php?id=1&page=home")


class TestInjection:
    def test_injection_points(self):
        points = injection.injection_points("https://example.com/a?id=1&q=x&id=2")
        assert points == [
            InjectionPoint("query", "id"),
            InjectionPoint("query", "q"),
            InjectionPoint("path", "path"),
        ]

    def test_header_points_only_when_asked(self):
        url = "https://example.com/a?id=1"
        assert not any(p.kind == "header" for p in injection.injection_points(url))
        points = injection.injection_points(url, headers=True)
        headers = [p.name for p in points if p.kind == "header"]
        assert headers == ["User-Agent", "Referer", "X-Forwarded-For"]

    def test_form_like_paths_get_form_points(self):
        points = injection.injection_points("https://example.com/login")
        assert InjectionPoint("form", "username") in points

    def test_backup_candidates(self):
        assert injection.backup_candidates("https://example.com/config.php?x=1") == [
            "https://example.com/config.php.bak",
            "https://example.com/config.php~",
            "https://example.com/config.php.old",
            "https://example.com/config.php.swp",
        ]
        assert injection.backup_candidates("https://example.com/about") == []

    def test_plan_attempts(self, discovered: DiscoveredURL):
        arena = catalog.PayloadArena()
        arena.add("sqli", "' OR 1=1")
        arena.add("file", ".env")
        arena.add("file", "../../etc/passwd")
        config = ScanConfig(headers=("X-Test: 1",), proxy="http://127.0.0.1:8080")

        attempts = list(injection.plan_attempts(discovered, arena, config))
        by_point = {}
        for attempt in attempts:
            by_point.setdefault((attempt.point.kind, attempt.point.name), []).append(attempt)

        (id_attempt,) = by_point[("query", "id")]
        assert id_attempt.url == "https://example.com/item.php?id=%27%20OR%201%3D1&page=home"
        assert ("X-Test", "1") in id_attempt.headers
        assert id_attempt.proxy == "http://127.0.0.1:8080"

        # traversal only for file-like parameters
        page_payloads = [a.payload.template for a in by_point[("query", "page")]]
        assert page_payloads == ["' OR 1=1", "../../etc/passwd"]

        (path_attempt,) = by_point[("path", "path")]
        assert path_attempt.url == "https://example.com/.env"

        backups = [a.url for a in by_point[("path", "backup")]]
        assert backups[0] == "https://example.com/item.php.bak"

    def test_repeated_requests_are_planned_once(self, discovered: DiscoveredURL):
        arena = catalog.PayloadArena()
        arena.add("file", ".env")
        planned: set = set()
        other = DiscoveredURL(target=discovered.target, url="https://example.com/other")
        config = ScanConfig()
        first = list(injection.plan_attempts(discovered, arena, config, planned))
        second = list(injection.plan_attempts(other, arena, config, planned))
        assert [a.url for a in first if a.point.name == "path"] == ["https://example.com/.env"]
        assert [a.url for a in second if a.point.name == "path"] == []

    def test_form_attempts_post_urlencoded(self):
        target = Target(url="https://example.com/", index=0, host="example.com")
        login = DiscoveredURL(target=target, url="https://example.com/login")
        arena = catalog.PayloadArena()
        arena.add("xss", "<svg onload=alert()>")
        attempts = [
            a for a in injection.plan_attempts(login, arena, ScanConfig()) if a.method == "POST"
        ]
        assert {a.point.name for a in attempts} == {"q", "id", "username"}
        assert attempts[0].body == "q=%3Csvg%20onload%3Dalert%28%29%3E"
        assert ("Content-Type", "application/x-www-form-urlencoded") in attempts[0].headers

    def test_curl_cmd_reproduces_request(self, discovered: DiscoveredURL):
        arena = catalog.PayloadArena()
        arena.add("sqli", "' OR 1=1")
        attempt = next(injection.plan_attempts(discovered, arena, ScanConfig()))
        assert attempt.curl_cmd.startswith("curl -s -i -k -g --path-as-is -X GET ")
        assert attempt.curl_cmd.endswith(shlex.quote(attempt.url))

    def test_seed_url_gets_header_attempts(self, discovered: DiscoveredURL):
        arena = catalog.PayloadArena()
        arena.add("sqli", "' OR SLEEP(5)--")
        arena.add("sqli", "'\r\nX-Injected: 1")
        arena.add("xss", "<svg onload=alert()>")
        config = ScanConfig(headers=("User-Agent: scanner/1.0", "X-Test: 1"))

        planned = injection.plan_attempts(discovered, arena, config)
        attempts = [a for a in planned if a.point.kind == "header"]

        assert [(a.point.name, a.payload.template) for a in attempts] == [
            ("User-Agent", "' OR SLEEP(5)--"),
            ("Referer", "' OR SLEEP(5)--"),
            ("X-Forwarded-For", "' OR SLEEP(5)--"),
        ]
        user_agent = attempts[0]
        assert user_agent.method == "GET"
        assert user_agent.url == discovered.url
        assert dict(user_agent.headers) == {"X-Test": "1", "User-Agent": "' OR SLEEP(5)--"}
        assert shlex.quote("User-Agent: ' OR SLEEP(5)--") in user_agent.curl_cmd

    def test_crawled_urls_get_no_header_attempts(self, discovered: DiscoveredURL):
        arena = catalog.PayloadArena()
        arena.add("sqli", "' OR 1=1")
        crawled = DiscoveredURL(
            target=discovered.target, url=discovered.url, source="crawler", depth=1
        )
        attempts = list(injection.plan_attempts(crawled, arena, ScanConfig()))
        assert attempts
        assert not any(a.point.kind == "header" for a in attempts)
