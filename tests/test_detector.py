"""Tests for detection heuristics."""

import pytest

from mutascan.config import ScanConfig
from mutascan.modules.models import DiscoveredURL, InjectionAttempt, InjectionPoint, Payload
from mutascan.modules.mutation import detector
from mutascan.tools.http import HTTPResponse


def make_response(body="", status=200, content_type="text/html", seconds=0.05):
    return HTTPResponse(
        url="https://example.com/",
        status_code=status,
        headers={"content-type": content_type},
        body=body,
        response_time=seconds,
        content_type=content_type,
    )


def make_attempt(seed: DiscoveredURL, category: str, template: str, kind="query", name="id"):
    return InjectionAttempt(
        discovered=seed,
        payload=Payload(id=0, category=category, template=template),
        point=InjectionPoint(kind, name),
        url=seed.url,
    )


class TestSqlDetection:
    def test_error_signature_absent_from_baseline(self, seed):
        attempt = make_attempt(seed, "sqli", "' OR 1=1--")
        response = make_response("You have an error in your SQL syntax near ''")
        baseline = detector.Baseline.from_response(make_response("<html>ok</html>"))

        found = detector.detect(attempt, response, baseline, ScanConfig())
        assert found == detector.Detection(detector.SQLI_ERROR, "SQL syntax")
        assert found.label(attempt.point) == "SQL Injection [param: id]"

    def test_error_already_in_baseline_is_ignored(self, seed):
        attempt = make_attempt(seed, "sqli", "' OR 1=1--")
        body = "docs: how to fix a SQL syntax error"
        baseline = detector.Baseline.from_response(make_response(body))
        assert detector.detect(attempt, make_response(body), baseline, ScanConfig()) is None

    def test_time_based(self, seed):
        attempt = make_attempt(seed, "sqli", "' OR SLEEP(5)--")
        baseline = detector.Baseline.from_response(make_response(seconds=0.1))
        slow = make_response(seconds=4.5)
        found = detector.detect(attempt, slow, baseline, ScanConfig())
        assert found is not None
        assert found.vuln_class == detector.SQLI_BLIND

        fast = make_response(seconds=1.0)
        assert detector.detect(attempt, fast, baseline, ScanConfig()) is None

    def test_time_based_payload_gets_longer_timeout(self):
        config = ScanConfig(timeout=5.0)
        sleepy = Payload(id=0, category="sqli", template="'%20AND%20SLEEP(5)--")
        plain = Payload(id=1, category="sqli", template="' OR 1=1--")
        assert detector.request_timeout(sleepy, config) == 10.0
        assert detector.request_timeout(plain, config) == 5.0


class TestXssDetection:
    def test_reflection_in_html(self, seed):
        payload = "<svg/onload=alert()//>"
        attempt = make_attempt(seed, "xss", payload)
        response = make_response(f"<p>results for {payload}</p>")
        found = detector.detect(attempt, response, None, ScanConfig())
        assert found is not None
        assert found.vuln_class == detector.XSS
        assert found.label(InjectionPoint("form", "q")) == "Reflected XSS [form: q]"

    def test_entity_encoded_payload_reflected_raw(self, seed):
        payload = "<svg/onload=alert&#40;&#41;//>"
        attempt = make_attempt(seed, "xss", payload)
        found = detector.detect(attempt, make_response(payload), None, ScanConfig())
        assert found is not None

    def test_url_encoded_payload_reflected_decoded(self, seed):
        attempt = make_attempt(seed, "xss", "%3Csvg%20onload%3Dalert()%3E")
        response = make_response("<div><svg onload=alert()></div>")
        assert detector.detect(attempt, response, None, ScanConfig()) is not None

    @pytest.mark.parametrize(
        ("body", "content_type"),
        [
            ("&lt;svg/onload=alert()//&gt;", "text/html"),
            ("<svg/onload=alert()//>", "application/json"),
        ],
    )
    def test_escaped_or_non_html_is_not_xss(self, seed, body, content_type):
        attempt = make_attempt(seed, "xss", "<svg/onload=alert()//>")
        response = make_response(body, content_type=content_type)
        assert detector.detect(attempt, response, None, ScanConfig()) is None


class TestFileDetection:
    def test_sensitive_file(self, seed):
        attempt = make_attempt(seed, "file", ".env", kind="path", name="path")
        response = make_response("APP_ENV=prod\nDB_PASSWORD=hunter2\n", content_type="text/plain")
        found = detector.detect(attempt, response, None, ScanConfig())
        assert found == detector.Detection(detector.FILE_EXPOSURE, "DB_PASSWORD")
        assert found.label(attempt.point) == "Sensitive File Exposure [path]"

    @pytest.mark.parametrize(
        ("status", "content_type"), [(200, "text/html; charset=utf-8"), (404, "text/plain")]
    )
    def test_html_or_missing_file_is_ignored(self, seed, status, content_type):
        attempt = make_attempt(seed, "file", ".env", kind="path", name="path")
        response = make_response("DB_PASSWORD=x", status=status, content_type=content_type)
        assert detector.detect(attempt, response, None, ScanConfig()) is None


def test_decoded_forms():
    assert detector.decoded_forms("%2527") == ["%2527", "%27", "'"]
    assert detector.decoded_forms("plain") == ["plain"]
