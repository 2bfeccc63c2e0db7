"""Tests for severity assignment and noise reduction."""

from mutascan.modules.classifier import (
    DUPLICATE,
    FINDING,
    SAFE,
    SUPPRESSED,
    ResponseClassifier,
    fingerprint,
    severity_for,
)
from mutascan.modules.models import DiscoveredURL, InjectionAttempt, InjectionPoint, Payload
from mutascan.modules.mutation.detector import (
    FILE_EXPOSURE,
    SQLI_BLIND,
    SQLI_ERROR,
    XSS,
    Detection,
)
from mutascan.tools.http import HTTPResponse


def make_response(body: str, status: int = 200) -> HTTPResponse:
    return HTTPResponse(
        url="https://example.com/",
        status_code=status,
        headers={},
        body=body,
        response_time=0.012,
        content_type="text/html",
        server="nginx",
    )


def make_attempt(seed: DiscoveredURL, payload_id: int, template: str) -> InjectionAttempt:
    return InjectionAttempt(
        discovered=seed,
        payload=Payload(id=payload_id, category="sqli", template=template),
        point=InjectionPoint("query", "id"),
        url=f"{seed.url}?id={payload_id}",
    )


SQL_HIT = Detection(SQLI_ERROR, "SQL syntax")


class TestSeverity:
    def test_sql_classes_are_critical(self):
        assert severity_for(SQLI_ERROR) == "critical"
        assert severity_for(SQLI_BLIND) == "critical"

    def test_other_classes_are_medium(self):
        assert severity_for(XSS) == "medium"
        assert severity_for(FILE_EXPOSURE) == "medium"


class TestFingerprint:
    def test_payload_echo_does_not_change_bucket(self):
        short = fingerprint(make_response("error: x" + "." * 10), "x")
        long_payload = "y" * 500
        long = fingerprint(make_response("error: " + long_payload + "." * 10), long_payload)
        assert short == long


class TestResponseClassifier:
    def test_detection_becomes_finding(self, seed):
        classifier = ResponseClassifier()
        attempt = make_attempt(seed, 0, "'")
        verdict = classifier.classify(attempt, make_response("SQL syntax"), SQL_HIT, 0)

        assert verdict.outcome == FINDING
        finding = verdict.finding
        assert finding.url == attempt.url
        assert finding.vuln_type == "SQL Injection [param: id]"
        assert finding.payload == "'"
        assert finding.severity == "critical"
        assert finding.status_code == 200
        assert finding.timing_ms == 12
        assert finding.server == "nginx"
        assert finding.target == seed.target.url
        assert finding.curl_cmd == attempt.curl_cmd

    def test_no_detection_is_safe(self, seed):
        verdict = ResponseClassifier().classify(
            make_attempt(seed, 0, "'"), make_response("ok"), None, 0
        )
        assert verdict.outcome == SAFE
        assert verdict.finding is None

    def test_duplicate_triple_is_dropped(self, seed):
        classifier = ResponseClassifier()
        attempt = make_attempt(seed, 0, "'")
        assert classifier.classify(attempt, make_response("SQL syntax"), SQL_HIT, 0).outcome == (
            FINDING
        )
        assert classifier.classify(attempt, make_response("SQL syntax"), SQL_HIT, 0).outcome == (
            DUPLICATE
        )

    def test_generic_error_page_is_suppressed(self, seed):
        classifier = ResponseClassifier(noise_threshold=3)
        page = "<h1>Something went wrong</h1> SQL syntax"
        outcomes = [
            classifier.classify(
                make_attempt(seed, root, f"p{root}"), make_response(page), SQL_HIT, root
            ).outcome
            for root in range(3)
        ]
        assert outcomes == [FINDING] * 3

        verdict = classifier.classify(make_attempt(seed, 9, "p9"), make_response(page), SQL_HIT, 9)
        assert verdict.outcome == SUPPRESSED

    def test_safe_responses_do_not_count_towards_noise(self, seed):
        classifier = ResponseClassifier(noise_threshold=3)
        page = "<h1>Product 1</h1>"
        for root in range(10):
            attempt = make_attempt(seed, root, f"p{root}")
            classifier.classify(attempt, make_response(page), None, root)

        verdict = classifier.classify(make_attempt(seed, 42, "'"), make_response(page), SQL_HIT, 42)
        assert verdict.outcome == FINDING

    def test_timing_detections_are_never_suppressed(self, seed):
        classifier = ResponseClassifier(noise_threshold=1)
        page = "<h1>Product 1</h1>"
        slow = Detection(SQLI_BLIND, "response 5000 ms slower than baseline", timed=True)
        outcomes = [
            classifier.classify(
                make_attempt(seed, root, f"1' AND SLEEP({root})--"), make_response(page), slow, root
            ).outcome
            for root in range(6)
        ]
        assert outcomes == [FINDING] * 6

    def test_mutations_of_one_payload_do_not_suppress_each_other(self, seed):
        classifier = ResponseClassifier(noise_threshold=2)
        page = "SQL syntax error"
        outcomes = [
            classifier.classify(
                make_attempt(seed, payload_id, f"m{payload_id}"), make_response(page), SQL_HIT, 0
            ).outcome
            for payload_id in range(5)
        ]
        assert outcomes == [FINDING] * 5

    def test_admit_dedups_external_findings(self, seed):
        classifier = ResponseClassifier()
        verdict = classifier.classify(
            make_attempt(seed, 0, "'"), make_response("SQL syntax"), SQL_HIT, 0
        )
        assert classifier.admit(verdict.finding) is False
