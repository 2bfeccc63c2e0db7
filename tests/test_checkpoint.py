"""Tests for the resume checkpoint file."""

import json
from dataclasses import replace
from pathlib import Path

import pytest

from mutascan.config import ScanConfig
from mutascan.errors import ConfigError
from mutascan.modules.coordinator import ScanCheckpoint
from mutascan.modules.models import Finding


def make_finding(url: str) -> Finding:
    return Finding(
        url=url + "?id=%27",
        vuln_type="SQL Injection [param: id]",
        payload="'",
        status_code=500,
        timing_ms=31,
        curl_cmd=f"curl -s {url}?id=%27",
        severity="critical",
        target=url,
        details={"evidence": "SQL syntax", "payload_id": 4},
    )


class TestScanCheckpoint:
    def test_mark_done_moves_target_and_keeps_findings(self, scan_config: ScanConfig):
        checkpoint = ScanCheckpoint.begin(scan_config, ["https://a.test/", "https://b.test/"])
        finding = make_finding("https://a.test/")

        checkpoint.mark_done("https://a.test/", [finding])

        assert checkpoint.pending == ["https://b.test/"]
        assert checkpoint.completed == ["https://a.test/"]
        assert checkpoint.restore_findings() == [finding]
        assert checkpoint.restore_findings()[0].details["payload_id"] == 4

    def test_save_and_load(self, scan_config: ScanConfig, temp_dir: Path):
        path = temp_dir / "state.json"
        checkpoint = ScanCheckpoint.begin(scan_config, ["https://a.test/"])
        checkpoint.save(path)

        loaded = ScanCheckpoint.load(path)

        assert loaded == checkpoint
        assert json.loads(path.read_text())["pending"] == ["https://a.test/"]

    def test_restored_config_keeps_local_state_file_and_verbosity(
        self, scan_config: ScanConfig
    ):
        checkpoint = ScanCheckpoint.begin(replace(scan_config, threads=7), [])
        current = ScanConfig(resume=True, state_file="elsewhere.json", verbose=True)

        restored = checkpoint.restore_config(current)

        assert restored.threads == 7
        assert restored.output == scan_config.output
        assert restored.resume is True
        assert restored.state_file == "elsewhere.json"
        assert restored.verbose is True

    def test_missing_file(self, temp_dir: Path):
        with pytest.raises(ConfigError, match="Nothing to resume"):
            ScanCheckpoint.load(temp_dir / "missing.json")

    @pytest.mark.parametrize(
        "content",
        [
            "{not json",
            '{"pending": []}',
            '{"config": {}, "pending": [], "findings": [{"url": "x"}]}',
            '{"config": {"threads": 0}, "pending": []}',
        ],
    )
    def test_unreadable_file(self, temp_dir: Path, content: str):
        path = temp_dir / "state.json"
        path.write_text(content)
        with pytest.raises(ConfigError, match="unreadable"):
            ScanCheckpoint.load(path)

    def test_discard_tolerates_missing_file(self, temp_dir: Path):
        path = temp_dir / "state.json"
        path.write_text("{}")
        ScanCheckpoint.discard(path)
        ScanCheckpoint.discard(path)
        assert not path.exists()
