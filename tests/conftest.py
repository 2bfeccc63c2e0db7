"""Test configuration and fixtures for mutascan."""

import os
import tempfile
from collections.abc import Generator
from pathlib import Path

import pytest

from mutascan.config import ScanConfig
from mutascan.modules.models import DiscoveredURL, Target


@pytest.fixture
def temp_dir() -> Generator[Path, None, None]:
    """Create a temporary directory for testing."""
    with tempfile.TemporaryDirectory() as tmpdir:
        yield Path(tmpdir)


@pytest.fixture(autouse=True)
def clean_env(monkeypatch: pytest.MonkeyPatch, temp_dir: Path) -> None:
    """Keep MUTASCAN_* variables, ./.env and ~/.mutascan out of every test."""
    for key in list(os.environ):
        if key.startswith("MUTASCAN_"):
            monkeypatch.delenv(key, raising=False)
    monkeypatch.setenv("HOME", str(temp_dir / "home"))
    monkeypatch.chdir(temp_dir)


@pytest.fixture
def target() -> Target:
    return Target(url="https://example.com/", index=0, host="example.com")


@pytest.fixture
def seed(target: Target) -> DiscoveredURL:
    return DiscoveredURL(target=target, url=target.url)


@pytest.fixture
def scan_config(temp_dir: Path) -> ScanConfig:
    """Offline config: no crawler, no nuclei, output inside temp_dir."""
    return ScanConfig(
        target="https://example.com",
        enable_crawler=False,
        enable_nuclei=False,
        output=str(temp_dir / "results.json"),
        threads=4,
        rate_limit=1000,
        timeout=2.0,
    )
