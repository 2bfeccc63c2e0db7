"""Per-target progress file used by ``mutascan scan --resume``."""

import json
import logging
from dataclasses import asdict, dataclass, field, replace
from datetime import UTC, datetime
from pathlib import Path
from typing import Any

from mutascan.config import ScanConfig
from mutascan.errors import ConfigError
from mutascan.modules.models import Finding

from .output import write_json_atomic

logger = logging.getLogger(__name__)


def _now() -> str:
    return datetime.now(UTC).isoformat()


@dataclass
class ScanCheckpoint:
    """Settings, remaining targets and findings of an unfinished scan.

    Saved after every completed target and removed once a scan finishes, so
    a file on disk always describes a scan that was cut short.
    """

    config: dict[str, Any]
    pending: list[str]
    completed: list[str] = field(default_factory=list)
    findings: list[dict[str, Any]] = field(default_factory=list)
    started_at: str = field(default_factory=_now)
    updated_at: str = field(default_factory=_now)

    @classmethod
    def begin(cls, config: ScanConfig, target_urls: list[str]) -> "ScanCheckpoint":
        return cls(config=config.to_dict(), pending=list(target_urls))

    def mark_done(self, url: str, findings: list[Finding]) -> None:
        """Move ``url`` to completed and replace the stored findings."""
        if url in self.pending:
            self.pending.remove(url)
        if url not in self.completed:
            self.completed.append(url)
        self.findings = [finding.to_dict() for finding in findings]
        self.updated_at = _now()

    def restore_config(self, current: ScanConfig) -> ScanConfig:
        """Saved settings, keeping the caller's state file and verbosity."""
        saved = ScanConfig.from_dict(self.config)
        return replace(
            saved, resume=True, state_file=current.state_file, verbose=current.verbose
        )

    def restore_findings(self) -> list[Finding]:
        return [Finding(**item) for item in self.findings]

    def save(self, path: str | Path) -> Path:
        return write_json_atomic(path, asdict(self))

    @classmethod
    def load(cls, path: str | Path) -> "ScanCheckpoint":
        """Read a checkpoint. A missing or unreadable file is a ConfigError."""
        state_path = Path(path)
        if not state_path.exists():
            raise ConfigError(f"No state file found at {state_path}. Nothing to resume.")
        try:
            data = json.loads(state_path.read_text(encoding="utf-8"))
            checkpoint = cls(
                config=dict(data["config"]),
                pending=[str(url) for url in data["pending"]],
                completed=[str(url) for url in data.get("completed", [])],
                findings=[dict(item) for item in data.get("findings", [])],
                started_at=str(data.get("started_at") or _now()),
                updated_at=str(data.get("updated_at") or _now()),
            )
            # Fail here rather than halfway through the resumed scan.
            checkpoint.restore_findings()
            ScanConfig.from_dict(checkpoint.config)
        except (ConfigError, OSError, ValueError, KeyError, TypeError) as exc:
            raise ConfigError(f"State file {state_path} is unreadable: {exc}") from exc
        logger.debug(
            "Loaded checkpoint %s: %d pending, %d completed",
            state_path,
            len(checkpoint.pending),
            len(checkpoint.completed),
        )
        return checkpoint

    @staticmethod
    def discard(path: str | Path) -> None:
        Path(path).unlink(missing_ok=True)
