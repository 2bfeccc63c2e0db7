"""Final JSON results document, written atomically."""

import json
import os
import tempfile
from datetime import UTC, datetime
from pathlib import Path
from typing import Any

from mutascan.config import ScanConfig
from mutascan.modules.models import Finding, Target

from .state import ScanState, StatsSnapshot


def build_document(
    config: ScanConfig,
    state: ScanState,
    targets: list[Target],
    stats: StatsSnapshot,
    findings: list[Finding],
    started_at: datetime,
    finished_at: datetime | None = None,
) -> dict[str, Any]:
    finished_at = finished_at or datetime.now(UTC)
    return {
        "scan": {
            "state": state.value,
            "mode": config.mode,
            "dry_run": config.dry_run,
            "started_at": started_at.isoformat(),
            "finished_at": finished_at.isoformat(),
            "targets": [target.url for target in targets],
        },
        "stats": {
            "targets": stats.targets,
            "urls": stats.urls,
            "critical": stats.critical,
            "medium": stats.medium,
            "safe": stats.safe,
            "requests": stats.requests,
            "errors": stats.errors,
            "suppressed": stats.suppressed,
            "elapsed": round(stats.elapsed, 3),
        },
        "findings": [finding.to_dict() for finding in findings],
    }


def write_json_atomic(path: str | Path, document: dict[str, Any]) -> Path:
    """Write ``document`` next to ``path`` and rename it into place."""
    target = Path(path)
    target.parent.mkdir(parents=True, exist_ok=True)
    fd, tmp_name = tempfile.mkstemp(prefix=f".{target.name}.", suffix=".tmp", dir=target.parent)
    try:
        with os.fdopen(fd, "w", encoding="utf-8") as handle:
            json.dump(document, handle, indent=2)
            handle.write("\n")
            handle.flush()
            os.fsync(handle.fileno())
        os.replace(tmp_name, target)
    except BaseException:
        Path(tmp_name).unlink(missing_ok=True)
        raise
    return target
