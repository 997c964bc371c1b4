from __future__ import annotations

import json
import re
from datetime import datetime, timezone
from pathlib import Path
from typing import Any

from gee_analysis.session import AnalysisSession

WHITESPACE_RE = re.compile(r"\s+")
STATISTICS_MIME = "application/json"


def statistics_filename(region_name: str, now: datetime | None = None) -> str:
    moment = now or datetime.now(timezone.utc)
    epoch_ms = int(moment.timestamp() * 1000)
    return f"gee_analysis_{WHITESPACE_RE.sub('_', region_name)}_{epoch_ms}.json"


def build_statistics_snapshot(
    session: AnalysisSession, now: datetime | None = None
) -> dict[str, Any]:
    """Snapshot of the current AOI, analysis inputs and accumulated results."""

    aoi = session.require_aoi()
    options = session.options
    moment = now or datetime.now(timezone.utc)
    return {
        "analysis_date": moment.isoformat(),
        "region": aoi.name,
        "area_km2": aoi.area_km2,
        "year": options.year,
        "analysis_type": options.analysis_type.value,
        "parameters": {
            "date_range": {
                "start_month": options.start_month,
                "end_month": options.end_month,
            },
            "cloud_threshold": options.cloud_threshold,
        },
        "results": session.results.as_payload(),
    }


def render_statistics(snapshot: dict[str, Any]) -> bytes:
    return json.dumps(snapshot, indent=2, ensure_ascii=False).encode("utf-8")


def write_statistics(
    session: AnalysisSession, output_dir: Path, now: datetime | None = None
) -> Path:
    moment = now or datetime.now(timezone.utc)
    snapshot = build_statistics_snapshot(session, moment)
    output_dir.mkdir(parents=True, exist_ok=True)
    path = output_dir / statistics_filename(snapshot["region"], moment)
    path.write_bytes(render_statistics(snapshot))
    return path
