from __future__ import annotations

import json
from datetime import datetime, timezone

import pytest

from gee_analysis.export import (
    build_statistics_snapshot,
    render_statistics,
    statistics_filename,
    write_statistics,
)
from gee_analysis.session import AOINotSelected, AnalysisSession

NOW = datetime(2024, 3, 15, 8, 30, tzinfo=timezone.utc)


def test_filename_replaces_whitespace_runs() -> None:
    assert statistics_filename("Kab.  Bandung\tBarat", NOW) == (
        f"gee_analysis_Kab._Bandung_Barat_{int(NOW.timestamp() * 1000)}.json"
    )


def test_snapshot_requires_aoi() -> None:
    with pytest.raises(AOINotSelected):
        build_statistics_snapshot(AnalysisSession(), NOW)


def test_snapshot_contents(orchestrator, with_aoi) -> None:
    session = orchestrator.session
    session.options.year = 2022
    session.options.start_month = 3
    session.options.end_month = 10
    session.results.record_landcover({"Dynamic_World": {"trees": 12.5}})

    snapshot = build_statistics_snapshot(session, NOW)

    assert snapshot == {
        "analysis_date": NOW.isoformat(),
        "region": "Kota Bandung",
        "area_km2": with_aoi.area_km2,
        "year": 2022,
        "analysis_type": "combined",
        "parameters": {"date_range": {"start_month": 3, "end_month": 10}, "cloud_threshold": 20},
        "results": {"landcover": {"Dynamic_World": {"trees": 12.5}}},
    }
    assert json.loads(render_statistics(snapshot)) == snapshot


def test_write_statistics_creates_directory(orchestrator, with_aoi, tmp_path) -> None:
    path = write_statistics(orchestrator.session, tmp_path / "nested" / "out", NOW)

    assert path.parent == tmp_path / "nested" / "out"
    assert path.name.startswith("gee_analysis_Kota_Bandung_")
    assert json.loads(path.read_text(encoding="utf-8"))["region"] == "Kota Bandung"
