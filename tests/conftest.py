from __future__ import annotations

import json
import time
from pathlib import Path
from typing import Any

import pytest
import requests

from gee_analysis.models import AnalysisResults, AreaOfInterest, RequestResult
from gee_analysis.orchestrator import AnalysisOrchestrator
from gee_analysis.session import AnalysisSession
from gee_analysis.settings import Settings

REGION_GEOJSON = {
    "type": "FeatureCollection",
    "features": [
        {
            "type": "Feature",
            "properties": {"name": "Kota Bandung"},
            "geometry": {
                "type": "Polygon",
                "coordinates": [[[107.5, -7.0], [107.8, -7.0], [107.8, -6.8], [107.5, -6.8], [107.5, -7.0]]],
            },
        }
    ],
}


def make_response(
    status_code: int = 200,
    body: Any = None,
    *,
    reason: str | None = None,
    raw: bytes | None = None,
    url: str = "http://backend.test/api",
) -> requests.Response:
    response = requests.Response()
    response.status_code = status_code
    response.reason = reason
    response.url = url
    if raw is not None:
        response._content = raw
    elif body is not None:
        response._content = json.dumps(body).encode("utf-8")
    else:
        response._content = b""
    response.headers["Content-Type"] = "application/json"
    return response


class FakeSession:
    """Stands in for requests.Session; replays queued responses or exceptions."""

    def __init__(self, *outcomes: requests.Response | Exception):
        self.outcomes = list(outcomes)
        self.calls: list[dict[str, Any]] = []
        self.closed = False

    def request(self, method: str, url: str, **kwargs: Any) -> requests.Response:
        self.calls.append({"method": method, "url": url, **kwargs})
        if not self.outcomes:
            raise AssertionError(f"Unexpected request {method} {url}")
        outcome = self.outcomes.pop(0)
        if isinstance(outcome, Exception):
            raise outcome
        return outcome

    def close(self) -> None:
        self.closed = True


class FakeClient:
    """Records endpoint calls and answers from a per-method table."""

    def __init__(self, **responses: RequestResult | Exception):
        self.responses = responses
        self.calls: list[tuple[str, tuple[Any, ...]]] = []
        self.delay = 0.0

    def _answer(self, name: str, *args: Any) -> RequestResult:
        self.calls.append((name, args))
        if self.delay:
            time.sleep(self.delay)
        outcome = self.responses.get(name, RequestResult.fail("Network error"))
        if isinstance(outcome, Exception):
            raise outcome
        return outcome

    def count(self, name: str) -> int:
        return len([call for call in self.calls if call[0] == name])

    def health_check(self) -> RequestResult:
        return self._answer("health_check")

    def get_provinces(self) -> RequestResult:
        return self._answer("get_provinces")

    def get_cities(self, province_code: str) -> RequestResult:
        return self._answer("get_cities", province_code)

    def get_region_geometry(self, endpoint: str, code: str) -> RequestResult:
        return self._answer("get_region_geometry", endpoint, code)

    def analyze_vegetation(self, params) -> RequestResult:
        return self._answer("analyze_vegetation", params)

    def analyze_land_cover(self, params) -> RequestResult:
        return self._answer("analyze_land_cover", params)

    def analyze_time_series(self, params) -> RequestResult:
        return self._answer("analyze_time_series", params)

    def export_to_drive(self, params) -> RequestResult:
        return self._answer("export_to_drive", params)


class RecordingUI:
    def __init__(self) -> None:
        self.events: list[tuple[str, Any]] = []
        self.alerts: list[tuple[str, str]] = []
        self.provinces: dict[str, str] = {}
        self.cities: dict[str, str] = {}
        self.aoi: AreaOfInterest | None = None
        self.displayed: list[AnalysisResults] = []
        self.files: list[tuple[str, bytes, str]] = []

    def count(self, name: str) -> int:
        return len([event for event in self.events if event[0] == name])

    def severities(self) -> list[str]:
        return [severity for severity, _ in self.alerts]

    def show_loading(self, title: str, subtitle: str = "") -> None:
        self.events.append(("show_loading", title))

    def hide_loading(self) -> None:
        self.events.append(("hide_loading", None))

    def show_alert(self, message: str, severity: str = "info") -> None:
        self.events.append(("alert", severity))
        self.alerts.append((severity, message))

    def populate_provinces(self, provinces: dict[str, str]) -> None:
        self.events.append(("populate_provinces", provinces))
        self.provinces = dict(provinces)

    def populate_cities(self, cities: dict[str, str]) -> None:
        self.events.append(("populate_cities", cities))
        self.cities = dict(cities)

    def reset_cities(self) -> None:
        self.events.append(("reset_cities", None))
        self.cities = {}

    def draw_region(self, aoi: AreaOfInterest) -> None:
        self.events.append(("draw_region", aoi.name))
        self.aoi = aoi

    def show_aoi_info(self, aoi: AreaOfInterest) -> None:
        self.events.append(("show_aoi_info", aoi.name))

    def display_results(self, aoi: AreaOfInterest, results: AnalysisResults) -> None:
        self.events.append(("display_results", aoi.name))
        self.displayed.append(results.model_copy(deep=True))

    def deliver_file(self, filename: str, content: bytes, mime: str) -> None:
        self.events.append(("deliver_file", filename))
        self.files.append((filename, content, mime))


@pytest.fixture
def anyio_backend() -> str:
    return "asyncio"


@pytest.fixture
def test_settings(tmp_path: Path) -> Settings:
    return Settings(
        gee_api_base_url="http://backend.test/api/",
        gee_api_timeout_seconds=120,
        gee_api_retries=0,
        gee_api_backoff_seconds=0.0,
        gee_api_key=None,
        gee_export_dir=tmp_path / "exports",
    )


@pytest.fixture
def region_geojson() -> dict[str, Any]:
    return json.loads(json.dumps(REGION_GEOJSON))


@pytest.fixture
def fake_session_factory():
    return FakeSession


@pytest.fixture
def response_factory():
    return make_response


@pytest.fixture
def fake_client() -> FakeClient:
    return FakeClient()


@pytest.fixture
def recording_ui() -> RecordingUI:
    return RecordingUI()


@pytest.fixture
def orchestrator(fake_client: FakeClient, recording_ui: RecordingUI) -> AnalysisOrchestrator:
    return AnalysisOrchestrator(fake_client, recording_ui, AnalysisSession())


@pytest.fixture
def with_aoi(orchestrator: AnalysisOrchestrator, region_geojson) -> AreaOfInterest:
    from gee_analysis.geometry.aoi import admin_aoi

    aoi = admin_aoi(region_geojson, "Kota Bandung")
    orchestrator.session.set_aoi(aoi)
    return aoi
