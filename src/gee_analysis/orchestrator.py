from __future__ import annotations

import functools
import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from types import SimpleNamespace
from typing import Any, Callable

import anyio
from pydantic import ValidationError

from gee_analysis.client import GEEApiClient
from gee_analysis.export import (
    STATISTICS_MIME,
    build_statistics_snapshot,
    render_statistics,
    statistics_filename,
)
from gee_analysis.geometry.aoi import admin_aoi, drawn_aoi, parse_aoi_text
from gee_analysis.guard import OperationGuard, OperationInProgress
from gee_analysis.models import (
    AnalysisResults,
    AreaOfInterest,
    HealthStatus,
    LandCoverAnalysisRequest,
    RequestResult,
    VegetationAnalysisRequest,
)
from gee_analysis.ports import AnalysisUI
from gee_analysis.session import AOINotSelected, AnalysisSession

logger = logging.getLogger("gee.orchestrator")

USE_PROVINCE = "use_province"
GENERIC_ANALYSIS_ERROR = "An error occurred during analysis"
UNEXPECTED_PAYLOAD = "Unexpected response format"


@dataclass(frozen=True)
class RegionTarget:
    endpoint: str
    code: str
    name: str


def resolve_region_target(
    session: AnalysisSession, province_code: str | None, city_code: str | None
) -> RegionTarget | None:
    """Pick the city when one is chosen, otherwise the province itself."""
    if not province_code:
        return None
    if city_code and city_code != USE_PROVINCE:
        return RegionTarget("city", city_code, session.city_name(city_code) or city_code)
    return RegionTarget(
        "province", province_code, session.province_name(province_code) or province_code
    )


def _as_options(data: Any) -> dict[str, str] | None:
    if not isinstance(data, dict):
        return None
    return {str(name): str(code) for name, code in data.items()}


def _first_error(exc: ValidationError) -> str:
    errors = exc.errors()
    if not errors:
        return str(exc)
    return str(errors[0].get("msg", exc))


def exclusive(kind: str, fallback: Callable[[], Any] = lambda: None):
    """Reject a call while another call of the same kind is still in flight."""

    def decorator(func):
        @functools.wraps(func)
        async def wrapper(self: "AnalysisOrchestrator", *args: Any, **kwargs: Any) -> Any:
            try:
                self.guard.acquire(kind)
            except OperationInProgress as exc:
                logger.warning("Rejected overlapping operation=%s", kind, extra={"operation": kind})
                self.ui.show_alert(str(exc), "warning")
                return fallback()
            try:
                return await func(self, *args, **kwargs)
            finally:
                self.guard.release(kind)

        return wrapper

    return decorator


class AnalysisOrchestrator:
    """Runs user-triggered operations against the API and reports through a UI port.

    Every networked operation goes Idle -> Loading -> Success | Failure -> Idle.
    The loading indicator is hidden exactly once, before the outcome is
    inspected. Failures surface as alerts and return a fallback value.
    """

    def __init__(
        self,
        client: GEEApiClient,
        ui: AnalysisUI,
        session: AnalysisSession | None = None,
    ):
        self.client = client
        self.ui = ui
        self.session = session or AnalysisSession()
        self.guard = OperationGuard()

    async def _call(
        self, title: str, subtitle: str, func: Callable[..., RequestResult], *args: Any
    ) -> RequestResult:
        self.ui.show_loading(title, subtitle)
        try:
            return await anyio.to_thread.run_sync(functools.partial(func, *args))
        finally:
            self.ui.hide_loading()

    def _warn(self, message: str) -> None:
        logger.info("Precondition failed: %s", message)
        self.ui.show_alert(message, "warning")

    async def initialize(self) -> bool:
        """Check backend health, then eagerly load the province list."""
        response = await anyio.to_thread.run_sync(self.client.health_check)

        ready = False
        if response.success and isinstance(response.data, dict):
            try:
                ready = HealthStatus.model_validate(response.data).is_ready
            except ValidationError:
                ready = False

        if ready:
            logger.info("Backend connected and Earth Engine initialized")
            self.ui.show_alert("Connected to GEE Backend", "success")
        else:
            logger.error(
                "Backend connection failed: %s",
                response.error or "analysis engine not initialized",
            )
            self.ui.show_alert("Warning: Backend not connected. Using demo mode.", "warning")

        await self.load_provinces()
        return ready

    @exclusive("provinces", dict)
    async def load_provinces(self) -> dict[str, str]:
        response = await self._call(
            "Loading provinces...", "Fetching data from server", self.client.get_provinces
        )
        provinces = _as_options(response.data) if response.success else None
        if provinces is None:
            self.ui.show_alert(
                f"Failed to load provinces: {response.error or UNEXPECTED_PAYLOAD}", "danger"
            )
            return {}

        self.session.replace_provinces(provinces)
        self.ui.populate_provinces(provinces)
        return provinces

    @exclusive("cities", dict)
    async def load_cities(self, province_code: str) -> dict[str, str]:
        response = await self._call(
            "Loading cities...", "Fetching data from server", self.client.get_cities, province_code
        )
        cities = _as_options(response.data) if response.success else None
        if cities is None:
            self.ui.show_alert(
                f"Failed to load cities: {response.error or UNEXPECTED_PAYLOAD}", "danger"
            )
            return {}

        self.session.replace_cities(cities)
        self.ui.populate_cities(cities)
        return cities

    async def select_province(self, province_code: str | None) -> dict[str, str]:
        if province_code:
            return await self.load_cities(province_code)
        self.session.clear_cities()
        self.ui.reset_cities()
        return {}

    @exclusive("region")
    async def load_region_geometry(
        self, endpoint: str, code: str, name: str | None = None
    ) -> dict[str, Any] | None:
        response = await self._call(
            "Loading region geometry...",
            "Fetching boundary data",
            self.client.get_region_geometry,
            endpoint,
            code,
        )
        if not (response.success and response.data):
            self.ui.show_alert(
                f"Failed to load region geometry: {response.error or 'Unknown error'}", "danger"
            )
            return None

        geojson = response.data
        if name is None:
            lookup = self.session.city_name if endpoint == "city" else self.session.province_name
            name = lookup(code) or code
        try:
            aoi = admin_aoi(geojson, name)
        except ValueError as exc:
            logger.error("Unusable region geometry endpoint=%s code=%s: %s", endpoint, code, exc)
            self.ui.show_alert(f"Failed to load region geometry: {exc}", "danger")
            return None

        self.session.set_aoi(aoi)
        self.ui.draw_region(aoi)
        self.ui.show_aoi_info(aoi)
        self.ui.show_alert("Region loaded successfully!", "success")
        return geojson

    async def load_selected_region(
        self, province_code: str | None, city_code: str | None = None
    ) -> dict[str, Any] | None:
        target = resolve_region_target(self.session, province_code, city_code)
        if target is None:
            self._warn("Please select a province")
            return None
        return await self.load_region_geometry(target.endpoint, target.code, target.name)

    def set_drawn_aoi(self, text: str, name: str = "Drawn AOI") -> AreaOfInterest | None:
        try:
            aoi = drawn_aoi(parse_aoi_text(text), name=name)
        except ValueError as exc:
            self._warn(f"Invalid AOI: {exc}")
            return None

        self.session.set_aoi(aoi)
        self.ui.draw_region(aoi)
        self.ui.show_aoi_info(aoi)
        self.ui.show_alert("AOI drawn successfully!", "success")
        return aoi

    def build_vegetation_request(self) -> VegetationAnalysisRequest:
        bounds = self.session.require_bounds()
        options = self.session.options
        return VegetationAnalysisRequest(
            aoi=bounds.as_payload(),
            year=options.year,
            start_month=options.start_month,
            end_month=options.end_month,
            cloud_threshold=options.cloud_threshold,
            indices=list(self.session.selected_indices),
        )

    def build_land_cover_request(self) -> LandCoverAnalysisRequest:
        bounds = self.session.require_bounds()
        options = self.session.options
        return LandCoverAnalysisRequest(
            aoi=bounds.as_payload(),
            year=options.year,
            datasets=options.datasets,
            dw_mode=options.dw_mode,
        )

    @exclusive("vegetation")
    async def run_vegetation_analysis(self) -> dict[str, Any] | None:
        try:
            params = self.build_vegetation_request()
        except AOINotSelected as exc:
            self._warn(str(exc))
            return None
        except ValidationError as exc:
            self._warn(f"Invalid vegetation parameters: {_first_error(exc)}")
            return None

        response = await self._call(
            "Analyzing vegetation indices...",
            "Processing Sentinel-2 imagery",
            self.client.analyze_vegetation,
            params,
        )
        if not response.success or not isinstance(response.data, dict):
            self.ui.show_alert(
                f"Vegetation analysis failed: {response.error or UNEXPECTED_PAYLOAD}", "danger"
            )
            return None

        data = response.data
        self.ui.show_alert(
            f"Analysis complete! Found {data.get('collection_size', 0)} images", "success"
        )
        return data

    @exclusive("landcover")
    async def run_land_cover_analysis(self) -> dict[str, Any] | None:
        try:
            params = self.build_land_cover_request()
        except AOINotSelected as exc:
            self._warn(str(exc))
            return None
        except ValidationError as exc:
            self._warn(f"Invalid land cover parameters: {_first_error(exc)}")
            return None

        response = await self._call(
            "Analyzing land cover...",
            "Processing land cover datasets",
            self.client.analyze_land_cover,
            params,
        )
        if not response.success or not isinstance(response.data, dict):
            self.ui.show_alert(
                f"Land cover analysis failed: {response.error or UNEXPECTED_PAYLOAD}", "danger"
            )
            return None

        self.ui.show_alert("Land cover analysis complete!", "success")
        return response.data

    @exclusive("complete_analysis", AnalysisResults)
    async def run_complete_analysis(self) -> AnalysisResults:
        """Vegetation then land cover, keeping whichever parts succeed."""
        if not self.session.has_aoi:
            self._warn(str(AOINotSelected()))
            return self.session.results

        analysis_type = self.session.options.analysis_type
        results = self.session.reset_results()
        try:
            if analysis_type.includes_vegetation:
                vegetation = await self.run_vegetation_analysis()
                if vegetation is not None:
                    results.record_vegetation(vegetation)

            if analysis_type.includes_landcover:
                landcover = await self.run_land_cover_analysis()
                if landcover is not None:
                    results.record_landcover(landcover)

            if not results.is_empty:
                self.ui.display_results(self.session.require_aoi(), results)
        except Exception:
            logger.exception("Complete analysis failed type=%s", analysis_type.value)
            self.ui.show_alert(GENERIC_ANALYSIS_ERROR, "danger")
        return results

    def display_results_with_tiles(self) -> bool:
        aoi = self.session.aoi
        if aoi is None or self.session.results.is_empty:
            return False
        self.ui.display_results(aoi, self.session.results)
        return True

    async def _run_with_aoi(
        self,
        params: dict[str, Any],
        func: Callable[[dict[str, Any]], RequestResult],
        *,
        title: str,
        subtitle: str,
        label: str,
    ) -> dict[str, Any] | None:
        payload = dict(params)
        if "aoi" not in payload:
            try:
                payload["aoi"] = self.session.require_bounds().as_payload()
            except AOINotSelected as exc:
                self._warn(str(exc))
                return None

        response = await self._call(title, subtitle, func, payload)
        if not response.success:
            self.ui.show_alert(f"{label} failed: {response.error}", "danger")
            return None

        self.ui.show_alert(f"{label} complete!", "success")
        return response.data if isinstance(response.data, dict) else {"result": response.data}

    @exclusive("timeseries")
    async def run_time_series(self, params: dict[str, Any]) -> dict[str, Any] | None:
        return await self._run_with_aoi(
            params,
            self.client.analyze_time_series,
            title="Analyzing time series...",
            subtitle="Building index time series",
            label="Time series analysis",
        )

    @exclusive("export")
    async def export_to_drive(self, params: dict[str, Any]) -> dict[str, Any] | None:
        return await self._run_with_aoi(
            params,
            self.client.export_to_drive,
            title="Starting export...",
            subtitle="Submitting export task",
            label="Export",
        )

    def download_statistics(self, now: datetime | None = None) -> str | None:
        moment = now or datetime.now(timezone.utc)
        try:
            snapshot = build_statistics_snapshot(self.session, moment)
        except AOINotSelected as exc:
            self._warn(str(exc))
            return None

        filename = statistics_filename(snapshot["region"], moment)
        self.ui.deliver_file(filename, render_statistics(snapshot), STATISTICS_MIME)
        self.ui.show_alert("Statistics downloaded successfully!", "success")
        return filename

    def namespace(self) -> SimpleNamespace:
        """Named entry points shared with other UI scripts."""
        return SimpleNamespace(
            client=self.client,
            session=self.session,
            load_provinces=self.load_provinces,
            load_cities=self.load_cities,
            load_region_geometry=self.load_region_geometry,
            run_vegetation_analysis=self.run_vegetation_analysis,
            run_land_cover_analysis=self.run_land_cover_analysis,
            run_complete_analysis=self.run_complete_analysis,
            display_results_with_tiles=self.display_results_with_tiles,
            download_statistics=self.download_statistics,
        )
