from __future__ import annotations

import inspect
from typing import Any, Callable, MutableMapping

from gee_analysis.models import AnalysisResults, AreaOfInterest
from gee_analysis.orchestrator import USE_PROVINCE, AnalysisOrchestrator

PROVINCE_PLACEHOLDER = ("-- Select Province --", "")
CITY_PLACEHOLDER = ("-- Select City --", "")
USE_PROVINCE_OPTION = ("-- Use Province --", USE_PROVINCE)

OSM_TILE_URL = "https://{s}.tile.openstreetmap.org/{z}/{x}/{y}.png"
OSM_ATTRIBUTION = "&copy; OpenStreetMap contributors"
GEE_ATTRIBUTION = "&copy; Google Earth Engine"

Handler = Callable[..., Any]


def build_province_options(provinces: dict[str, str]) -> list[tuple[str, str]]:
    return [PROVINCE_PLACEHOLDER, *[(name, code) for name, code in provinces.items()]]


def build_city_options(cities: dict[str, str]) -> list[tuple[str, str]]:
    """City choices are rebuilt from scratch; nothing from a previous list survives."""
    if not cities:
        return [CITY_PLACEHOLDER]
    return [CITY_PLACEHOLDER, USE_PROVINCE_OPTION, *[(name, code) for name, code in cities.items()]]


class HandlerRegistry:
    """Event name -> handler; attaching replaces whatever was attached before."""

    def __init__(self) -> None:
        self._handlers: dict[str, Handler] = {}

    def on(self, event: str, handler: Handler) -> None:
        self.off(event)
        self._handlers[event] = handler

    def off(self, event: str) -> None:
        self._handlers.pop(event, None)

    def events(self) -> list[str]:
        return sorted(self._handlers)

    def handler(self, event: str) -> Handler | None:
        return self._handlers.get(event)

    async def dispatch(self, event: str, *args: Any) -> Any:
        handler = self._handlers.get(event)
        if handler is None:
            raise KeyError(f"No handler attached for event '{event}'.")
        result = handler(*args)
        if inspect.isawaitable(result):
            result = await result
        return result


def wire_handlers(registry: HandlerRegistry, orchestrator: AnalysisOrchestrator) -> None:
    registry.on("province_change", orchestrator.select_province)
    registry.on("load_region", orchestrator.load_selected_region)
    registry.on("draw_aoi", orchestrator.set_drawn_aoi)
    registry.on("run_analysis", orchestrator.run_complete_analysis)
    registry.on("download_stats", orchestrator.download_statistics)


def format_aoi_info(aoi: AreaOfInterest) -> dict[str, str]:
    b = aoi.bounds
    return {
        "Name": aoi.name,
        "Type": "Administrative" if aoi.kind == "admin" else "Drawn",
        "Area": f"{aoi.area_km2:,.2f} km²",
        "Bounds": f"W {b.west:.4f}, S {b.south:.4f}, E {b.east:.4f}, N {b.north:.4f}",
    }


def build_map_layers(
    aoi: AreaOfInterest | None,
    results: AnalysisResults | None = None,
    *,
    zoom: int = 10,
    default_center: tuple[float, float] = (-2.5, 118.0),
) -> dict[str, Any]:
    """Describe the Leaflet layers to draw for the AOI and any analysis tiles."""

    layers: list[dict[str, Any]] = [
        {"type": "tile", "url": OSM_TILE_URL, "attribution": OSM_ATTRIBUTION}
    ]
    if aoi is None:
        return {"center": list(default_center), "zoom": 5, "fit": None, "layers": layers}

    b = aoi.bounds
    fit = [[b.south, b.west], [b.north, b.east]]
    if results is not None and results.rgb_tile_url:
        layers.append(
            {
                "type": "tile",
                "url": results.rgb_tile_url,
                "attribution": GEE_ATTRIBUTION,
                "maxZoom": 18,
            }
        )
    if aoi.geojson is not None:
        layers.append(
            {"type": "geojson", "data": aoi.geojson, "style": {"color": "blue", "fillOpacity": 0.3}}
        )
    layers.append(
        {"type": "rectangle", "bounds": fit, "style": {"color": "red", "weight": 2, "fillOpacity": 0.1}}
    )

    lat, lng = b.center
    return {"center": [lat, lng], "zoom": int(zoom), "fit": fit, "layers": layers}


def reset_result_state(state: MutableMapping[str, Any]) -> None:
    """Forget the rendered results and any statistics file prepared from them."""
    state["result_map_spec"] = None
    state["show_results"] = False
    state["pending_download"] = None


def apply_region(state: MutableMapping[str, Any], aoi: AreaOfInterest, *, zoom: int) -> None:
    state["map_spec"] = build_map_layers(aoi, zoom=zoom)
    reset_result_state(state)


def apply_results(
    state: MutableMapping[str, Any],
    aoi: AreaOfInterest,
    results: AnalysisResults,
    *,
    zoom: int,
) -> None:
    state["result_map_spec"] = build_map_layers(aoi, results, zoom=zoom)
    state["show_results"] = True
    state["pending_download"] = None
