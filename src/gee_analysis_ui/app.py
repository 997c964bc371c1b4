"""
GEE Analysis - Streamlit front end

Thin adapter between Streamlit widgets and the orchestration layer.  All
requests, precondition checks and result bookkeeping live in
``gee_analysis.orchestrator``; this module only renders what the
orchestrator reports through the UI port (alerts, loading indicator,
selector options, map layers, downloadable statistics) and forwards widget
events through the handler registry.
"""

import json
import sys
from pathlib import Path
from typing import Any, Dict, List, Optional

import anyio
import streamlit as st
import streamlit.components.v1 as components
from loguru import logger

from gee_analysis.client import GEEApiClient
from gee_analysis.models import LAND_COVER_DATASETS, AnalysisResults, AnalysisType, AreaOfInterest
from gee_analysis.orchestrator import AnalysisOrchestrator
from gee_analysis.ports import Severity
from gee_analysis.settings import get_settings
from gee_analysis_ui.ui_runtime import (
    HandlerRegistry,
    apply_region,
    apply_results,
    build_city_options,
    build_map_layers,
    build_province_options,
    format_aoi_info,
    wire_handlers,
)


PROJECT_ROOT = Path(__file__).resolve().parents[2]
MAP_HEIGHT = 520
VEGETATION_INDICES = ["NDVI", "EVI", "SAVI", "NDWI", "NDMI", "NBR"]
MONTHS = list(range(1, 13))

# ═══════════════════════════════════════════════════════════════════════════════
# LOGURU SETUP
# ═══════════════════════════════════════════════════════════════════════════════
_APP_LOG = PROJECT_ROOT / "app_debug.log"
logger.remove()
logger.add(
    sys.stderr,
    level="INFO",
    format="<green>{time:HH:mm:ss}</green> | <level>{level:<7}</level> | {message}",
)
logger.add(
    str(_APP_LOG),
    level="DEBUG",
    rotation="5 MB",
    retention="3 days",
    format="{time:YYYY-MM-DD HH:mm:ss} | {level:<7} | {message}",
)


# ═══════════════════════════════════════════════════════════════════════════════
# LEAFLET MAP
# ═══════════════════════════════════════════════════════════════════════════════
LEAFLET_HTML = """
<!doctype html>
<html>
<head>
  <meta charset="utf-8" />
  <link rel="stylesheet" href="https://unpkg.com/leaflet@1.9.4/dist/leaflet.css" />
  <script src="https://unpkg.com/leaflet@1.9.4/dist/leaflet.js"></script>
  <style>html, body, #map { height: 100%; margin: 0; }</style>
</head>
<body>
  <div id="map"></div>
  <script>
    const spec = __SPEC__;
    const map = L.map('map').setView(spec.center, spec.zoom);
    for (const layer of spec.layers) {
      if (layer.type === 'tile') {
        L.tileLayer(layer.url, {attribution: layer.attribution, maxZoom: layer.maxZoom || 19}).addTo(map);
      } else if (layer.type === 'geojson') {
        L.geoJSON(layer.data, {style: layer.style}).addTo(map);
      } else if (layer.type === 'rectangle') {
        L.rectangle(layer.bounds, layer.style).addTo(map);
      }
    }
    if (spec.fit) { map.fitBounds(spec.fit); }
  </script>
</body>
</html>
"""


def render_map(spec: Dict[str, Any], height: int = MAP_HEIGHT) -> None:
    components.html(LEAFLET_HTML.replace("__SPEC__", json.dumps(spec)), height=height)


# ═══════════════════════════════════════════════════════════════════════════════
# UI PORT
# ═══════════════════════════════════════════════════════════════════════════════
_ALERT_RENDERERS = {
    "success": "success",
    "info": "info",
    "warning": "warning",
    "danger": "error",
}


class StreamlitUI:
    """Renders orchestrator feedback into the placeholders of the current run."""

    def __init__(self) -> None:
        self._alerts = None
        self._loading = None

    def bind(self, alerts_box, loading_slot) -> None:
        self._alerts = alerts_box
        self._loading = loading_slot

    def show_loading(self, title: str, subtitle: str = "") -> None:
        logger.debug(f"[UI] loading: {title} {subtitle}")
        if self._loading is not None:
            self._loading.info(f"⏳ **{title}**  \n{subtitle}")

    def hide_loading(self) -> None:
        if self._loading is not None:
            self._loading.empty()

    def show_alert(self, message: str, severity: Severity = "info") -> None:
        logger.info(f"[UI] alert ({severity}): {message}")
        if self._alerts is not None:
            getattr(self._alerts, _ALERT_RENDERERS.get(severity, "info"))(message)

    def populate_provinces(self, provinces: Dict[str, str]) -> None:
        st.session_state["province_options"] = build_province_options(provinces)
        st.session_state["city_options"] = build_city_options({})
        st.session_state["city_enabled"] = False

    def populate_cities(self, cities: Dict[str, str]) -> None:
        st.session_state["city_options"] = build_city_options(cities)
        st.session_state["city_enabled"] = True

    def reset_cities(self) -> None:
        st.session_state["city_options"] = build_city_options({})
        st.session_state["city_enabled"] = False

    def draw_region(self, aoi: AreaOfInterest) -> None:
        apply_region(st.session_state, aoi, zoom=_options().zoom)

    def show_aoi_info(self, aoi: AreaOfInterest) -> None:
        st.session_state["aoi_info"] = format_aoi_info(aoi)

    def display_results(self, aoi: AreaOfInterest, results: AnalysisResults) -> None:
        apply_results(st.session_state, aoi, results, zoom=_options().zoom)

    def deliver_file(self, filename: str, content: bytes, mime: str) -> None:
        st.session_state["pending_download"] = {"name": filename, "data": content, "mime": mime}


# ═══════════════════════════════════════════════════════════════════════════════
# STATE
# ═══════════════════════════════════════════════════════════════════════════════

def init_state() -> None:
    defaults = {
        "province_options": build_province_options({}),
        "city_options": build_city_options({}),
        "city_enabled": False,
        "last_province": "",
        "map_spec": build_map_layers(None),
        "result_map_spec": None,
        "aoi_info": None,
        "show_results": False,
        "pending_download": None,
        "bootstrapped": False,
        "backend_ready": False,
    }
    for k, v in defaults.items():
        if k not in st.session_state:
            st.session_state[k] = v

    if "orchestrator" not in st.session_state:
        settings = get_settings()
        ui = StreamlitUI()
        orchestrator = AnalysisOrchestrator(GEEApiClient(settings), ui)
        orchestrator.session.selected_indices = settings.default_indices
        st.session_state["ui"] = ui
        st.session_state["orchestrator"] = orchestrator
        st.session_state["registry"] = HandlerRegistry()
        logger.info(f"GEE analysis UI started, backend={settings.base_url}")


def _orchestrator() -> AnalysisOrchestrator:
    return st.session_state["orchestrator"]


def _options():
    return _orchestrator().session.options


def _fire(event: str, *args: Any) -> Any:
    registry: HandlerRegistry = st.session_state["registry"]
    return anyio.run(registry.dispatch, event, *args)


def _select(label: str, options: List[tuple], key: str, disabled: bool = False) -> Optional[str]:
    labels = [name for name, _ in options]
    values = [value for _, value in options]
    chosen = st.selectbox(label, labels, key=key, disabled=disabled)
    return values[labels.index(chosen)] if chosen in labels else None


# ═══════════════════════════════════════════════════════════════════════════════
# SIDEBAR
# ═══════════════════════════════════════════════════════════════════════════════

def render_sidebar() -> None:
    orchestrator = _orchestrator()
    session = orchestrator.session

    st.sidebar.markdown("### Region")
    with st.sidebar:
        province_code = _select("Province", st.session_state["province_options"], key="province_select")
        if province_code != st.session_state["last_province"]:
            st.session_state["last_province"] = province_code
            _fire("province_change", province_code)

        city_code = _select(
            "City",
            st.session_state["city_options"],
            key="city_select",
            disabled=not st.session_state["city_enabled"],
        )
        if st.button("Load Region", use_container_width=True):
            _fire("load_region", province_code, city_code)

        with st.expander("Draw AOI (WKT / GeoJSON)", expanded=False):
            drawn = st.text_area("Geometry", value="", height=120, key="drawn_text")
            if st.button("Use drawn AOI", use_container_width=True):
                _fire("draw_aoi", drawn)

        st.markdown("### Analysis")
        options = session.options
        types = [t.value for t in AnalysisType]
        options.analysis_type = st.selectbox(
            "Analysis type", types, index=types.index(options.analysis_type.value)
        )
        options.year = int(st.number_input("Year", min_value=1984, max_value=2100, value=options.year))
        c1, c2 = st.columns(2)
        with c1:
            options.start_month = int(st.selectbox("Start month", MONTHS, index=options.start_month - 1))
        with c2:
            options.end_month = int(st.selectbox("End month", MONTHS, index=options.end_month - 1))
        options.cloud_threshold = int(st.slider("Cloud threshold (%)", 0, 100, options.cloud_threshold))
        options.zoom = int(st.slider("Result map zoom", 1, 18, options.zoom))

        session.selected_indices = st.multiselect(
            "Vegetation indices",
            VEGETATION_INDICES,
            default=[i for i in session.selected_indices if i in VEGETATION_INDICES],
        )

        st.caption("Land cover datasets")
        options.dynamic_world = st.checkbox(LAND_COVER_DATASETS[0], value=options.dynamic_world)
        options.esa_world_cover = st.checkbox(LAND_COVER_DATASETS[1], value=options.esa_world_cover)
        options.esri_land_cover = st.checkbox(LAND_COVER_DATASETS[2], value=options.esri_land_cover)
        modes = ["mode", "probability", "latest"]
        options.dw_mode = st.selectbox(
            "Dynamic World mode",
            modes,
            index=modes.index(options.dw_mode) if options.dw_mode in modes else 0,
        )

        if st.button("Run Analysis", type="primary", use_container_width=True):
            _fire("run_analysis")


# ═══════════════════════════════════════════════════════════════════════════════
# MAIN
# ═══════════════════════════════════════════════════════════════════════════════

def render_results() -> None:
    orchestrator = _orchestrator()
    results = orchestrator.session.results
    if not st.session_state["show_results"] or results.is_empty:
        return

    st.markdown("## Results")
    if st.session_state["result_map_spec"]:
        render_map(st.session_state["result_map_spec"])

    k1, k2 = st.columns(2)
    with k1:
        st.metric("Images", results.collection_size if results.collection_size is not None else "-")
    with k2:
        st.metric("Analyses", len([p for p in (results.vegetation, results.landcover) if p is not None]))

    tab_veg, tab_lc = st.tabs(["Vegetation", "Land cover"])
    with tab_veg:
        if results.vegetation is not None:
            st.json(results.vegetation)
        else:
            st.info("No vegetation results.")
    with tab_lc:
        if results.landcover is not None:
            st.json(results.landcover)
        else:
            st.info("No land cover results.")

    if st.button("Prepare statistics download"):
        _fire("download_stats")
    pending = st.session_state["pending_download"]
    if pending:
        st.download_button(
            "⬇️ Download statistics",
            data=pending["data"],
            file_name=pending["name"],
            mime=pending["mime"],
            use_container_width=True,
        )


def main() -> None:
    st.set_page_config(page_title="GEE Analysis", layout="wide")
    init_state()

    st.title("GEE Analysis")
    alerts_box = st.container()
    loading_slot = st.empty()
    ui: StreamlitUI = st.session_state["ui"]
    ui.bind(alerts_box, loading_slot)

    wire_handlers(st.session_state["registry"], _orchestrator())

    if not st.session_state["bootstrapped"]:
        st.session_state["backend_ready"] = anyio.run(_orchestrator().initialize)
        st.session_state["bootstrapped"] = True

    render_sidebar()

    left, right = st.columns([3, 1])
    with left:
        render_map(st.session_state["map_spec"])
    with right:
        st.markdown("### Area of interest")
        if st.session_state["aoi_info"]:
            for label, value in st.session_state["aoi_info"].items():
                st.caption(label)
                st.markdown(f"**{value}**")
        else:
            st.info("Select a province/city or draw an AOI.")
        status = "connected" if st.session_state["backend_ready"] else "demo mode"
        st.caption(f"Backend: {status}")

    render_results()


if __name__ == "__main__":
    main()
