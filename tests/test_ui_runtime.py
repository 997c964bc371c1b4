from __future__ import annotations

import pytest

from gee_analysis.models import AnalysisResults, RequestResult
from gee_analysis_ui.ui_runtime import (
    CITY_PLACEHOLDER,
    PROVINCE_PLACEHOLDER,
    USE_PROVINCE_OPTION,
    HandlerRegistry,
    apply_region,
    apply_results,
    build_city_options,
    build_map_layers,
    build_province_options,
    format_aoi_info,
    wire_handlers,
)


def test_province_options_start_with_placeholder() -> None:
    assert build_province_options({"Bali": "51", "Jawa Barat": "32"}) == [
        PROVINCE_PLACEHOLDER,
        ("Bali", "51"),
        ("Jawa Barat", "32"),
    ]


def test_city_options_are_rebuilt_from_scratch() -> None:
    assert build_city_options({}) == [CITY_PLACEHOLDER]
    assert build_city_options({"Kota Bandung": "3273"}) == [
        CITY_PLACEHOLDER,
        USE_PROVINCE_OPTION,
        ("Kota Bandung", "3273"),
    ]


@pytest.mark.anyio
async def test_registry_attaching_twice_keeps_one_handler() -> None:
    registry = HandlerRegistry()
    calls: list[str] = []
    registry.on("run_analysis", lambda: calls.append("first"))
    registry.on("run_analysis", lambda: calls.append("second"))

    await registry.dispatch("run_analysis")

    assert calls == ["second"]
    assert registry.events() == ["run_analysis"]


@pytest.mark.anyio
async def test_registry_awaits_async_handlers_and_rejects_unknown_events() -> None:
    registry = HandlerRegistry()

    async def handler(value: int) -> int:
        return value * 2

    registry.on("double", handler)
    assert await registry.dispatch("double", 21) == 42

    registry.off("double")
    assert registry.handler("double") is None
    with pytest.raises(KeyError):
        await registry.dispatch("double", 1)


@pytest.mark.anyio
async def test_wired_handlers_reach_the_orchestrator(orchestrator, fake_client, recording_ui) -> None:
    registry = HandlerRegistry()
    wire_handlers(registry, orchestrator)
    wire_handlers(registry, orchestrator)
    fake_client.responses["get_cities"] = RequestResult.ok({"Kota Bandung": "3273"})

    assert registry.events() == sorted(
        ["province_change", "load_region", "draw_aoi", "run_analysis", "download_stats"]
    )
    await registry.dispatch("province_change", "32")
    await registry.dispatch("run_analysis")

    assert fake_client.calls == [("get_cities", ("32",))]
    assert recording_ui.cities == {"Kota Bandung": "3273"}
    assert recording_ui.severities() == ["warning"]


def test_map_without_aoi_shows_base_layer_only() -> None:
    layout = build_map_layers(None)

    assert layout["fit"] is None
    assert layout["zoom"] == 5
    assert [layer["type"] for layer in layout["layers"]] == ["tile"]


def test_map_layers_for_aoi_and_results(with_aoi) -> None:
    results = AnalysisResults(rgb_tile_url="https://tiles.test/rgb/{z}/{x}/{y}")

    layout = build_map_layers(with_aoi, results, zoom=11)

    assert [layer["type"] for layer in layout["layers"]] == ["tile", "tile", "geojson", "rectangle"]
    assert layout["layers"][1]["url"] == results.rgb_tile_url
    assert layout["fit"] == [[-7.0, 107.5], [-6.8, 107.8]]
    assert layout["zoom"] == 11
    assert layout["center"] == [pytest.approx(-6.9), pytest.approx(107.65)]


def test_format_aoi_info(with_aoi) -> None:
    info = format_aoi_info(with_aoi)

    assert info["Name"] == "Kota Bandung"
    assert info["Type"] == "Administrative"
    assert info["Area"].endswith("km²")
    assert info["Bounds"] == "W 107.5000, S -7.0000, E 107.8000, N -6.8000"


def test_new_results_drop_previously_prepared_download(with_aoi) -> None:
    state = {"pending_download": {"name": "old.json"}, "show_results": False, "result_map_spec": None}

    apply_results(state, with_aoi, AnalysisResults(vegetation={"NDVI": {}}), zoom=9)

    assert state["pending_download"] is None
    assert state["show_results"] is True
    assert state["result_map_spec"]["zoom"] == 9


def test_new_region_hides_previous_results(with_aoi) -> None:
    state = {
        "pending_download": {"name": "old.json"},
        "show_results": True,
        "result_map_spec": {"layers": []},
    }

    apply_region(state, with_aoi, zoom=10)

    assert state["pending_download"] is None
    assert state["show_results"] is False
    assert state["result_map_spec"] is None
    assert state["map_spec"]["fit"] == [[-7.0, 107.5], [-6.8, 107.8]]
