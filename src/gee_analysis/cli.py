from __future__ import annotations

import argparse
import json
import logging
import sys
from pathlib import Path
from typing import Any, TextIO

import anyio

from gee_analysis.client import GEEApiClient
from gee_analysis.logging_config import configure_logging
from gee_analysis.models import (
    LAND_COVER_DATASETS,
    AnalysisOptions,
    AnalysisResults,
    AreaOfInterest,
)
from gee_analysis.orchestrator import AnalysisOrchestrator
from gee_analysis.ports import Severity
from gee_analysis.settings import Settings, get_settings

logger = logging.getLogger("gee.cli")


class ConsoleUI:
    """Terminal rendition of the UI port: JSON lines on stdout, alerts on stderr."""

    def __init__(
        self,
        *,
        output_dir: Path,
        out: TextIO | None = None,
        err: TextIO | None = None,
    ):
        self.output_dir = output_dir
        self.out = out or sys.stdout
        self.err = err or sys.stderr
        self.written_files: list[Path] = []

    def _emit(self, payload: dict[str, Any]) -> None:
        print(json.dumps(payload, ensure_ascii=False), file=self.out)

    def show_loading(self, title: str, subtitle: str = "") -> None:
        logger.info("%s %s", title, subtitle)

    def hide_loading(self) -> None:
        logger.debug("loading finished")

    def show_alert(self, message: str, severity: Severity = "info") -> None:
        print(json.dumps({"alert": severity, "message": message}), file=self.err)

    def populate_provinces(self, provinces: dict[str, str]) -> None:
        self._emit({"provinces": provinces})

    def populate_cities(self, cities: dict[str, str]) -> None:
        self._emit({"cities": cities})

    def reset_cities(self) -> None:
        self._emit({"cities": {}})

    def draw_region(self, aoi: AreaOfInterest) -> None:
        logger.debug("AOI geometry ready name=%s kind=%s", aoi.name, aoi.kind)

    def show_aoi_info(self, aoi: AreaOfInterest) -> None:
        self._emit({"aoi": aoi.model_dump(mode="json", exclude={"geojson"})})

    def display_results(self, aoi: AreaOfInterest, results: AnalysisResults) -> None:
        self._emit({"region": aoi.name, "results": results.as_payload()})

    def deliver_file(self, filename: str, content: bytes, mime: str) -> None:
        self.output_dir.mkdir(parents=True, exist_ok=True)
        path = self.output_dir / filename
        path.write_bytes(content)
        self.written_files.append(path)
        self._emit({"file": str(path), "mime": mime})


def _load_params(raw: str | None) -> dict[str, Any]:
    if not raw:
        return {}
    text = Path(raw[1:]).read_text(encoding="utf-8") if raw.startswith("@") else raw
    params = json.loads(text)
    if not isinstance(params, dict):
        raise ValueError("params must be a JSON object.")
    return params


def _option_updates(args: argparse.Namespace) -> dict[str, Any]:
    updates: dict[str, Any] = {}
    for field_name, arg_name in (
        ("analysis_type", "type"),
        ("year", "year"),
        ("start_month", "start_month"),
        ("end_month", "end_month"),
        ("cloud_threshold", "cloud"),
        ("dw_mode", "dw_mode"),
    ):
        value = getattr(args, arg_name, None)
        if value is not None:
            updates[field_name] = value

    datasets = getattr(args, "datasets", None)
    if datasets is not None:
        chosen = {item.strip() for item in datasets.split(",") if item.strip()}
        updates["dynamic_world"] = LAND_COVER_DATASETS[0] in chosen
        updates["esa_world_cover"] = LAND_COVER_DATASETS[1] in chosen
        updates["esri_land_cover"] = LAND_COVER_DATASETS[2] in chosen
    return updates


async def _select_aoi(orchestrator: AnalysisOrchestrator, args: argparse.Namespace) -> bool:
    if args.aoi_file:
        path = Path(args.aoi_file)
        text = path.read_text(encoding="utf-8")
        return orchestrator.set_drawn_aoi(text, name=path.stem) is not None

    if args.city:
        await orchestrator.select_province(args.province)
    geojson = await orchestrator.load_selected_region(args.province, args.city)
    return geojson is not None


def _add_region_arguments(parser: argparse.ArgumentParser) -> None:
    parser.add_argument("--province", default=None, help="Province code")
    parser.add_argument("--city", default=None, help="City code within the province")
    parser.add_argument("--aoi-file", default=None, help="WKT or GeoJSON file with a drawn AOI")


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="GEE analysis backend client")
    parser.add_argument("--base-url", default=None)
    parser.add_argument("--api-key", default=None)
    parser.add_argument("--timeout", type=float, default=None)
    parser.add_argument("--retries", type=int, default=None)
    parser.add_argument("--output-dir", default=None)

    sub = parser.add_subparsers(dest="command", required=True)
    sub.add_parser("health", help="Check backend and engine status")
    sub.add_parser("provinces", help="List provinces")

    cities = sub.add_parser("cities", help="List cities of a province")
    cities.add_argument("province_code")

    analyze = sub.add_parser("analyze", help="Run the complete analysis for a region")
    _add_region_arguments(analyze)
    analyze.add_argument("--type", choices=["vegetation", "landcover", "combined"], default=None)
    analyze.add_argument("--year", type=int, default=None)
    analyze.add_argument("--start-month", type=int, default=None)
    analyze.add_argument("--end-month", type=int, default=None)
    analyze.add_argument("--cloud", type=int, default=None)
    analyze.add_argument("--indices", default=None, help="Comma separated, e.g. NDVI,EVI")
    analyze.add_argument(
        "--datasets", default=None, help=f"Comma separated subset of {','.join(LAND_COVER_DATASETS)}"
    )
    analyze.add_argument("--dw-mode", default=None)
    analyze.add_argument("--no-stats", action="store_true")

    for name, help_text in (("timeseries", "Run a time series analysis"), ("export", "Start an export task")):
        command = sub.add_parser(name, help=help_text)
        _add_region_arguments(command)
        command.add_argument("--params", default=None, help="JSON object or @file")

    return parser


def _settings_for(args: argparse.Namespace, base: Settings) -> Settings:
    updates: dict[str, Any] = {}
    if args.base_url:
        updates["gee_api_base_url"] = args.base_url
    if args.api_key:
        updates["gee_api_key"] = args.api_key
    if args.timeout is not None:
        updates["gee_api_timeout_seconds"] = args.timeout
    if args.retries is not None:
        updates["gee_api_retries"] = args.retries
    if args.output_dir:
        updates["gee_export_dir"] = Path(args.output_dir)
    if not updates:
        return base
    return Settings.model_validate({**base.model_dump(), **updates})


async def run_command(
    orchestrator: AnalysisOrchestrator, args: argparse.Namespace, out: TextIO
) -> int:
    command = args.command

    if command == "health":
        response = await anyio.to_thread.run_sync(orchestrator.client.health_check)
        print(json.dumps(response.model_dump(mode="json")), file=out)
        data = response.data if isinstance(response.data, dict) else {}
        ready = response.success and bool(data.get("ee_initialized"))
        return 0 if ready else 1

    if command == "provinces":
        return 0 if await orchestrator.load_provinces() else 1

    if command == "cities":
        return 0 if await orchestrator.load_cities(args.province_code) else 1

    await orchestrator.initialize()
    if not await _select_aoi(orchestrator, args):
        return 1

    if command == "analyze":
        session = orchestrator.session
        updates = _option_updates(args)
        if updates:
            session.options = AnalysisOptions.model_validate(
                {**session.options.model_dump(), **updates}
            )
        if args.indices:
            session.selected_indices = [item.strip() for item in args.indices.split(",") if item.strip()]

        results = await orchestrator.run_complete_analysis()
        if results.is_empty:
            return 1
        if not args.no_stats:
            orchestrator.download_statistics()
        return 0

    params = _load_params(args.params)
    if command == "timeseries":
        data = await orchestrator.run_time_series(params)
    else:
        data = await orchestrator.export_to_drive(params)
    if data is None:
        return 1
    print(json.dumps(data, ensure_ascii=False), file=out)
    return 0


def run(args: argparse.Namespace, settings: Settings | None = None) -> int:
    settings = _settings_for(args, settings or get_settings())
    ui = ConsoleUI(output_dir=settings.gee_export_dir)
    with GEEApiClient(settings) as client:
        orchestrator = AnalysisOrchestrator(client, ui)
        orchestrator.session.selected_indices = settings.default_indices
        return anyio.run(run_command, orchestrator, args, ui.out)


def main() -> None:
    settings = get_settings()
    configure_logging(level=settings.gee_log_level, json_logs=settings.gee_log_json)
    parser = build_parser()
    args = parser.parse_args()
    try:
        code = run(args, settings)
    except Exception as exc:
        logger.debug("CLI failed", exc_info=True)
        print(json.dumps({"error": str(exc)}), file=sys.stderr)
        sys.exit(1)
    sys.exit(code)


if __name__ == "__main__":
    main()
