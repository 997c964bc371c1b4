from __future__ import annotations

from typing import Literal, Protocol

from gee_analysis.models import AnalysisResults, AreaOfInterest

Severity = Literal["success", "info", "warning", "danger"]


class AnalysisUI(Protocol):
    """What the orchestration layer needs from whatever renders it."""

    def show_loading(self, title: str, subtitle: str = "") -> None: ...

    def hide_loading(self) -> None: ...

    def show_alert(self, message: str, severity: Severity = "info") -> None: ...

    def populate_provinces(self, provinces: dict[str, str]) -> None: ...

    def populate_cities(self, cities: dict[str, str]) -> None: ...

    def reset_cities(self) -> None: ...

    def draw_region(self, aoi: AreaOfInterest) -> None: ...

    def show_aoi_info(self, aoi: AreaOfInterest) -> None: ...

    def display_results(self, aoi: AreaOfInterest, results: AnalysisResults) -> None: ...

    def deliver_file(self, filename: str, content: bytes, mime: str) -> None: ...
