from __future__ import annotations

from dataclasses import dataclass, field

from gee_analysis.models import AnalysisOptions, AnalysisResults, AreaOfInterest, Bounds


class AOINotSelected(Exception):
    """Raised when an operation needs an area of interest and none is set."""

    def __init__(self, message: str = "Please select an AOI first"):
        super().__init__(message)


@dataclass
class AnalysisSession:
    """State shared by the orchestration operations of one user session."""

    options: AnalysisOptions = field(default_factory=AnalysisOptions)
    selected_indices: list[str] = field(default_factory=lambda: ["NDVI"])
    provinces: dict[str, str] = field(default_factory=dict)
    cities: dict[str, str] = field(default_factory=dict)
    results: AnalysisResults = field(default_factory=AnalysisResults)
    _aoi: AreaOfInterest | None = None

    @property
    def aoi(self) -> AreaOfInterest | None:
        return self._aoi

    @property
    def has_aoi(self) -> bool:
        return self._aoi is not None

    def set_aoi(self, aoi: AreaOfInterest) -> None:
        self._aoi = aoi

    def clear_aoi(self) -> None:
        self._aoi = None

    def require_aoi(self) -> AreaOfInterest:
        if self._aoi is None:
            raise AOINotSelected()
        return self._aoi

    def require_bounds(self) -> Bounds:
        return self.require_aoi().bounds

    def reset_results(self) -> AnalysisResults:
        self.results = AnalysisResults()
        return self.results

    def replace_provinces(self, provinces: dict[str, str]) -> None:
        self.provinces = dict(provinces)
        self.cities = {}

    def replace_cities(self, cities: dict[str, str]) -> None:
        self.cities = dict(cities)

    def clear_cities(self) -> None:
        self.cities = {}

    def province_name(self, code: str) -> str | None:
        return _name_for_code(self.provinces, code)

    def city_name(self, code: str) -> str | None:
        return _name_for_code(self.cities, code)


def _name_for_code(options: dict[str, str], code: str) -> str | None:
    target = str(code)
    for name, value in options.items():
        if str(value) == target:
            return name
    return None
