from __future__ import annotations

from datetime import date
from enum import Enum
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator


LAND_COVER_DATASETS = ("Dynamic_World", "ESA_WorldCover", "ESRI_LandCover")


class AnalysisType(str, Enum):
    vegetation = "vegetation"
    landcover = "landcover"
    combined = "combined"

    @property
    def includes_vegetation(self) -> bool:
        return self in {AnalysisType.vegetation, AnalysisType.combined}

    @property
    def includes_landcover(self) -> bool:
        return self in {AnalysisType.landcover, AnalysisType.combined}


class RequestResult(BaseModel):
    """Outcome of one API call: either parsed data or a readable error."""

    model_config = ConfigDict(frozen=True)

    success: bool
    data: Any = None
    error: str | None = None

    @model_validator(mode="after")
    def _validate_tag(self) -> "RequestResult":
        if self.success and self.error is not None:
            raise ValueError("A successful result cannot carry an error.")
        if not self.success:
            if not self.error:
                raise ValueError("A failed result must carry an error message.")
            if self.data is not None:
                raise ValueError("A failed result cannot carry data.")
        return self

    @classmethod
    def ok(cls, data: Any) -> "RequestResult":
        return cls(success=True, data=data)

    @classmethod
    def fail(cls, error: str) -> "RequestResult":
        return cls(success=False, error=error)


class Bounds(BaseModel):
    model_config = ConfigDict(frozen=True)

    west: float = Field(ge=-180, le=180)
    south: float = Field(ge=-90, le=90)
    east: float = Field(ge=-180, le=180)
    north: float = Field(ge=-90, le=90)

    @model_validator(mode="after")
    def _validate_order(self) -> "Bounds":
        if self.east < self.west or self.north < self.south:
            raise ValueError("Bounds must satisfy west <= east and south <= north.")
        return self

    @property
    def center(self) -> tuple[float, float]:
        """(lat, lng) of the bounds midpoint."""
        return ((self.south + self.north) / 2.0, (self.west + self.east) / 2.0)

    def as_payload(self) -> dict[str, float]:
        return {"west": self.west, "south": self.south, "east": self.east, "north": self.north}


class AreaOfInterest(BaseModel):
    model_config = ConfigDict(frozen=True)

    kind: Literal["admin", "drawn"]
    name: str
    bounds: Bounds
    area_km2: float = Field(ge=0)
    geojson: dict[str, Any] | None = None


class HealthStatus(BaseModel):
    model_config = ConfigDict(extra="allow")

    status: str = "unknown"
    ee_initialized: bool = False

    @property
    def is_ready(self) -> bool:
        return self.ee_initialized


class VegetationAnalysisRequest(BaseModel):
    model_config = ConfigDict(extra="forbid")

    aoi: dict[str, float]
    year: int = Field(ge=1980, le=2100)
    start_month: int = Field(ge=1, le=12)
    end_month: int = Field(ge=1, le=12)
    cloud_threshold: int = Field(ge=0, le=100)
    indices: list[str] = Field(min_length=1)

    @field_validator("indices")
    @classmethod
    def _normalize_indices(cls, values: list[str]) -> list[str]:
        cleaned = [value.strip().upper() for value in values if value and value.strip()]
        if not cleaned:
            raise ValueError("At least one vegetation index must be selected.")
        return list(dict.fromkeys(cleaned))

    @model_validator(mode="after")
    def _validate_months(self) -> "VegetationAnalysisRequest":
        if self.end_month < self.start_month:
            raise ValueError("end_month must be greater or equal to start_month.")
        return self


class LandCoverAnalysisRequest(BaseModel):
    model_config = ConfigDict(extra="forbid")

    aoi: dict[str, float]
    year: int = Field(ge=1980, le=2100)
    datasets: list[str] = Field(default_factory=list)
    dw_mode: str = "mode"

    @field_validator("datasets")
    @classmethod
    def _validate_datasets(cls, values: list[str]) -> list[str]:
        unknown = [value for value in values if value not in LAND_COVER_DATASETS]
        if unknown:
            raise ValueError(f"Unknown land cover dataset(s): {', '.join(unknown)}")
        return values


class AnalysisOptions(BaseModel):
    """Inputs the user sets before running an analysis."""

    model_config = ConfigDict(validate_assignment=True)

    analysis_type: AnalysisType = AnalysisType.combined
    year: int = Field(default_factory=lambda: date.today().year - 1, ge=1980, le=2100)
    start_month: int = Field(default=1, ge=1, le=12)
    end_month: int = Field(default=12, ge=1, le=12)
    cloud_threshold: int = Field(default=20, ge=0, le=100)
    dynamic_world: bool = True
    esa_world_cover: bool = False
    esri_land_cover: bool = False
    dw_mode: str = "mode"
    zoom: int = Field(default=10, ge=1, le=18)

    @property
    def datasets(self) -> list[str]:
        flags = (self.dynamic_world, self.esa_world_cover, self.esri_land_cover)
        return [name for name, enabled in zip(LAND_COVER_DATASETS, flags) if enabled]


class AnalysisResults(BaseModel):
    """Accumulates sub-analysis payloads for one complete analysis run."""

    vegetation: Any = None
    landcover: dict[str, Any] | None = None
    rgb_tile_url: str | None = None
    collection_size: int | None = None

    @property
    def is_empty(self) -> bool:
        return self.vegetation is None and self.landcover is None

    def record_vegetation(self, payload: dict[str, Any]) -> None:
        self.vegetation = payload.get("indices")
        self.rgb_tile_url = payload.get("rgb_tile_url")
        size = payload.get("collection_size")
        self.collection_size = int(size) if size is not None else None

    def record_landcover(self, payload: dict[str, Any]) -> None:
        self.landcover = dict(payload)

    def as_payload(self) -> dict[str, Any]:
        return self.model_dump(mode="json", exclude_none=True)
