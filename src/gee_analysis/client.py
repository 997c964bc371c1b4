from __future__ import annotations

from contextlib import AbstractContextManager
from typing import Any

import requests
from pydantic import BaseModel

from gee_analysis.models import (
    LandCoverAnalysisRequest,
    RequestResult,
    VegetationAnalysisRequest,
)
from gee_analysis.settings import Settings, get_settings
from gee_analysis.transport import RetryPolicy, Transport


def _as_body(params: BaseModel | dict[str, Any]) -> dict[str, Any]:
    if isinstance(params, BaseModel):
        return params.model_dump(mode="json")
    return dict(params)


class GEEApiClient(AbstractContextManager["GEEApiClient"]):
    """One method per backend capability, each a single transport call."""

    def __init__(
        self,
        settings: Settings | None = None,
        *,
        transport: Transport | None = None,
        session: requests.Session | None = None,
        retry_policy: RetryPolicy | None = None,
    ):
        self.settings = settings or get_settings()
        self.transport = transport or Transport(
            self.settings,
            session=session,
            retry_policy=retry_policy,
        )

    @property
    def base_url(self) -> str:
        return self.transport.base_url

    def close(self) -> None:
        self.transport.close()

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()

    def request(self, endpoint: str, **options: Any) -> RequestResult:
        return self.transport.request(endpoint, **options)

    def health_check(self) -> RequestResult:
        return self.request("/health")

    def get_provinces(self) -> RequestResult:
        return self.request("/regions/provinces")

    def get_cities(self, province_code: str) -> RequestResult:
        return self.request("/regions/cities", params={"province_code": province_code})

    def get_region_geometry(self, endpoint: str, code: str) -> RequestResult:
        return self.request("/regions/geometry", params={"endpoint": endpoint, "code": code})

    def analyze_vegetation(
        self, params: VegetationAnalysisRequest | dict[str, Any]
    ) -> RequestResult:
        return self.request("/analyze/vegetation", method="POST", data=_as_body(params))

    def analyze_land_cover(
        self, params: LandCoverAnalysisRequest | dict[str, Any]
    ) -> RequestResult:
        return self.request("/analyze/landcover", method="POST", data=_as_body(params))

    def analyze_time_series(self, params: dict[str, Any]) -> RequestResult:
        return self.request("/timeseries", method="POST", data=_as_body(params))

    def export_to_drive(self, params: dict[str, Any]) -> RequestResult:
        return self.request("/export", method="POST", data=_as_body(params))
