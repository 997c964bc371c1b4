"""Client and orchestration layer for the GEE analysis backend."""

from gee_analysis.client import GEEApiClient
from gee_analysis.orchestrator import AnalysisOrchestrator
from gee_analysis.session import AnalysisSession

__all__ = ["AnalysisOrchestrator", "AnalysisSession", "GEEApiClient"]
