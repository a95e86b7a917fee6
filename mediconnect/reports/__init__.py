"""
Reports Module

Report generation and export engine for the clinic back end: filter
normalization, record fetching, aggregation, report pipelines and exporters,
plus the FastAPI routes that expose them.

Author: MediConnect Team
"""

from .engine import ReportEngine
from .errors import InvalidFilterError, InvalidReportTypeError, ReportError
from .models import ExportResult, Period, Report, ReportFilters
from .registry import REPORT_PIPELINES, get_pipeline
from .router import router as reports_router
from .service import Join, ReportService

__all__ = [
    "ReportEngine",
    "ReportService",
    "Join",
    "ReportFilters",
    "Report",
    "Period",
    "ExportResult",
    "REPORT_PIPELINES",
    "get_pipeline",
    "ReportError",
    "InvalidReportTypeError",
    "InvalidFilterError",
    "reports_router",
]
