"""
Report Engine

Entry point of the report engine: selects the pipeline for a report type,
normalizes the caller's filters, generates the report and renders it in the
requested export format.

Author: MediConnect Team
"""

import logging
from datetime import date
from typing import Any, Mapping, Optional, Union

from ..config import get_config
from .exporter import CSV, JSON, build_filename, to_csv, to_json
from .filters import normalize_filters
from .handlers import DashboardReport
from .models import ExportResult, Report, ReportFilters
from .registry import get_pipeline
from .service import ReportService

logger = logging.getLogger(__name__)

FilterInput = Union[None, Mapping[str, Any], ReportFilters]


class ReportEngine:
    """
    Generates and exports clinic reports.

    Holds only immutable configuration; every report is computed from a
    fresh fetch through the injected service.
    """

    def __init__(
        self,
        service: ReportService,
        app_name: Optional[str] = None,
        max_workers: Optional[int] = None,
        top_n_limit: Optional[int] = None,
        no_data_marker: Optional[str] = None
    ):
        settings = get_config().reports
        self.service = service
        self.app_name = app_name or settings.app_name
        self.max_workers = max_workers or settings.max_workers
        self.top_n_limit = top_n_limit or settings.top_n_limit
        self.no_data_marker = no_data_marker if no_data_marker is not None else settings.no_data_marker
        self.logger = logging.getLogger(self.__class__.__name__)

    def generate_report(self, report_type: str, filters: FilterInput = None) -> Report:
        """Generate one report; unknown types raise InvalidReportTypeError"""
        pipeline_class = get_pipeline(report_type)
        normalized = normalize_filters(filters)
        pipeline = pipeline_class(self.service, max_workers=self.max_workers, top_n_limit=self.top_n_limit)
        return pipeline.generate(normalized)

    def generate_appointments_report(self, filters: FilterInput = None) -> Report:
        return self.generate_report("appointments", filters)

    def generate_financial_report(self, filters: FilterInput = None) -> Report:
        return self.generate_report("financial", filters)

    def generate_patients_report(self, filters: FilterInput = None) -> Report:
        return self.generate_report("patients", filters)

    def generate_doctors_report(self, filters: FilterInput = None) -> Report:
        return self.generate_report("doctors", filters)

    def generate_medical_records_report(self, filters: FilterInput = None) -> Report:
        return self.generate_report("medical-records", filters)

    def generate_dashboard(self, today: Optional[date] = None) -> Report:
        """Clinic-wide KPIs for today (or the given day) and the upcoming week"""
        pipeline = DashboardReport(
            self.service, max_workers=self.max_workers, top_n_limit=self.top_n_limit, today=today
        )
        return pipeline.generate(ReportFilters())

    def export_report(self, report_type: str, format: str = JSON, filters: FilterInput = None) -> ExportResult:
        """
        Generate a report and render it for download.

        Args:
            report_type: Registered report type
            format: "csv" or "json"; any other value falls back to JSON
            filters: Raw or normalized filters

        Returns:
            ExportResult with the rendered content and a suggested filename
        """
        report = self.generate_report(report_type, filters)

        if format == CSV:
            content = to_csv(report, self.no_data_marker)
            extension = CSV
        else:
            if format != JSON:
                self.logger.warning(f"Unsupported export format {format!r}; exporting {report_type} as JSON")
            content = to_json(report)
            extension = JSON

        filename = build_filename(report.report_type, report.generated_at, extension)
        self.logger.info(f"Exported {report_type} report as {extension}: {filename}")
        return ExportResult(format=extension, content=content, filename=filename)
