"""
Report Registry

Maps report type identifiers to their pipeline classes.

Author: MediConnect Team
"""

from typing import Dict, Type

from .errors import InvalidReportTypeError
from .handlers import (
    AppointmentsReport,
    DoctorsReport,
    FinancialReport,
    MedicalRecordsReport,
    PatientsReport,
    ReportPipeline,
)

REPORT_PIPELINES: Dict[str, Type[ReportPipeline]] = {
    pipeline.report_type: pipeline
    for pipeline in (
        AppointmentsReport,
        FinancialReport,
        PatientsReport,
        DoctorsReport,
        MedicalRecordsReport,
    )
}


def get_pipeline(report_type: str) -> Type[ReportPipeline]:
    """Pipeline class for a report type; unknown types raise InvalidReportTypeError"""
    try:
        return REPORT_PIPELINES[report_type]
    except (KeyError, TypeError):
        raise InvalidReportTypeError(report_type) from None
