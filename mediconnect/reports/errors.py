"""
Report Errors

Exception types raised by the report engine for caller errors. Failures from
the data store are not wrapped and propagate as raised.

Author: MediConnect Team
"""


class ReportError(Exception):
    """Base class for report engine errors"""


class InvalidReportTypeError(ReportError, ValueError):
    """Raised when a report type identifier is not registered"""

    def __init__(self, report_type: str):
        self.report_type = report_type
        super().__init__(f"Invalid report type: {report_type!r}")


class InvalidFilterError(ReportError, ValueError):
    """Raised when a filter value is malformed"""
