"""
Report Exporter

Renders an assembled report as CSV text or passes it through for JSON, and
builds the suggested download filename.

Author: MediConnect Team
"""

from datetime import datetime
from typing import Any, Dict, List

from .models import Report

NO_DATA_MARKER = "No data available"

CSV = "csv"
JSON = "json"


def _csv_cell(value: Any) -> str:
    if value is None:
        return ""
    if isinstance(value, bool):
        return "true" if value else "false"
    text = str(value)
    if ',' in text or '"' in text:
        return '"' + text.replace('"', '""') + '"'
    return text


def to_csv(report: Report, no_data_marker: str = NO_DATA_MARKER) -> str:
    """
    Render the report rows as CSV.

    The header is the key set of the first row; every row is written in header
    order with absent keys left empty. A report without rows renders as the
    no-data marker.
    """
    rows: List[Dict[str, Any]] = report.data
    if not rows:
        return no_data_marker

    headers = list(rows[0].keys())
    lines = [",".join(_csv_cell(header) for header in headers)]
    for row in rows:
        lines.append(",".join(_csv_cell(row.get(header)) for header in headers))

    return "".join(f"{line}\n" for line in lines)


def to_json(report: Report) -> Report:
    return report


def build_filename(report_type: str, generated_at: datetime, extension: str) -> str:
    """{report_type}_{epoch milliseconds of generation}.{extension}"""
    epoch_millis = int(generated_at.timestamp() * 1000)
    return f"{report_type}_{epoch_millis}.{extension}"
