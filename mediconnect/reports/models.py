"""
Report Models

Pydantic models for report filters, the assembled report value and export
results.

Author: MediConnect Team
"""

from datetime import date, datetime
from typing import Optional, List, Dict, Any

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, model_validator


class ReportFilters(BaseModel):
    """Filters accepted by every report type; unknown keys are ignored"""
    model_config = ConfigDict(extra='ignore', frozen=True, populate_by_name=True, coerce_numbers_to_str=True)

    date_from: Optional[date] = Field(None, description="Start of the date range, inclusive (YYYY-MM-DD)")
    date_to: Optional[date] = Field(None, description="End of the date range, inclusive (YYYY-MM-DD)")
    entity_id: Optional[str] = Field(
        None,
        validation_alias=AliasChoices('entity_id', 'doctor_id'),
        description="Doctor filter"
    )
    status: Optional[str] = Field(None, description="Status filter")

    @model_validator(mode='after')
    def check_range_order(self):
        if self.date_from and self.date_to and self.date_to < self.date_from:
            raise ValueError("date_to must not be earlier than date_from")
        return self


class Period(BaseModel):
    """Date range that drove a report query"""
    date_from: date
    date_to: date


class Report(BaseModel):
    """Complete output of one report pipeline"""
    report_type: str
    period: Optional[Period] = None
    generated_at: datetime
    summary: Dict[str, Any] = Field(default_factory=dict)
    data: List[Dict[str, Any]] = Field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        """JSON-ready dictionary; period is omitted when no range was applied"""
        payload = self.model_dump(mode='json')
        if self.period is None:
            payload.pop('period', None)
        return payload


class ExportResult(BaseModel):
    """Rendered report plus a suggested artifact name"""
    format: str
    content: Any
    filename: str

    def to_dict(self) -> Dict[str, Any]:
        content = self.content.to_dict() if isinstance(self.content, Report) else self.content
        return {"format": self.format, "content": content, "filename": self.filename}
