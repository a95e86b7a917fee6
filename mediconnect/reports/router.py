"""
Report Router (API Layer)

FastAPI router exposing report generation, export and the KPI dashboard.
Caller errors (unknown report type, malformed filters) map to 400; failures
reading the data store map to 500.

Author: MediConnect Team
"""

import logging
from typing import Any, Dict, Optional

from fastapi import APIRouter, Depends, HTTPException, Query
from fastapi.responses import JSONResponse, Response

from ..config import get_config
from .engine import ReportEngine
from .errors import ReportError
from .exporter import CSV
from .service import ReportService

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/api/reports", tags=["reports"])


# Dependency to get the report engine
def get_report_engine() -> ReportEngine:
    """Get report engine instance bound to the application's database manager"""
    from ..app import app_state
    settings = get_config().reports
    return ReportEngine(
        ReportService(app_state["db_manager"]),
        app_name=settings.app_name,
        max_workers=settings.max_workers
    )


def _filters(
    date_from: Optional[str],
    date_to: Optional[str],
    doctor_id: Optional[str],
    status: Optional[str]
) -> Dict[str, Any]:
    return {
        "date_from": date_from,
        "date_to": date_to,
        "doctor_id": doctor_id,
        "status": status,
    }


def _attachment(filename: str) -> Dict[str, str]:
    return {"Content-Disposition": f"attachment; filename={filename}"}


# ============================================================================
# EXPORT ENDPOINT
# ============================================================================

@router.get("/export")
def export_report(
    type: Optional[str] = Query(None, description="Report type"),
    format: str = Query("json", description="csv or json"),
    date_from: Optional[str] = Query(None),
    date_to: Optional[str] = Query(None),
    doctor_id: Optional[str] = Query(None),
    status: Optional[str] = Query(None),
    engine: ReportEngine = Depends(get_report_engine)
):
    """Generate a report and return it as a downloadable CSV or JSON file"""
    if not type:
        raise HTTPException(status_code=400, detail="Report type is required")

    try:
        result = engine.export_report(type, format, _filters(date_from, date_to, doctor_id, status))
    except ReportError as e:
        raise HTTPException(status_code=400, detail=str(e))
    except Exception as e:
        logger.error(f"Error exporting {type} report: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail="Error generating report")

    if result.format == CSV:
        return Response(
            content=result.content,
            media_type="text/csv; charset=utf-8",
            headers=_attachment(result.filename)
        )

    return JSONResponse(content=result.content.to_dict(), headers=_attachment(result.filename))


# ============================================================================
# DASHBOARD ENDPOINT
# ============================================================================

@router.get("/dashboard")
def get_dashboard(engine: ReportEngine = Depends(get_report_engine)):
    """Clinic-wide KPIs for today and the upcoming week"""
    try:
        report = engine.generate_dashboard()
    except Exception as e:
        logger.error(f"Error generating dashboard: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail="Error generating dashboard")

    return report.to_dict()


# ============================================================================
# REPORT ENDPOINT
# ============================================================================

@router.get("/{report_type}")
def get_report(
    report_type: str,
    date_from: Optional[str] = Query(None),
    date_to: Optional[str] = Query(None),
    doctor_id: Optional[str] = Query(None),
    status: Optional[str] = Query(None),
    engine: ReportEngine = Depends(get_report_engine)
):
    """Generate one report and return it as JSON"""
    try:
        report = engine.generate_report(report_type, _filters(date_from, date_to, doctor_id, status))
    except ReportError as e:
        raise HTTPException(status_code=400, detail=str(e))
    except Exception as e:
        logger.error(f"Error generating {report_type} report: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail="Error generating report")

    return report.to_dict()
