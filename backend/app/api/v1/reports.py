"""
FastAPI routes: historical alert reports.

    GET /api/v1/alerts/report                       — JSON report
    GET /api/v1/alerts/report/document?format=html  — printable document
    GET /api/v1/alerts/report/document?format=pdf   — same document as PDF

Both endpoints build one filter from the same query parameters, so the
document lists exactly the JSON items.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Optional

from fastapi import APIRouter, Depends, Query
from fastapi.responses import HTMLResponse, Response

from backend.app.alerts.report_document import (
    html_to_pdf,
    render_report_html,
    report_filename,
)
from backend.app.alerts.reports import ReportQueryEngine, ReportResult
from backend.app.api.deps import get_report_engine
from backend.app.api.schemas import ReportResponse

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/v1/alerts/report", tags=["reports"])


async def _run(
    engine: ReportQueryEngine,
    from_date: Optional[str],
    to_date: Optional[str],
    severity: str,
    district: str,
) -> ReportResult:
    report_filter = engine.build_filter(from_date, to_date, severity, district)
    return await engine.run_report(report_filter)


@router.get("", response_model=ReportResponse)
async def get_report(
    from_date: Optional[str] = Query(None, alias="from", examples=["2026-01-01"]),
    to_date: Optional[str] = Query(None, alias="to", examples=["2026-01-31"]),
    severity: str = Query("all", description="all | critical | informational"),
    district: str = Query("all"),
    engine: ReportQueryEngine = Depends(get_report_engine),
):
    result = await _run(engine, from_date, to_date, severity, district)
    return result.to_dict()


@router.get("/document")
async def get_report_document(
    from_date: Optional[str] = Query(None, alias="from"),
    to_date: Optional[str] = Query(None, alias="to"),
    severity: str = Query("all"),
    district: str = Query("all"),
    format: str = Query("html", pattern="^(html|pdf)$"),
    engine: ReportQueryEngine = Depends(get_report_engine),
):
    result = await _run(engine, from_date, to_date, severity, district)
    document = render_report_html(result)

    if format == "html":
        return HTMLResponse(content=document)

    pdf_bytes = await asyncio.to_thread(html_to_pdf, document)
    return Response(
        content=pdf_bytes,
        media_type="application/pdf",
        headers={
            "Content-Disposition": f'attachment; filename="{report_filename(result, "pdf")}"',
        },
    )
