"""
report_document.py — Printable alert report (HTML, optionally PDF).

The document renders a ``ReportResult``: filter summary, counts, then one
self-contained card per alert (topic, timestamp, severity, district,
location, author). Cards never split across pages when printed.

PDF output uses WeasyPrint, installed through the ``pdf`` extra. Without it
``html_to_pdf`` raises ``ServiceUnavailableError``; HTML output always works.
"""

from __future__ import annotations

import html
import logging
from datetime import datetime, timezone
from typing import List

from backend.app.alerts.models import Alert, Severity
from backend.app.alerts.reports import ReportResult
from backend.app.core.errors import ServiceUnavailableError

logger = logging.getLogger(__name__)

_WEASYPRINT_AVAILABLE = False
try:
    from weasyprint import HTML as WeasyHtml  # type: ignore[import-untyped]  # noqa: N811

    _WEASYPRINT_AVAILABLE = True
except ImportError:
    logger.info("WeasyPrint not installed; PDF report documents unavailable")


_PRINT_CSS = """
<style>
body { font-family: Arial, sans-serif; font-size: 11pt; color: #222; }
h1 { font-size: 20pt; border-bottom: 2px solid #333; padding-bottom: 8px; }
.summary td { padding: 2px 12px 2px 0; }
.card { border: 1px solid #ccc; border-radius: 6px; margin: 10px 0; padding: 10px 14px;
        page-break-inside: avoid; break-inside: avoid; }
.card h3 { margin: 0 0 6px; font-size: 13pt; }
.card .meta { color: #555; font-size: 10pt; }
.critical { border-left: 6px solid #c0392b; }
.informational { border-left: 6px solid #1e8449; }
@page {
    size: A4;
    margin: 20mm;
    @bottom-center { content: "Alert Report - Page " counter(page) " of " counter(pages); font-size: 9pt; color: #999; }
}
</style>
"""


def is_pdf_available() -> bool:
    """True if WeasyPrint is installed."""
    return _WEASYPRINT_AVAILABLE


def _card(alert: Alert) -> str:
    esc = html.escape
    css = "critical" if alert.severity_level is Severity.CRITICAL else "informational"
    stamp = alert.created_at.strftime("%Y-%m-%d %H:%M UTC")
    return (
        f'<div class="card {css}">'
        f"<h3>{esc(alert.topic)}</h3>"
        f'<div class="meta">'
        f"<strong>{esc(alert.severity_level.value.upper())}</strong> · {stamp}<br>"
        f"District: {esc(alert.district)} · Location: {esc(alert.disaster_location)}<br>"
        f"Issued by: {esc(alert.author_role)}"
        f"</div>"
        f"</div>"
    )


def render_report_html(result: ReportResult) -> str:
    """Full standalone HTML document for a report result."""
    esc = html.escape
    filters = result.filters.to_dict() if result.filters else {}
    generated = (result.generated_at or datetime.now(timezone.utc)).strftime(
        "%Y-%m-%d %H:%M UTC"
    )
    date_range = f"{filters.get('from') or '—'} → {filters.get('to') or '—'}"

    cards: List[str] = [_card(a) for a in result.items]
    body = "".join(cards) if cards else "<p>No alerts match these filters.</p>"

    return (
        "<!DOCTYPE html><html><head><meta charset=\"utf-8\">"
        "<title>Alert Report</title>"
        f"{_PRINT_CSS}</head><body>"
        "<h1>Alert Report</h1>"
        f"<p>Generated: {generated}</p>"
        '<table class="summary">'
        f"<tr><td>Date range</td><td>{esc(date_range)}</td></tr>"
        f"<tr><td>Severity</td><td>{esc(str(filters.get('severity', 'all')))}</td></tr>"
        f"<tr><td>District</td><td>{esc(str(filters.get('district', 'all')))}</td></tr>"
        f"<tr><td>Total</td><td>{result.total}</td></tr>"
        f"<tr><td>Critical</td><td>{result.critical_count}</td></tr>"
        f"<tr><td>Informational</td><td>{result.informational_count}</td></tr>"
        "</table>"
        f"{body}"
        "</body></html>"
    )


def html_to_pdf(document: str) -> bytes:
    """
    Convert a rendered report document to PDF bytes.

    Raises
    ------
    ServiceUnavailableError
        WeasyPrint is not installed.
    RuntimeError
        Conversion failed.
    """
    if not _WEASYPRINT_AVAILABLE:
        raise ServiceUnavailableError(
            "PDF rendering", "install the 'pdf' extra (weasyprint)",
        )
    try:
        return WeasyHtml(string=document).write_pdf()
    except Exception as e:
        logger.exception("PDF generation failed")
        raise RuntimeError(f"PDF generation failed: {e}") from e


def report_filename(result: ReportResult, extension: str) -> str:
    stamp = (result.generated_at or datetime.now(timezone.utc)).strftime("%Y%m%d_%H%M%S")
    return f"alerts_report_{stamp}.{extension}"
