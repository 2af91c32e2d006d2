"""
test_reports.py — Historical report filters, results and documents.

Covers:
    • Date inclusivity (whole-day from / to bounds)
    • Report timezone day boundaries
    • Severity / district dimensions and "all"
    • Malformed input rejected with ValidationError
    • Printable document mirrors the JSON items

Run with:
    pytest tests/test_reports.py -v
"""

from __future__ import annotations

from datetime import date, datetime, timezone

import pytest

from backend.app.alerts.models import Severity
from backend.app.alerts.report_document import render_report_html, report_filename
from backend.app.alerts.reports import ReportQueryEngine, build_filter
from backend.app.alerts.validation import validate_new_alert
from backend.app.core.errors import ValidationError

from tests.helpers import alert_fields


def _utc(*args) -> datetime:
    return datetime(*args, tzinfo=timezone.utc)


async def _store(repository, created_at, **overrides):
    return await repository.create(
        validate_new_alert(alert_fields(**overrides)), created_at=created_at,
    )


# ═══════════════════════════════════════════════════════════════════════════
# Filter construction
# ═══════════════════════════════════════════════════════════════════════════

class TestBuildFilter:

    def test_whole_day_bounds(self):
        f = build_filter("2025-01-01", "2025-01-01")
        assert f.start == _utc(2025, 1, 1, 0, 0, 0)
        assert f.end == datetime(2025, 1, 1, 23, 59, 59, 999000, tzinfo=timezone.utc)

    def test_all_disables_dimensions(self):
        f = build_filter(None, None, "ALL", "all")
        assert f.start is None and f.end is None
        assert f.severity is None and f.district is None
        assert f.to_dict() == {"from": None, "to": None, "severity": "all", "district": "all"}

    def test_legacy_severity_and_district_case(self):
        f = build_filter(severity="Red", district="kandy")
        assert f.severity is Severity.CRITICAL
        assert f.district == "Kandy"

    def test_report_timezone(self):
        f = build_filter("2025-01-01", "2025-01-01", tz_name="Asia/Colombo")
        assert f.start == _utc(2024, 12, 31, 18, 30)
        assert f.end.date() == date(2025, 1, 1)
        assert f.end.hour == 18 and f.end.minute == 29

    def test_accepts_iso_datetime(self):
        f = build_filter("2025-03-04T10:00:00", None)
        assert f.from_date == date(2025, 3, 4)

    @pytest.mark.parametrize("bad", ["2025-13-01", "yesterday", "01/02/2025"])
    def test_malformed_date(self, bad):
        with pytest.raises(ValidationError):
            build_filter(bad, None)

    def test_from_after_to(self):
        with pytest.raises(ValidationError) as exc_info:
            build_filter("2025-02-01", "2025-01-01")
        assert exc_info.value.details["field"] == "from"

    def test_unknown_severity(self):
        with pytest.raises(ValidationError):
            build_filter(severity="amber")

    def test_unknown_timezone(self, repository):
        with pytest.raises(ValueError):
            ReportQueryEngine(repository, "Mars/Olympus")


# ═══════════════════════════════════════════════════════════════════════════
# Running reports
# ═══════════════════════════════════════════════════════════════════════════

class TestRunReport:

    async def test_date_inclusivity(self, repository):
        inside = await _store(repository, _utc(2025, 1, 1, 23, 59, 0), topic="inside")
        await _store(repository, _utc(2025, 1, 2, 0, 0, 1), topic="after")
        await _store(repository, _utc(2024, 12, 31, 23, 59, 59), topic="before")

        engine = ReportQueryEngine(repository)
        result = await engine.run_report(engine.build_filter("2025-01-01", "2025-01-01"))

        assert [a.id for a in result.items] == [inside.id]
        assert result.total == 1

    async def test_counts_and_order(self, repository):
        await _store(repository, _utc(2025, 1, 1, 8), severity_level="critical", district="Kandy")
        await _store(repository, _utc(2025, 1, 1, 9), severity_level="informational", district="Kandy")
        await _store(repository, _utc(2025, 1, 1, 10), severity_level="critical", district="Galle")

        engine = ReportQueryEngine(repository)
        result = await engine.run_report(engine.build_filter())

        assert (result.total, result.critical_count, result.informational_count) == (3, 2, 1)
        created = [a.created_at for a in result.items]
        assert created == sorted(created, reverse=True)

    async def test_severity_and_district_filters(self, repository):
        await _store(repository, _utc(2025, 1, 1, 8), severity_level="critical", district="Kandy")
        await _store(repository, _utc(2025, 1, 1, 9), severity_level="informational", district="Kandy")
        await _store(repository, _utc(2025, 1, 1, 10), severity_level="critical", district="Galle")

        engine = ReportQueryEngine(repository)
        result = await engine.run_report(engine.build_filter(severity="critical", district="KANDY"))

        assert result.total == 1
        assert result.items[0].district == "Kandy"
        assert result.to_dict()["filters"]["severity"] == "critical"

    async def test_document_lists_exactly_the_items(self, repository):
        await _store(repository, _utc(2025, 1, 1, 8), topic="Flood <east>")
        await _store(repository, _utc(2025, 1, 1, 9), topic="Landslide")
        await _store(repository, _utc(2025, 2, 1, 9), topic="Outside range")

        engine = ReportQueryEngine(repository)
        result = await engine.run_report(engine.build_filter("2025-01-01", "2025-01-31"))
        html = render_report_html(result)

        assert html.count('class="card ') == result.total == 2
        assert "Flood &lt;east&gt;" in html
        assert "Outside range" not in html
        assert "2025-01-01 → 2025-01-31" in html
        assert report_filename(result, "pdf").endswith(".pdf")

    async def test_empty_document(self, repository):
        engine = ReportQueryEngine(repository)
        result = await engine.run_report(engine.build_filter())
        assert "No alerts match" in render_report_html(result)
