"""
reports.py — Historical alert reports over a date / severity / district filter.

The JSON report and the printable document share one ``ReportFilter`` and
one ``ReportResult``, so the document always lists exactly the JSON items.

═══════════════════════════════════════════════════════════════════════════
FILTER SEMANTICS
═══════════════════════════════════════════════════════════════════════════

    Parameter    Value              Effect
    ─────────    ───────────────    ──────────────────────────────────────────
    from_date    YYYY-MM-DD         created_at >= that day 00:00:00.000
    to_date      YYYY-MM-DD         created_at <= that day 23:59:59.999
    severity     all | <severity>   critical / informational (red / green ok)
    district     all | <name>       exact, case-insensitive

Day boundaries are taken in ``REPORT_TIMEZONE`` and converted to UTC.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import date, datetime, time, timezone
from typing import Any, Dict, List, Optional, Union
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from backend.app.alerts.models import (
    Alert,
    Severity,
    canonical_district,
    normalize_severity,
)
from backend.app.alerts.repository import AlertRepository
from backend.app.core.errors import ValidationError

logger = logging.getLogger(__name__)

ALL = "all"
END_OF_DAY = time(23, 59, 59, 999000)

DateInput = Union[str, date, None]


@dataclass(frozen=True)
class ReportFilter:
    """Resolved report filter. ``None`` disables a dimension."""
    start: Optional[datetime] = None
    end: Optional[datetime] = None
    severity: Optional[Severity] = None
    district: Optional[str] = None
    from_date: Optional[date] = None
    to_date: Optional[date] = None

    def to_dict(self) -> Dict[str, Any]:
        """Echo of the filter as the client would phrase it."""
        return {
            "from": self.from_date.isoformat() if self.from_date else None,
            "to": self.to_date.isoformat() if self.to_date else None,
            "severity": self.severity.value if self.severity else ALL,
            "district": self.district or ALL,
        }


@dataclass
class ReportResult:
    items: List[Alert] = field(default_factory=list)
    total: int = 0
    critical_count: int = 0
    informational_count: int = 0
    filters: Optional[ReportFilter] = None
    generated_at: Optional[datetime] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "items": [a.to_dict() for a in self.items],
            "total": self.total,
            "critical_count": self.critical_count,
            "informational_count": self.informational_count,
            "filters": self.filters.to_dict() if self.filters else {},
        }


def _resolve_zone(tz_name: str) -> ZoneInfo:
    try:
        return ZoneInfo(tz_name or "UTC")
    except (ZoneInfoNotFoundError, ValueError):
        raise ValueError(f"Unknown report timezone '{tz_name}'") from None


def _parse_day(value: DateInput, field_name: str) -> Optional[date]:
    if value is None:
        return None
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    text = str(value).strip()
    if not text:
        return None
    try:
        return date.fromisoformat(text)
    except ValueError:
        pass
    try:
        return datetime.fromisoformat(text).date()
    except ValueError:
        raise ValidationError(
            f"'{text}' is not a valid date (expected YYYY-MM-DD).", field=field_name,
        ) from None


def _parse_severity(value: Optional[str]) -> Optional[Severity]:
    token = (value or "").strip()
    if not token or token.lower() == ALL:
        return None
    try:
        return normalize_severity(token)
    except ValueError as exc:
        raise ValidationError(str(exc), field="severity") from None


def _parse_district(value: Optional[str]) -> Optional[str]:
    token = (value or "").strip()
    if not token or token.lower() == ALL:
        return None
    return canonical_district(token) or token


def build_filter(
    from_date: DateInput = None,
    to_date: DateInput = None,
    severity: Optional[str] = ALL,
    district: Optional[str] = ALL,
    *,
    tz_name: str = "UTC",
) -> ReportFilter:
    """
    Resolve raw query parameters into a ``ReportFilter``.

    Raises
    ------
    ValidationError
        Malformed date, unknown severity, or ``from_date`` after ``to_date``.
    """
    zone = _resolve_zone(tz_name)
    start_day = _parse_day(from_date, "from")
    end_day = _parse_day(to_date, "to")
    if start_day and end_day and start_day > end_day:
        raise ValidationError(
            f"'from' ({start_day}) must not be after 'to' ({end_day}).", field="from",
        )

    start = (
        datetime.combine(start_day, time.min, tzinfo=zone).astimezone(timezone.utc)
        if start_day else None
    )
    end = (
        datetime.combine(end_day, END_OF_DAY, tzinfo=zone).astimezone(timezone.utc)
        if end_day else None
    )
    return ReportFilter(
        start=start,
        end=end,
        severity=_parse_severity(severity),
        district=_parse_district(district),
        from_date=start_day,
        to_date=end_day,
    )


class ReportQueryEngine:
    """Runs report filters against the alert repository."""

    def __init__(self, repository: AlertRepository, tz_name: str = "UTC") -> None:
        self._repository = repository
        self.tz_name = tz_name
        # Fail at construction on a bad REPORT_TIMEZONE
        _resolve_zone(tz_name)

    def build_filter(
        self,
        from_date: DateInput = None,
        to_date: DateInput = None,
        severity: Optional[str] = ALL,
        district: Optional[str] = ALL,
    ) -> ReportFilter:
        return build_filter(from_date, to_date, severity, district, tz_name=self.tz_name)

    async def run_report(self, report_filter: ReportFilter) -> ReportResult:
        items = await self._repository.query(
            start=report_filter.start,
            end=report_filter.end,
            severity=report_filter.severity,
            district=report_filter.district,
        )
        critical = sum(1 for a in items if a.severity_level is Severity.CRITICAL)
        result = ReportResult(
            items=items,
            total=len(items),
            critical_count=critical,
            informational_count=len(items) - critical,
            filters=report_filter,
            generated_at=datetime.now(timezone.utc),
        )
        logger.info(
            "Report generated: %d alerts (%d critical) filters=%s",
            result.total, result.critical_count, report_filter.to_dict(),
        )
        return result
