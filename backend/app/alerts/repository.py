"""
repository.py — Persistence for alerts and read access to recipients.

Two collaborators live here:

    • AlertRepository     — CRUD, paginated listing, aggregate counts and
                            the filtered query behind reports
    • RecipientDirectory  — opted-in recipient lookup and counting

Both run on the async SQLAlchemy session factory owned by ``Database``.
Any SQLAlchemy failure is logged with the operation name (and alert id when
there is one) and re-raised as ``PersistenceError``, which the API layer
turns into a generic 500.

═══════════════════════════════════════════════════════════════════════════
TIMESTAMPS
═══════════════════════════════════════════════════════════════════════════

All timestamps are bound as UTC. Backends that drop tzinfo on the way in
(SQLite) hand back naive values; those are re-tagged as UTC on the way out,
so every ``Alert`` leaving this module carries an aware ``created_at``.
"""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from datetime import datetime, timezone
from typing import Any, AsyncIterator, Callable, Dict, List, Optional, Sequence, Tuple

from sqlalchemy import case, delete, func, or_, select
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from backend.app.alerts.models import (
    Alert,
    Recipient,
    RecentAlert,
    Severity,
    canonical_district,
    generate_alert_id,
    normalize_severity,
    utcnow,
)
from backend.app.alerts.orm import AlertRecord, RecipientRecord
from backend.app.core.database import Database
from backend.app.core.errors import PersistenceError, ValidationError

logger = logging.getLogger(__name__)

Clock = Callable[[], datetime]


def _to_utc(value: datetime) -> datetime:
    """Aware → UTC; naive is assumed to already be UTC."""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def _ensure_utc(value: Optional[datetime]) -> Optional[datetime]:
    if value is None:
        return None
    return _to_utc(value)


def _to_alert(record: AlertRecord) -> Alert:
    return Alert(
        id=record.id,
        severity_level=normalize_severity(record.severity_level),
        topic=record.topic,
        message=record.message,
        district=record.district,
        disaster_location=record.disaster_location,
        author_role=record.author_role,
        created_at=_ensure_utc(record.created_at),
        updated_at=_ensure_utc(record.updated_at),
    )


class _StoreAccess:
    """Session helper shared by the repository and the directory."""

    _store_name = "store"

    def __init__(self, database: Database) -> None:
        self._db = database

    @asynccontextmanager
    async def _session(
        self,
        operation: str,
        alert_id: Optional[str] = None,
    ) -> AsyncIterator[AsyncSession]:
        try:
            async with self._db.session() as session:
                yield session
        except SQLAlchemyError as exc:
            logger.error(
                "%s %s failed: %s", self._store_name, operation, exc,
                extra={"operation": operation, "alert_id": alert_id},
            )
            raise PersistenceError(operation, alert_id) from exc


# ═══════════════════════════════════════════════════════════════════════════
# Alert Repository
# ═══════════════════════════════════════════════════════════════════════════

class AlertRepository(_StoreAccess):
    """Durable record store for alerts."""

    _store_name = "Alert store"

    def __init__(self, database: Database, clock: Clock = utcnow) -> None:
        super().__init__(database)
        self._clock = clock

    @staticmethod
    async def _find(session: AsyncSession, alert_id: str) -> Optional[AlertRecord]:
        result = await session.execute(select(AlertRecord).where(AlertRecord.id == alert_id))
        return result.scalar_one_or_none()

    # ── writes ──

    async def create(
        self,
        fields: Dict[str, Any],
        *,
        created_at: Optional[datetime] = None,
    ) -> Alert:
        """
        Persist a validated alert and return it with its assigned id.

        ``created_at`` is normally the repository clock; callers may pin it
        (backfills, tests).
        """
        now = _to_utc(self._clock())
        stamp = _to_utc(created_at) if created_at else now
        record = AlertRecord(
            id=generate_alert_id(),
            severity_level=normalize_severity(fields["severity_level"]).value,
            topic=fields["topic"],
            message=fields["message"],
            district=fields["district"],
            disaster_location=fields["disaster_location"],
            author_role=fields["author_role"],
            created_at=stamp,
            updated_at=stamp,
        )
        async with self._session("create", record.id) as session:
            session.add(record)
            await session.flush()
            alert = _to_alert(record)

        logger.info(
            "Alert %s stored [%s] district=%s",
            alert.id, alert.severity_level.value, alert.district,
            extra={"alert_id": alert.id, "operation": "create"},
        )
        return alert

    async def update(self, alert_id: str, patch: Dict[str, Any]) -> Optional[Alert]:
        """
        Apply a validated partial patch. Last write wins.

        Returns None when the id is unknown.
        """
        async with self._session("update", alert_id) as session:
            record = await self._find(session, alert_id)
            if record is None:
                return None
            for name, value in patch.items():
                if name == "severity_level":
                    value = normalize_severity(value).value
                setattr(record, name, value)
            record.updated_at = _to_utc(self._clock())
            await session.flush()
            alert = _to_alert(record)

        logger.info(
            "Alert %s updated fields=%s", alert_id, sorted(patch),
            extra={"alert_id": alert_id, "operation": "update"},
        )
        return alert

    async def delete(self, alert_id: str) -> bool:
        """Remove an alert. Returns False when the id is unknown."""
        async with self._session("delete", alert_id) as session:
            result = await session.execute(
                delete(AlertRecord).where(AlertRecord.id == alert_id)
            )
            removed = (result.rowcount or 0) > 0

        if removed:
            logger.info(
                "Alert %s deleted", alert_id,
                extra={"alert_id": alert_id, "operation": "delete"},
            )
        return removed

    # ── reads ──

    async def get(self, alert_id: str) -> Optional[Alert]:
        async with self._session("get", alert_id) as session:
            record = await self._find(session, alert_id)
            return _to_alert(record) if record is not None else None

    async def list_alerts(
        self,
        *,
        districts: Optional[Sequence[str]] = None,
        q: Optional[str] = None,
        page: int = 1,
        limit: int = 20,
    ) -> Tuple[List[Alert], int]:
        """
        Newest-first page of alerts.

        ``districts`` matches case-insensitively; ``q`` is a case-insensitive
        substring search over topic and message.

        Returns
        -------
        (items, total)
            The requested page and the total number of matching alerts.
        """
        conditions = []
        if districts:
            conditions.append(
                func.lower(AlertRecord.district).in_([d.lower() for d in districts])
            )
        if q:
            conditions.append(or_(
                AlertRecord.topic.icontains(q, autoescape=True),
                AlertRecord.message.icontains(q, autoescape=True),
            ))

        page = max(page, 1)
        stmt = (
            select(AlertRecord)
            .where(*conditions)
            .order_by(AlertRecord.created_at.desc(), AlertRecord.seq.desc())
            .offset((page - 1) * limit)
            .limit(limit)
        )
        count_stmt = select(func.count(AlertRecord.id)).where(*conditions)

        async with self._session("list") as session:
            rows = (await session.execute(stmt)).scalars().all()
            total = (await session.execute(count_stmt)).scalar_one()
        return [_to_alert(r) for r in rows], int(total)

    async def count_by_severity(self, since: datetime) -> Dict[str, int]:
        """
        Total, per-severity and since-``since`` counts in one statement.

        Severity is compared lowercased so rows written before
        normalisation still land in the right bucket.
        """
        severity = func.lower(AlertRecord.severity_level)
        since_utc = _to_utc(since)
        stmt = select(
            func.count(AlertRecord.id),
            func.coalesce(func.sum(
                case((severity.in_(("critical", "red")), 1), else_=0)
            ), 0),
            func.coalesce(func.sum(
                case((severity.in_(("informational", "green")), 1), else_=0)
            ), 0),
            func.coalesce(func.sum(
                case((AlertRecord.created_at >= since_utc, 1), else_=0)
            ), 0),
        )
        async with self._session("count") as session:
            total, critical, informational, recent = (await session.execute(stmt)).one()
        return {
            "total": int(total or 0),
            "critical_count": int(critical or 0),
            "informational_count": int(informational or 0),
            "last_24h_count": int(recent or 0),
        }

    async def recent(self, limit: int) -> List[RecentAlert]:
        """The ``limit`` newest alerts, projected for dashboards."""
        stmt = (
            select(AlertRecord)
            .order_by(AlertRecord.created_at.desc(), AlertRecord.seq.desc())
            .limit(limit)
        )
        async with self._session("recent") as session:
            rows = (await session.execute(stmt)).scalars().all()
        return [RecentAlert.from_alert(_to_alert(r)) for r in rows]

    async def query(
        self,
        *,
        start: Optional[datetime] = None,
        end: Optional[datetime] = None,
        severity: Optional[Severity] = None,
        district: Optional[str] = None,
    ) -> List[Alert]:
        """Every alert matching the filter, newest first. Bounds are inclusive."""
        conditions = []
        if start is not None:
            conditions.append(AlertRecord.created_at >= _to_utc(start))
        if end is not None:
            conditions.append(AlertRecord.created_at <= _to_utc(end))
        if severity is not None:
            tokens = {
                Severity.CRITICAL: ("critical", "red"),
                Severity.INFORMATIONAL: ("informational", "green"),
            }[severity]
            conditions.append(func.lower(AlertRecord.severity_level).in_(tokens))
        if district:
            conditions.append(func.lower(AlertRecord.district) == district.lower())

        stmt = (
            select(AlertRecord)
            .where(*conditions)
            .order_by(AlertRecord.created_at.desc(), AlertRecord.seq.desc())
        )
        async with self._session("query") as session:
            rows = (await session.execute(stmt)).scalars().all()
        return [_to_alert(r) for r in rows]


# ═══════════════════════════════════════════════════════════════════════════
# Recipient Directory
# ═══════════════════════════════════════════════════════════════════════════

class RecipientDirectory(_StoreAccess):
    """
    Read side of the user population.

    Only recipients with notifications enabled and a non-empty email are
    ever returned or counted.
    """

    _store_name = "Recipient directory"

    def _opted_in(self):
        return (
            RecipientRecord.notifications_enabled.is_(True),
            RecipientRecord.email != "",
        )

    async def find_opted_in(self, district: Optional[str] = None) -> List[Recipient]:
        stmt = select(RecipientRecord).where(*self._opted_in())
        if district:
            stmt = stmt.where(func.lower(RecipientRecord.district) == district.strip().lower())
        stmt = stmt.order_by(RecipientRecord.id)

        async with self._session("find_recipients") as session:
            rows = (await session.execute(stmt)).scalars().all()
        return [
            Recipient(
                email=r.email,
                district=r.district,
                notifications_enabled=r.notifications_enabled,
            )
            for r in rows
        ]

    async def count_active(self) -> int:
        stmt = select(func.count(RecipientRecord.id)).where(*self._opted_in())
        async with self._session("count_recipients") as session:
            return int((await session.execute(stmt)).scalar_one() or 0)

    async def add_recipient(
        self,
        email: str,
        district: str,
        notifications_enabled: bool = True,
    ) -> Recipient:
        """Register a recipient. Email is stored trimmed and lowercased."""
        address = (email or "").strip().lower()
        if not address or "@" not in address:
            raise ValidationError("A valid email address is required.", field="email")
        home = canonical_district(district) or (district or "").strip()
        if not home:
            raise ValidationError("District is required.", field="district")

        record = RecipientRecord(
            email=address,
            district=home,
            notifications_enabled=notifications_enabled,
            created_at=utcnow(),
        )
        try:
            async with self._db.session() as session:
                session.add(record)
                await session.flush()
        except IntegrityError:
            raise ValidationError(
                f"Recipient '{address}' is already registered.", field="email",
            ) from None
        except SQLAlchemyError as exc:
            logger.error("Recipient directory add_recipient failed: %s", exc)
            raise PersistenceError("add_recipient") from exc

        return Recipient(
            email=address, district=home, notifications_enabled=notifications_enabled,
        )
