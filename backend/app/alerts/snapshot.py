"""
snapshot.py — Point-in-time aggregate view of the alert store.

The counts (total, critical, informational, last 24h) come from a single
aggregate statement and are therefore mutually consistent. The recent list
is a second read and may be briefly out of step with them under concurrent
writes.
"""

from __future__ import annotations

import logging
from datetime import datetime, timedelta
from typing import Any, Callable, Dict, Optional

from backend.app.alerts.models import Snapshot, utcnow
from backend.app.alerts.repository import AlertRepository, RecipientDirectory

logger = logging.getLogger(__name__)

RECENT_WINDOW = timedelta(hours=24)
DEFAULT_RECENT_LIMIT = 8
MAX_RECENT_LIMIT = 100


class SnapshotAggregator:
    """Computes dashboard snapshots fresh on every call; nothing is cached."""

    def __init__(
        self,
        repository: AlertRepository,
        directory: RecipientDirectory,
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        self._repository = repository
        self._directory = directory
        self._clock = clock

    async def compute_snapshot(self, limit: int = DEFAULT_RECENT_LIMIT) -> Snapshot:
        limit = max(1, min(limit, MAX_RECENT_LIMIT))
        now = self._clock()
        counts = await self._repository.count_by_severity(now - RECENT_WINDOW)
        recent = await self._repository.recent(limit)
        return Snapshot(
            total=counts["total"],
            critical_count=counts["critical_count"],
            informational_count=counts["informational_count"],
            last_24h_count=counts["last_24h_count"],
            recent_alerts=recent,
            computed_at=now,
        )

    async def compute_metrics(self, snapshot: Optional[Snapshot] = None) -> Dict[str, int]:
        """Snapshot counts plus the number of recipients currently opted in."""
        if snapshot is None:
            now = self._clock()
            counts = await self._repository.count_by_severity(now - RECENT_WINDOW)
        else:
            counts = snapshot.metrics()
        return {
            **counts,
            "active_recipient_count": await self._directory.count_active(),
        }

    async def compute_dashboard(self, limit: int = 20) -> Dict[str, Any]:
        """The ``{"metrics", "alerts"}`` payload shared by push and pull."""
        snapshot = await self.compute_snapshot(limit)
        metrics = await self.compute_metrics(snapshot)
        return {
            "metrics": metrics,
            "alerts": [a.to_dict() for a in snapshot.recent_alerts],
        }
