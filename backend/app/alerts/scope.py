"""
scope.py — Decide who must be notified about an alert.

    Severity         Recipients                                  Label
    ─────────────    ────────────────────────────────────────    ─────────────────
    CRITICAL         every opted-in recipient, any district      "all"
    INFORMATIONAL    opted-in recipients of the alert district   "district:<name>"

"Opted-in" means notifications enabled and a non-empty email. District
comparison is case-insensitive. Resolution has no side effects.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import List

from backend.app.alerts.models import Alert, Recipient
from backend.app.alerts.repository import RecipientDirectory
from backend.app.core.errors import ValidationError

logger = logging.getLogger(__name__)

SCOPE_ALL = "all"


@dataclass
class RecipientScope:
    """Resolved recipient set plus a human-readable scope label."""
    recipients: List[Recipient] = field(default_factory=list)
    label: str = SCOPE_ALL

    @property
    def size(self) -> int:
        return len(self.recipients)


def scope_label(alert: Alert) -> str:
    if alert.is_critical:
        return SCOPE_ALL
    return f"district:{alert.district}"


def in_scope(alert: Alert, recipient: Recipient) -> bool:
    """Pure predicate: must ``recipient`` be notified about ``alert``?"""
    if not recipient.notifications_enabled:
        return False
    if not (recipient.email or "").strip():
        return False
    if alert.is_critical:
        return True
    return (recipient.district or "").strip().lower() == alert.district.strip().lower()


class ScopeResolver:
    """Resolve the recipient set for an alert against the directory."""

    def __init__(self, directory: RecipientDirectory) -> None:
        self._directory = directory

    async def resolve(self, alert: Alert) -> RecipientScope:
        if not alert.is_critical and not (alert.district or "").strip():
            raise ValidationError(
                "District is required for non-critical alerts.", field="district",
            )

        candidates = await self._directory.find_opted_in(
            None if alert.is_critical else alert.district
        )
        recipients = [r for r in candidates if in_scope(alert, r)]
        label = scope_label(alert)

        logger.debug(
            "Alert %s scope=%s recipients=%d",
            alert.id, label, len(recipients),
            extra={"alert_id": alert.id, "scope": label, "recipient_count": len(recipients)},
        )
        return RecipientScope(recipients=recipients, label=label)
