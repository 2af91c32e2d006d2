"""
models.py — Shared data structures for the alert broadcast engine.

Defines:
    • Severity        — two-valued urgency classification
    • DISTRICTS       — the fixed set of administrative regions
    • AUTHOR_ROLES    — operator roles an alert can be issued under
    • Alert           — a persisted alert, as seen by the engine
    • Recipient       — a registered user who may receive notifications
    • RecentAlert     — dashboard projection of an alert
    • Snapshot        — computed aggregate view of current alerts
    • DispatchResult  — outcome of one notification fan-out

═══════════════════════════════════════════════════════════════════════════
SEVERITY → RECIPIENT SCOPE
═══════════════════════════════════════════════════════════════════════════

    Severity         Legacy token    Who is notified
    ─────────────    ────────────    ─────────────────────────────────────
    CRITICAL         "red"           every opted-in recipient, all districts
    INFORMATIONAL    "green"         opted-in recipients of the alert's district

Tokens are accepted in any case and always stored in canonical lowercase.
"""

from __future__ import annotations

import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, List, Optional


# ═══════════════════════════════════════════════════════════════════════════
# Enumerations
# ═══════════════════════════════════════════════════════════════════════════

class Severity(str, Enum):
    """Alert urgency. Drives recipient scope."""
    CRITICAL      = "critical"
    INFORMATIONAL = "informational"


_SEVERITY_ALIASES: Dict[str, Severity] = {
    "critical": Severity.CRITICAL,
    "red": Severity.CRITICAL,
    "informational": Severity.INFORMATIONAL,
    "green": Severity.INFORMATIONAL,
}


def normalize_severity(token: Any) -> Severity:
    """
    Map a free-form severity token onto the canonical enum.

    Raises
    ------
    ValueError
        If the token is not a recognised severity.
    """
    if isinstance(token, Severity):
        return token
    key = str(token or "").strip().lower()
    try:
        return _SEVERITY_ALIASES[key]
    except KeyError:
        raise ValueError(
            f"Unknown severity '{token}'. Use one of: critical, informational"
        ) from None


DISTRICTS: List[str] = [
    "Ampara", "Anuradhapura", "Badulla", "Batticaloa", "Colombo", "Galle",
    "Gampaha", "Hambantota", "Jaffna", "Kalutara", "Kandy", "Kegalle",
    "Kilinochchi", "Kurunegala", "Mannar", "Matale", "Matara", "Monaragala",
    "Mullaitivu", "Nuwara Eliya", "Polonnaruwa", "Puttalam", "Ratnapura",
    "Trincomalee", "Vavuniya",
]

_DISTRICT_LOOKUP: Dict[str, str] = {d.lower(): d for d in DISTRICTS}


def canonical_district(name: Any) -> Optional[str]:
    """Return the canonical spelling of a district, or None if unknown."""
    return _DISTRICT_LOOKUP.get(str(name or "").strip().lower())


AUTHOR_ROLES: List[str] = ["System Admin", "Disaster Management Officer", "Other"]
DEFAULT_AUTHOR_ROLE = "System Admin"

_ROLE_LOOKUP: Dict[str, str] = {r.lower(): r for r in AUTHOR_ROLES}


def canonical_author_role(role: Any) -> Optional[str]:
    """Return the canonical spelling of an operator role, or None if unknown."""
    return _ROLE_LOOKUP.get(str(role or "").strip().lower())


# ═══════════════════════════════════════════════════════════════════════════
# Data Structures
# ═══════════════════════════════════════════════════════════════════════════

def generate_alert_id() -> str:
    return f"ALR-{uuid.uuid4().hex.upper()}"


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _iso(value: Optional[datetime]) -> Optional[str]:
    return value.isoformat() if value else None


@dataclass(frozen=True)
class Alert:
    """A persisted alert. Mutations go through the repository, never in place."""
    id: str
    severity_level: Severity
    topic: str
    message: str
    district: str
    disaster_location: str
    author_role: str
    created_at: datetime
    updated_at: datetime

    @property
    def is_critical(self) -> bool:
        return self.severity_level is Severity.CRITICAL

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "severity_level": self.severity_level.value,
            "topic": self.topic,
            "message": self.message,
            "district": self.district,
            "disaster_location": self.disaster_location,
            "author_role": self.author_role,
            "created_at": _iso(self.created_at),
            "updated_at": _iso(self.updated_at),
        }


@dataclass(frozen=True)
class Recipient:
    """A registered user, as exposed by the recipient directory."""
    email: str
    district: str
    notifications_enabled: bool = True


@dataclass(frozen=True)
class RecentAlert:
    """Dashboard projection of an alert."""
    id: str
    topic: str
    severity_level: Severity
    district: str
    author_role: str
    created_at: datetime

    @classmethod
    def from_alert(cls, alert: Alert) -> "RecentAlert":
        return cls(
            id=alert.id,
            topic=alert.topic,
            severity_level=alert.severity_level,
            district=alert.district,
            author_role=alert.author_role,
            created_at=alert.created_at,
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "topic": self.topic,
            "severity_level": self.severity_level.value,
            "district": self.district,
            "author_role": self.author_role,
            "created_at": _iso(self.created_at),
        }


@dataclass
class Snapshot:
    """
    Point-in-time aggregate view of the alert store.

    The four counts are read together; ``recent_alerts`` is a separate read
    and may lag or lead the counts by the duration of the computation.
    """
    total: int = 0
    critical_count: int = 0
    informational_count: int = 0
    last_24h_count: int = 0
    recent_alerts: List[RecentAlert] = field(default_factory=list)
    computed_at: datetime = field(default_factory=utcnow)

    def metrics(self) -> Dict[str, int]:
        return {
            "total": self.total,
            "critical_count": self.critical_count,
            "informational_count": self.informational_count,
            "last_24h_count": self.last_24h_count,
        }

    def to_dict(self) -> Dict[str, Any]:
        return {
            **self.metrics(),
            "recent_alerts": [a.to_dict() for a in self.recent_alerts],
            "computed_at": _iso(self.computed_at),
        }


@dataclass(frozen=True)
class DeliveryFailure:
    """One recipient whose notification could not be delivered."""
    email: str
    reason: str

    def to_dict(self) -> Dict[str, str]:
        return {"email": self.email, "reason": self.reason}


@dataclass
class DispatchResult:
    """Aggregate outcome of a notification fan-out."""
    attempted: int = 0
    delivered: int = 0
    failures: List[DeliveryFailure] = field(default_factory=list)

    @property
    def failed(self) -> int:
        return len(self.failures)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "attempted": self.attempted,
            "delivered": self.delivered,
            "failed": self.failed,
            "failures": [f.to_dict() for f in self.failures],
        }
