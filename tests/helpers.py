"""Test helpers shared across modules (not fixtures)."""

from __future__ import annotations

from datetime import datetime, timedelta
from typing import Any, Dict, Iterable, Tuple

from backend.app.alerts.repository import RecipientDirectory

MEMORY_URL = "sqlite+aiosqlite:///:memory:"


class FixedClock:
    """Controllable clock; ``advance`` moves it forward."""

    def __init__(self, start: datetime) -> None:
        self.now = start

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **delta: float) -> None:
        self.now = self.now + timedelta(**delta)


def alert_fields(**overrides: Any) -> Dict[str, Any]:
    """Create-request payload with sensible defaults."""
    data: Dict[str, Any] = {
        "severity_level": "informational",
        "topic": "Flood Warning",
        "message": "River levels are rising. Move to higher ground.",
        "district": "Colombo",
        "disaster_location": "Kaduwela",
        "author_role": "System Admin",
    }
    data.update(overrides)
    return data


async def seed_recipients(
    directory: RecipientDirectory,
    rows: Iterable[Tuple[str, str, bool]],
) -> None:
    for email, district, enabled in rows:
        await directory.add_recipient(email, district, notifications_enabled=enabled)
