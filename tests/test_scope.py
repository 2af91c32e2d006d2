"""
test_scope.py — Recipient scope resolution.

Covers:
    • Pure in_scope predicate (opt-out, missing email, district matching)
    • ScopeResolver against a real recipient directory
    • Critical → every opted-in recipient; informational → one district

Run with:
    pytest tests/test_scope.py -v
"""

from __future__ import annotations

from datetime import datetime, timezone

import pytest

from backend.app.alerts.models import Alert, Recipient, Severity
from backend.app.alerts.scope import ScopeResolver, in_scope, scope_label
from backend.app.core.errors import ValidationError

from tests.helpers import seed_recipients

NOW = datetime(2025, 6, 1, 12, 0, tzinfo=timezone.utc)


def _make_alert(
    severity: Severity = Severity.INFORMATIONAL,
    district: str = "Kandy",
) -> Alert:
    return Alert(
        id="ALR-TEST",
        severity_level=severity,
        topic="Drill",
        message="Evacuation drill at 10:00.",
        district=district,
        disaster_location="Peradeniya",
        author_role="System Admin",
        created_at=NOW,
        updated_at=NOW,
    )


POPULATION = [
    ("a@kandy.lk", "Kandy", True),
    ("b@kandy.lk", "kandy", True),
    ("c@galle.lk", "Galle", True),
    ("d@colombo.lk", "Colombo", True),
    ("optout@kandy.lk", "Kandy", False),
    ("optout@galle.lk", "Galle", False),
]


# ═══════════════════════════════════════════════════════════════════════════
# Pure predicate
# ═══════════════════════════════════════════════════════════════════════════

class TestInScope:

    def test_critical_ignores_district(self):
        alert = _make_alert(Severity.CRITICAL, "Colombo")
        assert in_scope(alert, Recipient("x@y.lk", "Jaffna"))

    def test_informational_matches_district_case_insensitively(self):
        alert = _make_alert(Severity.INFORMATIONAL, "Kandy")
        assert in_scope(alert, Recipient("x@y.lk", "KANDY"))
        assert not in_scope(alert, Recipient("x@y.lk", "Galle"))

    def test_opted_out_never_in_scope(self):
        alert = _make_alert(Severity.CRITICAL)
        assert not in_scope(alert, Recipient("x@y.lk", "Kandy", notifications_enabled=False))

    def test_missing_email_never_in_scope(self):
        alert = _make_alert(Severity.CRITICAL)
        assert not in_scope(alert, Recipient("  ", "Kandy"))

    def test_labels(self):
        assert scope_label(_make_alert(Severity.CRITICAL, "Kandy")) == "all"
        assert scope_label(_make_alert(Severity.INFORMATIONAL, "Kandy")) == "district:Kandy"


# ═══════════════════════════════════════════════════════════════════════════
# Resolver against the directory
# ═══════════════════════════════════════════════════════════════════════════

class TestScopeResolver:

    async def test_critical_returns_every_opted_in_recipient(self, directory):
        await seed_recipients(directory, POPULATION)
        scope = await ScopeResolver(directory).resolve(_make_alert(Severity.CRITICAL, "Colombo"))

        assert scope.label == "all"
        assert sorted(r.email for r in scope.recipients) == [
            "a@kandy.lk", "b@kandy.lk", "c@galle.lk", "d@colombo.lk",
        ]

    async def test_informational_returns_exactly_the_district(self, directory):
        await seed_recipients(directory, POPULATION)
        scope = await ScopeResolver(directory).resolve(_make_alert(Severity.INFORMATIONAL, "Kandy"))

        assert scope.label == "district:Kandy"
        assert sorted(r.email for r in scope.recipients) == ["a@kandy.lk", "b@kandy.lk"]

    async def test_empty_directory(self, directory):
        scope = await ScopeResolver(directory).resolve(_make_alert(Severity.CRITICAL))
        assert scope.recipients == []
        assert scope.size == 0

    async def test_district_with_nobody(self, directory):
        await seed_recipients(directory, POPULATION)
        scope = await ScopeResolver(directory).resolve(_make_alert(Severity.INFORMATIONAL, "Jaffna"))
        assert scope.recipients == []
        assert scope.label == "district:Jaffna"

    async def test_informational_without_district_rejected(self, directory):
        with pytest.raises(ValidationError):
            await ScopeResolver(directory).resolve(_make_alert(Severity.INFORMATIONAL, " "))


class TestRecipientDirectory:

    async def test_emails_stored_lowercase_and_trimmed(self, directory):
        rec = await directory.add_recipient("  User@Example.LK ", "galle")
        assert rec.email == "user@example.lk"
        assert rec.district == "Galle"

    async def test_duplicate_email_rejected(self, directory):
        await directory.add_recipient("dup@example.lk", "Galle")
        with pytest.raises(ValidationError):
            await directory.add_recipient("DUP@example.lk", "Kandy")

    async def test_count_active_excludes_opted_out(self, directory):
        await seed_recipients(directory, POPULATION)
        assert await directory.count_active() == 4
