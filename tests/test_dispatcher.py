"""
test_dispatcher.py — Notification fan-out.

Covers:
    • Failure isolation (one bad recipient never blocks the others)
    • Counts when everything fails / nothing to do
    • Concurrency cap honoured
    • Per-delivery timeout turned into a recorded failure

Run with:
    pytest tests/test_dispatcher.py -v
"""

from __future__ import annotations

import asyncio
from datetime import datetime, timezone
from typing import List, Set

import pytest

from backend.app.alerts.channels.email_alert import (
    DeliveryError,
    EmailTransport,
    NotificationMessage,
    SimulatedEmailTransport,
)
from backend.app.alerts.dispatcher import NotificationDispatcher
from backend.app.alerts.models import Alert, Recipient, Severity

NOW = datetime(2025, 6, 1, 12, 0, tzinfo=timezone.utc)


def _make_alert() -> Alert:
    return Alert(
        id="ALR-DISPATCH",
        severity_level=Severity.CRITICAL,
        topic="Flood Warning",
        message="Move to higher ground.",
        district="Colombo",
        disaster_location="Kaduwela",
        author_role="System Admin",
        created_at=NOW,
        updated_at=NOW,
    )


def _recipients(*emails: str) -> List[Recipient]:
    return [Recipient(email=e, district="Colombo") for e in emails]


class FlakyTransport(EmailTransport):
    """Fails for the configured addresses, records every attempt."""

    provider = "flaky"

    def __init__(self, failing: Set[str]) -> None:
        self.failing = failing
        self.attempts: List[str] = []

    async def send(self, to: str, message: NotificationMessage) -> None:
        self.attempts.append(to)
        await asyncio.sleep(0)
        if to in self.failing:
            raise DeliveryError(f"mailbox {to} unavailable")


class CountingTransport(EmailTransport):
    """Tracks the peak number of concurrent sends."""

    provider = "counting"

    def __init__(self) -> None:
        self.in_flight = 0
        self.peak = 0

    async def send(self, to: str, message: NotificationMessage) -> None:
        self.in_flight += 1
        self.peak = max(self.peak, self.in_flight)
        await asyncio.sleep(0.01)
        self.in_flight -= 1


class HangingTransport(EmailTransport):
    provider = "hanging"

    async def send(self, to: str, message: NotificationMessage) -> None:
        await asyncio.sleep(10)


# ═══════════════════════════════════════════════════════════════════════════
# Failure isolation
# ═══════════════════════════════════════════════════════════════════════════

class TestDispatchIsolation:

    async def test_one_failure_does_not_block_others(self):
        transport = FlakyTransport(failing={"b@x.lk"})
        dispatcher = NotificationDispatcher(transport, max_concurrency=2)

        result = await dispatcher.dispatch(_make_alert(), _recipients("a@x.lk", "b@x.lk", "c@x.lk"))

        assert result.attempted == 3
        assert result.delivered == 2
        assert result.failed == 1
        assert result.failures[0].email == "b@x.lk"
        assert "unavailable" in result.failures[0].reason
        assert sorted(transport.attempts) == ["a@x.lk", "b@x.lk", "c@x.lk"]

    async def test_all_failures_still_return_result(self):
        transport = FlakyTransport(failing={"a@x.lk", "b@x.lk"})
        result = await NotificationDispatcher(transport).dispatch(
            _make_alert(), _recipients("a@x.lk", "b@x.lk"),
        )
        assert result.attempted == 2
        assert result.delivered == 0
        assert result.failed == 2

    async def test_unexpected_exception_is_captured(self):
        class Broken(EmailTransport):
            async def send(self, to, message):
                raise RuntimeError("boom")

        result = await NotificationDispatcher(Broken()).dispatch(
            _make_alert(), _recipients("a@x.lk"),
        )
        assert result.delivered == 0
        assert result.failures[0].reason == "boom"

    async def test_no_recipients(self):
        transport = SimulatedEmailTransport()
        result = await NotificationDispatcher(transport).dispatch(_make_alert(), [])
        assert (result.attempted, result.delivered, result.failed) == (0, 0, 0)
        assert transport.sent == []


# ═══════════════════════════════════════════════════════════════════════════
# Bounds
# ═══════════════════════════════════════════════════════════════════════════

class TestDispatchBounds:

    async def test_concurrency_cap(self):
        transport = CountingTransport()
        dispatcher = NotificationDispatcher(transport, max_concurrency=3)
        emails = [f"user{i}@x.lk" for i in range(12)]

        result = await dispatcher.dispatch(_make_alert(), _recipients(*emails))

        assert result.delivered == 12
        assert 1 <= transport.peak <= 3

    async def test_timeout_recorded_as_failure(self):
        dispatcher = NotificationDispatcher(HangingTransport(), timeout_seconds=0.05)
        result = await dispatcher.dispatch(_make_alert(), _recipients("slow@x.lk"))
        assert result.delivered == 0
        assert "timed out" in result.failures[0].reason

    def test_invalid_concurrency(self):
        with pytest.raises(ValueError):
            NotificationDispatcher(SimulatedEmailTransport(), max_concurrency=0)

    async def test_message_rendered_once_and_shared(self):
        transport = SimulatedEmailTransport()
        await NotificationDispatcher(transport).dispatch(
            _make_alert(), _recipients("a@x.lk", "b@x.lk"),
        )
        messages = {id(message) for _, message in transport.sent}
        assert len(messages) == 1
