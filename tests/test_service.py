"""
test_service.py — Alert orchestration end to end (without HTTP).

Covers:
    • Critical alert notifies everyone opted in
    • Informational alert notifies one district
    • Validation failures have no side effects
    • Delivery failures never fail the create
    • Update / delete / get on unknown ids
    • Recipient lookup failure degrades to an empty scope

Run with:
    pytest tests/test_service.py -v
"""

from __future__ import annotations

from unittest.mock import patch

import pytest

from backend.app.alerts.channels.email_alert import DeliveryError, EmailTransport
from backend.app.alerts.dispatcher import NotificationDispatcher
from backend.app.alerts.scope import ScopeResolver
from backend.app.alerts.service import AlertService
from backend.app.core.errors import NotFoundError, PersistenceError, ValidationError

from tests.helpers import alert_fields, seed_recipients


class RejectingTransport(EmailTransport):
    provider = "rejecting"

    async def send(self, to, message):
        raise DeliveryError("relay denied")


# ═══════════════════════════════════════════════════════════════════════════
# Create
# ═══════════════════════════════════════════════════════════════════════════

class TestCreateAlert:

    async def test_critical_reaches_every_district(self, service, directory, transport):
        await seed_recipients(directory, [
            ("colombo@x.lk", "Colombo", True),
            ("kandy@x.lk", "Kandy", True),
            ("optout@x.lk", "Colombo", False),
        ])

        outcome = await service.create_alert(alert_fields(
            severity_level="critical", topic="Flood Warning", district="Colombo",
        ))

        assert outcome.dispatch.attempted == 2
        assert outcome.dispatch.delivered == 2
        assert outcome.scope_label == "all"
        assert sorted(to for to, _ in transport.sent) == ["colombo@x.lk", "kandy@x.lk"]

        body = outcome.to_dict()
        assert set(body) == {"alert", "attempted", "delivered", "scope_label"}
        assert body["alert"]["severity_level"] == "critical"

    async def test_informational_reaches_one_district(self, service, directory, transport):
        await seed_recipients(directory, [
            ("usera@x.lk", "Kandy", True),
            ("userb@x.lk", "Galle", True),
        ])

        outcome = await service.create_alert(alert_fields(
            severity_level="informational", topic="Drill", district="Kandy",
        ))

        assert outcome.dispatch.attempted == 1
        assert outcome.scope_label == "district:Kandy"
        assert [to for to, _ in transport.sent] == ["usera@x.lk"]

    async def test_invalid_input_has_no_side_effects(self, service, directory, repository, transport):
        await seed_recipients(directory, [("a@x.lk", "Colombo", True)])

        with pytest.raises(ValidationError):
            await service.create_alert(alert_fields(topic=""))

        _, total = await repository.list_alerts()
        assert total == 0
        assert transport.sent == []

    async def test_delivery_failures_do_not_fail_create(self, repository, directory, hub):
        await seed_recipients(directory, [("a@x.lk", "Colombo", True), ("b@x.lk", "Colombo", True)])
        svc = AlertService(
            repository, ScopeResolver(directory),
            NotificationDispatcher(RejectingTransport()), hub,
        )

        outcome = await svc.create_alert(alert_fields(severity_level="critical"))

        assert outcome.dispatch.attempted == 2
        assert outcome.dispatch.delivered == 0
        assert await repository.get(outcome.alert.id) is not None

    async def test_recipient_lookup_failure_degrades(self, service, directory, repository):
        with patch.object(
            directory, "find_opted_in", side_effect=PersistenceError("find_recipients"),
        ):
            outcome = await service.create_alert(alert_fields(district="Galle"))

        assert outcome.dispatch.attempted == 0
        assert outcome.scope_label == "district:Galle"
        assert await repository.get(outcome.alert.id) is not None

    async def test_legacy_field_values(self, service):
        outcome = await service.create_alert(alert_fields(severity_level="RED", district="galle"))
        assert outcome.alert.severity_level.value == "critical"
        assert outcome.alert.district == "Galle"


# ═══════════════════════════════════════════════════════════════════════════
# Update / delete / read
# ═══════════════════════════════════════════════════════════════════════════

class TestMutations:

    async def test_update_returns_scope_without_notifying(self, service, directory, transport):
        await seed_recipients(directory, [("a@x.lk", "Colombo", True)])
        created = await service.create_alert(alert_fields())
        sent_before = len(transport.sent)

        outcome = await service.update_alert(created.alert.id, {"severity_level": "critical"})

        assert outcome.scope_label == "all"
        assert outcome.alert.severity_level.value == "critical"
        assert len(transport.sent) == sent_before

    async def test_update_unknown(self, service):
        with pytest.raises(NotFoundError):
            await service.update_alert("ALR-NOPE", {"topic": "x"})

    async def test_update_invalid_before_lookup(self, service):
        with pytest.raises(ValidationError):
            await service.update_alert("ALR-NOPE", {"district": "Atlantis"})

    async def test_delete(self, service):
        created = await service.create_alert(alert_fields())
        assert await service.delete_alert(created.alert.id) == created.alert.id
        with pytest.raises(NotFoundError):
            await service.get_alert(created.alert.id)

    async def test_delete_unknown(self, service):
        with pytest.raises(NotFoundError) as exc_info:
            await service.delete_alert("ALR-NOPE")
        assert exc_info.value.status_code == 404

    async def test_list_passes_filters(self, service):
        await service.create_alert(alert_fields(district="Kandy", topic="Kandy flood"))
        await service.create_alert(alert_fields(district="Galle", topic="Galle surge"))

        items, total = await service.list_alerts(districts=["Kandy"], q="  flood ")
        assert total == 1
        assert items[0].district == "Kandy"
