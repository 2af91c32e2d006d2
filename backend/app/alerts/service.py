"""
service.py — Alert broadcast orchestration.

This is the central coordinator every alert mutation goes through:

    ┌─────────────────────┐
    │  1. Validate        │  Reject bad input before any side effect
    └─────────┬───────────┘
              │
              ▼
    ┌─────────────────────┐
    │  2. Persist         │  AlertRepository create / update / delete
    └─────────┬───────────┘
              │
              ▼
    ┌─────────────────────┐
    │  3. Resolve scope   │  create + update: "all" or "district:<name>"
    └─────────┬───────────┘
              │
              ▼
    ┌─────────────────────┐
    │  4. Dispatch        │  create only; best-effort, awaited so the
    │                     │  response carries attempted / delivered
    └─────────┬───────────┘
              │
              ▼
    ┌─────────────────────┐
    │  5. Publish         │  RealtimeHub recomputes and pushes one snapshot
    └─────────────────────┘

Steps 3-5 never fail a mutation that step 2 already committed: recipient
lookup or delivery problems are logged and reported as counts, and hub
failures are absorbed by the hub itself.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Mapping, Optional, Sequence, Tuple

from backend.app.alerts.dispatcher import NotificationDispatcher
from backend.app.alerts.models import Alert, DispatchResult
from backend.app.alerts.realtime import RealtimeHub
from backend.app.alerts.repository import AlertRepository
from backend.app.alerts.scope import RecipientScope, ScopeResolver, scope_label
from backend.app.alerts.validation import validate_alert_patch, validate_new_alert
from backend.app.core.errors import NotFoundError, PersistenceError

logger = logging.getLogger(__name__)


@dataclass
class CreateOutcome:
    alert: Alert
    scope_label: str
    dispatch: DispatchResult = field(default_factory=DispatchResult)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "alert": self.alert.to_dict(),
            "attempted": self.dispatch.attempted,
            "delivered": self.dispatch.delivered,
            "scope_label": self.scope_label,
        }


@dataclass
class UpdateOutcome:
    alert: Alert
    scope_label: str

    def to_dict(self) -> Dict[str, Any]:
        return {"alert": self.alert.to_dict(), "scope_label": self.scope_label}


class AlertService:
    """Create / update / delete / read alerts with notification and live push."""

    def __init__(
        self,
        repository: AlertRepository,
        resolver: ScopeResolver,
        dispatcher: NotificationDispatcher,
        hub: Optional[RealtimeHub] = None,
    ) -> None:
        self.repository = repository
        self.resolver = resolver
        self.dispatcher = dispatcher
        self.hub = hub

    async def _resolve(self, alert: Alert) -> RecipientScope:
        """Scope for ``alert``; an unreadable directory yields an empty scope."""
        try:
            return await self.resolver.resolve(alert)
        except PersistenceError:
            logger.error(
                "Alert %s: recipient lookup failed, no notifications sent", alert.id,
                extra={"alert_id": alert.id, "operation": "resolve_scope"},
            )
            return RecipientScope(recipients=[], label=scope_label(alert))

    async def _publish(self) -> None:
        if self.hub is not None:
            await self.hub.publish_update()

    # ── mutations ──

    async def create_alert(self, data: Mapping[str, Any]) -> CreateOutcome:
        """
        Validate, persist, notify and publish a new alert.

        Raises
        ------
        ValidationError
            Invalid input; nothing persisted, nobody notified.
        PersistenceError
            The alert could not be stored.
        """
        fields = validate_new_alert(data)
        alert = await self.repository.create(fields)

        scope = await self._resolve(alert)
        result = await self.dispatcher.dispatch(alert, scope.recipients)
        await self._publish()

        logger.info(
            "Alert %s created [%s] scope=%s attempted=%d delivered=%d",
            alert.id, alert.severity_level.value, scope.label,
            result.attempted, result.delivered,
            extra={
                "alert_id": alert.id,
                "operation": "create",
                "scope": scope.label,
                "recipient_count": result.attempted,
                "delivered": result.delivered,
            },
        )
        return CreateOutcome(alert=alert, scope_label=scope.label, dispatch=result)

    async def update_alert(self, alert_id: str, patch: Mapping[str, Any]) -> UpdateOutcome:
        """
        Apply a partial patch (last write wins) and publish.

        Updates re-resolve scope for the response label but do not notify.
        """
        cleaned = validate_alert_patch(patch)
        alert = await self.repository.update(alert_id, cleaned)
        if alert is None:
            raise NotFoundError("Alert", alert_id=alert_id)

        scope = await self._resolve(alert)
        await self._publish()
        return UpdateOutcome(alert=alert, scope_label=scope.label)

    async def delete_alert(self, alert_id: str) -> str:
        if not await self.repository.delete(alert_id):
            raise NotFoundError("Alert", alert_id=alert_id)
        await self._publish()
        return alert_id

    # ── reads ──

    async def get_alert(self, alert_id: str) -> Alert:
        alert = await self.repository.get(alert_id)
        if alert is None:
            raise NotFoundError("Alert", alert_id=alert_id)
        return alert

    async def list_alerts(
        self,
        *,
        districts: Optional[Sequence[str]] = None,
        q: Optional[str] = None,
        page: int = 1,
        limit: int = 20,
    ) -> Tuple[List[Alert], int]:
        return await self.repository.list_alerts(
            districts=districts, q=(q or "").strip() or None, page=page, limit=limit,
        )
