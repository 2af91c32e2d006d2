"""
dispatcher.py — Fan one alert out to its recipients.

    ┌─────────────────────┐
    │  render once        │  NotificationMessage shared by every recipient
    └─────────┬───────────┘
              │
              ▼
    ┌─────────────────────┐
    │  one task per       │  asyncio.Semaphore caps in-flight deliveries
    │  recipient          │  asyncio.wait_for bounds each delivery
    └─────────┬───────────┘
              │
              ▼
    ┌─────────────────────┐
    │  gather outcomes    │  each task returns a typed outcome, never raises
    └─────────┬───────────┘
              │
              ▼
        DispatchResult(attempted, delivered, failures)

A failure for one recipient never prevents delivery to the others and is
never raised to the caller. Delivery is best-effort: no retries, no ordering.
"""

from __future__ import annotations

import asyncio
import logging
import time
from typing import List, Optional, Sequence

from backend.app.alerts.channels.email_alert import (
    EmailTransport,
    NotificationMessage,
    render_notification,
)
from backend.app.alerts.models import Alert, DeliveryFailure, DispatchResult, Recipient

logger = logging.getLogger(__name__)


class NotificationDispatcher:
    """Bounded-concurrency, failure-isolating notification fan-out."""

    def __init__(
        self,
        transport: EmailTransport,
        *,
        max_concurrency: int = 10,
        timeout_seconds: Optional[float] = 20.0,
    ) -> None:
        if max_concurrency < 1:
            raise ValueError("max_concurrency must be >= 1")
        self.transport = transport
        self.max_concurrency = max_concurrency
        self.timeout_seconds = timeout_seconds

    async def _deliver(
        self,
        semaphore: asyncio.Semaphore,
        recipient: Recipient,
        message: NotificationMessage,
    ) -> Optional[DeliveryFailure]:
        """Deliver to one recipient. Returns a failure record instead of raising."""
        async with semaphore:
            try:
                if self.timeout_seconds:
                    await asyncio.wait_for(
                        self.transport.send(recipient.email, message),
                        timeout=self.timeout_seconds,
                    )
                else:
                    await self.transport.send(recipient.email, message)
            except asyncio.TimeoutError:
                reason = f"timed out after {self.timeout_seconds}s"
            except Exception as exc:
                reason = str(exc) or exc.__class__.__name__
            else:
                return None

        logger.warning(
            "Delivery of alert %s to %s failed: %s",
            message.alert_id, recipient.email, reason,
            extra={"alert_id": message.alert_id},
        )
        return DeliveryFailure(email=recipient.email, reason=reason)

    async def dispatch(self, alert: Alert, recipients: Sequence[Recipient]) -> DispatchResult:
        """
        Notify every recipient about ``alert``.

        Parameters
        ----------
        alert : Alert
        recipients : sequence of Recipient
            Already scoped; every entry gets exactly one delivery attempt.

        Returns
        -------
        DispatchResult
            ``attempted == len(recipients)``, also when every delivery fails.
        """
        result = DispatchResult(attempted=len(recipients))
        if not recipients:
            logger.info(
                "Alert %s: no recipients in scope", alert.id,
                extra={"alert_id": alert.id, "recipient_count": 0},
            )
            return result

        started = time.monotonic()
        message = render_notification(alert)
        semaphore = asyncio.Semaphore(self.max_concurrency)

        outcomes: List[Optional[DeliveryFailure]] = await asyncio.gather(
            *(self._deliver(semaphore, r, message) for r in recipients)
        )
        result.failures = [o for o in outcomes if o is not None]
        result.delivered = result.attempted - result.failed

        duration_ms = round((time.monotonic() - started) * 1000, 1)
        logger.info(
            "Alert %s dispatched via %s: %d/%d delivered (%d failed) in %.1fms",
            alert.id, self.transport.provider,
            result.delivered, result.attempted, result.failed, duration_ms,
            extra={
                "alert_id": alert.id,
                "recipient_count": result.attempted,
                "delivered": result.delivered,
                "duration_ms": duration_ms,
            },
        )
        return result
