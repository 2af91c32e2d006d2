"""
FastAPI routes: alert management and live dashboards.

Provides endpoints to:
    POST   /api/v1/alerts              — create, notify, publish
    PUT    /api/v1/alerts/{id}         — partial update, publish
    DELETE /api/v1/alerts/{id}         — delete, publish
    GET    /api/v1/alerts/{id}         — fetch one
    GET    /api/v1/alerts              — paginated list (district, q)
    GET    /api/v1/alerts/metrics      — aggregate counts
    GET    /api/v1/alerts/recent       — newest alerts, dashboard projection
    GET    /api/v1/alerts/pull         — polling fallback for the push channel
    GET    /api/v1/alerts/events       — Server-Sent Events push channel
"""

from __future__ import annotations

import json
import logging
import math
from typing import Any, AsyncIterator, Dict, List, Optional

from fastapi import APIRouter, Depends, Query, Request, Response
from fastapi.responses import StreamingResponse
from starlette.background import BackgroundTask

from backend.app.alerts.realtime import RealtimeHub, Subscriber, SubscriberClosed
from backend.app.alerts.service import AlertService
from backend.app.alerts.snapshot import SnapshotAggregator
from backend.app.api.deps import (
    get_aggregator,
    get_alert_service,
    get_hub,
    get_settings_dep,
)
from backend.app.api.schemas import (
    AlertCreateRequest,
    AlertListResponse,
    AlertOut,
    AlertUpdateRequest,
    CreateAlertResponse,
    DashboardResponse,
    DeleteAlertResponse,
    MetricsOut,
    UpdateAlertResponse,
)
from backend.app.core.config import Settings
from backend.app.core.security import require_operator

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/v1/alerts", tags=["alerts"])

SSE_HEADERS = {
    "Cache-Control": "no-cache",
    "Connection": "keep-alive",
    "X-Accel-Buffering": "no",
}


def _split_districts(raw: Optional[str]) -> List[str]:
    if not raw:
        return []
    return [d.strip() for d in raw.split(",") if d.strip() and d.strip().lower() != "all"]


def _format_sse(payload: Dict[str, Any], event: str = "snapshot") -> str:
    """One SSE frame. JSON is emitted on a single ``data:`` line."""
    return f"event: {event}\ndata: {json.dumps(payload, default=str)}\n\n"


async def _event_stream(
    request: Request,
    hub: RealtimeHub,
    subscriber: Subscriber,
    *,
    heartbeat_seconds: float,
    retry_ms: int,
) -> AsyncIterator[str]:
    """Drain one subscriber into SSE frames until either side goes away."""
    try:
        yield f"retry: {retry_ms}\n\n"
        while True:
            if await request.is_disconnected():
                break
            try:
                payload = await subscriber.receive(timeout=heartbeat_seconds)
            except SubscriberClosed:
                break
            if payload is None:
                yield ": heartbeat\n\n"
                continue
            yield _format_sse(payload)
    finally:
        hub.unsubscribe(subscriber)


async def _release(hub: RealtimeHub, subscriber: Subscriber) -> None:
    """Runs after the response ends, including when the client left before any frame."""
    hub.unsubscribe(subscriber)


# ---------------------------------------------------------------------------
# Dashboards
# ---------------------------------------------------------------------------

@router.get("/metrics", response_model=MetricsOut)
async def get_metrics(aggregator: SnapshotAggregator = Depends(get_aggregator)):
    """Aggregate counts plus the number of opted-in recipients."""
    return await aggregator.compute_metrics()


@router.get("/recent")
async def get_recent(
    limit: int = Query(8, ge=1, le=100),
    aggregator: SnapshotAggregator = Depends(get_aggregator),
):
    snapshot = await aggregator.compute_snapshot(limit)
    return {"alerts": [a.to_dict() for a in snapshot.recent_alerts]}


@router.get("/pull", response_model=DashboardResponse)
async def pull_dashboard(
    response: Response,
    limit: int = Query(20, ge=1, le=100),
    aggregator: SnapshotAggregator = Depends(get_aggregator),
    config: Settings = Depends(get_settings_dep),
):
    """
    Stateless polling fallback: the same payload the push channel sends.

    ``X-Poll-Interval`` tells clients how many seconds to wait between polls.
    """
    response.headers["X-Poll-Interval"] = str(config.PULL_INTERVAL_SECONDS)
    response.headers["Cache-Control"] = "no-store"
    return await aggregator.compute_dashboard(limit)


@router.get("/events")
async def stream_events(
    request: Request,
    hub: RealtimeHub = Depends(get_hub),
    config: Settings = Depends(get_settings_dep),
) -> StreamingResponse:
    """
    Server-Sent Events push channel.

    Sends ``event: snapshot`` on connect and after every alert mutation,
    with heartbeat comments in between. On error, clients reconnect or fall
    back to ``/pull``.
    """
    subscriber = await hub.subscribe()
    return StreamingResponse(
        _event_stream(
            request, hub, subscriber,
            heartbeat_seconds=config.SSE_HEARTBEAT_SECONDS,
            retry_ms=config.PULL_INTERVAL_SECONDS * 1000,
        ),
        media_type="text/event-stream",
        headers=SSE_HEADERS,
        background=BackgroundTask(_release, hub, subscriber),
    )


# ---------------------------------------------------------------------------
# CRUD
# ---------------------------------------------------------------------------

@router.post("", response_model=CreateAlertResponse, status_code=201)
@router.post("/", response_model=CreateAlertResponse, status_code=201, include_in_schema=False)
async def create_alert(
    body: AlertCreateRequest,
    _operator: str = Depends(require_operator),
    service: AlertService = Depends(get_alert_service),
):
    """Create an alert, notify its scope, push a fresh snapshot to dashboards."""
    outcome = await service.create_alert(body.fields())
    return outcome.to_dict()


@router.get("", response_model=AlertListResponse)
@router.get("/", response_model=AlertListResponse, include_in_schema=False)
async def list_alerts(
    district: Optional[str] = Query(None, description="One district or a comma-separated list"),
    q: Optional[str] = Query(None, max_length=200, description="Search topic and message"),
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=100),
    service: AlertService = Depends(get_alert_service),
):
    items, total = await service.list_alerts(
        districts=_split_districts(district), q=q, page=page, limit=limit,
    )
    return {
        "items": [a.to_dict() for a in items],
        "total": total,
        "page": page,
        "pages": max(1, math.ceil(total / limit)),
    }


@router.get("/{alert_id}", response_model=AlertOut)
async def get_alert(alert_id: str, service: AlertService = Depends(get_alert_service)):
    return (await service.get_alert(alert_id)).to_dict()


@router.put("/{alert_id}", response_model=UpdateAlertResponse)
async def update_alert(
    alert_id: str,
    body: AlertUpdateRequest,
    _operator: str = Depends(require_operator),
    service: AlertService = Depends(get_alert_service),
):
    outcome = await service.update_alert(alert_id, body.fields())
    return outcome.to_dict()


@router.delete("/{alert_id}", response_model=DeleteAlertResponse)
async def delete_alert(
    alert_id: str,
    _operator: str = Depends(require_operator),
    service: AlertService = Depends(get_alert_service),
):
    deleted_id = await service.delete_alert(alert_id)
    return {"deleted_id": deleted_id}
