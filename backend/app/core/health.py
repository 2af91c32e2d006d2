"""
Health check aggregation — deep health probe for the engine's subsystems.

Checks:
    • Database connectivity (SELECT 1 round trip)
    • Realtime hub state and live subscriber count
    • Email transport configuration

Returns a structured health report suitable for:
    - Kubernetes liveness/readiness probes
    - Load balancer health checks
"""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import TYPE_CHECKING, Any, Dict, List, Optional

from sqlalchemy.exc import SQLAlchemyError

from backend.app.core.config import settings

if TYPE_CHECKING:
    from backend.app.alerts.channels.email_alert import EmailTransport
    from backend.app.alerts.realtime import RealtimeHub
    from backend.app.core.database import Database

logger = logging.getLogger(__name__)


class HealthStatus(str, Enum):
    HEALTHY = "healthy"
    DEGRADED = "degraded"  # partial functionality
    UNHEALTHY = "unhealthy"


@dataclass
class ComponentHealth:
    name: str
    status: HealthStatus = HealthStatus.HEALTHY
    latency_ms: float = 0.0
    message: str = ""
    details: Dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        d: Dict[str, Any] = {
            "name": self.name,
            "status": self.status.value,
            "latency_ms": round(self.latency_ms, 2),
        }
        if self.message:
            d["message"] = self.message
        if self.details:
            d["details"] = self.details
        return d


@dataclass
class HealthReport:
    status: HealthStatus = HealthStatus.HEALTHY
    version: str = settings.APP_VERSION
    environment: str = settings.ENVIRONMENT
    timestamp: str = ""
    uptime_seconds: float = 0.0
    components: List[ComponentHealth] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "status": self.status.value,
            "version": self.version,
            "environment": self.environment,
            "timestamp": self.timestamp or datetime.now(timezone.utc).isoformat(),
            "uptime_seconds": round(self.uptime_seconds, 1),
            "components": [c.to_dict() for c in self.components],
        }


# Track application start time
_start_time = time.monotonic()


async def check_database(database: Optional["Database"]) -> ComponentHealth:
    """Round-trip a trivial statement through the engine."""
    comp = ComponentHealth(name="database")
    start = time.monotonic()
    if database is None:
        comp.status = HealthStatus.UNHEALTHY
        comp.message = "Database not initialised"
        return comp
    try:
        await database.ping()
        comp.message = "Connection pool available"
        comp.details = {"url": database.display_url}
    except (SQLAlchemyError, OSError) as e:
        comp.status = HealthStatus.UNHEALTHY
        comp.message = str(e)
        logger.warning("Database health check failed: %s", e)
    comp.latency_ms = (time.monotonic() - start) * 1000
    return comp


async def check_realtime_hub(hub: Optional["RealtimeHub"]) -> ComponentHealth:
    comp = ComponentHealth(name="realtime_hub")
    if hub is None or not hub.is_running:
        comp.status = HealthStatus.DEGRADED
        comp.message = "Push channel unavailable; dashboards fall back to polling"
        return comp
    comp.message = "Accepting subscribers"
    comp.details = {"subscribers": hub.active_subscribers}
    return comp


async def check_email_transport(transport: Optional["EmailTransport"]) -> ComponentHealth:
    comp = ComponentHealth(name="email_transport")
    if transport is None:
        comp.status = HealthStatus.DEGRADED
        comp.message = "No email transport configured"
        return comp
    comp.details = {"provider": transport.provider}
    if transport.provider == "simulation":
        comp.status = HealthStatus.DEGRADED if settings.is_production else HealthStatus.HEALTHY
        comp.message = "Simulated delivery, no email leaves the process"
    else:
        comp.message = "Configured"
    return comp


async def run_health_check(
    database: Optional["Database"] = None,
    hub: Optional["RealtimeHub"] = None,
    transport: Optional["EmailTransport"] = None,
) -> HealthReport:
    """Run all health checks and aggregate into a report."""
    report = HealthReport(
        timestamp=datetime.now(timezone.utc).isoformat(),
        uptime_seconds=time.monotonic() - _start_time,
    )

    checks = [
        check_database(database),
        check_realtime_hub(hub),
        check_email_transport(transport),
    ]

    for coro in checks:
        comp = await coro
        report.components.append(comp)

    statuses = [c.status for c in report.components]
    if HealthStatus.UNHEALTHY in statuses:
        report.status = HealthStatus.UNHEALTHY
    elif HealthStatus.DEGRADED in statuses:
        report.status = HealthStatus.DEGRADED
    else:
        report.status = HealthStatus.HEALTHY

    return report
