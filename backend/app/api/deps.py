"""
Request-scoped accessors for the components built in the application lifespan.

Handlers never import singletons; they receive the instances stored on
``app.state`` by ``create_app``.
"""

from __future__ import annotations

from fastapi import Request

from backend.app.alerts.realtime import RealtimeHub
from backend.app.alerts.reports import ReportQueryEngine
from backend.app.alerts.service import AlertService
from backend.app.alerts.snapshot import SnapshotAggregator
from backend.app.core.config import Settings


def get_settings_dep(request: Request) -> Settings:
    return request.app.state.settings


def get_alert_service(request: Request) -> AlertService:
    return request.app.state.alert_service


def get_aggregator(request: Request) -> SnapshotAggregator:
    return request.app.state.aggregator


def get_hub(request: Request) -> RealtimeHub:
    return request.app.state.hub


def get_report_engine(request: Request) -> ReportQueryEngine:
    return request.app.state.report_engine
