"""
Pydantic schemas for the alert API.

Separated from the route handlers so they are reusable across the codebase
(SSE handlers, tests). Request models only shape the payload; field-level
rules (lengths, districts, severity tokens) are enforced by
``backend.app.alerts.validation`` so every caller gets the same 400s.

Request bodies accept snake_case, camelCase and the legacy field names
(``alertType``, ``disLocation``, ``adminName``).
"""

from __future__ import annotations

from typing import Any, Dict, List, Optional

from pydantic import AliasChoices, BaseModel, ConfigDict, Field


# ---------------------------------------------------------------------------
# Request schemas
# ---------------------------------------------------------------------------

class _AlertFields(BaseModel):
    model_config = ConfigDict(extra="ignore", str_strip_whitespace=True)

    severity_level: Optional[str] = Field(
        None,
        validation_alias=AliasChoices("severity_level", "severityLevel", "alertType"),
        description="critical | informational (legacy: red | green)",
        examples=["critical"],
    )
    topic: Optional[str] = Field(None, examples=["Flood Warning"])
    message: Optional[str] = Field(
        None, examples=["Kelani river above flood level. Move to higher ground."],
    )
    district: Optional[str] = Field(None, examples=["Colombo"])
    disaster_location: Optional[str] = Field(
        None,
        validation_alias=AliasChoices("disaster_location", "disasterLocation", "disLocation"),
        examples=["Kaduwela"],
    )
    author_role: Optional[str] = Field(
        None,
        validation_alias=AliasChoices("author_role", "authorRole", "adminName"),
        examples=["Disaster Management Officer"],
    )

    def fields(self) -> Dict[str, Any]:
        return self.model_dump(exclude_unset=True)


class AlertCreateRequest(_AlertFields):
    """Request body for POST /api/v1/alerts."""


class AlertUpdateRequest(_AlertFields):
    """Request body for PUT /api/v1/alerts/{alert_id}. Only sent fields change."""


# ---------------------------------------------------------------------------
# Response schemas
# ---------------------------------------------------------------------------

class AlertOut(BaseModel):
    id: str
    severity_level: str
    topic: str
    message: str
    district: str
    disaster_location: str
    author_role: str
    created_at: str
    updated_at: str


class RecentAlertOut(BaseModel):
    id: str
    topic: str
    severity_level: str
    district: str
    author_role: str
    created_at: str


class CreateAlertResponse(BaseModel):
    alert: AlertOut
    attempted: int = Field(..., description="Recipients a delivery was attempted for")
    delivered: int = Field(..., description="Recipients the transport accepted")
    scope_label: str = Field(..., examples=["all", "district:Kandy"])


class UpdateAlertResponse(BaseModel):
    alert: AlertOut
    scope_label: str


class DeleteAlertResponse(BaseModel):
    deleted_id: str


class AlertListResponse(BaseModel):
    items: List[AlertOut]
    total: int
    page: int
    pages: int


class MetricsOut(BaseModel):
    total: int
    critical_count: int
    informational_count: int
    last_24h_count: int
    active_recipient_count: int


class DashboardResponse(BaseModel):
    """Shared by the pull endpoint and every pushed SSE snapshot."""
    metrics: MetricsOut
    alerts: List[RecentAlertOut]


class ReportFiltersOut(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    from_: Optional[str] = Field(None, alias="from")
    to: Optional[str] = None
    severity: str = "all"
    district: str = "all"


class ReportResponse(BaseModel):
    items: List[AlertOut]
    total: int
    critical_count: int
    informational_count: int
    filters: ReportFiltersOut
