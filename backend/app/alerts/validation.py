"""
validation.py — Enforce the alert invariants before anything is persisted.

Every persisted alert has a canonical severity, a known district, a known
author role and non-empty topic / message / location. Create requests must
satisfy all of it; update patches are checked field by field.
"""

from __future__ import annotations

from typing import Any, Dict, Mapping

from backend.app.alerts.models import (
    AUTHOR_ROLES,
    DEFAULT_AUTHOR_ROLE,
    Severity,
    canonical_author_role,
    canonical_district,
    normalize_severity,
)
from backend.app.core.errors import ValidationError

TOPIC_MAX_LENGTH = 140
MESSAGE_MAX_LENGTH = 2000
LOCATION_MIN_LENGTH = 2
LOCATION_MAX_LENGTH = 120

PATCHABLE_FIELDS = (
    "severity_level", "topic", "message", "district",
    "disaster_location", "author_role",
)


def _text(value: Any) -> str:
    if value is None:
        return ""
    if not isinstance(value, str):
        value = str(value)
    return value.strip()


def _check_topic(value: Any) -> str:
    topic = _text(value)
    if not topic:
        raise ValidationError("Topic is required.", field="topic")
    if len(topic) > TOPIC_MAX_LENGTH:
        raise ValidationError(
            f"Topic must be at most {TOPIC_MAX_LENGTH} characters.", field="topic",
        )
    return topic


def _check_message(value: Any) -> str:
    message = _text(value)
    if not message:
        raise ValidationError("Message is required.", field="message")
    if len(message) > MESSAGE_MAX_LENGTH:
        raise ValidationError(
            f"Message must be at most {MESSAGE_MAX_LENGTH} characters.", field="message",
        )
    return message


def _check_district(value: Any) -> str:
    if not _text(value):
        raise ValidationError("District is required.", field="district")
    district = canonical_district(value)
    if district is None:
        raise ValidationError(
            f"Unknown district '{_text(value)}'.", field="district",
        )
    return district


def _check_location(value: Any) -> str:
    location = _text(value)
    if not location:
        raise ValidationError("Disaster location is required.", field="disaster_location")
    if not LOCATION_MIN_LENGTH <= len(location) <= LOCATION_MAX_LENGTH:
        raise ValidationError(
            f"Disaster location must be {LOCATION_MIN_LENGTH}-{LOCATION_MAX_LENGTH} characters.",
            field="disaster_location",
        )
    return location


def _check_severity(value: Any) -> Severity:
    try:
        return normalize_severity(value)
    except ValueError as exc:
        raise ValidationError(str(exc), field="severity_level") from None


def _check_author_role(value: Any) -> str:
    role = canonical_author_role(value)
    if role is None:
        raise ValidationError(
            f"Unknown author role '{_text(value)}'. Use one of: {', '.join(AUTHOR_ROLES)}",
            field="author_role",
        )
    return role


_CHECKS = {
    "severity_level": _check_severity,
    "topic": _check_topic,
    "message": _check_message,
    "district": _check_district,
    "disaster_location": _check_location,
    "author_role": _check_author_role,
}


def validate_new_alert(data: Mapping[str, Any]) -> Dict[str, Any]:
    """
    Validate and normalise a create request.

    Missing severity defaults to informational and a missing author role to
    ``System Admin``. Required text fields are trimmed.

    Returns
    -------
    dict
        Field values ready for ``AlertRepository.create``.

    Raises
    ------
    ValidationError
        On the first field that violates the alert invariants.
    """
    severity = data.get("severity_level")
    role = data.get("author_role")
    return {
        "topic": _check_topic(data.get("topic")),
        "message": _check_message(data.get("message")),
        "district": _check_district(data.get("district")),
        "disaster_location": _check_location(data.get("disaster_location")),
        "severity_level": (
            _check_severity(severity) if _text(severity) else Severity.INFORMATIONAL
        ),
        "author_role": _check_author_role(role) if _text(role) else DEFAULT_AUTHOR_ROLE,
    }


def validate_alert_patch(patch: Mapping[str, Any]) -> Dict[str, Any]:
    """
    Validate a partial update. Only fields present (and not None) are checked.

    An empty patch is rejected: an update must change something.
    """
    cleaned: Dict[str, Any] = {}
    for name in PATCHABLE_FIELDS:
        if name in patch and patch[name] is not None:
            cleaned[name] = _CHECKS[name](patch[name])
    if not cleaned:
        raise ValidationError(
            "No updatable fields supplied.",
            allowed=list(PATCHABLE_FIELDS),
        )
    return cleaned
