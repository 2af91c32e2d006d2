"""
Operator authentication for alert mutations, using the X-API-Key header.

A request either carries one of the configured ``OPERATOR_API_KEYS`` or
it is rejected with 401 before any side effect. With no keys
configured every request is allowed (development mode).
"""

from __future__ import annotations

import hmac
import logging
from typing import Optional

from fastapi import Request, Security
from fastapi.security import APIKeyHeader

from backend.app.core.config import Settings
from backend.app.core.errors import AuthenticationError

logger = logging.getLogger(__name__)

api_key_header = APIKeyHeader(name="X-API-Key", auto_error=False)

DEV_MODE_PRINCIPAL = "dev-mode"


def check_api_key(api_key: Optional[str], config: Settings) -> str:
    """
    Validate ``api_key`` against the configured operator keys.

    Returns
    -------
    str
        The accepted key, or ``"dev-mode"`` when no keys are configured.

    Raises
    ------
    AuthenticationError
        Missing or unknown key.
    """
    valid_keys = [k.strip() for k in config.OPERATOR_API_KEYS if k and k.strip()]
    if not valid_keys:
        return DEV_MODE_PRINCIPAL

    if not api_key:
        raise AuthenticationError("Missing API key. Provide X-API-Key header.")

    if not any(hmac.compare_digest(api_key, k) for k in valid_keys):
        logger.warning("Rejected mutation with an unknown API key")
        raise AuthenticationError("Invalid API key")
    return api_key


async def require_operator(
    request: Request,
    api_key: Optional[str] = Security(api_key_header),
) -> str:
    """FastAPI dependency guarding create / update / delete."""
    return check_api_key(api_key, request.app.state.settings)
