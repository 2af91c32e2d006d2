"""
email_alert.py — Email notification channel.

Delivery mechanism:
    • simulation — log and record the delivery, send nothing (default)
    • smtp       — stdlib smtplib in a worker thread, optional STARTTLS + login
    • http       — provider REST API (SendGrid / Mailgun style) over httpx

One ``NotificationMessage`` is rendered per alert and reused for every
recipient; transports only differ in how they hand it to the outside world.

═══════════════════════════════════════════════════════════════════════════
EMAIL TEMPLATE STRUCTURE
═══════════════════════════════════════════════════════════════════════════

    Subject: [CRITICAL] SafeZone Alert: {topic} ({district})
    Body:
        ┌─────────────────────────────────────────┐
        │  {topic}                                 │
        │  Level: {severity}                       │
        ├─────────────────────────────────────────┤
        │  District / Location                     │
        │  {message}                               │
        │                                          │
        │  Issued by {author_role} at {time}       │
        └─────────────────────────────────────────┘

All alert text is HTML-escaped before it is placed in the card.
"""

from __future__ import annotations

import asyncio
import html
import logging
import smtplib
from collections import deque
from dataclasses import dataclass, field
from email.message import EmailMessage
from typing import Any, Deque, Dict, List, Optional, Tuple

import httpx

from backend.app.alerts.models import Alert, Severity
from backend.app.core.config import Settings

logger = logging.getLogger(__name__)

# Deliveries a simulated transport remembers
SIMULATION_HISTORY = 1000

# Severity → header colour for the HTML card
_SEVERITY_COLOURS = {
    Severity.CRITICAL: "#B71C1C",
    Severity.INFORMATIONAL: "#2E7D32",
}


class DeliveryError(Exception):
    """A single message could not be handed to the email provider."""


@dataclass(frozen=True)
class NotificationMessage:
    """Rendered notification, shared by every recipient of one alert."""
    subject: str
    text: str
    html: str
    alert_id: str = ""


# ═══════════════════════════════════════════════════════════════════════════
# Rendering
# ═══════════════════════════════════════════════════════════════════════════

def _build_subject(alert: Alert) -> str:
    level = alert.severity_level.value.upper()
    return f"[{level}] SafeZone Alert: {alert.topic} ({alert.district})"


def _issued_at(alert: Alert) -> str:
    return alert.created_at.strftime("%Y-%m-%d %H:%M UTC")


def _build_html_body(alert: Alert) -> str:
    """Render the alert as a self-contained HTML card."""
    colour = _SEVERITY_COLOURS.get(alert.severity_level, "#FF9800")
    esc = html.escape

    return f"""
    <div style="font-family:Arial,sans-serif;max-width:600px;margin:auto;">
      <div style="background:{colour};color:white;padding:16px;border-radius:8px 8px 0 0;">
        <h2 style="margin:0;">{esc(alert.topic)}</h2>
        <p style="margin:4px 0 0;">Level: {esc(alert.severity_level.value.upper())}</p>
      </div>
      <div style="border:1px solid #ddd;border-top:none;padding:16px;border-radius:0 0 8px 8px;">
        <p><strong>District:</strong> {esc(alert.district)}</p>
        <p><strong>Location:</strong> {esc(alert.disaster_location)}</p>
        <p style="white-space:pre-wrap;">{esc(alert.message)}</p>
        <hr>
        <p style="color:#666;font-size:12px;">
          Issued by {esc(alert.author_role)} at {_issued_at(alert)}
        </p>
      </div>
    </div>
    """


def _build_plain_body(alert: Alert) -> str:
    return (
        f"{alert.topic}\n"
        f"Level: {alert.severity_level.value.upper()}\n\n"
        f"District: {alert.district}\n"
        f"Location: {alert.disaster_location}\n\n"
        f"{alert.message}\n\n"
        f"Issued by {alert.author_role} at {_issued_at(alert)}\n"
    )


def render_notification(alert: Alert) -> NotificationMessage:
    return NotificationMessage(
        subject=_build_subject(alert),
        text=_build_plain_body(alert),
        html=_build_html_body(alert),
        alert_id=alert.id,
    )


# ═══════════════════════════════════════════════════════════════════════════
# Transports
# ═══════════════════════════════════════════════════════════════════════════

class EmailTransport:
    """Interface for anything that can deliver one message to one address."""

    provider = "abstract"

    async def send(self, to: str, message: NotificationMessage) -> None:
        """Deliver ``message`` to ``to``. Raises on failure."""
        raise NotImplementedError

    async def close(self) -> None:
        return None


class SimulatedEmailTransport(EmailTransport):
    """
    Logs instead of sending. Keeps the last ``history`` deliveries so callers
    (tests, local dashboards) can see what would have gone out; older entries
    are discarded. ``delivered_count`` counts every send.
    """

    provider = "simulation"

    def __init__(self, history: int = SIMULATION_HISTORY) -> None:
        self._sent: Deque[Tuple[str, NotificationMessage]] = deque(maxlen=max(history, 0))
        self.delivered_count = 0

    @property
    def sent(self) -> List[Tuple[str, NotificationMessage]]:
        """Most recent deliveries, oldest first."""
        return list(self._sent)

    async def send(self, to: str, message: NotificationMessage) -> None:
        logger.info(
            "[EMAIL] Alert %s → %s: Subject='%s'",
            message.alert_id, to, message.subject,
        )
        self._sent.append((to, message))
        self.delivered_count += 1


class SmtpEmailTransport(EmailTransport):
    """Blocking smtplib session per message, run off the event loop."""

    provider = "smtp"

    def __init__(
        self,
        host: str,
        port: int = 587,
        *,
        username: Optional[str] = None,
        password: Optional[str] = None,
        use_tls: bool = True,
        from_address: str = "alerts@safezone.lk",
        timeout_seconds: float = 20.0,
    ) -> None:
        self.host = host
        self.port = port
        self.username = username
        self.password = password
        self.use_tls = use_tls
        self.from_address = from_address
        self.timeout_seconds = timeout_seconds

    def _build_mime(self, to: str, message: NotificationMessage) -> EmailMessage:
        mime = EmailMessage()
        mime["Subject"] = message.subject
        mime["From"] = self.from_address
        mime["To"] = to
        mime.set_content(message.text)
        mime.add_alternative(message.html, subtype="html")
        return mime

    def _send_blocking(self, to: str, message: NotificationMessage) -> None:
        with smtplib.SMTP(self.host, self.port, timeout=self.timeout_seconds) as server:
            if self.use_tls:
                server.starttls()
            if self.username:
                server.login(self.username, self.password or "")
            server.send_message(self._build_mime(to, message))

    async def send(self, to: str, message: NotificationMessage) -> None:
        try:
            await asyncio.to_thread(self._send_blocking, to, message)
        except (smtplib.SMTPException, OSError) as exc:
            raise DeliveryError(f"SMTP delivery to {to} failed: {exc}") from exc
        logger.info("[EMAIL/SMTP] Alert %s → %s", message.alert_id, to)


class HttpEmailTransport(EmailTransport):
    """POSTs each message to an HTTP email API with a bearer key."""

    provider = "http"

    def __init__(
        self,
        api_url: str,
        api_key: Optional[str] = None,
        *,
        from_address: str = "alerts@safezone.lk",
        timeout_seconds: float = 20.0,
        client: Optional[httpx.AsyncClient] = None,
    ) -> None:
        self.api_url = api_url
        self.api_key = api_key
        self.from_address = from_address
        self.timeout_seconds = timeout_seconds
        self._http_client = client

    async def _get_client(self) -> httpx.AsyncClient:
        """Get or create HTTP client."""
        if self._http_client is None or self._http_client.is_closed:
            self._http_client = httpx.AsyncClient(timeout=self.timeout_seconds)
        return self._http_client

    def _build_request(self, to: str, message: NotificationMessage) -> Dict[str, Any]:
        return {
            "from": self.from_address,
            "to": [to],
            "subject": message.subject,
            "text": message.text,
            "html": message.html,
        }

    async def send(self, to: str, message: NotificationMessage) -> None:
        headers = {"Authorization": f"Bearer {self.api_key}"} if self.api_key else {}
        client = await self._get_client()
        try:
            response = await client.post(
                self.api_url, json=self._build_request(to, message), headers=headers,
            )
            response.raise_for_status()
        except httpx.HTTPStatusError as exc:
            raise DeliveryError(
                f"Email API rejected {to}: HTTP {exc.response.status_code}"
            ) from exc
        except httpx.HTTPError as exc:
            raise DeliveryError(f"Email API unreachable for {to}: {exc}") from exc
        logger.info("[EMAIL/HTTP] Alert %s → %s", message.alert_id, to)

    async def close(self) -> None:
        """Close HTTP client."""
        if self._http_client and not self._http_client.is_closed:
            await self._http_client.aclose()


def build_email_transport(config: Settings) -> EmailTransport:
    """
    Select the transport named by ``EMAIL_PROVIDER``.

    Raises
    ------
    ValueError
        Unknown provider, or a provider missing its required settings.
    """
    provider = config.EMAIL_PROVIDER.strip().lower()

    if provider == "simulation":
        return SimulatedEmailTransport()

    if provider == "smtp":
        if not config.SMTP_HOST:
            raise ValueError("EMAIL_PROVIDER=smtp requires SMTP_HOST")
        return SmtpEmailTransport(
            config.SMTP_HOST,
            config.SMTP_PORT,
            username=config.SMTP_USER,
            password=config.SMTP_PASSWORD,
            use_tls=config.SMTP_USE_TLS,
            from_address=config.EMAIL_FROM,
            timeout_seconds=config.EMAIL_TIMEOUT_SECONDS,
        )

    if provider == "http":
        if not config.EMAIL_API_URL:
            raise ValueError("EMAIL_PROVIDER=http requires EMAIL_API_URL")
        return HttpEmailTransport(
            config.EMAIL_API_URL,
            config.EMAIL_API_KEY,
            from_address=config.EMAIL_FROM,
            timeout_seconds=config.EMAIL_TIMEOUT_SECONDS,
        )

    raise ValueError(f"Unknown email provider: {config.EMAIL_PROVIDER}")
