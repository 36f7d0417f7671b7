"""
Outbound email.

Senders never raise for delivery problems: every outcome comes back as an
EmailResult so a bulk loop can tally it and keep going. Each attempt can be
recorded in the ``emailLogs`` collection through EmailLogWriter.
"""

from __future__ import annotations

import html
import logging
from dataclasses import dataclass
from typing import Optional, Protocol, runtime_checkable

import httpx

from ..config import EmailConfig
from ..models import EmailStatus
from ..repository import EntityRepository

logger = logging.getLogger(__name__)


@dataclass
class EmailMessage:
    """One message to one recipient."""

    email: str
    name: str
    subject: str
    body: str
    user_id: Optional[str] = None


@dataclass
class EmailResult:
    success: bool
    error: Optional[str] = None
    message_id: Optional[str] = None


@runtime_checkable
class EmailSender(Protocol):
    """Delivers one message. Must report failures, not raise them."""

    async def send(self, message: EmailMessage) -> EmailResult: ...


def render_html(message: EmailMessage, app_name: str = "Diaspora Connect") -> str:
    """Wrap a plain-text body in a minimal HTML letter."""
    body = "<br />".join(html.escape(line) for line in message.body.split("\n"))
    return (
        "<!DOCTYPE html>"
        f"<html><head><meta charset=\"UTF-8\" /><title>{html.escape(message.subject)}</title></head>"
        "<body>"
        f"<p>Dear <strong>{html.escape(message.name)}</strong>,</p>"
        f"<div>{body}</div>"
        f"<p>Warm regards,<br /><strong>{html.escape(app_name)}</strong></p>"
        "</body></html>"
    )


class HttpEmailSender:
    """Sends email through a Resend-compatible REST endpoint.

    Example:
        >>> sender = HttpEmailSender(EmailConfig(api_key="re_..."))
        >>> result = await sender.send(EmailMessage("a@b.com", "Ada", "Hi", "Hello"))
    """

    def __init__(
        self,
        config: EmailConfig,
        client: Optional[httpx.AsyncClient] = None,
    ) -> None:
        self.config = config
        self._client = client

    async def send(self, message: EmailMessage) -> EmailResult:
        if not self.config.api_key:
            logger.warning("Email API key is not configured, skipping send")
            return EmailResult(success=False, error="RESEND_API_KEY not configured")

        payload = {
            "from": self.config.from_address,
            "to": [message.email],
            "subject": message.subject,
            "html": render_html(message),
        }
        headers = {"Authorization": f"Bearer {self.config.api_key}"}

        try:
            if self._client is not None:
                response = await self._post(self._client, payload, headers)
            else:
                async with httpx.AsyncClient() as client:
                    response = await self._post(client, payload, headers)
        except httpx.HTTPError as e:
            logger.warning(
                "Email delivery error",
                extra={"to": message.email, "error": str(e)},
            )
            return EmailResult(success=False, error=str(e))

        if response.status_code >= 300:
            logger.warning(
                "Email delivery failed",
                extra={"to": message.email, "status_code": response.status_code},
            )
            return EmailResult(
                success=False,
                error=f"HTTP {response.status_code}: {response.text}",
            )

        message_id = None
        try:
            message_id = response.json().get("id")
        except ValueError:
            pass

        logger.info("Email sent", extra={"to": message.email, "message_id": message_id})
        return EmailResult(success=True, message_id=message_id)

    async def _post(
        self, client: httpx.AsyncClient, payload: dict, headers: dict
    ) -> httpx.Response:
        return await client.post(
            self.config.api_url,
            json=payload,
            headers=headers,
            timeout=self.config.timeout_seconds,
        )


class EmailLogWriter:
    """Records delivery attempts in the email log collection."""

    def __init__(self, logs: EntityRepository) -> None:
        self.logs = logs

    async def record(self, kind: str, message: EmailMessage, result: EmailResult) -> Optional[str]:
        """Write one log entry. Failures are logged, never raised."""
        fields = {
            "type": kind,
            "to": message.email,
            "name": message.name,
            "subject": message.subject,
            "status": (EmailStatus.SENT if result.success else EmailStatus.FAILED).value,
            "error": None if result.success else (result.error or "Unknown error"),
            "userId": message.user_id,
            "messageId": result.message_id,
        }
        try:
            return await self.logs.create(fields)
        except Exception as e:
            logger.error(
                "Failed to log email",
                extra={"to": message.email, "error": str(e)},
            )
            return None
