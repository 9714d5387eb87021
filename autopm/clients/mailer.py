# autopm/clients/mailer.py
from __future__ import annotations

import base64
import logging
from email.message import EmailMessage
from typing import Optional, Protocol

import httpx

from autopm.config import settings

log = logging.getLogger(__name__)


class Mailer(Protocol):
    async def send(self, recipient: str, subject: str, body: str) -> None:
        """Deliver one message; raises on failure."""
        ...


def encode_message(recipient: str, subject: str, body: str) -> str:
    """RFC 2822 message, base64url-encoded without padding (Gmail `raw` format)."""
    msg = EmailMessage()
    msg["To"] = recipient
    msg["Subject"] = subject
    msg.set_content(body)
    return base64.urlsafe_b64encode(msg.as_bytes()).decode("ascii").rstrip("=")


class GmailMailer:
    def __init__(
        self,
        access_token: str,
        *,
        base_url: Optional[str] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.access_token = access_token
        self.base_url = (base_url or settings.GMAIL_API_URL).rstrip("/")
        self._transport = transport

    async def send(self, recipient: str, subject: str, body: str) -> None:
        headers = {"Authorization": f"Bearer {self.access_token}", "Accept": "application/json"}
        url = f"{self.base_url}/users/me/messages/send"
        async with httpx.AsyncClient(
            timeout=settings.REQUEST_TIMEOUT_S, headers=headers, transport=self._transport
        ) as client:
            r = await client.post(url, json={"raw": encode_message(recipient, subject, body)})
            if r.is_error:
                raise httpx.HTTPStatusError(f"{r.status_code}: {r.text}", request=r.request, response=r)
        log.info("mail.sent", extra={"recipient": recipient})
