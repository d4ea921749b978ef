"""
User-mediated delivery through the reporter's own Gmail mailbox.

The access token comes from a grant the caller obtained from the reporter
right before submitting (``gmail.send`` scope). It is awaited once per send
and dropped afterwards.
"""

import asyncio
import base64
import logging
from email import policy
from email.message import EmailMessage
from typing import Awaitable, Callable, Optional, Sequence

import requests

from fixiepixie.core.errors import DelegationDenied, MailboxSendRejected, truncate_detail
from fixiepixie.core.settings import MailboxSettings
from fixiepixie.models.report_model import ComposedMessage, DeliveryOutcome, DeliveryStatus
from fixiepixie.services.mail_sender import MailSender

logger = logging.getLogger(__name__)

DelegationGrant = Callable[[], Awaitable[str]]


def static_grant(token: Optional[str]) -> DelegationGrant:
    """Wrap a token the client already obtained into a grant coroutine."""

    async def _grant() -> str:
        if not token or not token.strip():
            raise DelegationDenied("Mailbox access was not granted")
        return token.strip()

    return _grant


def build_raw_message(message: ComposedMessage, recipients: Sequence[str]) -> bytes:
    """
    multipart/mixed with one text/html part and the optional photo, base64
    wrapped at 76 columns, CRLF line endings.
    """
    msg = EmailMessage(policy=policy.SMTP)
    msg["To"] = ", ".join(recipients)
    msg["Subject"] = message.subject
    msg.set_content(message.html_body, subtype="html", charset="utf-8")
    msg.make_mixed()

    if message.attachment is not None:
        maintype, _, subtype = message.attachment.mime_type.partition("/")
        msg.add_attachment(
            message.attachment.content,
            maintype=maintype or "application",
            subtype=subtype or "octet-stream",
            filename=message.attachment.filename,
        )
    return msg.as_bytes()


def encode_raw(raw: bytes) -> str:
    return base64.urlsafe_b64encode(raw).decode("ascii").rstrip("=")


class GmailMailboxSender(MailSender):
    name = "mailbox"

    def __init__(self, settings: MailboxSettings, grant: Optional[DelegationGrant] = None):
        self.settings = settings
        self.grant = grant

    async def _obtain_token(self) -> str:
        if self.grant is None:
            raise DelegationDenied("No mailbox delegation available for this submission")
        try:
            token = await asyncio.wait_for(self.grant(), timeout=self.settings.delegation_timeout)
        except asyncio.TimeoutError as e:
            raise DelegationDenied("Mailbox delegation timed out") from e
        except DelegationDenied:
            raise
        except Exception as e:
            raise DelegationDenied(truncate_detail(f"Mailbox delegation failed: {e}")) from e
        if not token:
            raise DelegationDenied("Mailbox access was not granted")
        return token

    def _post(self, token: str, raw: str) -> requests.Response:
        return requests.post(
            self.settings.send_url,
            headers={"Authorization": f"Bearer {token}", "Content-Type": "application/json"},
            json={"raw": raw},
            timeout=self.settings.timeout,
        )

    async def send(self, message: ComposedMessage, recipients: Sequence[str]) -> DeliveryOutcome:
        token = await self._obtain_token()
        raw = encode_raw(build_raw_message(message, recipients))

        logger.info(f"📤 Sending email via reporter mailbox to {list(recipients)}")
        try:
            resp = await asyncio.to_thread(self._post, token, raw)
        except requests.RequestException as e:
            raise MailboxSendRejected(truncate_detail(f"Mailbox send request failed: {e}")) from e

        if not resp.ok:
            body = resp.text
            logger.warning(f"⚠️ Mailbox provider returned {resp.status_code}")
            raise MailboxSendRejected(
                truncate_detail(f"Mailbox send rejected ({resp.status_code}): {body}"),
                status_code=resp.status_code,
                body=body,
            )

        # accepted; an odd response body only costs the message id
        try:
            data = resp.json()
        except ValueError:
            data = None
        message_id = data.get("id") if isinstance(data, dict) else None
        logger.info(f"✅ Mailbox provider accepted message {message_id}")

        return DeliveryOutcome(
            status=DeliveryStatus.SENT,
            message_id=message_id,
            recipients=list(recipients),
            backend=self.name,
        )
