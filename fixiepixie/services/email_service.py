import asyncio
import logging
import smtplib
import ssl
from email.message import EmailMessage
from email.utils import formataddr, make_msgid
from typing import List, Sequence

from fixiepixie.core.errors import DeliveryMisconfigured, SmtpDeliveryFailed, truncate_detail
from fixiepixie.core.settings import SmtpSettings
from fixiepixie.models.report_model import ComposedMessage, DeliveryOutcome, DeliveryStatus
from fixiepixie.services.mail_sender import MailSender

logger = logging.getLogger(__name__)

IMPLICIT_TLS_PORT = 465


def build_email_message(
    message: ComposedMessage,
    recipients: Sequence[str],
    sender: str,
    message_id: str,
) -> EmailMessage:
    """plain + html alternative, photo as a regular attachment."""
    msg = EmailMessage()
    msg["From"] = sender
    msg["To"] = ", ".join(recipients)
    msg["Subject"] = message.subject
    msg["Message-ID"] = message_id
    msg.set_content(message.plain_body)
    msg.add_alternative(message.html_body, subtype="html")

    if message.attachment is not None:
        maintype, _, subtype = message.attachment.mime_type.partition("/")
        msg.add_attachment(
            message.attachment.content,
            maintype=maintype or "application",
            subtype=subtype or "octet-stream",
            filename=message.attachment.filename,
        )
    return msg


class SmtpMailSender(MailSender):
    """Sends on behalf of the service through the configured SMTP account."""

    name = "smtp"

    def __init__(self, settings: SmtpSettings):
        self.settings = settings

    def _check_config(self):
        missing = self.settings.missing()
        if missing:
            raise DeliveryMisconfigured(f"SMTP not configured. Missing: {', '.join(missing)}")

    def _envelope(self, recipients: Sequence[str]) -> List[str]:
        to_addrs = list(recipients)
        if self.settings.bcc and self.settings.bcc not in to_addrs:
            to_addrs.append(self.settings.bcc)
        return to_addrs

    def _deliver(self, msg: EmailMessage, from_addr: str, to_addrs: List[str]):
        s = self.settings
        context = ssl.create_default_context()
        if s.port == IMPLICIT_TLS_PORT:
            server = smtplib.SMTP_SSL(s.host, s.port, timeout=s.timeout, context=context)
        else:
            server = smtplib.SMTP(s.host, s.port, timeout=s.timeout)
        try:
            if s.port != IMPLICIT_TLS_PORT:
                server.ehlo()
                if server.has_extn("starttls"):
                    server.starttls(context=context)
                    server.ehlo()
            server.login(s.user, s.password)
            refused = server.send_message(msg, from_addr=from_addr, to_addrs=to_addrs)
        except Exception:
            server.close()
            raise

        # accepted from here on; QUIT errors are only logged
        try:
            server.quit()
        except (smtplib.SMTPException, OSError) as e:
            logger.warning(f"⚠️ SMTP session did not close cleanly after acceptance: {e}")
            server.close()
        if refused:
            logger.warning(f"⚠️ SMTP server refused some recipients: {sorted(refused)}")

    async def send(self, message: ComposedMessage, recipients: Sequence[str]) -> DeliveryOutcome:
        self._check_config()

        sender_email = self.settings.sender_email or self.settings.user
        domain = sender_email.rpartition("@")[2] or None
        message_id = make_msgid(domain=domain)
        msg = build_email_message(
            message,
            recipients,
            sender=formataddr((self.settings.sender_name, sender_email)),
            message_id=message_id,
        )
        to_addrs = self._envelope(recipients)

        if self.settings.dry_run:
            logger.info(f"🧪 Email dry-run enabled. Would send to {to_addrs} subject='{message.subject}'.")
        else:
            logger.info(f"📤 Sending email via SMTP {self.settings.host}:{self.settings.port} to {list(recipients)}")
            try:
                await asyncio.to_thread(self._deliver, msg, sender_email, to_addrs)
            except (smtplib.SMTPException, OSError) as e:
                raise SmtpDeliveryFailed(truncate_detail(f"SMTP send failed: {e}")) from e
            logger.info(f"✅ SMTP accepted message {message_id}")

        return DeliveryOutcome(
            status=DeliveryStatus.SENT,
            message_id=message_id,
            recipients=list(recipients),
            backend=self.name,
        )
