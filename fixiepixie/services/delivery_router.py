"""
Report delivery pipeline.

Per submission:
    validate -> reverse geocode -> resolve contact -> compose
    -> primary sender -> (on failure) the other sender, once -> outcome

The mailbox sender is primary only when the reporter is authenticated and
handed over a delegation grant; otherwise SMTP goes first. Both attempts get
the same ComposedMessage object and the same contact-resolved recipients.
"""

import logging
from typing import Callable, List, Optional, Tuple

from fixiepixie.core.errors import (
    DeliveryError,
    DeliveryMisconfigured,
    GeocodeError,
    InvalidSubmission,
    NoRecipient,
    truncate_detail,
)
from fixiepixie.core.settings import Settings
from fixiepixie.models.report_model import (
    ComposedMessage,
    DeliveryOutcome,
    DeliveryStatus,
    GeoDescriptor,
    ReporterIdentity,
    ReportSubmission,
)
from fixiepixie.services.authority_service import ContactDirectory
from fixiepixie.services.email_service import SmtpMailSender
from fixiepixie.services.geocode_service import NominatimGeocoder
from fixiepixie.services.mail_sender import MailSender
from fixiepixie.services.mailbox_service import DelegationGrant, GmailMailboxSender
from fixiepixie.services.message_composer import MessageComposer

logger = logging.getLogger(__name__)

MailboxSenderFactory = Callable[[Optional[DelegationGrant]], MailSender]


def validate_submission(submission: ReportSubmission):
    coordinate = submission.coordinate
    if coordinate is None:
        raise InvalidSubmission("coordinate is required")
    if not submission.category or not submission.category.strip():
        raise InvalidSubmission("category is required")


def apply_identity(submission: ReportSubmission, identity: Optional[ReporterIdentity]) -> ReportSubmission:
    """Fill reporter name/email from the authenticated identity."""
    if identity is None:
        return submission
    update = {"reporter_email": identity.email}
    if identity.name:
        update["reporter_name"] = identity.name
    return submission.model_copy(update=update)


class DeliveryRouter:
    def __init__(
        self,
        settings: Settings,
        directory: ContactDirectory,
        geocoder: Optional[NominatimGeocoder] = None,
        composer: Optional[MessageComposer] = None,
        server_sender: Optional[MailSender] = None,
        mailbox_sender_factory: Optional[MailboxSenderFactory] = None,
    ):
        self.settings = settings
        self.directory = directory
        self.geocoder = geocoder or NominatimGeocoder(settings.geocoder)
        self.composer = composer or MessageComposer(settings.app_name)
        self.server_sender = server_sender or SmtpMailSender(settings.smtp)
        self.mailbox_sender_factory = mailbox_sender_factory or (
            lambda grant: GmailMailboxSender(settings.mailbox, grant)
        )

    async def locate(self, submission: ReportSubmission) -> GeoDescriptor:
        try:
            return await self.geocoder.reverse_geocode(submission.coordinate)
        except GeocodeError as e:
            logger.warning(f"⚠️ Reverse geocode failed ({e.__class__.__name__}: {e}), continuing without address")
            return GeoDescriptor.empty()

    def senders_for(
        self,
        identity: Optional[ReporterIdentity],
        grant: Optional[DelegationGrant],
    ) -> Tuple[MailSender, MailSender]:
        """(primary, fallback) for this submission."""
        mailbox = self.mailbox_sender_factory(grant)
        if identity is not None and grant is not None:
            return mailbox, self.server_sender
        return self.server_sender, mailbox

    async def _attempt(self, sender: MailSender, message: ComposedMessage, recipients: List[str]) -> DeliveryOutcome:
        try:
            return await sender.send(message, recipients)
        except DeliveryMisconfigured as e:
            logger.critical(f"🚨 {sender.name} sender is misconfigured: {e}")
            raise
        except DeliveryError:
            raise
        except Exception as e:
            logger.error(f"❌ Unexpected error from {sender.name} sender: {e}", exc_info=True)
            raise DeliveryError(truncate_detail(f"unexpected error: {e}")) from e

    async def submit(
        self,
        submission: ReportSubmission,
        identity: Optional[ReporterIdentity] = None,
        grant: Optional[DelegationGrant] = None,
    ) -> DeliveryOutcome:
        validate_submission(submission)
        submission = apply_identity(submission, identity)

        geo = await self.locate(submission)
        contact = self.directory.resolve(geo.city)
        recipients = list(contact.emails)
        if not recipients:
            raise NoRecipient(f"No contact email configured for '{geo.city or 'Default'}'")

        message = self.composer.compose(submission, geo)
        primary, fallback = self.senders_for(identity, grant)
        logger.info(
            f"📨 Report '{submission.category}' for city='{geo.city}' -> {recipients} "
            f"(primary={primary.name}, fallback={fallback.name})"
        )

        errors: List[Tuple[str, str]] = []
        for sender in (primary, fallback):
            try:
                outcome = await self._attempt(sender, message, recipients)
            except DeliveryError as e:
                errors.append((sender.name, truncate_detail(str(e))))
                if sender is primary:
                    logger.warning(f"⚠️ {sender.name} delivery failed ({e}); falling back to {fallback.name}")
                continue

            outcome = outcome.model_copy(update={"attempts": [name for name, _ in errors] + [sender.name]})
            logger.info(f"✅ Report delivered via {sender.name} (message_id={outcome.message_id})")
            return outcome

        tried = " then ".join(name for name, _ in errors)
        detail = "; ".join(f"{name}: {err}" for name, err in errors)
        logger.error(f"❌ Report delivery failed on all senders ({detail})")
        return DeliveryOutcome(
            status=DeliveryStatus.FAILED,
            recipients=recipients,
            error_detail=f"Delivery failed (tried {tried}). {detail}",
            attempts=[name for name, _ in errors],
        )
