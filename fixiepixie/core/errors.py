"""
Error taxonomy for the report-to-delivery pipeline.

Every error carries a short human-readable ``detail``. Routes decide the HTTP
status; the pipeline decides which errors are recovered locally.
"""

from typing import Optional

MAX_DETAIL_LENGTH = 300


def truncate_detail(text: Optional[str], limit: int = MAX_DETAIL_LENGTH) -> str:
    """Collapse whitespace and clip provider text to ``limit`` characters."""
    if not text:
        return ""
    flat = " ".join(str(text).split())
    if len(flat) <= limit:
        return flat
    return flat[: limit - 3] + "..."


class ReportError(Exception):
    """Base class for every error raised by the pipeline."""

    def __init__(self, detail: str = ""):
        super().__init__(detail)
        self.detail = detail

    def __str__(self) -> str:
        return self.detail or self.__class__.__name__


# --- submission ---

class InvalidSubmission(ReportError):
    """Missing coordinate, empty category or unusable form input."""


class NoRecipient(ReportError):
    """The resolved contact record has no usable email address."""


# --- geocoding (always recovered by the router) ---

class GeocodeError(ReportError):
    pass


class GeocodeUnavailable(GeocodeError):
    """Service unreachable or returned a non-success status."""


class GeocodeMalformed(GeocodeError):
    """Response body is not an address object."""


# --- contact directory (startup only) ---

class ContactDirectoryError(ReportError):
    """Directory file missing, unreadable or without a Default entry."""


# --- delivery ---

class DeliveryError(ReportError):
    """Raised by a mail sender when a send attempt fails."""


class DeliveryMisconfigured(DeliveryError):
    """Required SMTP settings are absent."""


class SmtpDeliveryFailed(DeliveryError):
    """SMTP connection, authentication or submission failed."""


class DelegationDenied(DeliveryError):
    """The reporter refused the mailbox grant or it timed out."""


class MailboxSendRejected(DeliveryError):
    """The mailbox provider returned a non-success response."""

    def __init__(self, detail: str = "", status_code: Optional[int] = None, body: Optional[str] = None):
        super().__init__(detail)
        self.status_code = status_code
        self.body = body
