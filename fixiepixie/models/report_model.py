from pydantic import BaseModel, Field
from typing import Optional, Tuple, List
from enum import Enum


class Coordinate(BaseModel):
    latitude: float
    longitude: float

    class Config:
        frozen = True


class GeoDescriptor(BaseModel):
    postal_code: str = ""
    city: str = ""
    state: str = ""
    display_address: str = ""

    class Config:
        frozen = True

    @classmethod
    def empty(cls) -> "GeoDescriptor":
        return cls()


class ContactRecord(BaseModel):
    emails: Tuple[str, ...] = ()

    class Config:
        frozen = True


class PhotoAttachment(BaseModel):
    content: bytes
    mime_type: Optional[str] = None
    filename: Optional[str] = None


class ReporterIdentity(BaseModel):
    """Authenticated submitter, decoded from the session token."""
    email: str
    name: Optional[str] = None


class ReportSubmission(BaseModel):
    coordinate: Optional[Coordinate] = None
    category: str = ""
    note: str = ""
    reporter_name: str = "Anonymous"
    reporter_email: str = ""
    photo: Optional[PhotoAttachment] = None


class Attachment(BaseModel):
    content: bytes
    mime_type: str = "image/jpeg"
    filename: str = "report.jpg"

    class Config:
        frozen = True


class ComposedMessage(BaseModel):
    subject: str
    plain_body: str
    html_body: str
    attachment: Optional[Attachment] = None

    class Config:
        frozen = True


class DeliveryStatus(str, Enum):
    SENT = "sent"
    FAILED = "failed"


class DeliveryOutcome(BaseModel):
    status: DeliveryStatus
    message_id: Optional[str] = None
    recipients: List[str] = Field(default_factory=list)
    error_detail: Optional[str] = None
    backend: Optional[str] = None  # sender that delivered, if any
    attempts: List[str] = Field(default_factory=list)

    @property
    def sent(self) -> bool:
        return self.status == DeliveryStatus.SENT
