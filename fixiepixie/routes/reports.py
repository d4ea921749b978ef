from fastapi import APIRouter, Depends, File, Form, Header, HTTPException, Query, Request, UploadFile
from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field
from typing import List, Optional
import logging
import math

from fixiepixie.core.auth import get_optional_identity
from fixiepixie.core.errors import GeocodeError, InvalidSubmission, NoRecipient
from fixiepixie.core.settings import Settings, get_settings
from fixiepixie.models.report_model import (
    Coordinate,
    PhotoAttachment,
    ReporterIdentity,
    ReportSubmission,
)
from fixiepixie.services.delivery_router import DeliveryRouter
from fixiepixie.services.mailbox_service import static_grant

router = APIRouter()
logger = logging.getLogger(__name__)


class ReportResponse(BaseModel):
    status: str
    messageId: Optional[str] = None
    recipients: List[str] = Field(default_factory=list)
    backend: Optional[str] = None


class ReverseResponse(BaseModel):
    zip: str
    city: str
    state: str
    display: str


def get_delivery_router(request: Request) -> DeliveryRouter:
    return request.app.state.delivery_router


def parse_coordinate(lat: Optional[str], lon: Optional[str]) -> Optional[Coordinate]:
    """None when either value is missing, non-numeric or not finite."""
    if lat is None or lon is None:
        return None
    try:
        latitude, longitude = float(lat), float(lon)
    except (TypeError, ValueError):
        return None
    if not (math.isfinite(latitude) and math.isfinite(longitude)):
        return None
    return Coordinate(latitude=latitude, longitude=longitude)


async def read_photo(photo: Optional[UploadFile], max_bytes: int) -> Optional[PhotoAttachment]:
    if photo is None:
        return None
    # one byte past the limit is enough to detect oversize uploads
    content = await photo.read(max_bytes + 1)
    if len(content) > max_bytes:
        raise InvalidSubmission(f"photo is larger than {max_bytes} bytes")
    if not content:
        return None
    return PhotoAttachment(content=content, mime_type=photo.content_type, filename=photo.filename)


@router.post("/api/report", response_model=ReportResponse)
async def submit_report(
    lat: Optional[str] = Form(None),
    lon: Optional[str] = Form(None),
    category: str = Form(""),
    note: str = Form(""),
    reporter_name: Optional[str] = Form(None),
    reporter_email: Optional[str] = Form(None),
    photo: Optional[UploadFile] = File(None),
    x_mailbox_token: Optional[str] = Header(None),
    identity: Optional[ReporterIdentity] = Depends(get_optional_identity),
    settings: Settings = Depends(get_settings),
    delivery_router: DeliveryRouter = Depends(get_delivery_router),
):
    try:
        submission = ReportSubmission(
            coordinate=parse_coordinate(lat, lon),
            category=category.strip(),
            note=note.strip(),
            reporter_name=(reporter_name or "").strip() or "Anonymous",
            reporter_email=(reporter_email or "").strip(),
            photo=await read_photo(photo, settings.max_photo_bytes),
        )
        grant = static_grant(x_mailbox_token) if x_mailbox_token is not None else None
        outcome = await delivery_router.submit(submission, identity=identity, grant=grant)
    except InvalidSubmission as e:
        logger.warning(f"Rejected report: {e}")
        raise HTTPException(status_code=400, detail=str(e))
    except NoRecipient as e:
        logger.error(f"❌ {e}")
        raise HTTPException(status_code=500, detail=str(e))

    if not outcome.sent:
        return JSONResponse(
            status_code=500,
            content={"status": "failed", "error": outcome.error_detail, "recipients": outcome.recipients},
        )

    return ReportResponse(
        status="sent",
        messageId=outcome.message_id,
        recipients=outcome.recipients,
        backend=outcome.backend,
    )


@router.get("/reverse", response_model=ReverseResponse)
async def reverse(
    lat: Optional[str] = Query(None),
    lon: Optional[str] = Query(None),
    delivery_router: DeliveryRouter = Depends(get_delivery_router),
):
    coordinate = parse_coordinate(lat, lon)
    if coordinate is None:
        return JSONResponse(status_code=400, content={"error": "lat/lon required"})
    try:
        geo = await delivery_router.geocoder.reverse_geocode(coordinate)
    except GeocodeError as e:
        logger.error(f"reverse error: {e}")
        return JSONResponse(status_code=500, content={"error": "reverse geocode failed"})
    return ReverseResponse(zip=geo.postal_code, city=geo.city, state=geo.state, display=geo.display_address)
