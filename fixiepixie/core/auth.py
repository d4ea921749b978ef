from fastapi import HTTPException, Depends, Header, status
from typing import Optional
from jose import JWTError, jwt
import logging

from fixiepixie.core.settings import Settings, get_settings
from fixiepixie.models.report_model import ReporterIdentity

logger = logging.getLogger(__name__)


def decode_identity(token: str, settings: Settings) -> ReporterIdentity:
    """
    Decode a session token issued by the auth service.
    Claims: sub, email, name. ``sub`` is used when ``email`` is missing.
    """
    payload = jwt.decode(token, settings.jwt_secret, algorithms=[settings.jwt_algorithm])
    email = payload.get("email") or payload.get("sub")
    if not email or not isinstance(email, str):
        raise JWTError("token carries no email")
    name = payload.get("name")
    return ReporterIdentity(email=email, name=name if isinstance(name, str) else None)


async def get_optional_identity(
    authorization: Optional[str] = Header(None),
    settings: Settings = Depends(get_settings),
) -> Optional[ReporterIdentity]:
    """
    Anonymous reports are allowed, so a missing header is not an error.
    A header that is present but invalid is.
    """
    if not authorization:
        return None

    if not authorization.startswith("Bearer "):
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Could not validate credentials",
            headers={"WWW-Authenticate": "Bearer"},
        )

    token = authorization.split(" ", 1)[1].strip()
    try:
        return decode_identity(token, settings)
    except JWTError as e:
        logger.warning(f"Rejected session token: {e}")
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Could not validate credentials",
            headers={"WWW-Authenticate": "Bearer"},
        )
