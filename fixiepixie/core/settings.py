"""
Process-wide settings for the FixiePixie API.

Values come from the environment (optionally a ``.env`` file next to the
project root). Everything is read once and frozen; the pipeline never looks at
``os.environ`` at request time.
"""

import os
from dataclasses import dataclass, field
from functools import lru_cache
from pathlib import Path
from typing import List, Optional

from dotenv import load_dotenv

DEFAULT_CONTACTS_PATH = Path(__file__).parent.parent / "data" / "contacts.json"
NOMINATIM_REVERSE_URL = "https://nominatim.openstreetmap.org/reverse"
GMAIL_SEND_URL = "https://gmail.googleapis.com/gmail/v1/users/me/messages/send"


def _get_bool(name: str, default: bool = False) -> bool:
    raw = os.getenv(name)
    if raw is None:
        return default
    return raw.strip().lower() in ("1", "true", "yes", "on")


def _get_float(name: str, default: float) -> float:
    raw = os.getenv(name)
    if not raw:
        return default
    try:
        return float(raw)
    except ValueError:
        return default


def _get_int(name: str, default: int) -> int:
    raw = os.getenv(name)
    if not raw:
        return default
    try:
        return int(raw)
    except ValueError:
        return default


def _get_str(name: str) -> Optional[str]:
    raw = os.getenv(name)
    if raw is None or not raw.strip():
        return None
    return raw.strip()


@dataclass(frozen=True)
class GeocoderSettings:
    url: str = NOMINATIM_REVERSE_URL
    user_agent: str = "FixiePixie/0.1"
    timeout: float = 3.0


@dataclass(frozen=True)
class SmtpSettings:
    """
    SMTP account for server-mediated delivery.

    host/user/password may be None until a send is attempted; ``missing()``
    names the variables a send would still need.
    """
    host: Optional[str] = None
    port: int = 587
    user: Optional[str] = None
    password: Optional[str] = None
    sender_name: str = "FixiePixie"
    sender_email: Optional[str] = None
    bcc: Optional[str] = None
    timeout: float = 15.0
    dry_run: bool = False

    def missing(self) -> List[str]:
        return [
            name
            for name, value in (("SMTP_HOST", self.host), ("SMTP_USER", self.user), ("SMTP_PASS", self.password))
            if not value
        ]


@dataclass(frozen=True)
class MailboxSettings:
    send_url: str = GMAIL_SEND_URL
    timeout: float = 15.0
    delegation_timeout: float = 60.0


@dataclass(frozen=True)
class Settings:
    app_name: str = "FixiePixie"
    env: str = "development"
    contacts_path: Path = DEFAULT_CONTACTS_PATH
    jwt_secret: str = "dev-secret-change-me"
    jwt_algorithm: str = "HS256"
    max_photo_bytes: int = 8 * 1024 * 1024
    geocoder: GeocoderSettings = field(default_factory=GeocoderSettings)
    smtp: SmtpSettings = field(default_factory=SmtpSettings)
    mailbox: MailboxSettings = field(default_factory=MailboxSettings)

    @classmethod
    def from_env(cls) -> "Settings":
        app_name = _get_str("APP_NAME") or "FixiePixie"
        smtp_user = _get_str("SMTP_USER")
        return cls(
            app_name=app_name,
            env=(_get_str("ENV") or "development").lower(),
            contacts_path=Path(_get_str("CONTACTS_PATH") or DEFAULT_CONTACTS_PATH),
            jwt_secret=_get_str("JWT_SECRET") or "dev-secret-change-me",
            jwt_algorithm=_get_str("JWT_ALGORITHM") or "HS256",
            max_photo_bytes=_get_int("MAX_PHOTO_BYTES", 8 * 1024 * 1024),
            geocoder=GeocoderSettings(
                url=_get_str("GEOCODER_URL") or NOMINATIM_REVERSE_URL,
                user_agent=_get_str("GEOCODER_USER_AGENT") or "FixiePixie/0.1",
                timeout=_get_float("GEOCODER_TIMEOUT", 3.0),
            ),
            smtp=SmtpSettings(
                host=_get_str("SMTP_HOST"),
                port=_get_int("SMTP_PORT", 587),
                user=smtp_user,
                password=_get_str("SMTP_PASS"),
                sender_name=_get_str("SENDER_NAME") or app_name,
                sender_email=_get_str("SENDER_EMAIL") or smtp_user,
                bcc=_get_str("BCC_EMAIL"),
                timeout=_get_float("SMTP_TIMEOUT", 15.0),
                dry_run=_get_bool("EMAIL_DRY_RUN"),
            ),
            mailbox=MailboxSettings(
                send_url=_get_str("GMAIL_SEND_URL") or GMAIL_SEND_URL,
                timeout=_get_float("MAILBOX_TIMEOUT", 15.0),
                delegation_timeout=_get_float("DELEGATION_TIMEOUT", 60.0),
            ),
        )


@lru_cache()
def get_settings() -> Settings:
    """Load ``.env`` and build the settings object once per process."""
    load_dotenv()
    return Settings.from_env()
