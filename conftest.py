"""Shared fixtures for the report pipeline tests."""

from typing import List, Optional, Sequence

import pytest

from fixiepixie.core.errors import DeliveryError, GeocodeUnavailable
from fixiepixie.core.settings import Settings
from fixiepixie.models.report_model import (
    ComposedMessage,
    Coordinate,
    DeliveryOutcome,
    DeliveryStatus,
    GeoDescriptor,
    ReportSubmission,
)
from fixiepixie.services.authority_service import ContactDirectory
from fixiepixie.services.mail_sender import MailSender


class FakeGeocoder:
    def __init__(self, result: Optional[GeoDescriptor] = None, error: Optional[Exception] = None):
        self.result = result
        self.error = error
        self.calls: List[Coordinate] = []

    async def reverse_geocode(self, coordinate: Coordinate) -> GeoDescriptor:
        self.calls.append(coordinate)
        if self.error is not None:
            raise self.error
        return self.result or GeoDescriptor()


class FakeSender(MailSender):
    def __init__(self, name: str, error: Optional[DeliveryError] = None, message_id: str = "msg-1"):
        self.name = name
        self.error = error
        self.message_id = message_id
        self.sent: List[tuple] = []

    async def send(self, message: ComposedMessage, recipients: Sequence[str]) -> DeliveryOutcome:
        self.sent.append((message, list(recipients)))
        if self.error is not None:
            raise self.error
        return DeliveryOutcome(
            status=DeliveryStatus.SENT,
            message_id=self.message_id,
            recipients=list(recipients),
            backend=self.name,
        )


@pytest.fixture
def settings():
    return Settings(app_name="FixiePixie")


@pytest.fixture
def directory():
    return ContactDirectory({
        "Dallas": {"emails": ["publicworks@dallas.example"]},
        "Austin": {"emails": ["311@austin.example", "", "transportation@austin.example"]},
        "Nowhere": {"emails": []},
        "Default": {"emails": ["reports@fixiepixie.example"]},
    })


@pytest.fixture
def dallas_geo():
    return GeoDescriptor(
        postal_code="75201",
        city="Dallas",
        state="Texas",
        display_address="1500 Marilla St, Dallas, Texas 75201, United States",
    )


@pytest.fixture
def pothole():
    return ReportSubmission(
        coordinate=Coordinate(latitude=32.78, longitude=-96.80),
        category="Pothole",
        note="",
    )


@pytest.fixture
def failing_geocoder():
    return FakeGeocoder(error=GeocodeUnavailable("reverse geocode returned HTTP 503"))
