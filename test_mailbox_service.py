"""
Mailbox (Gmail API) sender tests: delegation handling, raw MIME envelope,
provider error mapping.
"""

import asyncio
import base64
import email
from email import policy

import pytest
import requests

from conftest import FakeGeocoder, FakeSender
from fixiepixie.core.errors import DelegationDenied, MailboxSendRejected
from fixiepixie.core.settings import MailboxSettings
from fixiepixie.models.report_model import Attachment, ComposedMessage, DeliveryStatus, ReporterIdentity
from fixiepixie.services import mailbox_service
from fixiepixie.services.delivery_router import DeliveryRouter
from fixiepixie.services.mailbox_service import (
    GmailMailboxSender,
    build_raw_message,
    encode_raw,
    static_grant,
)

PHOTO = bytes(range(256)) * 8
IDENTITY = ReporterIdentity(email="sam@example.com", name="Sam Rivera")

MESSAGE = ComposedMessage(
    subject="[FixiePixie] Pothole — Dallas (75201)",
    plain_body="Category: Pothole\n",
    html_body="<h2>FixiePixie issue report</h2><p>Pothole</p>",
    attachment=Attachment(content=PHOTO, mime_type="image/jpeg", filename="report.jpg"),
)


class StubResponse:
    def __init__(self, status_code=200, payload=None, text=""):
        self.status_code = status_code
        self._payload = payload or {}
        self.text = text

    @property
    def ok(self):
        return 200 <= self.status_code < 300

    def json(self):
        return self._payload


def stub_post(monkeypatch, response=None, error=None):
    calls = []

    def fake_post(url, headers=None, json=None, timeout=None):
        calls.append({"url": url, "headers": headers, "json": json})
        if error is not None:
            raise error
        return response

    monkeypatch.setattr(mailbox_service.requests, "post", fake_post)
    return calls


def decode_envelope(raw: str) -> email.message.EmailMessage:
    padded = raw + "=" * (-len(raw) % 4)
    return email.message_from_bytes(base64.urlsafe_b64decode(padded), policy=policy.default)


def test_raw_message_structure():
    raw = build_raw_message(MESSAGE, ["publicworks@dallas.example", "311@dallas.example"])
    parsed = email.message_from_bytes(raw, policy=policy.default)

    assert parsed.get_content_type() == "multipart/mixed"
    assert parsed["To"] == "publicworks@dallas.example, 311@dallas.example"
    assert parsed["Subject"] == MESSAGE.subject

    parts = list(parsed.iter_parts())
    assert [p.get_content_type() for p in parts] == ["text/html", "image/jpeg"]
    assert "<h2>FixiePixie issue report</h2>" in parts[0].get_content()
    assert parts[1].get_filename() == "report.jpg"
    assert parts[1]["Content-Transfer-Encoding"] == "base64"
    assert parts[1].get_content() == PHOTO


def test_attachment_base64_is_wrapped_at_76_columns():
    raw = build_raw_message(MESSAGE, ["publicworks@dallas.example"])
    parsed = email.message_from_bytes(raw, policy=policy.default)
    encoded = parsed.get_payload()[1].get_payload()

    lines = [line for line in encoded.splitlines() if line]
    assert len(lines) > 1
    assert all(len(line) <= 76 for line in lines)
    assert len(lines[0]) == 76


def test_multipart_even_without_attachment():
    message = MESSAGE.model_copy(update={"attachment": None})
    parsed = email.message_from_bytes(build_raw_message(message, ["a@city.example"]), policy=policy.default)
    assert parsed.get_content_type() == "multipart/mixed"
    assert [p.get_content_type() for p in parsed.iter_parts()] == ["text/html"]


def test_encode_raw_is_unpadded_base64url():
    encoded = encode_raw(b"\xfb\xff\xfe subject?")
    assert "=" not in encoded
    assert "+" not in encoded and "/" not in encoded


@pytest.mark.asyncio
async def test_send_posts_raw_with_bearer(monkeypatch):
    calls = stub_post(monkeypatch, StubResponse(payload={"id": "18c2f0a9d", "threadId": "18c2f0a9d"}))
    sender = GmailMailboxSender(MailboxSettings(), static_grant("ya29.token"))

    outcome = await sender.send(MESSAGE, ["publicworks@dallas.example"])

    assert outcome.status == DeliveryStatus.SENT
    assert outcome.message_id == "18c2f0a9d"
    assert outcome.recipients == ["publicworks@dallas.example"]
    assert outcome.backend == "mailbox"
    assert calls[0]["url"] == "https://gmail.googleapis.com/gmail/v1/users/me/messages/send"
    assert calls[0]["headers"]["Authorization"] == "Bearer ya29.token"
    parsed = decode_envelope(calls[0]["json"]["raw"])
    assert parsed["Subject"] == MESSAGE.subject


@pytest.mark.asyncio
async def test_grant_is_requested_per_send(monkeypatch):
    stub_post(monkeypatch, StubResponse(payload={"id": "x"}))
    requested = []

    async def grant():
        requested.append(1)
        return "ya29.token"

    sender = GmailMailboxSender(MailboxSettings(), grant)
    await sender.send(MESSAGE, ["a@city.example"])
    await sender.send(MESSAGE, ["a@city.example"])
    assert len(requested) == 2


@pytest.mark.asyncio
async def test_no_grant_is_denied(monkeypatch):
    calls = stub_post(monkeypatch, StubResponse())
    with pytest.raises(DelegationDenied):
        await GmailMailboxSender(MailboxSettings(), None).send(MESSAGE, ["a@city.example"])
    assert calls == []


@pytest.mark.asyncio
async def test_empty_token_is_denied(monkeypatch):
    stub_post(monkeypatch, StubResponse())
    with pytest.raises(DelegationDenied):
        await GmailMailboxSender(MailboxSettings(), static_grant("  ")).send(MESSAGE, ["a@city.example"])


@pytest.mark.asyncio
async def test_grant_timeout_is_denied(monkeypatch):
    stub_post(monkeypatch, StubResponse())

    async def slow_grant():
        await asyncio.sleep(5)
        return "late"

    sender = GmailMailboxSender(MailboxSettings(delegation_timeout=0.01), slow_grant)
    with pytest.raises(DelegationDenied):
        await sender.send(MESSAGE, ["a@city.example"])


@pytest.mark.asyncio
async def test_provider_rejection_keeps_body(monkeypatch):
    body = '{"error": {"code": 403, "message": "Insufficient Permission"}}'
    stub_post(monkeypatch, StubResponse(status_code=403, text=body))

    with pytest.raises(MailboxSendRejected) as exc:
        await GmailMailboxSender(MailboxSettings(), static_grant("tok")).send(MESSAGE, ["a@city.example"])

    assert exc.value.status_code == 403
    assert exc.value.body == body
    assert "Insufficient Permission" in str(exc.value)


@pytest.mark.asyncio
async def test_network_error_is_rejection(monkeypatch):
    stub_post(monkeypatch, error=requests.ConnectionError("reset"))
    with pytest.raises(MailboxSendRejected):
        await GmailMailboxSender(MailboxSettings(), static_grant("tok")).send(MESSAGE, ["a@city.example"])


class RawBodyResponse(StubResponse):
    def __init__(self, body):
        super().__init__(status_code=200)
        self._body = body

    def json(self):
        return self._body


@pytest.mark.parametrize("body", [["accepted"], None, "ok"])
@pytest.mark.asyncio
async def test_accepted_send_with_unexpected_body_is_sent(monkeypatch, body):
    stub_post(monkeypatch, RawBodyResponse(body))

    outcome = await GmailMailboxSender(MailboxSettings(), static_grant("tok")).send(MESSAGE, ["a@city.example"])

    assert outcome.status == DeliveryStatus.SENT
    assert outcome.message_id is None


@pytest.mark.asyncio
async def test_accepted_mailbox_send_is_not_repeated_over_smtp(monkeypatch, settings, directory, pothole, dallas_geo):
    calls = stub_post(monkeypatch, RawBodyResponse(["accepted"]))
    smtp = FakeSender("smtp")
    router = DeliveryRouter(
        settings,
        directory,
        geocoder=FakeGeocoder(dallas_geo),
        server_sender=smtp,
        mailbox_sender_factory=lambda grant: GmailMailboxSender(MailboxSettings(), grant),
    )

    outcome = await router.submit(pothole, identity=IDENTITY, grant=static_grant("ya29.token"))

    assert outcome.status == DeliveryStatus.SENT
    assert outcome.backend == "mailbox"
    assert len(calls) == 1
    assert smtp.sent == []


@pytest.mark.asyncio
async def test_failing_grant_is_denied(monkeypatch):
    calls = stub_post(monkeypatch, StubResponse())

    async def broken_grant():
        raise RuntimeError("consent popup closed")

    with pytest.raises(DelegationDenied) as exc:
        await GmailMailboxSender(MailboxSettings(), broken_grant).send(MESSAGE, ["a@city.example"])

    assert "consent popup closed" in str(exc.value)
    assert calls == []
