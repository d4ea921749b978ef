"""
Renders a report into the subject, plain-text body and HTML body of the
outgoing email. No I/O happens here.
"""

import html
from typing import List, Tuple

from fixiepixie.models.report_model import (
    Attachment,
    ComposedMessage,
    Coordinate,
    GeoDescriptor,
    ReportSubmission,
)

DEFAULT_ATTACHMENT_NAME = "report.jpg"
DEFAULT_ATTACHMENT_MIME = "image/jpeg"


def _esc(value: str) -> str:
    return html.escape(value or "", quote=True)


def _fmt_coord(value: float) -> str:
    # nan/inf come out as literal text
    return f"{value:.6f}"


def google_maps_link(coordinate: Coordinate) -> str:
    return f"https://www.google.com/maps?q={_fmt_coord(coordinate.latitude)},{_fmt_coord(coordinate.longitude)}"


def osm_link(coordinate: Coordinate) -> str:
    lat, lon = _fmt_coord(coordinate.latitude), _fmt_coord(coordinate.longitude)
    return f"https://www.openstreetmap.org/?mlat={lat}&mlon={lon}#map=18/{lat}/{lon}"


def _city_state_zip(geo: GeoDescriptor) -> str:
    head = ", ".join(part for part in (geo.city, geo.state) if part)
    line = " ".join(part for part in (head, geo.postal_code) if part)
    return line or "(unknown)"


def _reporter_line(submission: ReportSubmission) -> str:
    name = submission.reporter_name or "Anonymous"
    if submission.reporter_email:
        return f"{name} <{submission.reporter_email}>"
    return name


def build_subject(app_name: str, category: str, geo: GeoDescriptor) -> str:
    subject = f"[{app_name}] {category} — {geo.city or 'Unknown city'}"
    if geo.postal_code:
        subject += f" ({geo.postal_code})"
    # header-safe: no CR/LF from user input
    return " ".join(subject.split())


class MessageComposer:
    def __init__(self, app_name: str = "FixiePixie"):
        self.app_name = app_name

    def _fields(self, submission: ReportSubmission, geo: GeoDescriptor) -> List[Tuple[str, str]]:
        coordinate = submission.coordinate
        return [
            ("Category", submission.category),
            ("Description", submission.note or "(none)"),
            ("Address", geo.display_address or "(unknown)"),
            ("City/State/ZIP", _city_state_zip(geo)),
            ("GPS", f"{_fmt_coord(coordinate.latitude)}, {_fmt_coord(coordinate.longitude)}"),
        ]

    def plain_body(self, submission: ReportSubmission, geo: GeoDescriptor) -> str:
        lines = [f"{self.app_name} issue report", ""]
        lines += [f"{label}: {value}" for label, value in self._fields(submission, geo)]
        lines += [
            f"Google Maps: {google_maps_link(submission.coordinate)}",
            f"OpenStreetMap: {osm_link(submission.coordinate)}",
            "",
            f"Reported by: {_reporter_line(submission)}",
        ]
        return "\n".join(lines) + "\n"

    def html_body(self, submission: ReportSubmission, geo: GeoDescriptor) -> str:
        rows = "".join(
            f'<tr><th align="left" style="padding:4px 12px 4px 0">{label}</th>'
            f'<td style="padding:4px 0">{_esc(value)}</td></tr>'
            for label, value in self._fields(submission, geo)
        )
        gmaps = _esc(google_maps_link(submission.coordinate))
        osm = _esc(osm_link(submission.coordinate))
        rows += (
            f'<tr><th align="left" style="padding:4px 12px 4px 0">Map</th>'
            f'<td style="padding:4px 0"><a href="{gmaps}">Google Maps</a> · '
            f'<a href="{osm}">OpenStreetMap</a></td></tr>'
            f'<tr><th align="left" style="padding:4px 12px 4px 0">Reported by</th>'
            f'<td style="padding:4px 0">{_esc(_reporter_line(submission))}</td></tr>'
        )
        return (
            '<div style="font-family:Arial,sans-serif;font-size:14px;color:#1e293b">'
            f"<h2 style=\"margin:0 0 12px\">{_esc(self.app_name)} issue report</h2>"
            f"<table cellspacing=\"0\" cellpadding=\"0\">{rows}</table>"
            "</div>"
        )

    def attachment(self, submission: ReportSubmission):
        photo = submission.photo
        if photo is None or not photo.content:
            return None
        return Attachment(
            content=photo.content,
            mime_type=photo.mime_type or DEFAULT_ATTACHMENT_MIME,
            filename=photo.filename or DEFAULT_ATTACHMENT_NAME,
        )

    def compose(self, submission: ReportSubmission, geo: GeoDescriptor) -> ComposedMessage:
        return ComposedMessage(
            subject=build_subject(self.app_name, submission.category, geo),
            plain_body=self.plain_body(submission, geo),
            html_body=self.html_body(submission, geo),
            attachment=self.attachment(submission),
        )
