from __future__ import annotations

import io
import re
from dataclasses import dataclass, field
from datetime import date, datetime
from typing import Any, Callable

from openpyxl import Workbook
from openpyxl.styles import Font, PatternFill
from openpyxl.utils import get_column_letter
from sqlalchemy import case, func, select
from sqlalchemy.orm import Session

from ..models.confirmations import VisitorConfirmation
from ..models.documents import Document, DocumentVersion
from ..models.events import Event, format_event_date
from ..models.organizations import Organization
from ..models.visitors import EventVisitor, RsvpStatusEnum, Visitor


class UnknownReportError(Exception):
    pass


@dataclass(frozen=True)
class ReportColumn:
    key: str
    label: str


@dataclass(frozen=True)
class ReportDefinition:
    id: str
    name: str
    description: str
    columns: tuple[ReportColumn, ...]


@dataclass
class ReportResult:
    report: ReportDefinition
    rows: list[dict[str, Any]] = field(default_factory=list)

    def as_dict(self) -> dict[str, Any]:
        return {
            "id": self.report.id,
            "name": self.report.name,
            "columns": [{"key": col.key, "label": col.label} for col in self.report.columns],
            "rows": self.rows,
        }


VISITORS_BY_EVENT = ReportDefinition(
    id="visitors-by-event",
    name="Visitors by Event",
    description="List all visitors assigned to each event with their confirmation status",
    columns=(
        ReportColumn("event_name", "Event Name"),
        ReportColumn("event_date", "Event Date"),
        ReportColumn("organization", "Organization"),
        ReportColumn("visitor_name", "Visitor Name"),
        ReportColumn("email", "Email"),
        ReportColumn("status", "Status"),
    ),
)

EVENTS_BY_ORGANIZATION = ReportDefinition(
    id="events-by-organization",
    name="Events by Organization",
    description="List all events grouped by organization with visitor counts",
    columns=(
        ReportColumn("organization", "Organization"),
        ReportColumn("event_name", "Event Name"),
        ReportColumn("start_date", "Start Date"),
        ReportColumn("end_date", "End Date"),
        ReportColumn("assigned_visitors", "Assigned Visitors"),
        ReportColumn("confirmed_visitors", "Confirmed Visitors"),
    ),
)

DOCUMENT_CONFIRMATIONS = ReportDefinition(
    id="document-confirmations",
    name="Document Confirmations",
    description="List all document confirmations by visitor and event",
    columns=(
        ReportColumn("visitor_name", "Visitor Name"),
        ReportColumn("event_name", "Event Name"),
        ReportColumn("document_name", "Document Name"),
        ReportColumn("confirmed_at", "Confirmed At"),
        ReportColumn("version", "Version"),
        ReportColumn("version_state", "Version State"),
    ),
)


def _fmt_date(value: date | None) -> str:
    return format_event_date(value) if value else ""


def _visitors_by_event(db: Session) -> list[dict[str, Any]]:
    rows = db.execute(
        select(Event.name, Event.start_date, Organization.name, Visitor.first_name, Visitor.last_name, Visitor.email, EventVisitor.rsvp_status)
        .select_from(EventVisitor)
        .join(Event, Event.id == EventVisitor.event_id)
        .join(Visitor, Visitor.id == EventVisitor.visitor_id)
        .outerjoin(Organization, Organization.id == Visitor.organization_id)
        .order_by(Event.start_date.asc(), Event.name.asc(), Visitor.last_name.asc(), Visitor.first_name.asc())
    ).all()
    return [
        {
            "event_name": event_name,
            "event_date": _fmt_date(start_date),
            "organization": org_name or "",
            "visitor_name": f"{first_name} {last_name}".strip(),
            "email": email or "",
            "status": status.value if isinstance(status, RsvpStatusEnum) else status,
        }
        for event_name, start_date, org_name, first_name, last_name, email, status in rows
    ]


def _events_by_organization(db: Session) -> list[dict[str, Any]]:
    assigned = func.count(EventVisitor.id)
    confirmed = func.sum(case((EventVisitor.rsvp_status == RsvpStatusEnum.CONFIRMED, 1), else_=0))
    rows = db.execute(
        select(Organization.name, Event.name, Event.start_date, Event.end_date, assigned, confirmed)
        .select_from(Event)
        .outerjoin(Organization, Organization.id == Event.sponsor_organization_id)
        .outerjoin(EventVisitor, EventVisitor.event_id == Event.id)
        .group_by(Event.id, Organization.name, Event.name, Event.start_date, Event.end_date)
        .order_by(Organization.name.asc(), Event.start_date.asc(), Event.name.asc())
    ).all()
    return [
        {
            "organization": org_name or "",
            "event_name": event_name,
            "start_date": _fmt_date(start_date),
            "end_date": _fmt_date(end_date),
            "assigned_visitors": int(assigned_count or 0),
            "confirmed_visitors": int(confirmed_count or 0),
        }
        for org_name, event_name, start_date, end_date, assigned_count, confirmed_count in rows
    ]


def _document_confirmations(db: Session) -> list[dict[str, Any]]:
    rows = db.execute(
        select(
            Visitor.first_name,
            Visitor.last_name,
            Event.name,
            Document.name,
            VisitorConfirmation.confirmed_at,
            DocumentVersion.version_number,
            DocumentVersion.version_label,
            DocumentVersion.is_current,
        )
        .select_from(VisitorConfirmation)
        .join(Visitor, Visitor.id == VisitorConfirmation.visitor_id)
        .join(Event, Event.id == VisitorConfirmation.event_id)
        .join(Document, Document.id == VisitorConfirmation.document_id)
        .join(DocumentVersion, DocumentVersion.id == VisitorConfirmation.document_version_id)
        .order_by(VisitorConfirmation.confirmed_at.desc())
    ).all()
    result = []
    for first_name, last_name, event_name, document_name, confirmed_at, number, label, is_current in rows:
        version = f"v{number}"
        if label:
            version = f"{version} ({label})"
        result.append(
            {
                "visitor_name": f"{first_name} {last_name}".strip(),
                "event_name": event_name,
                "document_name": document_name,
                "confirmed_at": confirmed_at.isoformat() if confirmed_at else "",
                "version": version,
                "version_state": "current" if is_current else "outdated",
            }
        )
    return result


_BUILDERS: dict[str, tuple[ReportDefinition, Callable[[Session], list[dict[str, Any]]]]] = {
    VISITORS_BY_EVENT.id: (VISITORS_BY_EVENT, _visitors_by_event),
    EVENTS_BY_ORGANIZATION.id: (EVENTS_BY_ORGANIZATION, _events_by_organization),
    DOCUMENT_CONFIRMATIONS.id: (DOCUMENT_CONFIRMATIONS, _document_confirmations),
}


def available_reports() -> list[ReportDefinition]:
    return [definition for definition, _ in _BUILDERS.values()]


def run_report(db: Session, report_id: str, *, search: str | None = None) -> ReportResult:
    try:
        definition, builder = _BUILDERS[report_id]
    except KeyError as exc:
        raise UnknownReportError(f"Unknown report: {report_id}") from exc

    rows = builder(db)
    if search:
        term = search.strip().lower()
        rows = [row for row in rows if any(term in str(value).lower() for value in row.values())]
    return ReportResult(report=definition, rows=rows)


def report_filename(report: ReportDefinition, today: date | None = None) -> str:
    today = today or datetime.now().date()
    slug = re.sub(r"\s+", "_", report.name)
    return f"{slug}_{today.strftime('%m%d%Y')}.xlsx"


def export_xlsx(result: ReportResult) -> bytes:
    workbook = Workbook()
    worksheet = workbook.active
    worksheet.title = result.report.name[:31]

    columns = result.report.columns
    worksheet.append([col.label for col in columns])
    header_fill = PatternFill(fill_type="solid", fgColor="FFE0E0E0")
    for cell in worksheet[1]:
        cell.font = Font(bold=True)
        cell.fill = header_fill

    for row in result.rows:
        worksheet.append([row.get(col.key, "") for col in columns])

    for index, col in enumerate(columns, start=1):
        longest = max(
            [len(col.label)] + [len(str(row.get(col.key, ""))) for row in result.rows],
        )
        worksheet.column_dimensions[get_column_letter(index)].width = min(max(longest, 10) + 2, 50)

    buffer = io.BytesIO()
    workbook.save(buffer)
    return buffer.getvalue()
