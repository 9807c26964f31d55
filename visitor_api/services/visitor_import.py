"""Bulk visitor import from the admin spreadsheet template.

The workbook must contain a ``Visitors`` sheet whose first row is exactly
First Name, Last Name, Email, Phone, Organization, Event. Each data row is
validated and written on its own; a bad row is reported and the rest of the
batch continues.
"""

from __future__ import annotations

import io
import logging
import re
import uuid
import zipfile
from dataclasses import asdict, dataclass, field
from datetime import date, datetime
from typing import Any, Iterator

from openpyxl import load_workbook
from openpyxl.utils.exceptions import InvalidFileException
from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from ..models.events import Event
from ..models.organizations import Organization
from ..models.visitors import EventVisitor, RsvpStatusEnum, Visitor
from . import metrics
from .activity import log_activity

logger = logging.getLogger(__name__)

SHEET_NAME = "Visitors"
EXPECTED_HEADERS = ("First Name", "Last Name", "Email", "Phone", "Organization", "Event")
REQUIRED_FIELDS = ("First Name", "Last Name", "Email", "Organization", "Event")
PHONE_PATTERN = re.compile(r"^\d{3}-\d{3}-\d{4}$")

MISSING_SHEET_MESSAGE = (
    "Invalid file format. The file must have a 'Visitors' worksheet. "
    "Please download the template and use the correct format."
)
HEADER_MISMATCH_MESSAGE = (
    "Invalid file format. Column headers do not match the expected template. "
    "Please download the template and use the correct format."
)
UNREADABLE_MESSAGE = "Failed to read the file. Please ensure it is a valid Excel (.xlsx) file."


class ImportFormatError(Exception):
    pass


@dataclass
class ImportRowError:
    row: int
    first_name: str
    last_name: str
    reason: str


@dataclass
class ImportResult:
    total: int = 0
    success: int = 0
    errors: list[ImportRowError] = field(default_factory=list)
    visitor_ids: list[uuid.UUID] = field(default_factory=list)

    @classmethod
    def file_error(cls, reason: str) -> "ImportResult":
        return cls(errors=[ImportRowError(row=0, first_name="", last_name="", reason=reason)])

    def as_dict(self) -> dict[str, Any]:
        return {
            "total": self.total,
            "success": self.success,
            "errors": [asdict(error) for error in self.errors],
        }


@dataclass
class SheetRow:
    number: int
    first_name: str
    last_name: str
    email: str
    phone: str
    organization: str
    event: str

    def is_empty(self) -> bool:
        return not any((self.first_name, self.last_name, self.email, self.phone, self.organization, self.event))

    def missing_fields(self) -> list[str]:
        values = {
            "First Name": self.first_name,
            "Last Name": self.last_name,
            "Email": self.email,
            "Organization": self.organization,
            "Event": self.event,
        }
        return [name for name in REQUIRED_FIELDS if not values[name]]


def cell_text(value: Any) -> str:
    if value is None:
        return ""
    if isinstance(value, str):
        return value.strip()
    if isinstance(value, bool):
        return str(value)
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    if isinstance(value, (datetime, date)):
        return value.isoformat()
    # rich text and hyperlink-like values render to their display text
    return str(value).strip()


def read_rows(content: bytes) -> Iterator[SheetRow]:
    """Yield data rows from the template, raising ImportFormatError on layout problems."""
    try:
        workbook = load_workbook(io.BytesIO(content), read_only=True, data_only=True)
    except (InvalidFileException, zipfile.BadZipFile, KeyError, OSError, ValueError) as exc:
        raise ImportFormatError(UNREADABLE_MESSAGE) from exc

    try:
        if SHEET_NAME not in workbook.sheetnames:
            raise ImportFormatError(MISSING_SHEET_MESSAGE)
        worksheet = workbook[SHEET_NAME]

        rows = worksheet.iter_rows(values_only=True)
        header = next(rows, None) or ()
        headers = [cell_text(value) for value in header][: len(EXPECTED_HEADERS)]
        if tuple(headers) != EXPECTED_HEADERS:
            raise ImportFormatError(HEADER_MISMATCH_MESSAGE)

        for number, values in enumerate(rows, start=2):
            cells = [cell_text(value) for value in values][: len(EXPECTED_HEADERS)]
            cells += [""] * (len(EXPECTED_HEADERS) - len(cells))
            yield SheetRow(number, *cells)
    finally:
        workbook.close()


def _organization_lookup(db: Session) -> dict[str, uuid.UUID]:
    return {name.lower(): org_id for org_id, name in db.execute(select(Organization.id, Organization.name))}


def _event_lookup(db: Session) -> dict[str, uuid.UUID]:
    """Map dropdown labels ("Name (Mon D, YYYY)") and unambiguous bare names to event ids."""
    lookup: dict[str, uuid.UUID] = {}
    by_name: dict[str, list[uuid.UUID]] = {}
    for event in db.execute(select(Event)).scalars().unique():
        lookup[event.label.lower()] = event.id
        by_name.setdefault(event.name.lower(), []).append(event.id)
    for name, ids in by_name.items():
        if len(ids) == 1:
            lookup.setdefault(name, ids[0])
    return lookup


def _validate(
    row: SheetRow,
    organizations: dict[str, uuid.UUID],
    events: dict[str, uuid.UUID],
) -> tuple[uuid.UUID, uuid.UUID] | ImportRowError:
    missing = row.missing_fields()
    if missing:
        return ImportRowError(
            row=row.number,
            first_name=row.first_name or "(empty)",
            last_name=row.last_name or "(empty)",
            reason=f"Missing required fields: {', '.join(missing)}",
        )

    organization_id = organizations.get(row.organization.lower())
    if organization_id is None:
        return ImportRowError(row.number, row.first_name, row.last_name, f'Organization "{row.organization}" not found')

    event_id = events.get(row.event.lower())
    if event_id is None:
        return ImportRowError(row.number, row.first_name, row.last_name, f'Event "{row.event}" not found')

    if row.phone and not PHONE_PATTERN.match(row.phone):
        return ImportRowError(
            row.number,
            row.first_name,
            row.last_name,
            f'Invalid phone format "{row.phone}". Expected: 000-000-0000',
        )

    return organization_id, event_id


def import_visitors(db: Session, content: bytes, *, actor_user_id: uuid.UUID | None = None) -> ImportResult:
    """Create visitors and their event invitations from an uploaded workbook.

    Every valid row is written inside its own savepoint. The caller commits.
    """
    result = ImportResult()
    organizations = _organization_lookup(db)
    events = _event_lookup(db)

    try:
        for row in read_rows(content):
            if row.is_empty():
                continue
            result.total += 1

            outcome = _validate(row, organizations, events)
            if isinstance(outcome, ImportRowError):
                result.errors.append(outcome)
                continue
            organization_id, event_id = outcome

            try:
                with db.begin_nested():
                    visitor = Visitor(
                        first_name=row.first_name,
                        last_name=row.last_name,
                        email=row.email or None,
                        phone=row.phone or None,
                        organization_id=organization_id,
                    )
                    db.add(visitor)
                    db.flush()
                    db.add(
                        EventVisitor(
                            visitor_id=visitor.id,
                            event_id=event_id,
                            rsvp_status=RsvpStatusEnum.INVITED,
                        )
                    )
                    db.flush()
            except SQLAlchemyError as exc:
                logger.warning("visitor_import_row_failed row=%s error=%s", row.number, exc)
                result.errors.append(
                    ImportRowError(row.number, row.first_name, row.last_name, f"Database error: {exc.__class__.__name__}")
                )
                continue

            result.success += 1
            result.visitor_ids.append(visitor.id)
    except ImportFormatError as exc:
        if result.total == 0:
            return ImportResult.file_error(str(exc))
        result.errors.append(ImportRowError(row=0, first_name="", last_name="", reason=str(exc)))

    log_activity(
        db,
        "visitors_imported",
        actor_user_id=actor_user_id,
        total=result.total,
        success=result.success,
        failed=len(result.errors),
    )
    metrics.record_import_rows(result.success, len(result.errors))
    logger.info(
        "visitors_imported total=%s success=%s failed=%s",
        result.total,
        result.success,
        len(result.errors),
    )
    return result
