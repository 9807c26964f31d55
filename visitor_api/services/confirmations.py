"""Tracks which required documents each visitor has acknowledged for an event.

A document is *required* for an event when it is assigned to the event, it is
active, its type requires confirmation and it has a current version. For every
(visitor, event, required document) the state is one of:

    unconfirmed -> confirmed(v) -> stale(v, current v' != v) -> confirmed(v')

Stale is only reachable through a new current version being published; nothing
a visitor does makes a confirmation stale.
"""

from __future__ import annotations

import logging
import uuid
from collections import defaultdict
from dataclasses import dataclass, field
from datetime import date, datetime, timedelta, timezone
from enum import Enum
from typing import Iterable, Sequence

from sqlalchemy import and_, func, or_, select
from sqlalchemy.orm import Session

from ..models.confirmations import VisitorConfirmation
from ..models.document_types import DocumentType
from ..models.documents import Document, DocumentEvent, DocumentVersion
from ..models.events import Event
from ..models.visitors import EventVisitor, RsvpStatusEnum, Visitor
from . import metrics
from .activity import log_activity

logger = logging.getLogger(__name__)

# statuses that still receive reminders
REMINDABLE_STATUSES = (RsvpStatusEnum.INVITED, RsvpStatusEnum.CONFIRMED)


class ConfirmationError(Exception):
    pass


class DocumentState(str, Enum):
    UNCONFIRMED = "unconfirmed"
    CONFIRMED = "confirmed"
    STALE = "stale"


@dataclass(frozen=True)
class RequiredDocument:
    document_id: uuid.UUID
    document_name: str
    current_version_id: uuid.UUID
    version_number: int
    version_label: str | None = None
    file_path: str | None = None


@dataclass(frozen=True)
class _ConfirmationRow:
    id: uuid.UUID
    document_id: uuid.UUID
    document_version_id: uuid.UUID
    version_number: int
    confirmed_at: datetime | None


@dataclass
class DocumentConfirmationState:
    document: RequiredDocument
    state: DocumentState
    confirmation_id: uuid.UUID | None = None
    confirmed_version_id: uuid.UUID | None = None
    confirmed_version_number: int | None = None
    confirmed_at: datetime | None = None

    @property
    def is_stale(self) -> bool:
        return self.state == DocumentState.STALE


@dataclass
class ConfirmationStatus:
    visitor_id: uuid.UUID
    event_id: uuid.UUID
    assigned: bool
    rsvp_status: RsvpStatusEnum | None = None
    documents: list[DocumentConfirmationState] = field(default_factory=list)

    @property
    def required_count(self) -> int:
        return len(self.documents)

    @property
    def confirmed_count(self) -> int:
        return sum(1 for item in self.documents if item.state == DocumentState.CONFIRMED)

    @property
    def stale_flags(self) -> dict[uuid.UUID, bool]:
        return {item.document.document_id: item.is_stale for item in self.documents}

    @property
    def outstanding(self) -> list[DocumentConfirmationState]:
        return [item for item in self.documents if item.state != DocumentState.CONFIRMED]


@dataclass
class ConfirmationResult:
    confirmation: VisitorConfirmation
    created: bool
    status: ConfirmationStatus
    rsvp_changed: bool


@dataclass
class OutstandingConfirmation:
    visitor: Visitor
    event: Event
    rsvp_status: RsvpStatusEnum
    required_count: int
    confirmed_count: int
    missing_document_ids: list[uuid.UUID]
    stale_document_ids: list[uuid.UUID]


def is_fully_confirmed(status: ConfirmationStatus) -> bool:
    """Completion is derived from the confirmation rows, never stored."""
    return status.assigned and status.required_count > 0 and status.confirmed_count == status.required_count


def resolve_required_documents(db: Session, event_id: uuid.UUID) -> list[RequiredDocument]:
    rows = db.execute(
        select(
            Document.id,
            Document.name,
            DocumentVersion.id,
            DocumentVersion.version_number,
            DocumentVersion.version_label,
            DocumentVersion.file_path,
        )
        .join(DocumentEvent, DocumentEvent.document_id == Document.id)
        .join(DocumentType, DocumentType.id == Document.document_type_id)
        .join(
            DocumentVersion,
            and_(DocumentVersion.document_id == Document.id, DocumentVersion.is_current.is_(True)),
        )
        .where(
            DocumentEvent.event_id == event_id,
            DocumentType.requires_confirmation.is_(True),
            Document.is_active.is_(True),
        )
        .order_by(Document.name.asc(), Document.id.asc())
    ).all()

    required: list[RequiredDocument] = []
    seen: set[uuid.UUID] = set()
    for document_id, name, version_id, version_number, version_label, file_path in rows:
        if document_id in seen:
            logger.warning("multiple_current_versions document_id=%s", document_id)
            continue
        seen.add(document_id)
        required.append(
            RequiredDocument(
                document_id=document_id,
                document_name=name,
                current_version_id=version_id,
                version_number=version_number,
                version_label=version_label,
                file_path=file_path,
            )
        )
    return required


def _get_assignment(db: Session, visitor_id: uuid.UUID, event_id: uuid.UUID, *, lock: bool = False) -> EventVisitor | None:
    stmt = select(EventVisitor).where(EventVisitor.visitor_id == visitor_id, EventVisitor.event_id == event_id)
    if lock:
        stmt = stmt.with_for_update(of=EventVisitor)
    return db.execute(stmt).scalars().first()


def _load_confirmations(
    db: Session,
    *,
    event_id: uuid.UUID,
    document_ids: Sequence[uuid.UUID],
    visitor_ids: Sequence[uuid.UUID] | None = None,
) -> dict[uuid.UUID, dict[uuid.UUID, list[_ConfirmationRow]]]:
    """Confirmation rows keyed by visitor then document, newest first."""
    grouped: dict[uuid.UUID, dict[uuid.UUID, list[_ConfirmationRow]]] = defaultdict(lambda: defaultdict(list))
    if not document_ids:
        return grouped

    stmt = (
        select(
            VisitorConfirmation.visitor_id,
            VisitorConfirmation.id,
            VisitorConfirmation.document_id,
            VisitorConfirmation.document_version_id,
            DocumentVersion.version_number,
            VisitorConfirmation.confirmed_at,
        )
        .join(DocumentVersion, DocumentVersion.id == VisitorConfirmation.document_version_id)
        .where(
            VisitorConfirmation.event_id == event_id,
            VisitorConfirmation.document_id.in_(list(document_ids)),
        )
        .order_by(VisitorConfirmation.confirmed_at.desc(), DocumentVersion.version_number.desc())
    )
    if visitor_ids is not None:
        stmt = stmt.where(VisitorConfirmation.visitor_id.in_(list(visitor_ids)))

    for visitor_id, conf_id, document_id, version_id, version_number, confirmed_at in db.execute(stmt):
        grouped[visitor_id][document_id].append(
            _ConfirmationRow(
                id=conf_id,
                document_id=document_id,
                document_version_id=version_id,
                version_number=version_number,
                confirmed_at=confirmed_at,
            )
        )
    return grouped


def _classify(
    required: Iterable[RequiredDocument],
    confirmations: dict[uuid.UUID, list[_ConfirmationRow]],
) -> list[DocumentConfirmationState]:
    states: list[DocumentConfirmationState] = []
    for document in required:
        rows = confirmations.get(document.document_id, [])
        current = next((row for row in rows if row.document_version_id == document.current_version_id), None)
        if current is not None:
            states.append(
                DocumentConfirmationState(
                    document=document,
                    state=DocumentState.CONFIRMED,
                    confirmation_id=current.id,
                    confirmed_version_id=current.document_version_id,
                    confirmed_version_number=current.version_number,
                    confirmed_at=current.confirmed_at,
                )
            )
        elif rows:
            latest = rows[0]
            states.append(
                DocumentConfirmationState(
                    document=document,
                    state=DocumentState.STALE,
                    confirmation_id=latest.id,
                    confirmed_version_id=latest.document_version_id,
                    confirmed_version_number=latest.version_number,
                    confirmed_at=latest.confirmed_at,
                )
            )
        else:
            states.append(DocumentConfirmationState(document=document, state=DocumentState.UNCONFIRMED))
    return states


def resolve_confirmation_status(db: Session, visitor_id: uuid.UUID, event_id: uuid.UUID) -> ConfirmationStatus:
    assignment = _get_assignment(db, visitor_id, event_id)
    if assignment is None:
        # an unassigned visitor simply has nothing to confirm
        return ConfirmationStatus(visitor_id=visitor_id, event_id=event_id, assigned=False)

    required = resolve_required_documents(db, event_id)
    confirmations = _load_confirmations(
        db,
        event_id=event_id,
        document_ids=[doc.document_id for doc in required],
        visitor_ids=[visitor_id],
    )
    documents = _classify(required, confirmations.get(visitor_id, {}))
    metrics.record_stale_confirmations(sum(1 for item in documents if item.is_stale))

    return ConfirmationStatus(
        visitor_id=visitor_id,
        event_id=event_id,
        assigned=True,
        rsvp_status=assignment.rsvp_status,
        documents=documents,
    )


def recompute_rsvp_status(
    db: Session,
    visitor_id: uuid.UUID,
    event_id: uuid.UUID,
    *,
    status: ConfirmationStatus | None = None,
) -> bool:
    """Move an invited visitor to confirmed once every required document is confirmed.

    Safe to run any number of times. Statuses a person chose (declined,
    attended, cancelled) are left alone. A confirmed status is never rolled
    back when a newer document version makes a confirmation stale; those
    visitors keep receiving reminders. Returns True when the status changed.
    """
    status = status or resolve_confirmation_status(db, visitor_id, event_id)
    if not is_fully_confirmed(status):
        return False

    assignment = _get_assignment(db, visitor_id, event_id, lock=True)
    if assignment is None or assignment.rsvp_status != RsvpStatusEnum.INVITED:
        return False

    assignment.rsvp_status = RsvpStatusEnum.CONFIRMED
    status.rsvp_status = RsvpStatusEnum.CONFIRMED
    log_activity(
        db,
        "rsvp_auto_confirmed",
        event_id=event_id,
        visitor_id=visitor_id,
        required_count=status.required_count,
    )
    metrics.record_rsvp_auto_confirmed()
    logger.info("rsvp_auto_confirmed visitor_id=%s event_id=%s", visitor_id, event_id)
    return True


def record_confirmation(
    db: Session,
    visitor_id: uuid.UUID,
    event_id: uuid.UUID,
    document_id: uuid.UUID,
    version_id: uuid.UUID | None = None,
    *,
    actor_user_id: uuid.UUID | None = None,
) -> ConfirmationResult:
    """Record that a visitor acknowledged the current version of a document.

    ``version_id`` is the version the visitor was shown; when omitted the
    current version is used. Nothing is written when a precondition fails.
    """
    if _get_assignment(db, visitor_id, event_id) is None:
        raise ConfirmationError("Visitor is not assigned to this event")

    link = db.execute(
        select(DocumentEvent.id).where(DocumentEvent.document_id == document_id, DocumentEvent.event_id == event_id)
    ).first()
    if link is None:
        raise ConfirmationError("Document is not assigned to this event")

    required = db.execute(
        select(Document.is_active, DocumentType.requires_confirmation)
        .join(DocumentType, DocumentType.id == Document.document_type_id)
        .where(Document.id == document_id)
    ).first()
    if required is None or not required.is_active or not required.requires_confirmation:
        raise ConfirmationError("This document does not require confirmation")

    current = db.execute(
        select(DocumentVersion).where(DocumentVersion.document_id == document_id, DocumentVersion.is_current.is_(True))
    ).scalars().first()
    if current is None:
        raise ConfirmationError("Document has no uploaded file yet")
    if version_id is not None and version_id != current.id:
        raise ConfirmationError("A newer version of this document is available. Please review it and confirm again.")

    existing = db.execute(
        select(VisitorConfirmation)
        .where(
            VisitorConfirmation.visitor_id == visitor_id,
            VisitorConfirmation.event_id == event_id,
            VisitorConfirmation.document_version_id == current.id,
        )
        .order_by(VisitorConfirmation.confirmed_at.asc())
    ).scalars().first()

    created = existing is None
    if existing is not None:
        confirmation = existing
        metrics.record_confirmation(duplicate=True)
    else:
        confirmation = VisitorConfirmation(
            visitor_id=visitor_id,
            event_id=event_id,
            document_id=document_id,
            document_version_id=current.id,
            confirmed_at=datetime.now(timezone.utc),
        )
        db.add(confirmation)
        log_activity(
            db,
            "confirmation_recorded",
            actor_user_id=actor_user_id,
            document_id=document_id,
            event_id=event_id,
            visitor_id=visitor_id,
            document_version_id=current.id,
            version_number=current.version_number,
        )
        db.flush()
        metrics.record_confirmation()
        logger.info(
            "confirmation_recorded visitor_id=%s event_id=%s document_id=%s version=%s",
            visitor_id,
            event_id,
            document_id,
            current.version_number,
        )

    status = resolve_confirmation_status(db, visitor_id, event_id)
    rsvp_changed = recompute_rsvp_status(db, visitor_id, event_id, status=status)
    return ConfirmationResult(confirmation=confirmation, created=created, status=status, rsvp_changed=rsvp_changed)


def upcoming_events(db: Session, *, today: date, window_days: int | None = None) -> list[Event]:
    last_day = func.coalesce(Event.end_date, Event.start_date)
    stmt = select(Event).where(last_day.isnot(None), last_day >= today)
    if window_days is not None:
        horizon = today + timedelta(days=window_days)
        stmt = stmt.where(or_(Event.start_date.is_(None), Event.start_date <= horizon))
    return list(db.execute(stmt.order_by(Event.start_date.asc(), Event.name.asc())).scalars().unique())


def find_outstanding_confirmations(
    db: Session,
    *,
    now: datetime | None = None,
    window_days: int | None = None,
) -> list[OutstandingConfirmation]:
    """Every (visitor, upcoming event) pair with an unconfirmed or stale required document."""
    now = now or datetime.now(timezone.utc)
    outstanding: list[OutstandingConfirmation] = []

    for event in upcoming_events(db, today=now.date(), window_days=window_days):
        required = resolve_required_documents(db, event.id)
        if not required:
            continue

        assignments = list(
            db.execute(
                select(EventVisitor)
                .where(EventVisitor.event_id == event.id, EventVisitor.rsvp_status.in_(REMINDABLE_STATUSES))
            )
            .scalars()
            .unique()
        )
        if not assignments:
            continue

        confirmations = _load_confirmations(
            db,
            event_id=event.id,
            document_ids=[doc.document_id for doc in required],
        )
        for assignment in assignments:
            states = _classify(required, confirmations.get(assignment.visitor_id, {}))
            missing = [item.document.document_id for item in states if item.state == DocumentState.UNCONFIRMED]
            stale = [item.document.document_id for item in states if item.state == DocumentState.STALE]
            if not missing and not stale:
                continue
            outstanding.append(
                OutstandingConfirmation(
                    visitor=assignment.visitor,
                    event=event,
                    rsvp_status=assignment.rsvp_status,
                    required_count=len(states),
                    confirmed_count=len(states) - len(missing) - len(stale),
                    missing_document_ids=missing,
                    stale_document_ids=stale,
                )
            )

    return outstanding
