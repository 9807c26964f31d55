from __future__ import annotations

import logging
import uuid
from datetime import date, timedelta
from typing import Any

from dotenv import load_dotenv

load_dotenv()

from visitor_api.db.session import SessionLocal
from visitor_api.models import (
    Document,
    DocumentEvent,
    DocumentType,
    DocumentVersion,
    Event,
    EventVisitor,
    Organization,
    RsvpStatusEnum,
    User,
    Visitor,
)

logger = logging.getLogger(__name__)

SEED_VERSION = "v1"


def seed_uuid(name: str) -> uuid.UUID:
    """Generate deterministic UUIDs scoped to the seed version."""
    return uuid.uuid5(uuid.NAMESPACE_URL, f"visitor-api/{SEED_VERSION}/{name}")


def event_day(offset_days: int) -> date:
    """Dates are relative to today so the sample events stay upcoming."""
    return date.today() + timedelta(days=offset_days)


ADMINS: list[dict[str, Any]] = [
    {
        "id": seed_uuid("user:admin"),
        "email": "admin@example.com",
        "first_name": "Dana",
        "last_name": "Whitfield",
    },
]

ORGANIZATIONS: list[dict[str, Any]] = [
    {
        "id": seed_uuid("org:northwind"),
        "name": "Northwind Traders",
        "address_line_1": "410 Harbor Way",
        "city": "Seattle",
        "state_province": "WA",
        "postal_code": "98101",
        "main_contact_name": "Priya Shah",
        "main_contact_email": "priya.shah@northwind.example",
        "main_contact_phone": "206-555-0142",
    },
    {
        "id": seed_uuid("org:contoso"),
        "name": "Contoso Labs",
        "address_line_1": "88 Market Street",
        "city": "Austin",
        "state_province": "TX",
        "postal_code": "73301",
        "main_contact_name": "Luis Ortega",
        "main_contact_email": "luis.ortega@contoso.example",
        "main_contact_phone": "512-555-0199",
    },
]

EVENTS: list[dict[str, Any]] = [
    {
        "id": seed_uuid("event:plant-tour"),
        "name": "Plant Tour",
        "description": "Guided tour of the assembly floor.",
        "start_offset": 14,
        "end_offset": 14,
        "location": "Building 3",
        "sponsor": seed_uuid("org:northwind"),
    },
    {
        "id": seed_uuid("event:supplier-summit"),
        "name": "Supplier Summit",
        "description": "Two-day supplier planning summit.",
        "start_offset": 30,
        "end_offset": 31,
        "location": "Main Conference Center",
        "sponsor": seed_uuid("org:contoso"),
    },
]

DOCUMENT_TYPES: list[dict[str, Any]] = [
    {"id": seed_uuid("type:nda"), "name": "Non-Disclosure Agreement", "requires_confirmation": True},
    {"id": seed_uuid("type:safety"), "name": "Safety Briefing", "requires_confirmation": True},
    {"id": seed_uuid("type:agenda"), "name": "Agenda", "requires_confirmation": False},
]

DOCUMENTS: list[dict[str, Any]] = [
    {
        "id": seed_uuid("document:nda"),
        "name": "Visitor NDA",
        "type": seed_uuid("type:nda"),
        "events": [seed_uuid("event:plant-tour"), seed_uuid("event:supplier-summit")],
        "versions": [
            {"label": "2024", "file_name": "visitor-nda-2024.pdf"},
            {"label": "2025 rev B", "file_name": "visitor-nda-2025b.pdf"},
        ],
    },
    {
        "id": seed_uuid("document:safety"),
        "name": "Floor Safety Rules",
        "type": seed_uuid("type:safety"),
        "events": [seed_uuid("event:plant-tour")],
        "versions": [{"label": None, "file_name": "floor-safety.pdf"}],
    },
    {
        "id": seed_uuid("document:agenda"),
        "name": "Summit Agenda",
        "type": seed_uuid("type:agenda"),
        "events": [seed_uuid("event:supplier-summit")],
        "versions": [{"label": "draft", "file_name": "summit-agenda.pdf"}],
    },
]

VISITORS: list[dict[str, Any]] = [
    {
        "id": seed_uuid("visitor:jordan-lee"),
        "first_name": "Jordan",
        "last_name": "Lee",
        "email": "jordan.lee@northwind.example",
        "phone": "206-555-0101",
        "organization": seed_uuid("org:northwind"),
        "events": [seed_uuid("event:plant-tour"), seed_uuid("event:supplier-summit")],
    },
    {
        "id": seed_uuid("visitor:sam-okafor"),
        "first_name": "Sam",
        "last_name": "Okafor",
        "email": "sam.okafor@contoso.example",
        "phone": None,
        "organization": seed_uuid("org:contoso"),
        "events": [seed_uuid("event:supplier-summit")],
    },
]


def _upsert(session, model, payload: dict[str, Any], **values: Any):
    instance = session.get(model, payload["id"])
    if instance is None:
        instance = model(id=payload["id"])
        session.add(instance)
    for key, value in values.items():
        setattr(instance, key, value)
    return instance


def seed_admins(session) -> None:
    for payload in ADMINS:
        user = session.query(User).filter(User.email == payload["email"]).one_or_none()
        if user is None:
            user = User(id=payload["id"], email=payload["email"])
            session.add(user)
        user.first_name = payload["first_name"]
        user.last_name = payload["last_name"]
        user.is_admin = True
        user.is_active = True


def seed_reference_data(session) -> None:
    for payload in ORGANIZATIONS:
        _upsert(session, Organization, payload, **{k: v for k, v in payload.items() if k != "id"})
    session.flush()

    for payload in EVENTS:
        _upsert(
            session,
            Event,
            payload,
            name=payload["name"],
            description=payload["description"],
            start_date=event_day(payload["start_offset"]),
            end_date=event_day(payload["end_offset"]),
            location=payload["location"],
            sponsor_organization_id=payload["sponsor"],
        )

    for payload in DOCUMENT_TYPES:
        _upsert(
            session,
            DocumentType,
            payload,
            name=payload["name"],
            requires_confirmation=payload["requires_confirmation"],
        )
    session.flush()


def seed_documents(session) -> None:
    for payload in DOCUMENTS:
        document = _upsert(
            session,
            Document,
            payload,
            name=payload["name"],
            document_type_id=payload["type"],
            is_active=True,
        )
        session.flush()

        last = len(payload["versions"])
        for number, version_payload in enumerate(payload["versions"], start=1):
            version_id = seed_uuid(f"version:{payload['id']}:{number}")
            version = session.get(DocumentVersion, version_id)
            if version is None:
                version = DocumentVersion(id=version_id, document_id=document.id, version_number=number)
                session.add(version)
            version.version_label = version_payload["label"]
            version.file_name = version_payload["file_name"]
            version.file_path = f"seed/documents/{document.id}/{version_payload['file_name']}"
            version.mime_type = "application/pdf"
            version.is_current = number == last
        session.flush()

        for event_id in payload["events"]:
            link = (
                session.query(DocumentEvent)
                .filter(DocumentEvent.document_id == document.id, DocumentEvent.event_id == event_id)
                .one_or_none()
            )
            if link is None:
                session.add(DocumentEvent(document_id=document.id, event_id=event_id))


def seed_visitors(session) -> None:
    for payload in VISITORS:
        _upsert(
            session,
            Visitor,
            payload,
            first_name=payload["first_name"],
            last_name=payload["last_name"],
            email=payload["email"],
            phone=payload["phone"],
            organization_id=payload["organization"],
        )
        session.flush()
        for event_id in payload["events"]:
            assignment = (
                session.query(EventVisitor)
                .filter(EventVisitor.visitor_id == payload["id"], EventVisitor.event_id == event_id)
                .one_or_none()
            )
            if assignment is None:
                session.add(
                    EventVisitor(
                        visitor_id=payload["id"],
                        event_id=event_id,
                        rsvp_status=RsvpStatusEnum.INVITED,
                    )
                )


def run_seed() -> None:
    session = SessionLocal()
    try:
        seed_admins(session)
        seed_reference_data(session)
        seed_documents(session)
        seed_visitors(session)
        session.commit()
    except Exception:
        session.rollback()
        raise
    finally:
        session.close()

    logger.info(
        "Seed complete: organizations=%s events=%s documents=%s visitors=%s",
        len(ORGANIZATIONS),
        len(EVENTS),
        len(DOCUMENTS),
        len(VISITORS),
    )


if __name__ == "__main__":
    logging.basicConfig(level=logging.INFO)
    run_seed()
