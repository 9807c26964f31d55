from __future__ import annotations

import os
import pathlib
import secrets
import sys
import tempfile
import uuid
from datetime import date, datetime, timedelta, timezone
from typing import Iterator

import boto3
import pytest
from fastapi.testclient import TestClient

ROOT_DIR = pathlib.Path(__file__).resolve().parents[1]
if str(ROOT_DIR) not in sys.path:
    sys.path.insert(0, str(ROOT_DIR))

_TMP_DIR = tempfile.mkdtemp(prefix="visitor-api-tests-")
os.environ.setdefault("DATABASE_URL", f"sqlite:///{_TMP_DIR}/test.db")
os.environ.setdefault("APP_ENV", "test")

from visitor_api.config import settings
from visitor_api.db.session import SessionLocal, engine
from visitor_api.main import app
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
    UserSession,
    Visitor,
)
from visitor_api.models.base import Base
from visitor_api.services.auth import AuthService

# magic links and reminders go to the console client during tests
settings.aws.access_key_id = None
settings.aws.secret_access_key = None
settings.reminder_function_name = None
settings.email_backend = "console"


@pytest.fixture(scope="session", autouse=True)
def database_schema() -> Iterator[None]:
    """Create the schema once for the whole run."""
    Base.metadata.create_all(engine)
    yield
    Base.metadata.drop_all(engine)


@pytest.fixture(scope="session")
def client(database_schema) -> Iterator[TestClient]:
    """Provide a FastAPI TestClient instance."""
    with TestClient(app) as _client:
        yield _client


@pytest.fixture()
def db() -> Iterator:
    session = SessionLocal()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture(autouse=True)
def cleanup_database(database_schema) -> Iterator[None]:
    """Delete every row after each test to keep isolation."""
    yield
    SessionLocal.remove()
    with engine.begin() as connection:
        for table in reversed(Base.metadata.sorted_tables):
            connection.execute(table.delete())


def _open_session(session, user: User) -> str:
    token = secrets.token_urlsafe(32)
    session.add(
        UserSession(
            user_id=user.id,
            session_token_hash=AuthService.hash_token(token),
            expires_at=datetime.now(timezone.utc) + timedelta(hours=4),
        )
    )
    return token


@pytest.fixture()
def admin_context(client: TestClient) -> Iterator[dict[str, str]]:
    """Sign the test client in as an administrator."""
    with SessionLocal() as session:
        user = AuthService(session).get_or_create_user("admin@example.com", is_admin=True)
        token = _open_session(session, user)
        session.commit()
        user_id = str(user.id)

    client.cookies.set(settings.cookie_name, token)
    try:
        yield {"user_id": user_id, "token": token}
    finally:
        client.cookies.clear()


@pytest.fixture()
def visitor_context(client: TestClient) -> Iterator[dict[str, str]]:
    """Sign the test client in as a visitor with a linked profile."""
    with SessionLocal() as session:
        user = AuthService(session).get_or_create_user("guest@example.com")
        visitor = Visitor(first_name="Grace", last_name="Guest", email="guest@example.com", user_id=user.id)
        session.add(visitor)
        session.flush()
        token = _open_session(session, user)
        session.commit()
        user_id = str(user.id)
        visitor_id = str(visitor.id)

    client.cookies.set(settings.cookie_name, token)
    try:
        yield {"user_id": user_id, "visitor_id": visitor_id, "token": token}
    finally:
        client.cookies.clear()


# --- data builders ---------------------------------------------------------


def make_event(session, name: str = "Open House", start: date | None = None, end: date | None = None, **kwargs) -> Event:
    start = start or date.today() + timedelta(days=7)
    event = Event(name=name, start_date=start, end_date=end, **kwargs)
    session.add(event)
    session.flush()
    return event


def make_visitor(session, first_name: str = "Ada", last_name: str = "Lovelace", email: str | None = None, **kwargs) -> Visitor:
    visitor = Visitor(
        first_name=first_name,
        last_name=last_name,
        email=email if email is not None else f"{first_name.lower()}.{uuid.uuid4().hex[:6]}@example.com",
        **kwargs,
    )
    session.add(visitor)
    session.flush()
    return visitor


def invite(session, visitor: Visitor, event: Event, status: RsvpStatusEnum = RsvpStatusEnum.INVITED) -> EventVisitor:
    assignment = EventVisitor(visitor_id=visitor.id, event_id=event.id, rsvp_status=status)
    session.add(assignment)
    session.flush()
    return assignment


def make_document_type(session, name: str = "Agreement", requires_confirmation: bool = True) -> DocumentType:
    document_type = DocumentType(name=name, requires_confirmation=requires_confirmation)
    session.add(document_type)
    session.flush()
    return document_type


def make_document(
    session,
    name: str,
    *,
    events: list[Event] = (),
    document_type: DocumentType | None = None,
    versions: int = 1,
    is_active: bool = True,
) -> Document:
    """A document whose last version is current; ``versions=0`` leaves it without a file."""
    if document_type is None:
        document_type = make_document_type(session, name=f"{name} type")
    document = Document(name=name, document_type_id=document_type.id, is_active=is_active)
    session.add(document)
    session.flush()
    for number in range(1, versions + 1):
        session.add(
            DocumentVersion(
                document_id=document.id,
                version_number=number,
                file_path=f"documents/{document.id}/v{number}.pdf",
                file_name=f"{name}-v{number}.pdf",
                mime_type="application/pdf",
                is_current=number == versions,
            )
        )
    for event in events:
        session.add(DocumentEvent(document_id=document.id, event_id=event.id))
    session.flush()
    return document


def current_version(session, document: Document) -> DocumentVersion:
    return (
        session.query(DocumentVersion)
        .filter(DocumentVersion.document_id == document.id, DocumentVersion.is_current.is_(True))
        .one()
    )


def make_organization(session, name: str = "Acme Corp") -> Organization:
    organization = Organization(name=name)
    session.add(organization)
    session.flush()
    return organization


@pytest.fixture()
def mock_s3() -> Iterator:
    """Point document storage at a moto-backed bucket."""
    from moto import mock_aws

    with mock_aws():
        s3 = boto3.client("s3", region_name=settings.aws.region)
        bucket = "test-visitor-documents"
        s3.create_bucket(Bucket=bucket)
        previous_bucket = settings.aws.s3_bucket
        settings.aws.s3_bucket = bucket
        try:
            yield s3
        finally:
            settings.aws.s3_bucket = previous_bucket
