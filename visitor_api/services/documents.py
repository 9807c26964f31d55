from __future__ import annotations

import logging
import uuid
from dataclasses import dataclass
from typing import Iterable

from sqlalchemy import func, select, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from ..models.document_types import DocumentType
from ..models.documents import Document, DocumentEvent, DocumentVersion
from ..models.events import Event
from . import metrics
from .activity import log_activity
from .storage import StorageError, StorageService

logger = logging.getLogger(__name__)


class DocumentVersionError(Exception):
    pass


@dataclass
class UploadedFile:
    filename: str
    content_type: str
    data: bytes

    @property
    def size(self) -> int:
        return len(self.data)


def _lock_document(db: Session, document_id: uuid.UUID) -> Document:
    """Serialize version changes per document behind a row lock on the parent."""
    document = db.execute(
        select(Document).where(Document.id == document_id).with_for_update(of=Document)
    ).scalars().first()
    if document is None:
        raise DocumentVersionError("Document not found")
    return document


def _store(storage: StorageService, document_id: uuid.UUID, upload: UploadedFile):
    key = storage.build_key(document_id, upload.filename)
    return storage.upload_bytes(key, upload.data, content_type=upload.content_type or "application/octet-stream")


def _discard(storage: StorageService, key: str) -> None:
    try:
        storage.delete(key)
    except StorageError:
        logger.warning("Failed to delete stored file after upload error key=%s", key, exc_info=True)


def _check_event_ids(db: Session, event_ids: Iterable[uuid.UUID]) -> set[uuid.UUID]:
    wanted = set(event_ids)
    if wanted:
        known = set(db.execute(select(Event.id).where(Event.id.in_(list(wanted)))).scalars())
        unknown = wanted - known
        if unknown:
            raise DocumentVersionError(f"Unknown event ids: {', '.join(sorted(str(item) for item in unknown))}")
    return wanted


def create_document(
    db: Session,
    storage: StorageService,
    *,
    name: str,
    upload: UploadedFile,
    description: str | None = None,
    document_type_id: uuid.UUID | None = None,
    version_label: str | None = None,
    created_by: uuid.UUID | None = None,
    event_ids: Iterable[uuid.UUID] = (),
) -> Document:
    """Create a document with version 1 as its current version.

    Nothing is uploaded until the document type and events are known to exist.
    If the database work fails afterwards the stored file is deleted again.
    """
    if document_type_id is not None and db.get(DocumentType, document_type_id) is None:
        raise DocumentVersionError("Document type not found")
    event_ids = sorted(_check_event_ids(db, event_ids), key=str)

    document = Document(
        id=uuid.uuid4(),
        name=name,
        description=description,
        document_type_id=document_type_id,
        created_by=created_by,
        is_active=True,
    )
    stored = _store(storage, document.id, upload)

    try:
        db.add(document)
        db.flush()
        version = DocumentVersion(
            document_id=document.id,
            version_number=1,
            version_label=version_label,
            file_path=stored.key,
            file_name=upload.filename,
            file_size=upload.size,
            mime_type=upload.content_type,
            is_current=True,
            uploaded_by=created_by,
        )
        db.add(version)
        log_activity(
            db,
            "document_uploaded",
            actor_user_id=created_by,
            document_id=document.id,
            filename=upload.filename,
            storage_key=stored.key,
        )
        db.flush()

        if event_ids:
            assign_document_events(db, document.id, event_ids, actor_user_id=created_by)
    except (DocumentVersionError, SQLAlchemyError):
        _discard(storage, stored.key)
        raise

    metrics.record_document_version_uploaded()
    logger.info("document_uploaded document_id=%s storage_key=%s", document.id, stored.key)
    return document


def upload_new_version(
    db: Session,
    storage: StorageService,
    document_id: uuid.UUID,
    *,
    upload: UploadedFile,
    version_label: str | None = None,
    uploaded_by: uuid.UUID | None = None,
    make_current: bool = True,
) -> DocumentVersion:
    document = _lock_document(db, document_id)

    latest = db.execute(
        select(func.max(DocumentVersion.version_number)).where(DocumentVersion.document_id == document.id)
    ).scalar()
    stored = _store(storage, document.id, upload)

    try:
        version = DocumentVersion(
            document_id=document.id,
            version_number=(latest or 0) + 1,
            version_label=version_label,
            file_path=stored.key,
            file_name=upload.filename,
            file_size=upload.size,
            mime_type=upload.content_type,
            is_current=False,
            uploaded_by=uploaded_by,
        )
        db.add(version)
        log_activity(
            db,
            "document_version_uploaded",
            actor_user_id=uploaded_by,
            document_id=document.id,
            version_number=version.version_number,
            storage_key=stored.key,
        )
        db.flush()

        if make_current or latest is None:
            set_current_version(db, document.id, version.id, actor_user_id=uploaded_by)
    except (DocumentVersionError, SQLAlchemyError):
        _discard(storage, stored.key)
        raise

    metrics.record_document_version_uploaded()
    return version


def set_current_version(
    db: Session,
    document_id: uuid.UUID,
    version_id: uuid.UUID,
    *,
    actor_user_id: uuid.UUID | None = None,
) -> DocumentVersion:
    """Make ``version_id`` the only current version of the document.

    Both statements run in the caller's transaction while the document row is
    locked, so other transactions see either the old or the new current
    version. Existing confirmations are not touched.
    """
    document = _lock_document(db, document_id)
    target = db.execute(
        select(DocumentVersion).where(DocumentVersion.id == version_id, DocumentVersion.document_id == document.id)
    ).scalars().first()
    if target is None:
        raise DocumentVersionError("Version does not belong to this document")
    if target.is_current:
        return target

    previous = db.execute(
        select(DocumentVersion.id, DocumentVersion.version_number).where(
            DocumentVersion.document_id == document.id, DocumentVersion.is_current.is_(True)
        )
    ).first()

    db.execute(
        update(DocumentVersion)
        .where(DocumentVersion.document_id == document.id, DocumentVersion.is_current.is_(True))
        .values(is_current=False)
        .execution_options(synchronize_session="fetch")
    )
    db.execute(
        update(DocumentVersion)
        .where(DocumentVersion.id == target.id)
        .values(is_current=True)
        .execution_options(synchronize_session="fetch")
    )

    log_activity(
        db,
        "document_version_current",
        actor_user_id=actor_user_id,
        document_id=document.id,
        version_number=target.version_number,
        previous_version_number=previous[1] if previous else None,
    )
    logger.info(
        "document_version_current document_id=%s version=%s previous=%s",
        document.id,
        target.version_number,
        previous[1] if previous else None,
    )
    return target


def assign_document_events(
    db: Session,
    document_id: uuid.UUID,
    event_ids: Iterable[uuid.UUID],
    *,
    actor_user_id: uuid.UUID | None = None,
) -> list[uuid.UUID]:
    """Replace the events a document is required for."""
    if db.get(Document, document_id) is None:
        raise DocumentVersionError("Document not found")

    wanted = _check_event_ids(db, event_ids)

    links = list(db.execute(select(DocumentEvent).where(DocumentEvent.document_id == document_id)).scalars())
    existing = {link.event_id for link in links}
    for link in links:
        if link.event_id not in wanted:
            db.delete(link)
    for event_id in wanted - existing:
        db.add(DocumentEvent(document_id=document_id, event_id=event_id))

    log_activity(
        db,
        "document_events_assigned",
        actor_user_id=actor_user_id,
        document_id=document_id,
        event_ids=sorted(str(item) for item in wanted),
    )
    db.flush()
    return sorted(wanted, key=str)


def set_document_active(db: Session, document_id: uuid.UUID, is_active: bool) -> Document:
    document = db.get(Document, document_id)
    if document is None:
        raise DocumentVersionError("Document not found")
    document.is_active = is_active
    return document


def list_versions(db: Session, document_id: uuid.UUID) -> list[DocumentVersion]:
    return list(
        db.execute(
            select(DocumentVersion)
            .where(DocumentVersion.document_id == document_id)
            .order_by(DocumentVersion.version_number.asc())
        ).scalars()
    )
