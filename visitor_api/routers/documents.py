from __future__ import annotations

import logging
import os
import re
import uuid
from typing import Any, Dict, List, Optional

from fastapi import APIRouter, Depends, File, Form, HTTPException, UploadFile
from pydantic import BaseModel
from sqlalchemy import select
from sqlalchemy.orm import Session

from ..config import settings
from ..dependencies.auth import AuthContext, require_admin
from ..dependencies.db import get_db
from ..models.documents import Document, DocumentVersion
from ..services.documents import (
    DocumentVersionError,
    UploadedFile,
    assign_document_events,
    create_document,
    list_versions,
    set_current_version,
    set_document_active,
    upload_new_version,
)
from ..services.storage import StorageError, get_storage_service

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/documents")


class AssignEventsRequest(BaseModel):
    event_ids: List[uuid.UUID]


class ActiveRequest(BaseModel):
    is_active: bool


def sanitize_filename(filename: str) -> str:
    name = os.path.basename(filename or "document.pdf")
    name = re.sub(r"[^A-Za-z0-9._-]", "_", name)
    return name[:100] or "document.pdf"


def read_upload(file: UploadFile, max_bytes: int | None = None) -> bytes:
    """Read an upload in chunks, rejecting empty or oversized files."""
    limit = max_bytes if max_bytes is not None else settings.max_upload_bytes
    chunks: list[bytes] = []
    total_bytes = 0
    try:
        while True:
            chunk = file.file.read(1024 * 1024)
            if not chunk:
                break
            total_bytes += len(chunk)
            if total_bytes > limit:
                raise HTTPException(status_code=400, detail="File too large.")
            chunks.append(chunk)
    finally:
        file.file.close()

    if not total_bytes:
        raise HTTPException(status_code=400, detail="Empty file")
    return b"".join(chunks)


def _to_upload(file: UploadFile) -> UploadedFile:
    if not file.filename:
        raise HTTPException(status_code=400, detail="Filename required")
    data = read_upload(file)
    return UploadedFile(
        filename=sanitize_filename(file.filename),
        content_type=file.content_type or "application/octet-stream",
        data=data,
    )


def _parse_uuid_list(raw: Optional[str]) -> list[uuid.UUID]:
    if not raw:
        return []
    try:
        return [uuid.UUID(item.strip()) for item in raw.split(",") if item.strip()]
    except ValueError as exc:
        raise HTTPException(status_code=400, detail="Invalid event id") from exc


def _raise_version_error(db: Session, exc: DocumentVersionError) -> None:
    db.rollback()
    message = str(exc)
    if message.endswith("not found"):
        raise HTTPException(status_code=404, detail=message) from exc
    if message.startswith("Unknown event ids"):
        raise HTTPException(status_code=400, detail=message) from exc
    raise HTTPException(status_code=409, detail=message) from exc


def _serialize_version(version: DocumentVersion) -> Dict[str, Any]:
    return {
        "id": str(version.id),
        "version_number": version.version_number,
        "version_label": version.version_label,
        "file_name": version.file_name,
        "file_size": version.file_size,
        "mime_type": version.mime_type,
        "is_current": bool(version.is_current),
        "created_at": version.created_at.isoformat() if version.created_at else None,
    }


def _serialize_document(document: Document) -> Dict[str, Any]:
    current = document.current_version
    document_type = document.document_type
    return {
        "id": str(document.id),
        "name": document.name,
        "description": document.description,
        "is_active": bool(document.is_active),
        "document_type": (
            {
                "id": str(document_type.id),
                "name": document_type.name,
                "requires_confirmation": bool(document_type.requires_confirmation),
            }
            if document_type
            else None
        ),
        "current_version": _serialize_version(current) if current else None,
        "version_count": len(document.versions),
        "event_ids": sorted(str(link.event_id) for link in document.event_links),
        "created_at": document.created_at.isoformat() if document.created_at else None,
    }


def _get_document(db: Session, document_id: uuid.UUID) -> Document:
    document = db.get(Document, document_id)
    if document is None:
        raise HTTPException(status_code=404, detail="Document not found")
    return document


@router.get("")
def list_documents(
    include_inactive: bool = False,
    context: AuthContext = Depends(require_admin),
    db: Session = Depends(get_db),
):
    stmt = select(Document).order_by(Document.name.asc())
    if not include_inactive:
        stmt = stmt.where(Document.is_active.is_(True))
    documents = db.execute(stmt).scalars().unique().all()
    return {"items": [_serialize_document(document) for document in documents]}


@router.post("/upload", status_code=201)
def upload_document(
    name: str = Form(...),
    description: Optional[str] = Form(None),
    document_type_id: Optional[uuid.UUID] = Form(None),
    version_label: Optional[str] = Form(None),
    event_ids: Optional[str] = Form(None),
    file: UploadFile = File(...),
    context: AuthContext = Depends(require_admin),
    db: Session = Depends(get_db),
):
    upload = _to_upload(file)
    storage = get_storage_service()
    try:
        document = create_document(
            db,
            storage,
            name=name.strip(),
            upload=upload,
            description=description,
            document_type_id=document_type_id,
            version_label=version_label,
            created_by=context.user.id,
            event_ids=_parse_uuid_list(event_ids),
        )
    except DocumentVersionError as exc:
        _raise_version_error(db, exc)
    except StorageError as exc:
        db.rollback()
        logger.error("Document upload failed: filename=%s error=%s", upload.filename, exc)
        raise HTTPException(status_code=502, detail="Could not store the file. Please try again.") from exc

    db.commit()
    db.refresh(document)
    return _serialize_document(document)


@router.post("/{document_id}/versions", status_code=201)
def upload_document_version(
    document_id: uuid.UUID,
    version_label: Optional[str] = Form(None),
    make_current: bool = Form(True),
    file: UploadFile = File(...),
    context: AuthContext = Depends(require_admin),
    db: Session = Depends(get_db),
):
    upload = _to_upload(file)
    storage = get_storage_service()
    try:
        version = upload_new_version(
            db,
            storage,
            document_id,
            upload=upload,
            version_label=version_label,
            uploaded_by=context.user.id,
            make_current=make_current,
        )
    except DocumentVersionError as exc:
        _raise_version_error(db, exc)
    except StorageError as exc:
        db.rollback()
        logger.error("Version upload failed: document_id=%s error=%s", document_id, exc)
        raise HTTPException(status_code=502, detail="Could not store the file. Please try again.") from exc

    db.commit()
    db.refresh(version)
    return _serialize_version(version)


@router.get("/{document_id}/versions")
def get_document_versions(
    document_id: uuid.UUID,
    context: AuthContext = Depends(require_admin),
    db: Session = Depends(get_db),
):
    _get_document(db, document_id)
    return {"items": [_serialize_version(version) for version in list_versions(db, document_id)]}


@router.post("/{document_id}/versions/{version_id}/current")
def make_version_current(
    document_id: uuid.UUID,
    version_id: uuid.UUID,
    context: AuthContext = Depends(require_admin),
    db: Session = Depends(get_db),
):
    try:
        version = set_current_version(db, document_id, version_id, actor_user_id=context.user.id)
    except DocumentVersionError as exc:
        _raise_version_error(db, exc)
    db.commit()
    db.refresh(version)
    return _serialize_version(version)


@router.get("/{document_id}/versions/{version_id}/download")
def download_version(
    document_id: uuid.UUID,
    version_id: uuid.UUID,
    context: AuthContext = Depends(require_admin),
    db: Session = Depends(get_db),
):
    version = db.get(DocumentVersion, version_id)
    if version is None or version.document_id != document_id:
        raise HTTPException(status_code=404, detail="Version not found")
    try:
        url = get_storage_service().public_url(version.file_path)
    except StorageError as exc:
        raise HTTPException(status_code=502, detail="Document storage unavailable") from exc
    return {"url": url, "file_name": version.file_name}


@router.put("/{document_id}/events")
def replace_document_events(
    document_id: uuid.UUID,
    payload: AssignEventsRequest,
    context: AuthContext = Depends(require_admin),
    db: Session = Depends(get_db),
):
    try:
        event_ids = assign_document_events(db, document_id, payload.event_ids, actor_user_id=context.user.id)
    except DocumentVersionError as exc:
        _raise_version_error(db, exc)
    db.commit()
    return {"document_id": str(document_id), "event_ids": [str(event_id) for event_id in event_ids]}


@router.patch("/{document_id}/active")
def update_document_active(
    document_id: uuid.UUID,
    payload: ActiveRequest,
    context: AuthContext = Depends(require_admin),
    db: Session = Depends(get_db),
):
    try:
        document = set_document_active(db, document_id, payload.is_active)
    except DocumentVersionError as exc:
        _raise_version_error(db, exc)
    db.commit()
    db.refresh(document)
    return _serialize_document(document)
