from __future__ import annotations

import logging
import uuid
from typing import Any, Dict, Optional

from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel
from sqlalchemy import select
from sqlalchemy.orm import Session

from ..dependencies.auth import AuthContext, require_visitor
from ..dependencies.db import get_db
from ..models.events import Event
from ..models.visitors import EventVisitor
from ..services.confirmations import (
    ConfirmationError,
    ConfirmationStatus,
    DocumentConfirmationState,
    is_fully_confirmed,
    record_confirmation,
    resolve_confirmation_status,
)
from ..services.storage import StorageError, get_storage_service

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/me/events")


class ConfirmRequest(BaseModel):
    version_id: Optional[uuid.UUID] = None


def _serialize_event(event: Event) -> Dict[str, Any]:
    return {
        "id": str(event.id),
        "name": event.name,
        "description": event.description,
        "start_date": event.start_date.isoformat() if event.start_date else None,
        "end_date": event.end_date.isoformat() if event.end_date else None,
        "location": event.location,
        "sponsor_organization": event.sponsor_organization.name if event.sponsor_organization else None,
    }


def _serialize_summary(status: ConfirmationStatus) -> Dict[str, Any]:
    return {
        "rsvp_status": status.rsvp_status.value if status.rsvp_status else None,
        "required_count": status.required_count,
        "confirmed_count": status.confirmed_count,
        "stale_count": sum(1 for flag in status.stale_flags.values() if flag),
        "fully_confirmed": is_fully_confirmed(status),
    }


def _serialize_document_state(item: DocumentConfirmationState, download_url: Optional[str]) -> Dict[str, Any]:
    document = item.document
    return {
        "document_id": str(document.document_id),
        "name": document.document_name,
        "current_version_id": str(document.current_version_id),
        "version_number": document.version_number,
        "version_label": document.version_label,
        "state": item.state.value,
        "is_stale": item.is_stale,
        "confirmed_version_number": item.confirmed_version_number,
        "confirmed_at": item.confirmed_at.isoformat() if item.confirmed_at else None,
        "download_url": download_url,
    }


def _assigned_status(db: Session, visitor_id: uuid.UUID, event_id: uuid.UUID) -> ConfirmationStatus:
    status = resolve_confirmation_status(db, visitor_id, event_id)
    if not status.assigned:
        raise HTTPException(status_code=404, detail="Event not found")
    return status


@router.get("")
def list_my_events(
    context: AuthContext = Depends(require_visitor),
    db: Session = Depends(get_db),
):
    assignments = (
        db.execute(
            select(EventVisitor)
            .join(Event, Event.id == EventVisitor.event_id)
            .where(EventVisitor.visitor_id == context.visitor.id)
            .order_by(Event.start_date.asc(), Event.name.asc())
        )
        .scalars()
        .unique()
        .all()
    )

    items = []
    for assignment in assignments:
        status = resolve_confirmation_status(db, context.visitor.id, assignment.event_id)
        items.append({**_serialize_event(assignment.event), **_serialize_summary(status)})
    return {"items": items}


@router.get("/{event_id}/documents")
def list_event_documents(
    event_id: uuid.UUID,
    context: AuthContext = Depends(require_visitor),
    db: Session = Depends(get_db),
):
    status = _assigned_status(db, context.visitor.id, event_id)

    storage = get_storage_service() if status.documents else None
    documents = []
    for item in status.documents:
        download_url = None
        if storage is not None and item.document.file_path:
            try:
                download_url = storage.public_url(item.document.file_path)
            except StorageError:
                logger.warning("Presigned URL failed: document_id=%s", item.document.document_id, exc_info=True)
        documents.append(_serialize_document_state(item, download_url))

    return {"event_id": str(event_id), **_serialize_summary(status), "documents": documents}


@router.post("/{event_id}/documents/{document_id}/confirm")
def confirm_document(
    event_id: uuid.UUID,
    document_id: uuid.UUID,
    payload: Optional[ConfirmRequest] = None,
    context: AuthContext = Depends(require_visitor),
    db: Session = Depends(get_db),
):
    version_id = payload.version_id if payload else None
    try:
        result = record_confirmation(
            db,
            context.visitor.id,
            event_id,
            document_id,
            version_id,
            actor_user_id=context.user.id,
        )
    except ConfirmationError as exc:
        db.rollback()
        raise HTTPException(status_code=409, detail=str(exc)) from exc

    db.commit()
    return {
        "confirmation_id": str(result.confirmation.id),
        "created": result.created,
        "rsvp_changed": result.rsvp_changed,
        **_serialize_summary(result.status),
    }
