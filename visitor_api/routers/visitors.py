from __future__ import annotations

import os
import uuid

from fastapi import APIRouter, Depends, File, HTTPException, UploadFile
from sqlalchemy import select
from sqlalchemy.orm import Session

from ..dependencies.auth import AuthContext, require_admin
from ..dependencies.db import get_db
from ..models.confirmations import VisitorConfirmation
from ..models.documents import DocumentVersion
from ..models.visitors import Visitor
from ..services.confirmations import is_fully_confirmed, resolve_confirmation_status
from ..services.visitor_import import import_visitors
from .documents import read_upload

router = APIRouter(prefix="/visitors")

_XLSX_EXTENSIONS = {".xlsx", ".xlsm"}


@router.post("/import")
def import_visitor_workbook(
    file: UploadFile = File(...),
    context: AuthContext = Depends(require_admin),
    db: Session = Depends(get_db),
):
    if not file.filename:
        raise HTTPException(status_code=400, detail="Filename required")
    if os.path.splitext(file.filename)[1].lower() not in _XLSX_EXTENSIONS:
        raise HTTPException(status_code=400, detail="Please upload an Excel (.xlsx) file.")

    content = read_upload(file)
    result = import_visitors(db, content, actor_user_id=context.user.id)
    db.commit()
    return result.as_dict()


@router.get("/{visitor_id}/events/{event_id}/confirmations")
def get_visitor_confirmations(
    visitor_id: uuid.UUID,
    event_id: uuid.UUID,
    context: AuthContext = Depends(require_admin),
    db: Session = Depends(get_db),
):
    visitor = db.get(Visitor, visitor_id)
    if visitor is None:
        raise HTTPException(status_code=404, detail="Visitor not found")

    status = resolve_confirmation_status(db, visitor_id, event_id)
    # full history, superseded versions included
    history = db.execute(
        select(VisitorConfirmation, DocumentVersion.version_number, DocumentVersion.is_current)
        .join(DocumentVersion, DocumentVersion.id == VisitorConfirmation.document_version_id)
        .where(VisitorConfirmation.visitor_id == visitor_id, VisitorConfirmation.event_id == event_id)
        .order_by(VisitorConfirmation.confirmed_at.desc())
    ).all()

    return {
        "visitor_id": str(visitor_id),
        "event_id": str(event_id),
        "visitor_name": visitor.full_name,
        "assigned": status.assigned,
        "rsvp_status": status.rsvp_status.value if status.rsvp_status else None,
        "required_count": status.required_count,
        "confirmed_count": status.confirmed_count,
        "fully_confirmed": is_fully_confirmed(status),
        "documents": [
            {
                "document_id": str(item.document.document_id),
                "name": item.document.document_name,
                "state": item.state.value,
                "current_version_number": item.document.version_number,
                "confirmed_version_number": item.confirmed_version_number,
            }
            for item in status.documents
        ],
        "history": [
            {
                "id": str(confirmation.id),
                "document_id": str(confirmation.document_id),
                "version_number": version_number,
                "is_current_version": bool(is_current),
                "confirmed_at": confirmation.confirmed_at.isoformat() if confirmation.confirmed_at else None,
            }
            for confirmation, version_number, is_current in history
        ],
    }
