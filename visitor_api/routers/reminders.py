from __future__ import annotations

import logging
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy.orm import Session

from ..config import settings
from ..dependencies.auth import AuthContext, require_admin
from ..dependencies.db import get_db
from ..services.confirmations import find_outstanding_confirmations
from ..services.reminders import ReminderDispatchError, send_confirmation_reminders

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/reminders")


def _window(window_days: Optional[int]) -> Optional[int]:
    return window_days if window_days is not None else settings.reminder_window_days


@router.get("/outstanding")
def list_outstanding(
    window_days: Optional[int] = Query(default=None, ge=0),
    context: AuthContext = Depends(require_admin),
    db: Session = Depends(get_db),
):
    outstanding = find_outstanding_confirmations(db, window_days=_window(window_days))
    return {
        "items": [
            {
                "visitor_id": str(item.visitor.id),
                "visitor_name": item.visitor.full_name,
                "email": item.visitor.email,
                "event_id": str(item.event.id),
                "event_name": item.event.name,
                "rsvp_status": item.rsvp_status.value,
                "required_count": item.required_count,
                "confirmed_count": item.confirmed_count,
                "missing_document_ids": [str(doc_id) for doc_id in item.missing_document_ids],
                "stale_document_ids": [str(doc_id) for doc_id in item.stale_document_ids],
            }
            for item in outstanding
        ]
    }


@router.post("/send")
def send_reminders(
    window_days: Optional[int] = Query(default=None, ge=0),
    context: AuthContext = Depends(require_admin),
    db: Session = Depends(get_db),
):
    try:
        stats = send_confirmation_reminders(db, window_days=_window(window_days))
    except ReminderDispatchError as exc:
        # keep the reminders_failed audit row
        db.commit()
        raise HTTPException(status_code=502, detail="Failed to send reminders") from exc
    db.commit()
    return {"status": "sent", **stats}
