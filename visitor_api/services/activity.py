from __future__ import annotations

import uuid
from typing import Any

from sqlalchemy.orm import Session

from ..models.activity_log import ActivityLog


def _jsonable(value: Any) -> Any:
    if isinstance(value, uuid.UUID):
        return str(value)
    if isinstance(value, (list, tuple, set)):
        return [_jsonable(item) for item in value]
    if isinstance(value, dict):
        return {key: _jsonable(item) for key, item in value.items()}
    if hasattr(value, "isoformat"):
        return value.isoformat()
    return value


def log_activity(
    db: Session,
    type: str,
    *,
    actor_user_id: uuid.UUID | None = None,
    document_id: uuid.UUID | None = None,
    event_id: uuid.UUID | None = None,
    visitor_id: uuid.UUID | None = None,
    **data: Any,
) -> ActivityLog:
    entry = ActivityLog(
        actor_user_id=actor_user_id,
        document_id=document_id,
        event_id=event_id,
        visitor_id=visitor_id,
        type=type,
        data=_jsonable(data),
    )
    db.add(entry)
    return entry
