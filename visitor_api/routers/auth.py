from __future__ import annotations

from typing import Optional

from fastapi import APIRouter, Depends, Request, Response
from pydantic import BaseModel, EmailStr, Field
from sqlalchemy.orm import Session

from ..config import settings
from ..dependencies.auth import AuthContext, clear_session_cookie, finalize_login, issue_magic_link, require_auth
from ..dependencies.db import get_db
from ..models import User, Visitor
from ..services.auth import AuthService

router = APIRouter(prefix="/auth", tags=["auth"])


class MagicLinkRequest(BaseModel):
    email: EmailStr
    redirect_path: str | None = Field(default="/profile")


class SessionPayload(BaseModel):
    user: dict
    visitor: Optional[dict] = None
    redirect_path: str | None = None


class UpdateProfileRequest(BaseModel):
    first_name: str = Field(..., min_length=1, max_length=100)
    last_name: str = Field(..., min_length=1, max_length=100)


def _serialize_user(user: User) -> dict:
    return {
        "id": str(user.id),
        "email": user.email,
        "first_name": user.first_name,
        "last_name": user.last_name,
        "is_admin": bool(user.is_admin),
        "last_login_at": user.last_login_at.isoformat() if user.last_login_at else None,
    }


def _serialize_visitor(visitor: Visitor | None) -> dict | None:
    if visitor is None:
        return None
    return {
        "id": str(visitor.id),
        "first_name": visitor.first_name,
        "last_name": visitor.last_name,
        "email": visitor.email,
        "phone": visitor.phone,
        "organization_id": str(visitor.organization_id) if visitor.organization_id else None,
    }


def _payload(context: AuthContext, redirect_path: str | None = None) -> SessionPayload:
    return SessionPayload(
        user=_serialize_user(context.user),
        visitor=_serialize_visitor(context.visitor),
        redirect_path=redirect_path,
    )


@router.post("/magic-link")
def send_magic_link(payload: MagicLinkRequest, request: Request, db: Session = Depends(get_db)) -> dict:
    issue_magic_link(payload.email, request, db, payload.redirect_path)
    return {"status": "sent"}


@router.get("/callback")
def magic_link_callback(token: str, response: Response, db: Session = Depends(get_db)) -> SessionPayload:
    context, redirect_path = finalize_login(response, token, db)
    return _payload(context, redirect_path)


@router.get("/me")
def get_current_user(context: AuthContext = Depends(require_auth)) -> SessionPayload:
    return _payload(context)


@router.patch("/me")
def update_current_user(
    payload: UpdateProfileRequest,
    context: AuthContext = Depends(require_auth),
    db: Session = Depends(get_db),
) -> SessionPayload:
    user = db.merge(context.user)
    user.first_name = payload.first_name.strip()
    user.last_name = payload.last_name.strip()
    db.commit()
    db.refresh(user)
    context.user = user
    return _payload(context)


@router.post("/logout")
def logout_user(
    request: Request,
    response: Response,
    db: Session = Depends(get_db),
) -> dict:
    raw_token = request.cookies.get(settings.cookie_name)
    if raw_token:
        AuthService(db).revoke_session(raw_token)
    clear_session_cookie(response)
    return {"status": "logged_out"}
