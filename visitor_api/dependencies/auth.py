from __future__ import annotations

from dataclasses import dataclass
from datetime import timedelta
from typing import Optional

from fastapi import Depends, HTTPException, Request, Response, status
from sqlalchemy.orm import Session

from ..config import settings
from ..db.session import SessionLocal
from ..models import User, UserSession, Visitor
from ..services.auth import AuthError, AuthService


@dataclass
class AuthContext:
    user: User
    session: UserSession
    visitor: Optional[Visitor] = None

    @property
    def is_admin(self) -> bool:
        return bool(self.user.is_admin)


def require_auth(request: Request) -> AuthContext:
    raw_token = request.cookies.get(settings.cookie_name)
    with SessionLocal() as db:
        service = AuthService(db)
        row = service.session_from_token(raw_token or "")
        if not row:
            raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Authentication required")

        session, user = row
        visitor = db.query(Visitor).filter(Visitor.user_id == user.id).one_or_none()
        request.state.user_id = str(user.id)
        if visitor is not None:
            request.state.visitor_id = str(visitor.id)
        # detach objects before session closes
        db.expunge_all()
        return AuthContext(user=user, session=session, visitor=visitor)


def require_admin(context: AuthContext = Depends(require_auth)) -> AuthContext:
    if not context.is_admin:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Administrator access required")
    return context


def require_visitor(context: AuthContext = Depends(require_auth)) -> AuthContext:
    if context.visitor is None:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="No visitor profile is linked to this account")
    return context


def issue_magic_link(
    email: str,
    request: Request,
    db: Session,
    redirect_path: str | None = None,
) -> str:
    service = AuthService(db)
    try:
        return service.request_magic_link(
            email=email,
            request_ip=request.client.host if request.client else None,
            user_agent=request.headers.get("user-agent"),
            redirect_path=redirect_path,
        )
    except AuthError as exc:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc)) from exc


def finalize_login(response: Response, signed_token: str, db: Session) -> tuple[AuthContext, str]:
    service = AuthService(db)
    try:
        user, session_token, redirect_path = service.redeem_magic_link(signed_token)
    except AuthError as exc:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc)) from exc

    attach_session_cookie(response, session_token)
    row = service.session_from_token(session_token)
    assert row is not None
    session, _ = row
    visitor = db.query(Visitor).filter(Visitor.user_id == user.id).one_or_none()
    return AuthContext(user=user, session=session, visitor=visitor), redirect_path


def attach_session_cookie(response: Response, raw_token: str) -> None:
    response.set_cookie(
        key=settings.cookie_name,
        value=raw_token,
        httponly=True,
        secure=settings.environment == "production",
        samesite="lax",
        domain=settings.cookie_domain,
        path="/",
        max_age=int(timedelta(hours=settings.session_ttl_hours).total_seconds()),
    )


def clear_session_cookie(response: Response) -> None:
    response.delete_cookie(
        key=settings.cookie_name,
        domain=settings.cookie_domain,
        path="/",
    )
