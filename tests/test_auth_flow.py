from __future__ import annotations

from datetime import datetime, timedelta, timezone
from http.cookies import SimpleCookie

import pytest

from visitor_api.config import settings
from visitor_api.db.session import SessionLocal
from visitor_api.models import LoginToken, UserSession, Visitor
from visitor_api.services.auth import AuthService


@pytest.fixture()
def fresh_cookies(client):
    client.cookies.clear()
    yield client
    client.cookies.clear()


def _signed_login(email: str, redirect: str = "/profile") -> str:
    with SessionLocal() as session:
        service = AuthService(session)
        user = service.get_or_create_user(email)
        raw_token = f"unit-test-token-{email}"
        login_token = LoginToken(
            user_id=user.id,
            token_hash=AuthService.hash_token(raw_token),
            email=user.email,
            purpose="login",
            expires_at=datetime.now(timezone.utc) + timedelta(minutes=10),
        )
        session.add(login_token)
        session.commit()
        return service.serializer.dumps(
            {
                "token": raw_token,
                "user_id": str(user.id),
                "login_token_id": str(login_token.id),
                "redirect": redirect,
            }
        )


@pytest.mark.integration
def test_magic_link_request_endpoint(fresh_cookies, monkeypatch):
    called: dict[str, str] = {}

    def fake_request_magic_link(self, email: str, **kwargs) -> str:  # type: ignore[override]
        called["email"] = email
        called["redirect"] = kwargs.get("redirect_path")
        return "https://app.example.com/auth/callback?token=fake"

    monkeypatch.setattr(AuthService, "request_magic_link", fake_request_magic_link)

    response = fresh_cookies.post(
        "/auth/magic-link",
        json={"email": "visitor@example.com", "redirect_path": "/events"},
    )

    assert response.status_code == 200
    assert response.json() == {"status": "sent"}
    assert called == {"email": "visitor@example.com", "redirect": "/events"}


@pytest.mark.integration
def test_magic_link_request_rejects_invalid_email(fresh_cookies):
    response = fresh_cookies.post("/auth/magic-link", json={"email": "not-an-email"})
    assert response.status_code == 422


@pytest.mark.integration
def test_magic_link_request_creates_login_token(fresh_cookies):
    response = fresh_cookies.post("/auth/magic-link", json={"email": "New.Person@Example.com"})
    assert response.status_code == 200

    with SessionLocal() as session:
        tokens = session.query(LoginToken).all()
        assert [token.email for token in tokens] == ["new.person@example.com"]
        assert tokens[0].consumed_at is None


@pytest.mark.integration
def test_callback_links_visitor_and_me_endpoint(fresh_cookies):
    client = fresh_cookies
    with SessionLocal() as session:
        session.add(Visitor(first_name="Vera", last_name="Visitor", email="Vera@Example.com"))
        session.commit()

    signed = _signed_login("vera@example.com", redirect="/events")

    response = client.get(f"/auth/callback?token={signed}")
    assert response.status_code == 200
    payload = response.json()
    assert payload["user"]["email"] == "vera@example.com"
    assert payload["user"]["first_name"] == "Vera"
    assert payload["visitor"]["first_name"] == "Vera"
    assert payload["redirect_path"] == "/events"
    assert settings.cookie_name in client.cookies

    me_response = client.get("/auth/me")
    assert me_response.status_code == 200
    me_data = me_response.json()
    assert me_data["user"]["id"] == payload["user"]["id"]
    assert me_data["visitor"]["id"] == payload["visitor"]["id"]

    patch_response = client.patch("/auth/me", json={"first_name": " Veronica ", "last_name": "Visitor"})
    assert patch_response.status_code == 200
    assert patch_response.json()["user"]["first_name"] == "Veronica"


@pytest.mark.integration
def test_callback_token_cannot_be_reused(fresh_cookies):
    signed = _signed_login("once@example.com")

    assert fresh_cookies.get(f"/auth/callback?token={signed}").status_code == 200
    fresh_cookies.cookies.clear()

    second = fresh_cookies.get(f"/auth/callback?token={signed}")
    assert second.status_code == 400
    assert second.json()["detail"] == "Login token not found or already used"


@pytest.mark.integration
def test_callback_rejects_tampered_token(fresh_cookies):
    response = fresh_cookies.get("/auth/callback?token=not-a-signed-token")
    assert response.status_code == 400
    assert response.json()["detail"] == "Invalid login token"


@pytest.mark.integration
def test_logout_revokes_session(client):
    token = "logout-session-token"
    with SessionLocal() as session:
        user = AuthService(session).get_or_create_user("logout@example.com")
        session.add(
            UserSession(
                user_id=user.id,
                session_token_hash=AuthService.hash_token(token),
                expires_at=datetime.now(timezone.utc) + timedelta(hours=4),
            )
        )
        session.commit()

    client.cookies.clear()
    client.cookies.set(settings.cookie_name, token)
    try:
        response = client.post("/auth/logout")
    finally:
        client.cookies.clear()
    assert response.status_code == 200
    assert response.json() == {"status": "logged_out"}
    cookies = SimpleCookie()
    cookies.load(response.headers.get("set-cookie", ""))
    morsel = cookies.get(settings.cookie_name)
    assert morsel is not None
    assert morsel.value == ""
    assert morsel["max-age"] == "0"

    with SessionLocal() as session:
        persisted = (
            session.query(UserSession)
            .filter(UserSession.session_token_hash == AuthService.hash_token(token))
            .one()
        )
        assert persisted.revoked_at is not None

    client.cookies.set(settings.cookie_name, token)
    try:
        assert client.get("/auth/me").status_code == 401
    finally:
        client.cookies.clear()
