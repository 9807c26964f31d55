#!/usr/bin/env python
"""Utility to mint a local session cookie for manual testing."""

from __future__ import annotations

import argparse
import sys
from pathlib import Path

BASE_DIR = Path(__file__).resolve().parents[1]
if str(BASE_DIR) not in sys.path:
    sys.path.append(str(BASE_DIR))

from visitor_api.config import settings
from visitor_api.db.session import SessionLocal
from visitor_api.services.auth import AuthService


def create_session(email: str, admin: bool) -> str:
    with SessionLocal() as db:
        service = AuthService(db)
        user = service.get_or_create_user(email.strip().lower())
        if admin:
            user.is_admin = True
        visitor = service.link_visitor(user)

        raw_token = service.create_session(user, user_agent="scripts/create_session.py")
        db.commit()

        print("User:", user.email)
        print("Admin:", bool(user.is_admin))
        print("Visitor:", visitor.id if visitor else "-")
        print("\nPaste this cookie into your browser's dev tools:")
        print(f"{settings.cookie_name}={raw_token}")
        return raw_token


def main() -> None:
    parser = argparse.ArgumentParser(description="Create a session cookie for local testing")
    parser.add_argument("email", help="User email to authenticate as")
    parser.add_argument("--admin", action="store_true", help="Grant administrator access")
    args = parser.parse_args()

    create_session(args.email, args.admin)


if __name__ == "__main__":
    main()
