from __future__ import annotations

import uuid
from pathlib import Path

import typer

from .config import settings
from .db.session import SessionLocal
from .services.auth import AuthService
from .services.documents import DocumentVersionError, set_current_version
from .services.visitor_import import import_visitors

app = typer.Typer(help="Visitor document confirmation administrative CLI")


@app.command()
def create_admin(
    email: str = typer.Argument(..., help="Administrator email"),
    first_name: str = typer.Option("", "--first-name", "-f", help="Optional first name"),
    last_name: str = typer.Option("", "--last-name", "-l", help="Optional last name"),
) -> None:
    """Create an administrator, or promote an existing user."""
    db = SessionLocal()
    try:
        user = AuthService(db).get_or_create_user(email.strip().lower())
        user.is_admin = True
        if first_name:
            user.first_name = first_name
        if last_name:
            user.last_name = last_name
        db.commit()
        typer.echo(f"Administrator ready: {user.email} ({user.id})")
    finally:
        db.close()


@app.command()
def send_magic_link(email: str = typer.Argument(...)) -> None:
    """Send a login magic link to an email address."""
    db = SessionLocal()
    try:
        AuthService(db).request_magic_link(email)
        typer.echo(f"Magic link sent to {email}. Check {settings.app_url} callback in inbox")
    finally:
        db.close()


@app.command("import-visitors")
def import_visitors_file(
    path: Path = typer.Argument(..., exists=True, dir_okay=False, readable=True, help="Visitors .xlsx workbook"),
) -> None:
    """Import visitors and event invitations from the spreadsheet template."""
    db = SessionLocal()
    try:
        result = import_visitors(db, path.read_bytes())
        db.commit()
    finally:
        db.close()

    typer.echo(f"Imported {result.success} of {result.total} rows")
    for error in result.errors:
        typer.echo(f"  row {error.row}: {error.first_name} {error.last_name}: {error.reason}", err=True)
    if result.errors:
        raise typer.Exit(code=1)


@app.command("set-current-version")
def set_current(
    document_id: uuid.UUID = typer.Argument(...),
    version_id: uuid.UUID = typer.Argument(...),
) -> None:
    """Make a previously uploaded version the current one."""
    db = SessionLocal()
    try:
        version = set_current_version(db, document_id, version_id)
        db.commit()
        typer.echo(f"Document {document_id} now at version {version.version_number}")
    except DocumentVersionError as exc:
        db.rollback()
        typer.echo(str(exc), err=True)
        raise typer.Exit(code=1) from exc
    finally:
        db.close()


if __name__ == "__main__":
    app()
