"""Visitors, events, versioned documents and confirmations"""

from __future__ import annotations

import sqlalchemy as sa
from alembic import op
from sqlalchemy.dialects import postgresql


revision = "20250901_0001_initial_schema"
down_revision = None
branch_labels = None
depends_on = None


rsvp_status_enum = postgresql.ENUM(
    "invited", "confirmed", "declined", "attended", "cancelled", name="rsvp_status", create_type=False
)


def _uuid_pk() -> sa.Column:
    return sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True, nullable=False)


def _fk(name: str, target: str, *, ondelete: str, nullable: bool) -> sa.Column:
    return sa.Column(name, postgresql.UUID(as_uuid=True), sa.ForeignKey(target, ondelete=ondelete), nullable=nullable)


def _timestamps() -> list[sa.Column]:
    return [
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
    ]


def upgrade() -> None:
    rsvp_status_enum.create(op.get_bind(), checkfirst=True)

    op.create_table(
        "users",
        _uuid_pk(),
        sa.Column("email", sa.String(), nullable=False),
        sa.Column("first_name", sa.String(), nullable=True),
        sa.Column("last_name", sa.String(), nullable=True),
        sa.Column("is_admin", sa.Boolean(), nullable=False, server_default=sa.text("false")),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.text("true")),
        sa.Column("last_login_at", sa.DateTime(timezone=True), nullable=True),
        *_timestamps(),
        sa.UniqueConstraint("email", name="uq_users_email"),
    )
    op.create_index("ix_users_email", "users", ["email"], unique=False)

    op.create_table(
        "login_tokens",
        _uuid_pk(),
        _fk("user_id", "users.id", ondelete="CASCADE", nullable=False),
        sa.Column("token_hash", sa.String(), nullable=False),
        sa.Column("email", sa.String(), nullable=False),
        sa.Column("purpose", sa.String(), nullable=False, server_default="login"),
        sa.Column("expires_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("consumed_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.UniqueConstraint("token_hash", name="uq_login_tokens_token_hash"),
    )

    op.create_table(
        "user_sessions",
        _uuid_pk(),
        _fk("user_id", "users.id", ondelete="CASCADE", nullable=False),
        sa.Column("session_token_hash", sa.String(), nullable=False),
        sa.Column("user_agent", sa.String(), nullable=True),
        sa.Column("ip_address", sa.String(), nullable=True),
        sa.Column("expires_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("revoked_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.UniqueConstraint("session_token_hash", name="uq_user_sessions_token"),
    )

    op.create_table(
        "organizations",
        _uuid_pk(),
        sa.Column("name", sa.String(), nullable=False),
        sa.Column("address_line_1", sa.String(), nullable=True),
        sa.Column("address_line_2", sa.String(), nullable=True),
        sa.Column("city", sa.String(), nullable=True),
        sa.Column("state_province", sa.String(), nullable=True),
        sa.Column("postal_code", sa.String(), nullable=True),
        sa.Column("country", sa.String(), nullable=True, server_default="US"),
        sa.Column("main_contact_name", sa.String(), nullable=True),
        sa.Column("main_contact_email", sa.String(), nullable=True),
        sa.Column("main_contact_phone", sa.String(), nullable=True),
        *_timestamps(),
        sa.UniqueConstraint("name", name="uq_organizations_name"),
    )

    op.create_table(
        "events",
        _uuid_pk(),
        sa.Column("name", sa.String(), nullable=False),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("start_date", sa.Date(), nullable=True),
        sa.Column("end_date", sa.Date(), nullable=True),
        sa.Column("location", sa.String(), nullable=True),
        _fk("sponsor_organization_id", "organizations.id", ondelete="SET NULL", nullable=True),
        *_timestamps(),
    )
    op.create_index("ix_events_start_date", "events", ["start_date"], unique=False)

    op.create_table(
        "document_types",
        _uuid_pk(),
        sa.Column("name", sa.String(), nullable=False),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("requires_confirmation", sa.Boolean(), nullable=False, server_default=sa.text("true")),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.UniqueConstraint("name", name="uq_document_types_name"),
    )

    op.create_table(
        "documents",
        _uuid_pk(),
        sa.Column("name", sa.String(), nullable=False),
        sa.Column("description", sa.Text(), nullable=True),
        _fk("document_type_id", "document_types.id", ondelete="SET NULL", nullable=True),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.text("true")),
        _fk("created_by", "users.id", ondelete="SET NULL", nullable=True),
        *_timestamps(),
    )

    op.create_table(
        "document_versions",
        _uuid_pk(),
        _fk("document_id", "documents.id", ondelete="CASCADE", nullable=False),
        sa.Column("version_number", sa.Integer(), nullable=False),
        sa.Column("version_label", sa.String(), nullable=True),
        sa.Column("file_path", sa.String(), nullable=False),
        sa.Column("file_name", sa.String(), nullable=False),
        sa.Column("file_size", sa.Integer(), nullable=True),
        sa.Column("mime_type", sa.String(), nullable=True),
        sa.Column("is_current", sa.Boolean(), nullable=False, server_default=sa.text("false")),
        _fk("uploaded_by", "users.id", ondelete="SET NULL", nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.UniqueConstraint("document_id", "version_number", name="uq_document_versions_number"),
    )
    op.create_index("ix_document_versions_document_id", "document_versions", ["document_id"], unique=False)
    op.create_index(
        "uq_document_versions_current",
        "document_versions",
        ["document_id"],
        unique=True,
        postgresql_where=sa.text("is_current"),
    )

    op.create_table(
        "document_events",
        _uuid_pk(),
        _fk("document_id", "documents.id", ondelete="CASCADE", nullable=False),
        _fk("event_id", "events.id", ondelete="CASCADE", nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.UniqueConstraint("document_id", "event_id", name="uq_document_events_pair"),
    )
    op.create_index("ix_document_events_document_id", "document_events", ["document_id"], unique=False)
    op.create_index("ix_document_events_event_id", "document_events", ["event_id"], unique=False)

    op.create_table(
        "visitors",
        _uuid_pk(),
        sa.Column("first_name", sa.String(), nullable=False),
        sa.Column("last_name", sa.String(), nullable=False),
        sa.Column("email", sa.String(), nullable=True),
        sa.Column("phone", sa.String(), nullable=True),
        _fk("organization_id", "organizations.id", ondelete="SET NULL", nullable=True),
        _fk("user_id", "users.id", ondelete="SET NULL", nullable=True),
        *_timestamps(),
        sa.UniqueConstraint("user_id", name="uq_visitors_user_id"),
    )
    op.create_index("ix_visitors_email", "visitors", ["email"], unique=False)

    op.create_table(
        "event_visitors",
        _uuid_pk(),
        _fk("event_id", "events.id", ondelete="CASCADE", nullable=False),
        _fk("visitor_id", "visitors.id", ondelete="CASCADE", nullable=False),
        sa.Column("rsvp_status", rsvp_status_enum, nullable=False, server_default="invited"),
        *_timestamps(),
        sa.UniqueConstraint("event_id", "visitor_id", name="uq_event_visitors_event_visitor"),
    )
    op.create_index("ix_event_visitors_event_id", "event_visitors", ["event_id"], unique=False)
    op.create_index("ix_event_visitors_visitor_id", "event_visitors", ["visitor_id"], unique=False)

    op.create_table(
        "visitor_confirmations",
        _uuid_pk(),
        _fk("visitor_id", "visitors.id", ondelete="CASCADE", nullable=False),
        _fk("event_id", "events.id", ondelete="CASCADE", nullable=False),
        _fk("document_id", "documents.id", ondelete="CASCADE", nullable=False),
        _fk("document_version_id", "document_versions.id", ondelete="CASCADE", nullable=False),
        sa.Column("confirmed_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
    )
    op.create_index(
        "ix_visitor_confirmations_visitor_event",
        "visitor_confirmations",
        ["visitor_id", "event_id"],
        unique=False,
    )

    op.create_table(
        "activity_log",
        _uuid_pk(),
        _fk("actor_user_id", "users.id", ondelete="SET NULL", nullable=True),
        _fk("document_id", "documents.id", ondelete="SET NULL", nullable=True),
        _fk("event_id", "events.id", ondelete="SET NULL", nullable=True),
        _fk("visitor_id", "visitors.id", ondelete="SET NULL", nullable=True),
        sa.Column("type", sa.String(), nullable=False),
        sa.Column("data", sa.JSON(), nullable=False),
        sa.Column("at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=True),
    )
    op.create_index("ix_activity_log_type", "activity_log", ["type"], unique=False)


def downgrade() -> None:
    op.drop_index("ix_activity_log_type", table_name="activity_log")
    op.drop_table("activity_log")
    op.drop_index("ix_visitor_confirmations_visitor_event", table_name="visitor_confirmations")
    op.drop_table("visitor_confirmations")
    op.drop_index("ix_event_visitors_visitor_id", table_name="event_visitors")
    op.drop_index("ix_event_visitors_event_id", table_name="event_visitors")
    op.drop_table("event_visitors")
    op.drop_index("ix_visitors_email", table_name="visitors")
    op.drop_table("visitors")
    op.drop_index("ix_document_events_event_id", table_name="document_events")
    op.drop_index("ix_document_events_document_id", table_name="document_events")
    op.drop_table("document_events")
    op.drop_index("uq_document_versions_current", table_name="document_versions")
    op.drop_index("ix_document_versions_document_id", table_name="document_versions")
    op.drop_table("document_versions")
    op.drop_table("documents")
    op.drop_table("document_types")
    op.drop_index("ix_events_start_date", table_name="events")
    op.drop_table("events")
    op.drop_table("organizations")
    op.drop_table("user_sessions")
    op.drop_table("login_tokens")
    op.drop_index("ix_users_email", table_name="users")
    op.drop_table("users")
    rsvp_status_enum.drop(op.get_bind(), checkfirst=True)
