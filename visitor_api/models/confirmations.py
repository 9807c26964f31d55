from __future__ import annotations

import uuid

from sqlalchemy import Column, DateTime, ForeignKey, Index, Uuid
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func

from .base import Base


class VisitorConfirmation(Base):
    """A visitor's acknowledgment of one document version for one event.

    Rows are never updated or deleted. A confirmation whose version is no longer
    the document's current version stays queryable and is reported as stale.
    """

    __tablename__ = "visitor_confirmations"
    __table_args__ = (
        Index("ix_visitor_confirmations_visitor_event", "visitor_id", "event_id"),
    )

    id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)
    visitor_id = Column(Uuid(as_uuid=True), ForeignKey("visitors.id", ondelete="CASCADE"), nullable=False)
    event_id = Column(Uuid(as_uuid=True), ForeignKey("events.id", ondelete="CASCADE"), nullable=False)
    document_id = Column(Uuid(as_uuid=True), ForeignKey("documents.id", ondelete="CASCADE"), nullable=False)
    document_version_id = Column(
        Uuid(as_uuid=True), ForeignKey("document_versions.id", ondelete="CASCADE"), nullable=False
    )
    confirmed_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)

    document_version = relationship("DocumentVersion", lazy="joined")
