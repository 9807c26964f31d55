from __future__ import annotations

import uuid

from sqlalchemy import Column, Date, DateTime, ForeignKey, String, Text, Uuid
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func

from .base import Base


class Event(Base):
    __tablename__ = "events"

    id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)
    name = Column(String, nullable=False)
    description = Column(Text, nullable=True)
    start_date = Column(Date, nullable=True, index=True)
    end_date = Column(Date, nullable=True)
    location = Column(String, nullable=True)
    sponsor_organization_id = Column(
        Uuid(as_uuid=True), ForeignKey("organizations.id", ondelete="SET NULL"), nullable=True
    )
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    updated_at = Column(
        DateTime(timezone=True), server_default=func.now(), onupdate=func.now(), nullable=False
    )

    sponsor_organization = relationship("Organization", lazy="joined")

    @property
    def label(self) -> str:
        """Name plus start date, as shown in the import template dropdown."""
        if not self.start_date:
            return self.name
        return f"{self.name} ({format_event_date(self.start_date)})"


def format_event_date(value) -> str:
    return f"{value.strftime('%b')} {value.day}, {value.year}"
