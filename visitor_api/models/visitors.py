from __future__ import annotations

import enum
import uuid

from sqlalchemy import Column, DateTime, Enum, ForeignKey, String, UniqueConstraint, Uuid
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func

from .base import Base


class RsvpStatusEnum(str, enum.Enum):
    INVITED = "invited"
    CONFIRMED = "confirmed"
    DECLINED = "declined"
    ATTENDED = "attended"
    CANCELLED = "cancelled"


class Visitor(Base):
    __tablename__ = "visitors"

    id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)
    first_name = Column(String, nullable=False)
    last_name = Column(String, nullable=False)
    email = Column(String, nullable=True, index=True)
    phone = Column(String, nullable=True)
    organization_id = Column(
        Uuid(as_uuid=True), ForeignKey("organizations.id", ondelete="SET NULL"), nullable=True
    )
    user_id = Column(
        Uuid(as_uuid=True), ForeignKey("users.id", ondelete="SET NULL"), nullable=True, unique=True
    )
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    updated_at = Column(
        DateTime(timezone=True), server_default=func.now(), onupdate=func.now(), nullable=False
    )

    organization = relationship("Organization", lazy="joined")

    @property
    def full_name(self) -> str:
        return f"{self.first_name} {self.last_name}".strip()


class EventVisitor(Base):
    __tablename__ = "event_visitors"
    __table_args__ = (UniqueConstraint("event_id", "visitor_id", name="uq_event_visitors_event_visitor"),)

    id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)
    event_id = Column(Uuid(as_uuid=True), ForeignKey("events.id", ondelete="CASCADE"), nullable=False, index=True)
    visitor_id = Column(
        Uuid(as_uuid=True), ForeignKey("visitors.id", ondelete="CASCADE"), nullable=False, index=True
    )
    rsvp_status = Column(
        Enum(
            RsvpStatusEnum,
            name="rsvp_status",
            values_callable=lambda enum: [member.value for member in enum],
        ),
        nullable=False,
        default=RsvpStatusEnum.INVITED,
    )
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    updated_at = Column(
        DateTime(timezone=True), server_default=func.now(), onupdate=func.now(), nullable=False
    )

    event = relationship("Event", lazy="joined")
    visitor = relationship("Visitor", lazy="joined")
