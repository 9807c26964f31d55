from sqlalchemy import JSON, Column, DateTime, ForeignKey, String, Uuid
from sqlalchemy.sql import func
import uuid
from .base import Base


class ActivityLog(Base):
    __tablename__ = "activity_log"

    id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)
    actor_user_id = Column(Uuid(as_uuid=True), ForeignKey("users.id", ondelete="SET NULL"), nullable=True)
    document_id = Column(Uuid(as_uuid=True), ForeignKey("documents.id", ondelete="SET NULL"), nullable=True)
    event_id = Column(Uuid(as_uuid=True), ForeignKey("events.id", ondelete="SET NULL"), nullable=True)
    visitor_id = Column(Uuid(as_uuid=True), ForeignKey("visitors.id", ondelete="SET NULL"), nullable=True)
    type = Column(String, nullable=False, index=True)  # "document_uploaded", "confirmation_recorded", ...
    data = Column(JSON, nullable=False, default=dict)
    at = Column(DateTime(timezone=True), server_default=func.now())
