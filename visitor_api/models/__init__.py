from .activity_log import ActivityLog
from .confirmations import VisitorConfirmation
from .document_types import DocumentType
from .documents import Document, DocumentEvent, DocumentVersion
from .events import Event
from .login_tokens import LoginToken
from .organizations import Organization
from .user_sessions import UserSession
from .users import User
from .visitors import EventVisitor, RsvpStatusEnum, Visitor

__all__ = [
    "ActivityLog",
    "Document",
    "DocumentEvent",
    "DocumentType",
    "DocumentVersion",
    "Event",
    "EventVisitor",
    "LoginToken",
    "Organization",
    "RsvpStatusEnum",
    "User",
    "UserSession",
    "Visitor",
    "VisitorConfirmation",
]
