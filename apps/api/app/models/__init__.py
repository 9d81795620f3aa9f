"""Database models."""

from app.core.database import Base
from app.models.user import User
from app.models.contact import Contact
from app.models.ticket import Message, Queue, Tag, Ticket, ticket_tags
from app.models.export_job import ExportFormat, ExportJob, ExportStatus

__all__ = [
    "Base",
    "User",
    "Contact",
    "Queue",
    "Tag",
    "Ticket",
    "ticket_tags",
    "Message",
    "ExportFormat",
    "ExportJob",
    "ExportStatus",
]
