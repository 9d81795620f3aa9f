"""Export job model."""

import enum
import uuid
from datetime import datetime
from typing import TYPE_CHECKING, Any, Optional

from sqlalchemy import BigInteger, String, Text, DateTime, ForeignKey, JSON
from sqlalchemy.orm import Mapped, mapped_column, relationship

from app.core.database import Base, utcnow

if TYPE_CHECKING:
    from app.models.ticket import Ticket
    from app.models.user import User


class ExportFormat(str, enum.Enum):
    """Supported conversation export formats."""

    PLAIN_TEXT = "PLAIN_TEXT"
    STRUCTURED = "STRUCTURED"
    DOCUMENT = "DOCUMENT"

    @property
    def extension(self) -> str:
        return _EXTENSIONS[self]


_EXTENSIONS = {
    ExportFormat.PLAIN_TEXT: "txt",
    ExportFormat.STRUCTURED: "json",
    ExportFormat.DOCUMENT: "pdf",
}


class ExportStatus(str, enum.Enum):
    """Export job lifecycle states."""

    PENDING = "PENDING"
    PROCESSING = "PROCESSING"
    COMPLETED = "COMPLETED"
    FAILED = "FAILED"


class ExportJob(Base):
    """One conversation export request and its lifecycle."""
    
    __tablename__ = "export_jobs"
    
    id: Mapped[str] = mapped_column(String, primary_key=True, default=lambda: str(uuid.uuid4()))
    ticket_id: Mapped[str] = mapped_column(
        String, 
        ForeignKey("tickets.id"), 
        nullable=False,
        index=True,
    )
    user_id: Mapped[str | None] = mapped_column(String, ForeignKey("users.id"))
    format: Mapped[str] = mapped_column(String(20), nullable=False)
    status: Mapped[str] = mapped_column(String(20), nullable=False, default=ExportStatus.PENDING.value)
    
    # Artifact, populated only when COMPLETED
    file_name: Mapped[str | None] = mapped_column(String(255))
    file_path: Mapped[str | None] = mapped_column(String(1000))
    file_size: Mapped[int | None] = mapped_column(BigInteger)
    preview: Mapped[dict[str, Any] | None] = mapped_column(JSON)
    
    # Populated only when FAILED
    error: Mapped[str | None] = mapped_column(Text)
    
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow, onupdate=utcnow)
    started_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))
    completed_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))
    expires_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))
    
    # Relationships
    ticket: Mapped["Ticket"] = relationship("Ticket")
    user: Mapped[Optional["User"]] = relationship("User")
