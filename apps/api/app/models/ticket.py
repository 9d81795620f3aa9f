"""Ticket, queue, tag and message models.

These tables are the read model for conversation snapshots. They are owned by
the ticketing side of the product; the export pipeline only reads them.
"""

from datetime import datetime
from typing import TYPE_CHECKING, Optional

from sqlalchemy import Boolean, Column, String, Table, Text, DateTime, ForeignKey, func
from sqlalchemy.orm import Mapped, mapped_column, relationship

from app.core.database import Base, utcnow

if TYPE_CHECKING:
    from app.models.contact import Contact
    from app.models.user import User


ticket_tags = Table(
    "ticket_tags",
    Base.metadata,
    Column("ticket_id", String, ForeignKey("tickets.id"), primary_key=True),
    Column("tag_id", String, ForeignKey("tags.id"), primary_key=True),
)


class Queue(Base):
    """Routing queue a ticket belongs to."""
    
    __tablename__ = "queues"
    
    id: Mapped[str] = mapped_column(String, primary_key=True)
    name: Mapped[str] = mapped_column(String(255), nullable=False)


class Tag(Base):
    """Free-form ticket label."""
    
    __tablename__ = "tags"
    
    id: Mapped[str] = mapped_column(String, primary_key=True)
    name: Mapped[str] = mapped_column(String(100), nullable=False)


class Ticket(Base):
    """Customer conversation ticket."""
    
    __tablename__ = "tickets"
    
    id: Mapped[str] = mapped_column(String, primary_key=True)
    contact_id: Mapped[str] = mapped_column(
        String, 
        ForeignKey("contacts.id"), 
        nullable=False
    )
    user_id: Mapped[str | None] = mapped_column(String, ForeignKey("users.id"))
    queue_id: Mapped[str | None] = mapped_column(String, ForeignKey("queues.id"))
    status: Mapped[str] = mapped_column(String(50), nullable=False, default="OPEN")
    priority: Mapped[str] = mapped_column(String(50), nullable=False, default="MEDIUM")
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), 
        server_default=func.now()
    )
    
    # Relationships
    contact: Mapped["Contact"] = relationship("Contact")
    user: Mapped[Optional["User"]] = relationship("User")
    queue: Mapped[Optional["Queue"]] = relationship("Queue")
    tags: Mapped[list["Tag"]] = relationship("Tag", secondary=ticket_tags, order_by="Tag.name")
    messages: Mapped[list["Message"]] = relationship(
        "Message", 
        back_populates="ticket",
        order_by="Message.created_at",
    )


class Message(Base):
    """Single conversation entry on a ticket."""
    
    __tablename__ = "messages"
    
    id: Mapped[str] = mapped_column(String, primary_key=True)
    ticket_id: Mapped[str] = mapped_column(
        String, 
        ForeignKey("tickets.id"), 
        nullable=False,
        index=True,
    )
    user_id: Mapped[str | None] = mapped_column(String, ForeignKey("users.id"))  # null when sent by the contact
    body: Mapped[str | None] = mapped_column(Text)
    type: Mapped[str] = mapped_column(String(50), nullable=False, default="TEXT")
    status: Mapped[str] = mapped_column(String(50), nullable=False, default="SENT")
    is_private: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    media_url: Mapped[str | None] = mapped_column(String(1000))
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow)
    edited_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))
    deleted_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))
    
    # Relationships
    ticket: Mapped["Ticket"] = relationship("Ticket", back_populates="messages")
    user: Mapped[Optional["User"]] = relationship("User")
