"""Point-in-time ticket snapshots used as renderer input."""

from dataclasses import dataclass
from datetime import datetime

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from app.core.database import as_utc
from app.core.observability import trace_function
from app.models.ticket import Message, Ticket


@dataclass(frozen=True)
class ContactInfo:
    name: str
    phone_number: str
    email: str | None = None


@dataclass(frozen=True)
class NamedRef:
    id: str
    name: str


@dataclass(frozen=True)
class MessageAuthor:
    name: str
    id: str | None = None  # None when the contact wrote the message


@dataclass(frozen=True)
class MessageSnapshot:
    id: str
    author: MessageAuthor
    body: str | None
    created_at: datetime
    is_private: bool = False
    media_url: str | None = None
    type: str = "TEXT"
    status: str = "SENT"
    edited_at: datetime | None = None


@dataclass(frozen=True)
class TicketSnapshot:
    """Immutable view of a ticket and its ordered, non-deleted messages."""

    ticket_id: str
    status: str
    priority: str
    contact: ContactInfo
    queue: NamedRef | None = None
    assignee: NamedRef | None = None
    tags: tuple[str, ...] = ()
    messages: tuple[MessageSnapshot, ...] = ()


class TicketSnapshotProvider:
    """Reads tickets from the conversation tables and freezes them into snapshots."""

    def __init__(self, session: AsyncSession) -> None:
        self.session = session

    async def exists(self, ticket_id: str) -> bool:
        result = await self.session.execute(select(Ticket.id).where(Ticket.id == ticket_id))
        return result.scalar_one_or_none() is not None

    @trace_function("snapshot_provider.load")
    async def load(self, ticket_id: str) -> TicketSnapshot | None:
        """Build a fresh snapshot, or None if the ticket does not exist."""
        result = await self.session.execute(
            select(Ticket)
            .where(Ticket.id == ticket_id)
            .options(
                selectinload(Ticket.contact),
                selectinload(Ticket.user),
                selectinload(Ticket.queue),
                selectinload(Ticket.tags),
            )
        )
        ticket = result.scalar_one_or_none()
        if ticket is None:
            return None

        messages = await self.session.execute(
            select(Message)
            .where(Message.ticket_id == ticket_id, Message.deleted_at.is_(None))
            .options(selectinload(Message.user))
            .order_by(Message.created_at.asc(), Message.id.asc())
        )

        contact = ContactInfo(
            name=ticket.contact.name,
            phone_number=ticket.contact.phone_number,
            email=ticket.contact.email,
        )

        return TicketSnapshot(
            ticket_id=ticket.id,
            status=ticket.status,
            priority=ticket.priority,
            contact=contact,
            queue=NamedRef(ticket.queue.id, ticket.queue.name) if ticket.queue else None,
            assignee=NamedRef(ticket.user.id, ticket.user.name) if ticket.user else None,
            tags=tuple(tag.name for tag in ticket.tags),
            messages=tuple(
                self._freeze_message(message, contact) for message in messages.scalars()
            ),
        )

    @staticmethod
    def _freeze_message(message: Message, contact: ContactInfo) -> MessageSnapshot:
        if message.user is not None:
            author = MessageAuthor(name=message.user.name, id=message.user.id)
        else:
            author = MessageAuthor(name=contact.name)

        return MessageSnapshot(
            id=message.id,
            author=author,
            body=message.body,
            created_at=as_utc(message.created_at),
            is_private=message.is_private,
            media_url=message.media_url,
            type=message.type,
            status=message.status,
            edited_at=as_utc(message.edited_at),
        )
