"""Conversation renderers: ticket snapshot to document bytes."""

import io
import json
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional
from xml.sax.saxutils import escape

from reportlab.lib import colors
from reportlab.lib.pagesizes import A4
from reportlab.lib.styles import ParagraphStyle, getSampleStyleSheet
from reportlab.platypus import Paragraph, SimpleDocTemplate, Spacer

from app.core.observability import trace_function
from app.models.export_job import ExportFormat
from app.services.snapshot import MessageSnapshot, TicketSnapshot

EMPTY_BODY_PLACEHOLDER = "(no text)"
NO_QUEUE_LABEL = "none"
UNASSIGNED_LABEL = "unassigned"
INTERNAL_MARKER = "[INTERNAL]"


def format_timestamp(value: datetime) -> str:
    """ISO-8601 UTC timestamp with millisecond precision and a Z suffix."""
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc).isoformat(timespec="milliseconds").replace("+00:00", "Z")


def resolve_media_url(media_url: Optional[str], media_base_url: str = "") -> Optional[str]:
    """Make a stored media reference absolute when a public base URL is configured."""
    if not media_url:
        return None
    if not media_base_url or "://" in media_url:
        return media_url
    if not media_url.startswith("/"):
        media_url = f"/{media_url}"
    return f"{media_base_url.rstrip('/')}{media_url}"


def build_summary(snapshot: TicketSnapshot) -> Dict[str, Any]:
    """Machine-shaped ticket header shared by JSON output, metadata and previews."""
    return {
        "ticketId": snapshot.ticket_id,
        "contact": {
            "name": snapshot.contact.name,
            "phoneNumber": snapshot.contact.phone_number,
            "email": snapshot.contact.email,
        },
        "queue": {"id": snapshot.queue.id, "name": snapshot.queue.name} if snapshot.queue else None,
        "assignedTo": (
            {"id": snapshot.assignee.id, "name": snapshot.assignee.name} if snapshot.assignee else None
        ),
        "status": snapshot.status,
        "priority": snapshot.priority,
        "tags": list(snapshot.tags),
        "messageCount": len(snapshot.messages),
    }


def header_lines(snapshot: TicketSnapshot) -> List[str]:
    """Human-readable ticket header lines."""
    contact = snapshot.contact
    lines = [
        f"Ticket: {snapshot.ticket_id}",
        f"Contact: {contact.name} ({contact.phone_number})",
    ]
    if contact.email:
        lines.append(f"Email: {contact.email}")
    lines.append(f"Status: {snapshot.status}")
    lines.append(f"Priority: {snapshot.priority}")
    lines.append(f"Queue: {snapshot.queue.name if snapshot.queue else NO_QUEUE_LABEL}")
    lines.append(f"Assignee: {snapshot.assignee.name if snapshot.assignee else UNASSIGNED_LABEL}")
    if snapshot.tags:
        lines.append(f"Tags: {', '.join(snapshot.tags)}")
    return lines


def display_body(message: MessageSnapshot) -> str:
    if message.body and message.body.strip():
        return message.body
    return EMPTY_BODY_PLACEHOLDER


def escape_line_breaks(body: str) -> str:
    """Write backslashes as ``\\\\`` and line breaks as ``\\n``.

    Backslashes go first so a literal backslash-n in the body stays
    distinguishable from an escaped line break.
    """
    return body.replace("\\", "\\\\").replace("\r\n", "\n").replace("\n", "\\n")


class TextRenderer:
    """Plain text transcript, one line per message."""

    extension = "txt"

    def __init__(self, media_base_url: str = "") -> None:
        """Initialize text renderer."""
        self.media_base_url = media_base_url

    @trace_function("text_renderer.render")
    def render(self, snapshot: TicketSnapshot) -> bytes:
        lines = header_lines(snapshot)
        lines.append("")
        lines.append("Messages:")
        lines.extend(self.message_line(message) for message in snapshot.messages)
        return "\n".join(lines).encode("utf-8")

    def message_line(self, message: MessageSnapshot) -> str:
        """`[timestamp] [INTERNAL] author: body [attachment: url]`.

        See `escape_line_breaks` for how the body is kept on one line.
        """
        body = escape_line_breaks(display_body(message))
        parts = [f"[{format_timestamp(message.created_at)}]"]
        if message.is_private:
            parts.append(INTERNAL_MARKER)
        parts.append(f"{message.author.name}: {body}")
        media = resolve_media_url(message.media_url, self.media_base_url)
        if media:
            parts.append(f"[attachment: {media}]")
        return " ".join(parts)


class JsonRenderer:
    """Structured JSON export with a summary and the full message list."""

    extension = "json"

    def __init__(self, media_base_url: str = "") -> None:
        """Initialize JSON renderer."""
        self.media_base_url = media_base_url

    @trace_function("json_renderer.render")
    def render(self, snapshot: TicketSnapshot) -> bytes:
        payload = {
            "summary": build_summary(snapshot),
            "messages": [self._message(message) for message in snapshot.messages],
        }
        return json.dumps(payload, indent=2, ensure_ascii=False).encode("utf-8")

    def _message(self, message: MessageSnapshot) -> Dict[str, Any]:
        author: Dict[str, Any] = {"name": message.author.name}
        if message.author.id is not None:
            author = {"id": message.author.id, "name": message.author.name}
        return {
            "id": message.id,
            "createdAt": format_timestamp(message.created_at),
            "editedAt": format_timestamp(message.edited_at) if message.edited_at else None,
            "author": author,
            "body": message.body,
            "isPrivate": message.is_private,
            "type": message.type,
            "status": message.status,
            "mediaUrl": resolve_media_url(message.media_url, self.media_base_url),
        }


class PdfRenderer:
    """Paginated PDF conversation report."""

    extension = "pdf"

    def __init__(self, media_base_url: str = "") -> None:
        """Initialize PDF renderer."""
        self.media_base_url = media_base_url
        self.styles = getSampleStyleSheet()
        self.title_style = ParagraphStyle(
            "ConversationTitle",
            parent=self.styles["Heading1"],
            fontSize=18,
            spaceAfter=18,
            alignment=1,  # Center alignment
        )
        self.message_header_style = ParagraphStyle(
            "MessageHeader",
            parent=self.styles["Normal"],
            fontSize=11,
            textColor=colors.HexColor("#111827"),
        )
        self.internal_header_style = ParagraphStyle(
            "InternalMessageHeader",
            parent=self.message_header_style,
            textColor=colors.HexColor("#92400E"),
            backColor=colors.HexColor("#FEF3C7"),
        )
        self.body_style = ParagraphStyle(
            "MessageBody",
            parent=self.styles["Normal"],
            fontSize=10,
            leftIndent=16,
            textColor=colors.HexColor("#374151"),
        )
        self.attachment_style = ParagraphStyle(
            "MessageAttachment",
            parent=self.body_style,
            fontSize=9,
            textColor=colors.HexColor("#2563EB"),
        )

    @trace_function("pdf_renderer.render")
    def render(self, snapshot: TicketSnapshot) -> bytes:
        buffer = io.BytesIO()
        doc = SimpleDocTemplate(
            buffer,
            pagesize=A4,
            leftMargin=48,
            rightMargin=48,
            topMargin=48,
            bottomMargin=48,
            title=f"Conversation {snapshot.ticket_id}",
        )

        story: List[Any] = [Paragraph("Conversation Report", self.title_style)]

        for line in header_lines(snapshot):
            story.append(Paragraph(escape(line), self.styles["Normal"]))
        story.append(Spacer(1, 12))

        story.append(Paragraph("Messages", self.styles["Heading2"]))
        for message in snapshot.messages:
            story.extend(self._message_flowables(message))

        doc.build(story)
        buffer.seek(0)

        return buffer.getvalue()

    def _message_flowables(self, message: MessageSnapshot) -> List[Any]:
        header = f"[{format_timestamp(message.created_at)}] {message.author.name}"
        style = self.message_header_style
        if message.is_private:
            header = f"{header} (Internal note)"
            style = self.internal_header_style

        flowables: List[Any] = [
            Paragraph(escape(header), style),
            Spacer(1, 2),
            Paragraph(escape(display_body(message)).replace("\n", "<br/>"), self.body_style),
        ]

        media = resolve_media_url(message.media_url, self.media_base_url)
        if media:
            href = escape(media, {'"': "&quot;"})
            flowables.append(Spacer(1, 2))
            flowables.append(
                Paragraph(f'<a href="{href}">Attachment: {escape(media)}</a>', self.attachment_style)
            )

        flowables.append(Spacer(1, 8))
        return flowables


RENDERERS = {
    ExportFormat.PLAIN_TEXT: TextRenderer,
    ExportFormat.STRUCTURED: JsonRenderer,
    ExportFormat.DOCUMENT: PdfRenderer,
}


def render_conversation(
    export_format: ExportFormat,
    snapshot: TicketSnapshot,
    media_base_url: str = "",
) -> bytes:
    """Render a snapshot in the requested format."""
    renderer_cls = RENDERERS.get(export_format)
    if renderer_cls is None:
        raise ValueError(f"Unsupported export format: {export_format}")
    return renderer_cls(media_base_url).render(snapshot)
