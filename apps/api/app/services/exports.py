"""Conversation export service: request, query and download export jobs."""

from dataclasses import dataclass
from datetime import datetime
from pathlib import Path
from typing import Any, List, Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.config import settings
from app.core.database import as_utc, utcnow
from app.core.exceptions import ConflictError, ExpiredError, NotFoundError, ValidationError
from app.core.observability import trace_function
from app.models.export_job import ExportFormat, ExportJob, ExportStatus
from app.models.user import User
from app.services.export_queue import ExportQueue
from app.services.job_store import ExportJobStore
from app.services.snapshot import TicketSnapshotProvider

DEFAULT_FORMAT = ExportFormat.DOCUMENT

FORMAT_ALIASES = {
    "txt": ExportFormat.PLAIN_TEXT,
    "text": ExportFormat.PLAIN_TEXT,
    "plain_text": ExportFormat.PLAIN_TEXT,
    "json": ExportFormat.STRUCTURED,
    "structured": ExportFormat.STRUCTURED,
    "pdf": ExportFormat.DOCUMENT,
    "document": ExportFormat.DOCUMENT,
}


def parse_export_format(raw: Any) -> ExportFormat:
    """Case-insensitive format lookup; anything unrecognized becomes DOCUMENT."""
    if not isinstance(raw, str):
        return DEFAULT_FORMAT
    return FORMAT_ALIASES.get(raw.strip().lower(), DEFAULT_FORMAT)


@dataclass(frozen=True)
class DownloadableArtifact:
    """Archive that passed every download check."""

    path: Path
    file_name: str
    size: int


class ConversationExportService:
    """Entry point for export requests, status reads and downloads."""

    def __init__(
        self,
        session: AsyncSession,
        queue: Optional[ExportQueue] = None,
        list_limit: int = settings.EXPORT_LIST_LIMIT,
    ) -> None:
        self.session = session
        self.queue = queue
        self.store = ExportJobStore(session)
        self.list_limit = list_limit

    @trace_function("export_service.request_export")
    async def request_export(
        self,
        ticket_id: str,
        raw_format: Any = None,
        requested_by: Optional[str] = None,
    ) -> ExportJob:
        """Create a PENDING job and publish it; publish errors propagate."""
        if self.queue is None:
            raise RuntimeError("An export queue is required to request exports")

        if not await TicketSnapshotProvider(self.session).exists(ticket_id):
            raise ValidationError("Ticket not found")

        job = await self.store.create(
            ticket_id=ticket_id,
            requested_by=await self._known_user(requested_by),
            export_format=parse_export_format(raw_format),
        )
        await self.queue.publish(job.id)
        return job

    async def get_job(self, job_id: str) -> ExportJob:
        job = await self.store.get(job_id)
        if job is None:
            raise NotFoundError("Export not found")
        return job

    async def list_jobs(self, ticket_id: str) -> List[ExportJob]:
        """Most recent jobs for a ticket, newest first."""
        return await self.store.list_by_ticket(ticket_id, limit=self.list_limit)

    @trace_function("export_service.open_download")
    async def open_download(self, job_id: str, now: Optional[datetime] = None) -> DownloadableArtifact:
        """Run the download checks in order and return the artifact to stream."""
        job = await self.get_job(job_id)

        if job.status != ExportStatus.COMPLETED.value or not job.file_path:
            raise ConflictError("Export is not ready yet")

        expires_at = as_utc(job.expires_at)
        if expires_at is not None and expires_at <= (now or utcnow()):
            raise ExpiredError("Export expired. Request a new export.")

        path = Path(job.file_path)
        if not path.is_file():
            raise NotFoundError("Export artifact missing")

        return DownloadableArtifact(
            path=path,
            file_name=job.file_name or path.name,
            size=path.stat().st_size,
        )

    async def _known_user(self, user_id: Optional[str]) -> Optional[str]:
        if not user_id:
            return None
        res = await self.session.execute(select(User.id).where(User.id == user_id))
        return res.scalar_one_or_none()
