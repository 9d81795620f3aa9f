"""Durable export job records and their state transitions."""

from __future__ import annotations

from datetime import datetime
from typing import Any, Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from app.core.database import utcnow
from app.models.export_job import ExportFormat, ExportJob, ExportStatus
from app.models.ticket import Ticket
from app.services.archive import ArchiveResult

MAX_ERROR_LENGTH = 2000


def _job_query():
    return (
        select(ExportJob)
        .options(
            selectinload(ExportJob.ticket).selectinload(Ticket.contact),
            selectinload(ExportJob.user),
        )
        .execution_options(populate_existing=True)
    )


class ExportJobStore:
    """Reads and writes export jobs.

    Every transition overwrites the complete terminal field set and commits
    straight away, so pollers on other sessions observe a consistent row.
    Terminal writes are unconditional: the last one to land wins.
    """

    def __init__(self, session: AsyncSession):
        self.session = session

    async def create(
        self,
        *,
        ticket_id: str,
        requested_by: Optional[str],
        export_format: ExportFormat,
    ) -> ExportJob:
        job = ExportJob(
            ticket_id=ticket_id,
            user_id=requested_by,
            format=export_format.value,
            status=ExportStatus.PENDING.value,
        )
        self.session.add(job)
        await self.session.commit()
        return await self.get(job.id)

    async def get(self, job_id: str) -> ExportJob | None:
        res = await self.session.execute(_job_query().where(ExportJob.id == job_id))
        return res.scalar_one_or_none()

    async def list_by_ticket(self, ticket_id: str, limit: int = 20) -> list[ExportJob]:
        res = await self.session.execute(
            _job_query()
            .where(ExportJob.ticket_id == ticket_id)
            .order_by(ExportJob.created_at.desc(), ExportJob.id.desc())
            .limit(limit)
        )
        return list(res.scalars().all())

    async def mark_processing(self, job: ExportJob) -> None:
        job.status = ExportStatus.PROCESSING.value
        job.started_at = utcnow()
        job.completed_at = None
        self._clear_terminal_fields(job)
        await self.session.commit()

    async def complete(
        self,
        job: ExportJob,
        *,
        artifact: ArchiveResult,
        preview: dict[str, Any],
        expires_at: datetime,
    ) -> None:
        job.status = ExportStatus.COMPLETED.value
        job.file_path = str(artifact.file_path.as_posix())
        job.file_name = artifact.file_name
        job.file_size = int(artifact.file_size)
        job.preview = preview
        job.expires_at = expires_at
        job.error = None
        job.completed_at = utcnow()
        await self.session.commit()

    async def fail(self, job: ExportJob, message: str) -> None:
        self._clear_terminal_fields(job)
        job.status = ExportStatus.FAILED.value
        job.error = (message or "").strip()[:MAX_ERROR_LENGTH] or "Export failed"
        job.completed_at = utcnow()
        await self.session.commit()

    @staticmethod
    def _clear_terminal_fields(job: ExportJob) -> None:
        job.file_path = None
        job.file_name = None
        job.file_size = None
        job.preview = None
        job.expires_at = None
        job.error = None
