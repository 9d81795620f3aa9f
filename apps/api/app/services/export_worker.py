"""Export worker: drives a job from PROCESSING to a terminal state."""

import logging
from datetime import datetime, timedelta
from pathlib import Path
from typing import Any, Callable, Dict, Optional

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from app.core.config import Settings, settings as default_settings
from app.core.database import utcnow
from app.core.exceptions import ProcessingError
from app.core.observability import job_context, trace_function
from app.models.export_job import ExportFormat, ExportJob, ExportStatus
from app.services.archive import ArchiveBuilder, ArchiveResult, staging_directory
from app.services.job_store import ExportJobStore
from app.services.renderers import build_summary, format_timestamp, render_conversation
from app.services.snapshot import TicketSnapshot, TicketSnapshotProvider

logger = logging.getLogger(__name__)


def build_preview(snapshot: TicketSnapshot, limit: int = 5, snippet_length: int = 160) -> Dict[str, Any]:
    """Summary plus the first few message snippets, stored on the job."""
    sample = [
        {
            "id": message.id,
            "createdAt": format_timestamp(message.created_at),
            "author": message.author.name,
            "isPrivate": message.is_private,
            "hasMedia": bool(message.media_url),
            "snippet": (message.body or "")[:snippet_length],
        }
        for message in snapshot.messages[:limit]
    ]
    return {"summary": build_summary(snapshot), "sample": sample}


class ExportWorker:
    """Processes one export job per `handle` call.

    The worker is the only writer of a job after creation. Failures inside
    processing are recorded on the job and not raised; errors writing the
    job itself propagate so the queue can redeliver.
    """

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        archive_builder: ArchiveBuilder,
        staging_root: Path,
        *,
        media_base_url: str = "",
        retention: timedelta = timedelta(days=7),
        preview_messages: int = 5,
        snippet_length: int = 160,
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        self.session_factory = session_factory
        self.archive_builder = archive_builder
        self.staging_root = Path(staging_root)
        self.media_base_url = media_base_url
        self.retention = retention
        self.preview_messages = preview_messages
        self.snippet_length = snippet_length
        self.clock = clock

    @classmethod
    def from_settings(
        cls,
        session_factory: async_sessionmaker[AsyncSession],
        settings: Settings = default_settings,
    ) -> "ExportWorker":
        return cls(
            session_factory,
            ArchiveBuilder(settings.EXPORTS_DIR, settings.MEDIA_ROOT),
            settings.staging_dir,
            media_base_url=settings.media_base_url,
            retention=timedelta(days=settings.EXPORT_EXPIRATION_DAYS),
            preview_messages=settings.EXPORT_PREVIEW_MESSAGES,
            snippet_length=settings.EXPORT_PREVIEW_SNIPPET_LENGTH,
        )

    async def handle(self, job_id: str) -> Optional[ExportStatus]:
        """Process a dequeued job id; returns the terminal status, or None if dropped."""
        with job_context(job_id):
            async with self.session_factory() as session:
                store = ExportJobStore(session)
                job = await store.get(job_id)
                if job is None:
                    logger.warning("Export job not found, dropping message")
                    return None

                await store.mark_processing(job)
                logger.info("Export job processing", extra={"format": job.format})

                try:
                    artifact, preview = await self._generate(session, job)
                except Exception as exc:
                    logger.exception("Export job failed")
                    await session.rollback()
                    job = await store.get(job_id)
                    if job is None:
                        return None
                    await store.fail(job, str(exc) or exc.__class__.__name__)
                    # A redelivered job may still have the archive of an earlier completion.
                    self.archive_builder.artifact_path(job.id).unlink(missing_ok=True)
                    return ExportStatus.FAILED

                await store.complete(
                    job,
                    artifact=artifact,
                    preview=preview,
                    expires_at=self.clock() + self.retention,
                )
                logger.info(
                    "Export job completed",
                    extra={"file_name": artifact.file_name, "file_size": artifact.file_size},
                )
                return ExportStatus.COMPLETED

    @trace_function("export_worker.generate")
    async def _generate(self, session: AsyncSession, job: ExportJob) -> tuple[ArchiveResult, Dict[str, Any]]:
        snapshot = await TicketSnapshotProvider(session).load(job.ticket_id)
        if snapshot is None:
            raise ProcessingError("Ticket not found")

        export_format = ExportFormat(job.format)

        with staging_directory(self.staging_root, job.id) as staging_dir:
            content = render_conversation(export_format, snapshot, self.media_base_url)
            artifact = self.archive_builder.build(
                job_id=job.id,
                export_format=export_format,
                content=content,
                snapshot=snapshot,
                staging_dir=staging_dir,
            )

        preview = build_preview(snapshot, self.preview_messages, self.snippet_length)
        return artifact, preview
