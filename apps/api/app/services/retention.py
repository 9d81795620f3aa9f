"""Expired export cleanup."""

import logging
import shutil
import time
from dataclasses import dataclass
from datetime import datetime
from pathlib import Path

from sqlalchemy import and_, or_, select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from app.core.database import utcnow
from app.models.export_job import ExportJob, ExportStatus

logger = logging.getLogger(__name__)

STALE_STAGING_SECONDS = 24 * 60 * 60


@dataclass
class CleanupReport:
    jobs_scanned: int = 0
    deleted_files: int = 0
    staging_removed: int = 0


def _is_within(path: Path, root: Path) -> bool:
    return path.resolve().is_relative_to(root.resolve())


async def cleanup_expired_exports(
    session_factory: async_sessionmaker[AsyncSession],
    exports_dir: Path,
    *,
    batch_size: int = 200,
    now: datetime | None = None,
) -> CleanupReport:
    """Delete archives whose retention window has passed.

    Job rows are left as they are so status reads keep working and downloads
    keep answering "expired".
    """
    now = now or utcnow()
    exports_dir = Path(exports_dir)
    report = CleanupReport()
    cursor: tuple[datetime, str] | None = None

    async with session_factory() as session:
        while True:
            stmt = (
                select(ExportJob.id, ExportJob.expires_at, ExportJob.file_path)
                .where(
                    ExportJob.status == ExportStatus.COMPLETED.value,
                    ExportJob.expires_at.is_not(None),
                    ExportJob.expires_at <= now,
                    ExportJob.file_path.is_not(None),
                )
                .order_by(ExportJob.expires_at.asc(), ExportJob.id.asc())
                .limit(batch_size)
            )
            if cursor is not None:
                stmt = stmt.where(
                    or_(
                        ExportJob.expires_at > cursor[0],
                        and_(ExportJob.expires_at == cursor[0], ExportJob.id > cursor[1]),
                    )
                )

            rows = (await session.execute(stmt)).all()
            for job_id, _, file_path in rows:
                report.jobs_scanned += 1
                path = Path(file_path)
                if not path.is_file():
                    continue
                if not _is_within(path, exports_dir):
                    logger.warning("Refusing to delete artifact outside exports dir", extra={"job_id": job_id})
                    continue
                path.unlink(missing_ok=True)
                report.deleted_files += 1

            if len(rows) < batch_size:
                break
            cursor = (rows[-1][1], rows[-1][0])

    report.staging_removed = remove_stale_staging(exports_dir / "staging")
    logger.info(
        "Expired export cleanup finished",
        extra={
            "jobs_scanned": report.jobs_scanned,
            "deleted_files": report.deleted_files,
            "staging_removed": report.staging_removed,
        },
    )
    return report


def remove_stale_staging(staging_root: Path, max_age_seconds: int = STALE_STAGING_SECONDS) -> int:
    """Remove staging directories abandoned by crashed workers."""
    if not staging_root.is_dir():
        return 0
    cutoff = time.time() - max_age_seconds
    removed = 0
    for entry in staging_root.iterdir():
        if entry.is_dir() and entry.stat().st_mtime < cutoff:
            shutil.rmtree(entry, ignore_errors=True)
            removed += 1
    return removed
