"""Expired export cleanup tests."""

import os
import time
from datetime import timedelta
from pathlib import Path

from app.core.config import settings
from app.core.database import utcnow
from app.models.export_job import ExportFormat, ExportJob, ExportStatus
from app.services.retention import cleanup_expired_exports, remove_stale_staging


async def add_completed_job(session_factory, job_id: str, expires_in: timedelta, ticket_id="T-100") -> Path:
    path = Path(settings.EXPORTS_DIR) / f"{job_id}.zip"
    path.write_bytes(b"zip")
    async with session_factory() as session:
        session.add(
            ExportJob(
                id=job_id,
                ticket_id=ticket_id,
                format=ExportFormat.PLAIN_TEXT.value,
                status=ExportStatus.COMPLETED.value,
                file_name=f"ticket-{ticket_id}-txt.zip",
                file_path=path.as_posix(),
                file_size=3,
                preview={},
                completed_at=utcnow(),
                expires_at=utcnow() + expires_in,
            )
        )
        await session.commit()
    return path


async def test_deletes_only_expired_archives(session_factory, create_ticket):
    await create_ticket()
    expired = await add_completed_job(session_factory, "expired", timedelta(hours=-1))
    fresh = await add_completed_job(session_factory, "fresh", timedelta(days=1))

    report = await cleanup_expired_exports(session_factory, settings.EXPORTS_DIR)

    assert report.deleted_files == 1
    assert not expired.exists()
    assert fresh.exists()
    async with session_factory() as session:
        job = await session.get(ExportJob, "expired")
        assert job.status == ExportStatus.COMPLETED.value
        assert job.file_path == expired.as_posix()


async def test_pages_through_all_expired_jobs(session_factory, create_ticket):
    await create_ticket()
    paths = [
        await add_completed_job(session_factory, f"old-{i}", timedelta(hours=-(i + 1)))
        for i in range(5)
    ]

    report = await cleanup_expired_exports(session_factory, settings.EXPORTS_DIR, batch_size=2)

    assert report.jobs_scanned == 5
    assert report.deleted_files == 5
    assert not any(path.exists() for path in paths)


async def test_second_run_is_a_no_op(session_factory, create_ticket):
    await create_ticket()
    await add_completed_job(session_factory, "expired", timedelta(hours=-1))

    await cleanup_expired_exports(session_factory, settings.EXPORTS_DIR)
    report = await cleanup_expired_exports(session_factory, settings.EXPORTS_DIR)

    assert report.deleted_files == 0


def test_remove_stale_staging(tmp_path):
    stale = tmp_path / "stale-job"
    active = tmp_path / "active-job"
    stale.mkdir()
    active.mkdir()
    old = time.time() - 2 * 24 * 60 * 60
    os.utime(stale, (old, old))

    assert remove_stale_staging(tmp_path) == 1
    assert not stale.exists()
    assert active.exists()
