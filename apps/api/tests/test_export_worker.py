"""Export worker tests."""

import json
import zipfile
from datetime import datetime, timedelta, timezone
from pathlib import Path

from app.core.config import settings
from app.core.database import as_utc
from app.models.export_job import ExportFormat, ExportStatus
from app.services import export_worker as export_worker_module
from app.services.export_worker import ExportWorker
from app.services.job_store import ExportJobStore

THREE_MESSAGES = [
    {"body": "Hi, I need help with my order"},
    {"body": "Checking with logistics", "agent": True, "private": True},
    {"body": "Your order ships tomorrow", "agent": True},
]


async def create_job(session_factory, ticket_id="T-100", export_format=ExportFormat.PLAIN_TEXT) -> str:
    async with session_factory() as session:
        job = await ExportJobStore(session).create(
            ticket_id=ticket_id, requested_by=None, export_format=export_format
        )
    return job.id


async def load_job(session_factory, job_id):
    async with session_factory() as session:
        return await ExportJobStore(session).get(job_id)


def read_conversation(job) -> str:
    with zipfile.ZipFile(job.file_path) as zf:
        return zf.read("conversation.txt").decode("utf-8")


async def test_text_export_completes(session_factory, create_ticket, worker):
    await create_ticket(messages=THREE_MESSAGES)
    job_id = await create_job(session_factory)

    assert await worker.handle(job_id) is ExportStatus.COMPLETED

    job = await load_job(session_factory, job_id)
    assert job.status == ExportStatus.COMPLETED.value
    assert job.error is None
    assert job.file_name == "ticket-T-100-txt.zip"
    assert Path(job.file_path).stat().st_size == job.file_size

    lines = read_conversation(job).split("Messages:\n", 1)[1].splitlines()
    assert len(lines) == 3
    assert sum("[INTERNAL]" in line for line in lines) == 1
    assert "[INTERNAL] Alex Agent: Checking with logistics" in lines[1]


async def test_expiry_uses_retention_window(session_factory, create_ticket):
    fixed_now = datetime(2024, 6, 1, 12, 0, tzinfo=timezone.utc)
    worker = ExportWorker.from_settings(session_factory)
    worker.clock = lambda: fixed_now
    await create_ticket(messages=THREE_MESSAGES)
    job_id = await create_job(session_factory)

    await worker.handle(job_id)

    job = await load_job(session_factory, job_id)
    assert as_utc(job.expires_at) == fixed_now + timedelta(days=settings.EXPORT_EXPIRATION_DAYS)


async def test_preview_summary_and_sample(session_factory, create_ticket, worker):
    await create_ticket(messages=[{"body": "x" * 500}] + [{"body": f"m{i}"} for i in range(6)])
    job_id = await create_job(session_factory, export_format=ExportFormat.STRUCTURED)

    await worker.handle(job_id)

    job = await load_job(session_factory, job_id)
    assert job.preview["summary"]["messageCount"] == 7
    assert len(job.preview["sample"]) == settings.EXPORT_PREVIEW_MESSAGES
    assert len(job.preview["sample"][0]["snippet"]) == settings.EXPORT_PREVIEW_SNIPPET_LENGTH
    assert job.preview["sample"][0]["author"] == "Maria Silva"


async def test_deleted_messages_are_excluded(session_factory, create_ticket, worker):
    await create_ticket(messages=[{"body": "kept"}, {"body": "removed", "deleted": True}, {"body": "also kept"}])
    job_id = await create_job(session_factory, export_format=ExportFormat.STRUCTURED)

    await worker.handle(job_id)

    job = await load_job(session_factory, job_id)
    with zipfile.ZipFile(job.file_path) as zf:
        payload = json.loads(zf.read("conversation.json"))
    assert [m["body"] for m in payload["messages"]] == ["kept", "also kept"]


async def test_missing_attachment_still_completes(session_factory, create_ticket, worker, write_media):
    present = write_media("uploads/receipt.png", b"png-bytes")
    await create_ticket(messages=[{"body": "see attached", "media": present}, {"body": "lost", "media": "/uploads/gone.png"}])
    job_id = await create_job(session_factory)

    assert await worker.handle(job_id) is ExportStatus.COMPLETED

    job = await load_job(session_factory, job_id)
    with zipfile.ZipFile(job.file_path) as zf:
        assert [n for n in zf.namelist() if n.startswith("media/")] == ["media/receipt.png"]
        assert zf.read("media/receipt.png") == b"png-bytes"
    assert "[attachment: /uploads/gone.png]" in read_conversation(job)


async def test_unknown_job_is_dropped(session_factory, worker):
    assert await worker.handle("does-not-exist") is None


async def test_missing_ticket_fails_job(session_factory, worker):
    job_id = await create_job(session_factory, ticket_id="T-404")

    assert await worker.handle(job_id) is ExportStatus.FAILED

    job = await load_job(session_factory, job_id)
    assert job.status == ExportStatus.FAILED.value
    assert job.error == "Ticket not found"
    assert job.file_path is None and job.file_name is None and job.file_size is None
    assert job.preview is None and job.expires_at is None


async def test_render_error_fails_job_and_removes_staging(session_factory, create_ticket, worker, monkeypatch):
    def explode(*args, **kwargs):
        raise RuntimeError("renderer crashed")

    monkeypatch.setattr(export_worker_module, "render_conversation", explode)
    await create_ticket(messages=THREE_MESSAGES)
    job_id = await create_job(session_factory)

    assert await worker.handle(job_id) is ExportStatus.FAILED

    job = await load_job(session_factory, job_id)
    assert job.error == "renderer crashed"
    assert not (settings.staging_dir / job_id).exists()
    assert not (settings.EXPORTS_DIR / f"{job_id}.zip").exists()


async def test_failed_redelivery_removes_previous_archive(session_factory, create_ticket, worker, monkeypatch):
    await create_ticket(messages=THREE_MESSAGES)
    job_id = await create_job(session_factory)
    assert await worker.handle(job_id) is ExportStatus.COMPLETED
    archive = settings.EXPORTS_DIR / f"{job_id}.zip"
    assert archive.exists()

    def explode(*args, **kwargs):
        raise RuntimeError("renderer crashed")

    monkeypatch.setattr(export_worker_module, "render_conversation", explode)
    assert await worker.handle(job_id) is ExportStatus.FAILED

    job = await load_job(session_factory, job_id)
    assert job.status == ExportStatus.FAILED.value
    assert job.file_path is None
    assert not archive.exists()


async def test_staging_removed_after_success(session_factory, create_ticket, worker):
    await create_ticket(messages=THREE_MESSAGES)
    job_id = await create_job(session_factory, export_format=ExportFormat.DOCUMENT)

    await worker.handle(job_id)

    assert not (settings.staging_dir / job_id).exists()
    job = await load_job(session_factory, job_id)
    with zipfile.ZipFile(job.file_path) as zf:
        assert sorted(zf.namelist()) == ["conversation.pdf", "metadata.json"]


async def test_redelivery_after_failure_completes(session_factory, create_ticket, worker):
    job_id = await create_job(session_factory)
    assert await worker.handle(job_id) is ExportStatus.FAILED

    await create_ticket(messages=THREE_MESSAGES)
    assert await worker.handle(job_id) is ExportStatus.COMPLETED

    job = await load_job(session_factory, job_id)
    assert job.status == ExportStatus.COMPLETED.value
    assert job.error is None
