"""Conversation export tasks."""

from celery.utils.log import get_task_logger

from app.core.config import settings
from app.core.database import task_session_factory
from app.services.export_worker import ExportWorker
from app.worker import celery_app, run_async

logger = get_task_logger(__name__)


async def _process(job_id: str) -> str | None:
    async with task_session_factory() as session_factory:
        status = await ExportWorker.from_settings(session_factory).handle(job_id)
    return status.value if status else None


@celery_app.task(
    bind=True,
    name="app.tasks.exports.generate_conversation_export",
    autoretry_for=(Exception,),
    max_retries=settings.EXPORT_MAX_ATTEMPTS - 1,
    retry_backoff=settings.EXPORT_RETRY_BACKOFF,
    retry_backoff_max=600,
    retry_jitter=False,
    acks_late=True,
)
def generate_conversation_export(self, job_id: str) -> str | None:
    """Generate the archive for an export job."""
    logger.info("Processing export job %s (attempt %s)", job_id, self.request.retries + 1)
    return run_async(_process(job_id))
