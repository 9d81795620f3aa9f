"""Maintenance tasks."""

from dataclasses import asdict

from celery.utils.log import get_task_logger

from app.core.config import settings
from app.core.database import task_session_factory
from app.services.retention import cleanup_expired_exports
from app.worker import celery_app, run_async

logger = get_task_logger(__name__)


async def _cleanup(batch_size: int) -> dict:
    async with task_session_factory() as session_factory:
        report = await cleanup_expired_exports(
            session_factory,
            settings.EXPORTS_DIR,
            batch_size=batch_size,
        )
    return asdict(report)


@celery_app.task(name="app.tasks.maintenance.cleanup_expired_exports_task")
def cleanup_expired_exports_task(batch_size: int | None = None) -> dict:
    """Delete archives past their retention window."""
    result = run_async(_cleanup(int(batch_size or settings.EXPORT_CLEANUP_BATCH_SIZE)))
    logger.info("Expired export cleanup: %s", result)
    return result
