"""Queue contract between the API and the export workers."""

import asyncio
import logging
from typing import Any, Protocol

from tenacity import before_sleep_log, retry, stop_after_attempt, wait_exponential

from app.core.config import settings

logger = logging.getLogger(__name__)

EXPORT_QUEUE_NAME = "q.exports"


class ExportQueue(Protocol):
    """Publishes export job ids for asynchronous processing."""

    async def publish(self, job_id: str) -> None:
        ...


class CeleryExportQueue:
    """Publishes export jobs to the Celery broker.

    The task itself carries the processing retry policy; publishing is
    retried separately so a broker hiccup does not lose the job id.
    """

    def __init__(self, task: Any = None) -> None:
        self._task = task

    @property
    def task(self) -> Any:
        if self._task is None:
            from app.tasks.exports import generate_conversation_export

            self._task = generate_conversation_export
        return self._task

    @retry(
        stop=stop_after_attempt(settings.EXPORT_MAX_ATTEMPTS),
        wait=wait_exponential(multiplier=settings.EXPORT_RETRY_BACKOFF),
        before_sleep=before_sleep_log(logger, logging.WARNING),
        reraise=True,
    )
    async def publish(self, job_id: str) -> None:
        await asyncio.to_thread(
            self.task.apply_async,
            kwargs={"job_id": job_id},
            queue=EXPORT_QUEUE_NAME,
        )
        logger.info("Export job published", extra={"job_id": job_id})


def get_export_queue() -> ExportQueue:
    """FastAPI dependency for the export queue."""
    return CeleryExportQueue()
