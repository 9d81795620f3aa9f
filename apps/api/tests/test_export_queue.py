"""Queue publisher and Celery task configuration tests."""

import pytest
from tenacity import wait_none

from app.core.config import settings
from app.services.export_queue import EXPORT_QUEUE_NAME, CeleryExportQueue
from app.tasks.exports import generate_conversation_export
from app.worker import celery_app


class FlakyTask:
    """Records apply_async calls, failing the first `failures` of them."""

    def __init__(self, failures: int) -> None:
        self.failures = failures
        self.calls: list[dict] = []

    def apply_async(self, kwargs=None, queue=None):
        self.calls.append({"kwargs": kwargs, "queue": queue})
        if len(self.calls) <= self.failures:
            raise ConnectionError("broker unavailable")


@pytest.fixture(autouse=True)
def no_backoff_sleep(monkeypatch):
    monkeypatch.setattr(CeleryExportQueue.publish.retry, "wait", wait_none())


async def test_publish_sends_job_id_to_export_queue():
    task = FlakyTask(failures=0)

    await CeleryExportQueue(task).publish("job-1")

    assert task.calls == [{"kwargs": {"job_id": "job-1"}, "queue": EXPORT_QUEUE_NAME}]


async def test_publish_retries_until_success():
    task = FlakyTask(failures=2)

    await CeleryExportQueue(task).publish("job-1")

    assert len(task.calls) == 3


async def test_publish_gives_up_after_max_attempts():
    task = FlakyTask(failures=10)

    with pytest.raises(ConnectionError):
        await CeleryExportQueue(task).publish("job-1")

    assert len(task.calls) == settings.EXPORT_MAX_ATTEMPTS


def test_export_task_retry_policy():
    assert generate_conversation_export.name == "app.tasks.exports.generate_conversation_export"
    assert generate_conversation_export.max_retries == settings.EXPORT_MAX_ATTEMPTS - 1
    assert generate_conversation_export.retry_backoff == settings.EXPORT_RETRY_BACKOFF
    assert generate_conversation_export.retry_jitter is False
    assert generate_conversation_export.autoretry_for == (Exception,)
    assert generate_conversation_export.acks_late is True


def test_celery_delivers_one_message_per_worker_process():
    assert celery_app.conf.task_acks_late is True
    assert celery_app.conf.worker_prefetch_multiplier == 1
    assert celery_app.conf.task_routes["app.tasks.exports.generate_conversation_export"] == {"queue": "q.exports"}
    assert "cleanup-expired-exports" in celery_app.conf.beat_schedule
