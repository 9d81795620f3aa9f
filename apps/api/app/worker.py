"""Celery application configuration."""

from __future__ import annotations

import asyncio
from typing import Any, Coroutine, TypeVar

from celery import Celery
from celery.signals import setup_logging
from kombu import Queue

from app.core.config import settings
from app.core.observability import configure_logging

T = TypeVar("T")


def _default_broker() -> str:
    return settings.CELERY_BROKER_URL or settings.REDIS_URL


def _default_backend() -> str:
    return settings.CELERY_RESULT_BACKEND or settings.REDIS_URL


celery_app = Celery(
    "conversation_exports",
    broker=_default_broker(),
    backend=_default_backend(),
    include=[
        "app.tasks.exports",
        "app.tasks.maintenance",
    ],
)


celery_app.conf.update(
    task_serializer="json",
    accept_content=["json"],
    result_serializer="json",
    timezone="UTC",
    enable_utc=True,
    # A message is acknowledged only once its handler returns, and each
    # worker process reserves one message at a time.
    task_acks_late=True,
    worker_prefetch_multiplier=1,
    task_ignore_result=True,
    task_default_queue="q.exports",
    task_queues=(
        Queue("q.exports"),
        Queue("q.maintenance"),
    ),
    task_routes={
        "app.tasks.exports.generate_conversation_export": {"queue": "q.exports"},
        "app.tasks.maintenance.cleanup_expired_exports_task": {"queue": "q.maintenance"},
    },
    beat_schedule={
        "cleanup-expired-exports": {
            "task": "app.tasks.maintenance.cleanup_expired_exports_task",
            "schedule": 3600.0,
            "args": (),
        },
    },
)


@setup_logging.connect
def _configure_worker_logging(**kwargs: Any) -> None:
    configure_logging(settings.LOG_LEVEL)


def run_async(coro: Coroutine[Any, Any, T]) -> T:
    """Run a coroutine from a synchronous Celery task."""
    try:
        asyncio.get_running_loop()
    except RuntimeError:
        return asyncio.run(coro)

    new_loop = asyncio.new_event_loop()
    try:
        return new_loop.run_until_complete(coro)
    finally:
        new_loop.close()
