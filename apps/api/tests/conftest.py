"""Pytest configuration.

Settings are read from the environment at import time, so the database,
export and media locations are pointed at a scratch directory before the
application modules are imported.
"""

import os
import shutil
import tempfile
from datetime import datetime, timedelta, timezone
from pathlib import Path

_TEST_ROOT = Path(tempfile.mkdtemp(prefix="conversation-export-tests-"))

os.environ["DATABASE_URL"] = f"sqlite+aiosqlite:///{(_TEST_ROOT / 'test.db').as_posix()}"
os.environ["EXPORTS_DIR"] = str(_TEST_ROOT / "exports")
os.environ["MEDIA_ROOT"] = str(_TEST_ROOT / "media")
os.environ["PUBLIC_BASE_URL"] = ""
os.environ["CELERY_BROKER_URL"] = "memory://"
os.environ["CELERY_RESULT_BACKEND"] = "cache+memory://"

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient

from app.core.config import settings
from app.core.database import AsyncSessionLocal, engine
from app.main import app
from app.models import Base, Contact, Message, Queue, Tag, Ticket, User
from app.services.export_queue import get_export_queue
from app.services.export_worker import ExportWorker

BASE_TIME = datetime(2024, 5, 1, 10, 0, tzinfo=timezone.utc)


class RecordingQueue:
    """In-process stand-in for the Celery publisher."""

    def __init__(self, fail_times: int = 0) -> None:
        self.published: list[str] = []
        self.fail_times = fail_times

    async def publish(self, job_id: str) -> None:
        if self.fail_times > 0:
            self.fail_times -= 1
            raise ConnectionError("broker unavailable")
        self.published.append(job_id)


@pytest_asyncio.fixture
async def session_factory():
    """Fresh schema and empty export/media directories per test."""
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)
        await conn.run_sync(Base.metadata.create_all)

    for directory in (settings.EXPORTS_DIR, settings.MEDIA_ROOT):
        shutil.rmtree(directory, ignore_errors=True)
        Path(directory).mkdir(parents=True, exist_ok=True)

    yield AsyncSessionLocal


@pytest.fixture
def media_root(session_factory) -> Path:
    return Path(settings.MEDIA_ROOT)


@pytest.fixture
def write_media(media_root):
    """Create an attachment file under the media root and return its stored URL."""
    def _write(relative: str, content: bytes = b"attachment") -> str:
        path = media_root / relative
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_bytes(content)
        return f"/{relative}"

    return _write


@pytest.fixture
def create_ticket(session_factory):
    """Insert a ticket with its contact, assignee, queue, tags and messages.

    Each message is a dict with optional keys: body, private, media,
    agent (bool), deleted (bool), type, status.
    """
    async def _create(
        ticket_id: str = "T-100",
        messages: list[dict] | None = None,
        *,
        with_queue: bool = True,
        with_assignee: bool = True,
        tags: tuple[str, ...] = ("billing", "vip"),
        email: str | None = "maria@example.com",
    ) -> str:
        async with session_factory() as session:
            contact = Contact(id=f"{ticket_id}-contact", name="Maria Silva", phone_number="+5511999990000", email=email)
            agent = await session.get(User, "agent-1")
            if agent is None:
                agent = User(id="agent-1", name="Alex Agent", email="alex@example.com")
                session.add(agent)
            queue = Queue(id=f"{ticket_id}-queue", name="Support") if with_queue else None
            ticket = Ticket(
                id=ticket_id,
                contact=contact,
                user=agent if with_assignee else None,
                queue=queue,
                status="OPEN",
                priority="HIGH",
                tags=[Tag(id=f"{ticket_id}-{name}", name=name) for name in tags],
            )
            session.add(ticket)

            for index, item in enumerate(messages or []):
                session.add(
                    Message(
                        id=f"{ticket_id}-m{index + 1}",
                        ticket_id=ticket_id,
                        user_id=agent.id if item.get("agent") else None,
                        body=item.get("body", f"message {index + 1}"),
                        is_private=item.get("private", False),
                        media_url=item.get("media"),
                        type=item.get("type", "TEXT"),
                        status=item.get("status", "SENT"),
                        created_at=BASE_TIME + timedelta(minutes=index),
                        deleted_at=BASE_TIME if item.get("deleted") else None,
                    )
                )
            await session.commit()
        return ticket_id

    return _create


@pytest.fixture
def queue() -> RecordingQueue:
    return RecordingQueue()


@pytest.fixture
def worker(session_factory) -> ExportWorker:
    return ExportWorker.from_settings(session_factory)


@pytest_asyncio.fixture
async def client(session_factory, queue):
    app.dependency_overrides[get_export_queue] = lambda: queue
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as ac:
        yield ac
    app.dependency_overrides.clear()
