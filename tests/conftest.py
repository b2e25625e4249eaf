"""Shared test fixtures: a fresh SQLite file per test."""

from unittest.mock import AsyncMock

import pytest
import pytest_asyncio

from threadline.config import ThreadlineConfig
from threadline.context import AppServices, RequestContext
from threadline.database import Storage, create_engine, create_tables
from threadline.store.comments import CommentStore
from threadline.store.config_store import ConfigStore


@pytest.fixture
def settings(tmp_path):
    return ThreadlineConfig(
        database_url=f"sqlite+aiosqlite:///{tmp_path / 'threadline.db'}",
        log_dir=str(tmp_path / "logs"),
        upload_dir=str(tmp_path / "uploads"),
        post_submit_timeout=5.0,
    )


@pytest_asyncio.fixture
async def storage(settings):
    handle = Storage(create_engine(settings))
    await create_tables(handle, settings)
    yield handle
    await handle.dispose()


@pytest.fixture
def comments(storage):
    return CommentStore(storage)


@pytest.fixture
def config_store(storage):
    return ConfigStore(storage)


@pytest.fixture
def services(storage, settings):
    """App services with the outbound collaborators mocked out."""
    classifier = AsyncMock()
    classifier.classify = AsyncMock(return_value=None)
    notifier = AsyncMock()
    notifier.notify = AsyncMock(return_value=None)
    return AppServices(storage=storage, settings=settings, classifier=classifier, notifier=notifier)


@pytest.fixture
def make_context(services):
    def _make(config=None, token="visitor-token", ip="10.0.0.1", is_admin=False):
        return RequestContext(
            services=services,
            config=config or {},
            access_token=token,
            ip=ip,
            is_admin=is_admin,
        )
    return _make


@pytest.fixture
def make_record():
    """Factory for stored-comment records with sensible defaults."""
    return _record


def _record(**overrides):
    record = {
        "uid": "author",
        "nick": "Alice",
        "mail": "alice@example.com",
        "ua": "pytest",
        "ip": "10.0.0.1",
        "url": "/post/1",
        "href": "https://blog.example.com/post/1",
        "comment": "<p>Hello</p>",
        "rid": "",
        "pid": "",
        "isSpam": False,
        "created": 1_700_000_000_000,
    }
    record.update(overrides)
    return record
