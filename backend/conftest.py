"""Pytest configuration: set test env before any gitstack imports so settings use test values."""

import os
import tempfile

import pytest
import pytest_asyncio

# Set before gitstack.main is imported: the module-level app reads settings at import time
_tmp = tempfile.mkdtemp(prefix="gitstack_test_")
os.environ.setdefault("GITSTACK_DATABASE_URL", f"sqlite+aiosqlite:///{os.path.join(_tmp, 'test.db')}")
os.environ.setdefault("GITSTACK_BLOB_BASE_PATH", os.path.join(_tmp, "blobs"))
os.environ.setdefault("GITSTACK_RATE_LIMIT_ENABLED", "false")
os.environ.setdefault("GITSTACK_LOG_LEVEL", "WARNING")


@pytest.fixture
def settings(tmp_path):
    """Settings pointing at a fresh SQLite file and blob directory per test."""
    from gitstack.config import Settings

    return Settings(
        database_url=f"sqlite+aiosqlite:///{tmp_path / 'gitstack.db'}",
        blob_base_path=tmp_path / "blobs",
        rate_limit_enabled=False,
        log_level="WARNING",
    )


@pytest_asyncio.fixture
async def database(settings):
    """Initialized Database; engine disposed after the test."""
    from gitstack.db.session import Database

    db = Database(settings.database_url)
    await db.init()
    yield db
    await db.dispose()


@pytest.fixture
def blob_store(settings):
    from gitstack.blobs.store import LocalBlobStore

    return LocalBlobStore(settings.blob_base_path, settings.blob_bucket)


@pytest_asyncio.fixture
async def session(database):
    """One session for the test, like one request."""
    async with database.session() as s:
        yield s


@pytest_asyncio.fixture
async def user_id(database) -> str:
    """Id of a committed user."""
    from gitstack.users.models import User

    async with database.session() as s:
        user = User(external_user_id="ext-owner", email="owner@example.com", name="Owner")
        s.add(user)
        await s.flush()
        return user.id


@pytest_asyncio.fixture
async def project_id(database, user_id) -> str:
    """Id of a committed, empty project owned by user_id."""
    from gitstack.projects.models import Project

    async with database.session() as s:
        project = Project(name="demo", visibility="private", owner_id=user_id)
        s.add(project)
        await s.flush()
        return project.id
