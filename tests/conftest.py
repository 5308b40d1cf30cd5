"""
Test configuration and fixtures for the ADAShield API.

Tests run against a throwaway sqlite database and the in-memory usage store,
so neither Postgres nor Redis is needed.
"""

import os
import tempfile
import uuid
from typing import Generator

from dotenv import load_dotenv

import pytest
import pytest_asyncio
from fastapi.testclient import TestClient

load_dotenv()

test_db_url = os.getenv("TEST_DATABASE_URL")
if test_db_url:
    if "postgresql://" in test_db_url and "asyncpg" not in test_db_url:
        test_db_url = test_db_url.replace("postgresql://", "postgresql+asyncpg://")
    os.environ["DATABASE_URL"] = test_db_url
else:
    test_db_path = os.path.join(tempfile.mkdtemp(), "adashield-test.db")
    os.environ["DATABASE_URL"] = f"sqlite+aiosqlite:///{test_db_path}"

os.environ["FORCE_IN_MEMORY_USAGE_STORE"] = "true"
os.environ["QUOTA_TABLE_CHECKSUM"] = ""


@pytest.fixture(scope="session")
def test_app():
    """Create FastAPI test application."""
    from app.main import app

    return app


@pytest.fixture(scope="function")
def client(test_app) -> Generator[TestClient, None, None]:
    """
    Create a test client for making HTTP requests.
    Entering the client runs the app lifespan, which creates the tables.
    """
    with TestClient(test_app) as test_client:
        yield test_client


@pytest.fixture
def session_id() -> str:
    """A fresh guest session so quota usage never leaks between tests."""
    return f"test-{uuid.uuid4()}"


@pytest.fixture
def session_headers(session_id):
    return {"X-Session-Id": session_id}


@pytest.fixture(autouse=True)
def clear_usage_store():
    from app.features.quota.services.usage import get_usage_store

    get_usage_store().memory_store.clear()
    yield
    get_usage_store().memory_store.clear()


@pytest_asyncio.fixture
async def db_session():
    from app.platform.db.session import SessionLocal, init_models

    await init_models()
    async with SessionLocal() as session:
        yield session
