"""
pytest configuration and shared fixtures for the vidfact API tests.

Key concern: tests must not require a live MongoDB, Gemini key, yt-dlp or
network access. We achieve this by:
  1. Patching connect_to_mongo / close_mongo_connection to no-ops so
     FastAPI's lifespan doesn't try to reach a real database.
  2. Setting db_client.client = None (disconnected) so health check
     correctly reports "disconnected" — a valid test-mode state.
  3. Ensuring AI_MOCK_MODE=true so GeminiClient returns canned responses.
  4. Giving routes and the pipeline an in-memory FakeDB instead of Motor.
"""

import copy
import os
from unittest.mock import AsyncMock, MagicMock, patch

import pytest
from httpx import ASGITransport, AsyncClient

# Set env vars BEFORE importing the app so Settings picks them up correctly
os.environ.setdefault("AI_MOCK_MODE", "true")
os.environ.setdefault("ENVIRONMENT", "test")


# ── In-memory MongoDB ─────────────────────────────────────────────────────────

class FakeCollection:
    """Just enough of a Motor collection for the history store."""

    def __init__(self):
        self._docs = []
        self.indexes = []

    @staticmethod
    def _matches(doc, query):
        return all(doc.get(k) == v for k, v in query.items())

    async def find_one(self, query):
        for doc in self._docs:
            if self._matches(doc, query):
                return copy.deepcopy(doc)
        return None

    async def find_one_and_update(self, query, update, upsert=False, return_document=None):
        doc = next((d for d in self._docs if self._matches(d, query)), None)
        if doc is None:
            if not upsert:
                return None
            doc = {"_id": len(self._docs) + 1, **query, **update.get("$setOnInsert", {})}
            self._docs.append(doc)
        doc.update(update.get("$set", {}))
        for key, amount in update.get("$inc", {}).items():
            doc[key] = doc.get(key, 0) + amount
        return copy.deepcopy(doc)

    async def update_one(self, query, update):
        result = MagicMock()
        result.modified_count = 0
        for doc in self._docs:
            if self._matches(doc, query):
                for key, amount in update.get("$inc", {}).items():
                    doc[key] = doc.get(key, 0) + amount
                result.modified_count = 1
                break
        return result

    async def create_index(self, keys, **kwargs):
        self.indexes.append((keys, kwargs))
        return str(keys)


class FakeDB:
    def __init__(self):
        self._cols = {}

    def __getitem__(self, name):
        if name not in self._cols:
            self._cols[name] = FakeCollection()
        return self._cols[name]


@pytest.fixture()
def fake_db():
    return FakeDB()


# ── App lifecycle ─────────────────────────────────────────────────────────────

@pytest.fixture(autouse=True)
async def mock_db():
    """
    Patch the MongoDB lifecycle for every test.

    - connect_to_mongo → no-op AsyncMock (startup doesn't attempt real connection)
    - close_mongo_connection → no-op AsyncMock
    - db_client.client → None  (health check reports "disconnected", which is fine)
    - db_client.db → None
    """
    with (
        patch("vidfact.core.database.connect_to_mongo", new_callable=AsyncMock),
        patch("vidfact.core.database.close_mongo_connection", new_callable=AsyncMock),
    ):
        import vidfact.core.database as db_module

        original_client = db_module.db_client.client
        original_db = db_module.db_client.db

        db_module.db_client.client = None
        db_module.db_client.db = None

        yield

        db_module.db_client.client = original_client
        db_module.db_client.db = original_db


@pytest.fixture(autouse=True)
def reset_rate_limits():
    """The analyze route allows 10/minute per IP; every test starts clean."""
    from vidfact.core.rate_limit import limiter

    limiter.reset()
    yield
    limiter.reset()


@pytest.fixture()
async def client(mock_db):  # noqa: ARG001 — mock_db must run first
    """HTTPX async test client wired to the FastAPI app."""
    from vidfact.main import app

    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as ac:
        yield ac
