"""
MongoDB connection management using Motor (async driver).

Single DatabaseClient instance shared across all requests via a
module-level singleton. FastAPI's dependency injection (get_db) gives
routes access without importing the singleton directly.

The connection is opened in FastAPI's lifespan (startup) and closed
on shutdown. The fact-check history collection gets its unique
video_id index at the same time.
"""

import logging
import re

import certifi
from motor.motor_asyncio import AsyncIOMotorClient, AsyncIOMotorDatabase

from vidfact.core.config import settings

logger = logging.getLogger(__name__)


class DatabaseClient:
    """
    Holds the Motor client and selected database.

    A class rather than bare globals so tests can swap .client and .db
    without reaching into module state.
    """

    client: AsyncIOMotorClient | None = None
    db: AsyncIOMotorDatabase | None = None


# Module-level singleton — all app code references this object
db_client = DatabaseClient()


async def connect_to_mongo() -> None:
    """
    Create the MongoDB connection and validate it with a ping.

    Called once at app startup (via lifespan). If MongoDB is unavailable
    the API still serves fact-checks, it just cannot cache them.
    """
    logger.info("Connecting to MongoDB at %s", _redact_uri(settings.mongo_uri))
    try:
        tls_kwargs = {}
        if settings.mongo_uri.startswith("mongodb+srv://") or "tls=true" in settings.mongo_uri:
            # Atlas TLS needs a CA bundle the stock ssl context may not have.
            tls_kwargs["tlsCAFile"] = certifi.where()
        db_client.client = AsyncIOMotorClient(
            settings.mongo_uri,
            serverSelectionTimeoutMS=5000,
            **tls_kwargs,
        )
        db_client.db = db_client.client[settings.mongo_db_name]
        await db_client.client.admin.command("ping")
        logger.info("MongoDB connection established (db: %s)", settings.mongo_db_name)

        from vidfact.services.history_store import HistoryStore

        await HistoryStore(db_client.db).ensure_indexes()
    except Exception as exc:
        logger.warning(
            "MongoDB unavailable at startup: %s. "
            "API running in degraded mode — results will not be cached.",
            exc,
        )
        db_client.client = None
        db_client.db = None


async def close_mongo_connection() -> None:
    """Close the MongoDB connection gracefully on app shutdown."""
    if db_client.client is not None:
        db_client.client.close()
        logger.info("MongoDB connection closed")


def get_db() -> AsyncIOMotorDatabase | None:
    """
    FastAPI dependency — inject the database into route handlers.

    Returns None when MongoDB is unavailable so callers can skip the
    cache instead of failing the request.
    """
    return db_client.db


def _redact_uri(uri: str) -> str:
    """Strip credentials from URI before logging."""
    return re.sub(r"://[^:]+:[^@]+@", "://<redacted>@", uri)
