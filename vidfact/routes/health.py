"""
Health check endpoint.

Returns liveness plus MongoDB connectivity, so callers can tell
"API down" apart from "API up but history store unreachable".
"""

import logging

from fastapi import APIRouter
from pydantic import BaseModel

from vidfact.core import database as db_module
from vidfact.core.config import settings

logger = logging.getLogger(__name__)
router = APIRouter()


class HealthResponse(BaseModel):
    status: str  # Always "ok" if the API process is alive
    version: str
    database: str  # "connected" | "disconnected"
    ai_mode: str  # "mock" | "real"
    environment: str


@router.get("", response_model=HealthResponse, summary="API health check")
async def health_check() -> HealthResponse:
    """
    Liveness of the API and its database connection.

    HTTP 200 even with the database down: fact-checks still run, they are
    just not cached.
    """
    db_status = "disconnected"
    try:
        # Access via module reference so tests can patch db_module.db_client
        if db_module.db_client.client is not None:
            await db_module.db_client.client.admin.command("ping")
            db_status = "connected"
    except Exception as exc:
        logger.warning("DB ping failed: %s", exc)

    return HealthResponse(
        status="ok",
        version="0.1.0",
        database=db_status,
        ai_mode="mock" if settings.ai_mock_mode else "real",
        environment=settings.environment,
    )
