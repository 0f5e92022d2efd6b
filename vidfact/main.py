"""
vidfact API — Application entry point.

Bootstraps FastAPI, wires up middleware, registers route groups,
and manages the MongoDB connection and temp-directory sweeper lifecycle.

Run locally:
  uvicorn vidfact.main:app --reload
"""

import asyncio
import logging
from contextlib import asynccontextmanager, suppress

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from slowapi import _rate_limit_exceeded_handler
from slowapi.errors import RateLimitExceeded

from vidfact.core.background import background_tasks
from vidfact.core.config import settings
from vidfact.core.database import close_mongo_connection, connect_to_mongo
from vidfact.core.rate_limit import limiter
from vidfact.models.factcheck import ApiEnvelope
from vidfact.routes.factcheck import router as factcheck_router
from vidfact.routes.health import router as health_router
from vidfact.services.media_acquirer import media_acquirer

# ─── Logging ───────────────────────────────────────────────────────────────────
logging.basicConfig(
    level=logging.DEBUG if settings.debug else logging.INFO,
    format="%(asctime)s | %(levelname)-8s | %(name)s | %(message)s",
)
logger = logging.getLogger(__name__)


# ─── Temp sweep ────────────────────────────────────────────────────────────────
async def _sweep_temp_dir_forever() -> None:
    """Delete stale downloads at startup and then every sweep interval."""
    while True:
        try:
            removed = await asyncio.to_thread(media_acquirer.sweep_temp_dir)
            if removed:
                logger.info("Temp sweep removed %d stale file(s)", removed)
        except Exception as exc:
            logger.warning("Temp sweep failed: %s", exc)
        await asyncio.sleep(settings.temp_sweep_interval_seconds)


# ─── Lifespan ──────────────────────────────────────────────────────────────────
@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Manage startup and shutdown lifecycle.

    Code before `yield` runs on startup; code after runs on shutdown.
    """
    logger.info("Starting vidfact API (env: %s)", settings.environment)
    await connect_to_mongo()
    sweeper = asyncio.create_task(_sweep_temp_dir_forever(), name="temp-sweep")
    yield
    logger.info("Shutting down vidfact API")
    sweeper.cancel()
    with suppress(asyncio.CancelledError):
        await sweeper
    await background_tasks.drain()
    await close_mongo_connection()


# ─── App ───────────────────────────────────────────────────────────────────────
app = FastAPI(
    title="vidfact API",
    description=(
        "Fact-checks the claims made in YouTube videos. "
        "All AI results are probabilistic — not guaranteed."
    ),
    version="0.1.0",
    lifespan=lifespan,
    # Disable docs in production to reduce attack surface
    docs_url="/docs" if settings.environment != "production" else None,
    redoc_url="/redoc" if settings.environment != "production" else None,
)


# ─── Rate limiting ─────────────────────────────────────────────────────────────
# Routes opt-in with @limiter.limit("N/minute") + request: Request parameter.
app.state.limiter = limiter
app.add_exception_handler(RateLimitExceeded, _rate_limit_exceeded_handler)


# ─── Validation errors ─────────────────────────────────────────────────────────
@app.exception_handler(RequestValidationError)
async def validation_exception_handler(request: Request, exc: RequestValidationError):
    """Render body validation failures in the same envelope as everything else."""
    errors = exc.errors()
    msg = "Invalid request body"
    for err in errors:
        if err.get("loc", ())[-1:] == ("youtubeUrl",):
            msg = "YouTube URL is required" if err.get("type") == "missing" else f"youtubeUrl: {err.get('msg')}"
            break
    return JSONResponse(status_code=400, content=ApiEnvelope(status=400, msg=msg).model_dump())


# ─── Middleware ─────────────────────────────────────────────────────────────────
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


# ─── Routes ────────────────────────────────────────────────────────────────────
app.include_router(health_router, prefix="/health", tags=["health"])
app.include_router(factcheck_router)


@app.get("/", tags=["root"])
async def root():
    """API root — basic metadata."""
    return {
        "name": "vidfact API",
        "version": "0.1.0",
        "status": "running",
        "environment": settings.environment,
        "docs": "/docs",
    }
