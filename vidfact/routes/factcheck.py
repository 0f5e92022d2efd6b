"""
factcheck.py — Fact-check routes.

Routes:
  POST /api/v1/fact-check/analyze             — YouTube URL in, report out
  GET  /api/v1/fact-check/history/{video_id}  — previously stored report

HOW THE DATA FLOWS
──────────────────
1. Client posts {"youtubeUrl": "..."}.
2. fact_check_pipeline.run() does everything else (normalise, cache lookup,
   transcript or media analysis, persist) and hands back a PipelineResult.
3. The route turns it into JSONResponse(status=result.status) with the
   {status, msg, data} envelope as body. Errors never escape as exceptions.

The history store is optional: with MongoDB down, analyze still works
(uncached) and history answers 503.

TESTING YOUR CHANGES
─────────────────────
  pytest tests/test_factcheck_routes.py -v

  # Manual test:
  curl -X POST http://localhost:8000/api/v1/fact-check/analyze \\
    -H 'Content-Type: application/json' \\
    -d '{"youtubeUrl": "https://www.youtube.com/watch?v=dQw4w9WgXcQ"}'
"""

import logging
from typing import Any, Optional

from fastapi import APIRouter, Depends, Request
from fastapi.responses import JSONResponse

from vidfact.core.errors import InvalidURL
from vidfact.core.rate_limit import limiter
from vidfact.models.factcheck import AnalyzeRequest, ApiEnvelope
from vidfact.services.fact_check_pipeline import fact_check_pipeline
from vidfact.services.history_store import HistoryStore, get_history_store
from vidfact.services.url_normalizer import contains_unsafe_sequence, validate_video_id

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/v1/fact-check", tags=["factcheck"])


def _envelope(status: int, msg: str, data: Any = None) -> JSONResponse:
    return JSONResponse(status_code=status, content=ApiEnvelope(status=status, msg=msg, data=data).model_dump())


# ── Routes ────────────────────────────────────────────────────────────────────

@router.post("/analyze", response_model=ApiEnvelope)
@limiter.limit("10/minute")
async def analyze(
    request: Request,
    payload: AnalyzeRequest,
    store: Optional[HistoryStore] = Depends(get_history_store),
):
    """
    Fact-check a YouTube video.

    Captions are used when available; otherwise the video itself is
    downloaded and sent to the model. Repeat requests for the same video
    are answered from the history store.
    """
    result = await fact_check_pipeline.run(payload.youtube_url, store)
    return JSONResponse(status_code=result.status, content=result.envelope())


@router.get("/history/{video_id}", response_model=ApiEnvelope)
async def history(
    video_id: str,
    store: Optional[HistoryStore] = Depends(get_history_store),
):
    """Return the stored report for *video_id* without re-analysing."""
    try:
        if contains_unsafe_sequence(video_id):
            raise InvalidURL("Invalid video ID format")
        validate_video_id(video_id)
    except InvalidURL as exc:
        return _envelope(exc.status_code, exc.message)

    if store is None:
        return _envelope(503, "History store unavailable")

    try:
        record = await store.find(video_id)
    except Exception as exc:
        logger.error("History lookup failed for %s: %s", video_id, exc, exc_info=True)
        return _envelope(503, "History store unavailable")

    if record is None:
        return _envelope(404, "No fact-check found for this video")

    report = record.report.model_copy(update={"request_count": record.request_count})
    return _envelope(200, "Fact-check history retrieved", report.model_dump(mode="json", by_alias=True))
