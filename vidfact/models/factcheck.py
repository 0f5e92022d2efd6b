"""
factcheck.py — Pydantic models for the fact-check API and history store.

AnalyzeRequest   — what the client sends (POST /api/v1/fact-check/analyze)
AnalysisReport   — the normalised verdict, identical for both analysis paths
HistoryRecord    — one persisted document per video id
ApiEnvelope      — {status, msg, data} wrapper of every fact-check response

Wire format is camelCase (youtubeUrl, trustScore, ...); Python attributes
stay snake_case.
"""

from datetime import datetime, timezone
from typing import Any, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

ConfidenceLevel = Literal["HIGH", "MEDIUM", "LOW"]
TrustLevel = Literal["HIGH", "MEDIUM", "LOW"]
AnalysisMethod = Literal["transcript", "video"]


class _CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


# ── Request ───────────────────────────────────────────────────────────────────

class AnalyzeRequest(_CamelModel):
    youtube_url: str = Field(..., min_length=1, max_length=2000)


# ── Report ────────────────────────────────────────────────────────────────────

class ClaimVerdict(_CamelModel):
    text: str
    reasoning: str = ""
    confidence: ConfidenceLevel = "LOW"


class VideoInfo(_CamelModel):
    id: str
    url: str
    title: str = "Unknown Title"
    topic: str = "Unknown Topic"
    duration_seconds: int = 0


class ClaimBreakdown(_CamelModel):
    total_claims: int = 0
    correct_claims: list[ClaimVerdict] = Field(default_factory=list)
    incorrect_claims: list[ClaimVerdict] = Field(default_factory=list)
    speculative_claims: list[ClaimVerdict] = Field(default_factory=list)
    correct_percentage: int = 0
    incorrect_percentage: int = 0
    speculative_percentage: int = 0


class TrustRating(_CamelModel):
    score: int = Field(ge=0, le=100)
    level: TrustLevel


class AnalysisReport(_CamelModel):
    """A completed fact-check, whichever path produced it."""
    video: VideoInfo
    summary: str = ""
    fact_check: ClaimBreakdown
    trust: TrustRating
    analysis_note: str = ""
    method: AnalysisMethod
    processing_time: float = 0.0     # seconds, wall clock for the fresh run
    request_count: int = 1


# ── Persistence ───────────────────────────────────────────────────────────────

class HistoryRecord(_CamelModel):
    video_id: str
    youtube_url: str
    video_title: str = ""
    analysis_method: AnalysisMethod = "transcript"
    report: AnalysisReport
    analysis_result: dict[str, Any] = Field(default_factory=dict)
    summary: str = ""
    video_topic: str = ""
    trust_score: int = 0
    trust_level: TrustLevel = "LOW"
    total_claims: int = 0
    request_count: int = 1
    last_analyzed_at: datetime = Field(default_factory=lambda: datetime.now(tz=timezone.utc))
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


# ── Envelope ──────────────────────────────────────────────────────────────────

class ApiEnvelope(BaseModel):
    status: int
    msg: str
    data: Optional[Any] = None
