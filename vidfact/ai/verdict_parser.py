"""
verdict_parser.py — From free-form model text to an AnalysisReport.

parse_response()  text → dict (direct JSON, then first {...} block, else ParseError)
build_report()    dict + run metadata → AnalysisReport

The model's arithmetic is not trusted: claim totals are recounted,
percentages recomputed from the counts and the trust level derived from the
score bands. The model's own trustLevel survives only in the raw dict that
the history store keeps.
"""

import json
import logging
import re
from typing import Any

from vidfact.core.errors import ParseError
from vidfact.models.factcheck import (
    AnalysisReport,
    ClaimBreakdown,
    ClaimVerdict,
    TrustRating,
    VideoInfo,
)

logger = logging.getLogger(__name__)

_JSON_OBJECT_RE = re.compile(r"\{[\s\S]*\}")
_EXCERPT_CHARS = 1000
_CONFIDENCE_LEVELS = {"HIGH", "MEDIUM", "LOW"}

HIGH_TRUST_MIN = 75
MEDIUM_TRUST_MIN = 40


def parse_response(text: str) -> dict[str, Any]:
    """Decode the model's JSON verdict, tolerating prose or fences around it."""
    data: Any = None
    try:
        data = json.loads(text)
    except (TypeError, json.JSONDecodeError):
        m = _JSON_OBJECT_RE.search(text or "")
        if m:
            try:
                data = json.loads(m.group())
            except json.JSONDecodeError:
                data = None

    if not isinstance(data, dict):
        excerpt = (text or "")[:_EXCERPT_CHARS]
        logger.error("Could not parse AI response. Raw excerpt: %.500s", excerpt)
        raise ParseError(detail={"rawResponse": excerpt})

    if not isinstance(data.get("speculativeClaims"), list):
        data["speculativeClaims"] = []
    return data


def trust_level_for(score: int) -> str:
    if score >= HIGH_TRUST_MIN:
        return "HIGH"
    if score >= MEDIUM_TRUST_MIN:
        return "MEDIUM"
    return "LOW"


def clamp_score(value: Any) -> int:
    try:
        score = int(round(float(value)))
    except (TypeError, ValueError):
        return 0
    return max(0, min(100, score))


def _claims(raw: Any) -> list[ClaimVerdict]:
    if not isinstance(raw, list):
        return []
    claims: list[ClaimVerdict] = []
    for item in raw:
        if isinstance(item, str):
            item = {"claim": item}
        if not isinstance(item, dict):
            continue
        text = str(item.get("claim") or item.get("text") or "").strip()
        if not text:
            continue
        confidence = str(item.get("confidence") or "").strip().upper()
        claims.append(
            ClaimVerdict(
                text=text,
                reasoning=str(item.get("reasoning") or "").strip(),
                confidence=confidence if confidence in _CONFIDENCE_LEVELS else "LOW",
            )
        )
    return claims


def percentages(counts: list[int]) -> list[int]:
    """Largest-remainder split of 100 across *counts*; all zeros if empty."""
    total = sum(counts)
    if total == 0:
        return [0] * len(counts)
    exact = [c * 100 / total for c in counts]
    floors = [int(x) for x in exact]
    short = 100 - sum(floors)
    by_remainder = sorted(range(len(counts)), key=lambda i: exact[i] - floors[i], reverse=True)
    for i in by_remainder[:short]:
        floors[i] += 1
    return floors


def build_report(
    data: dict[str, Any],
    *,
    video_id: str,
    url: str,
    method: str,
    title: str = "Unknown Title",
    duration_seconds: int = 0,
    processing_time: float = 0.0,
) -> AnalysisReport:
    correct = _claims(data.get("correctClaims"))
    incorrect = _claims(data.get("incorrectClaims"))
    speculative = _claims(data.get("speculativeClaims"))
    correct_pct, incorrect_pct, speculative_pct = percentages(
        [len(correct), len(incorrect), len(speculative)]
    )
    score = clamp_score(data.get("trustScore"))

    return AnalysisReport(
        video=VideoInfo(
            id=video_id,
            url=url,
            title=title or "Unknown Title",
            topic=str(data.get("videoTopic") or "Unknown Topic"),
            duration_seconds=max(0, int(duration_seconds or 0)),
        ),
        summary=str(data.get("summary") or ""),
        fact_check=ClaimBreakdown(
            total_claims=len(correct) + len(incorrect) + len(speculative),
            correct_claims=correct,
            incorrect_claims=incorrect,
            speculative_claims=speculative,
            correct_percentage=correct_pct,
            incorrect_percentage=incorrect_pct,
            speculative_percentage=speculative_pct,
        ),
        trust=TrustRating(score=score, level=trust_level_for(score)),
        analysis_note=str(data.get("analysisNote") or ""),
        method=method,
        processing_time=round(processing_time, 2),
    )
