"""
fact_check_pipeline.py — YouTube URL in, fact-check report out.

HOW THE DATA FLOWS
──────────────────
  NORMALIZE        url_normalizer → video id + canonical URL      (InvalidURL → 400)
  CACHE_LOOKUP     history store hit → respond with cached report; the
                   request counter is bumped in a detached task
  TRANSCRIPT       captions found → AI text analysis
                   no captions    → MEDIA
  MEDIA            yt-dlp download → AI media analysis; the temp file is
                   deleted on every exit from this step
  PERSIST          upsert into the history store (failure is logged, the
                   report is still returned)

An AI failure on the transcript path is reported as-is; it does not fall
back to the media path.

Concurrent first-time requests for the same video share one run
(SingleFlight), so the expensive part happens once per video at a time.
Every caller that joins a shared run still counts as a request.

run() never raises: every outcome is a PipelineResult carrying the
{status, msg, data} envelope the API returns.
"""

import logging
import time
from dataclasses import dataclass
from typing import Any, Optional

from vidfact.ai.fact_check_analyzer import FactCheckAnalyzer, fact_check_analyzer
from vidfact.ai.verdict_parser import build_report
from vidfact.core.background import BackgroundTasks, background_tasks
from vidfact.core.errors import FactCheckError, NoTranscript, ParseError
from vidfact.core.single_flight import SingleFlight
from vidfact.models.acquisition import MediaFile, Transcript
from vidfact.models.factcheck import AnalysisReport, ApiEnvelope
from vidfact.services.history_store import HistoryStore
from vidfact.services.media_acquirer import MediaAcquirer, media_acquirer
from vidfact.services.transcript_fetcher import (
    TranscriptFetcher,
    fetch_video_title,
    transcript_fetcher,
)
from vidfact.services.url_normalizer import NormalizedURL, normalize

logger = logging.getLogger(__name__)

MSG_FRESH = "Video fact-checked successfully"
MSG_CACHED = "Video fact-checked successfully (cached)"
MSG_INTERNAL = "Internal server error during analysis"


@dataclass
class PipelineResult:
    status: int
    msg: str
    data: Optional[Any] = None
    cached: bool = False

    @property
    def ok(self) -> bool:
        return self.status == 200

    def envelope(self) -> dict[str, Any]:
        return ApiEnvelope(status=self.status, msg=self.msg, data=self.data).model_dump()


def _success(report: AnalysisReport, cached: bool) -> PipelineResult:
    return PipelineResult(
        status=200,
        msg=MSG_CACHED if cached else MSG_FRESH,
        data=report.model_dump(mode="json", by_alias=True),
        cached=cached,
    )


def _failure(exc: FactCheckError) -> PipelineResult:
    data = exc.detail if isinstance(exc, ParseError) else None
    return PipelineResult(status=exc.status_code, msg=exc.message, data=data)


class FactCheckPipeline:
    def __init__(
        self,
        transcripts: TranscriptFetcher | None = None,
        media: MediaAcquirer | None = None,
        analyzer: FactCheckAnalyzer | None = None,
        background: BackgroundTasks | None = None,
        title_lookup=fetch_video_title,
    ) -> None:
        self.transcripts = transcripts or transcript_fetcher
        self.media = media or media_acquirer
        self.analyzer = analyzer or fact_check_analyzer
        self.background = background or background_tasks
        self.title_lookup = title_lookup
        self._single_flight: SingleFlight[AnalysisReport] = SingleFlight()

    async def run(self, youtube_url: str, store: HistoryStore | None = None) -> PipelineResult:
        """Analyse *youtube_url*; always returns an envelope, never raises."""
        started = time.perf_counter()
        try:
            target = normalize(youtube_url)
            logger.info("Fact-check requested for %s", target.video_id)

            cached = await self._lookup(target.video_id, store)
            if cached is not None:
                return _success(cached, cached=True)

            report, joined = await self._single_flight.do(
                target.video_id, lambda: self._analyze(target, store, started)
            )
            if joined:
                report = self._count_request(target.video_id, report, store)
            return _success(report, cached=False)

        except FactCheckError as exc:
            logger.info("Fact-check failed (%s, %d): %s", exc.kind.value, exc.status_code, exc.message)
            return _failure(exc)
        except Exception as exc:
            logger.error("Unexpected fact-check pipeline error: %s", exc, exc_info=True)
            return PipelineResult(status=500, msg=MSG_INTERNAL, data=None)

    # ── Steps ─────────────────────────────────────────────────────────────────

    async def _lookup(self, video_id: str, store: HistoryStore | None) -> Optional[AnalysisReport]:
        if store is None:
            return None
        try:
            record = await store.find(video_id)
        except Exception as exc:
            logger.warning("History lookup failed for %s, treating as miss: %s", video_id, exc)
            return None
        if record is None:
            return None

        logger.info("Cache hit for %s (request_count=%d)", video_id, record.request_count)
        return self._count_request(
            video_id, record.report.model_copy(update={"request_count": record.request_count}), store
        )

    def _count_request(
        self, video_id: str, report: AnalysisReport, store: HistoryStore | None,
    ) -> AnalysisReport:
        """Bump the stored counter in the background and report the new value."""
        if store is None:
            return report
        self.background.spawn(
            store.increment_request_count(video_id), name=f"history-count:{video_id}"
        )
        return report.model_copy(update={"request_count": report.request_count + 1})

    async def _analyze(
        self, target: NormalizedURL, store: HistoryStore | None, started: float,
    ) -> AnalysisReport:
        try:
            transcript = await self.transcripts.fetch(target.video_id)
        except NoTranscript:
            logger.info("No transcript for %s, falling back to media download", target.video_id)
            verdict, media = await self._analyze_media(target)
            report = self._report(
                verdict, target, "video", media.title, media.duration_seconds, started
            )
        else:
            verdict, title = await self._analyze_transcript(target, transcript)
            report = self._report(
                verdict, target, "transcript", title, transcript.duration_seconds, started
            )

        logger.info(
            "Analysis complete for %s in %.2fs (%s method, trust=%d)",
            target.video_id, report.processing_time, report.method, report.trust.score,
        )
        return await self._persist(target.video_id, report, verdict, store)

    async def _analyze_transcript(
        self, target: NormalizedURL, transcript: Transcript,
    ) -> tuple[dict[str, Any], str]:
        verdict = await self.analyzer.analyze_transcript(transcript.text)
        title = await self.title_lookup(target.video_id)
        return verdict, title

    async def _analyze_media(self, target: NormalizedURL) -> tuple[dict[str, Any], MediaFile]:
        media = await self.media.acquire(target.video_id)
        try:
            verdict = await self.analyzer.analyze_media(media)
        finally:
            self.media.delete_file(media.path)
        return verdict, media

    @staticmethod
    def _report(
        verdict: dict[str, Any],
        target: NormalizedURL,
        method: str,
        title: str,
        duration_seconds: int,
        started: float,
    ) -> AnalysisReport:
        return build_report(
            verdict,
            video_id=target.video_id,
            url=target.canonical_url,
            method=method,
            title=title,
            duration_seconds=duration_seconds,
            processing_time=time.perf_counter() - started,
        )

    async def _persist(
        self,
        video_id: str,
        report: AnalysisReport,
        verdict: dict[str, Any],
        store: HistoryStore | None,
    ) -> AnalysisReport:
        if store is None:
            return report
        try:
            record = await store.upsert(video_id, report, verdict)
        except Exception as exc:
            logger.warning("Could not cache fact-check for %s: %s", video_id, exc)
            return report
        return report.model_copy(update={"request_count": record.request_count})


# Module-level singleton
fact_check_pipeline = FactCheckPipeline()
