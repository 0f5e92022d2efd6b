"""
fact_check_analyzer.py — Ask Gemini to extract and verify a video's claims.

Two entry points share one prompt and one parser:

  analyze_transcript(text)
      Single request with the caption text inlined (truncated past
      TRANSCRIPT_CHAR_LIMIT with an explicit marker).

  analyze_media(media)
      UPLOADING   resumable upload to the File API → file handle
      PROCESSING  poll every poll_interval s, at most poll_max_attempts times
                    ACTIVE            → continue
                    FAILED            → MediaProcessingFailed
                    404               → RemoteFileNotFound (not retried)
                    non-JSON / 5xx /
                    transport error   → counts against poll_error_budget
                                        consecutive errors → BackendUnavailable
                    attempts exhausted → ProcessingTimeout
      ANALYZING   one generateContent call referencing the file URI
      (always)    delete the uploaded handle, best effort

Both return the parsed verdict dict; turning it into a report is the
pipeline's job (see verdict_parser.build_report).
"""

import asyncio
import logging
from typing import Any

import httpx
from google.generativeai import protos

from vidfact.ai.gemini_client import GeminiClient, gemini_client
from vidfact.ai.gemini_files import GeminiFileService, UploadedFile
from vidfact.ai.verdict_parser import parse_response
from vidfact.core.config import settings
from vidfact.core.errors import (
    BackendUnavailable,
    MediaProcessingFailed,
    ProcessingTimeout,
    RemoteFileNotFound,
)
from vidfact.models.acquisition import MediaFile

logger = logging.getLogger(__name__)

TRUNCATION_MARKER = " ... [transcript truncated]"

_PROMPT = """Task: identify and verify the factual claims made in this {content_type}.

Instructions:
1. Go through the whole {content_type} and list every concrete factual statement:
   dates, numbers, statistics, names, historical events, scientific statements.
2. Skip pure opinions and value judgements ("X is great", "Y is terrible").
3. Claims that cannot be checked (rumours, predictions, gossip) go in speculativeClaims.
4. Verify every other claim against what you know and put it in correctClaims or
   incorrectClaims. Say why, citing a source when you know one.
5. Aim for 3-10 claims. If the content has fewer checkable facts, return what there is.

Respond with ONE JSON object and nothing else (no markdown fences):
{{
  "summary": "What the content is about, at most 100 words",
  "videoTopic": "Main topic in about five words",
  "totalClaims": 0,
  "correctClaims": [
    {{"claim": "Statement as made in the content", "reasoning": "Why it holds", "confidence": "HIGH|MEDIUM|LOW"}}
  ],
  "incorrectClaims": [
    {{"claim": "Statement as made in the content", "reasoning": "What is wrong or misleading", "confidence": "HIGH|MEDIUM|LOW"}}
  ],
  "speculativeClaims": [
    {{"claim": "Statement that cannot be verified", "reasoning": "Why it cannot be verified", "confidence": "LOW"}}
  ],
  "correctPercentage": 0,
  "incorrectPercentage": 0,
  "speculativePercentage": 0,
  "trustScore": 0,
  "trustLevel": "HIGH|MEDIUM|LOW",
  "analysisNote": "One sentence on how the verification was done"
}}

Scoring:
- trustScore is 0-100: driven by the share of correct claims, with incorrect claims
  penalised heavily.
- trustLevel: HIGH for 75-100, MEDIUM for 40-74, LOW for 0-39.
- The three percentages add up to 100.
"""


def build_prompt(is_transcript: bool) -> str:
    return _PROMPT.format(content_type="transcript" if is_transcript else "video")


def truncate_transcript(text: str, limit: int) -> str:
    if len(text) <= limit:
        return text
    return text[:limit] + TRUNCATION_MARKER


class FactCheckAnalyzer:
    def __init__(
        self,
        client: GeminiClient | None = None,
        files: GeminiFileService | None = None,
        poll_interval: float | None = None,
        poll_max_attempts: int | None = None,
        poll_error_budget: int | None = None,
        transcript_char_limit: int | None = None,
    ) -> None:
        self.client = client or gemini_client
        self.files = files or GeminiFileService()
        self.poll_interval = poll_interval if poll_interval is not None else settings.poll_interval_seconds
        self.poll_max_attempts = poll_max_attempts or settings.poll_max_attempts
        self.poll_error_budget = poll_error_budget or settings.poll_error_budget
        self.transcript_char_limit = transcript_char_limit or settings.transcript_char_limit

    # ── Text mode ─────────────────────────────────────────────────────────────

    async def analyze_transcript(self, transcript: str) -> dict[str, Any]:
        body = truncate_transcript(transcript, self.transcript_char_limit)
        if len(transcript) > self.transcript_char_limit:
            logger.info("Transcript truncated to %d chars", self.transcript_char_limit)

        prompt = f'{build_prompt(is_transcript=True)}\nCONTENT TO ANALYZE:\n"""\n{body}\n"""'
        logger.info("Analyzing transcript (%d chars)", len(body))
        text = await self.client.generate(prompt, timeout=settings.text_analysis_timeout)
        return parse_response(text)

    # ── Media mode ────────────────────────────────────────────────────────────

    async def analyze_media(self, media: MediaFile) -> dict[str, Any]:
        if self.client.mock_mode:
            logger.info("Mock mode: skipping upload of %s", media.file_name)
            return parse_response(await self.client.generate(build_prompt(False), timeout=0))

        uploaded: UploadedFile | None = None
        try:
            uploaded = await self.files.upload(media.path, media.mime_type, media.file_name)

            if uploaded.state != "ACTIVE":
                await self.wait_until_active(uploaded.name)

            logger.info("Analyzing media %s", uploaded.name)
            contents = [
                protos.Part(
                    file_data=protos.FileData(mime_type=uploaded.mime_type, file_uri=uploaded.uri)
                ),
                build_prompt(is_transcript=False),
            ]
            text = await self.client.generate(contents, timeout=settings.media_analysis_timeout)
            return parse_response(text)
        finally:
            if uploaded is not None:
                await self.files.delete(uploaded.name)

    async def wait_until_active(self, name: str) -> dict[str, Any]:
        consecutive_errors = 0

        for attempt in range(1, self.poll_max_attempts + 1):
            try:
                response = await self.files.get_status(name)
            except httpx.HTTPError as exc:
                consecutive_errors += 1
                logger.warning("Status check error for %s (attempt %d): %s", name, attempt, exc)
                self._check_error_budget(consecutive_errors, name)
                await asyncio.sleep(self.poll_interval)
                continue

            if response.status_code == 404:
                raise RemoteFileNotFound()

            try:
                if response.status_code >= 400:
                    raise ValueError(f"HTTP {response.status_code}")
                data = response.json()
                if not isinstance(data, dict):
                    raise ValueError("status body is not an object")
            except ValueError as exc:
                consecutive_errors += 1
                logger.warning(
                    "Unusable status response for %s (attempt %d): %s — %.200s",
                    name, attempt, exc, response.text,
                )
                self._check_error_budget(consecutive_errors, name)
                await asyncio.sleep(self.poll_interval)
                continue

            consecutive_errors = 0
            state = data.get("state")
            if attempt % 5 == 0 or state != "PROCESSING":
                logger.info("Processing status for %s: %s (attempt %d/%d)",
                            name, state, attempt, self.poll_max_attempts)

            if state == "ACTIVE":
                return data
            if state == "FAILED":
                raise MediaProcessingFailed(detail={"state": state})

            await asyncio.sleep(self.poll_interval)

        raise ProcessingTimeout()

    def _check_error_budget(self, consecutive_errors: int, name: str) -> None:
        if consecutive_errors >= self.poll_error_budget:
            logger.error("Giving up on %s after %d consecutive status errors", name, consecutive_errors)
            raise BackendUnavailable()


# Module-level singleton
fact_check_analyzer = FactCheckAnalyzer()
