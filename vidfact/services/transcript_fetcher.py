"""
transcript_fetcher.py — Caption track for a video id (the fast path).

youtube-transcript-api is synchronous (requests under the hood), so the
fetch runs in a worker thread with an overall timeout. Every failure mode
(captions disabled, no track in the wanted languages, region lock, network
error, timeout) collapses into NoTranscript: to the pipeline they all just
mean "try the media path".

Also home to the oEmbed title lookup, since the caption source carries no
video metadata.
"""

import asyncio
import logging
import math
import re

import httpx
from youtube_transcript_api import CouldNotRetrieveTranscript, YouTubeTranscriptApi

from vidfact.core.config import settings
from vidfact.core.errors import NoTranscript
from vidfact.models.acquisition import Transcript
from vidfact.services.url_normalizer import canonical_url, validate_video_id

logger = logging.getLogger(__name__)

_WS_RE = re.compile(r"\s+")
_OEMBED_URL = "https://www.youtube.com/oembed"
UNKNOWN_TITLE = "Unknown Title"


def _build_transcript(snippets: list) -> Transcript:
    text = _WS_RE.sub(" ", " ".join(s.text for s in snippets)).strip()
    last = snippets[-1]
    duration = math.ceil(last.start + last.duration)
    return Transcript(
        text=text,
        word_count=len(text.split()),
        duration_seconds=duration,
        segment_count=len(snippets),
    )


class TranscriptFetcher:
    def __init__(
        self,
        api: YouTubeTranscriptApi | None = None,
        languages: list[str] | None = None,
        timeout: float | None = None,
    ) -> None:
        self._api = api
        self._languages = languages or settings.transcript_languages
        self._timeout = timeout if timeout is not None else settings.transcript_timeout

    def _fetch_sync(self, video_id: str) -> list:
        api = self._api or YouTubeTranscriptApi()
        return list(api.fetch(video_id, languages=self._languages))

    async def fetch(self, video_id: str) -> Transcript:
        """Return the caption text for *video_id* or raise NoTranscript."""
        video_id = validate_video_id(video_id)
        logger.info("Fetching transcript for video: %s", video_id)

        try:
            snippets = await asyncio.wait_for(
                asyncio.to_thread(self._fetch_sync, video_id), timeout=self._timeout
            )
        except CouldNotRetrieveTranscript as exc:
            logger.info("No transcript for %s: %s", video_id, type(exc).__name__)
            raise NoTranscript() from exc
        except asyncio.TimeoutError as exc:
            logger.warning("Transcript fetch for %s timed out after %ss", video_id, self._timeout)
            raise NoTranscript() from exc
        except Exception as exc:
            logger.warning("Transcript fetch failed for %s: %s", video_id, exc)
            raise NoTranscript() from exc

        if not snippets:
            raise NoTranscript("No transcript available")

        transcript = _build_transcript(snippets)
        if not transcript.text:
            raise NoTranscript("No transcript available")

        logger.info(
            "Transcript fetched for %s: %d words, %d segments, ~%ds",
            video_id, transcript.word_count, transcript.segment_count, transcript.duration_seconds,
        )
        return transcript


async def fetch_video_title(video_id: str, transport: httpx.AsyncBaseTransport | None = None) -> str:
    """
    Look up the video title via YouTube's oEmbed endpoint.

    Never raises — returns UNKNOWN_TITLE on any failure.
    """
    params = {"url": canonical_url(video_id), "format": "json"}
    try:
        async with httpx.AsyncClient(timeout=settings.oembed_timeout, transport=transport) as client:
            resp = await client.get(_OEMBED_URL, params=params)
            resp.raise_for_status()
            title = str(resp.json().get("title") or "").strip()
            return title[:200] or UNKNOWN_TITLE
    except Exception as exc:
        logger.debug("oEmbed title lookup failed for %s: %s", video_id, exc)
        return UNKNOWN_TITLE


# Module-level singleton
transcript_fetcher = TranscriptFetcher()
