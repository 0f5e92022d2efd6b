"""
media_acquirer.py — Download a small rendition of a video with yt-dlp (slow path).

HOW A DOWNLOAD RUNS
───────────────────
1. Re-validate the input and rebuild the canonical watch URL from the id.
   Nothing the caller typed reaches the command line.
2. Metadata: `yt-dlp --dump-json --no-download ... -- <url>`, trying each
   configured persona (player client + headers) until one answers. The
   persona that worked is reused for the download.
3. Duration ceiling checked before a single media byte is fetched.
4. Download: each configured format selector in order (audio-only first,
   then the worst muxed video, then anything) until a file appears.
5. The file must sit inside the temp directory and be under the size
   ceiling; otherwise it is discarded and the download fails.

yt-dlp is always invoked via exec (no shell) and every argv ends with
`-- <canonical url>` so the URL can never be read as an option.

Files are named <videoId>_<unixMillis>.<ext>. sweep_temp_dir() removes
anything older than the max age, as a backstop for runs that crashed
before their own cleanup.
"""

import asyncio
import json
import logging
import re
import time
from collections.abc import Awaitable, Callable, Sequence
from dataclasses import dataclass
from pathlib import Path
from typing import Any, TypeVar

from vidfact.core.config import DownloadFormat, ExtractionPersona, settings
from vidfact.core.errors import (
    DownloadFailed,
    InfoFetchFailed,
    TooLarge,
    TooLong,
)
from vidfact.models.acquisition import MediaFile
from vidfact.services.url_normalizer import canonical_url, ensure_video_id

logger = logging.getLogger(__name__)

MIME_TYPES = {
    ".mp4": "video/mp4",
    ".webm": "video/webm",
    ".mkv": "video/x-matroska",
    ".m4a": "audio/mp4",
    ".mp3": "audio/mpeg",
    ".aac": "audio/aac",
    ".ogg": "audio/ogg",
    ".opus": "audio/ogg",
    ".wav": "audio/wav",
}
DEFAULT_MIME = "video/mp4"

_TEMP_FILE_RE = re.compile(r"[A-Za-z0-9_-]+(?:\.[A-Za-z0-9]+)*\.(mp4|m4a|webm|mkv|mp3|aac|ogg|opus|wav|part|ytdl)")
_MAX_FILESIZE_MARKER = "max-filesize"

S = TypeVar("S")
R = TypeVar("R")


# ── Process runner ────────────────────────────────────────────────────────────

@dataclass
class CommandResult:
    returncode: int
    stdout: str
    stderr: str


CommandRunner = Callable[[Sequence[str], float], Awaitable[CommandResult]]


async def run_command(argv: Sequence[str], timeout: float) -> CommandResult:
    """Run *argv* without a shell; kill it if it outlives *timeout*."""
    proc = await asyncio.create_subprocess_exec(
        *argv,
        stdout=asyncio.subprocess.PIPE,
        stderr=asyncio.subprocess.PIPE,
    )
    try:
        out, err = await asyncio.wait_for(proc.communicate(), timeout=timeout)
    except asyncio.TimeoutError:
        proc.kill()
        await proc.wait()
        raise
    return CommandResult(
        returncode=proc.returncode if proc.returncode is not None else -1,
        stdout=out.decode("utf-8", errors="replace"),
        stderr=err.decode("utf-8", errors="replace"),
    )


class AttemptFailed(Exception):
    """One strategy in a fallback list did not work; try the next."""


async def first_success(
    strategies: Sequence[S],
    attempt: Callable[[S], Awaitable[R]],
    label: str,
) -> tuple[S, R]:
    """
    Try *strategies* in order; return the first (strategy, result) pair.

    *attempt* signals a soft failure by raising AttemptFailed. Anything else
    propagates immediately and ends the search.
    """
    for strategy in strategies:
        try:
            return strategy, await attempt(strategy)
        except AttemptFailed as exc:
            logger.info("%s strategy %s failed: %s", label, getattr(strategy, "name", strategy), exc)
    raise AttemptFailed(f"all {len(strategies)} {label} strategies failed")


# ── Acquirer ──────────────────────────────────────────────────────────────────

class MediaAcquirer:
    def __init__(
        self,
        temp_dir: str | Path | None = None,
        runner: CommandRunner = run_command,
        personas: Sequence[ExtractionPersona] | None = None,
        formats: Sequence[DownloadFormat] | None = None,
        binary: str | None = None,
        max_duration_seconds: int | None = None,
        max_file_size_bytes: int | None = None,
        info_timeout: float | None = None,
        download_timeout: float | None = None,
    ) -> None:
        self.temp_dir = Path(temp_dir or settings.temp_dir).resolve()
        self._run = runner
        self.personas = list(personas if personas is not None else settings.ytdlp_personas)
        self.formats = list(formats if formats is not None else settings.ytdlp_formats)
        self.binary = binary or settings.ytdlp_binary
        self.max_duration_seconds = max_duration_seconds or settings.max_duration_seconds
        self.max_file_size_bytes = max_file_size_bytes or settings.max_file_size_bytes
        self.info_timeout = info_timeout or settings.info_timeout
        self.download_timeout = download_timeout or settings.download_timeout

    # ── argv builders ─────────────────────────────────────────────────────────

    @staticmethod
    def _persona_args(persona: ExtractionPersona) -> list[str]:
        args: list[str] = []
        if persona.player_client:
            args += ["--extractor-args", f"youtube:player_client={persona.player_client}"]
        if persona.user_agent:
            args += ["--user-agent", persona.user_agent]
        for key, value in persona.headers.items():
            args += ["--add-header", f"{key}:{value}"]
        return args

    def info_argv(self, url: str, persona: ExtractionPersona) -> list[str]:
        return [
            self.binary, "--dump-json", "--no-download", "--no-playlist",
            *self._persona_args(persona), "--", url,
        ]

    def download_argv(
        self, url: str, persona: ExtractionPersona, fmt: DownloadFormat, output_template: str,
    ) -> list[str]:
        argv = [self.binary, "-f", fmt.selector]
        if fmt.merge_output_format:
            argv += ["--merge-output-format", fmt.merge_output_format]
        argv += [
            "--no-playlist",
            "--max-filesize", str(self.max_file_size_bytes),
            "-o", output_template,
            *self._persona_args(persona),
            "--", url,
        ]
        return argv

    # ── Steps ─────────────────────────────────────────────────────────────────

    async def _fetch_info(self, url: str) -> tuple[ExtractionPersona, dict[str, Any]]:
        async def attempt(persona: ExtractionPersona) -> dict[str, Any]:
            try:
                result = await self._run(self.info_argv(url, persona), self.info_timeout)
            except asyncio.TimeoutError as exc:
                raise AttemptFailed("metadata fetch timed out") from exc
            except OSError as exc:
                raise AttemptFailed(f"could not start {self.binary}: {exc}") from exc
            if result.returncode != 0:
                raise AttemptFailed(f"exit {result.returncode}: {result.stderr.strip()[:200]}")
            try:
                info = json.loads(result.stdout)
            except json.JSONDecodeError as exc:
                raise AttemptFailed("metadata was not JSON") from exc
            if not isinstance(info, dict):
                raise AttemptFailed("metadata was not a JSON object")
            return info

        try:
            return await first_success(self.personas, attempt, "metadata")
        except AttemptFailed as exc:
            raise InfoFetchFailed() from exc

    async def _download(self, url: str, persona: ExtractionPersona, stem: str) -> Path:
        output_template = str(self.temp_dir / f"{stem}.%(ext)s")
        too_large = False

        async def attempt(fmt: DownloadFormat) -> Path:
            nonlocal too_large
            started = time.perf_counter()
            try:
                result = await self._run(
                    self.download_argv(url, persona, fmt, output_template), self.download_timeout
                )
            except asyncio.TimeoutError as exc:
                self._discard(stem)
                raise AttemptFailed("download timed out") from exc
            except OSError as exc:
                raise AttemptFailed(f"could not start {self.binary}: {exc}") from exc

            if _MAX_FILESIZE_MARKER in result.stdout or _MAX_FILESIZE_MARKER in result.stderr:
                too_large = True
            if result.returncode != 0:
                self._discard(stem)
                raise AttemptFailed(f"exit {result.returncode}: {result.stderr.strip()[:200]}")

            path = self._locate(stem)
            if path is None:
                self._discard(stem)
                raise AttemptFailed("no output file produced")
            logger.info(
                "Download (%s via %s) finished in %.1fs", fmt.name, persona.name,
                time.perf_counter() - started,
            )
            return path

        try:
            _fmt, path = await first_success(self.formats, attempt, "download")
        except AttemptFailed as exc:
            if too_large:
                raise TooLarge(self._too_large_message()) from exc
            raise DownloadFailed() from exc
        return path

    def _locate(self, stem: str) -> Path | None:
        candidates = sorted(
            p for p in self.temp_dir.glob(f"{stem}.*")
            if p.is_file() and p.suffix.lower() in MIME_TYPES
        )
        return candidates[0] if candidates else None

    def _discard(self, stem: str) -> None:
        for leftover in self.temp_dir.glob(f"{stem}.*"):
            self.delete_file(leftover)

    def _too_large_message(self) -> str:
        return f"File too large. Maximum size is {self.max_file_size_bytes // (1024 * 1024)} MB."

    def _inside_temp_dir(self, path: Path) -> bool:
        try:
            return path.resolve().is_relative_to(self.temp_dir)
        except OSError:
            return False

    # ── Public API ────────────────────────────────────────────────────────────

    async def acquire(self, source: str) -> MediaFile:
        """
        Download *source* (a video id or a YouTube URL) into the temp directory.

        Raises InvalidURL, InfoFetchFailed, TooLong, TooLarge or DownloadFailed.
        """
        video_id = ensure_video_id(source)
        url = canonical_url(video_id)
        self.temp_dir.mkdir(parents=True, exist_ok=True)

        logger.info("Fetching media info for %s", video_id)
        persona, info = await self._fetch_info(url)
        title = str(info.get("title") or "Unknown Title")[:200]
        try:
            duration = int(float(info.get("duration") or 0))
        except (TypeError, ValueError):
            duration = 0

        if duration > self.max_duration_seconds:
            raise TooLong(
                f"Video too long. Maximum duration is {self.max_duration_seconds // 60} minutes.",
                detail={"durationSeconds": duration},
            )

        stem = f"{video_id}_{int(time.time() * 1000)}"
        logger.info("Downloading %s (persona=%s, %ds)", video_id, persona.name, duration)
        path = await self._download(url, persona, stem)

        if not self._inside_temp_dir(path):
            logger.error("Downloaded file escaped the temp directory: %s", path)
            raise DownloadFailed()

        size = path.stat().st_size
        if size > self.max_file_size_bytes:
            self.delete_file(path)
            raise TooLarge(self._too_large_message(), detail={"sizeBytes": size})

        mime_type = MIME_TYPES.get(path.suffix.lower(), DEFAULT_MIME)
        logger.info("Media ready: %s (%.2f MB, %s)", path.name, size / 1024 / 1024, mime_type)
        return MediaFile(
            video_id=video_id,
            path=path,
            size_bytes=size,
            duration_seconds=duration,
            mime_type=mime_type,
            title=title,
        )

    def delete_file(self, path: str | Path) -> bool:
        """Delete a file, but only if it lives inside the temp directory."""
        candidate = Path(path)
        if not self._inside_temp_dir(candidate):
            logger.error("Refusing to delete file outside temp dir: %s", candidate)
            return False
        try:
            candidate.resolve().unlink(missing_ok=True)
        except OSError as exc:
            logger.warning("Failed to delete temp file %s: %s", candidate.name, exc)
            return False
        logger.debug("Deleted temp file: %s", candidate.name)
        return True

    def sweep_temp_dir(self, max_age_seconds: float | None = None) -> int:
        """Remove stale media files; returns how many were deleted."""
        max_age = max_age_seconds if max_age_seconds is not None else settings.temp_file_max_age_seconds
        if not self.temp_dir.is_dir():
            return 0

        cutoff = time.time() - max_age
        removed = 0
        for entry in self.temp_dir.iterdir():
            if not _TEMP_FILE_RE.fullmatch(entry.name):
                continue
            try:
                if entry.is_file() and entry.stat().st_mtime < cutoff and self.delete_file(entry):
                    removed += 1
                    logger.info("Cleaned up old temp file: %s", entry.name)
            except OSError as exc:
                logger.debug("Skipping %s during sweep: %s", entry.name, exc)
        return removed


# Module-level singleton
media_acquirer = MediaAcquirer()
