"""
Application configuration loaded from environment variables.

Uses pydantic-settings for type-safe env var parsing with automatic
.env file loading. All secrets are injected via environment — never
hard-coded.

The extraction-tool persona and format lists are plain settings too, so an
upstream change on YouTube's side can be answered with an env var instead of
a deploy:

    YTDLP_PERSONAS='[{"name": "tv", "player_client": "tv_embedded"}]'

To extend: add new fields here and document them in .env.example.
See https://docs.pydantic.dev/latest/concepts/pydantic_settings/
"""

import re
from typing import Optional

from pydantic import BaseModel, Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

_SAFE_TOKEN_RE = re.compile(r"^[A-Za-z0-9_,.-]*$")


class ExtractionPersona(BaseModel):
    """A client identity presented to yt-dlp (player client + headers)."""

    name: str
    player_client: str = ""
    user_agent: str = ""
    headers: dict[str, str] = Field(default_factory=dict)

    @field_validator("player_client")
    @classmethod
    def _player_client_is_token(cls, value: str) -> str:
        if not _SAFE_TOKEN_RE.match(value):
            raise ValueError("player_client may only contain [A-Za-z0-9_,.-]")
        return value


class DownloadFormat(BaseModel):
    """One yt-dlp format selector, tried in list order (smallest first)."""

    name: str
    selector: str
    merge_output_format: Optional[str] = None


_DEFAULT_USER_AGENT = (
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 "
    "(KHTML, like Gecko) Chrome/124.0.0.0 Safari/537.36"
)


def _default_personas() -> list[ExtractionPersona]:
    return [
        ExtractionPersona(name="android", player_client="android"),
        ExtractionPersona(name="ios", player_client="ios"),
        ExtractionPersona(
            name="web",
            player_client="web",
            user_agent=_DEFAULT_USER_AGENT,
            headers={"Accept-Language": "en-US,en;q=0.9"},
        ),
    ]


def _default_formats() -> list[DownloadFormat]:
    return [
        DownloadFormat(name="audio-only", selector="worstaudio[ext=m4a]/worstaudio"),
        DownloadFormat(
            name="worst-av",
            selector="worstvideo[ext=mp4]+worstaudio[ext=m4a]/worst[ext=mp4]",
            merge_output_format="mp4",
        ),
        DownloadFormat(name="worst-any", selector="worst"),
    ]


class Settings(BaseSettings):
    # ─── Core ──────────────────────────────────────────────────────
    environment: str = "development"
    debug: bool = False

    # ─── MongoDB ───────────────────────────────────────────────────
    # Local dev default matches a plain `docker run mongo` container.
    # In production, replace with an Atlas connection string.
    mongo_uri: str = "mongodb://localhost:27017/vidfact"
    mongo_db_name: str = "vidfact"
    history_collection: str = "fact_check_history"

    # ─── CORS ──────────────────────────────────────────────────────
    cors_origins_str: str = "http://localhost:5173,http://localhost:3000"

    @property
    def cors_origins(self) -> list[str]:
        return [o.strip() for o in self.cors_origins_str.split(",") if o.strip()]

    # ─── AI ────────────────────────────────────────────────────────
    # Get from https://aistudio.google.com/
    gemini_api_key: str = ""
    gemini_model: str = "gemini-2.0-flash"
    gemini_api_base: str = "https://generativelanguage.googleapis.com"

    # When True, all AI calls return a canned verdict.
    # Always True in tests; set False in production with a real key.
    ai_mock_mode: bool = True

    # ─── Limits ────────────────────────────────────────────────────
    max_duration_seconds: int = 60 * 60
    max_file_size_bytes: int = 100 * 1024 * 1024
    transcript_char_limit: int = 30_000

    # ─── Timeouts (seconds) ────────────────────────────────────────
    transcript_timeout: float = 30
    info_timeout: float = 30
    download_timeout: float = 300
    text_analysis_timeout: float = 60
    media_analysis_timeout: float = 180
    poll_request_timeout: float = 30
    upload_timeout: float = 300
    oembed_timeout: float = 10

    # ─── File processing poll ──────────────────────────────────────
    poll_interval_seconds: float = 3
    poll_max_attempts: int = 60
    poll_error_budget: int = 5

    # ─── Media download ────────────────────────────────────────────
    temp_dir: str = "temp"
    temp_file_max_age_seconds: int = 60 * 60
    temp_sweep_interval_seconds: int = 60 * 60
    ytdlp_binary: str = "yt-dlp"
    ytdlp_personas: list[ExtractionPersona] = Field(default_factory=_default_personas)
    ytdlp_formats: list[DownloadFormat] = Field(default_factory=_default_formats)

    # ─── Transcripts ───────────────────────────────────────────────
    transcript_languages: list[str] = Field(default_factory=lambda: ["en", "en-US", "en-GB"])

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",  # Don't fail on unknown env vars
    )


# Module-level singleton — import this everywhere instead of instantiating Settings()
settings = Settings()
