"""
acquisition.py — What the pipeline got hold of before calling the AI.

Exactly one of these is produced per pipeline run:
  Transcript — caption text (fast path)
  MediaFile  — a downloaded audio/video file in the temp directory (slow path)

Internal dataclasses; the API layer never serialises them directly.
"""

from dataclasses import dataclass
from pathlib import Path


@dataclass(frozen=True)
class Transcript:
    text: str
    word_count: int
    duration_seconds: int
    segment_count: int = 0


@dataclass(frozen=True)
class MediaFile:
    video_id: str
    path: Path
    size_bytes: int
    duration_seconds: int
    mime_type: str
    title: str = "Unknown Title"

    @property
    def file_name(self) -> str:
        return self.path.name
