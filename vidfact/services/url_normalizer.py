"""
url_normalizer.py — Turn a user-supplied YouTube URL into a safe video id.

Accepted shapes (scheme and www./m. prefix optional, trailing query allowed):
  youtube.com/watch?v=<id>
  youtu.be/<id>
  youtube.com/embed/<id>
  youtube.com/v/<id>
  youtube.com/shorts/<id>

The id is always exactly 11 characters of [A-Za-z0-9_-]. Downstream code
only ever sees the id and the canonical watch URL rebuilt from it; the
caller's string is never passed on. That matters because the id ends up on
the yt-dlp command line.
"""

import re
from dataclasses import dataclass

from vidfact.core.errors import InvalidURL

MAX_URL_LENGTH = 200

_ID = r"([A-Za-z0-9_-]{11})(?![A-Za-z0-9_-])"
_HOST = r"^(?:https?://)?(?:(?:www|m)\.)?youtube\.com/"

# watch, short-link, embed, v, shorts
_PATTERNS = (
    re.compile(_HOST + r"watch\?v=" + _ID, re.IGNORECASE),
    re.compile(r"^(?:https?://)?youtu\.be/" + _ID, re.IGNORECASE),
    re.compile(_HOST + r"embed/" + _ID, re.IGNORECASE),
    re.compile(_HOST + r"v/" + _ID, re.IGNORECASE),
    re.compile(_HOST + r"shorts/" + _ID, re.IGNORECASE),
)

_VIDEO_ID_RE = re.compile(r"[A-Za-z0-9_-]{11}")

_UNSAFE_PATTERNS = (
    re.compile(r"[\x00-\x1f\x7f]"),          # control characters
    re.compile(r"[;&|`$(){}\[\]<>'\"\\\s]"),  # shell metacharacters, quotes, whitespace
    re.compile(r"\.\."),                     # path traversal
    re.compile(r"%00"),                      # encoded NUL
    re.compile(r"%0[ad]", re.IGNORECASE),    # encoded CR / LF
)


@dataclass(frozen=True)
class NormalizedURL:
    video_id: str
    canonical_url: str


def canonical_url(video_id: str) -> str:
    return f"https://www.youtube.com/watch?v={validate_video_id(video_id)}"


def contains_unsafe_sequence(value: str) -> bool:
    return any(p.search(value) for p in _UNSAFE_PATTERNS)


def validate_video_id(video_id: str) -> str:
    """Return *video_id* unchanged if it is a well-formed id, else raise InvalidURL."""
    if not isinstance(video_id, str) or not _VIDEO_ID_RE.fullmatch(video_id):
        raise InvalidURL("Invalid video ID format")
    return video_id


def extract_video_id(url: str) -> str:
    """
    Pull the 11-character id out of *url*.

    The unsafe-character screen runs independently of the shape match, so an
    otherwise well-formed URL with `;rm -rf` tacked on is still rejected.
    """
    if not isinstance(url, str):
        raise InvalidURL()

    candidate = url.strip(" ")
    if not candidate or len(candidate) > MAX_URL_LENGTH:
        raise InvalidURL()
    if contains_unsafe_sequence(candidate):
        raise InvalidURL("Invalid characters in URL")

    for pattern in _PATTERNS:
        m = pattern.search(candidate)
        if m:
            return validate_video_id(m.group(1))

    raise InvalidURL()


def normalize(url: str) -> NormalizedURL:
    video_id = extract_video_id(url)
    return NormalizedURL(video_id=video_id, canonical_url=canonical_url(video_id))


def ensure_video_id(value: str) -> str:
    """
    Accept either a bare id or a URL and return a validated id.

    Used by components that must not trust that their input was already
    normalised upstream.
    """
    if isinstance(value, str) and _VIDEO_ID_RE.fullmatch(value):
        return value
    return extract_video_id(value)
