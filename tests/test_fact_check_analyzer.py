"""
Tests for vidfact.ai.fact_check_analyzer.

The Gemini File API is served by httpx.MockTransport (FileApiStub records
every call), the generation client is a stand-in with an AsyncMock
generate(), and the poll interval is zero so the loops run instantly.
"""

import json
from types import SimpleNamespace
from unittest.mock import AsyncMock

import httpx
import pytest

from vidfact.ai.fact_check_analyzer import (
    TRUNCATION_MARKER,
    FactCheckAnalyzer,
    build_prompt,
    truncate_transcript,
)
from vidfact.ai.gemini_client import GeminiClient
from vidfact.ai.gemini_files import GeminiFileService, _read_chunks
from vidfact.core.errors import (
    BackendError,
    BackendUnavailable,
    MediaProcessingFailed,
    ParseError,
    ProcessingTimeout,
    RemoteFileNotFound,
)
from vidfact.models.acquisition import MediaFile

BASE = "https://gemini.test"
FILE_NAME = "files/abc123"
FILE_URI = f"{BASE}/v1beta/{FILE_NAME}"
VERDICT = {
    "summary": "Apollo history",
    "videoTopic": "Apollo",
    "correctClaims": [{"claim": "Apollo 11 landed in 1969.", "reasoning": "Records.", "confidence": "HIGH"}],
    "incorrectClaims": [],
    "speculativeClaims": [],
    "trustScore": 90,
    "trustLevel": "HIGH",
}


class FileApiStub:
    """
    Scripted File API. `statuses` is consumed one entry per GET: a state
    string ("PROCESSING", "ACTIVE", "FAILED"), an httpx.Response, or an
    exception to raise.
    """

    def __init__(self, statuses=(), upload_state="PROCESSING", upload_status=200):
        self.statuses = list(statuses)
        self.upload_state = upload_state
        self.upload_status = upload_status
        self.requests = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        path = request.url.path

        if request.method == "POST" and path == "/upload/v1beta/files":
            if self.upload_status != 200:
                return httpx.Response(self.upload_status, text="quota")
            return httpx.Response(200, headers={"x-goog-upload-url": f"{BASE}/upload/session/1"})
        if request.method == "PUT" and path == "/upload/session/1":
            return httpx.Response(
                200,
                json={"file": {"name": FILE_NAME, "uri": FILE_URI,
                               "mimeType": "audio/mp4", "state": self.upload_state}},
            )
        if request.method == "GET" and path == f"/v1beta/{FILE_NAME}":
            outcome = self.statuses.pop(0)
            if isinstance(outcome, Exception):
                raise outcome
            if isinstance(outcome, httpx.Response):
                return outcome
            return httpx.Response(200, json={"name": FILE_NAME, "state": outcome})
        if request.method == "DELETE" and path == f"/v1beta/{FILE_NAME}":
            return httpx.Response(200, json={})
        return httpx.Response(500, text=f"unexpected {request.method} {path}")

    def count(self, method):
        return sum(1 for r in self.requests if r.method == method)


@pytest.fixture()
def media(tmp_path):
    path = tmp_path / "dQw4w9WgXcQ_1.m4a"
    path.write_bytes(b"\0" * 1024)
    return MediaFile(
        video_id="dQw4w9WgXcQ", path=path, size_bytes=1024,
        duration_seconds=120, mime_type="audio/mp4", title="T",
    )


def _fake_client(text=None):
    return SimpleNamespace(
        mock_mode=False,
        generate=AsyncMock(return_value=text if text is not None else json.dumps(VERDICT)),
    )


def _analyzer(stub, client=None, **kwargs):
    files = GeminiFileService(api_key="test-key", base_url=BASE, transport=httpx.MockTransport(stub))
    return FactCheckAnalyzer(
        client=client or _fake_client(),
        files=files,
        poll_interval=0,
        poll_max_attempts=kwargs.get("poll_max_attempts", 10),
        poll_error_budget=kwargs.get("poll_error_budget", 3),
        transcript_char_limit=kwargs.get("transcript_char_limit", 30_000),
    )


# ── Prompt + text mode ────────────────────────────────────────────────────────

class TestTranscriptMode:
    def test_prompt_mentions_content_type(self):
        assert "this transcript" in build_prompt(True)
        assert "this video" in build_prompt(False)
        assert '"speculativeClaims"' in build_prompt(True)

    def test_truncate_transcript(self):
        assert truncate_transcript("short", 100) == "short"
        assert truncate_transcript("a" * 120, 100) == "a" * 100 + TRUNCATION_MARKER

    async def test_analyze_transcript_inlines_text(self):
        client = _fake_client()
        analyzer = _analyzer(FileApiStub(), client=client)

        data = await analyzer.analyze_transcript("Apollo 11 landed on the Moon in 1969.")

        assert data["trustScore"] == 90
        prompt = client.generate.await_args.args[0]
        assert "CONTENT TO ANALYZE" in prompt
        assert "Apollo 11 landed on the Moon in 1969." in prompt

    async def test_long_transcript_truncated_with_marker(self):
        client = _fake_client()
        analyzer = _analyzer(FileApiStub(), client=client, transcript_char_limit=50)

        await analyzer.analyze_transcript("word " * 100)

        prompt = client.generate.await_args.args[0]
        assert TRUNCATION_MARKER in prompt
        assert "word " * 20 not in prompt

    async def test_unparseable_answer(self):
        analyzer = _analyzer(FileApiStub(), client=_fake_client("I cannot do that"))
        with pytest.raises(ParseError):
            await analyzer.analyze_transcript("text")


# ── Media mode ────────────────────────────────────────────────────────────────

class TestMediaMode:
    async def test_upload_poll_analyze_delete(self, media):
        stub = FileApiStub(statuses=["PROCESSING", "PROCESSING", "ACTIVE"])
        client = _fake_client()

        data = await _analyzer(stub, client=client).analyze_media(media)

        assert data["videoTopic"] == "Apollo"
        assert stub.count("GET") == 3
        assert stub.count("DELETE") == 1
        contents = client.generate.await_args.args[0]
        assert contents[0].file_data.file_uri == FILE_URI
        assert contents[0].file_data.mime_type == "audio/mp4"
        assert "this video" in contents[1]

    async def test_upload_sends_key_and_bytes(self, media):
        stub = FileApiStub(upload_state="ACTIVE")
        await _analyzer(stub).analyze_media(media)

        start, finish = stub.requests[0], stub.requests[1]
        assert start.url.params["key"] == "test-key"
        assert start.headers["x-goog-upload-protocol"] == "resumable"
        assert finish.headers["x-goog-upload-command"] == "upload, finalize"
        assert finish.content == b"\0" * 1024
        assert finish.headers["content-length"] == "1024"

    async def test_file_is_read_in_chunks(self, media):
        chunks = [c async for c in _read_chunks(media.path, chunk_size=400)]
        assert [len(c) for c in chunks] == [400, 400, 224]

    async def test_file_vanishing_before_upload(self, media):
        stub = FileApiStub(upload_state="ACTIVE")
        media.path.unlink()

        with pytest.raises(BackendError):
            await _analyzer(stub).analyze_media(media)

    async def test_already_active_skips_polling(self, media):
        stub = FileApiStub(upload_state="ACTIVE")
        await _analyzer(stub).analyze_media(media)
        assert stub.count("GET") == 0
        assert stub.count("DELETE") == 1

    async def test_failed_processing_still_deletes(self, media):
        stub = FileApiStub(statuses=["PROCESSING", "PROCESSING", "FAILED"])
        client = _fake_client()

        with pytest.raises(MediaProcessingFailed):
            await _analyzer(stub, client=client).analyze_media(media)

        assert stub.count("GET") == 3
        assert stub.count("DELETE") == 1
        client.generate.assert_not_awaited()

    async def test_missing_file_is_not_retried(self, media):
        stub = FileApiStub(statuses=[httpx.Response(404, json={"error": "not found"}), "ACTIVE"])

        with pytest.raises(RemoteFileNotFound):
            await _analyzer(stub).analyze_media(media)
        assert stub.count("GET") == 1

    async def test_non_json_responses_exhaust_error_budget(self, media):
        html = httpx.Response(200, text="<html>Service Unavailable</html>")
        stub = FileApiStub(statuses=[html, html, html, "ACTIVE"])

        with pytest.raises(BackendUnavailable) as exc_info:
            await _analyzer(stub, poll_error_budget=3).analyze_media(media)

        assert exc_info.value.status_code == 503
        assert stub.count("GET") == 3
        assert stub.count("DELETE") == 1

    async def test_server_errors_and_transport_errors_count_against_budget(self, media):
        stub = FileApiStub(
            statuses=[httpx.Response(500, text="oops"), httpx.ConnectError("reset"), "ACTIVE"]
        )
        with pytest.raises(BackendUnavailable):
            await _analyzer(stub, poll_error_budget=2).analyze_media(media)

    async def test_good_response_resets_error_count(self, media):
        html = httpx.Response(200, text="<html>busy</html>")
        stub = FileApiStub(statuses=[html, html, "PROCESSING", html, html, "ACTIVE"])

        data = await _analyzer(stub, poll_error_budget=3).analyze_media(media)
        assert data["trustScore"] == 90

    async def test_attempts_exhausted(self, media):
        stub = FileApiStub(statuses=["PROCESSING"] * 4)

        with pytest.raises(ProcessingTimeout) as exc_info:
            await _analyzer(stub, poll_max_attempts=4).analyze_media(media)

        assert exc_info.value.status_code == 504
        assert stub.count("DELETE") == 1

    async def test_upload_failure(self, media):
        stub = FileApiStub(upload_status=429)
        client = _fake_client()

        with pytest.raises(BackendError) as exc_info:
            await _analyzer(stub, client=client).analyze_media(media)

        assert exc_info.value.message == "Failed to upload video"
        assert stub.count("DELETE") == 0
        client.generate.assert_not_awaited()

    async def test_generation_error_still_deletes(self, media):
        stub = FileApiStub(upload_state="ACTIVE")
        client = _fake_client()
        client.generate.side_effect = BackendError("Request timeout")

        with pytest.raises(BackendError):
            await _analyzer(stub, client=client).analyze_media(media)
        assert stub.count("DELETE") == 1

    async def test_mock_mode_skips_file_api(self, media):
        stub = FileApiStub()
        analyzer = _analyzer(stub, client=GeminiClient())

        data = await analyzer.analyze_media(media)

        assert data["trustScore"] == 62
        assert stub.requests == []
