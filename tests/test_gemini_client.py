"""
Tests for the Gemini SDK wrapper (vidfact.ai.gemini_client).

Mock mode is exercised directly; real mode is exercised with the SDK's
GenerativeModel swapped for a fake, and extract_text() is fed stand-in
response objects for the blocked / empty / normal cases.
"""

from types import SimpleNamespace

import pytest
from google.api_core import exceptions as google_exceptions

from vidfact.ai import gemini_client as gemini_module
from vidfact.ai.gemini_client import GeminiClient, extract_text
from vidfact.ai.verdict_parser import parse_response
from vidfact.core.errors import BackendError, SafetyBlocked


def _response(text=None, finish_reason="STOP", block_reason=0, candidates=True):
    parts = [SimpleNamespace(text=text)] if text is not None else []
    candidate = SimpleNamespace(
        content=SimpleNamespace(parts=parts),
        finish_reason=SimpleNamespace(name=finish_reason),
    )
    return SimpleNamespace(
        prompt_feedback=SimpleNamespace(block_reason=block_reason),
        candidates=[candidate] if candidates else [],
    )


class TestMockMode:
    def test_client_starts_in_mock_mode(self):
        client = GeminiClient()
        assert client.mock_mode is True

    async def test_mock_fact_check_is_well_formed(self):
        data = parse_response(await GeminiClient().generate("any prompt", timeout=1))

        assert data["summary"].startswith("[MOCK]")
        assert len(data["correctClaims"]) == 2
        assert len(data["incorrectClaims"]) == 1
        assert len(data["speculativeClaims"]) == 1
        assert data["trustScore"] == 62

    async def test_unknown_mock_key_returns_default(self):
        text = await GeminiClient().generate("x", timeout=1, response_key="nope")
        assert text.startswith("[MOCK]")


class TestExtractText:
    def test_concatenates_parts(self):
        response = _response(text='{"a": 1}')
        assert extract_text(response) == '{"a": 1}'

    def test_blocked_prompt(self):
        with pytest.raises(SafetyBlocked) as exc_info:
            extract_text(_response(text="ignored", block_reason=2))
        assert exc_info.value.status_code == 422

    def test_safety_finish_without_text(self):
        with pytest.raises(SafetyBlocked):
            extract_text(_response(finish_reason="SAFETY"))

    def test_safety_finish_with_partial_text(self):
        with pytest.raises(SafetyBlocked):
            extract_text(_response(text='{"summary": "The vid', finish_reason="SAFETY"))

    def test_no_candidates(self):
        with pytest.raises(BackendError) as exc_info:
            extract_text(_response(candidates=False))
        assert exc_info.value.message == "Unexpected response from Gemini"

    def test_empty_text_other_reason(self):
        with pytest.raises(BackendError):
            extract_text(_response(finish_reason="MAX_TOKENS"))


class FakeModel:
    """Stands in for genai.GenerativeModel."""

    outcome = None
    last_init = None

    def __init__(self, model_name, generation_config=None, safety_settings=None):
        FakeModel.last_init = (model_name, generation_config, safety_settings)

    async def generate_content_async(self, contents, request_options=None):
        if isinstance(FakeModel.outcome, Exception):
            raise FakeModel.outcome
        return FakeModel.outcome


class TestRealMode:
    @pytest.fixture()
    def real_client(self, monkeypatch):
        monkeypatch.setattr(gemini_module.genai, "GenerativeModel", FakeModel)
        client = GeminiClient(model_name="gemini-test")
        client.mock_mode = False
        return client

    async def test_returns_model_text(self, real_client):
        FakeModel.outcome = _response(text='{"summary": "ok"}')

        assert await real_client.generate("prompt", timeout=5) == '{"summary": "ok"}'
        model_name, config, safety = FakeModel.last_init
        assert model_name == "gemini-test"
        assert config["response_mime_type"] == "application/json"
        assert len(safety) == 4

    async def test_api_error_becomes_backend_error(self, real_client):
        FakeModel.outcome = google_exceptions.ResourceExhausted("quota exceeded for key abc")

        with pytest.raises(BackendError) as exc_info:
            await real_client.generate("prompt", timeout=5)
        # the SDK's message (which may carry key details) is not exposed
        assert "quota" not in exc_info.value.message

    async def test_safety_block_is_not_a_parse_error(self, real_client):
        FakeModel.outcome = _response(finish_reason="SAFETY")

        with pytest.raises(SafetyBlocked):
            await real_client.generate("prompt", timeout=5)
