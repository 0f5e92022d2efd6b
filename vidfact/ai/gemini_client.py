"""
GeminiClient — Async wrapper around the Google Generative AI SDK.

One job: send a fact-check prompt (optionally with an uploaded media file)
and hand back the model's raw text, or a typed failure.

Supports two runtime modes (set via AI_MOCK_MODE env var):
  - MOCK mode (default): returns a deterministic canned verdict.
    Use for tests and local dev without API keys.
  - REAL mode: makes actual Gemini API calls.
    Requires GEMINI_API_KEY to be set.

Safety thresholds are all BLOCK_NONE. A block that still happens is
surfaced as SafetyBlocked, never as a parse failure.
"""

import asyncio
import logging
import os
from typing import Any

# Python 3.14 + protobuf native extension can fail when importing Gemini deps.
# Keep this as default-only so users can still override it explicitly.
os.environ.setdefault("PROTOCOL_BUFFERS_PYTHON_IMPLEMENTATION", "python")

import google.generativeai as genai
from google.api_core import exceptions as google_exceptions
from google.generativeai.types import HarmBlockThreshold, HarmCategory

from vidfact.core.config import settings
from vidfact.core.errors import BackendError, SafetyBlocked

logger = logging.getLogger(__name__)

GENERATION_CONFIG: dict[str, Any] = {
    "temperature": 0.2,
    "top_k": 40,
    "top_p": 0.9,
    "max_output_tokens": 8192,
    "response_mime_type": "application/json",
}

SAFETY_SETTINGS = {
    HarmCategory.HARM_CATEGORY_HARASSMENT: HarmBlockThreshold.BLOCK_NONE,
    HarmCategory.HARM_CATEGORY_HATE_SPEECH: HarmBlockThreshold.BLOCK_NONE,
    HarmCategory.HARM_CATEGORY_SEXUALLY_EXPLICIT: HarmBlockThreshold.BLOCK_NONE,
    HarmCategory.HARM_CATEGORY_DANGEROUS_CONTENT: HarmBlockThreshold.BLOCK_NONE,
}


# Canned responses for mock mode, keyed by response_key.
_MOCK_RESPONSES: dict[str, str] = {
    "fact_check": (
        '{"summary": "[MOCK] The speaker walks through the history of the Apollo program '
        'and the 1969 Moon landing.", '
        '"videoTopic": "Apollo Moon landing history", '
        '"totalClaims": 4, '
        '"correctClaims": ['
        '{"claim": "Apollo 11 landed on the Moon in July 1969.", '
        '"reasoning": "Documented by NASA mission records.", "confidence": "HIGH"}, '
        '{"claim": "Neil Armstrong was the first person to walk on the Moon.", '
        '"reasoning": "Widely documented historical fact.", "confidence": "HIGH"}'
        '], '
        '"incorrectClaims": ['
        '{"claim": "The Apollo program landed astronauts on the Moon ten times.", '
        '"reasoning": "Six Apollo missions landed crews on the Moon.", "confidence": "HIGH"}'
        '], '
        '"speculativeClaims": ['
        '{"claim": "NASA will return humans to the Moon within two years.", '
        '"reasoning": "A forecast; cannot be verified yet.", "confidence": "LOW"}'
        '], '
        '"correctPercentage": 50, "incorrectPercentage": 25, "speculativePercentage": 25, '
        '"trustScore": 62, "trustLevel": "MEDIUM", '
        '"analysisNote": "[MOCK] No real analysis performed — mock mode active."}'
    ),
    "default": (
        "[MOCK] This is a placeholder Gemini response. "
        "Set AI_MOCK_MODE=false and provide GEMINI_API_KEY for real responses."
    ),
}


def _finish_reason_name(candidate: Any) -> str:
    reason = getattr(candidate, "finish_reason", None)
    return getattr(reason, "name", str(reason or ""))


def extract_text(response: Any) -> str:
    """
    Pull the generated text out of an SDK response.

    Raises SafetyBlocked when the prompt or the candidate was blocked, and
    BackendError when the response carries no usable text at all.
    """
    feedback = getattr(response, "prompt_feedback", None)
    if feedback is not None and getattr(feedback, "block_reason", 0):
        raise SafetyBlocked()

    candidates = list(getattr(response, "candidates", None) or [])
    if not candidates:
        raise BackendError("Unexpected response from Gemini")

    candidate = candidates[0]
    content = getattr(candidate, "content", None)
    parts = list(getattr(content, "parts", None) or [])
    text = "".join(getattr(p, "text", "") or "" for p in parts)

    # A SAFETY stop can still carry a truncated answer
    if _finish_reason_name(candidate) == "SAFETY":
        raise SafetyBlocked()
    if not text:
        raise BackendError("Unexpected response from Gemini")
    return text


class GeminiClient:
    """
    Central Gemini interface for the fact-check backend.

    Don't instantiate per-request; use the module-level `gemini_client`
    singleton (tests build their own).
    """

    def __init__(self, model_name: str | None = None) -> None:
        self.mock_mode = settings.ai_mock_mode
        self.model_name = model_name or settings.gemini_model
        self.api_key = settings.gemini_api_key

        if not self.mock_mode:
            if not self.api_key:
                logger.warning(
                    "GEMINI_API_KEY not set — falling back to mock mode. "
                    "Set AI_MOCK_MODE=true to silence this warning."
                )
                self.mock_mode = True
            else:
                genai.configure(api_key=self.api_key)

        if self.mock_mode:
            logger.info("GeminiClient initialised in MOCK mode")
        else:
            logger.info("GeminiClient initialised in REAL mode (model: %s)", self.model_name)

    async def generate(
        self,
        contents: str | list[Any],
        timeout: float,
        response_key: str = "fact_check",
    ) -> str:
        """
        Run one generation request and return the raw text.

        Args:
            contents:     Prompt string, or a list of parts (a file_data Part + text).
            timeout:      Request deadline in seconds.
            response_key: Mock response key (ignored in real mode).

        Raises:
            SafetyBlocked: the prompt or answer was blocked.
            BackendError:  transport, quota, or empty-response failure.
        """
        if self.mock_mode:
            return _MOCK_RESPONSES.get(response_key, _MOCK_RESPONSES["default"])

        model = genai.GenerativeModel(
            self.model_name,
            generation_config=GENERATION_CONFIG,
            safety_settings=SAFETY_SETTINGS,
        )
        try:
            response = await asyncio.wait_for(
                model.generate_content_async(contents, request_options={"timeout": timeout}),
                timeout=timeout + 5,
            )
        except asyncio.TimeoutError as exc:
            logger.error("Gemini request timed out after %ss (model=%s)", timeout, self.model_name)
            raise BackendError("Request timeout") from exc
        except google_exceptions.GoogleAPIError as exc:
            logger.error("Gemini API error (model=%s): %s", self.model_name, exc)
            raise BackendError() from exc

        return extract_text(response)


# Module-level singleton — import and use this everywhere
gemini_client = GeminiClient()
