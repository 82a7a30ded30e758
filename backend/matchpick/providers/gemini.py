"""
backend/matchpick/providers/gemini.py

Purpose:
    Generative oracle backed by the Gemini ``generateContent`` REST endpoint.
    Returns the completion text verbatim; parsing is the caller's job.

Dependencies:
    - httpx (via matchpick.providers.http_client)
    - matchpick.config
"""

from __future__ import annotations

import logging
from typing import Any

import httpx

from matchpick.config import settings
from matchpick.errors import OracleConfigError, OracleError
from matchpick.providers.http_client import ResilientClient

logger = logging.getLogger("matchpick.gemini")

EMPTY_COMPLETION = "{}"


class GeminiOracle:
    def __init__(
        self,
        client: ResilientClient | None = None,
        *,
        api_key: str | None = None,
        model: str | None = None,
        base_url: str | None = None,
    ):
        self._client = client or ResilientClient(
            "gemini",
            timeout=settings.GEMINI_TIMEOUT_SECONDS,
            max_retries=settings.GEMINI_MAX_RETRIES,
        )
        self._api_key = settings.GEMINI_API_KEY if api_key is None else api_key
        self._model = model or settings.GEMINI_MODEL
        self._base_url = (base_url or settings.GEMINI_BASE_URL).rstrip("/")

    async def aclose(self) -> None:
        await self._client.aclose()

    async def complete(self, prompt: str) -> str:
        if not self._api_key:
            raise OracleConfigError("GEMINI_API_KEY is not set")
        if not self._client.circuit.can_attempt():
            raise OracleError("Gemini circuit open, skipping call")

        url = f"{self._base_url}/models/{self._model}:generateContent"
        payload = {
            "contents": [{"parts": [{"text": prompt}]}],
            "generationConfig": {
                "temperature": settings.GEMINI_TEMPERATURE,
                "topP": settings.GEMINI_TOP_P,
            },
        }
        try:
            resp = await self._client.post(url, params={"key": self._api_key}, json=payload)
            resp.raise_for_status()
            data = resp.json()
        except (httpx.HTTPError, ValueError) as exc:
            self._client.circuit.record_failure()
            raise OracleError(f"Gemini request failed: {exc}") from exc

        self._client.circuit.record_success()
        text = _first_text(data)
        logger.debug("Gemini completion: %d chars (model %s)", len(text), self._model)
        return text


def _first_text(data: Any) -> str:
    """``candidates[0].content.parts[0].text``, or ``"{}"`` when missing."""
    try:
        text = data["candidates"][0]["content"]["parts"][0]["text"]
    except (KeyError, IndexError, TypeError):
        return EMPTY_COMPLETION
    return text if isinstance(text, str) else EMPTY_COMPLETION


# Singleton oracle instance
gemini_oracle = GeminiOracle()
