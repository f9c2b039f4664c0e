"""Gemini LLM client for grievance classification.

Calls the Gemini ``generateContent`` REST endpoint over :mod:`httpx`.
Transport failures (connection errors, timeouts) are retried with
exponential backoff; HTTP error statuses and unusable payloads are not,
they surface immediately as :class:`ClassificationError` so the
classifier can fall back without delay.
"""

from __future__ import annotations

import time
from dataclasses import dataclass
from typing import Any

import httpx
import structlog
from tenacity import (
    AsyncRetrying,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)

from src.services.errors import ClassificationError

logger: structlog.stdlib.BoundLogger = structlog.get_logger(__name__)


@dataclass(slots=True)
class LLMResult:
    """Text returned by :meth:`LLMService.generate`."""

    text: str
    model: str
    input_tokens: int
    output_tokens: int
    processing_time_ms: float


class LLMService:
    """Async interface to the Gemini REST API.

    The underlying :class:`httpx.AsyncClient` may be injected (tests pass
    one built on :class:`httpx.MockTransport`); otherwise one is created
    and owned by this service.
    """

    def __init__(
        self,
        api_key: str,
        *,
        model_name: str = "gemini-2.0-flash-lite",
        api_base: str = "https://generativelanguage.googleapis.com/v1beta",
        timeout_seconds: float = 15.0,
        max_attempts: int = 2,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        self._api_key = api_key
        self._model_name = model_name
        self._api_base = api_base.rstrip("/")
        self._max_attempts = max_attempts
        self._owns_client = client is None
        self._client = client or httpx.AsyncClient(timeout=timeout_seconds)

    @property
    def configured(self) -> bool:
        return bool(self._api_key)

    @property
    def model_name(self) -> str:
        return self._model_name

    # -- lifecycle ----------------------------------------------------------

    async def close(self) -> None:
        if self._owns_client:
            await self._client.aclose()

    # -- public API ---------------------------------------------------------

    async def generate(
        self,
        prompt: str,
        *,
        temperature: float = 0.3,
        max_output_tokens: int = 500,
    ) -> LLMResult:
        """Send *prompt* as a single user turn and return the reply text.

        Raises
        ------
        ClassificationError
            No API key, a non-2xx response, a transport failure after all
            retries, or a response without candidate text.
        """
        if not self.configured:
            raise ClassificationError("Gemini API key is not configured")

        payload: dict[str, Any] = {
            "contents": [{"parts": [{"text": prompt}]}],
            "generationConfig": {
                "temperature": temperature,
                "topK": 1,
                "topP": 1,
                "maxOutputTokens": max_output_tokens,
            },
        }
        url = f"{self._api_base}/models/{self._model_name}:generateContent"

        start = time.perf_counter()
        try:
            async for attempt in AsyncRetrying(
                retry=retry_if_exception_type(httpx.TransportError),
                stop=stop_after_attempt(self._max_attempts),
                wait=wait_exponential(multiplier=0.5, min=0.5, max=4),
                reraise=True,
            ):
                with attempt:
                    response = await self._client.post(
                        url,
                        params={"key": self._api_key},
                        json=payload,
                    )
        except httpx.TransportError as exc:
            raise ClassificationError(f"Gemini request failed: {exc!s}") from exc

        elapsed_ms = (time.perf_counter() - start) * 1000

        if response.status_code != 200:
            raise ClassificationError(
                f"Gemini API error: {response.status_code} {response.text[:200]}"
            )

        try:
            data = response.json()
            text = data["candidates"][0]["content"]["parts"][0]["text"]
        except (ValueError, KeyError, IndexError, TypeError) as exc:
            raise ClassificationError("Gemini response has no candidate text") from exc

        usage = data.get("usageMetadata") or {}
        result = LLMResult(
            text=text,
            model=self._model_name,
            input_tokens=int(usage.get("promptTokenCount", 0)),
            output_tokens=int(usage.get("candidatesTokenCount", 0)),
            processing_time_ms=round(elapsed_ms, 2),
        )

        logger.info(
            "llm.generate",
            model=self._model_name,
            prompt_length=len(prompt),
            answer_length=len(text),
            input_tokens=result.input_tokens,
            output_tokens=result.output_tokens,
            processing_time_ms=result.processing_time_ms,
        )
        return result
