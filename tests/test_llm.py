"""Tests for the Gemini REST client, using ``httpx.MockTransport`` (no network)."""

from __future__ import annotations

import json

import httpx
import pytest

from src.services.errors import ClassificationError
from src.services.llm import LLMService


def _gemini_reply(text: str) -> dict:
    return {
        "candidates": [{"content": {"parts": [{"text": text}]}}],
        "usageMetadata": {"promptTokenCount": 42, "candidatesTokenCount": 7},
    }


def _service(handler, *, api_key: str = "test-key", max_attempts: int = 2) -> LLMService:
    client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
    return LLMService(api_key, model_name="gemini-2.0-flash-lite", max_attempts=max_attempts, client=client)


class TestLLMService:
    async def test_generate_success(self) -> None:
        seen: list[httpx.Request] = []

        def handler(request: httpx.Request) -> httpx.Response:
            seen.append(request)
            return httpx.Response(200, json=_gemini_reply('{"department": "IT Section"}'))

        service = _service(handler)
        result = await service.generate("classify this")

        assert result.text == '{"department": "IT Section"}'
        assert result.input_tokens == 42
        assert result.output_tokens == 7
        assert result.model == "gemini-2.0-flash-lite"

        request = seen[0]
        assert request.url.path.endswith("/models/gemini-2.0-flash-lite:generateContent")
        assert request.url.params["key"] == "test-key"
        body = json.loads(request.content)
        assert body["contents"][0]["parts"][0]["text"] == "classify this"
        assert body["generationConfig"]["temperature"] == 0.3
        assert body["generationConfig"]["maxOutputTokens"] == 500

    async def test_missing_key_raises_without_request(self) -> None:
        calls = 0

        def handler(request: httpx.Request) -> httpx.Response:
            nonlocal calls
            calls += 1
            return httpx.Response(200, json=_gemini_reply("{}"))

        service = _service(handler, api_key="")
        assert service.configured is False
        with pytest.raises(ClassificationError):
            await service.generate("x")
        assert calls == 0

    async def test_http_error_status_raises(self) -> None:
        service = _service(lambda request: httpx.Response(503, text="overloaded"))
        with pytest.raises(ClassificationError, match="503"):
            await service.generate("x")

    async def test_reply_without_candidates_raises(self) -> None:
        service = _service(lambda request: httpx.Response(200, json={"candidates": []}))
        with pytest.raises(ClassificationError):
            await service.generate("x")

    async def test_transport_error_is_retried_then_raised(self) -> None:
        calls = 0

        def handler(request: httpx.Request) -> httpx.Response:
            nonlocal calls
            calls += 1
            raise httpx.ConnectError("connection refused", request=request)

        service = _service(handler, max_attempts=2)
        with pytest.raises(ClassificationError):
            await service.generate("x")
        assert calls == 2, "transport failures should be retried up to max_attempts"

    async def test_transient_failure_then_success(self) -> None:
        calls = 0

        def handler(request: httpx.Request) -> httpx.Response:
            nonlocal calls
            calls += 1
            if calls == 1:
                raise httpx.ReadTimeout("timed out", request=request)
            return httpx.Response(200, json=_gemini_reply("ok"))

        service = _service(handler, max_attempts=2)
        result = await service.generate("x")
        assert result.text == "ok"
        assert calls == 2

    async def test_injected_client_is_not_closed(self) -> None:
        client = httpx.AsyncClient(transport=httpx.MockTransport(lambda r: httpx.Response(200, json={})))
        service = LLMService("k", client=client)
        await service.close()
        assert client.is_closed is False
        await client.aclose()
