"""
Tests for the Responses API client.
"""

from __future__ import annotations

import json

import httpx
import pytest

from almanac.config import ProviderConfig
from almanac.errors import ProviderError, RateLimitError, is_rate_limit_error
from almanac.research.prompts import ResearchRequest
from almanac.research.provider import OpenAIResponsesClient, ProviderResponse
from conftest import provider_payload


def make_client(handler) -> OpenAIResponsesClient:
    config = ProviderConfig(base_url="https://provider.test/v1", api_key="sk-test")
    return OpenAIResponsesClient(config, transport=httpx.MockTransport(handler))


class TestProviderResponse:
    def test_usage_and_web_search_count(self):
        response = ProviderResponse.from_json(
            provider_payload(text="{}", input_tokens=120, output_tokens=30, web_searches=4)
        )
        assert response.usage.input_tokens == 120
        assert response.usage.output_tokens == 30
        assert response.usage.web_search_calls == 4
        assert response.is_terminal

    def test_text_from_message_item(self):
        response = ProviderResponse.from_json(provider_payload(text='{"summary": "x"}'))
        assert response.text() == '{"summary": "x"}'

    def test_text_falls_back_to_output_text(self):
        data = provider_payload()
        data["output_text"] = "fallback"
        assert ProviderResponse.from_json(data).text() == "fallback"

    def test_no_text(self):
        assert ProviderResponse.from_json(provider_payload()).text() == ""

    def test_error_message(self):
        response = ProviderResponse.from_json(provider_payload(status="failed", error="quota"))
        assert response.error_message == "quota"

    def test_missing_id_is_provider_error(self):
        with pytest.raises(ProviderError):
            ProviderResponse.from_json({"status": "completed"})


class TestOpenAIResponsesClient:
    @pytest.mark.asyncio
    async def test_submit_posts_request(self):
        seen: dict = {}

        def handler(request: httpx.Request) -> httpx.Response:
            seen["method"] = request.method
            seen["url"] = str(request.url)
            seen["auth"] = request.headers.get("authorization")
            seen["body"] = json.loads(request.content)
            return httpx.Response(200, json=provider_payload(status="queued"))

        async with make_client(handler) as client:
            response = await client.submit(ResearchRequest(model="m", prompt="hello"))

        assert response.status == "queued"
        assert seen["method"] == "POST"
        assert seen["url"] == "https://provider.test/v1/responses"
        assert seen["auth"] == "Bearer sk-test"
        assert seen["body"]["background"] is True
        assert seen["body"]["tools"] == [{"type": "web_search_preview"}]

    @pytest.mark.asyncio
    async def test_retrieve(self):
        def handler(request: httpx.Request) -> httpx.Response:
            assert request.url.path == "/v1/responses/resp_9"
            return httpx.Response(200, json=provider_payload("resp_9", status="in_progress"))

        async with make_client(handler) as client:
            response = await client.retrieve("resp_9")

        assert response.id == "resp_9"
        assert not response.is_terminal

    @pytest.mark.asyncio
    async def test_429_maps_to_rate_limit_error(self):
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(429, json={"error": {"message": "Too many requests"}})

        async with make_client(handler) as client:
            with pytest.raises(RateLimitError) as exc_info:
                await client.submit(ResearchRequest(model="m", prompt="p"))

        assert exc_info.value.status_code == 429
        assert is_rate_limit_error(exc_info.value)

    @pytest.mark.asyncio
    async def test_other_http_errors_are_not_retryable(self):
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(401, json={"error": {"message": "Invalid API key"}})

        async with make_client(handler) as client:
            with pytest.raises(ProviderError) as exc_info:
                await client.submit(ResearchRequest(model="m", prompt="p"))

        assert not isinstance(exc_info.value, RateLimitError)
        assert exc_info.value.status_code == 401
        assert "Invalid API key" in str(exc_info.value)
        assert not is_rate_limit_error(exc_info.value)

    @pytest.mark.asyncio
    async def test_transport_error_maps_to_provider_error(self):
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectError("connection refused", request=request)

        async with make_client(handler) as client:
            with pytest.raises(ProviderError):
                await client.retrieve("resp_1")


class TestRateLimitClassification:
    @pytest.mark.parametrize(
        "error, expected",
        [
            (RateLimitError("slow down"), True),
            (ProviderError("throttled", status_code=429), True),
            (RuntimeError("HTTP 429 returned"), True),
            (RuntimeError("Rate limit reached for requests"), True),
            (RuntimeError("rate limit"), True),
            (ProviderError("400 Bad request"), False),
            (TimeoutError("Deep research timed out"), False),
        ],
    )
    def test_is_rate_limit_error(self, error, expected):
        assert is_rate_limit_error(error) is expected
