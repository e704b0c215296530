"""
Provider client - Async client for the deep-research Responses API.

Submits background research requests and retrieves their status. Every
transport or HTTP failure is mapped onto the Almanac error taxonomy here, so
the engine only ever sees ProviderError / RateLimitError.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Protocol

import httpx
import structlog

from almanac.config import ProviderConfig
from almanac.errors import ProviderError, RateLimitError
from almanac.research.pricing import Usage
from almanac.research.prompts import ResearchRequest

logger = structlog.get_logger()

TERMINAL_STATUSES = frozenset({"completed", "failed", "cancelled"})


@dataclass
class ProviderResponse:
    """A Responses API object, reduced to what the engine reads."""

    id: str
    status: str
    output: list[dict[str, Any]] = field(default_factory=list)
    output_text: str | None = None
    usage: Usage = field(default_factory=Usage)
    error_message: str | None = None

    @property
    def is_terminal(self) -> bool:
        return self.status in TERMINAL_STATUSES

    @classmethod
    def from_json(cls, data: dict[str, Any]) -> ProviderResponse:
        if not isinstance(data, dict) or not data.get("id"):
            raise ProviderError("Malformed provider response: missing id")

        output = data.get("output") or []
        if not isinstance(output, list):
            output = []

        usage_data = data.get("usage") or {}
        web_searches = sum(
            1 for item in output if isinstance(item, dict) and item.get("type") == "web_search_call"
        )
        usage = Usage(
            input_tokens=int(usage_data.get("input_tokens") or 0),
            output_tokens=int(usage_data.get("output_tokens") or 0),
            web_search_calls=web_searches,
        )

        error = data.get("error")
        error_message = None
        if isinstance(error, dict):
            error_message = error.get("message")
        elif isinstance(error, str):
            error_message = error

        output_text = data.get("output_text")
        return cls(
            id=str(data["id"]),
            status=str(data.get("status") or "completed"),
            output=output,
            output_text=output_text if isinstance(output_text, str) else None,
            usage=usage,
            error_message=error_message,
        )

    def text(self) -> str:
        """
        Output text of the response.

        Reads the first `output_text` content of a `message` output item and
        falls back to the top-level `output_text` convenience field.
        """
        for item in self.output:
            if not isinstance(item, dict) or item.get("type") != "message":
                continue
            for content in item.get("content") or []:
                if isinstance(content, dict) and content.get("type") == "output_text":
                    text = content.get("text")
                    if text:
                        return text
        return self.output_text or ""


class ResearchProvider(Protocol):
    """What the execution engine needs from a provider."""

    async def submit(self, request: ResearchRequest) -> ProviderResponse: ...

    async def retrieve(self, response_id: str) -> ProviderResponse: ...


class OpenAIResponsesClient:
    """
    Async HTTP client for the OpenAI Responses API.

    Example:
        async with OpenAIResponsesClient(config.provider) as client:
            response = await client.submit(request)
            while not response.is_terminal:
                response = await client.retrieve(response.id)
    """

    def __init__(
        self,
        config: ProviderConfig | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self.config = config or ProviderConfig()
        self._transport = transport
        self._client: httpx.AsyncClient | None = None

    async def __aenter__(self) -> OpenAIResponsesClient:
        await self._ensure_client()
        return self

    async def __aexit__(self, *args: Any) -> None:
        await self.close()

    async def _ensure_client(self) -> httpx.AsyncClient:
        if self._client is None or self._client.is_closed:
            headers = {"Content-Type": "application/json"}
            if self.config.api_key:
                headers["Authorization"] = f"Bearer {self.config.api_key}"
            self._client = httpx.AsyncClient(
                base_url=self.config.base_url.rstrip("/"),
                headers=headers,
                timeout=httpx.Timeout(self.config.request_timeout_seconds),
                transport=self._transport,
            )
        return self._client

    async def close(self) -> None:
        """Close the HTTP client."""
        if self._client is not None and not self._client.is_closed:
            await self._client.aclose()
            self._client = None

    async def submit(self, request: ResearchRequest) -> ProviderResponse:
        """Start a research request. Background requests come back queued or in progress."""
        response = await self._request("POST", "/responses", json=request.to_payload())
        logger.debug("Submitted research request", response_id=response.id, status=response.status)
        return response

    async def retrieve(self, response_id: str) -> ProviderResponse:
        """Fetch the current state of a background request."""
        return await self._request("GET", f"/responses/{response_id}")

    async def _request(self, method: str, path: str, **kwargs: Any) -> ProviderResponse:
        try:
            client = await self._ensure_client()
            response = await client.request(method, path, **kwargs)
        except httpx.RequestError as e:
            raise ProviderError(f"Provider request failed: {e}") from e

        if response.status_code >= 400:
            message = _error_message(response)
            if response.status_code == 429:
                raise RateLimitError(f"429 Rate limit: {message}", status_code=429)
            raise ProviderError(f"{response.status_code} {message}", status_code=response.status_code)

        try:
            data = response.json()
        except ValueError as e:
            raise ProviderError("Provider returned a non-JSON response") from e
        return ProviderResponse.from_json(data)


def _error_message(response: httpx.Response) -> str:
    try:
        data = response.json()
    except ValueError:
        return response.text or response.reason_phrase
    error = data.get("error") if isinstance(data, dict) else None
    if isinstance(error, dict) and error.get("message"):
        return str(error["message"])
    return response.reason_phrase or "Unknown error"
