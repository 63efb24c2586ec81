"""
Tests for finsight/collaborators/insight_client.py

Requests are served by httpx.MockTransport; nothing leaves the process.
"""

import json

import httpx
import pytest

from finsight.collaborators import HttpInsightClient, InsightClient, InsightClientError
from finsight.core import InsightServiceConfig

BASE_URL = "https://llm.test/v1"


@pytest.fixture
def config() -> InsightServiceConfig:
    return InsightServiceConfig(api_key="sk-test-0123456789abcdefghij", base_url=BASE_URL, model="test-model")


def make_client(config: InsightServiceConfig, handler) -> HttpInsightClient:
    transport = httpx.MockTransport(handler)
    return HttpInsightClient(config, client=httpx.AsyncClient(base_url=BASE_URL, transport=transport))


def completion(content) -> dict:
    return {"choices": [{"message": {"role": "assistant", "content": content}}]}


class TestComplete:
    @pytest.mark.asyncio
    async def test_returns_first_choice(self, config):
        seen = {}

        def handler(request: httpx.Request) -> httpx.Response:
            seen["path"] = request.url.path
            seen["body"] = json.loads(request.content)
            return httpx.Response(200, json=completion("Confidence: 0.9"))

        async with make_client(config, handler) as client:
            text = await client.complete("How am I doing?")

        assert text == "Confidence: 0.9"
        assert seen["path"] == "/v1/chat/completions"
        assert seen["body"]["model"] == "test-model"
        assert seen["body"]["messages"][-1] == {"role": "user", "content": "How am I doing?"}
        assert seen["body"]["max_tokens"] == 800

    @pytest.mark.asyncio
    async def test_http_error_raises(self, config):
        client = make_client(config, lambda request: httpx.Response(500, json={"error": "boom"}))
        with pytest.raises(InsightClientError, match="request failed"):
            await client.complete("prompt")
        await client.aclose()

    @pytest.mark.asyncio
    async def test_non_json_body_raises(self, config):
        client = make_client(config, lambda request: httpx.Response(200, text="<html>oops</html>"))
        with pytest.raises(InsightClientError, match="not JSON"):
            await client.complete("prompt")
        await client.aclose()

    @pytest.mark.asyncio
    @pytest.mark.parametrize("body", [{}, {"choices": []}, {"choices": [{"message": {}}]}])
    async def test_malformed_body_raises(self, config, body):
        client = make_client(config, lambda request: httpx.Response(200, json=body))
        with pytest.raises(InsightClientError, match="missing"):
            await client.complete("prompt")
        await client.aclose()

    @pytest.mark.asyncio
    async def test_empty_content_raises(self, config):
        client = make_client(config, lambda request: httpx.Response(200, json=completion("   ")))
        with pytest.raises(InsightClientError, match="empty"):
            await client.complete("prompt")
        await client.aclose()

    @pytest.mark.asyncio
    async def test_transport_errors_retried(self, config):
        """Two connection failures are retried; the third attempt succeeds."""
        attempts = []

        def handler(request: httpx.Request) -> httpx.Response:
            attempts.append(request)
            if len(attempts) < 3:
                raise httpx.ConnectError("refused", request=request)
            return httpx.Response(200, json=completion("ok"))

        async with make_client(config, handler) as client:
            assert await client.complete("prompt") == "ok"
        assert len(attempts) == 3


def test_satisfies_protocol(config):
    assert isinstance(HttpInsightClient(config), InsightClient)
