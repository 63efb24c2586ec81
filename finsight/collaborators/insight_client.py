"""
Language-Model Insight Client

``InsightClient`` is the protocol the insight service talks to: one prompt in,
free text out. ``HttpInsightClient`` implements it against an OpenAI-compatible
``/chat/completions`` endpoint with httpx, retrying transport failures.

Usage::

    from finsight.collaborators.insight_client import HttpInsightClient
    from finsight.core import InsightServiceConfig

    async with HttpInsightClient(InsightServiceConfig(api_key=key)) as client:
        text = await client.complete("Summarize these spending patterns: ...")
"""

from typing import Any, Protocol, runtime_checkable

import httpx

from finsight.core import InsightServiceConfig, get_logger
from finsight.utils.error_handling import with_retry

logger = get_logger(__name__)

SYSTEM_PROMPT = (
    "You are a financial analyst. Answer with short labelled sections and bullet points. "
    "Always include a line 'Confidence: <0-1>'."
)


class InsightClientError(Exception):
    """The language-model service failed or returned an unusable response."""


@runtime_checkable
class InsightClient(Protocol):
    async def complete(self, prompt: str) -> str: ...


class HttpInsightClient:
    """
    Chat-completions client with enforced SSL verification and timeouts.

    Use as an async context manager, or call ``aclose()`` when done.
    """

    def __init__(self, config: InsightServiceConfig, client: httpx.AsyncClient | None = None):
        self.config = config
        self._client = client or httpx.AsyncClient(
            base_url=config.base_url.rstrip("/"),
            timeout=httpx.Timeout(config.timeout),
            verify=True,
            headers={"Authorization": f"Bearer {config.api_key}"},
        )

    async def __aenter__(self) -> "HttpInsightClient":
        return self

    async def __aexit__(self, *args: Any) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        await self._client.aclose()

    def _payload(self, prompt: str) -> dict[str, Any]:
        return {
            "model": self.config.model,
            "messages": [
                {"role": "system", "content": SYSTEM_PROMPT},
                {"role": "user", "content": prompt},
            ],
            "max_tokens": self.config.max_tokens,
            "temperature": self.config.temperature,
        }

    @with_retry(max_attempts=3, backoff_seconds=0.5, exceptions=(httpx.TransportError,))
    async def _post(self, payload: dict[str, Any]) -> httpx.Response:
        return await self._client.post("/chat/completions", json=payload)

    async def complete(self, prompt: str) -> str:
        """
        Send one prompt and return the first choice's text.

        Raises:
            InsightClientError: On HTTP errors (after retries) or a malformed response
        """
        try:
            response = await self._post(self._payload(prompt))
            response.raise_for_status()
            body = response.json()
        except httpx.HTTPError as e:
            raise InsightClientError(f"Insight request failed: {e}") from e
        except ValueError as e:
            raise InsightClientError(f"Insight response was not JSON: {e}") from e

        try:
            content = body["choices"][0]["message"]["content"]
        except (KeyError, IndexError, TypeError) as e:
            raise InsightClientError("Insight response missing choices[0].message.content") from e

        if not isinstance(content, str) or not content.strip():
            raise InsightClientError("Insight response content was empty")

        logger.info("Insight completion received", extra={"model": self.config.model, "chars": len(content)})
        return content
