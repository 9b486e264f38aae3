"""Generation service transport.

The pipeline only needs ``await client.generate(prompt)`` returning an opaque
payload. The default implementation talks to the Gemini generateContent REST
endpoint over httpx; tests and hosts can inject any object with the same
coroutine method.
"""

from __future__ import annotations

import logging
from typing import Any, Protocol

import httpx

from .config import Config

logger = logging.getLogger(__name__)


class GenerationError(Exception):
    def __init__(self, *, code: str, message: str) -> None:
        super().__init__(message)
        self.code = code


class GenerationClient(Protocol):
    """Anything that can turn one prompt into one opaque response payload."""

    async def generate(self, prompt: str) -> Any: ...


class GeminiGenerationClient:
    """Minimal async client for POST /v1beta/models/{model}:generateContent."""

    def __init__(
        self,
        *,
        api_key: str,
        model: str,
        base_url: str,
        timeout_seconds: float = 5.0,
        temperature: float = 0.4,
        max_output_tokens: int = 120,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self.model = model
        self.temperature = temperature
        self.max_output_tokens = max_output_tokens
        self._api_key = api_key
        self._http = httpx.AsyncClient(
            base_url=base_url,
            timeout=timeout_seconds,
            transport=transport,
        )

    async def generate(self, prompt: str) -> Any:
        body = {
            "contents": [{"role": "user", "parts": [{"text": prompt}]}],
            "generationConfig": {
                "temperature": self.temperature,
                "maxOutputTokens": self.max_output_tokens,
            },
        }
        try:
            resp = await self._http.post(
                f"/v1beta/models/{self.model}:generateContent",
                json=body,
                headers={"x-goog-api-key": self._api_key},
            )
        except httpx.TimeoutException as exc:
            raise GenerationError(code="transport_timeout", message=str(exc) or "request timed out") from exc
        except httpx.HTTPError as exc:
            raise GenerationError(code="transport", message=str(exc)) from exc

        if resp.status_code != 200:
            raise GenerationError(
                code=f"http_{resp.status_code}",
                message=f"HTTP {resp.status_code}: {resp.text[:200]}",
            )
        try:
            return resp.json()
        except ValueError as exc:
            raise GenerationError(code="invalid_body", message="response body is not JSON") from exc

    async def aclose(self) -> None:
        await self._http.aclose()


def build_generation_client(config: Config) -> GenerationClient | None:
    """Resolve the configured client; None means generation is unavailable."""
    if config.generation_provider in ("", "none", "disabled"):
        logger.info("Generation provider disabled; insights will use fallbacks")
        return None

    if config.generation_provider != "gemini":
        logger.warning(
            "Unknown generation provider %r; insights will use fallbacks",
            config.generation_provider,
        )
        return None

    if not config.gemini_api_key:
        logger.info("GEMINI_API_KEY missing; insights will use fallbacks")
        return None

    return GeminiGenerationClient(
        api_key=config.gemini_api_key,
        model=config.generation_model,
        base_url=config.generation_base_url,
        timeout_seconds=config.generation_http_timeout_seconds,
    )
