"""Module clients: HTTP transports for the semantic-analysis service."""
#
# PURPOSE:
# Sends one system prompt + user prompt to a language model and returns the
# raw text it produced. Parsing and validation of that text belong to
# guardian.ai.llm_analyzer; these classes only move bytes and translate
# transport failures into GuardianError codes.
#
# PROVIDERS:
# - anthropic: hosted Messages API, needs an API key
# - ollama: local /api/generate endpoint, no key
#
# ERROR MAPPING:
# - httpx timeout            -> AI_TIMEOUT
# - connection/transport     -> AI_OFFLINE
# - HTTP 429                 -> AI_RATE_LIMIT_EXCEEDED
# - other non-2xx            -> AI_INVALID_RESPONSE
# - unreadable envelope      -> AI_JSON_PARSE_ERROR
#

from __future__ import annotations

import logging
from typing import Any, Dict, Optional, Protocol, runtime_checkable

import httpx

from guardian.base.config import LLMConfig
from guardian.errors import ErrorCode, GuardianError

logger = logging.getLogger(__name__)

ANTHROPIC_DEFAULT_URL = "https://api.anthropic.com"
ANTHROPIC_VERSION = "2023-06-01"
OLLAMA_DEFAULT_URL = "http://localhost:11434"


@runtime_checkable
class LLMClient(Protocol):
    model: str

    async def complete(self, system: str, prompt: str, timeout: float) -> str:
        ...


class _HttpLLMClient:
    """Shared request/response handling for the HTTP providers."""

    provider = "llm"

    def __init__(self, base_url: str, model: str, transport: Optional[httpx.AsyncBaseTransport] = None):
        self.base_url = base_url.rstrip("/")
        self.model = model
        # Tests inject httpx.MockTransport here
        self._transport = transport

    async def _post(self, path: str, payload: Dict[str, Any], headers: Dict[str, str], timeout: float) -> Dict[str, Any]:
        url = f"{self.base_url}{path}"
        try:
            async with httpx.AsyncClient(timeout=timeout, transport=self._transport) as client:
                resp = await client.post(url, json=payload, headers=headers)
        except httpx.TimeoutException as e:
            raise GuardianError(
                ErrorCode.AI_TIMEOUT,
                f"{self.provider} request timed out after {timeout:.1f}s",
                details={"url": url, "original_message": str(e)},
            )
        except httpx.TransportError as e:
            raise GuardianError(
                ErrorCode.AI_OFFLINE,
                f"{self.provider} unreachable: {e}",
                details={"url": url},
            )

        if resp.status_code == 429:
            raise GuardianError(
                ErrorCode.AI_RATE_LIMIT_EXCEEDED,
                f"{self.provider} rejected the request (rate limited)",
                details={"retry_after": resp.headers.get("retry-after")},
            )
        if resp.status_code >= 400:
            raise GuardianError(
                ErrorCode.AI_INVALID_RESPONSE,
                f"{self.provider} returned HTTP {resp.status_code}",
                details={"status_code": resp.status_code, "body": resp.text[:500]},
            )

        try:
            body = resp.json()
        except ValueError:
            raise GuardianError(
                ErrorCode.AI_JSON_PARSE_ERROR,
                f"{self.provider} returned a non-JSON body",
                details={"body": resp.text[:500]},
            )
        if not isinstance(body, dict):
            raise GuardianError(ErrorCode.AI_INVALID_RESPONSE, f"{self.provider} returned an unexpected body")
        return body


class AnthropicClient(_HttpLLMClient):
    provider = "anthropic"

    def __init__(
        self,
        api_key: str,
        model: str = "claude-3-haiku-20240307",
        base_url: str = ANTHROPIC_DEFAULT_URL,
        max_tokens: int = 1024,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        super().__init__(base_url or ANTHROPIC_DEFAULT_URL, model, transport)
        self.api_key = api_key
        self.max_tokens = max_tokens

    async def complete(self, system: str, prompt: str, timeout: float) -> str:
        payload = {
            "model": self.model,
            "max_tokens": self.max_tokens,
            "system": system,
            "messages": [{"role": "user", "content": prompt}],
        }
        headers = {
            "x-api-key": self.api_key,
            "anthropic-version": ANTHROPIC_VERSION,
            "content-type": "application/json",
        }
        body = await self._post("/v1/messages", payload, headers, timeout)

        blocks = body.get("content") or []
        text = "".join(
            b.get("text", "") for b in blocks if isinstance(b, dict) and b.get("type") == "text"
        )
        if not text:
            raise GuardianError(ErrorCode.AI_INVALID_RESPONSE, "anthropic response contained no text")
        return text


class OllamaClient(_HttpLLMClient):
    provider = "ollama"

    def __init__(
        self,
        base_url: str = OLLAMA_DEFAULT_URL,
        model: str = "llama3",
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        super().__init__(base_url or OLLAMA_DEFAULT_URL, model, transport)

    async def complete(self, system: str, prompt: str, timeout: float) -> str:
        payload = {
            "model": self.model,
            "prompt": prompt,
            "system": system,
            "stream": False,
            "format": "json",
        }
        body = await self._post("/api/generate", payload, {}, timeout)
        text = body.get("response")
        if not isinstance(text, str) or not text:
            raise GuardianError(ErrorCode.AI_INVALID_RESPONSE, "ollama response contained no text")
        return text


def create_client(config: LLMConfig, transport: Optional[httpx.AsyncBaseTransport] = None) -> Optional[LLMClient]:
    """Client for the configured provider, or None when augmentation is unconfigured."""
    if not config.is_configured:
        return None
    if config.provider == "anthropic":
        return AnthropicClient(
            api_key=config.api_key,
            model=config.model,
            base_url=config.base_url,
            max_tokens=config.max_tokens,
            transport=transport,
        )
    if config.provider == "ollama":
        return OllamaClient(base_url=config.base_url, model=config.model, transport=transport)
    logger.warning(f"[LLM] Unknown provider '{config.provider}', augmentation disabled")
    return None
