"""Anthropic Claude provider for the primary agent.

Calls the Messages API with native tool definitions over ``httpx``.

Configuration via environment variables (or explicit constructor args):
  ANTHROPIC_API_KEY      - required
  ANTHROPIC_MODEL        - default: claude-sonnet-4-20250514
  ANTHROPIC_MAX_TOKENS   - default: 4096
  ANTHROPIC_TIMEOUT_SEC  - default: 120
"""
from __future__ import annotations

import logging
import os
from typing import Any, Dict, List, Optional, Sequence

import httpx

from friday_agent.observability.structured_log import log_json
from friday_agent.providers.errors import ModelInvocationError, env_int

logger = logging.getLogger(__name__)

_DEFAULT_MODEL = "claude-sonnet-4-20250514"
_DEFAULT_MAX_TOKENS = 4096
_DEFAULT_TIMEOUT_SEC = 120
_BASE_URL = "https://api.anthropic.com"
_API_VERSION = "2023-06-01"


class AnthropicProvider:
    """Primary model capability: one Messages API call per agent turn."""

    def __init__(
        self,
        api_key: str,
        model: Optional[str] = None,
        max_tokens: Optional[int] = None,
        timeout_sec: Optional[int] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        self._api_key = api_key
        self._model: str = model or os.environ.get("ANTHROPIC_MODEL") or _DEFAULT_MODEL
        self._max_tokens: int = max_tokens or env_int("ANTHROPIC_MAX_TOKENS", _DEFAULT_MAX_TOKENS)
        self._timeout_sec: int = timeout_sec or env_int("ANTHROPIC_TIMEOUT_SEC", _DEFAULT_TIMEOUT_SEC)
        self._transport = transport
        self._http_client: Optional[httpx.AsyncClient] = None

    @property
    def model(self) -> str:
        return self._model

    async def version(self) -> str:
        return f"anthropic/{self._model}"

    async def generate_with_tools(
        self,
        messages: Sequence[Dict[str, Any]],
        tools: Sequence[Dict[str, Any]],
        system: str = "",
        correlation_id: str = "",
    ) -> Dict[str, Any]:
        """Run one agent turn against /v1/messages.

        The reply is normalised by ``extract_response`` into ``content`` (text and
        tool_use blocks only), ``stop_reason`` and ``usage``. Transport and HTTP
        failures raise ``ModelInvocationError``.
        """
        if not self._api_key:
            raise ModelInvocationError("ANTHROPIC_API_KEY not configured.")
        log_json(
            logger, "provider.generate_with_tools.start",
            provider="anthropic", run_id=correlation_id,
            model=self._model, tool_count=len(tools), message_count=len(messages),
        )
        payload: Dict[str, Any] = {
            "model": self._model,
            "max_tokens": self._max_tokens,
            "messages": list(messages),
        }
        if tools:
            payload["tools"] = list(tools)
        if system:
            payload["system"] = system
        try:
            response = await self._get_http_client().post("/v1/messages", json=payload)
            response.raise_for_status()
            data = response.json()
        except httpx.HTTPStatusError as exc:
            log_json(
                logger, "provider.generate_with_tools.error", level=logging.ERROR,
                provider="anthropic", run_id=correlation_id,
                kind="http_status", status=exc.response.status_code,
            )
            raise ModelInvocationError(
                f"Anthropic API error {exc.response.status_code}: {_error_message(exc.response)}"
            ) from exc
        except (httpx.HTTPError, ValueError) as exc:
            log_json(
                logger, "provider.generate_with_tools.error", level=logging.ERROR,
                provider="anthropic", run_id=correlation_id, kind=type(exc).__name__,
            )
            raise ModelInvocationError(f"Anthropic API request failed: {exc}") from exc
        return extract_response(data)

    async def aclose(self) -> None:
        if self._http_client is not None:
            await self._http_client.aclose()
            self._http_client = None

    def _get_http_client(self) -> httpx.AsyncClient:
        if self._http_client is None:
            self._http_client = httpx.AsyncClient(
                base_url=_BASE_URL,
                headers={
                    "x-api-key": self._api_key,
                    "anthropic-version": _API_VERSION,
                    "content-type": "application/json",
                },
                timeout=float(self._timeout_sec),
                transport=self._transport,
            )
        return self._http_client


def extract_response(data: Dict[str, Any]) -> Dict[str, Any]:
    """Convert a raw Messages API JSON body to a plain dict with content blocks."""
    content: List[Dict[str, Any]] = []
    for block in data.get("content") or []:
        if not isinstance(block, dict):
            continue
        block_type = block.get("type", "")
        if block_type == "text":
            content.append({"type": "text", "text": block.get("text") or ""})
        elif block_type == "tool_use":
            content.append({
                "type": "tool_use",
                "id": block.get("id", ""),
                "name": block.get("name", ""),
                "input": block.get("input") or {},
            })
    stop_reason = data.get("stop_reason", "end_turn") or "end_turn"
    usage = data.get("usage") or {}
    return {"content": content, "stop_reason": stop_reason, "usage": usage}


def _error_message(response: httpx.Response) -> str:
    try:
        body = response.json()
    except ValueError:
        return response.text[:500]
    error = body.get("error") if isinstance(body, dict) else None
    if isinstance(error, dict):
        return str(error.get("message") or error)
    return str(body)[:500]
