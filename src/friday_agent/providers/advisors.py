"""Secondary advisor models consulted through ``ask_<advisor>`` tools.

Advisors never receive tools and never raise: every failure becomes an
``AdvisorResponse`` with ``error`` set, which the dispatcher hands back to the
primary model as an error result.
"""
from __future__ import annotations

import logging
import os
from typing import Any, Dict, Optional

import httpx

from friday_agent.domain.tasks import AdvisorResponse
from friday_agent.observability.structured_log import log_json
from friday_agent.providers.errors import env_int

logger = logging.getLogger(__name__)

ADVISOR_SYSTEM_PROMPT = """You are a software engineering advisor providing a second opinion.

Your role is to:
1. Analyze the given question or problem
2. Provide your perspective and recommendations
3. Highlight any concerns or alternative approaches
4. Be concise but thorough

You are NOT the primary decision maker. You are providing input to another AI that will make the final decision.
Focus on being helpful and offering unique insights."""

_DEFAULT_TIMEOUT_SEC = 120
_OPENAI_DEFAULT_BASE_URL = "https://api.openai.com/v1"
_OPENAI_DEFAULT_MODEL = "gpt-4-turbo"
_GEMINI_BASE_URL = "https://generativelanguage.googleapis.com/v1beta/models"
_GEMINI_DEFAULT_MODEL = "gemini-2.0-flash"
_TEMPERATURE = 0.7


def _normalize_base_url(value: str) -> str:
    return (value or "").strip().rstrip("/")


def _http_error_detail(response: httpx.Response) -> str:
    return (response.text or "").strip()[:300]


class OpenAIAdvisor:
    """Chat-completions advisor (OpenAI or any compatible endpoint)."""

    name = "openai"

    def __init__(
        self,
        api_key: str,
        model: Optional[str] = None,
        base_url: Optional[str] = None,
        timeout_sec: Optional[int] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        self._api_key = (api_key or "").strip()
        self._model = (model or os.environ.get("OPENAI_MODEL") or _OPENAI_DEFAULT_MODEL).strip()
        self._base_url = _normalize_base_url(
            base_url or os.environ.get("OPENAI_BASE_URL") or _OPENAI_DEFAULT_BASE_URL
        )
        self._timeout_sec = timeout_sec or env_int("ADVISOR_TIMEOUT_SEC", _DEFAULT_TIMEOUT_SEC)
        self._transport = transport

    @property
    def label(self) -> str:
        return f"openai:{self._model}"

    async def ask(self, prompt: str, correlation_id: str = "") -> AdvisorResponse:
        if not self._api_key:
            return AdvisorResponse(
                model="openai",
                error="OpenAI API key not configured. Set OPENAI_API_KEY environment variable.",
            )
        payload: Dict[str, Any] = {
            "model": self._model,
            "messages": [
                {"role": "system", "content": ADVISOR_SYSTEM_PROMPT},
                {"role": "user", "content": prompt},
            ],
            "temperature": _TEMPERATURE,
        }
        log_json(logger, "advisor.ask.start", advisor=self.name, model=self._model, run_id=correlation_id)
        try:
            async with httpx.AsyncClient(timeout=float(self._timeout_sec), transport=self._transport) as client:
                response = await client.post(
                    f"{self._base_url}/chat/completions",
                    json=payload,
                    headers={"Authorization": f"Bearer {self._api_key}"},
                )
                response.raise_for_status()
                data = response.json()
        except httpx.HTTPStatusError as exc:
            log_json(logger, "advisor.ask.error", level=logging.WARNING, advisor=self.name,
                     run_id=correlation_id, status=exc.response.status_code)
            return AdvisorResponse(
                model=self.label,
                error=f"OpenAI API HTTP {exc.response.status_code}. {_http_error_detail(exc.response)}".strip(),
            )
        except Exception as exc:
            log_json(logger, "advisor.ask.error", level=logging.WARNING, advisor=self.name,
                     run_id=correlation_id, kind=type(exc).__name__)
            return AdvisorResponse(model=self.label, error=f"OpenAI API request failed: {exc}")
        return AdvisorResponse(model=self.label, response=extract_completion_text(data))


class GeminiAdvisor:
    name = "gemini"

    def __init__(
        self,
        api_key: str,
        model: Optional[str] = None,
        timeout_sec: Optional[int] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        self._api_key = (api_key or "").strip()
        self._model = (model or os.environ.get("GEMINI_MODEL") or _GEMINI_DEFAULT_MODEL).strip()
        self._timeout_sec = timeout_sec or env_int("ADVISOR_TIMEOUT_SEC", _DEFAULT_TIMEOUT_SEC)
        self._transport = transport

    @property
    def label(self) -> str:
        return f"gemini:{self._model}"

    async def ask(self, prompt: str, correlation_id: str = "") -> AdvisorResponse:
        if not self._api_key:
            return AdvisorResponse(
                model="gemini",
                error="Gemini API key not configured. Set GEMINI_API_KEY environment variable.",
            )
        payload = {
            "systemInstruction": {"parts": [{"text": ADVISOR_SYSTEM_PROMPT}]},
            "contents": [{"role": "user", "parts": [{"text": prompt or ""}]}],
            "generationConfig": {"temperature": _TEMPERATURE},
        }
        log_json(logger, "advisor.ask.start", advisor=self.name, model=self._model, run_id=correlation_id)
        try:
            async with httpx.AsyncClient(timeout=float(self._timeout_sec), transport=self._transport) as client:
                response = await client.post(
                    f"{_GEMINI_BASE_URL}/{self._model}:generateContent",
                    params={"key": self._api_key},
                    json=payload,
                )
                response.raise_for_status()
                data = response.json()
        except httpx.HTTPStatusError as exc:
            log_json(logger, "advisor.ask.error", level=logging.WARNING, advisor=self.name,
                     run_id=correlation_id, status=exc.response.status_code)
            return AdvisorResponse(
                model=self.label,
                error=f"Gemini API HTTP {exc.response.status_code}. {_http_error_detail(exc.response)}".strip(),
            )
        except Exception as exc:
            log_json(logger, "advisor.ask.error", level=logging.WARNING, advisor=self.name,
                     run_id=correlation_id, kind=type(exc).__name__)
            return AdvisorResponse(model=self.label, error=f"Gemini API request failed: {exc}")
        text = extract_gemini_text(data)
        if not text:
            return AdvisorResponse(model=self.label, error="Gemini returned no text candidates.")
        return AdvisorResponse(model=self.label, response=text)


def _first(items: Any) -> Dict[str, Any]:
    if isinstance(items, list) and items and isinstance(items[0], dict):
        return items[0]
    return {}


def extract_completion_text(data: Dict[str, Any]) -> str:
    """Assistant text of the first chat-completions choice, or an empty string."""
    choice = _first(data.get("choices") if isinstance(data, dict) else None)
    message = choice.get("message")
    content = message.get("content") if isinstance(message, dict) else None
    return content if isinstance(content, str) else ""


def extract_gemini_text(data: Dict[str, Any]) -> str:
    """Concatenated text parts of the first Gemini candidate."""
    candidate = _first(data.get("candidates") if isinstance(data, dict) else None)
    content = candidate.get("content")
    parts = content.get("parts") if isinstance(content, dict) else None
    if not isinstance(parts, list):
        return ""
    pieces = [part.get("text") for part in parts if isinstance(part, dict)]
    return "".join(piece for piece in pieces if isinstance(piece, str)).strip()
