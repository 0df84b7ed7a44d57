"""LLM adapter helpers (Ollama)."""

from __future__ import annotations

import json
import logging
from typing import Any, Protocol

import httpx

from config_advisor.core.config import settings
from config_advisor.core.exceptions import LLMUnavailable

logger = logging.getLogger(__name__)

GENERATION_OPTIONS = {"temperature": 0.2}


class TextGenerator(Protocol):
    def generate(self, prompt: str, *, json_mode: bool = False) -> str: ...


class OllamaTextGenerator:
    """Calls /api/generate and falls back to /api/chat on servers that only expose chat."""

    def __init__(
        self,
        *,
        base_url: str | None = None,
        model: str | None = None,
        timeout: float | None = None,
        transport: httpx.BaseTransport | None = None,
    ) -> None:
        self.base_url = (base_url or settings.OLLAMA_BASE_URL).rstrip("/")
        self.model = model or settings.OLLAMA_MODEL
        self.timeout = timeout if timeout is not None else settings.LLM_TIMEOUT_SECONDS
        self._transport = transport

    def _payload(self, json_mode: bool, **fields: Any) -> dict[str, Any]:
        payload: dict[str, Any] = {"model": self.model, "stream": False, "options": dict(GENERATION_OPTIONS), **fields}
        if json_mode:
            payload["format"] = "json"
        return payload

    def generate(self, prompt: str, *, json_mode: bool = False) -> str:
        try:
            with httpx.Client(timeout=self.timeout, transport=self._transport) as client:
                response = client.post(f"{self.base_url}/api/generate", json=self._payload(json_mode, prompt=prompt))
                if response.status_code == 404:
                    return self._chat(client, prompt, json_mode)
                response.raise_for_status()
                data = response.json()
        except httpx.HTTPError as exc:
            logger.warning("Ollama generation failed: %s", exc)
            raise LLMUnavailable(f"Ollama request failed: {exc}") from exc
        return str(data.get("response", "")).strip() if isinstance(data, dict) else ""

    def _chat(self, client: httpx.Client, prompt: str, json_mode: bool) -> str:
        messages = [{"role": "user", "content": prompt}]
        response = client.post(f"{self.base_url}/api/chat", json=self._payload(json_mode, messages=messages))
        response.raise_for_status()
        data = response.json()
        message = data.get("message") if isinstance(data, dict) else None
        if isinstance(message, dict):
            return str(message.get("content", "")).strip()
        return ""


def extract_json(text: str) -> dict[str, Any] | None:
    """Pull the outermost JSON object out of free-form model output."""
    start = text.find("{")
    end = text.rfind("}")
    if start == -1 or end == -1 or end <= start:
        return None
    try:
        data = json.loads(text[start : end + 1])
    except json.JSONDecodeError:
        return None
    return data if isinstance(data, dict) else None
