"""Text-generation collaborator public API."""

from __future__ import annotations

from config_advisor.services.ai.llm import OllamaTextGenerator, TextGenerator, extract_json

__all__ = ["OllamaTextGenerator", "TextGenerator", "extract_json"]
