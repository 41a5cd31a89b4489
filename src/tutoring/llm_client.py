"""
Language model access for the tutoring core.

The evaluation gateway, problem generator and diagnostic composer depend on
the small LLMClient protocol; GeminiClient is the production implementation.
"""

from __future__ import annotations

import json
import re
from typing import Any, Protocol

from loguru import logger

from config import get_settings
from src.tutoring.errors import LLMUnavailable


class LLMClient(Protocol):
    """Text completion capability consumed by the tutoring components."""

    async def complete(
        self,
        system_prompt: str,
        prompt: str,
        *,
        temperature: float,
        max_output_tokens: int,
        json_mode: bool = False,
    ) -> str:
        ...


class GeminiClient:
    """Gemini-backed LLMClient with lazy SDK loading."""

    def __init__(
        self,
        api_key: str | None = None,
        model_name: str | None = None,
    ):
        settings = get_settings()
        self.api_key = api_key or settings.gemini_api_key
        self.model_name = model_name or settings.ai_model
        self._genai = None

        if not (api_key or settings.has_ai_configured()):
            logger.warning("No Gemini API key - tutoring calls will use fallbacks")

    @property
    def is_available(self) -> bool:
        return bool(self.api_key)

    def _sdk(self):
        """Lazy-load and configure the Gemini SDK."""
        if self._genai is None:
            import google.generativeai as genai

            genai.configure(api_key=self.api_key)
            self._genai = genai
        return self._genai

    async def complete(
        self,
        system_prompt: str,
        prompt: str,
        *,
        temperature: float,
        max_output_tokens: int,
        json_mode: bool = False,
    ) -> str:
        if not self.is_available:
            raise LLMUnavailable("Gemini API key is not configured")

        genai = self._sdk()
        model = genai.GenerativeModel(
            model_name=self.model_name,
            system_instruction=system_prompt,
        )

        generation_config: dict[str, Any] = {
            "temperature": temperature,
            "max_output_tokens": max_output_tokens,
        }
        if json_mode:
            generation_config["response_mime_type"] = "application/json"

        response = await model.generate_content_async(
            prompt,
            generation_config=generation_config,
        )

        if response.text:
            return response.text

        raise ValueError("Empty response from model")


def extract_json(response: str) -> Any:
    """
    Parse the JSON payload of a model response.

    Accepts a bare document, a ```json fenced block, or the outermost
    object/array embedded in prose.

    Raises:
        ValueError: If no JSON document can be recovered
    """
    text = response.strip()

    match = re.search(r"```(?:json)?\s*([\s\S]*?)```", text)
    if match:
        text = match.group(1).strip()

    try:
        return json.loads(text)
    except json.JSONDecodeError:
        pass

    match = re.search(r"[\{\[][\s\S]*[\}\]]", text)
    if not match:
        raise ValueError("No JSON found in model response")

    return json.loads(match.group(0))
