"""
Unit tests for the Gemini client wrapper and JSON extraction.

No network calls: an unconfigured client must refuse before touching the SDK.
"""

import pytest

from config import get_settings
from src.tutoring.errors import LLMUnavailable
from src.tutoring.llm_client import GeminiClient, extract_json


@pytest.fixture
def gemini_key(monkeypatch):
    """Set GEMINI_API_KEY for one test and reload settings."""

    def _set(value):
        monkeypatch.setenv("GEMINI_API_KEY", value)
        get_settings.cache_clear()

    yield _set
    get_settings.cache_clear()


class TestAvailability:

    def test_configured_key(self, gemini_key):
        gemini_key("test-key")
        assert get_settings().has_ai_configured()
        assert GeminiClient().is_available

    def test_blank_key_is_unavailable(self, gemini_key):
        gemini_key("")
        assert not get_settings().has_ai_configured()
        assert not GeminiClient().is_available

    def test_explicit_key_wins(self, gemini_key):
        gemini_key("")
        assert GeminiClient(api_key="direct-key").is_available

    @pytest.mark.asyncio
    async def test_unavailable_client_refuses_call(self, gemini_key):
        gemini_key("")
        client = GeminiClient()

        with pytest.raises(LLMUnavailable):
            await client.complete("system", "prompt", temperature=0.5, max_output_tokens=10)

        assert client._genai is None


class TestExtractJson:

    def test_bare_object(self):
        assert extract_json('{"a": 1}') == {"a": 1}

    def test_fenced_block(self):
        assert extract_json('Here you go:\n```json\n[1, 2]\n```') == [1, 2]

    def test_object_inside_prose(self):
        assert extract_json('Sure! {"response_type": "needs_hint"} Hope that helps.') == {
            "response_type": "needs_hint"
        }

    def test_no_json(self):
        with pytest.raises(ValueError):
            extract_json("I cannot help with that.")
