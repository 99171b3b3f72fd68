"""Tests for shared LLM call and response parsing utilities."""

import time

import pytest
from taskbot.common.llm_utils import LLMUnavailableError, generate_with_timeout, parse_llm_json


class TestParseLlmJson:
    def test_valid_json(self):
        assert parse_llm_json('{"intent": "task"}') == {"intent": "task"}

    def test_json_with_markdown_fences(self):
        raw = '```json\n{"intent": "query", "confidence": 0.9}\n```'
        assert parse_llm_json(raw) == {"intent": "query", "confidence": 0.9}

    def test_json_embedded_in_text(self):
        raw = 'Here you go: {"keywords": ["garden"]} hope that helps.'
        assert parse_llm_json(raw) == {"keywords": ["garden"]}

    def test_no_json_returns_empty_dict(self):
        assert parse_llm_json("This is not JSON at all") == {}

    def test_empty_string_returns_empty_dict(self):
        assert parse_llm_json("") == {}

    def test_non_object_returns_empty_dict(self):
        assert parse_llm_json('["task", "idea"]') == {}

    def test_invalid_json_with_braces_returns_empty(self):
        assert parse_llm_json('{"broken: json') == {}


class TestGenerateWithTimeout:
    @pytest.mark.asyncio
    async def test_returns_text(self, make_llm):
        llm = make_llm("hello")

        result = await generate_with_timeout(llm, "hi", system="sys", max_tokens=10, temperature=0.1)

        assert result == "hello"
        llm.generate.assert_called_once_with(
            "hi", system="sys", max_tokens=10, timeout=30.0, temperature=0.1, json_mode=False
        )

    @pytest.mark.asyncio
    async def test_missing_client(self):
        with pytest.raises(LLMUnavailableError):
            await generate_with_timeout(None, "hi")

    @pytest.mark.asyncio
    async def test_unavailable_client(self, make_llm):
        llm = make_llm("hello")
        llm.is_available = False

        with pytest.raises(LLMUnavailableError):
            await generate_with_timeout(llm, "hi")
        llm.generate.assert_not_called()

    @pytest.mark.asyncio
    async def test_timeout(self, make_llm):
        llm = make_llm(side_effect=lambda *a, **k: time.sleep(0.5) or "late")

        with pytest.raises(LLMUnavailableError, match="timed out"):
            await generate_with_timeout(llm, "hi", timeout=0.05)

    @pytest.mark.asyncio
    async def test_provider_error_wrapped(self, make_llm):
        llm = make_llm(side_effect=ValueError("bad request"))

        with pytest.raises(LLMUnavailableError, match="bad request"):
            await generate_with_timeout(llm, "hi")
