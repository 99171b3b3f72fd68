"""
Tests for IntentClassifier

Covers the AI path with a mocked client and every fallback trigger:
missing client, timeout, provider error, bad JSON and schema violations.
"""

import json
import logging
import time
from datetime import date, datetime, timezone

import pytest

TODAY = date(2024, 11, 10)
SENDER = "whatsapp:+15550001111"


def _message(text):
    from taskbot.common.schemas import InboundMessage
    return InboundMessage(
        text=text,
        sender=SENDER,
        timestamp=datetime(2024, 11, 10, 9, 30, tzinfo=timezone.utc),
        correlation_id="SM123",
    )


class TestClassifierFallback:
    """Heuristic classification"""

    @pytest.mark.asyncio
    async def test_no_llm_multi(self):
        from taskbot.common.schemas import ItemType
        from taskbot.scribe.classifier import IntentClassifier

        classifier = IntentClassifier()
        result = await classifier.classify(_message("Read Atomic Habits, call mom tomorrow"), TODAY)

        assert not classifier.has_llm
        assert result.intent == "multi"
        assert [i.content for i in result.items] == ["Read Atomic Habits", "call mom tomorrow"]
        assert all(i.kind == ItemType.TASK for i in result.items)
        assert result.items[0].deadline is None
        assert result.items[1].deadline == date(2024, 11, 11)

    @pytest.mark.asyncio
    async def test_reference_date_from_timestamp(self):
        from taskbot.scribe.classifier import IntentClassifier

        result = await IntentClassifier().classify(_message("Submit taxes tomorrow"))

        assert result.item.deadline == date(2024, 11, 11)

    @pytest.mark.asyncio
    async def test_unavailable_client_not_called(self, make_llm):
        from taskbot.scribe.classifier import IntentClassifier

        llm = make_llm('{"intent": "none", "confidence": 1}')
        llm.is_available = False

        result = await IntentClassifier(llm).classify(_message("Call the dentist"), TODAY)

        llm.generate.assert_not_called()
        assert result.intent == "task"

    @pytest.mark.asyncio
    async def test_timeout(self, make_llm, caplog):
        from taskbot.scribe.classifier import IntentClassifier

        llm = make_llm(side_effect=lambda *a, **k: time.sleep(0.5) or '{"intent": "none", "confidence": 1}')
        classifier = IntentClassifier(llm, timeout=0.05)

        with caplog.at_level(logging.WARNING, logger="taskbot.scribe.classifier"):
            result = await classifier.classify(_message("Call the dentist"), TODAY)

        assert result.intent == "task"
        assert result.confidence == 0.6
        assert "timed out" in caplog.text

    @pytest.mark.asyncio
    async def test_provider_error(self, make_llm):
        from taskbot.scribe.classifier import IntentClassifier

        llm = make_llm(side_effect=RuntimeError("rate limited"))
        result = await IntentClassifier(llm).classify(_message("show my tasks"), TODAY)

        assert result.intent == "query"

    @pytest.mark.asyncio
    @pytest.mark.parametrize("response", [
        "Sure! This looks like a task.",
        '["task"]',
        '{"intent": "task", "confidence": 0.9, "content": "Fix sink", "priority": "critical"}',
        '{"intent": "reminder", "confidence": 0.9}',
        '{"type": "task", "content": "Fix sink", "confidence": 0.9}',
        '{"intent": "multi", "confidence": 0.9, "items": []}',
    ])
    async def test_malformed_responses(self, make_llm, response):
        from taskbot.scribe.classifier import IntentClassifier

        result = await IntentClassifier(make_llm(response)).classify(_message("Fix the sink"), TODAY)

        assert result.intent == "task"
        assert result.item.content == "Fix the sink"
        assert result.confidence == 0.6

    @pytest.mark.asyncio
    async def test_unclassified_fragments_logged(self, caplog):
        from taskbot.scribe.classifier import IntentClassifier

        with caplog.at_level(logging.WARNING, logger="taskbot.scribe.classifier"):
            result = await IntentClassifier().classify(_message("Buy milk, go, call mom"), TODAY)

        assert result.unclassified == ["go"]
        assert "could not classify" in caplog.text


class TestClassifierLLM:
    """AI classification"""

    @pytest.mark.asyncio
    async def test_single_task(self, make_llm):
        from taskbot.common.schemas import ItemType, Priority
        from taskbot.scribe.classifier import IntentClassifier

        llm = make_llm(json.dumps({
            "intent": "task",
            "confidence": 0.92,
            "type": "task",
            "content": "Call mom",
            "priority": "high",
            "category": "family",
            "deadline": "2024-11-11",
            "tags": ["family", "phone-call"],
        }))
        result = await IntentClassifier(llm).classify(_message("call mom tomorrow, urgent"), TODAY)

        assert result.intent == "task"
        assert result.confidence == 0.92
        assert result.item.kind == ItemType.TASK
        assert result.item.priority == Priority.HIGH
        assert result.item.deadline == date(2024, 11, 11)
        assert result.item.tags == ["family", "phone-call"]

    @pytest.mark.asyncio
    async def test_fenced_json(self, make_llm):
        from taskbot.scribe.classifier import IntentClassifier

        llm = make_llm('```json\n{"intent": "query", "confidence": 0.95}\n```')
        result = await IntentClassifier(llm).classify(_message("what ideas do I have"), TODAY)

        assert result.intent == "query"

    @pytest.mark.asyncio
    async def test_multi(self, make_llm):
        from taskbot.common.schemas import ItemType
        from taskbot.scribe.classifier import IntentClassifier

        llm = make_llm(json.dumps({
            "intent": "multi",
            "confidence": 0.85,
            "items": [
                {"type": "task", "content": "Read Atomic Habits", "tags": ["books"]},
                {"type": "task", "content": "Call mom", "deadline": "2024-11-11"},
            ],
        }))
        result = await IntentClassifier(llm).classify(_message("Read Atomic Habits, call mom tomorrow"), TODAY)

        assert result.is_multi_intent
        assert [i.kind for i in result.items] == [ItemType.TASK, ItemType.TASK]
        assert result.items[1].deadline == date(2024, 11, 11)
        assert result.items[0].confidence == 0.85

    @pytest.mark.asyncio
    async def test_single_item_multi_collapses(self, make_llm):
        from taskbot.scribe.classifier import IntentClassifier

        llm = make_llm(json.dumps({
            "intent": "multi",
            "confidence": 0.8,
            "items": [{"type": "idea", "content": "Start a podcast"}],
        }))
        result = await IntentClassifier(llm).classify(_message("maybe start a podcast"), TODAY)

        assert result.intent == "idea"
        assert not result.is_multi_intent

    @pytest.mark.asyncio
    async def test_confidence_clamped(self, make_llm):
        from taskbot.scribe.classifier import IntentClassifier

        llm = make_llm('{"intent": "none", "confidence": 3}')
        result = await IntentClassifier(llm).classify(_message("lol"), TODAY)

        assert result.confidence == 1.0

    @pytest.mark.asyncio
    async def test_request_shape(self, make_llm):
        from taskbot.scribe.classifier import CLASSIFY_SYSTEM_PROMPT, IntentClassifier

        llm = make_llm('{"intent": "none", "confidence": 0.9}')
        await IntentClassifier(llm, timeout=12.0).classify(_message("hello"), TODAY)

        args, kwargs = llm.generate.call_args
        assert '"hello"' in args[0]
        assert "2024-11-10" in args[0]
        assert kwargs["system"] == CLASSIFY_SYSTEM_PROMPT
        assert kwargs["json_mode"] is True
        assert kwargs["timeout"] == 12.0
