"""
Tests for MessagePipeline

Most tests run the real components on heuristics (no LLM) against a
SQLite store; collaborator failures are simulated with mocks.
"""

from datetime import date
from unittest.mock import AsyncMock, Mock

import pytest

TODAY = date(2024, 11, 10)
SENDER = "whatsapp:+15550001111"


def _message(text, sender=SENDER):
    from taskbot.common.schemas import InboundMessage
    return InboundMessage(text=text, sender=sender, correlation_id="SM1")


def _build(store, **kwargs):
    from taskbot.retriever import AnswerSynthesizer, QueryAnalyzer, SearchExecutor
    from taskbot.scribe import IntentClassifier, MessagePipeline

    defaults = dict(
        classifier=IntentClassifier(),
        store=store,
        analyzer=QueryAnalyzer(),
        executor=SearchExecutor(store),
        synthesizer=AnswerSynthesizer(store),
    )
    defaults.update(kwargs)
    return MessagePipeline(**defaults)


@pytest.fixture
def pipeline(store):
    return _build(store)


class TestWritePath:
    """Saving tasks and ideas"""

    @pytest.mark.asyncio
    async def test_single_task_saved(self, pipeline, store):
        from taskbot.scribe import ReplyKind

        reply = await pipeline.handle(_message("Call the dentist tomorrow"), TODAY)

        assert reply.kind == ReplyKind.SAVED
        assert reply.text.startswith("[BOT] Saved as *task* (ID: 1)")
        assert "Deadline: 2024-11-11" in reply.text
        assert 'Type "show tasks"' in reply.text
        record = store.get(SENDER, reply.item_ids[0])
        assert record.content == "Call the dentist tomorrow"

    @pytest.mark.asyncio
    async def test_multi_saved(self, pipeline, store):
        from taskbot.scribe import ReplyKind

        reply = await pipeline.handle(_message("Buy milk, call mom, and think about vacation"), TODAY)

        assert reply.kind == ReplyKind.SAVED
        assert len(reply.item_ids) == 3
        assert reply.text.startswith("[BOT] Saved 3 items:")
        assert "3. *think about vacation* (idea, ID: 3)" in reply.text
        assert store.stats(SENDER)["total"] == 3

    @pytest.mark.asyncio
    async def test_multi_reports_unsaved_fragments(self, pipeline):
        reply = await pipeline.handle(_message("Buy milk, go, call mom"), TODAY)

        assert 'Not saved: "go"' in reply.text

    @pytest.mark.asyncio
    async def test_low_confidence_dropped(self, store):
        from taskbot.common.schemas import ClassifiedItem, ItemIntent
        from taskbot.scribe import ReplyKind

        item = ClassifiedItem(kind="task", content="maybe something", confidence=0.2)
        classifier = Mock()
        classifier.classify = AsyncMock(return_value=ItemIntent(intent="task", item=item, confidence=0.2))

        reply = await _build(store, classifier=classifier).handle(_message("maybe something"), TODAY)

        assert reply.kind == ReplyKind.IGNORED
        assert not reply.should_send
        assert store.stats(SENDER)["total"] == 0

    @pytest.mark.asyncio
    async def test_multi_items_gated_individually(self, store):
        from taskbot.common.schemas import ClassifiedItem, MultiIntent

        classifier = Mock()
        classifier.classify = AsyncMock(return_value=MultiIntent(
            confidence=0.9,
            items=[
                ClassifiedItem(kind="task", content="Buy milk", confidence=0.9),
                ClassifiedItem(kind="idea", content="Something vague", confidence=0.1),
            ],
        ))

        reply = await _build(store, classifier=classifier).handle(_message("Buy milk and something"), TODAY)

        assert len(reply.item_ids) == 1
        assert [r.content for r in store.list_untagged(SENDER)] == ["Buy milk"]

    @pytest.mark.asyncio
    async def test_none_intent_ignored(self, store):
        from taskbot.common.schemas import NoneIntent
        from taskbot.scribe import ReplyKind

        classifier = Mock()
        classifier.classify = AsyncMock(return_value=NoneIntent(confidence=0.9))

        reply = await _build(store, classifier=classifier).handle(_message("lol"), TODAY)

        assert reply.kind == ReplyKind.IGNORED


class TestReadPath:
    """Answering questions"""

    @pytest.mark.asyncio
    async def test_query_answered(self, pipeline):
        from taskbot.scribe import ReplyKind

        await pipeline.handle(_message("explore gardening with tomatoes"), TODAY)
        await pipeline.handle(_message("Call the bank"), TODAY)

        reply = await pipeline.handle(_message("show ideas about gardening"), TODAY)

        assert reply.kind == ReplyKind.ANSWER
        assert reply.text.startswith("[BOT] Found 1 item(s)")
        assert "*explore gardening with tomatoes*" in reply.text
        assert "Call the bank" not in reply.text

    @pytest.mark.asyncio
    async def test_no_results(self, pipeline):
        from taskbot.retriever import NO_ITEMS_MESSAGE

        reply = await pipeline.handle(_message("show my tasks"), TODAY)

        assert reply.text == "[BOT] " + NO_ITEMS_MESSAGE

    @pytest.mark.asyncio
    async def test_other_owner_items_invisible(self, pipeline):
        from taskbot.retriever import NO_ITEMS_MESSAGE

        await pipeline.handle(_message("Call the bank", sender="whatsapp:+15550002222"), TODAY)

        reply = await pipeline.handle(_message("show my tasks"), TODAY)

        assert reply.text.endswith(NO_ITEMS_MESSAGE)

    @pytest.mark.asyncio
    async def test_search_failure_uses_keyword_listing(self, store):
        from taskbot.common.record_store import StoreError

        executor = Mock()
        executor.execute = AsyncMock(side_effect=StoreError("database is locked"))
        pipeline = _build(store, executor=executor)
        store.save(SENDER, {"type": "task", "content": "Fix the garden fence"})

        answer = await pipeline.answer("garden fence", SENDER, TODAY)

        assert "*Fix the garden fence*" in answer


class TestReplies:
    """Reply text handling and error containment"""

    @pytest.mark.asyncio
    async def test_blank_ignored(self, pipeline):
        from taskbot.scribe import ReplyKind

        reply = await pipeline.handle(_message("   "), TODAY)

        assert reply.kind == ReplyKind.IGNORED

    @pytest.mark.asyncio
    async def test_bot_message_ignored(self, store):
        from taskbot.scribe import ReplyKind

        classifier = Mock()
        classifier.classify = AsyncMock()
        pipeline = _build(store, classifier=classifier)

        reply = await pipeline.handle(_message("[BOT] Saved as *task* (ID: 1)"), TODAY)

        assert reply.kind == ReplyKind.IGNORED
        classifier.classify.assert_not_called()

    @pytest.mark.asyncio
    async def test_store_failure_gives_generic_notice(self, caplog):
        import logging
        from taskbot.common.record_store import StoreError
        from taskbot.scribe import GENERIC_ERROR_NOTICE, ReplyKind

        store = Mock()
        store.save.side_effect = StoreError("disk full")
        pipeline = _build(store)

        with caplog.at_level(logging.ERROR, logger="taskbot.scribe.pipeline"):
            reply = await pipeline.handle(_message("Call the dentist"), TODAY)

        assert reply.kind == ReplyKind.ERROR
        assert reply.text == "[BOT] " + GENERIC_ERROR_NOTICE
        assert "disk full" not in reply.text
        assert "disk full" in caplog.text

    @pytest.mark.asyncio
    async def test_long_reply_truncated(self, store):
        from taskbot.scribe.pipeline import TRUNCATION_NOTE

        pipeline = _build(store, max_reply_length=100)

        reply = await pipeline.handle(_message("Call the dentist tomorrow about the crown"), TODAY)

        assert len(reply.text) == 100
        assert reply.text.endswith(TRUNCATION_NOTE)

    @pytest.mark.asyncio
    async def test_custom_prefix(self, store):
        pipeline = _build(store, bot_prefix="🤖 ")

        reply = await pipeline.handle(_message("Call the dentist"), TODAY)

        assert reply.text.startswith("🤖 Saved as *task*")
        assert pipeline.is_bot_message("🤖 anything")


class TestFormatting:
    """Tests for confirmation formatting"""

    def test_confirmation_without_priority(self):
        from taskbot.common.schemas import ClassifiedItem
        from taskbot.scribe.pipeline import format_confirmation

        text = format_confirmation(ClassifiedItem(kind="idea", content="Start a podcast"), 7)

        assert text.splitlines()[:3] == ["Saved as *idea* (ID: 7)", "", "Category: personal"]
        assert "Priority" not in text
