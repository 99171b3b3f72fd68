"""
Message Pipeline

Ingestion entry point: one InboundMessage in, one reply out.

Pipeline:
1. Drop blank and bot-authored messages (reply loop protection)
2. Classify (AI call with heuristic fallback)
3. Drop anything under the confidence threshold, nothing is persisted
4. task/idea/multi -> save and confirm
   query -> analyze, search, synthesize
5. Prefix and length-cap the reply text

Any exception that reaches this layer (a store failure, a rejected write)
is logged and turned into one generic notice for the sender.
"""

import logging
from dataclasses import dataclass, field
from datetime import date
from enum import Enum
from typing import List, Optional

from ..common.record_store import RecordStore, StoreError
from ..common.schemas import ClassifiedItem, InboundMessage, Priority
from ..retriever.query_analyzer import QueryAnalyzer
from ..retriever.searcher import SearchExecutor
from ..retriever.synthesizer import AnswerSynthesizer
from .classifier import IntentClassifier

logger = logging.getLogger("taskbot.scribe.pipeline")

GENERIC_ERROR_NOTICE = "Sorry, something went wrong processing your message. Please try again."
TRUNCATION_NOTE = "\n\n_...response truncated. Try filtering to see fewer items._"
LIST_HINT = 'Type "show tasks" or "list ideas" to see your items'


class ReplyKind(str, Enum):
    """Outcome of handling one message"""
    SAVED = "saved"
    ANSWER = "answer"
    IGNORED = "ignored"
    ERROR = "error"


@dataclass
class PipelineReply:
    """What to send back to the sender (nothing when ``text`` is empty)."""
    kind: ReplyKind
    text: str = ""
    item_ids: List[int] = field(default_factory=list)

    @property
    def should_send(self) -> bool:
        return bool(self.text)


class MessagePipeline:
    """
    Routes classified messages to the write path or the read path.

    All collaborators are injected so tests and the server build them once.
    """

    def __init__(
        self,
        classifier: IntentClassifier,
        store: RecordStore,
        analyzer: QueryAnalyzer,
        executor: SearchExecutor,
        synthesizer: AnswerSynthesizer,
        confidence_threshold: float = 0.3,
        bot_prefix: str = "[BOT] ",
        max_reply_length: int = 4000,
    ):
        self._classifier = classifier
        self._store = store
        self._analyzer = analyzer
        self._executor = executor
        self._synthesizer = synthesizer
        self.confidence_threshold = confidence_threshold
        self.bot_prefix = bot_prefix
        self.max_reply_length = max_reply_length

    def is_bot_message(self, text: str) -> bool:
        prefix = self.bot_prefix.strip()
        return bool(prefix) and text.strip().startswith(prefix)

    async def handle(self, message: InboundMessage, today: Optional[date] = None) -> PipelineReply:
        """Process one message end to end. Never raises."""
        text = message.text.strip()
        if not text:
            return PipelineReply(ReplyKind.IGNORED)
        if self.is_bot_message(text):
            logger.debug("Skipping bot-authored message")
            return PipelineReply(ReplyKind.IGNORED)

        try:
            return await self._route(message, today)
        except Exception as e:
            logger.error(
                "Failed to process message %s from %s: %s",
                message.correlation_id or "-",
                message.sender,
                e,
                exc_info=True,
            )
            return PipelineReply(ReplyKind.ERROR, self._finalize(GENERIC_ERROR_NOTICE))

    async def _route(self, message: InboundMessage, today: Optional[date]) -> PipelineReply:
        result = await self._classifier.classify(message, today)

        if result.confidence < self.confidence_threshold:
            logger.info(
                "Dropping %s classification below threshold (%.2f < %.2f)",
                result.intent,
                result.confidence,
                self.confidence_threshold,
            )
            return PipelineReply(ReplyKind.IGNORED)

        if result.intent == "query":
            answer = await self.answer(message.text.strip(), message.sender, today)
            return PipelineReply(ReplyKind.ANSWER, self._finalize(answer))

        if result.intent in ("task", "idea"):
            record_id = self._store.save(message.sender, result.item)
            logger.info("Saved %s %d for %s", result.intent, record_id, message.sender)
            return PipelineReply(
                ReplyKind.SAVED,
                self._finalize(format_confirmation(result.item, record_id)),
                [record_id],
            )

        if result.intent == "multi":
            return self._save_many(message.sender, result.items, result.unclassified)

        logger.debug("Nothing actionable in message")
        return PipelineReply(ReplyKind.IGNORED)

    def _save_many(
        self,
        owner: str,
        items: List[ClassifiedItem],
        unclassified: List[str],
    ) -> PipelineReply:
        kept = [i for i in items if i.confidence >= self.confidence_threshold]
        if len(kept) < len(items):
            logger.info("Dropped %d low-confidence item(s)", len(items) - len(kept))
        if not kept:
            return PipelineReply(ReplyKind.IGNORED)

        saved = [(item, self._store.save(owner, item)) for item in kept]
        logger.info("Saved %d items for %s", len(saved), owner)
        return PipelineReply(
            ReplyKind.SAVED,
            self._finalize(format_multi_confirmation(saved, unclassified)),
            [record_id for _, record_id in saved],
        )

    async def answer(self, query: str, owner: str, today: Optional[date] = None) -> str:
        """Read path: analyze, search, synthesize.

        A store failure during search drops to the synthesizer's keyword
        listing, which re-fetches; if that fails too the error propagates.
        """
        analysis = await self._analyzer.analyze(query, today)
        try:
            results = await self._executor.execute(analysis, owner)
        except StoreError as e:
            logger.error("Search failed, using keyword listing: %s", e)
            return self._synthesizer.keyword_fallback(query, owner)
        return await self._synthesizer.synthesize(query, results, owner)

    def _finalize(self, text: str) -> str:
        text = f"{self.bot_prefix}{text}"
        if len(text) > self.max_reply_length:
            logger.warning("Reply too long (%d chars), truncating", len(text))
            cut = max(0, self.max_reply_length - len(TRUNCATION_NOTE))
            text = text[:cut] + TRUNCATION_NOTE
        return text


def _detail_lines(item: ClassifiedItem) -> List[str]:
    lines = []
    if item.priority != Priority.NONE:
        lines.append(f"Priority: {item.priority.value}")
    lines.append(f"Category: {item.category}")
    if item.deadline:
        lines.append(f"Deadline: {item.deadline.isoformat()}")
    return lines


def format_confirmation(item: ClassifiedItem, record_id: int) -> str:
    lines = [f"Saved as *{item.kind.value}* (ID: {record_id})", ""]
    lines.extend(_detail_lines(item))
    lines.extend(["", LIST_HINT])
    return "\n".join(lines)


def format_multi_confirmation(saved, unclassified: Optional[List[str]] = None) -> str:
    lines = [f"Saved {len(saved)} items:", ""]
    for i, (item, record_id) in enumerate(saved, 1):
        lines.append(f"{i}. *{item.content}* ({item.kind.value}, ID: {record_id})")
        lines.append("   " + " | ".join(_detail_lines(item)))
    if unclassified:
        lines.extend(["", "Not saved: " + "; ".join(f'"{u}"' for u in unclassified)])
    lines.extend(["", LIST_HINT])
    return "\n".join(lines)
