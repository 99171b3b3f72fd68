"""
Intent Classifier & Decomposer

Turns one inbound message into an IntentResult: a single task/idea, several
items found in the same message, a question about stored items, or nothing
actionable.

One AI call per message, raced against a timeout. Anything short of a
response that validates against the IntentResult union (timeout, provider
error, bad JSON, unknown enum value) runs the deterministic heuristics
instead. classify() never raises.

The caller owns the confidence gate; this module reports confidence only.
"""

import json
import logging
from datetime import date
from typing import Optional

from pydantic import ValidationError

from ..common.llm_utils import LLMUnavailableError, generate_with_timeout, parse_llm_json
from ..common.schemas import InboundMessage, decode_intent
from ..common.heuristics import fallback_intent

logger = logging.getLogger("taskbot.scribe.classifier")


CLASSIFY_SYSTEM_PROMPT = """You sort personal messages into tasks, ideas and questions.

Every response is one JSON object with an "intent" field.

TASK: something to be done (errands, calls, deadlines, to-dos)
IDEA: a thought, suggestion or plan to explore later
QUERY: a request to see or search saved tasks/ideas ("show tasks", "what ideas do I have about X")
NONE: small talk or anything else

If the message holds several independent tasks/ideas (separated by commas, "and", "also", "then"), split them:
{"intent": "multi", "confidence": 0.0-1.0, "items": [ITEM, ITEM, ...]}

For one task or idea:
{"intent": "task" | "idea", "confidence": 0.0-1.0, ...ITEM fields}

ITEM fields:
- "type": "task" | "idea"
- "content": short clean description
- "priority": "high" (urgent, asap) | "medium" | "low" (nice to have) | "none"
- "category": "personal" by default, or a short lowercase hyphenated name
- "deadline": "YYYY-MM-DD" resolved against the message date, or null
- "tags": 5-10 lowercase hyphenated search tags (topic, entities, related concepts, verbs)

For questions: {"intent": "query", "confidence": 0.0-1.0}
Otherwise: {"intent": "none", "confidence": 0.0-1.0}

Respond with JSON only."""


class IntentClassifier:
    """
    Classifies inbound messages with an AI call and heuristic fallback.

    The LLM client is injected; pass None (or an unavailable client) to run
    on heuristics alone.
    """

    def __init__(self, llm_client=None, timeout: float = 30.0):
        self._llm = llm_client
        self._timeout = timeout

    @property
    def has_llm(self) -> bool:
        return self._llm is not None and self._llm.is_available

    async def classify(self, message: InboundMessage, today: Optional[date] = None):
        """Classify one message. Never raises."""
        today = today or message.timestamp.date()

        if self.has_llm:
            try:
                result = await self._classify_with_llm(message, today)
                logger.info(
                    "Classified %s as %s (confidence %.2f)",
                    message.correlation_id or message.sender,
                    result.intent,
                    result.confidence,
                )
                return result
            except LLMUnavailableError as e:
                logger.warning("Classification call failed, using heuristics: %s", e)
            except (ValidationError, ValueError) as e:
                logger.warning("Malformed classification response, using heuristics: %s", e)
            except Exception as e:
                logger.warning("Classification error, using heuristics: %s", e, exc_info=True)

        result = fallback_intent(message.text, today)
        if result.is_multi_intent and result.unclassified:
            logger.warning(
                "Heuristics could not classify %d fragment(s): %s",
                len(result.unclassified),
                result.unclassified,
            )
        logger.info("Heuristic classification: %s (confidence %.2f)", result.intent, result.confidence)
        return result

    async def _classify_with_llm(self, message: InboundMessage, today: date):
        prompt = (
            f"Message: {json.dumps(message.text)}\n\n"
            f"Context: sender {message.sender}, sent at {message.timestamp.isoformat()} "
            f"(today is {today.isoformat()})"
        )
        raw = await generate_with_timeout(
            self._llm,
            prompt,
            system=CLASSIFY_SYSTEM_PROMPT,
            max_tokens=800,
            timeout=self._timeout,
            temperature=0.3,
            json_mode=True,
        )
        payload = parse_llm_json(raw)
        if not payload:
            raise ValueError(f"no JSON object in response: {raw[:100]!r}")

        return decode_intent(payload)
