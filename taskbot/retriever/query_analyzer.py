"""
Query Analyzer

Turns a free-text question into a QueryAnalysis: filters, search keywords,
retrieval strategy and result limit. Relative dates ("today", "this week")
are resolved against the reference date passed in.

Same pattern as the classifier: one AI call with a timeout, rule-based
fallback on any failure, never raises.
"""

import json
import logging
from datetime import date
from typing import Optional

from pydantic import ValidationError

from ..common.lexicon import IDEA_TYPE_WORDS, TASK_TYPE_WORDS, contains_keyword
from ..common.llm_utils import LLMUnavailableError, generate_with_timeout, parse_llm_json
from ..common.schemas import ItemStatus, QueryAnalysis
from ..common.heuristics import analyze_query_fallback

logger = logging.getLogger("taskbot.retriever.query_analyzer")


ANALYZE_SYSTEM_PROMPT = """You turn questions about a personal task/idea list into search parameters.

Respond with one JSON object:
{
  "filters": {
    "type": "task" | "idea" | null,
    "priority": "high" | "medium" | "low" | null,
    "status": "pending" | "completed" | "cancelled",
    "category": "category name" | null,
    "deadlineFrom": "YYYY-MM-DD" | null,
    "deadlineTo": "YYYY-MM-DD" | null
  },
  "keywords": ["topic", "words", "to", "search"],
  "searchType": "structural" | "conceptual" | "hybrid",
  "limit": 50
}

Rules:
- structural: answerable by filters alone ("high priority tasks", "tasks due today")
- conceptual: about a topic ("ideas about marketing"); keywords required
- hybrid: filters plus a topic ("urgent work tasks about the launch")
- status is "pending" unless the question asks for completed/done or cancelled items
- set type only when the question is clearly about tasks or clearly about ideas
- resolve relative dates against today; weeks start on Sunday
- keywords are lowercase topic words and close synonyms, never filter words like "task" or "priority"

Examples (today = 2024-11-10, a Sunday):
"show high priority tasks" -> {"filters": {"type": "task", "priority": "high", "status": "pending"}, "keywords": [], "searchType": "structural", "limit": 50}
"ideas about gardening" -> {"filters": {"type": "idea", "status": "pending"}, "keywords": ["gardening", "garden", "plants"], "searchType": "conceptual", "limit": 50}
"what's due this week for the launch" -> {"filters": {"status": "pending", "deadlineFrom": "2024-11-10", "deadlineTo": "2024-11-16"}, "keywords": ["launch"], "searchType": "hybrid", "limit": 50}

Respond with JSON only."""


class QueryAnalyzer:
    """
    Analyzes natural-language questions for the search executor.

    Falls back to analyze_query_fallback when the LLM is missing or fails.
    """

    def __init__(self, llm_client=None, timeout: float = 30.0):
        self._llm = llm_client
        self._timeout = timeout

    @property
    def has_llm(self) -> bool:
        return self._llm is not None and self._llm.is_available

    async def analyze(self, query: str, today: Optional[date] = None) -> QueryAnalysis:
        """Analyze a question. Never raises."""
        today = today or date.today()

        if self.has_llm:
            try:
                analysis = await self._analyze_with_llm(query, today)
                logger.info(
                    "Query analysis: %s, keywords=%s",
                    analysis.search_type.value,
                    analysis.keywords,
                )
                return analysis
            except LLMUnavailableError as e:
                logger.warning("Query analysis call failed, using rules: %s", e)
            except (ValidationError, ValueError) as e:
                logger.warning("Malformed query analysis, using rules: %s", e)
            except Exception as e:
                logger.warning("Query analysis error, using rules: %s", e, exc_info=True)

        analysis = analyze_query_fallback(query, today)
        logger.info(
            "Rule-based query analysis: %s, keywords=%s",
            analysis.search_type.value,
            analysis.keywords,
        )
        return analysis

    async def _analyze_with_llm(self, query: str, today: date) -> QueryAnalysis:
        prompt = (
            f"Today is {today.isoformat()} ({today.strftime('%A')}).\n\n"
            f"Question: {json.dumps(query)}"
        )
        raw = await generate_with_timeout(
            self._llm,
            prompt,
            system=ANALYZE_SYSTEM_PROMPT,
            max_tokens=400,
            timeout=self._timeout,
            temperature=0.2,
            json_mode=True,
        )
        payload = parse_llm_json(raw)
        if not payload:
            raise ValueError(f"no JSON object in response: {raw[:100]!r}")

        analysis = QueryAnalysis.model_validate(payload)

        updates = {}
        if analysis.filters.status is None:
            updates["status"] = ItemStatus.PENDING
        # Both vocabularies present: ambiguous, so no type filter
        if contains_keyword(query, TASK_TYPE_WORDS) and contains_keyword(query, IDEA_TYPE_WORDS):
            updates["type"] = None
        if updates:
            analysis = analysis.model_copy(
                update={"filters": analysis.filters.model_copy(update=updates)}
            )
        return analysis
