"""
Synthesizer

Turns retrieved records plus the original question into a short
conversational answer for a chat channel.

Only the first 50 records are given to the LLM. When the LLM is missing,
slow or fails, a keyword listing over the owner's recent records is
returned instead.
"""

import logging
from typing import List, Optional

from ..common.llm_utils import LLMUnavailableError, generate_with_timeout
from ..common.record_store import RecordStore
from ..common.schemas import QueryFilters, StoredRecord

logger = logging.getLogger("taskbot.retriever.synthesizer")

NO_ITEMS_MESSAGE = (
    "No items found matching your query. "
    "Try a different search or check your saved tasks and ideas."
)

MAX_CONTEXT_RECORDS = 50
FALLBACK_FETCH_LIMIT = 100
FALLBACK_LIST_SIZE = 5


SYNTHESIS_PROMPT = """You help someone look through the tasks and ideas they saved by chat message.

They asked: "{query}"

Matching items ({total} found, {shown} shown):

{records}

How to answer:
- Talk naturally, in sentences; no field labels, no raw data dumps
- Wrap each item's content in *single asterisks* (chat bold); never use **double asterisks**
- No emojis
- Mention priority, category or deadline only where it helps, and write dates naturally ("November 10th")
- Group related items when that reads better ("Your high priority items are ...")
- Be brief and friendly

Answer the question using only the items above."""


class AnswerSynthesizer:
    """
    Synthesizes answers from search results using the LLM.

    Falls back to a keyword listing if the LLM is not available.
    """

    def __init__(self, store: RecordStore, llm_client=None, timeout: float = 30.0):
        """
        Initialize synthesizer.

        Args:
            store: Record store, used to re-fetch records for the fallback listing
            llm_client: Shared LLMClient (optional)
            timeout: Seconds to wait for the generation call
        """
        self._store = store
        self._llm = llm_client
        self._timeout = timeout

    @property
    def has_llm(self) -> bool:
        """Check if LLM is available"""
        return self._llm is not None and self._llm.is_available

    async def synthesize(self, query: str, results: List[StoredRecord], owner: str) -> str:
        """
        Answer ``query`` from ``results``.

        Empty results short-circuit to NO_ITEMS_MESSAGE without an LLM call.
        AI failures never escape; store failures during the fallback do.
        """
        if not results:
            return NO_ITEMS_MESSAGE

        if self.has_llm:
            try:
                return await self._synthesize_with_llm(query, results)
            except LLMUnavailableError as e:
                logger.warning("Answer synthesis failed, using keyword listing: %s", e)
            except Exception as e:
                logger.warning("Answer synthesis error, using keyword listing: %s", e, exc_info=True)

        return self.keyword_fallback(query, owner)

    async def _synthesize_with_llm(self, query: str, results: List[StoredRecord]) -> str:
        shown = results[:MAX_CONTEXT_RECORDS]
        system = SYNTHESIS_PROMPT.format(
            query=query,
            total=len(results),
            shown=len(shown),
            records=self._format_records_for_prompt(shown),
        )
        logger.debug("Synthesizing from %d record(s)", len(shown))
        answer = await generate_with_timeout(
            self._llm,
            query,
            system=system,
            max_tokens=500,
            timeout=self._timeout,
            temperature=0.7,
        )
        if not answer:
            raise LLMUnavailableError("empty answer")
        return answer

    def _format_records_for_prompt(self, results: List[StoredRecord]) -> str:
        """Compact multi-line block per record."""
        blocks = []
        for i, r in enumerate(results, 1):
            blocks.append(
                f"{i}. [{r.kind.value.upper()}] {r.content}\n"
                f"   - Priority: {r.priority.value}\n"
                f"   - Category: {r.category}\n"
                f"   - Deadline: {r.deadline.isoformat() if r.deadline else 'none'}\n"
                f"   - Status: {r.status.value}\n"
                f"   - Tags: {', '.join(r.tags) if r.tags else 'none'}\n"
                f"   - Created: {r.created_at.date().isoformat()}"
            )
        return "\n\n".join(blocks)

    def keyword_fallback(self, query: str, owner: str, records: Optional[List[StoredRecord]] = None) -> str:
        """Deterministic listing of the owner's records whose content mentions a query word.

        Re-fetches up to 100 records unless ``records`` is given.
        """
        if records is None:
            records = self._store.query(owner, QueryFilters(), FALLBACK_FETCH_LIMIT)

        words = [w for w in query.lower().split() if len(w) > 3]
        matches = [
            r for r in records
            if any(w in r.content.lower() for w in words)
        ]

        if not matches:
            return f'No items found matching "{query}". Try a different search term.'

        lines = [f'Found {len(matches)} item(s) matching "{query}":', ""]
        for i, r in enumerate(matches[:FALLBACK_LIST_SIZE], 1):
            lines.append(f"{i}. *{r.content}*")
            lines.append(f"   Priority: {r.priority.value}")
            lines.append(f"   Category: {r.category}")
            if r.deadline:
                lines.append(f"   Deadline: {r.deadline.isoformat()}")
            lines.append("")

        if len(matches) > FALLBACK_LIST_SIZE:
            lines.append(
                f"...and {len(matches) - FALLBACK_LIST_SIZE} more. Try narrowing your search."
            )

        return "\n".join(lines).rstrip()
