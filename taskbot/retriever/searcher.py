"""
Search Executor

Runs a QueryAnalysis against the record store with one of three strategies:

- structural: filter query, newest first
- conceptual: tag match -> full-text match, then post-filter
- hybrid: filter query intersected with tag match, falling back to the
  plain filter results when the overlap is too small

Every store call carries the owner id. Store errors are not retried here;
they propagate to the caller.
"""

import logging
from typing import Iterable, List, Optional

from ..common.record_store import FULL_TEXT_LIMIT, TAG_SEARCH_LIMIT, RecordStore
from ..common.schemas import QueryAnalysis, QueryFilters, SearchType, StoredRecord, DEFAULT_LIMIT

logger = logging.getLogger("taskbot.retriever.searcher")

HYBRID_STRUCTURAL_LIMIT = 100


def dedupe(records: Iterable[StoredRecord]) -> List[StoredRecord]:
    """Drop repeated ids, keeping first occurrence order."""
    seen_ids = set()
    unique = []
    for record in records:
        if record.id not in seen_ids:
            seen_ids.add(record.id)
            unique.append(record)
    return unique


class SearchExecutor:
    """
    Executes analyzed queries against a RecordStore.

    Features:
    - Three retrieval strategies selected by the analysis
    - Tag -> full-text escalation for conceptual queries
    - Configurable minimum overlap for hybrid intersections
    """

    def __init__(
        self,
        store: RecordStore,
        hybrid_min_overlap: int = 10,
        default_limit: int = DEFAULT_LIMIT,
    ):
        """
        Initialize executor.

        Args:
            store: Record store every query runs against
            hybrid_min_overlap: Hybrid intersections smaller than this are
                replaced by the structural results
            default_limit: Page size for browse() when the caller gives none
        """
        self._store = store
        self.hybrid_min_overlap = hybrid_min_overlap
        self.default_limit = default_limit

    async def execute(self, analysis: QueryAnalysis, owner: str) -> List[StoredRecord]:
        """
        Run the strategy named by ``analysis.search_type`` for one owner.

        Returns:
            Records most-recent-first (full-text results in relevance order)
        """
        if analysis.search_type == SearchType.CONCEPTUAL:
            results = self._conceptual(analysis, owner)
        elif analysis.search_type == SearchType.HYBRID:
            results = self._hybrid(analysis, owner)
        else:
            results = self._structural(analysis.filters, owner, analysis.limit)

        logger.info(
            "%s search for %s returned %d record(s)",
            analysis.search_type.value,
            owner,
            len(results),
        )
        return results

    async def browse(
        self,
        owner: str,
        filters: Optional[QueryFilters] = None,
        limit: Optional[int] = None,
    ) -> List[StoredRecord]:
        """Structural path for callers that already hold filters (the dashboard API)."""
        return self._structural(filters or QueryFilters(), owner, limit or self.default_limit)

    def _structural(self, filters: QueryFilters, owner: str, limit: int) -> List[StoredRecord]:
        return self._store.query(owner, filters, limit)

    def _conceptual(self, analysis: QueryAnalysis, owner: str) -> List[StoredRecord]:
        keywords = analysis.keywords
        results: List[StoredRecord] = []

        if keywords:
            results = self._store.search_by_tag(owner, keywords, TAG_SEARCH_LIMIT)

        if not results and keywords:
            logger.debug("No tag matches for %s, trying full-text search", keywords)
            results = self._store.search_full_text(owner, " OR ".join(keywords), FULL_TEXT_LIMIT)

        results = dedupe(results)

        # Post-hoc equality filter on whatever set was produced; no re-query
        filters = analysis.filters
        if results and (filters.status or filters.has_post_filter):
            results = [r for r in results if filters.matches(r)]

        return results

    def _hybrid(self, analysis: QueryAnalysis, owner: str) -> List[StoredRecord]:
        structural = self._structural(
            analysis.filters, owner, analysis.limit or HYBRID_STRUCTURAL_LIMIT
        )
        if not analysis.keywords:
            return structural

        tagged = self._store.search_by_tag(owner, analysis.keywords, TAG_SEARCH_LIMIT)
        tagged_ids = {r.id for r in tagged}
        overlap = [r for r in structural if r.id in tagged_ids]

        if len(overlap) < self.hybrid_min_overlap:
            logger.debug(
                "Hybrid overlap %d < %d, using structural results",
                len(overlap),
                self.hybrid_min_overlap,
            )
            return structural[: analysis.limit or DEFAULT_LIMIT]
        return overlap
