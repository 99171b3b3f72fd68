"""
Tests for SearchExecutor

Strategy tests run against a real SQLite store; call-order tests wrap it
in a Mock spy.
"""

from unittest.mock import Mock

import pytest

OWNER = "whatsapp:+15550001111"
OTHER_OWNER = "whatsapp:+15550002222"


def _save(store, content, owner=OWNER, kind="task", **kwargs):
    from taskbot.common.schemas import ClassifiedItem
    return store.save(owner, ClassifiedItem(kind=kind, content=content, **kwargs))


def _analysis(search_type, keywords=(), **filters):
    from taskbot.common.schemas import QueryAnalysis, QueryFilters
    filters.setdefault("status", "pending")
    return QueryAnalysis(
        filters=QueryFilters(**filters),
        keywords=list(keywords),
        search_type=search_type,
    )


class TestDedupe:
    """Tests for dedupe"""

    def test_keeps_first_occurrence(self):
        from taskbot.retriever.searcher import dedupe

        a, b = Mock(id=1), Mock(id=2)

        assert dedupe([a, b, Mock(id=1)]) == [a, b]


class TestStructural:
    """Tests for filter-only search"""

    @pytest.mark.asyncio
    async def test_filters_and_order(self, store):
        from taskbot.retriever.searcher import SearchExecutor

        _save(store, "Old task", priority="high")
        _save(store, "Podcast idea", kind="idea", priority="high")
        _save(store, "New task", priority="high")
        _save(store, "Low task", priority="low")

        executor = SearchExecutor(store)
        results = await executor.execute(_analysis("structural", type="task", priority="high"), OWNER)

        assert [r.content for r in results] == ["New task", "Old task"]

    @pytest.mark.asyncio
    async def test_browse_without_filters(self, store):
        from taskbot.retriever.searcher import SearchExecutor

        _save(store, "One")
        _save(store, "Two")

        results = await SearchExecutor(store).browse(OWNER, limit=1)

        assert [r.content for r in results] == ["Two"]

    @pytest.mark.asyncio
    async def test_browse_uses_default_limit(self, store):
        from taskbot.retriever.searcher import SearchExecutor

        for content in ("One", "Two", "Three"):
            _save(store, content)

        executor = SearchExecutor(store, default_limit=2)

        assert [r.content for r in await executor.browse(OWNER)] == ["Three", "Two"]
        assert len(await executor.browse(OWNER, limit=3)) == 3


class TestConceptual:
    """Tests for tag -> full-text search"""

    @pytest.mark.asyncio
    async def test_tag_match(self, store):
        from taskbot.retriever.searcher import SearchExecutor

        _save(store, "Read Atomic Habits", tags=["books", "habits"])
        _save(store, "Call mom", tags=["family"])

        spy = Mock(wraps=store)
        results = await SearchExecutor(spy).execute(_analysis("conceptual", ["books"]), OWNER)

        assert [r.content for r in results] == ["Read Atomic Habits"]
        spy.search_full_text.assert_not_called()

    @pytest.mark.asyncio
    async def test_escalates_to_full_text(self, store):
        from taskbot.retriever.searcher import SearchExecutor

        _save(store, "Plan the garden layout")
        _save(store, "Fix the kitchen tap")

        spy = Mock(wraps=store)
        results = await SearchExecutor(spy).execute(_analysis("conceptual", ["garden", "plants"]), OWNER)

        assert [r.content for r in results] == ["Plan the garden layout"]
        spy.search_full_text.assert_called_once_with(OWNER, "garden OR plants", 50)

    @pytest.mark.asyncio
    async def test_post_filters_status_and_type(self, store):
        from taskbot.retriever.searcher import SearchExecutor

        done = _save(store, "Read Dune", tags=["books"])
        _save(store, "Start a book club", kind="idea", tags=["books"])
        _save(store, "Read Atomic Habits", tags=["books"])
        store.update_status(OWNER, done, "completed")

        results = await SearchExecutor(store).execute(
            _analysis("conceptual", ["books"], type="task"), OWNER
        )

        assert [r.content for r in results] == ["Read Atomic Habits"]

    @pytest.mark.asyncio
    async def test_no_matches(self, store):
        from taskbot.retriever.searcher import SearchExecutor

        _save(store, "Call mom", tags=["family"])

        results = await SearchExecutor(store).execute(_analysis("conceptual", ["astronomy"]), OWNER)

        assert results == []


class TestHybrid:
    """Tests for filters intersected with tags"""

    @pytest.mark.asyncio
    async def test_small_overlap_falls_back_to_structural(self, store):
        from taskbot.retriever.searcher import SearchExecutor

        _save(store, "Write launch post", priority="high", tags=["launch"])
        _save(store, "Fix login bug", priority="high")
        _save(store, "Update invoices", priority="high")

        results = await SearchExecutor(store, hybrid_min_overlap=10).execute(
            _analysis("hybrid", ["launch"], priority="high"), OWNER
        )

        assert len(results) == 3

    @pytest.mark.asyncio
    async def test_overlap_returned(self, store):
        from taskbot.retriever.searcher import SearchExecutor

        _save(store, "Write launch post", priority="high", tags=["launch"])
        _save(store, "Fix login bug", priority="high")
        _save(store, "Launch checklist", priority="low", tags=["launch"])

        results = await SearchExecutor(store, hybrid_min_overlap=1).execute(
            _analysis("hybrid", ["launch"], priority="high"), OWNER
        )

        assert [r.content for r in results] == ["Write launch post"]


class TestOwnerScoping:
    """Searches never return another owner's records"""

    @pytest.mark.asyncio
    @pytest.mark.parametrize("search_type", ["structural", "conceptual", "hybrid"])
    async def test_other_owner_invisible(self, store, search_type):
        from taskbot.retriever.searcher import SearchExecutor

        _save(store, "Garden shed repair", priority="high", tags=["garden"])
        _save(store, "Secret garden plan", owner=OTHER_OWNER, priority="high", tags=["garden"])
        _save(store, "Garden party", owner=OTHER_OWNER, priority="high", tags=["garden"])

        results = await SearchExecutor(store, hybrid_min_overlap=1).execute(
            _analysis(search_type, ["garden"], priority="high"), OWNER
        )

        assert [r.content for r in results] == ["Garden shed repair"]
        assert all(r.owner_id == OWNER for r in results)

    @pytest.mark.asyncio
    async def test_store_error_propagates(self):
        from taskbot.common.record_store import StoreError
        from taskbot.retriever.searcher import SearchExecutor

        store = Mock()
        store.query.side_effect = StoreError("database is locked")

        with pytest.raises(StoreError):
            await SearchExecutor(store).execute(_analysis("structural"), OWNER)
