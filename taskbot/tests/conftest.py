"""Shared fixtures for Taskbot tests."""

from unittest.mock import Mock

import pytest


@pytest.fixture
def store(tmp_path):
    from taskbot.common.record_store import SQLiteRecordStore
    return SQLiteRecordStore(tmp_path / "items.db")


@pytest.fixture
def make_llm():
    """Factory for an available LLM client double.

    ``response`` is returned by generate(); ``side_effect`` replaces it.
    """
    def _make(response="", side_effect=None):
        llm = Mock()
        llm.is_available = True
        llm.generate = Mock(return_value=response, side_effect=side_effect)
        return llm
    return _make
