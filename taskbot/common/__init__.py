"""
Taskbot Common Module

Shared infrastructure for the Scribe and Retriever sides of the pipeline.
"""

from .config import TaskbotConfig, load_config, configure_logging
from .llm_client import LLMClient
from .record_store import (
    RecordStore,
    SQLiteRecordStore,
    ItemValidationError,
    RecordNotFoundError,
    StoreError,
)

__all__ = [
    "TaskbotConfig",
    "load_config",
    "configure_logging",
    "LLMClient",
    "RecordStore",
    "SQLiteRecordStore",
    "ItemValidationError",
    "RecordNotFoundError",
    "StoreError",
]
