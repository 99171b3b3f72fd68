"""
Taskbot Schemas

Closed enums and validated models for items, intents and query analyses.
"""

from .item import (
    ItemType,
    Priority,
    ItemStatus,
    ClassifiedItem,
    InboundMessage,
    StoredRecord,
    ItemIntent,
    QueryIntent,
    NoneIntent,
    MultiIntent,
    IntentResult,
    decode_intent,
    normalize_tag,
    MAX_CONTENT_LENGTH,
    MAX_TAGS,
    DEFAULT_CATEGORY,
)
from .query import SearchType, QueryFilters, QueryAnalysis, DEFAULT_LIMIT

__all__ = [
    "ItemType",
    "Priority",
    "ItemStatus",
    "ClassifiedItem",
    "InboundMessage",
    "StoredRecord",
    "ItemIntent",
    "QueryIntent",
    "NoneIntent",
    "MultiIntent",
    "IntentResult",
    "decode_intent",
    "normalize_tag",
    "MAX_CONTENT_LENGTH",
    "MAX_TAGS",
    "DEFAULT_CATEGORY",
    "SearchType",
    "QueryFilters",
    "QueryAnalysis",
    "DEFAULT_LIMIT",
]
