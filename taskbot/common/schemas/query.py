"""
Query Analysis Schemas

Structured form of a natural-language question: equality/range filters,
search keywords, and the retrieval strategy to run.
"""

from datetime import date
from enum import Enum
from typing import Any, List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from .item import ItemStatus, ItemType, Priority, StoredRecord, parse_lenient_date

DEFAULT_LIMIT = 50
MAX_KEYWORDS = 10


class SearchType(str, Enum):
    """Retrieval strategy"""
    STRUCTURAL = "structural"  # filters only
    CONCEPTUAL = "conceptual"  # tags / full text
    HYBRID = "hybrid"          # filters intersected with tags


def _blank_to_none(value: Any) -> Any:
    if isinstance(value, str):
        value = value.strip().lower()
        if value in ("", "null", "none", "any", "all"):
            return None
    return value


class QueryFilters(BaseModel):
    """Optional equality and date-range constraints."""
    model_config = ConfigDict(populate_by_name=True)

    type: Optional[ItemType] = None
    priority: Optional[Priority] = None
    status: Optional[ItemStatus] = None
    category: Optional[str] = None
    deadline_from: Optional[date] = Field(default=None, alias="deadlineFrom")
    deadline_to: Optional[date] = Field(default=None, alias="deadlineTo")

    @field_validator("type", "priority", "status", "category", mode="before")
    @classmethod
    def _normalize_values(cls, v):
        return _blank_to_none(v)

    @field_validator("deadline_from", "deadline_to", mode="before")
    @classmethod
    def _normalize_dates(cls, v):
        return parse_lenient_date(v)

    @property
    def has_structural_filter(self) -> bool:
        """Priority, date range or category set (type and status do not count)."""
        return bool(
            self.priority or self.category or self.deadline_from or self.deadline_to
        )

    @property
    def has_post_filter(self) -> bool:
        """Anything to check beyond the default pending status."""
        return bool(
            self.type
            or self.priority
            or self.category
            or (self.status and self.status != ItemStatus.PENDING)
        )

    def matches(self, record: StoredRecord) -> bool:
        """Equality check on status, type, priority and category."""
        if self.status and record.status != self.status:
            return False
        if self.type and record.kind != self.type:
            return False
        if self.priority and record.priority != self.priority:
            return False
        if self.category and record.category != self.category:
            return False
        return True


class QueryAnalysis(BaseModel):
    """Analyzed question, ready for the search executor."""
    model_config = ConfigDict(populate_by_name=True)

    filters: QueryFilters = Field(default_factory=QueryFilters)
    keywords: List[str] = Field(default_factory=list)
    search_type: SearchType = Field(default=SearchType.STRUCTURAL, alias="searchType")
    limit: int = Field(default=DEFAULT_LIMIT, gt=0)

    @field_validator("filters", mode="before")
    @classmethod
    def _default_filters(cls, v):
        return {} if v is None else v

    @field_validator("keywords", mode="before")
    @classmethod
    def _normalize_keywords(cls, v):
        if v is None:
            return []
        if isinstance(v, str):
            v = v.split()
        seen = []
        for word in v:
            word = str(word).strip().lower()
            if word and word not in seen:
                seen.append(word)
        return seen[:MAX_KEYWORDS]

    @field_validator("search_type", mode="before")
    @classmethod
    def _normalize_search_type(cls, v):
        if v is None:
            return SearchType.STRUCTURAL
        if isinstance(v, str):
            return v.strip().lower()
        return v

    @field_validator("limit", mode="before")
    @classmethod
    def _default_limit(cls, v):
        return DEFAULT_LIMIT if v is None else v

    @model_validator(mode="after")
    def _conceptual_needs_keywords(self):
        if self.search_type == SearchType.CONCEPTUAL and not self.keywords:
            self.search_type = SearchType.STRUCTURAL
        return self
