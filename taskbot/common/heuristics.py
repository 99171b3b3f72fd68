"""
Fallback Heuristics

Deterministic text rules used whenever the AI service is unavailable, slow,
or returns something that does not validate. No I/O; the only input besides
the text is the reference date used for relative deadlines.
"""

import re
import string
from datetime import date, timedelta
from typing import List, Optional, Tuple

from .lexicon import (
    TASK_KEYWORDS,
    IDEA_KEYWORDS,
    QUERY_KEYWORDS,
    TAG_STOPWORDS,
    QUERY_STOPWORDS,
    TASK_TYPE_WORDS,
    IDEA_TYPE_WORDS,
    HIGH_PRIORITY_PHRASES,
    MEDIUM_PRIORITY_PHRASES,
    LOW_PRIORITY_PHRASES,
    COMPLETED_WORDS,
    CANCELLED_WORDS,
    DEADLINE_OFFSETS,
    contains_keyword,
)
from .schemas import (
    ClassifiedItem,
    ItemIntent,
    ItemStatus,
    ItemType,
    MultiIntent,
    NoneIntent,
    Priority,
    QueryAnalysis,
    QueryFilters,
    QueryIntent,
    SearchType,
    DEFAULT_CATEGORY,
    DEFAULT_LIMIT,
)

# Fixed confidences for fallback results
QUERY_CONFIDENCE = 0.5
MULTI_CONFIDENCE = 0.5
SINGLE_CONFIDENCE = 0.6
NONE_CONFIDENCE = 0.7

MIN_FRAGMENT_LENGTH = 6
MAX_AUTO_TAGS = 5
MAX_QUERY_KEYWORDS = 10

_FRAGMENT_SEPARATOR = re.compile(
    r",\s*(?:and\s+)?|\s+and\s+|\s+also\s+|\s+then\s+",
    re.IGNORECASE,
)
_QUERY_WORD = re.compile(r"[\w'-]+")


def parse_deadline(text: str, today: Optional[date] = None) -> Optional[date]:
    """Resolve "today", "tomorrow" or "next week" in text; nothing else."""
    today = today or date.today()
    lower = (text or "").lower()
    for phrase, offset in DEADLINE_OFFSETS:
        if phrase in lower:
            return today + timedelta(days=offset)
    return None


def extract_tags(text: str) -> List[str]:
    """Up to five words longer than three characters, in message order."""
    tags = []
    for word in (text or "").lower().split():
        word = word.strip(string.punctuation)
        if len(word) > 3 and word not in TAG_STOPWORDS:
            tags.append(word)
        if len(tags) == MAX_AUTO_TAGS:
            break
    return tags


def classify_fragment(
    text: str,
    today: Optional[date] = None,
    confidence: float = SINGLE_CONFIDENCE,
) -> Optional[ClassifiedItem]:
    """Classify one fragment as a task or idea.

    Idea vocabulary wins over task vocabulary; text matching neither is
    still captured as a task. Returns None only for blank text.
    """
    content = (text or "").strip()
    if not content:
        return None

    if contains_keyword(content, IDEA_KEYWORDS):
        kind = ItemType.IDEA
    elif contains_keyword(content, TASK_KEYWORDS):
        kind = ItemType.TASK
    else:
        # Unmarked text is still captured as an action item
        kind = ItemType.TASK

    return ClassifiedItem(
        kind=kind,
        content=content,
        priority=Priority.MEDIUM,
        category=DEFAULT_CATEGORY,
        deadline=parse_deadline(content, today) if kind == ItemType.TASK else None,
        tags=extract_tags(content),
        confidence=confidence,
    )


def _split_pieces(text: str) -> Tuple[bool, List[str]]:
    stripped = (text or "").strip()
    if not stripped:
        return False, []
    pieces = [p.strip() for p in _FRAGMENT_SEPARATOR.split(stripped)]
    return len(pieces) > 1, [p for p in pieces if p]


def split_fragments(text: str) -> List[str]:
    """Split on commas, "and", "also" and "then"; drop fragments of five chars or fewer.

    Text without any separator comes back as a single trimmed fragment.
    """
    was_split, pieces = _split_pieces(text)
    if not was_split:
        return pieces
    return [p for p in pieces if len(p) >= MIN_FRAGMENT_LENGTH]


def classify_query_fallback(text: str) -> Optional[QueryIntent]:
    if contains_keyword(text or "", QUERY_KEYWORDS):
        return QueryIntent(confidence=QUERY_CONFIDENCE)
    return None


def fallback_intent(text: str, today: Optional[date] = None):
    """Full heuristic classification chain for one message.

    query keywords -> split into fragments -> whole message -> none.
    Fragments that cannot become items are reported in
    ``MultiIntent.unclassified`` rather than dropped silently.
    """
    query = classify_query_fallback(text)
    if query:
        return query

    was_split, pieces = _split_pieces(text)
    fragments = split_fragments(text)
    if len(fragments) > 1:
        items = []
        unclassified = [p for p in pieces if len(p) < MIN_FRAGMENT_LENGTH] if was_split else []
        for fragment in fragments:
            item = classify_fragment(fragment, today, confidence=MULTI_CONFIDENCE)
            if item:
                items.append(item)
            else:
                unclassified.append(fragment)
        if len(items) >= 2:
            return MultiIntent(
                items=items,
                confidence=MULTI_CONFIDENCE,
                unclassified=unclassified,
            )

    item = classify_fragment(text, today, confidence=SINGLE_CONFIDENCE)
    if item:
        return ItemIntent(intent=item.kind.value, item=item, confidence=SINGLE_CONFIDENCE)
    return NoneIntent(confidence=NONE_CONFIDENCE)


def week_bounds(today: date) -> Tuple[date, date]:
    """Sunday-anchored seven-day window containing today."""
    start = today - timedelta(days=(today.weekday() + 1) % 7)
    return start, start + timedelta(days=6)


def extract_query_keywords(text: str) -> List[str]:
    keywords = []
    for word in _QUERY_WORD.findall((text or "").lower()):
        word = word.strip("'-")
        if len(word) > 3 and word not in QUERY_STOPWORDS and word not in keywords:
            keywords.append(word)
    return keywords[:MAX_QUERY_KEYWORDS]


def analyze_query_fallback(text: str, today: Optional[date] = None) -> QueryAnalysis:
    """Rule-based QueryAnalysis for when the analyzer's AI call fails."""
    today = today or date.today()
    lower = (text or "").lower()

    filters = {}

    mentions_task = contains_keyword(lower, TASK_TYPE_WORDS)
    mentions_idea = contains_keyword(lower, IDEA_TYPE_WORDS)
    if mentions_task and not mentions_idea:
        filters["type"] = ItemType.TASK
    elif mentions_idea and not mentions_task:
        filters["type"] = ItemType.IDEA

    if contains_keyword(lower, HIGH_PRIORITY_PHRASES):
        filters["priority"] = Priority.HIGH
    elif contains_keyword(lower, MEDIUM_PRIORITY_PHRASES):
        filters["priority"] = Priority.MEDIUM
    elif contains_keyword(lower, LOW_PRIORITY_PHRASES):
        filters["priority"] = Priority.LOW

    if contains_keyword(lower, COMPLETED_WORDS):
        filters["status"] = ItemStatus.COMPLETED
    elif contains_keyword(lower, CANCELLED_WORDS):
        filters["status"] = ItemStatus.CANCELLED
    else:
        filters["status"] = ItemStatus.PENDING

    if contains_keyword(lower, ("today",)):
        filters["deadline_from"] = today
        filters["deadline_to"] = today
    elif contains_keyword(lower, ("this week",)):
        filters["deadline_from"], filters["deadline_to"] = week_bounds(today)

    query_filters = QueryFilters(**filters)
    keywords = extract_query_keywords(text)

    if not keywords:
        search_type = SearchType.STRUCTURAL
    elif not query_filters.has_structural_filter:
        search_type = SearchType.CONCEPTUAL
    else:
        search_type = SearchType.HYBRID

    return QueryAnalysis(
        filters=query_filters,
        keywords=keywords,
        search_type=search_type,
        limit=DEFAULT_LIMIT,
    )
