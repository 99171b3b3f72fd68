"""
Shared heuristic vocabulary.

Both fallback paths (message classification and query analysis) read their
word lists from here so the two pipelines agree on what counts as task,
idea and query language.
"""

from typing import Iterable

# Message intent vocabulary
TASK_KEYWORDS = (
    "need to", "must", "have to", "should", "finish", "complete",
    "do", "call", "email", "buy", "send", "schedule", "remind",
)

IDEA_KEYWORDS = (
    "idea:", "thought:", "maybe", "could", "what if",
    "consider", "explore", "think about", "brainstorm",
)

QUERY_KEYWORDS = ("show", "list", "get", "what", "which", "pending", "display")

# Words never used as auto-generated tags
TAG_STOPWORDS = frozenset({"the", "and", "for", "with", "also", "then"})

# Words never used as search keywords; includes the filter vocabulary so
# "high priority tasks" does not search for the word "high".
QUERY_STOPWORDS = frozenset({
    "show", "list", "get", "all", "the", "and", "for", "with", "about",
    "what", "what's", "which", "display", "my", "me",
    "task", "tasks", "todo", "todos", "idea", "ideas",
    "pending", "completed", "done", "cancelled", "canceled",
    "high", "medium", "low", "priority", "urgent",
    "today", "todays", "today's", "this", "week",
})

# Query filter vocabulary
TASK_TYPE_WORDS = ("task", "tasks", "todo", "todos")
IDEA_TYPE_WORDS = ("idea", "ideas")
HIGH_PRIORITY_PHRASES = ("high priority", "urgent")
MEDIUM_PRIORITY_PHRASES = ("medium priority",)
LOW_PRIORITY_PHRASES = ("low priority",)
COMPLETED_WORDS = ("completed", "done")
CANCELLED_WORDS = ("cancelled", "canceled")

# Relative deadline phrases understood by the fallback date parser
DEADLINE_OFFSETS = (
    ("today", 0),
    ("tomorrow", 1),
    ("next week", 7),
)


def contains_keyword(text: str, keywords: Iterable[str]) -> bool:
    """True when any keyword occurs anywhere in text, ignoring case.

    Plain substring matching: "brainstorming" carries "brainstorm" and
    "todays" carries "today".
    """
    lower = (text or "").lower()
    return any(k in lower for k in keywords)
