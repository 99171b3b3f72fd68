"""
Retriever - Question Answering over Stored Items

Analyzes a natural-language question, searches the owner's records, and
answers in chat-friendly prose.

Key Components:
- QueryAnalyzer: question -> filters, keywords, strategy
- SearchExecutor: structural / conceptual / hybrid retrieval
- AnswerSynthesizer: LLM answer with keyword-listing fallback

Pipeline:
1. Analyze the question (AI call, rule-based fallback)
2. Execute the chosen strategy against the record store
3. Synthesize an answer from at most 50 records
"""

from .query_analyzer import QueryAnalyzer
from .searcher import SearchExecutor
from .synthesizer import AnswerSynthesizer, NO_ITEMS_MESSAGE

__all__ = [
    "QueryAnalyzer",
    "SearchExecutor",
    "AnswerSynthesizer",
    "NO_ITEMS_MESSAGE",
]
