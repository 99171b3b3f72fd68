"""
Taskbot

Personal task and idea capture over a messaging channel.

- Scribe: turns inbound messages into stored tasks/ideas, or routes questions
- Retriever: analyzes questions, searches stored items, synthesizes answers

Every AI call has a deterministic fallback, so a message is always answered.

Usage:
    from taskbot.common import load_config, LLMClient, SQLiteRecordStore
    from taskbot.common.schemas import ClassifiedItem, IntentResult, QueryAnalysis
    from taskbot.scribe import IntentClassifier, MessagePipeline
    from taskbot.retriever import QueryAnalyzer, SearchExecutor, AnswerSynthesizer
"""

__version__ = "0.1.0"
