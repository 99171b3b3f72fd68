"""
Scribe - Message Capture

Receives messages from the chat channel, classifies them, and either saves
the tasks/ideas they contain or hands questions to the Retriever.

Key Components:
- IntentClassifier: AI classification with heuristic fallback
- MessagePipeline: confidence gate, write path, read path, reply text
- Handlers: Channel-specific webhook parsing (Twilio WhatsApp)
- Repliers: Reply delivery (console, Twilio)

Rules:
1. Results below the confidence threshold are dropped, never saved
2. Bot-authored messages are ignored to avoid reply loops
3. The sender sees a confirmation, an answer, or one generic error notice
"""

from .classifier import IntentClassifier
from .pipeline import MessagePipeline, PipelineReply, ReplyKind, GENERIC_ERROR_NOTICE
from .replier import BaseReplier, ConsoleReplier, TwilioReplier, ReplyError

__all__ = [
    "IntentClassifier",
    "MessagePipeline",
    "PipelineReply",
    "ReplyKind",
    "GENERIC_ERROR_NOTICE",
    "BaseReplier",
    "ConsoleReplier",
    "TwilioReplier",
    "ReplyError",
]
