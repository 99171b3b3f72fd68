"""
Base Handler

Abstract base class for channel-specific webhook handlers.
Provides a common interface for converting webhook payloads to
InboundMessages.
"""

from abc import ABC, abstractmethod
from typing import Any, Iterable, Mapping, Optional

from ...common.schemas import InboundMessage


class BaseHandler(ABC):
    """
    Abstract base class for channel handlers.

    Each handler must implement:
    - parse_event: Convert a raw webhook payload to an InboundMessage
    """

    def __init__(self, source_name: str, allowed_senders: Optional[Iterable[str]] = None):
        """
        Initialize handler.

        Args:
            source_name: Name of the channel (e.g., "whatsapp")
            allowed_senders: Sender ids whose messages are processed;
                empty or None accepts everyone
        """
        self.source_name = source_name
        self.allowed_senders = set(allowed_senders or [])

    @abstractmethod
    def parse_event(self, raw_data: Mapping[str, Any]) -> Optional[InboundMessage]:
        """
        Parse a raw webhook payload into an InboundMessage.

        Returns:
            InboundMessage or None if the event should be ignored
        """
        pass

    def is_authorized(self, sender: str) -> bool:
        return not self.allowed_senders or sender in self.allowed_senders

    def should_process(self, message: InboundMessage) -> bool:
        """
        Check if message should be processed.

        Filters out empty messages and senders outside the allow-list.
        """
        if not message.text or not message.text.strip():
            return False
        return self.is_authorized(message.sender)
