"""
Channel Handlers

Each handler converts channel-specific webhook payloads to InboundMessages.

Available Handlers:
- TwilioHandler: WhatsApp messages via Twilio webhooks
"""

from .base import BaseHandler
from .twilio import TwilioHandler, EMPTY_TWIML

__all__ = [
    "BaseHandler",
    "TwilioHandler",
    "EMPTY_TWIML",
]
