"""
Twilio WhatsApp Handler

Handles Twilio messaging webhooks (application/x-www-form-urlencoded)
and converts them to InboundMessages.
"""

import logging
from typing import Any, Dict, Mapping, Optional
from urllib.parse import parse_qs

from ...common.schemas import InboundMessage
from .base import BaseHandler

logger = logging.getLogger("taskbot.scribe.handlers.twilio")

# Empty TwiML: acknowledge without an inline reply
EMPTY_TWIML = '<?xml version="1.0" encoding="UTF-8"?><Response></Response>'


class TwilioHandler(BaseHandler):
    """
    Handler for Twilio WhatsApp webhooks.

    Processes:
    - text messages

    Ignores:
    - media messages (NumMedia > 0)
    - empty bodies
    """

    def __init__(self, allowed_senders=None):
        super().__init__("whatsapp", allowed_senders)

    @staticmethod
    def parse_form(body: bytes) -> Dict[str, str]:
        """Decode a urlencoded webhook body, keeping the first value per field."""
        parsed = parse_qs(body.decode("utf-8", errors="replace"), keep_blank_values=True)
        return {k: v[0] for k, v in parsed.items() if v}

    def parse_event(self, raw_data: Mapping[str, Any]) -> Optional[InboundMessage]:
        sender = str(raw_data.get("From", "")).strip()
        body = str(raw_data.get("Body", "") or "")
        message_sid = raw_data.get("MessageSid") or None

        if not sender:
            logger.debug("Webhook without sender, ignoring")
            return None

        try:
            num_media = int(raw_data.get("NumMedia") or 0)
        except (TypeError, ValueError):
            num_media = 0
        if num_media > 0:
            logger.info("Media message %s ignored", message_sid)
            return None

        if not body.strip():
            logger.debug("Empty message %s ignored", message_sid)
            return None

        return InboundMessage(
            text=body.strip(),
            sender=sender,
            correlation_id=message_sid,
        )

    def should_process(self, message: InboundMessage) -> bool:
        if not super().should_process(message):
            if not self.is_authorized(message.sender):
                logger.info("Message from unauthorized sender %s ignored", message.sender)
            return False
        return True
