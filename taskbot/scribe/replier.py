"""
Reply Channels

Deliver pipeline replies back to the sender.

- ConsoleReplier: logs replies (local development, tests)
- TwilioReplier: sends WhatsApp messages through the Twilio REST API
"""

import logging
from abc import ABC, abstractmethod
from typing import Optional

import httpx

logger = logging.getLogger("taskbot.scribe.replier")

TWILIO_API_BASE = "https://api.twilio.com/2010-04-01"


class ReplyError(Exception):
    """A reply could not be delivered."""
    pass


class BaseReplier(ABC):
    """Sends text to a channel address."""

    @abstractmethod
    async def send(self, to: str, text: str) -> None:
        pass


class ConsoleReplier(BaseReplier):
    """Logs replies instead of sending them."""

    async def send(self, to: str, text: str) -> None:
        logger.info("Reply to %s:\n%s", to, text)


class TwilioReplier(BaseReplier):
    """Sends replies via the Twilio Messages API."""

    def __init__(
        self,
        account_sid: str,
        auth_token: str,
        from_number: str,
        timeout: float = 10.0,
        api_base: str = TWILIO_API_BASE,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self._account_sid = account_sid
        self._auth_token = auth_token
        self._from_number = from_number
        self._timeout = timeout
        self._url = f"{api_base}/Accounts/{account_sid}/Messages.json"
        self._transport = transport

    @property
    def is_configured(self) -> bool:
        return bool(self._account_sid and self._auth_token and self._from_number)

    async def send(self, to: str, text: str) -> None:
        if not self.is_configured:
            raise ReplyError("Twilio credentials are not configured")

        try:
            async with httpx.AsyncClient(
                timeout=httpx.Timeout(self._timeout),
                auth=(self._account_sid, self._auth_token),
                transport=self._transport,
            ) as client:
                response = await client.post(
                    self._url,
                    data={"From": self._from_number, "To": to, "Body": text},
                )
                response.raise_for_status()
        except httpx.HTTPError as e:
            raise ReplyError(f"Failed to send WhatsApp message to {to}: {e}") from e

        logger.info("Reply sent to %s (%d chars)", to, len(text))


def build_replier(config) -> BaseReplier:
    """Replier for ``config.scribe.reply_channel``."""
    if config.scribe.reply_channel == "twilio":
        return TwilioReplier(
            account_sid=config.twilio.account_sid,
            auth_token=config.twilio.auth_token,
            from_number=config.twilio.from_number,
        )
    return ConsoleReplier()
