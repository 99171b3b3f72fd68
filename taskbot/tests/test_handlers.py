"""Tests for webhook handlers"""

import pytest

OWNER = "whatsapp:+15550001111"


class TestTwilioHandler:
    """Tests for TwilioHandler"""

    @pytest.fixture
    def handler(self):
        from taskbot.scribe.handlers import TwilioHandler
        return TwilioHandler(allowed_senders=[OWNER])

    def test_parse_form(self, handler):
        form = handler.parse_form(b"From=whatsapp%3A%2B15550001111&Body=Buy+milk%2C+call+mom&NumMedia=0")

        assert form == {"From": OWNER, "Body": "Buy milk, call mom", "NumMedia": "0"}

    def test_parse_text_message(self, handler):
        message = handler.parse_event({"From": OWNER, "Body": "  Buy milk  ", "MessageSid": "SM1", "NumMedia": "0"})

        assert message.text == "Buy milk"
        assert message.sender == OWNER
        assert message.correlation_id == "SM1"
        assert handler.source_name == "whatsapp"

    @pytest.mark.parametrize("form", [
        {"From": OWNER, "Body": "", "NumMedia": "1"},
        {"From": OWNER, "Body": "look at this", "NumMedia": "2"},
        {"From": OWNER, "Body": "   "},
        {"Body": "Buy milk"},
    ])
    def test_ignored_events(self, handler, form):
        assert handler.parse_event(form) is None

    def test_bad_num_media_treated_as_text(self, handler):
        message = handler.parse_event({"From": OWNER, "Body": "Buy milk", "NumMedia": "x"})

        assert message.text == "Buy milk"

    def test_should_process(self, handler):
        from taskbot.common.schemas import InboundMessage

        assert handler.should_process(InboundMessage(text="Buy milk", sender=OWNER))
        assert not handler.should_process(InboundMessage(text="Buy milk", sender="whatsapp:+1999"))

    def test_open_allow_list(self):
        from taskbot.common.schemas import InboundMessage
        from taskbot.scribe.handlers import TwilioHandler

        handler = TwilioHandler()

        assert handler.should_process(InboundMessage(text="Buy milk", sender="whatsapp:+1999"))
