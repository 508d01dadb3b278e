"""Unit tests for TwiML documents."""
import xml.etree.ElementTree as ET

from app.services.telephony.twiml import (
    TwimlBuilder,
    build_twiml,
    callback_url,
    escape_xml,
    respond_url,
)

BASE = "https://voice.example.com"


def verbs(document: str):
    root = ET.fromstring(document)
    assert root.tag == "Response"
    return [child.tag for child in root]


class TestTwimlPrimitives:
    """Test low-level helpers."""

    def test_escape_xml(self):
        assert escape_xml('a & b < c > "d" \'e\'') == "a &amp; b &lt; c &gt; &quot;d&quot; &apos;e&apos;"

    def test_empty_document(self):
        assert verbs(build_twiml()) == []

    def test_urls(self):
        assert respond_url(BASE, "agent-1", "call-1") == (
            "https://voice.example.com/webhooks/voice/agent-1/respond?callId=call-1"
        )
        assert callback_url(BASE, "agent-1", "audio-1", "call-1") == (
            "https://voice.example.com/webhooks/voice/agent-1/callback?audioId=audio-1&callId=call-1"
        )


class TestTwimlBuilder:
    """Test the call-flow documents."""

    def setup_method(self):
        self.builder = TwimlBuilder(record_max_length=30, record_timeout=3)

    def test_greeting_records_first_turn(self):
        document = self.builder.greeting("Acme & Sons", BASE, "agent-1", "call-1")
        root = ET.fromstring(document)

        assert verbs(document) == ["Say", "Record", "Say", "Hangup"]
        assert root[0].text == "Hello! You've reached Acme & Sons. How can I help you today?"
        record = root[1]
        assert record.get("action") == respond_url(BASE, "agent-1", "call-1")
        assert record.get("maxLength") == "30"
        assert record.get("timeout") == "3"
        assert record.get("playBeep") == "false"

    def test_hold_loops_music(self):
        document = self.builder.hold("https://music.example.com/hold.mp3")
        root = ET.fromstring(document)

        assert verbs(document) == ["Say", "Play"]
        assert root[1].get("loop") == "0"
        assert root[1].text == "https://music.example.com/hold.mp3"

    def test_play_and_record(self):
        document = self.builder.play_and_record(BASE, "agent-1", "audio-1", "call-1")
        root = ET.fromstring(document)

        assert verbs(document) == ["Play", "Record", "Say", "Hangup"]
        assert root[0].text == f"{BASE}/audio/audio-1"

    def test_reprompt_and_recovery_record_again(self):
        for document in (
            self.builder.reprompt(BASE, "agent-1", "call-1"),
            self.builder.recovery(BASE, "agent-1", "call-1"),
        ):
            assert "Record" in verbs(document)

    def test_terminal_documents_hang_up(self):
        for document in (
            self.builder.closing(),
            self.builder.agent_unavailable(),
            self.builder.giving_up(),
            self.builder.error(),
        ):
            assert verbs(document) == ["Say", "Hangup"]

    def test_action_url_is_escaped(self):
        document = self.builder.play_and_record(BASE, "agent-1", "audio-1", "call-1")
        assert "&amp;" not in respond_url(BASE, "agent-1", "call-1")
        # Parsing would fail on a raw ampersand
        ET.fromstring(self.builder.speak_and_record("Hi & bye", BASE, "agent-1", "call-1"))
        ET.fromstring(document)
