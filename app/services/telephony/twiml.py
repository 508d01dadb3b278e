"""TwiML call-control documents and the callback URLs embedded in them."""
from typing import Optional

VOICE = "alice"


def escape_xml(text: str) -> str:
    """Escape XML special characters for element text and attribute values."""
    return (
        text.replace("&", "&amp;")
        .replace("<", "&lt;")
        .replace(">", "&gt;")
        .replace('"', "&quot;")
        .replace("'", "&apos;")
    )


def build_twiml(*verbs: str) -> str:
    """Wrap verbs in a TwiML <Response> document."""
    if not verbs:
        return '<?xml version="1.0" encoding="UTF-8"?>\n<Response/>'
    body = "\n    ".join(verbs)
    return f"""<?xml version="1.0" encoding="UTF-8"?>
<Response>
    {body}
</Response>"""


def say(text: str) -> str:
    return f'<Say voice="{VOICE}">{escape_xml(text)}</Say>'


def play(url: str, loop: Optional[int] = None) -> str:
    loop_attr = f' loop="{loop}"' if loop is not None else ""
    return f"<Play{loop_attr}>{escape_xml(url)}</Play>"


def record(action_url: str, max_length: int = 30, timeout: int = 3) -> str:
    return (
        f'<Record maxLength="{max_length}" timeout="{timeout}" playBeep="false" '
        f'action="{escape_xml(action_url)}" />'
    )


def hangup() -> str:
    return "<Hangup/>"


# ---------------------------------------------------------------------------
# URLs
# ---------------------------------------------------------------------------


def respond_url(base_url: str, agent_id: str, call_id: str) -> str:
    """Where Twilio posts each recorded turn."""
    return f"{base_url}/webhooks/voice/{agent_id}/respond?callId={call_id}"


def callback_url(base_url: str, agent_id: str, audio_id: str, call_id: str) -> str:
    """Where the live call is redirected once a reply is ready."""
    return f"{base_url}/webhooks/voice/{agent_id}/callback?audioId={audio_id}&callId={call_id}"


def audio_url(base_url: str, audio_id: str) -> str:
    return f"{base_url}/audio/{audio_id}"


# ---------------------------------------------------------------------------
# Documents
# ---------------------------------------------------------------------------


class TwimlBuilder:
    """Builds the documents used across the call flow."""

    def __init__(self, record_max_length: int = 30, record_timeout: int = 3):
        self.record_max_length = record_max_length
        self.record_timeout = record_timeout

    def _record_turn(self, base_url: str, agent_id: str, call_id: str) -> list:
        # Say goodbye and hang up if Twilio falls through the Record verb
        return [
            record(
                respond_url(base_url, agent_id, call_id),
                max_length=self.record_max_length,
                timeout=self.record_timeout,
            ),
            say("Goodbye!"),
            hangup(),
        ]

    def empty(self) -> str:
        return build_twiml()

    def speak_and_record(self, text: str, base_url: str, agent_id: str, call_id: str) -> str:
        """Say ``text`` then record the caller's next utterance."""
        return build_twiml(say(text), *self._record_turn(base_url, agent_id, call_id))

    def greeting(self, agent_name: str, base_url: str, agent_id: str, call_id: str) -> str:
        text = f"Hello! You've reached {agent_name}. How can I help you today?"
        return self.speak_and_record(text, base_url, agent_id, call_id)

    def reprompt(self, base_url: str, agent_id: str, call_id: str) -> str:
        return self.speak_and_record(
            "I didn't catch that. Could you please repeat?", base_url, agent_id, call_id
        )

    def recovery(self, base_url: str, agent_id: str, call_id: str) -> str:
        return self.speak_and_record(
            "I'm sorry, I had trouble processing that. Could you try again?",
            base_url,
            agent_id,
            call_id,
        )

    def hold(self, hold_music_url: str) -> str:
        """Keeps the caller on the line until the pipeline redirects the call."""
        return build_twiml(say("One moment please."), play(hold_music_url, loop=0))

    def play_and_record(self, base_url: str, agent_id: str, audio_id: str, call_id: str) -> str:
        return build_twiml(
            play(audio_url(base_url, audio_id)),
            *self._record_turn(base_url, agent_id, call_id),
        )

    def speak_and_hangup(self, text: str) -> str:
        return build_twiml(say(text), hangup())

    def closing(self) -> str:
        return self.speak_and_hangup("Thank you for the conversation. Goodbye!")

    def agent_unavailable(self) -> str:
        return self.speak_and_hangup("Sorry, this agent is not available.")

    def giving_up(self) -> str:
        return self.speak_and_hangup(
            "I'm sorry, we're having technical difficulties. Please call again later. Goodbye!"
        )

    def error(self) -> str:
        return self.speak_and_hangup("Something went wrong. Goodbye!")
