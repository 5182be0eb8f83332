"""Unit tests for the TwiML builder."""
import re

import pytest

from dialer.services.telephony.twiml import (
    FALLBACK_UTTERANCE,
    TwiMLNestingError,
    VoiceResponse,
    build_callback_url,
    debug_document,
    error_document,
)


def tags(xml: str):
    """Opening and closing tag names in document order, self-closing tags skipped."""
    return re.findall(r"<(/?)(\w+)(?:\s[^>]*)?(?<!/)>", xml.split("?>", 1)[1])


def assert_balanced(xml: str):
    stack = []
    for closing, name in tags(xml):
        if closing:
            assert stack and stack[-1] == name, f"</{name}> closes {stack[-1:] or 'nothing'}"
            stack.pop()
        else:
            stack.append(name)
    assert stack == []


class TestVoiceResponse:
    """Test document building."""

    def test_say_escapes_text(self):
        response = VoiceResponse()
        response.say("a & b <c> \"d\" 'e'")

        xml = response.serialize()

        assert "a &amp; b &lt;c&gt; &quot;d&quot; &apos;e&apos;" in xml
        assert " & " not in xml

    def test_say_uses_default_voice(self):
        response = VoiceResponse(default_voice="Polly.Joanna-Neural")
        response.say("Hello")

        assert '<Say voice="Polly.Joanna-Neural">Hello</Say>' in response.serialize()

    def test_document_shape(self):
        response = VoiceResponse()
        response.say("Hello").pause(2).redirect("https://a.test/next").hang_up()

        xml = response.serialize()

        assert xml.startswith('<?xml version="1.0" encoding="UTF-8"?><Response>')
        assert '<Pause length="2"/>' in xml
        assert '<Redirect method="POST">https://a.test/next</Redirect>' in xml
        assert xml.endswith("<Hangup/></Response>")
        assert_balanced(xml)

    def test_gather_with_nested_say(self):
        response = VoiceResponse()
        response.gather_input(
            "https://a.test/respond",
            lambda gather: gather.say("Press 1 for yes").pause(1),
            timeout=5,
            speech_timeout="auto",
        )

        xml = response.serialize()

        assert '<Gather input="speech dtmf" method="POST" timeout="5" speechTimeout="auto" action="https://a.test/respond">' in xml
        assert "<Say>Press 1 for yes</Say><Pause length=\"1\"/></Gather>" in xml
        assert_balanced(xml)

    def test_boolean_attribute(self):
        response = VoiceResponse()
        response.gather_input("https://a.test/respond", action_on_empty_result=False)

        assert 'actionOnEmptyResult="false"' in response.serialize()

    def test_top_level_verb_inside_gather_raises(self):
        response = VoiceResponse()

        with pytest.raises(TwiMLNestingError):
            response.gather_input("https://a.test/respond", lambda gather: response.hang_up())

    def test_gather_inside_gather_raises(self):
        response = VoiceResponse()

        with pytest.raises(TwiMLNestingError):
            response.gather_input(
                "https://a.test/respond",
                lambda gather: response.gather_input("https://a.test/other"),
            )

    def test_builder_usable_after_nesting_error(self):
        response = VoiceResponse()
        with pytest.raises(TwiMLNestingError):
            response.gather_input("https://a.test/respond", lambda gather: response.redirect("https://a.test"))

        response.hang_up()

        assert_balanced(response.serialize())

    def test_serialize_with_open_scope_logs_and_closes(self, caplog):
        response = VoiceResponse()
        captured = {}

        def leave_open(gather):
            captured["xml"] = response.serialize()

        with caplog.at_level("ERROR"):
            response.gather_input("https://a.test/respond", leave_open)

        assert "unclosed tags: Gather" in caplog.text
        assert_balanced(captured["xml"])

    @pytest.mark.parametrize("bad", [{"text": "hi"}, 42, None, "<app.Reply object at 0x7f3a2b1c>", "   "])
    def test_say_rejects_non_text(self, bad):
        response = VoiceResponse()
        response.say(bad)

        assert f"<Say>{FALLBACK_UTTERANCE.replace(chr(39), '&apos;')}</Say>" in response.serialize()

    def test_empty_urls_rejected(self):
        response = VoiceResponse()

        with pytest.raises(ValueError):
            response.redirect("")
        with pytest.raises(ValueError):
            response.play(" ")
        with pytest.raises(ValueError):
            response.gather_input("")

    def test_connect_stream(self):
        response = VoiceResponse()
        response.connect_stream("wss://a.test/stream", {"agent_id": "agent-1", "voice_id": None})

        xml = response.serialize()

        assert '<Connect><Stream url="wss://a.test/stream"><Parameter name="agent_id" value="agent-1"/></Stream></Connect>' in xml
        assert "voice_id" not in xml


class TestCallbackUrl:
    """Test callback URL construction."""

    def test_encodes_params_and_skips_none(self):
        url = build_callback_url(
            "https://a.test/respond",
            {"prospect_id": "p 1", "voice_id": None, "conversation_count": "0"},
        )

        assert url == "https://a.test/respond?prospect_id=p+1&conversation_count=0"

    def test_ampersands_escaped_once_in_document(self):
        url = build_callback_url("https://a.test/respond", {"a": "1", "b": "x&y"})
        response = VoiceResponse()
        response.redirect(url)

        xml = response.serialize()

        assert "https://a.test/respond?a=1&amp;b=x%26y" in xml
        assert "&amp;amp;" not in xml

    def test_no_params(self):
        assert build_callback_url("https://a.test/respond", {}) == "https://a.test/respond"


class TestCannedDocuments:
    """Test the fixed documents."""

    def test_error_document_hangs_up(self):
        xml = error_document("Sorry, goodbye.")

        assert "<Say>Sorry, goodbye.</Say><Hangup/>" in xml

    def test_debug_document(self):
        xml = debug_document({"call sid": "CA123", "user id": None, "prospect id": "p1"})

        assert xml.count("<Say>") == 3
        assert "<Say>Debug mode active.</Say>" in xml
        assert "<Say>call sid is CA123</Say>" in xml
        assert "user id" not in xml
        assert xml.endswith("<Hangup/></Response>")
