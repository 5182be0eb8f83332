"""Unit tests for dialog state, heuristics and the LLM agent."""
from unittest.mock import AsyncMock

import pytest

from dialer.services.dialog.agent import DialogAgent, rule_based_reply
from dialer.services.dialog.classifier import (
    Interest,
    classify_interest,
    extract_caller_input,
    is_closing_statement,
    limit_sentences,
    normalize_dtmf,
)
from dialer.services.dialog.constants import (
    FALLBACK_NEGATIVE_REPLY,
    FALLBACK_POSITIVE_REPLY,
    FALLBACK_UNCLEAR_REPLY,
)
from dialer.services.dialog.state import DialogTurnState
from conftest import make_completion


class TestDialogTurnState:
    """Test turn state round trips through query parameters."""

    def test_round_trip(self):
        state = DialogTurnState(
            prospect_id="p1",
            agent_config_id="a1",
            user_id="u1",
            voice_id="v1",
            call_log_id="c1",
            conversation_count=2,
            bypass_validation=True,
        )

        assert DialogTurnState.from_query(state.to_query()) == state

    def test_to_query_omits_unset_values(self):
        query = DialogTurnState(prospect_id="p1").to_query()

        assert query == {"prospect_id": "p1", "conversation_count": "0"}

    def test_next_turn_increments_by_one(self):
        state = DialogTurnState(prospect_id="p1", conversation_count=1)

        following = state.next_turn()

        assert following.conversation_count == 2
        assert following.prospect_id == "p1"
        assert state.conversation_count == 1

    def test_frozen(self):
        state = DialogTurnState()

        with pytest.raises(Exception):
            state.conversation_count = 5

    @pytest.mark.parametrize("raw, expected", [(None, 0), ("3", 3), ("-2", 0), ("abc", 0)])
    def test_conversation_count_parsing(self, raw, expected):
        params = {} if raw is None else {"conversation_count": raw}

        assert DialogTurnState.from_query(params).conversation_count == expected

    def test_bypass_implies_debug(self):
        assert DialogTurnState.from_query({"bypass_validation": "true"}).debug is True
        assert DialogTurnState.from_query({"debug_mode": "true"}).debug is True
        assert DialogTurnState.from_query({"debug_mode": "false"}).debug is False


class TestClassifier:
    """Test keyword heuristics."""

    @pytest.mark.parametrize(
        "text, expected",
        [
            ("Yes, I'd like that", Interest.POSITIVE),
            ("sure, tell me more", Interest.POSITIVE),
            ("I'm not interested", Interest.NEGATIVE),
            ("No thanks", Interest.NEGATIVE),
            ("I'm busy right now", Interest.NEGATIVE),
            ("I'm not sure", Interest.UNCLEAR),
            ("maybe", Interest.UNCLEAR),
            ("what's this about", Interest.UNCLEAR),
            ("I know the area well", Interest.UNCLEAR),
        ],
    )
    def test_classify_interest(self, text, expected):
        assert classify_interest(text) is expected

    def test_interested_values(self):
        assert Interest.POSITIVE.interested is True
        assert Interest.NEGATIVE.interested is False
        assert Interest.UNCLEAR.interested is None

    @pytest.mark.parametrize(
        "digits, phrase",
        [("1", "yes, I'm interested"), ("2", "no, I'm not interested"), ("7", "pressed 7")],
    )
    def test_normalize_dtmf(self, digits, phrase):
        assert normalize_dtmf(digits) == phrase

    def test_extract_prefers_speech(self):
        assert extract_caller_input({"SpeechResult": " Hello ", "Digits": "1"}) == "Hello"
        assert extract_caller_input({"Digits": "2"}) == "no, I'm not interested"
        assert extract_caller_input({"SpeechResult": "", "Digits": ""}) is None
        assert extract_caller_input({}) is None

    @pytest.mark.parametrize(
        "reply, closing",
        [
            ("Thank you for your time. Goodbye!", True),
            ("Have a great day!", True),
            ("Would you like to speak with an agent?", False),
            ("Maybe we can talk about the neighborhood.", False),
        ],
    )
    def test_is_closing_statement(self, reply, closing):
        assert is_closing_statement(reply) is closing

    def test_limit_sentences(self):
        text = "One. Two! Three? Four. Five."

        assert limit_sentences(text, 4) == "One. Two! Three? Four."
        assert limit_sentences("Just one", 4) == "Just one"


class TestRuleBasedReply:
    """Test the fallback replies."""

    def test_positive(self):
        assert rule_based_reply("yes please", "Test Realty") == FALLBACK_POSITIVE_REPLY

    def test_negative_names_brokerage(self):
        reply = rule_based_reply("not interested", "Test Realty")

        assert reply == FALLBACK_NEGATIVE_REPLY.format(brokerage="Test Realty")
        assert "Test Realty" in reply

    def test_unclear(self):
        assert rule_based_reply("hmm", "Test Realty") == FALLBACK_UNCLEAR_REPLY


class TestDialogAgent:
    """Test the LLM agent."""

    @pytest.mark.asyncio
    async def test_generate_reply(self, dialog_agent, mock_openai, seeded):
        reply = await dialog_agent.generate_reply(
            "Yes, tell me more", 0, seeded.agent_config, seeded.prospect
        )

        assert reply.from_fallback is False
        assert reply.text == "That's great to hear. Are you thinking of selling this year?"

        kwargs = mock_openai.chat.completions.create.call_args.kwargs
        assert kwargs["model"] == "gpt-4o-mini"
        system_prompt = kwargs["messages"][0]["content"]
        assert system_prompt.startswith("Hi, I'm Alex.")
        assert "Jamie Rivera" in system_prompt
        assert "no more than 4 sentences" in system_prompt
        assert "Yes, tell me more" in kwargs["messages"][1]["content"]

    @pytest.mark.asyncio
    async def test_reply_trimmed_to_four_sentences(self, test_settings, mock_openai):
        mock_openai.chat.completions.create = AsyncMock(
            return_value=make_completion("One. Two. Three. Four. Five. Six.")
        )
        agent = DialogAgent(settings=test_settings, client=mock_openai)

        reply = await agent.generate_reply("hello", 0)

        assert reply.text == "One. Two. Three. Four."

    @pytest.mark.asyncio
    async def test_model_failure_falls_back(self, test_settings, mock_openai):
        mock_openai.chat.completions.create = AsyncMock(side_effect=RuntimeError("upstream down"))
        agent = DialogAgent(settings=test_settings, client=mock_openai)

        reply = await agent.generate_reply("not interested", 0)

        assert reply.from_fallback is True
        assert reply.text == FALLBACK_NEGATIVE_REPLY.format(brokerage="Test Realty")

    @pytest.mark.asyncio
    async def test_empty_model_reply_falls_back(self, test_settings, mock_openai):
        mock_openai.chat.completions.create = AsyncMock(return_value=make_completion(""))
        agent = DialogAgent(settings=test_settings, client=mock_openai)

        reply = await agent.generate_reply("yes", 0)

        assert reply.from_fallback is True
        assert reply.text == FALLBACK_POSITIVE_REPLY
