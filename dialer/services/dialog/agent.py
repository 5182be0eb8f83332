"""LLM dialog agent."""
import logging
from dataclasses import dataclass
from typing import Optional

from openai import AsyncOpenAI

from dialer.core.config import Settings, settings as default_settings
from dialer.db.models import AgentConfig, Prospect
from dialer.services.dialog.classifier import Interest, classify_interest, limit_sentences
from dialer.services.dialog.constants import (
    FALLBACK_NEGATIVE_REPLY,
    FALLBACK_POSITIVE_REPLY,
    FALLBACK_UNCLEAR_REPLY,
)
from dialer.services.dialog.prompt import get_system_prompt, get_user_prompt

logger = logging.getLogger(__name__)

MAX_REPLY_SENTENCES = 4


@dataclass
class DialogReply:
    text: str
    from_fallback: bool = False


def rule_based_reply(caller_input: str, brokerage_name: str) -> str:
    """Deterministic reply used when the model is unavailable."""
    interest = classify_interest(caller_input)
    if interest is Interest.POSITIVE:
        return FALLBACK_POSITIVE_REPLY
    if interest is Interest.NEGATIVE:
        return FALLBACK_NEGATIVE_REPLY.format(brokerage=brokerage_name)
    return FALLBACK_UNCLEAR_REPLY


class DialogAgent:
    """Generates the agent's next spoken line."""

    def __init__(self, settings: Optional[Settings] = None, client: Optional[AsyncOpenAI] = None):
        self.settings = settings or default_settings
        self.client = client or AsyncOpenAI(api_key=self.settings.openai_api_key)

    async def generate_reply(
        self,
        caller_input: str,
        turn: int,
        agent_config: Optional[AgentConfig] = None,
        prospect: Optional[Prospect] = None,
    ) -> DialogReply:
        """
        Ask the model for a short reply to the caller.

        Any failure talking to the model falls back to a rule-based reply so
        the call keeps going.
        """
        system_prompt = get_system_prompt(agent_config, prospect, self.settings.brokerage_name)
        user_prompt = get_user_prompt(caller_input, turn, self.settings.max_conversation_turns)

        model = (agent_config.llm_model if agent_config else None) or self.settings.openai_model
        temperature = agent_config.temperature if agent_config and agent_config.temperature is not None else 0.7

        logger.info(f"[AGENT INPUT] Turn: {turn}, Model: {model}, Caller said: '{caller_input[:200]}'")

        try:
            response = await self.client.chat.completions.create(
                model=model,
                messages=[
                    {"role": "system", "content": system_prompt},
                    {"role": "user", "content": user_prompt},
                ],
                temperature=temperature,
                max_tokens=150,
            )
            content = (response.choices[0].message.content or "").strip()
            if not content:
                raise ValueError("Model returned an empty reply")
        except Exception as e:
            logger.error(
                f"[AGENT] Completion failed, using rule-based reply - "
                f"Error: {type(e).__name__}: {str(e)}"
            )
            return DialogReply(
                text=rule_based_reply(caller_input, self.settings.brokerage_name),
                from_fallback=True,
            )

        reply = limit_sentences(content, MAX_REPLY_SENTENCES)
        logger.info(f"[AGENT OUTPUT] Reply: '{reply}'")
        return DialogReply(text=reply)
