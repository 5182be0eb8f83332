"""Dialog prompt templates."""
from typing import Optional

from dialer.db.models import AgentConfig, Prospect


def _prospect_context(prospect: Optional[Prospect]) -> str:
    if prospect is None:
        return "No details are on file for this person."
    name = " ".join(part for part in (prospect.first_name, prospect.last_name) if part)
    lines = [f"Name: {name or 'unknown'}"]
    if prospect.property_address:
        lines.append(f"Property: {prospect.property_address}")
    if prospect.notes:
        lines.append(f"Notes: {prospect.notes}")
    return "\n".join(lines)


def get_system_prompt(
    agent_config: Optional[AgentConfig],
    prospect: Optional[Prospect],
    brokerage_name: str,
) -> str:
    """Compose the agent's own prompt with what we know about the prospect."""
    base_prompt = (agent_config.system_prompt if agent_config else "") or (
        f"You are a friendly real estate assistant calling on behalf of {brokerage_name}. "
        f"Your goal is to find out whether the homeowner would like to speak with an agent."
    )
    return f"""{base_prompt}

You are on a live phone call. The person you are speaking with:
{_prospect_context(prospect)}

When responding:
- Keep replies short and conversational, no more than 4 sentences
- Speak plainly; your words are read aloud by a text-to-speech voice
- Do not use lists, markdown, emojis or stage directions
- If the person is not interested, thank them politely and say goodbye
- If they agree to speak with an agent, confirm an agent will follow up and say goodbye"""


def get_user_prompt(caller_input: str, turn: int, max_turns: int) -> str:
    """Generate the per-turn prompt."""
    remaining = max(0, max_turns - turn - 1)
    wrap_up = ""
    if remaining == 0:
        wrap_up = "\nThis is the last exchange of the call: wrap up politely and say goodbye."
    return f"""The person just said: "{caller_input}"
This is exchange {turn + 1} of at most {max_turns}.{wrap_up}

Reply with exactly what you will say next, nothing else."""
