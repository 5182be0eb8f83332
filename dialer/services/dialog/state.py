"""Turn state carried in callback URL query parameters."""
from typing import Dict, Mapping, Optional

from pydantic import BaseModel, ConfigDict

_TRUE_VALUES = {"true", "1", "yes"}


def _flag(value: Optional[str]) -> bool:
    return (value or "").strip().lower() in _TRUE_VALUES


def _count(value: Optional[str]) -> int:
    try:
        return max(0, int(value)) if value is not None else 0
    except ValueError:
        return 0


class DialogTurnState(BaseModel):
    """
    Everything one dialog turn knows about the call.

    Twilio keeps no session for us, so this travels in the query string of
    every callback URL and is rebuilt on every request. Query parameter
    names are a wire format: changing them breaks calls already in flight.
    """

    model_config = ConfigDict(frozen=True)

    prospect_id: Optional[str] = None
    agent_config_id: Optional[str] = None
    user_id: Optional[str] = None
    voice_id: Optional[str] = None
    call_log_id: Optional[str] = None
    conversation_count: int = 0
    bypass_validation: bool = False
    debug_mode: bool = False

    @property
    def debug(self) -> bool:
        """Bypassing validation implies debug mode."""
        return self.debug_mode or self.bypass_validation

    @classmethod
    def from_query(cls, params: Mapping[str, str]) -> "DialogTurnState":
        return cls(
            prospect_id=params.get("prospect_id") or None,
            agent_config_id=params.get("agent_config_id") or None,
            user_id=params.get("user_id") or None,
            voice_id=params.get("voice_id") or None,
            call_log_id=params.get("call_log_id") or None,
            conversation_count=_count(params.get("conversation_count")),
            bypass_validation=_flag(params.get("bypass_validation")),
            debug_mode=_flag(params.get("debug_mode")),
        )

    def to_query(self) -> Dict[str, str]:
        params = {
            "prospect_id": self.prospect_id,
            "agent_config_id": self.agent_config_id,
            "user_id": self.user_id,
            "voice_id": self.voice_id,
            "call_log_id": self.call_log_id,
            "conversation_count": str(self.conversation_count),
        }
        query = {key: value for key, value in params.items() if value is not None}
        if self.bypass_validation:
            query["bypass_validation"] = "true"
        if self.debug_mode:
            query["debug_mode"] = "true"
        return query

    def next_turn(self) -> "DialogTurnState":
        return self.model_copy(update={"conversation_count": self.conversation_count + 1})
