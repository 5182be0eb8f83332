"""Keyword heuristics over caller input and agent replies."""
import re
from enum import Enum
from typing import Iterable, Mapping, Optional

from dialer.services.dialog.constants import (
    CLOSING_INDICATORS,
    DTMF_PHRASES,
    NEGATIVE_INDICATORS,
    POSITIVE_INDICATORS,
    UNCLEAR_INDICATORS,
)

_SENTENCE_BREAK = re.compile(r"(?<=[.!?])\s+")


class Interest(str, Enum):
    POSITIVE = "positive"
    NEGATIVE = "negative"
    UNCLEAR = "unclear"

    @property
    def interested(self) -> Optional[bool]:
        if self is Interest.UNCLEAR:
            return None
        return self is Interest.POSITIVE


def _contains_any(text: str, phrases: Iterable[str]) -> bool:
    return any(re.search(rf"\b{re.escape(phrase)}\b", text) for phrase in phrases)


def normalize_dtmf(digits: str) -> str:
    """Map keypad input to a phrase the dialog understands."""
    digits = digits.strip()
    return DTMF_PHRASES.get(digits, f"pressed {digits}")


def extract_caller_input(form: Mapping[str, str]) -> Optional[str]:
    """Spoken transcript if there is one, else normalized keypad digits."""
    speech = (form.get("SpeechResult") or "").strip()
    if speech:
        return speech
    digits = (form.get("Digits") or "").strip()
    if digits:
        return normalize_dtmf(digits)
    return None


def classify_interest(caller_input: str) -> Interest:
    text = caller_input.lower()
    if _contains_any(text, NEGATIVE_INDICATORS):
        return Interest.NEGATIVE
    if _contains_any(text, UNCLEAR_INDICATORS):
        return Interest.UNCLEAR
    if _contains_any(text, POSITIVE_INDICATORS):
        return Interest.POSITIVE
    return Interest.UNCLEAR


def is_closing_statement(reply: str) -> bool:
    """
    Whether an agent reply wraps up the call.

    Keyword approximation; a paraphrased goodbye slips through, which the
    turn cap covers.
    """
    return _contains_any(reply.lower(), CLOSING_INDICATORS)


def split_sentences(text: str):
    return [part for part in _SENTENCE_BREAK.split(text.strip()) if part]


def limit_sentences(text: str, max_sentences: int = 4) -> str:
    return " ".join(split_sentences(text)[:max_sentences])
