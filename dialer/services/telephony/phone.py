"""Phone number normalization."""
import re

E164_PATTERN = re.compile(r"^\+[1-9]\d{7,14}$")


class InvalidPhoneNumberError(ValueError):
    """Raised when a number cannot be expressed in E.164."""


def format_e164(raw_number: str, default_country_code: str = "1") -> str:
    """
    Normalize a dialable number to E.164.

    Non-digits are stripped. A bare 10-digit national number gets the
    default country code. Anything that still isn't ``+`` followed by
    8 to 15 digits is rejected.
    """
    digits = re.sub(r"\D", "", raw_number or "")
    if len(digits) == 10:
        digits = f"{default_country_code}{digits}"
    formatted = f"+{digits}"
    if not E164_PATTERN.match(formatted):
        raise InvalidPhoneNumberError(f"Invalid phone number format: {raw_number!r}")
    return formatted
