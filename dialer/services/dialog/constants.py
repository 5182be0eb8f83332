"""Phrases and keyword lists for the prospect dialog."""

# Caller input that declines. Checked before anything else so
# "not interested" is never read as "interested".
NEGATIVE_INDICATORS = [
    "not interested",
    "no thanks",
    "no thank you",
    "don't call",
    "stop calling",
    "remove me",
    "take me off",
    "busy",
    "later",
    "no",
    "nope",
]

# Caller input that is neither yes nor no.
UNCLEAR_INDICATORS = [
    "not sure",
    "maybe",
    "i don't know",
    "don't know",
    "depends",
]

POSITIVE_INDICATORS = [
    "yes",
    "yeah",
    "yep",
    "sure",
    "interested",
    "tell me more",
    "learn more",
    "okay",
    "ok",
    "sounds good",
    "absolutely",
]

# Agent replies containing any of these end the call.
CLOSING_INDICATORS = [
    "goodbye",
    "good bye",
    "bye",
    "have a great day",
    "have a good day",
    "have a nice day",
    "thank you for your time",
    "thanks for your time",
    "take care",
]

DTMF_PHRASES = {
    "1": "yes, I'm interested",
    "2": "no, I'm not interested",
}

DEFAULT_GREETING = (
    "Hello, this is an assistant calling from {brokerage}. "
    "I'm reaching out to see if you've considered selling your property. "
    "Would you be interested in speaking with one of our agents?"
)

TRIAL_ACCOUNT_NOTICE = "This call is being made from a trial account."

REPROMPT = "I'm sorry, I didn't catch that. Could you say that again, or press 1 for yes and 2 for no?"

CLOSING_LINE = "Thank you for your time. Goodbye."

APOLOGY = (
    "I'm sorry, there was an error processing your response. "
    "Thank you for your time. Goodbye."
)

FALLBACK_POSITIVE_REPLY = (
    "Great! I'll have an agent reach out to you soon to discuss your real estate needs. "
    "They'll call you at this number. Thank you for your time today."
)

FALLBACK_NEGATIVE_REPLY = (
    "I understand. Thank you for taking the time to speak with me today. "
    "If you change your mind or have any real estate questions in the future, "
    "please don't hesitate to reach out to {brokerage}. Have a great day!"
)

FALLBACK_UNCLEAR_REPLY = (
    "Thanks for that. Just so I understand, would you be open to a quick "
    "conversation with one of our agents about your property?"
)

OUTCOME_SUMMARIES = {
    "positive": "Prospect expressed interest in speaking with an agent.",
    "negative": "Prospect declined interest in speaking with an agent.",
    "unclear": "Unclear if prospect is interested; follow-up recommended.",
}

OUTCOME_NOTE_PREFIXES = {
    "positive": "INTERESTED",
    "negative": "NOT INTERESTED",
    "unclear": "RESPONSE UNCLEAR",
}

CALL_ERROR_MESSAGE = "We're sorry, an application error occurred. Goodbye."
