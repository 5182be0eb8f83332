"""
TwiML call-control documents.

Verbs are plain node objects collected into a tree; ``VoiceResponse`` is the
imperative builder over that tree and ``serialize()`` is the only place that
emits markup. Nesting rules are enforced while building:

- ``gather_input`` opens a scope in which only ``say``, ``play`` and
  ``pause`` exist (the callback receives a ``GatherScope``).
- Calling a top-level verb on the response while a gather scope is open
  raises ``TwiMLNestingError``.
"""
import logging
import re
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Mapping, Optional
from urllib.parse import urlencode

logger = logging.getLogger(__name__)

FALLBACK_UTTERANCE = "I'm sorry, I had a small problem with my script."

# repr() of an arbitrary object, e.g. "<foo.Bar object at 0x7f...>"
_OBJECT_REPR = re.compile(r"<[\w.]+ object at 0x[0-9a-fA-F]+>")


class TwiMLNestingError(RuntimeError):
    """A verb was used where TwiML does not allow it."""


def escape_xml(text: str) -> str:
    """Escape XML special characters."""
    return (
        text.replace("&", "&amp;")
        .replace("<", "&lt;")
        .replace(">", "&gt;")
        .replace('"', "&quot;")
        .replace("'", "&apos;")
    )


def build_callback_url(base_url: str, params: Mapping[str, Optional[str]]) -> str:
    """
    Build a callback URL with percent-encoded query parameters.

    ``None`` values are omitted. The ``&`` separators become ``&amp;`` when
    the URL is serialized into a document, on top of this URL encoding.
    """
    query = urlencode({key: value for key, value in params.items() if value is not None})
    if not query:
        return base_url
    return f"{base_url}?{query}"


def _camel(name: str) -> str:
    head, *rest = name.split("_")
    return head + "".join(part[:1].upper() + part[1:] for part in rest)


def _attr_value(value: Any) -> str:
    if isinstance(value, bool):
        return "true" if value else "false"
    return str(value)


def _clean_attributes(options: Mapping[str, Any]) -> Dict[str, str]:
    return {_camel(key): _attr_value(value) for key, value in options.items() if value is not None}


def safe_utterance(text: Any) -> str:
    """Text fit to be spoken; anything else becomes a fallback utterance."""
    if not isinstance(text, str):
        logger.error(
            f"[TWIML] <Say> received a {type(text).__name__} instead of text. Using fallback."
        )
        return FALLBACK_UTTERANCE
    stripped = text.strip()
    if not stripped or _OBJECT_REPR.search(stripped):
        logger.error(f"[TWIML] <Say> received unusable text {stripped[:60]!r}. Using fallback.")
        return FALLBACK_UTTERANCE
    return stripped


@dataclass
class Verb:
    """One TwiML element."""

    name: str
    attributes: Dict[str, str] = field(default_factory=dict)
    text: Optional[str] = None
    children: List["Verb"] = field(default_factory=list)

    def render(self) -> str:
        attrs = "".join(f' {key}="{escape_xml(value)}"' for key, value in self.attributes.items())
        if self.text is None and not self.children:
            return f"<{self.name}{attrs}/>"
        inner = escape_xml(self.text) if self.text is not None else ""
        inner += "".join(child.render() for child in self.children)
        return f"<{self.name}{attrs}>{inner}</{self.name}>"


def _say(text: Any, options: Mapping[str, Any]) -> Verb:
    return Verb("Say", _clean_attributes(options), text=safe_utterance(text))


def _play(url: str, options: Mapping[str, Any]) -> Verb:
    if not url or not url.strip():
        raise ValueError("<Play> URL cannot be empty")
    return Verb("Play", _clean_attributes(options), text=url.strip())


def _pause(duration_seconds: int) -> Verb:
    return Verb("Pause", {"length": str(max(1, int(duration_seconds)))})


class GatherScope:
    """Builder handed to a ``gather_input`` callback; only nestable verbs exist here."""

    def __init__(self, node: Verb, default_voice: Optional[str]):
        self._node = node
        self._default_voice = default_voice

    def say(self, text: Any, **options: Any) -> "GatherScope":
        options.setdefault("voice", self._default_voice)
        self._node.children.append(_say(text, options))
        return self

    def play(self, url: str, **options: Any) -> "GatherScope":
        self._node.children.append(_play(url, options))
        return self

    def pause(self, duration_seconds: int = 1) -> "GatherScope":
        self._node.children.append(_pause(duration_seconds))
        return self


class VoiceResponse:
    """Imperative builder for a ``<Response>`` document."""

    def __init__(self, default_voice: Optional[str] = None):
        self._default_voice = default_voice
        self._root = Verb("Response")
        # Open containers, root first.
        self._stack: List[Verb] = [self._root]

    @property
    def verbs(self) -> List[Verb]:
        return self._root.children

    def _append_top_level(self, verb: Verb) -> "VoiceResponse":
        if len(self._stack) > 1:
            raise TwiMLNestingError(
                f"<{verb.name}> cannot be used inside <{self._stack[-1].name}>"
            )
        self._root.children.append(verb)
        return self

    def say(self, text: Any, **options: Any) -> "VoiceResponse":
        options.setdefault("voice", self._default_voice)
        return self._append_top_level(_say(text, options))

    def play(self, url: str, **options: Any) -> "VoiceResponse":
        return self._append_top_level(_play(url, options))

    def pause(self, duration_seconds: int = 1) -> "VoiceResponse":
        return self._append_top_level(_pause(duration_seconds))

    def hang_up(self) -> "VoiceResponse":
        return self._append_top_level(Verb("Hangup"))

    def redirect(self, url: str, method: str = "POST") -> "VoiceResponse":
        if not url or not url.strip():
            raise ValueError("<Redirect> URL cannot be empty")
        return self._append_top_level(Verb("Redirect", {"method": method}, text=url.strip()))

    def gather_input(
        self,
        action: str,
        nested: Optional[Callable[[GatherScope], Any]] = None,
        **options: Any,
    ) -> "VoiceResponse":
        """
        Add a ``<Gather>`` that posts speech or keypad input to ``action``.

        ``nested`` is called with a ``GatherScope`` for the prompt spoken
        while listening.
        """
        if not action:
            raise ValueError("<Gather> requires an action URL")
        attributes = {"input": "speech dtmf", "method": "POST"}
        attributes.update(options)
        attributes["action"] = action
        node = Verb("Gather", _clean_attributes(attributes))
        self._append_top_level(node)
        if nested is not None:
            self._stack.append(node)
            try:
                nested(GatherScope(node, self._default_voice))
            finally:
                if self._stack[-1] is node:
                    self._stack.pop()
        return self

    def connect_stream(self, url: str, parameters: Optional[Mapping[str, Optional[str]]] = None) -> "VoiceResponse":
        """Hand the call to a bidirectional media stream (``<Connect><Stream>``)."""
        stream = Verb("Stream", {"url": url})
        for name, value in (parameters or {}).items():
            if value is not None:
                stream.children.append(Verb("Parameter", {"name": name, "value": str(value)}))
        return self._append_top_level(Verb("Connect", children=[stream]))

    def serialize(self) -> str:
        """Render the document. Open scopes are reported and force-closed."""
        if len(self._stack) > 1:
            open_tags = ", ".join(verb.name for verb in self._stack[1:])
            logger.error(f"[TWIML] serialize() called with unclosed tags: {open_tags}. Closing them.")
            del self._stack[1:]
        return '<?xml version="1.0" encoding="UTF-8"?>' + self._root.render()

    def __str__(self) -> str:
        return self.serialize()


def error_document(message: str, voice: Optional[str] = None) -> str:
    """Spoken apology followed by a hang up."""
    response = VoiceResponse(default_voice=voice)
    response.say(message or "An application error occurred.")
    response.hang_up()
    return response.serialize()


def debug_document(info: Mapping[str, Any], voice: Optional[str] = None) -> str:
    """Speak back the received parameters, then hang up."""
    response = VoiceResponse(default_voice=voice)
    response.say("Debug mode active.")
    for key, value in info.items():
        if value is None:
            continue
        response.say(f"{key.replace('_', ' ')} is {value}")
        response.pause(1)
    response.hang_up()
    return response.serialize()


