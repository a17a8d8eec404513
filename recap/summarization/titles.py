"""Cleaning up titles generated by the LLM."""

import re
import string

MAX_TITLE_WORDS = 5

_QUOTES = "\"'“”‘’`"
_MARKDOWN = "#*_"
_STRIP_CHARS = string.punctuation + string.whitespace + "…–—«»"
_LABEL = re.compile(r"^(title|heading)\s*:", re.IGNORECASE)


def sanitize_title(raw_title: str) -> str:
    """Reduce a model reply to a short plain title.

    Removes quotes and markdown artifacts, a leading ``Title:`` or
    ``Heading:`` label, and keeps at most five words. Applying it to its
    own output returns the output unchanged.
    """
    cleaned = raw_title.translate({ord(c): None for c in _QUOTES + _MARKDOWN})
    cleaned = cleaned.replace("\r", " ").replace("\n", " ")
    cleaned = cleaned.strip(_STRIP_CHARS)

    label = _LABEL.match(cleaned)
    while label:
        cleaned = cleaned[label.end():].strip(_STRIP_CHARS)
        label = _LABEL.match(cleaned)

    words = cleaned.split()[:MAX_TITLE_WORDS]
    return " ".join(words).strip(_STRIP_CHARS)
