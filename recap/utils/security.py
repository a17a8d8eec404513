"""Handling of API keys before they reach headers or logs."""

import re

_CONTROL_CHARS = re.compile(r"[\x00-\x1f\x7f]")


def sanitize_api_key(key: str) -> str:
    """Strip whitespace and control characters so the key is safe in a header."""
    return _CONTROL_CHARS.sub("", key.strip())


def mask_api_key(key: str) -> str:
    """Mask an API key for logging."""
    if len(key) <= 8:
        return "***"
    return f"{key[:4]}***{key[-4:]}"
