"""Building URLs for OpenAI-compatible APIs."""

from typing import Optional
from urllib.parse import urlparse


def build_url(base_url: str, endpoint: str) -> Optional[str]:
    """Join an OpenAI-compatible base URL and an endpoint path.

    The base URL is normalized to end with ``/v1/``, so both
    ``https://api.openai.com`` and ``https://api.openai.com/v1`` work.

    Args:
        base_url: Base URL of the server
        endpoint: Endpoint path, e.g. ``audio/transcriptions``

    Returns:
        Full URL, or None if either part is empty or the result is not a URL
    """
    normalized_base = base_url.strip() if base_url else ""
    if not normalized_base or not endpoint:
        return None

    if normalized_base.endswith("/v1"):
        normalized_base += "/"
    elif not normalized_base.endswith("/v1/"):
        normalized_base += "v1/" if normalized_base.endswith("/") else "/v1/"

    url = normalized_base + endpoint.lstrip("/")
    if not is_valid_base_url(url):
        return None
    return url


def is_valid_base_url(base_url: str) -> bool:
    """Check that a base URL has a scheme and a host."""
    if not base_url:
        return False
    parsed = urlparse(base_url)
    return bool(parsed.scheme) and bool(parsed.netloc)
