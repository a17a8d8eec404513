"""Small helpers shared by the HTTP clients."""

from .security import sanitize_api_key, mask_api_key
from .url_builder import build_url, is_valid_base_url
from .locks import ReadWriteLock

__all__ = [
    "sanitize_api_key",
    "mask_api_key",
    "build_url",
    "is_valid_base_url",
    "ReadWriteLock",
]
