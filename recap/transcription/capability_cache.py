"""Per-server memory of whether streaming transcription works."""

import logging
from typing import Dict, Optional

from ..utils.locks import ReadWriteLock

logger = logging.getLogger(__name__)


class StreamingCapabilityCache:
    """Thread-safe map from server base URL to streaming support."""

    def __init__(self):
        self._supports: Dict[str, bool] = {}
        self._lock = ReadWriteLock()

    def get(self, server: str) -> Optional[bool]:
        """Return the cached support flag, or None if the server is unknown."""
        with self._lock.read_locked():
            return self._supports.get(server)

    def set(self, server: str, supports: bool) -> None:
        with self._lock.write_locked():
            self._supports[server] = supports
        logger.info(f"Cached streaming support for {server}: {supports}")

    def is_known_unsupported(self, server: str) -> bool:
        return self.get(server) is False
