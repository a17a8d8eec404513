"""Incremental parsing of text event-stream transcription responses.

The response body arrives as arbitrary byte chunks. Bytes are buffered until
a blank line closes a block; every ``data:`` line of a complete block is one
event. Payloads are either JSON (``{"text": ..., "partial": ...}``), bare
text, or the ``[DONE]`` marker.
"""

import json
import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from ..models.transcription import TranscriptionUpdate

logger = logging.getLogger(__name__)

BLOCK_SEPARATOR = b"\n\n"
DATA_PREFIX = "data:"
DONE_MARKER = "[DONE]"


@dataclass
class RetryState:
    """Retry bookkeeping for a real-time streaming request."""
    request: Any  # TranscriptionRequest being retried
    max_retries: int
    attempts: int = 0

    @property
    def exhausted(self) -> bool:
        return self.attempts > self.max_retries


@dataclass
class StreamingContext:
    """Scratch state of one in-flight streaming request.

    Owned by the coroutine that runs the request and never shared.
    """
    buffer: bytearray = field(default_factory=bytearray)
    accumulated_text: str = ""
    retry: Optional[RetryState] = None

    def feed(self, chunk: bytes) -> List[TranscriptionUpdate]:
        """Buffer a received chunk and parse every complete block."""
        self.buffer.extend(chunk)
        normalized = bytes(self.buffer).replace(b"\r\n", b"\n")

        *blocks, remainder = normalized.split(BLOCK_SEPARATOR)
        self.buffer = bytearray(remainder)

        updates = []
        for block in blocks:
            updates.extend(self._parse_block(block))
        return updates

    def flush(self) -> List[TranscriptionUpdate]:
        """Parse whatever is left in the buffer once the connection closed."""
        remainder = bytes(self.buffer).replace(b"\r\n", b"\n")
        self.buffer = bytearray()
        if not remainder.strip():
            return []
        return self._parse_block(remainder)

    def accumulate(self, update: TranscriptionUpdate) -> None:
        text = update.text.strip()
        if not text:
            return
        if self.accumulated_text:
            self.accumulated_text += " " + text
        else:
            self.accumulated_text = text

    def reset(self) -> None:
        """Forget everything received so far; used before a retry."""
        self.buffer = bytearray()
        self.accumulated_text = ""

    def _parse_block(self, block: bytes) -> List[TranscriptionUpdate]:
        text = block.decode("utf-8", errors="replace")
        updates = []
        for line in text.split("\n"):
            if not line.startswith(DATA_PREFIX):
                continue
            payload = line[len(DATA_PREFIX):]
            if payload.startswith(" "):
                payload = payload[1:]
            update = parse_event_payload(payload)
            if update is not None:
                updates.append(update)
        return updates


def parse_event_payload(payload: str) -> Optional[TranscriptionUpdate]:
    """Turn one event payload into an update, or None if it carries no text."""
    if payload.startswith("{"):
        data = _load_json_object(payload)
        if data is not None:
            return _update_from_json(data)

    clean_text = payload.strip()
    if not clean_text or clean_text == DONE_MARKER:
        return None
    # Bare text is always a partial fragment; the final update comes from
    # the connection closing.
    return TranscriptionUpdate(is_partial=True, text=clean_text)


def _load_json_object(payload: str) -> Optional[Dict[str, Any]]:
    try:
        data = json.loads(payload)
    except ValueError:
        logger.debug(f"Event payload is not JSON, treating as text: {payload[:50]}")
        return None
    return data if isinstance(data, dict) else None


def _update_from_json(data: Dict[str, Any]) -> Optional[TranscriptionUpdate]:
    text = _extract_text(data)
    if text is None:
        return None
    is_partial = data.get("partial", True)
    return TranscriptionUpdate(is_partial=bool(is_partial), text=text)


def _extract_text(data: Dict[str, Any]) -> Optional[str]:
    text = data.get("text")
    if isinstance(text, str):
        return text

    # OpenAI completion-style payloads
    choices = data.get("choices")
    if isinstance(choices, list) and choices and isinstance(choices[0], dict):
        choice_text = choices[0].get("text")
        if isinstance(choice_text, str):
            return choice_text
    return None
