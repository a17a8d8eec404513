"""Transcription-related data models."""

from dataclasses import dataclass, field
from datetime import datetime


@dataclass(frozen=True)
class TranscriptionUpdate:
    """A fragment of text received from a streaming transcription."""
    is_partial: bool  # False only for the final update carrying the full text
    text: str
    timestamp: datetime = field(default_factory=datetime.now)
