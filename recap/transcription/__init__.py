"""Transcription module for Recap."""

from .base import AbstractLocalTranscriptionBackend
from .capability_cache import StreamingCapabilityCache
from .event_stream import StreamingContext, parse_event_payload
from .srt import extract_text_from_srt, looks_like_srt
from .whisper_client import WhisperTranscriptionClient

__all__ = [
    "AbstractLocalTranscriptionBackend",
    "StreamingCapabilityCache",
    "StreamingContext",
    "parse_event_payload",
    "extract_text_from_srt",
    "looks_like_srt",
    "WhisperTranscriptionClient",
]
