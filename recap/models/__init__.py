"""Data models for the Recap application."""

from .record import Record
from .transcription import TranscriptionUpdate
from .settings import (
    AppSettings,
    ChatSettings,
    SettingsSnapshot,
    TranscriptionProvider,
    WhisperSettings,
)
from .processing import (
    ProcessingJob,
    RecordProcessingState,
    SummarizationOperation,
    TranscriptionOperation,
)

__all__ = [
    "Record",
    "TranscriptionUpdate",
    # Settings
    "AppSettings",
    "ChatSettings",
    "SettingsSnapshot",
    "TranscriptionProvider",
    "WhisperSettings",
    # Processing
    "ProcessingJob",
    "RecordProcessingState",
    "SummarizationOperation",
    "TranscriptionOperation",
]
