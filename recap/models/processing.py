"""Processing job and per-record state models."""

import uuid
from dataclasses import dataclass, field, replace
from typing import List, Optional, Union

from .settings import SettingsSnapshot

MAX_STREAMING_CHUNKS = 10


@dataclass(frozen=True)
class TranscriptionOperation:
    prefer_streaming: bool
    automatic: bool


@dataclass(frozen=True)
class SummarizationOperation:
    automatic: bool


Operation = Union[TranscriptionOperation, SummarizationOperation]


@dataclass(frozen=True)
class ProcessingJob:
    """One queued unit of work for a single record."""
    record_id: str
    settings: SettingsSnapshot
    operation: Operation
    id: str = field(default_factory=lambda: uuid.uuid4().hex)

    @property
    def kind(self) -> str:
        if isinstance(self.operation, TranscriptionOperation):
            return "transcription"
        return "summarization"


@dataclass
class RecordProcessingState:
    """Observable processing state of a single record."""
    is_transcribing: bool = False
    is_summarizing: bool = False
    transcription_error: Optional[str] = None
    summary_error: Optional[str] = None
    is_streaming: bool = False
    streaming_chunks: List[str] = field(default_factory=list)
    pending_transcription_count: int = 0
    pending_summarization_count: int = 0

    def add_streaming_chunk(self, chunk: str) -> None:
        """Append a live-display fragment, keeping the newest MAX_STREAMING_CHUNKS."""
        if not chunk or (self.streaming_chunks and self.streaming_chunks[-1] == chunk):
            return
        self.streaming_chunks.append(chunk)
        if len(self.streaming_chunks) > MAX_STREAMING_CHUNKS:
            del self.streaming_chunks[0]

    @property
    def is_busy(self) -> bool:
        return self.is_transcribing or self.is_summarizing

    def copy(self) -> "RecordProcessingState":
        return replace(self, streaming_chunks=list(self.streaming_chunks))
