"""Exception types raised by the transcription and summarization pipeline."""

from typing import Optional


class RecapError(Exception):
    """Base class for all pipeline errors."""

    message = "An unknown error occurred"

    def __init__(self, message: Optional[str] = None):
        super().__init__(message or self.message)

    @property
    def description(self) -> str:
        return str(self)


class TranscriptionError(RecapError):
    """Errors raised while talking to a transcription service or engine."""


class RecordProcessingError(RecapError):
    """Errors raised while executing a processing job for a record."""


# Shared between transcription and summarization calls

class InvalidURL(TranscriptionError, RecordProcessingError):
    message = "Invalid API URL."


class InvalidResponse(TranscriptionError, RecordProcessingError):
    message = "Invalid response from server"


# Transcription

class InvalidAudioFile(TranscriptionError):
    message = "Audio file is invalid or corrupted"


class NetworkError(TranscriptionError):
    """Transport-level failure; wraps the underlying exception."""

    def __init__(self, cause: BaseException):
        self.cause = cause
        detail = str(cause) or cause.__class__.__name__
        super().__init__(f"Network error: {detail}")


class StreamingNotSupported(TranscriptionError):
    message = "Server doesn't support SSE streaming"


class ServerError(TranscriptionError):
    def __init__(self, message: str, status: Optional[int] = None):
        self.status = status
        super().__init__(f"Server error: {message}")


class DataParsingError(TranscriptionError):
    def __init__(self, message: str):
        super().__init__(f"Data parsing error: {message}")


class ProcessingFailed(TranscriptionError):
    def __init__(self, message: str):
        super().__init__(message)


class LocalEngineError(TranscriptionError):
    """On-device engine precondition failures. These trigger fallback."""


class PermissionDenied(LocalEngineError):
    message = "Speech recognition permission denied"


class FeatureUnavailable(LocalEngineError):
    message = "On-device transcription is not available on this system"


class EngineUnavailable(LocalEngineError):
    message = "On-device transcription engine is unavailable"


# Record processing

class RecordNotFound(RecordProcessingError):
    message = "Record not found. It may have been deleted."


class MissingAudioFile(RecordProcessingError):
    message = "Audio file not found on disk."


class EmptyCleanText(RecordProcessingError):
    message = "Transcription text is empty after processing."


class SummaryEmpty(RecordProcessingError):
    message = "Summary is empty."


class HTTPError(RecordProcessingError):
    def __init__(self, code: int):
        self.code = code
        super().__init__(f"HTTP error from LLM server: {code}")


class ChunkFailed(RecordProcessingError):
    """A chunk summary failed; ``index`` is zero-based."""

    def __init__(self, index: int, reason: str):
        self.index = index
        self.reason = reason
        super().__init__(f"Error summarizing chunk {index + 1}: {reason}")
