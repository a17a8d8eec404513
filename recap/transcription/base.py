"""Abstract base class for on-device transcription engines."""

from abc import ABC, abstractmethod
from pathlib import Path
from typing import Optional
import logging

logger = logging.getLogger(__name__)


class AbstractLocalTranscriptionBackend(ABC):
    """Interface of a fully on-device transcription engine.

    Implementations raise ``LocalEngineError`` subclasses
    (``PermissionDenied``, ``FeatureUnavailable``, ``EngineUnavailable``)
    when they cannot run; callers fall back to the network path.
    """

    @abstractmethod
    def is_supported(self) -> bool:
        """Whether the engine can run on this system."""
        pass

    @abstractmethod
    async def transcribe(self, audio_path: Path, locale: Optional[str] = None) -> str:
        """Transcribe an audio file and return the text.

        Args:
            audio_path: Path to the audio file
            locale: Locale identifier such as ``en_US``; None for the system default

        Returns:
            Transcribed text
        """
        pass
