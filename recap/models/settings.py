"""Application settings and the immutable snapshot captured for each job."""

import os
from dataclasses import dataclass, fields
from enum import Enum
from typing import Optional


OPENAI_BASE_URL = "https://api.openai.com/v1/"
DEFAULT_WHISPER_MODEL = "whisper-1"

DEFAULT_CHUNK_PROMPT = """Summarize this part of transcription concisely while keeping the main ideas, insights, and important details:

{transcription}

Give me only the summary, don't include any introductory phrases."""

DEFAULT_SUMMARY_PROMPT = """Combine these summaries into one cohesive document that flows naturally:

{summaries}

The combined text should be well-structured and feel like a single document rather than disconnected parts."""

DEFAULT_TITLE_PROMPT = """Write a short title (at most 5 words) for a recording with the following summary:

{summary}

Reply with the title only."""


class TranscriptionProvider(Enum):
    """Where transcription requests go."""
    COMPATIBLE_API = "compatible_api"
    OPENAI = "openai"
    LOCAL = "local"

    @classmethod
    def from_raw(cls, raw_value: Optional[str]) -> "TranscriptionProvider":
        try:
            return cls(raw_value)
        except ValueError:
            return cls.COMPATIBLE_API

    def resolved_base_url(self, configured: str) -> str:
        if self is TranscriptionProvider.OPENAI:
            return OPENAI_BASE_URL
        return configured

    def resolved_api_key(self, configured: str) -> str:
        if self is TranscriptionProvider.OPENAI and not configured.strip():
            return os.environ.get("OPENAI_API_KEY", "")
        return configured


@dataclass
class AppSettings:
    """Live, user-editable settings."""
    whisper_provider: str = TranscriptionProvider.COMPATIBLE_API.value
    whisper_base_url: str = OPENAI_BASE_URL
    whisper_api_key: str = ""
    whisper_model: str = ""
    language: str = ""
    local_locale: str = ""

    openai_base_url: str = OPENAI_BASE_URL
    openai_api_key: str = ""
    openai_model: str = ""

    use_chunking: bool = True
    chunk_size: int = 750
    chunk_prompt: str = DEFAULT_CHUNK_PROMPT
    summary_prompt: str = DEFAULT_SUMMARY_PROMPT
    auto_generate_title: bool = False
    title_prompt: str = DEFAULT_TITLE_PROMPT


@dataclass(frozen=True)
class WhisperSettings:
    """Reduced configuration used only for transcription calls."""
    base_url: str
    api_key: str = ""
    model: str = DEFAULT_WHISPER_MODEL
    language: str = ""


@dataclass(frozen=True)
class ChatSettings:
    """Configuration for chat-completion calls."""
    base_url: str
    api_key: str = ""
    model: str = ""


@dataclass(frozen=True)
class SettingsSnapshot:
    """Copy of AppSettings taken when a job is enqueued.

    Later edits to the live settings never reach a job that is already
    queued or running.
    """
    whisper_provider: str
    whisper_base_url: str
    whisper_api_key: str
    whisper_model: str
    language: str
    local_locale: str
    openai_base_url: str
    openai_api_key: str
    openai_model: str
    use_chunking: bool
    chunk_size: int
    chunk_prompt: str
    summary_prompt: str
    auto_generate_title: bool
    title_prompt: str

    @classmethod
    def from_settings(cls, settings: AppSettings) -> "SettingsSnapshot":
        return cls(**{f.name: getattr(settings, f.name) for f in fields(cls)})

    @property
    def provider(self) -> TranscriptionProvider:
        return TranscriptionProvider.from_raw(self.whisper_provider)

    @property
    def resolved_whisper_model(self) -> str:
        return self.whisper_model or DEFAULT_WHISPER_MODEL

    @property
    def resolved_whisper_base_url(self) -> str:
        return self.provider.resolved_base_url(self.whisper_base_url)

    @property
    def resolved_whisper_api_key(self) -> str:
        return self.provider.resolved_api_key(self.whisper_api_key)

    @property
    def uses_local_engine(self) -> bool:
        return self.provider is TranscriptionProvider.LOCAL

    def should_stream(self, prefer_streaming: bool) -> bool:
        return prefer_streaming and not self.uses_local_engine

    def make_whisper_settings(self) -> WhisperSettings:
        return WhisperSettings(
            base_url=self.resolved_whisper_base_url.strip(),
            api_key=self.resolved_whisper_api_key.strip(),
            model=self.resolved_whisper_model,
            language=self.language.strip(),
        )

    def make_chat_settings(self) -> ChatSettings:
        return ChatSettings(
            base_url=self.openai_base_url.strip(),
            api_key=self.openai_api_key,
            model=self.openai_model,
        )
