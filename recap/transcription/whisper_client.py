"""Client for Whisper-compatible transcription servers.

Streaming is attempted first: the audio is uploaded with ``stream=true`` and
the server is expected to answer with a text event stream. Servers that
accept the parameter but ignore it are detected by a plain text or JSON
content type, or by the connection closing without any text. The client then
falls back to a regular request that returns the whole transcript as SRT.
"""

import asyncio
import logging
from contextlib import aclosing
from dataclasses import dataclass
from pathlib import Path
from typing import AsyncIterator, Callable, Dict, Optional, Union

import aiohttp

from ..errors import (
    DataParsingError,
    InvalidAudioFile,
    InvalidResponse,
    InvalidURL,
    NetworkError,
    ServerError,
    StreamingNotSupported,
)
from ..models.settings import WhisperSettings
from ..models.transcription import TranscriptionUpdate
from ..utils.security import mask_api_key, sanitize_api_key
from ..utils.url_builder import build_url
from .capability_cache import StreamingCapabilityCache
from .event_stream import RetryState, StreamingContext
from .srt import looks_like_srt

logger = logging.getLogger(__name__)

TRANSCRIPTIONS_ENDPOINT = "audio/transcriptions"
AUDIO_FILENAME = "audio.m4a"
AUDIO_CONTENT_TYPE = "audio/m4a"

DEFAULT_MAX_RETRIES = 3
DEFAULT_RETRY_DELAY_STEP = 2.0  # seconds; attempt n waits n * step

# Failures of the connection itself, as opposed to the server rejecting us
TRANSPORT_ERRORS = (aiohttp.ClientError, asyncio.TimeoutError)

# Content types of servers that answered a streaming upload with a complete transcript
NON_STREAMING_CONTENT_TYPES = ("text/plain", "application/json")

UpdateCallback = Callable[[TranscriptionUpdate], None]


@dataclass(frozen=True)
class TranscriptionRequest:
    """Everything needed to (re)send one transcription upload."""
    url: str
    server_key: str
    audio_data: bytes
    api_key: str
    model: str
    language: str = ""


def _is_cancelled(cancel_event: Optional[asyncio.Event]) -> bool:
    return cancel_event is not None and cancel_event.is_set()


class WhisperTranscriptionClient:
    """Transcribes audio files against a Whisper-compatible API."""

    def __init__(self,
                 capability_cache: Optional[StreamingCapabilityCache] = None,
                 max_retries: int = DEFAULT_MAX_RETRIES,
                 retry_delay_step: float = DEFAULT_RETRY_DELAY_STEP,
                 timeout: Optional[aiohttp.ClientTimeout] = None):
        """Initialize the client.

        Args:
            capability_cache: Shared cache of per-server streaming support
            max_retries: Retries of the real-time stream after transport failures
            retry_delay_step: Backoff unit; retry n sleeps n * step seconds
            timeout: aiohttp timeout; by default no total limit, since long
                recordings can take minutes to transcribe
        """
        self.capability_cache = capability_cache or StreamingCapabilityCache()
        self.max_retries = max_retries
        self.retry_delay_step = retry_delay_step
        self.timeout = timeout or aiohttp.ClientTimeout(total=None, sock_connect=30)

    # Public API

    async def transcribe(self, audio_path: Union[str, Path], settings: WhisperSettings) -> str:
        """Transcribe a file, streaming when the server supports it.

        Falls back to a regular request only when streaming is reported as
        unsupported; every other error propagates.
        """
        logger.info(f"Starting transcription for: {Path(audio_path).name}")

        if self.capability_cache.is_known_unsupported(settings.base_url):
            logger.info(f"Server {settings.base_url} known to not support streaming, using regular mode")
            return await self.transcribe_regular(audio_path, settings)

        try:
            return await self.stream_transcription(audio_path, settings)
        except StreamingNotSupported:
            logger.warning("Streaming not supported, falling back to regular mode")
            return await self.transcribe_regular(audio_path, settings)

    async def stream_transcription(self,
                                   audio_path: Union[str, Path],
                                   settings: WhisperSettings,
                                   on_update: Optional[UpdateCallback] = None) -> str:
        """Run a single streaming attempt and return the accumulated text.

        Mid-stream transport failures are not retried here; they surface as
        NetworkError so the caller can fall back to a regular request.

        Args:
            audio_path: Audio file to upload
            settings: Transcription server settings
            on_update: Called with every update as it arrives

        Raises:
            StreamingNotSupported: Server is cached as unsupported, or the
                stream closed without producing any text
        """
        if self.capability_cache.is_known_unsupported(settings.base_url):
            raise StreamingNotSupported()

        request = self._prepare_request(audio_path, settings)
        context = StreamingContext()

        try:
            async with aclosing(self._stream_attempt(request, context)) as updates:
                async for update in updates:
                    if on_update is not None:
                        on_update(update)
        except StreamingNotSupported:
            self.capability_cache.set(request.server_key, False)
            raise
        except TRANSPORT_ERRORS as e:
            logger.error(f"Streaming transcription failed: {e}")
            raise NetworkError(e) from e

        self.capability_cache.set(request.server_key, True)
        return context.accumulated_text

    async def transcribe_realtime(self,
                                  audio_path: Union[str, Path],
                                  settings: WhisperSettings,
                                  cancel_event: Optional[asyncio.Event] = None
                                  ) -> AsyncIterator[TranscriptionUpdate]:
        """Stream transcription updates as they arrive.

        Yields zero or more partial updates followed by one final update
        (``is_partial=False``) carrying the full text. Transport failures are
        retried up to ``max_retries`` times; each retry uploads the file again
        and starts a fresh transcript. Closing the generator, or setting
        ``cancel_event``, stops the request and any pending retry.
        """
        request = self._prepare_request(audio_path, settings)
        context = StreamingContext(retry=RetryState(request=request, max_retries=self.max_retries))
        logger.info(f"Starting real-time streaming transcription for: {Path(audio_path).name}")

        while True:
            context.reset()
            try:
                async with aclosing(self._stream_attempt(request, context, cancel_event)) as updates:
                    async for update in updates:
                        yield update
            except StreamingNotSupported:
                self.capability_cache.set(request.server_key, False)
                raise
            except TRANSPORT_ERRORS as e:
                context.retry.attempts += 1
                if context.retry.exhausted:
                    logger.error(f"Real-time streaming failed after {self.max_retries} retries: {e}")
                    raise NetworkError(e) from e

                delay = self.retry_delay(context.retry.attempts)
                logger.warning(
                    f"Real-time streaming interrupted ({e}); retry "
                    f"{context.retry.attempts}/{self.max_retries} in {delay:.0f}s"
                )
                if _is_cancelled(cancel_event):
                    return
                await asyncio.sleep(delay)
                if _is_cancelled(cancel_event):
                    return
                continue

            if not _is_cancelled(cancel_event):
                self.capability_cache.set(request.server_key, True)
            return

    async def transcribe_regular(self, audio_path: Union[str, Path], settings: WhisperSettings) -> str:
        """Transcribe without streaming; the response is the full SRT transcript."""
        request = self._prepare_request(audio_path, settings)
        logger.info(f"Starting regular transcription using {request.url}")
        logger.debug(f"Request body audio size: {len(request.audio_data)} bytes")

        try:
            async with aiohttp.ClientSession(timeout=self.timeout) as session:
                async with session.post(
                    request.url,
                    data=self._build_form(request, streaming=False),
                    headers=self._build_headers(request.api_key, streaming=False),
                ) as response:
                    status = response.status
                    data = await response.read()
        except TRANSPORT_ERRORS as e:
            logger.error(f"Regular transcription request failed: {e}")
            raise NetworkError(e) from e

        logger.info(f"Response status code: {status}")
        if not 200 <= status < 300:
            message = data.decode("utf-8", errors="replace").strip()
            logger.error(f"Error response: {message}")
            raise ServerError(message or f"Status code: {status}", status=status)

        if not data:
            logger.error("Empty response data")
            raise InvalidResponse()

        try:
            text = data.decode("utf-8")
        except UnicodeDecodeError as e:
            raise DataParsingError("Could not decode response as UTF-8 string") from e

        if looks_like_srt(text):
            logger.debug(f"Response appears to be valid SRT, length: {len(text)} characters")
        else:
            logger.warning(f"Response doesn't appear to be in SRT format: {text[:100]}")
        return text

    def retry_delay(self, attempt: int) -> float:
        return self.retry_delay_step * attempt

    # Internals

    def _prepare_request(self, audio_path: Union[str, Path], settings: WhisperSettings) -> TranscriptionRequest:
        url = build_url(settings.base_url, TRANSCRIPTIONS_ENDPOINT)
        if url is None:
            logger.error(f"Invalid Whisper API base URL: {settings.base_url}")
            raise InvalidURL()

        path = Path(audio_path)
        if not path.is_file():
            logger.error(f"Audio file not found at path: {path}")
            raise InvalidAudioFile()
        try:
            audio_data = path.read_bytes()
        except OSError as e:
            logger.error(f"Error loading audio file: {e}")
            raise InvalidAudioFile() from e

        api_key = sanitize_api_key(settings.api_key)
        if api_key:
            logger.debug(f"Using transcription API key {mask_api_key(api_key)}")

        return TranscriptionRequest(
            url=url,
            server_key=settings.base_url,
            audio_data=audio_data,
            api_key=api_key,
            model=settings.model,
            language=settings.language,
        )

    async def _stream_attempt(self,
                              request: TranscriptionRequest,
                              context: StreamingContext,
                              cancel_event: Optional[asyncio.Event] = None
                              ) -> AsyncIterator[TranscriptionUpdate]:
        """Send the upload once and yield updates until the server closes."""
        async with aiohttp.ClientSession(timeout=self.timeout) as session:
            async with session.post(
                request.url,
                data=self._build_form(request, streaming=True),
                headers=self._build_headers(request.api_key, streaming=True),
            ) as response:
                if not 200 <= response.status < 300:
                    body = (await response.text(errors="replace")).strip()
                    logger.error(f"Streaming request rejected: {response.status} {body[:200]}")
                    raise ServerError(body or f"Status code: {response.status}", status=response.status)

                if response.content_type in NON_STREAMING_CONTENT_TYPES:
                    logger.warning(f"Server answered with {response.content_type} instead of an event stream")
                    raise StreamingNotSupported()

                logger.info("Streaming connection established")
                while True:
                    if _is_cancelled(cancel_event):
                        logger.info("Streaming cancelled by consumer")
                        return
                    chunk = await response.content.readany()
                    if not chunk:
                        break
                    for update in context.feed(chunk):
                        context.accumulate(update)
                        yield update

        logger.info("Streaming connection closed")
        for update in context.flush():
            context.accumulate(update)
            yield update

        if not context.accumulated_text:
            raise StreamingNotSupported()

        logger.info(f"Streaming transcription completed: {len(context.accumulated_text)} chars")
        yield TranscriptionUpdate(is_partial=False, text=context.accumulated_text)

    @staticmethod
    def _build_form(request: TranscriptionRequest, streaming: bool) -> aiohttp.FormData:
        # FormData can only be serialized once, so every attempt builds a new one
        form = aiohttp.FormData()
        form.add_field("model", request.model)
        form.add_field("response_format", "text" if streaming else "srt")
        if streaming:
            form.add_field("stream", "true")
        if request.language:
            form.add_field("language", request.language)
        form.add_field("file", request.audio_data,
                       filename=AUDIO_FILENAME,
                       content_type=AUDIO_CONTENT_TYPE)
        return form

    @staticmethod
    def _build_headers(api_key: str, streaming: bool) -> Dict[str, str]:
        headers = {}
        if streaming:
            headers["Accept"] = "text/event-stream"
            headers["Cache-Control"] = "no-cache"
            headers["Connection"] = "keep-alive"
        if api_key:
            headers["Authorization"] = f"Bearer {api_key}"
        return headers
