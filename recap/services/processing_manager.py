"""Serialized transcription and summarization of records.

All jobs, for every record, go through one FIFO queue drained by a single
worker thread that runs its own asyncio event loop. At most one job runs at
any time, so per-record state is only ever mutated by that worker (and by
the enqueue calls, under the same lock).
"""

import asyncio
import logging
import queue
import threading
import time
from contextlib import contextmanager
from pathlib import Path
from typing import Callable, Dict, Iterator, List, Optional

from ..errors import (
    ChunkFailed,
    EmptyCleanText,
    EngineUnavailable,
    FeatureUnavailable,
    MissingAudioFile,
    ProcessingFailed,
    RecordNotFound,
    StreamingNotSupported,
    SummaryEmpty,
)
from ..models.processing import (
    ProcessingJob,
    RecordProcessingState,
    SummarizationOperation,
    TranscriptionOperation,
)
from ..models.record import Record
from ..models.settings import AppSettings, SettingsSnapshot
from ..models.transcription import TranscriptionUpdate
from ..storage.record_store import RecordStore
from ..summarization.chat_client import ChatCompletionClient
from ..summarization.chunker import chunk_text
from ..summarization.prompts import format_chunk_prompt, format_combine_prompt, format_title_prompt
from ..summarization.titles import sanitize_title
from ..transcription.base import AbstractLocalTranscriptionBackend
from ..transcription.srt import extract_text_from_srt, looks_like_srt
from ..transcription.whisper_client import WhisperTranscriptionClient
from ..utils.url_builder import is_valid_base_url
from .state_publisher import ProcessingStatePublisher

logger = logging.getLogger(__name__)

EMPTY_TRANSCRIPTION_MESSAGE = (
    "Error: Empty transcription received. Please try again with a different "
    "model or check your audio quality."
)
MISSING_TRANSCRIPT_MESSAGE = "Transcription text is required before summarizing."
STREAMING_CHUNK_WORDS = 12

Chunker = Callable[[str, int], List[str]]


def extract_clean_text(transcription_text: str) -> str:
    """Plain text of a transcript, converting SRT when it looks like subtitles."""
    if looks_like_srt(transcription_text):
        return extract_text_from_srt(transcription_text)
    return transcription_text.strip()


class RecordProcessingManager:
    """Runs transcription and summarization jobs one at a time.

    Enqueue calls are fire-and-forget; progress and errors are observed
    through ``state(record_id)`` or the ``processing.state`` topic.
    """

    def __init__(self,
                 record_store: RecordStore,
                 transcription_client: Optional[WhisperTranscriptionClient] = None,
                 chat_client: Optional[ChatCompletionClient] = None,
                 local_backend: Optional[AbstractLocalTranscriptionBackend] = None,
                 chunker: Chunker = chunk_text,
                 publisher: Optional[ProcessingStatePublisher] = None):
        """Initialize the manager and start its worker.

        Args:
            record_store: Where records are loaded from and saved to
            transcription_client: Whisper-compatible client
            chat_client: Chat-completion client used for summaries and titles
            local_backend: Optional on-device transcription engine
            chunker: Splits transcripts for summarization
            publisher: Publishes state changes and streamed text
        """
        self.record_store = record_store
        self.transcription_client = transcription_client or WhisperTranscriptionClient()
        self.chat_client = chat_client or ChatCompletionClient()
        self.local_backend = local_backend
        self.chunker = chunker
        self.publisher = publisher or ProcessingStatePublisher()

        self.record_states: Dict[str, RecordProcessingState] = {}
        self.active_job: Optional[ProcessingJob] = None
        self.lock = threading.RLock()

        self.task_queue: "queue.Queue[Optional[ProcessingJob]]" = queue.Queue()
        self.shutdown_event = threading.Event()
        self.stopped = False
        self.worker_thread: Optional[threading.Thread] = None

        self._start_worker()

    # Public API

    def state(self, record_id: str) -> RecordProcessingState:
        """Current processing state of a record (a copy)."""
        with self.lock:
            return self.record_states.setdefault(record_id, RecordProcessingState()).copy()

    def enqueue_transcription(self,
                              record: Record,
                              settings: AppSettings,
                              automatic: bool,
                              prefer_streaming: bool = True) -> None:
        """Queue a transcription of a record.

        Args:
            record: Record to transcribe
            settings: Live settings; a snapshot is taken now
            automatic: Queue a summarization once a non-empty transcript is saved
            prefer_streaming: Try streaming before the regular request
        """
        if not self._accepting_jobs(record):
            return
        snapshot = SettingsSnapshot.from_settings(settings)
        operation = TranscriptionOperation(
            prefer_streaming=snapshot.should_stream(prefer_streaming),
            automatic=automatic,
        )
        self._append(ProcessingJob(record_id=record.id, settings=snapshot, operation=operation))

    def enqueue_summarization(self, record: Record, settings: AppSettings, automatic: bool) -> None:
        """Queue a summarization of a record's transcript."""
        if not self._accepting_jobs(record):
            return
        snapshot = SettingsSnapshot.from_settings(settings)
        self._append(ProcessingJob(
            record_id=record.id,
            settings=snapshot,
            operation=SummarizationOperation(automatic=automatic),
        ))

    def join(self, timeout: Optional[float] = None, poll_interval: float = 0.05) -> bool:
        """Wait until every queued job, including follow-up jobs, has finished.

        Returns:
            True if the queue drained, False on timeout
        """
        start_time = time.time()
        while self.task_queue.unfinished_tasks:
            if timeout is not None and time.time() - start_time >= timeout:
                logger.warning(f"Timeout reached while waiting for queue. "
                               f"{self.task_queue.unfinished_tasks} jobs remain.")
                return False
            time.sleep(poll_interval)
        return True

    def shutdown(self, timeout: float = 30.0) -> bool:
        """Let queued jobs finish, then stop the worker thread."""
        logger.info("Shutting down processing manager...")
        self.shutdown_event.set()

        drained = self.join(timeout)

        # Follow-up jobs appended after the sentinel would never run
        with self.lock:
            self.stopped = True
            self.task_queue.put(None)
        if self.worker_thread is not None:
            self.worker_thread.join(2.0)
            if self.worker_thread.is_alive():
                logger.warning(f"Worker thread {self.worker_thread.name} did not terminate cleanly.")
                drained = False

        logger.info("Processing manager shutdown complete.")
        return drained

    def __enter__(self):
        return self

    def __exit__(self, _exc_type, _exc_val, _exc_tb):
        self.shutdown()

    # Queue handling

    def _start_worker(self) -> None:
        self.worker_thread = threading.Thread(target=self._worker_loop, name="processing_worker", daemon=True)
        self.worker_thread.start()
        logger.info("Started processing worker")

    def _accepting_jobs(self, record: Record) -> bool:
        if self.shutdown_event.is_set():
            logger.warning(f"Manager is shutting down, not queueing work for {record.id}")
            return False
        return True

    def _append(self, job: ProcessingJob) -> None:
        with self.lock:
            if self.stopped:
                logger.warning(f"Worker stopped, dropping {job.kind} job {job.id} for record {job.record_id}")
                return

            with self._mutating_state(job.record_id) as state:
                if isinstance(job.operation, TranscriptionOperation):
                    state.pending_transcription_count += 1
                else:
                    state.pending_summarization_count += 1

            self.task_queue.put(job)
        logger.debug(f"Queued {job.kind} job {job.id} for record {job.record_id}")

    def _worker_loop(self) -> None:
        """Drain the queue one job at a time on a private event loop."""
        thread_name = threading.current_thread().name
        logger.debug(f"Worker thread {thread_name} starting")

        loop = asyncio.new_event_loop()
        asyncio.set_event_loop(loop)

        try:
            while True:
                job = self.task_queue.get()

                if job is None:
                    logger.debug(f"Worker {thread_name} received sentinel, exiting.")
                    self.task_queue.task_done()
                    break

                try:
                    self._begin(job)
                    loop.run_until_complete(self._execute(job))
                except Exception as e:
                    logger.error(f"Unhandled exception in {job.kind} job {job.id}: {e}", exc_info=True)
                finally:
                    self._finish(job)
                    self.task_queue.task_done()
        finally:
            loop.close()
            logger.debug(f"Worker thread {thread_name} exiting and closing its event loop.")

    def _begin(self, job: ProcessingJob) -> None:
        with self._mutating_state(job.record_id) as state:
            self.active_job = job
            if isinstance(job.operation, TranscriptionOperation):
                state.pending_transcription_count = max(0, state.pending_transcription_count - 1)
                state.is_transcribing = True
                state.transcription_error = None
            else:
                state.pending_summarization_count = max(0, state.pending_summarization_count - 1)
                state.is_summarizing = True
                state.summary_error = None
        logger.info(f"Starting {job.kind} job {job.id} for record {job.record_id}")

    def _finish(self, job: ProcessingJob) -> None:
        with self._mutating_state(job.record_id) as state:
            self.active_job = None
            if isinstance(job.operation, TranscriptionOperation):
                state.is_transcribing = False
                state.is_streaming = False
                state.streaming_chunks.clear()
            else:
                state.is_summarizing = False
        logger.info(f"Finished {job.kind} job {job.id} for record {job.record_id}")

    async def _execute(self, job: ProcessingJob) -> None:
        operation = job.operation
        if isinstance(operation, TranscriptionOperation):
            await self._execute_transcription(job, operation)
        elif isinstance(operation, SummarizationOperation):
            await self._execute_summarization(job, operation)
        else:
            raise TypeError(f"Unknown operation: {operation!r}")

    # Transcription

    async def _execute_transcription(self, job: ProcessingJob, operation: TranscriptionOperation) -> None:
        record = self.record_store.get(job.record_id)
        if record is None:
            self._set_transcription_error(job.record_id, str(RecordNotFound()))
            return

        audio_path = self.record_store.audio_path_for(record)
        if audio_path is None:
            self._set_transcription_error(job.record_id, str(MissingAudioFile()))
            return

        try:
            transcription_text = await self._transcribe(job, audio_path, operation.prefer_streaming)
            trimmed = transcription_text.strip()

            self.record_store.save_transcript(record, trimmed)
            if trimmed:
                self._set_transcription_error(job.record_id, None)
            else:
                logger.warning(f"Empty transcription received for record {record.id}")
                self._set_transcription_error(job.record_id, EMPTY_TRANSCRIPTION_MESSAGE)

            if operation.automatic and trimmed:
                self._append(ProcessingJob(
                    record_id=job.record_id,
                    settings=job.settings,
                    operation=SummarizationOperation(automatic=True),
                ))
        except Exception as e:
            logger.error(f"Transcription failed for record {record.id}: {e}")
            self._set_transcription_error(job.record_id, f"Error: {e}")

    async def _transcribe(self, job: ProcessingJob, audio_path: Path, prefer_streaming: bool) -> str:
        if job.settings.uses_local_engine:
            try:
                return await self._transcribe_locally(job, audio_path)
            except Exception as e:
                logger.warning(f"Native transcription failed: {e}. Falling back to configured service.")
                return await self._transcribe_regular(job, audio_path)

        if prefer_streaming:
            try:
                return await self._transcribe_streaming(job, audio_path)
            except StreamingNotSupported:
                logger.warning("Streaming not supported, falling back to regular transcription.")
                return await self._transcribe_regular(job, audio_path)

        return await self._transcribe_regular(job, audio_path)

    async def _transcribe_locally(self, job: ProcessingJob, audio_path: Path) -> str:
        if self.local_backend is None:
            raise EngineUnavailable()
        if not self.local_backend.is_supported():
            raise FeatureUnavailable()
        return await self.local_backend.transcribe(audio_path, job.settings.local_locale or None)

    async def _transcribe_streaming(self, job: ProcessingJob, audio_path: Path) -> str:
        def on_update(update: TranscriptionUpdate) -> None:
            clean_text = update.text.strip()
            if not clean_text:
                return
            self._update_streaming_state(job.record_id, clean_text)
            self.publisher.publish_stream_update(job.record_id, update)

        try:
            return await self.transcription_client.stream_transcription(
                audio_path, job.settings.make_whisper_settings(), on_update=on_update
            )
        finally:
            with self._mutating_state(job.record_id) as state:
                state.is_streaming = False

    async def _transcribe_regular(self, job: ProcessingJob, audio_path: Path) -> str:
        base_url = job.settings.resolved_whisper_base_url.strip()
        if not base_url:
            raise ProcessingFailed("Remote transcription fallback requires a configured Whisper endpoint.")
        if not is_valid_base_url(base_url):
            raise ProcessingFailed(f"Whisper endpoint {base_url} is not a valid base URL.")

        return await self.transcription_client.transcribe_regular(
            audio_path, job.settings.make_whisper_settings()
        )

    def _update_streaming_state(self, record_id: str, clean_text: str) -> None:
        chunk = " ".join(clean_text.split()[-STREAMING_CHUNK_WORDS:])
        with self._mutating_state(record_id) as state:
            state.is_streaming = True
            state.add_streaming_chunk(chunk)

    # Summarization

    async def _execute_summarization(self, job: ProcessingJob, operation: SummarizationOperation) -> None:
        record = self.record_store.get(job.record_id)
        if record is None:
            self._set_summary_error(job.record_id, str(RecordNotFound()))
            return

        if operation.automatic:
            logger.debug(f"Automatic summarization triggered for record {record.name}")

        if not record.transcription_text:
            self._set_summary_error(job.record_id, MISSING_TRANSCRIPT_MESSAGE)
            return

        clean_text = extract_clean_text(record.transcription_text)
        if not clean_text:
            self._set_summary_error(job.record_id, str(EmptyCleanText()))
            return

        try:
            summary = await self._generate_summary(clean_text, job.settings)
            trimmed_summary = summary.strip()
            if not trimmed_summary:
                raise SummaryEmpty()

            self.record_store.save_summary(record, trimmed_summary)
            self._set_summary_error(job.record_id, None)

            if job.settings.auto_generate_title:
                await self._maybe_generate_title(record, trimmed_summary, job.settings)
        except Exception as e:
            logger.error(f"Summarization failed for record {record.id}: {e}")
            self._set_summary_error(job.record_id, f"Error: {e}")

    async def _generate_summary(self, text: str, settings: SettingsSnapshot) -> str:
        chat_settings = settings.make_chat_settings()

        if not settings.use_chunking:
            prompt = format_chunk_prompt(settings.chunk_prompt, text)
            return await self.chat_client.complete(prompt, chat_settings)

        chunks = self.chunker(text, settings.chunk_size)
        logger.info(f"Summarizing {len(chunks)} chunk(s)")

        chunk_summaries = []
        for index, chunk in enumerate(chunks):
            prompt = format_chunk_prompt(settings.chunk_prompt, chunk)
            try:
                chunk_summaries.append(await self.chat_client.complete(prompt, chat_settings))
            except Exception as e:
                raise ChunkFailed(index, str(e)) from e

        if not chunk_summaries:
            raise SummaryEmpty()
        if len(chunk_summaries) == 1:
            return chunk_summaries[0]

        combined = "\n\n".join(chunk_summaries)
        prompt = format_combine_prompt(settings.summary_prompt, combined)
        return await self.chat_client.complete(prompt, chat_settings)

    async def _maybe_generate_title(self, record: Record, summary: str, settings: SettingsSnapshot) -> None:
        """Rename the record after its summary. Failures are only logged."""
        prompt = format_title_prompt(settings.title_prompt, summary)
        try:
            raw_title = await self.chat_client.complete(prompt, settings.make_chat_settings())
            title = sanitize_title(raw_title)

            if not title:
                logger.error("Generated title is empty after sanitization; keeping existing name.")
                return
            if record.name == title:
                logger.info(f"Generated title matches existing name '{title}'; no update needed.")
                return

            self.record_store.save_title(record, title)
            logger.info(f"Auto-generated title saved: {title}")
        except Exception as e:
            logger.error(f"Failed to generate title from summary: {e}")

    # State helpers

    @contextmanager
    def _mutating_state(self, record_id: str) -> Iterator[RecordProcessingState]:
        with self.lock:
            state = self.record_states.setdefault(record_id, RecordProcessingState())
            yield state
            self.publisher.publish_state(record_id, state.copy())

    def _set_transcription_error(self, record_id: str, message: Optional[str]) -> None:
        with self._mutating_state(record_id) as state:
            state.transcription_error = message

    def _set_summary_error(self, record_id: str, message: Optional[str]) -> None:
        with self._mutating_state(record_id) as state:
            state.summary_error = message
