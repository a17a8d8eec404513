"""Unit tests for RecordProcessingManager with fake clients."""

import os
import threading
import uuid

import pytest
from pubsub import pub

from recap.errors import StreamingNotSupported
from recap.models.record import Record
from recap.models.transcription import TranscriptionUpdate
from recap.services.processing_manager import (
    EMPTY_TRANSCRIPTION_MESSAGE,
    MISSING_TRANSCRIPT_MESSAGE,
    RecordProcessingManager,
)
from recap.services.state_publisher import ProcessingStatePublisher
from recap.transcription.base import AbstractLocalTranscriptionBackend

TWO_BLOCK_SRT = (
    "1\n00:00:00,000 --> 00:00:02,000\nHello\n\n"
    "2\n00:00:02,000 --> 00:00:04,000\nworld\n\n"
)


class FakeTranscriptionClient:
    """Stands in for WhisperTranscriptionClient."""

    def __init__(self, stream_updates=None, stream_text=None, stream_error=None, regular_text="regular text",
                 regular_error=None):
        self.stream_updates = stream_updates or []
        self.stream_text = stream_text
        self.stream_error = stream_error
        self.regular_text = regular_text
        self.regular_error = regular_error
        self.calls = []
        self.gate = None

    async def stream_transcription(self, audio_path, settings, on_update=None):
        self.calls.append(("stream", str(audio_path), settings))
        if self.stream_error is not None:
            raise self.stream_error
        for update in self.stream_updates:
            on_update(update)
        if self.stream_text is not None:
            return self.stream_text
        finals = [u.text for u in self.stream_updates if not u.is_partial]
        return finals[-1] if finals else ""

    async def transcribe_regular(self, audio_path, settings):
        self.calls.append(("regular", str(audio_path), settings))
        if self.gate is not None:
            self.gate.wait(5.0)
        if self.regular_error is not None:
            raise self.regular_error
        return self.regular_text


class FakeChatClient:
    """Records prompts and answers through ``respond(prompt)``."""

    def __init__(self, respond=None):
        self.respond = respond or (lambda prompt: f"summary of [{prompt}]")
        self.prompts = []
        self.settings = []

    async def complete(self, prompt, settings):
        self.prompts.append(prompt)
        self.settings.append(settings)
        return self.respond(prompt)


class FakeLocalBackend(AbstractLocalTranscriptionBackend):

    def __init__(self, supported=True, text="local text", error=None):
        self.supported = supported
        self.text = text
        self.error = error
        self.calls = 0

    def is_supported(self):
        return self.supported

    async def transcribe(self, audio_path, locale=None):
        self.calls += 1
        if self.error is not None:
            raise self.error
        return self.text


class StateRecorder:
    """Collects every published state and checks that one record is busy at most."""

    def __init__(self):
        self.topic = f"test_state_{uuid.uuid4().hex}"
        self.stream_topic = f"test_stream_{uuid.uuid4().hex}"
        self.busy = {}
        self.max_busy = 0
        self.states = []
        self.stream_updates = []
        pub.subscribe(self.on_state, self.topic)
        pub.subscribe(self.on_stream, self.stream_topic)

    def on_state(self, record_id, state):
        self.busy[record_id] = state.is_busy
        self.max_busy = max(self.max_busy, sum(self.busy.values()))
        self.states.append((record_id, state))

    def on_stream(self, record_id, update):
        self.stream_updates.append((record_id, update))

    def publisher(self):
        return ProcessingStatePublisher(state_topic=self.topic, stream_topic=self.stream_topic)


@pytest.fixture
def recorder():
    return StateRecorder()


@pytest.fixture
def make_manager(record_store, recorder):
    managers = []

    def factory(transcription=None, chat=None, **kwargs):
        manager = RecordProcessingManager(
            record_store,
            transcription_client=transcription or FakeTranscriptionClient(),
            chat_client=chat or FakeChatClient(),
            publisher=recorder.publisher(),
            **kwargs
        )
        managers.append(manager)
        return manager

    yield factory

    for manager in managers:
        manager.shutdown(timeout=5.0)


def partial(text):
    return TranscriptionUpdate(is_partial=True, text=text)


def final(text):
    return TranscriptionUpdate(is_partial=False, text=text)


@pytest.mark.unit
class TestTranscriptionJobs:
    """Test cases for transcription jobs."""

    def test_streaming_transcription_then_summary(self, make_manager, record_store, sample_audio_file,
                                                  app_settings, recorder):
        transcription = FakeTranscriptionClient(stream_updates=[partial("Hello"), partial("world"),
                                                                final("Hello world")])
        chat = FakeChatClient()
        manager = make_manager(transcription, chat)
        record = record_store.create_record(sample_audio_file)

        manager.enqueue_transcription(record, app_settings, automatic=True)
        assert manager.join(timeout=5.0)

        saved = record_store.get(record.id)
        assert saved.has_transcription
        assert saved.transcription_text == "Hello world"
        assert chat.prompts == ["Summarize: Hello world"]
        assert saved.summary_text == "summary of [Summarize: Hello world]"

        state = manager.state(record.id)
        assert not state.is_busy
        assert state.transcription_error is None
        assert state.summary_error is None
        assert not state.is_streaming
        assert state.streaming_chunks == []

        assert [u.text for _, u in recorder.stream_updates] == ["Hello", "world", "Hello world"]
        assert any(s.is_streaming and s.streaming_chunks for _, s in recorder.states)

    def test_streamed_result_is_saved(self, make_manager, record_store, sample_audio_file, app_settings,
                                      recorder):
        """The transcript saved is what the client returns, not a replay of the updates."""
        transcription = FakeTranscriptionClient(stream_updates=[partial("Hel"), partial("lo")],
                                                stream_text="  Hello there  ")
        manager = make_manager(transcription)
        record = record_store.create_record(sample_audio_file)

        manager.enqueue_transcription(record, app_settings, automatic=False)
        manager.join(timeout=5.0)

        assert record_store.get(record.id).transcription_text == "Hello there"
        assert [u.text for _, u in recorder.stream_updates] == ["Hel", "lo"]

    def test_without_auto_summary(self, make_manager, record_store, sample_audio_file, app_settings):
        chat = FakeChatClient()
        manager = make_manager(FakeTranscriptionClient(stream_updates=[final("text")]), chat)
        record = record_store.create_record(sample_audio_file)

        manager.enqueue_transcription(record, app_settings, automatic=False)
        manager.join(timeout=5.0)

        assert record_store.get(record.id).transcription_text == "text"
        assert chat.prompts == []

    def test_streaming_not_supported_falls_back(self, make_manager, record_store, sample_audio_file, app_settings):
        transcription = FakeTranscriptionClient(stream_error=StreamingNotSupported(), regular_text=TWO_BLOCK_SRT)
        chat = FakeChatClient()
        manager = make_manager(transcription, chat)
        record = record_store.create_record(sample_audio_file)

        manager.enqueue_transcription(record, app_settings, automatic=True)
        manager.join(timeout=5.0)

        assert [c[0] for c in transcription.calls] == ["stream", "regular"]
        assert record_store.get(record.id).transcription_text == TWO_BLOCK_SRT.strip()
        assert chat.prompts == ["Summarize: Hello world"]
        assert manager.state(record.id).transcription_error is None

    def test_no_stream_uses_regular_request(self, make_manager, record_store, sample_audio_file, app_settings):
        transcription = FakeTranscriptionClient()
        manager = make_manager(transcription)
        record = record_store.create_record(sample_audio_file)

        manager.enqueue_transcription(record, app_settings, automatic=False, prefer_streaming=False)
        manager.join(timeout=5.0)

        assert [c[0] for c in transcription.calls] == ["regular"]
        assert record_store.get(record.id).transcription_text == "regular text"

    def test_empty_transcription(self, make_manager, record_store, sample_audio_file, app_settings):
        chat = FakeChatClient()
        manager = make_manager(FakeTranscriptionClient(regular_text="   \n"), chat)
        record = record_store.create_record(sample_audio_file)

        manager.enqueue_transcription(record, app_settings, automatic=True, prefer_streaming=False)
        manager.join(timeout=5.0)

        saved = record_store.get(record.id)
        assert saved.has_transcription
        assert saved.transcription_text == ""
        assert manager.state(record.id).transcription_error == EMPTY_TRANSCRIPTION_MESSAGE
        assert chat.prompts == []

    def test_client_error_is_recorded(self, make_manager, record_store, sample_audio_file, app_settings):
        transcription = FakeTranscriptionClient(regular_error=RuntimeError("server exploded"))
        manager = make_manager(transcription)
        record = record_store.create_record(sample_audio_file)

        manager.enqueue_transcription(record, app_settings, automatic=True, prefer_streaming=False)
        manager.join(timeout=5.0)

        state = manager.state(record.id)
        assert state.transcription_error == "Error: server exploded"
        assert not state.is_transcribing
        assert not record_store.get(record.id).has_transcription

    def test_record_not_found(self, make_manager, app_settings):
        manager = make_manager()
        record = Record(name="unsaved")

        manager.enqueue_transcription(record, app_settings, automatic=True)
        manager.join(timeout=5.0)

        assert manager.state(record.id).transcription_error == "Record not found. It may have been deleted."

    def test_missing_audio_file(self, make_manager, record_store, sample_audio_file, app_settings):
        manager = make_manager()
        record = record_store.create_record(sample_audio_file)
        os.remove(record.file_path)

        manager.enqueue_transcription(record, app_settings, automatic=True)
        manager.join(timeout=5.0)

        assert manager.state(record.id).transcription_error == "Audio file not found on disk."

    def test_invalid_fallback_endpoint(self, make_manager, record_store, sample_audio_file, app_settings):
        transcription = FakeTranscriptionClient(stream_error=StreamingNotSupported())
        manager = make_manager(transcription)
        record = record_store.create_record(sample_audio_file)
        app_settings.whisper_base_url = "not a url"

        manager.enqueue_transcription(record, app_settings, automatic=False)
        manager.join(timeout=5.0)

        assert "not a valid base URL" in manager.state(record.id).transcription_error
        assert [c[0] for c in transcription.calls] == ["stream"]


@pytest.mark.unit
class TestLocalEngine:
    """Test cases for the on-device transcription path."""

    def test_local_engine_used(self, make_manager, record_store, sample_audio_file, app_settings):
        backend = FakeLocalBackend()
        transcription = FakeTranscriptionClient()
        manager = make_manager(transcription, local_backend=backend)
        record = record_store.create_record(sample_audio_file)
        app_settings.whisper_provider = "local"

        manager.enqueue_transcription(record, app_settings, automatic=False)
        manager.join(timeout=5.0)

        assert backend.calls == 1
        assert transcription.calls == []
        assert record_store.get(record.id).transcription_text == "local text"

    @pytest.mark.parametrize("backend", [
        None,
        FakeLocalBackend(supported=False),
        FakeLocalBackend(error=RuntimeError("engine crashed")),
    ])
    def test_local_engine_falls_back_to_remote(self, make_manager, record_store, sample_audio_file,
                                               app_settings, backend):
        transcription = FakeTranscriptionClient()
        manager = make_manager(transcription, local_backend=backend)
        record = record_store.create_record(sample_audio_file)
        app_settings.whisper_provider = "local"

        manager.enqueue_transcription(record, app_settings, automatic=False)
        manager.join(timeout=5.0)

        assert [c[0] for c in transcription.calls] == ["regular"]
        assert record_store.get(record.id).transcription_text == "regular text"


@pytest.mark.unit
class TestSummarizationJobs:
    """Test cases for summarization jobs."""

    def transcribed_record(self, record_store, sample_audio_file, text):
        record = record_store.create_record(sample_audio_file)
        record_store.save_transcript(record, text)
        return record

    def test_chunks_are_summarized_and_combined(self, make_manager, record_store, sample_audio_file,
                                                app_settings):
        chat = FakeChatClient(respond=lambda prompt: prompt.split(": ", 1)[1].split()[0])
        manager = make_manager(chat=chat, chunker=lambda text, size: ["alpha part", "beta part"])
        record = self.transcribed_record(record_store, sample_audio_file, "alpha part\n\nbeta part")

        manager.enqueue_summarization(record, app_settings, automatic=False)
        manager.join(timeout=5.0)

        assert chat.prompts == ["Summarize: alpha part", "Summarize: beta part", "Combine: alpha\n\nbeta"]
        assert record_store.get(record.id).summary_text == "alpha"

    def test_without_chunking_uses_chunk_prompt_once(self, make_manager, record_store, sample_audio_file,
                                                     app_settings):
        chat = FakeChatClient()
        manager = make_manager(chat=chat)
        record = self.transcribed_record(record_store, sample_audio_file, "word " * 100)
        app_settings.use_chunking = False

        manager.enqueue_summarization(record, app_settings, automatic=False)
        manager.join(timeout=5.0)

        assert len(chat.prompts) == 1
        assert chat.prompts[0].startswith("Summarize: word word")

    def test_chunk_failure(self, make_manager, record_store, sample_audio_file, app_settings):
        failures = [RuntimeError("boom")]

        def respond(prompt):
            if "second" in prompt and failures:
                raise failures.pop()
            return "ok"

        chat = FakeChatClient(respond)
        manager = make_manager(chat=chat,
                               chunker=lambda text, size: ["first chunk", "second chunk", "third chunk"])
        record = self.transcribed_record(record_store, sample_audio_file, "some text")

        manager.enqueue_summarization(record, app_settings, automatic=False)
        manager.join(timeout=5.0)

        assert manager.state(record.id).summary_error == "Error: Error summarizing chunk 2: boom"
        assert not record_store.get(record.id).has_summary
        assert chat.prompts == ["Summarize: first chunk", "Summarize: second chunk"]

        # A new request starts over from the first chunk
        chat.prompts.clear()
        manager.enqueue_summarization(record_store.get(record.id), app_settings, automatic=False)
        manager.join(timeout=5.0)

        assert chat.prompts == [
            "Summarize: first chunk",
            "Summarize: second chunk",
            "Summarize: third chunk",
            "Combine: ok\n\nok\n\nok",
        ]
        assert manager.state(record.id).summary_error is None
        assert record_store.get(record.id).summary_text == "ok"

    def test_empty_summary(self, make_manager, record_store, sample_audio_file, app_settings):
        manager = make_manager(chat=FakeChatClient(lambda prompt: "  "))
        record = self.transcribed_record(record_store, sample_audio_file, "some text")

        manager.enqueue_summarization(record, app_settings, automatic=False)
        manager.join(timeout=5.0)

        assert manager.state(record.id).summary_error == "Error: Summary is empty."

    def test_missing_transcript(self, make_manager, record_store, sample_audio_file, app_settings):
        chat = FakeChatClient()
        manager = make_manager(chat=chat)
        record = record_store.create_record(sample_audio_file)

        manager.enqueue_summarization(record, app_settings, automatic=False)
        manager.join(timeout=5.0)

        assert manager.state(record.id).summary_error == MISSING_TRANSCRIPT_MESSAGE
        assert chat.prompts == []

    def test_srt_without_text(self, make_manager, record_store, sample_audio_file, app_settings):
        manager = make_manager()
        record = self.transcribed_record(
            record_store, sample_audio_file,
            "1\n00:00:00,000 --> 00:00:01,000\n\n2\n00:00:01,000 --> 00:00:02,000\n",
        )

        manager.enqueue_summarization(record, app_settings, automatic=False)
        manager.join(timeout=5.0)

        assert manager.state(record.id).summary_error == "Transcription text is empty after processing."

    def test_title_generated(self, make_manager, record_store, sample_audio_file, app_settings):
        def respond(prompt):
            return '"**Weekly Sync**"' if prompt.startswith("Title for") else "A summary"

        manager = make_manager(chat=FakeChatClient(respond))
        record = self.transcribed_record(record_store, sample_audio_file, "some text")
        app_settings.auto_generate_title = True

        manager.enqueue_summarization(record, app_settings, automatic=False)
        manager.join(timeout=5.0)

        saved = record_store.get(record.id)
        assert saved.name == "Weekly Sync"
        assert saved.summary_text == "A summary"

    def test_title_failure_is_swallowed(self, make_manager, record_store, sample_audio_file, app_settings):
        def respond(prompt):
            if prompt.startswith("Title for"):
                raise RuntimeError("no titles today")
            return "A summary"

        manager = make_manager(chat=FakeChatClient(respond))
        record = self.transcribed_record(record_store, sample_audio_file, "some text")
        app_settings.auto_generate_title = True

        manager.enqueue_summarization(record, app_settings, automatic=False)
        manager.join(timeout=5.0)

        saved = record_store.get(record.id)
        assert saved.name == "meeting"
        assert saved.summary_text == "A summary"
        assert manager.state(record.id).summary_error is None


@pytest.mark.unit
class TestQueue:
    """Test cases for ordering, exclusivity and shutdown."""

    def test_fifo_and_single_flight(self, make_manager, record_store, sample_audio_file, app_settings,
                                    recorder):
        transcription = FakeTranscriptionClient(stream_updates=[final("spoken words")])
        manager = make_manager(transcription)
        records = [record_store.create_record(sample_audio_file, name=f"r{i}") for i in range(4)]

        for record in records:
            manager.enqueue_transcription(record, app_settings, automatic=True)
        assert manager.join(timeout=10.0)

        started = [rid for rid, state in recorder.states if state.is_transcribing]
        first_seen = list(dict.fromkeys(started))
        assert first_seen == [r.id for r in records]
        assert recorder.max_busy == 1
        assert all(record_store.get(r.id).has_summary for r in records)

    def test_pending_counts(self, make_manager, record_store, sample_audio_file, app_settings):
        transcription = FakeTranscriptionClient()
        transcription.gate = threading.Event()
        manager = make_manager(transcription)
        first = record_store.create_record(sample_audio_file)
        second = record_store.create_record(sample_audio_file)

        manager.enqueue_transcription(first, app_settings, automatic=False, prefer_streaming=False)
        manager.enqueue_transcription(second, app_settings, automatic=False, prefer_streaming=False)
        manager.enqueue_summarization(second, app_settings, automatic=False)

        state = manager.state(second.id)
        assert state.pending_transcription_count == 1
        assert state.pending_summarization_count == 1

        transcription.gate.set()
        manager.join(timeout=5.0)

        state = manager.state(second.id)
        assert state.pending_transcription_count == 0
        assert state.pending_summarization_count == 0

    def test_settings_are_snapshotted(self, make_manager, record_store, sample_audio_file, app_settings):
        transcription = FakeTranscriptionClient()
        transcription.gate = threading.Event()
        chat = FakeChatClient()
        manager = make_manager(transcription, chat)
        blocker = record_store.create_record(sample_audio_file)
        record = record_store.create_record(sample_audio_file)
        record_store.save_transcript(record, "some text")

        manager.enqueue_transcription(blocker, app_settings, automatic=False, prefer_streaming=False)
        manager.enqueue_summarization(record, app_settings, automatic=False)
        app_settings.openai_model = "changed-model"
        app_settings.chunk_prompt = "Changed: {transcription}"
        transcription.gate.set()
        manager.join(timeout=5.0)

        assert chat.prompts == ["Summarize: some text"]
        assert chat.settings[0].model == "test-model"

    def test_shutdown_rejects_new_jobs(self, record_store, sample_audio_file, app_settings, recorder):
        transcription = FakeTranscriptionClient()
        manager = RecordProcessingManager(record_store, transcription_client=transcription,
                                          chat_client=FakeChatClient(), publisher=recorder.publisher())
        record = record_store.create_record(sample_audio_file)

        assert manager.shutdown(timeout=5.0)
        manager.enqueue_transcription(record, app_settings, automatic=False)

        assert manager.task_queue.qsize() == 0
        assert transcription.calls == []
        assert not manager.worker_thread.is_alive()

    def test_shutdown_drains_follow_up_jobs(self, record_store, sample_audio_file, app_settings, recorder):
        chat = FakeChatClient()
        manager = RecordProcessingManager(
            record_store,
            transcription_client=FakeTranscriptionClient(stream_updates=[final("words")]),
            chat_client=chat,
            publisher=recorder.publisher(),
        )
        record = record_store.create_record(sample_audio_file)

        manager.enqueue_transcription(record, app_settings, automatic=True)
        assert manager.shutdown(timeout=5.0)

        assert len(chat.prompts) == 1
        assert record_store.get(record.id).has_summary

    def test_follow_up_after_stopped_worker_is_dropped(self, record_store, sample_audio_file, app_settings,
                                                       recorder):
        """A transcription outliving the shutdown timeout does not leave a summary counted as pending."""
        transcription = FakeTranscriptionClient()
        transcription.gate = threading.Event()
        chat = FakeChatClient()
        manager = RecordProcessingManager(record_store, transcription_client=transcription,
                                          chat_client=chat, publisher=recorder.publisher())
        record = record_store.create_record(sample_audio_file)

        manager.enqueue_transcription(record, app_settings, automatic=True, prefer_streaming=False)
        assert not manager.shutdown(timeout=0.05)

        transcription.gate.set()
        manager.worker_thread.join(5.0)

        assert not manager.worker_thread.is_alive()
        assert record_store.get(record.id).transcription_text == "regular text"
        assert manager.state(record.id).pending_summarization_count == 0
        assert chat.prompts == []
