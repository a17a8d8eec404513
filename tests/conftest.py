"""Pytest configuration and fixtures for Recap tests."""

import pytest
import tempfile
import logging
from contextlib import asynccontextmanager
from pathlib import Path

from aiohttp import web
from aiohttp.test_utils import TestServer

from recap.models.settings import AppSettings, ChatSettings, WhisperSettings
from recap.storage.record_store import RecordStore


# Configure logging for tests
logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)


def pytest_configure(config):
    config.addinivalue_line("markers", "unit: fast tests without external services")


@pytest.fixture
def temp_data_dir():
    """Create temporary directory for test data."""
    with tempfile.TemporaryDirectory() as temp_dir:
        yield temp_dir


@pytest.fixture
def sample_audio_file(temp_data_dir):
    """A small file standing in for a recording; servers never decode it."""
    file_path = Path(temp_data_dir) / "meeting.m4a"
    file_path.write_bytes(b"\x00\x00\x00\x20ftypM4A " + b"\x01" * 256)
    return str(file_path)


@pytest.fixture
def record_store(temp_data_dir):
    return RecordStore(str(Path(temp_data_dir) / "store"))


@pytest.fixture
def app_settings():
    """Settings pointing at an unreachable local server; tests swap in fakes."""
    return AppSettings(
        whisper_base_url="http://127.0.0.1:9/v1/",
        whisper_model="whisper-1",
        openai_base_url="http://127.0.0.1:9/v1/",
        openai_model="test-model",
        chunk_size=100,
        chunk_prompt="Summarize: {transcription}",
        summary_prompt="Combine: {summaries}",
        title_prompt="Title for: {summary}",
    )


@asynccontextmanager
async def serve(handler, path="/v1/audio/transcriptions", method="POST"):
    """Run an in-process aiohttp server with a single route.

    Yields the base URL to point clients at.
    """
    app = web.Application()
    app.router.add_route(method, path, handler)
    server = TestServer(app)
    await server.start_server()
    try:
        yield str(server.make_url("/v1/"))
    finally:
        await server.close()


def whisper_settings_for(base_url, api_key="", language=""):
    return WhisperSettings(base_url=base_url, api_key=api_key, model="whisper-1", language=language)


def chat_settings_for(base_url, api_key=""):
    return ChatSettings(base_url=base_url, api_key=api_key, model="test-model")


def sse(*payloads):
    """Encode payloads as server-sent event blocks."""
    return "".join(f"data: {payload}\n\n" for payload in payloads).encode("utf-8")
