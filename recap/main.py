"""Main application entry point for Recap."""

import sys
import asyncio
import argparse
import logging
from pathlib import Path

from pubsub import pub
from rich.console import Console

from .config import RecapConfig
from .models.record import Record
from .models.processing import RecordProcessingState
from .models.settings import SettingsSnapshot
from .models.transcription import TranscriptionUpdate
from .services.model_service import ModelService
from .services.processing_manager import RecordProcessingManager
from .services.state_publisher import STATE_TOPIC, STREAM_TOPIC
from .storage.record_store import RecordStore
from .transcription.whisper_client import WhisperTranscriptionClient
from .ui.status_view import print_update, render_records, render_result, render_state

logger = logging.getLogger(__name__)

DEFAULT_CONFIG_PATH = "recap.yaml"


class App:

    def __init__(self, config_path: str, log_level: str = None):
        # Load configuration
        self.config = RecapConfig(config_path)
        # Command line overrides config
        level = log_level or self.config.get('logging.level', 'INFO')
        setup_logging(self.config, level)

        self.console = Console()
        self.settings = self.config.build_app_settings()
        self.record_store = RecordStore(self.config.get_data_directory())
        self.transcription_client = WhisperTranscriptionClient()
        self.manager = None

    def start_manager(self) -> RecordProcessingManager:
        self.manager = RecordProcessingManager(
            self.record_store,
            transcription_client=self.transcription_client,
        )
        # pypubsub keeps weak references, so listeners live on the instance
        pub.subscribe(self.on_stream_update, STREAM_TOPIC)
        pub.subscribe(self.on_state_change, STATE_TOPIC)
        return self.manager

    def on_stream_update(self, record_id: str, update: TranscriptionUpdate) -> None:
        if update.is_partial:
            self.console.print(update.text, style="dim")

    def on_state_change(self, record_id: str, state: RecordProcessingState) -> None:
        if state.transcription_error:
            logger.debug(f"Record {record_id} transcription error: {state.transcription_error}")
        if state.summary_error:
            logger.debug(f"Record {record_id} summary error: {state.summary_error}")

    def transcribe(self, audio_path: str, name: str = None, stream: bool = True, auto: bool = True) -> Record:
        record = self.record_store.create_record(audio_path, name=name)
        self.console.print(f"Created record {record.id}", style="blue")

        manager = self.start_manager()
        manager.enqueue_transcription(record, self.settings, automatic=auto, prefer_streaming=stream)
        return self._wait_and_report(record.id)

    def summarize(self, record_id: str) -> Record:
        record = self._load(record_id)
        manager = self.start_manager()
        manager.enqueue_summarization(record, self.settings, automatic=False)
        return self._wait_and_report(record_id)

    async def realtime(self, audio_path: str) -> str:
        whisper_settings = SettingsSnapshot.from_settings(self.settings).make_whisper_settings()
        final_text = ""
        async for update in self.transcription_client.transcribe_realtime(audio_path, whisper_settings):
            print_update(self.console, update)
            if not update.is_partial:
                final_text = update.text
        return final_text

    def list_records(self) -> None:
        self.console.print(render_records(self.record_store.list_records()))

    def delete_record(self, record_id: str) -> None:
        if not self.record_store.delete(record_id):
            raise ValueError(f"Record {record_id} not found")
        self.console.print(f"Deleted record {record_id}", style="blue")

    async def list_models(self, llm: bool = False) -> None:
        snapshot = SettingsSnapshot.from_settings(self.settings)
        if llm:
            base_url, api_key = snapshot.openai_base_url, snapshot.openai_api_key
        else:
            base_url, api_key = snapshot.resolved_whisper_base_url, snapshot.resolved_whisper_api_key

        for model_id in await ModelService().list_models(base_url, api_key):
            self.console.print(model_id)

    def cleanup(self):
        if self.manager is not None:
            self.manager.shutdown()
            self.manager = None

    def _load(self, record_id: str) -> Record:
        record = self.record_store.get(record_id)
        if record is None:
            raise ValueError(f"Record {record_id} not found")
        return record

    def _wait_and_report(self, record_id: str) -> Record:
        self.manager.join()
        record = self._load(record_id)
        self.console.print(render_state(record, self.manager.state(record_id)))
        for panel in render_result(record):
            self.console.print(panel)
        return record


def setup_logging(config, level: str = "INFO") -> None:
    """Set up logging configuration from YAML config."""
    log_file_path = config.get('logging.file_path', 'data/logs/recap.log')
    console_output = config.get('logging.console_output', True)

    log_dir = Path(log_file_path).parent
    log_dir.mkdir(parents=True, exist_ok=True)

    handlers = []

    # File handler - always write to file
    file_handler = logging.FileHandler(log_file_path)
    file_handler.setLevel(logging.DEBUG)
    file_formatter = logging.Formatter(
        '%(asctime)s - %(name)s - %(levelname)s - %(funcName)s:%(lineno)d - %(message)s'
    )
    file_handler.setFormatter(file_formatter)
    handlers.append(file_handler)

    # Console handler - only if enabled in config
    if console_output:
        console_handler = logging.StreamHandler(sys.stderr)
        console_handler.setLevel(logging.WARNING)
        console_formatter = logging.Formatter('%(asctime)s - %(name)s - %(levelname)s - %(message)s')
        console_handler.setFormatter(console_formatter)
        handlers.append(console_handler)

    root_logger = logging.getLogger()
    root_logger.handlers.clear()
    root_logger.setLevel(getattr(logging, level.upper()))
    for handler in handlers:
        root_logger.addHandler(handler)

    logger = logging.getLogger(__name__)
    logger.info("="*50)
    logger.info("Recap application starting up")
    logger.info(f"Log file: {log_file_path}")
    logger.info(f"Log level set to: {level}")
    logger.info("="*50)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="Recap - Transcribe recordings and summarize them"
    )

    parser.add_argument(
        "--config",
        type=str,
        default=DEFAULT_CONFIG_PATH,
        help=f"Path to configuration YAML file (default: {DEFAULT_CONFIG_PATH})"
    )

    parser.add_argument(
        "--log-level",
        type=str,
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        help="Set logging level (overrides config)"
    )

    parser.add_argument(
        "--version",
        action="version",
        version="Recap v0.1.0"
    )

    subparsers = parser.add_subparsers(dest="command", required=True)

    transcribe = subparsers.add_parser("transcribe", help="Import an audio file and transcribe it")
    transcribe.add_argument("audio", help="Audio file to transcribe")
    transcribe.add_argument("--name", help="Record name (default: file name)")
    transcribe.add_argument("--no-stream", action="store_true", help="Use a regular request instead of streaming")
    transcribe.add_argument("--no-auto", action="store_true", help="Do not summarize after transcription")

    summarize = subparsers.add_parser("summarize", help="Summarize an already transcribed record")
    summarize.add_argument("record_id", help="Record ID")

    realtime = subparsers.add_parser("realtime", help="Stream a transcription to the terminal without saving")
    realtime.add_argument("audio", help="Audio file to transcribe")

    subparsers.add_parser("records", help="List saved records")

    delete = subparsers.add_parser("delete", help="Delete a record and its imported audio")
    delete.add_argument("record_id", help="Record ID")

    models = subparsers.add_parser("models", help="List models offered by the configured server")
    models.add_argument("--llm", action="store_true", help="Query the LLM server instead of the transcription server")

    return parser


def main() -> None:
    """Main entry point for Recap application."""
    args = build_parser().parse_args()

    app = None
    try:
        app = App(args.config, args.log_level)
        if args.command == "transcribe":
            app.transcribe(args.audio, name=args.name, stream=not args.no_stream, auto=not args.no_auto)
        elif args.command == "summarize":
            app.summarize(args.record_id)
        elif args.command == "realtime":
            asyncio.run(app.realtime(args.audio))
        elif args.command == "records":
            app.list_records()
        elif args.command == "delete":
            app.delete_record(args.record_id)
        elif args.command == "models":
            asyncio.run(app.list_models(llm=args.llm))
    except KeyboardInterrupt:
        print("\nInterrupted")
    except Exception as e:
        print(f"Error: {e}", file=sys.stderr)
        logging.error(f"Application error: {e}")
        sys.exit(1)
    finally:
        if app is not None:
            app.cleanup()


if __name__ == "__main__":
    main()
