"""Unit tests for the command line entry point and terminal views."""

import logging
from pathlib import Path

import pytest
from rich.console import Console

from recap.main import App, build_parser
from recap.models.processing import RecordProcessingState
from recap.models.record import Record
from recap.ui.status_view import render_records, render_result, render_state


def render(renderable):
    console = Console(record=True, width=120)
    console.print(renderable)
    return console.export_text()


@pytest.mark.unit
class TestParser:

    def test_transcribe_arguments(self):
        args = build_parser().parse_args(["transcribe", "talk.m4a", "--name", "Talk", "--no-stream"])

        assert args.command == "transcribe"
        assert args.audio == "talk.m4a"
        assert args.name == "Talk"
        assert args.no_stream
        assert not args.no_auto
        assert args.config == "recap.yaml"

    def test_global_options(self):
        args = build_parser().parse_args(["--config", "other.yaml", "--log-level", "DEBUG", "models", "--llm"])

        assert args.config == "other.yaml"
        assert args.log_level == "DEBUG"
        assert args.llm

    def test_delete_arguments(self):
        args = build_parser().parse_args(["delete", "abc123"])

        assert args.command == "delete"
        assert args.record_id == "abc123"

    def test_command_required(self):
        with pytest.raises(SystemExit):
            build_parser().parse_args([])


@pytest.mark.unit
class TestStatusView:

    def test_records_table(self):
        record = Record(name="Standup", transcription_text="hi", has_transcription=True)

        output = render(render_records([record]))

        assert "Standup" in output
        assert record.id in output

    def test_state_panel_shows_errors_and_live_text(self):
        state = RecordProcessingState(is_transcribing=True, is_streaming=True,
                                      streaming_chunks=["hello there"], summary_error="Error: boom")

        output = render(render_state(Record(name="Call"), state))

        assert "Call" in output
        assert "hello there" in output
        assert "Error: boom" in output

    def test_state_panel_highlights_busy_records(self):
        busy = render_state(Record(name="Call"), RecordProcessingState(is_summarizing=True))
        idle = render_state(Record(name="Call"), RecordProcessingState())

        assert busy.border_style == "yellow"
        assert idle.border_style == "blue"

    def test_result_panels(self):
        record = Record(name="x", transcription_text="the words", summary_text="the gist")

        panels = render_result(record)

        assert len(panels) == 2
        assert "the gist" in render(panels[1])


@pytest.fixture
def app(temp_data_dir):
    config_path = Path(temp_data_dir) / "recap.yaml"
    config_path.write_text(
        "storage:\n  data_directory: data\n"
        "logging:\n  file_path: logs/recap.log\n  console_output: false\n",
        encoding="utf-8",
    )

    app = App(str(config_path))
    app.console = Console(record=True, width=120)
    yield app

    app.cleanup()
    for handler in logging.getLogger().handlers[:]:
        handler.close()
        logging.getLogger().removeHandler(handler)


@pytest.mark.unit
class TestApp:

    def test_records_command(self, app, temp_data_dir, sample_audio_file):
        record = app.record_store.create_record(sample_audio_file, name="Imported")
        app.list_records()

        output = app.console.export_text()
        assert "Imported" in output
        assert record.id in output
        assert (Path(temp_data_dir) / "logs" / "recap.log").exists()

    def test_delete_command(self, app, sample_audio_file):
        record = app.record_store.create_record(sample_audio_file, name="Old")

        app.delete_record(record.id)

        assert app.record_store.get(record.id) is None
        assert not Path(record.file_path).exists()
        assert f"Deleted record {record.id}" in app.console.export_text()

    def test_delete_unknown_record(self, app):
        with pytest.raises(ValueError):
            app.delete_record("missing")
