"""Rich rendering of records, processing state and streamed text."""

from typing import Iterable, List

from rich.console import Console
from rich.panel import Panel
from rich.table import Table
from rich.text import Text

from ..models.processing import RecordProcessingState
from ..models.record import Record
from ..models.transcription import TranscriptionUpdate


def _flag(value: bool) -> str:
    return "yes" if value else "-"


def render_records(records: Iterable[Record]) -> Table:
    """Table listing records with their transcript and summary status."""
    table = Table(title="Records", show_header=True, header_style="bold magenta")
    table.add_column("ID", style="cyan", no_wrap=True)
    table.add_column("Name")
    table.add_column("Date", style="dim")
    table.add_column("Transcript", justify="center")
    table.add_column("Summary", justify="center")

    for record in records:
        table.add_row(
            record.id,
            record.name,
            record.date.strftime("%Y-%m-%d %H:%M"),
            _flag(record.has_transcription),
            _flag(record.has_summary),
        )
    return table


def render_state(record: Record, state: RecordProcessingState) -> Panel:
    """Panel describing where a record stands in processing."""
    table = Table(show_header=False, box=None)
    table.add_column("Field", style="bold")
    table.add_column("Value")

    table.add_row("Transcribing", _flag(state.is_transcribing))
    table.add_row("Summarizing", _flag(state.is_summarizing))
    table.add_row("Queued", f"{state.pending_transcription_count} transcription, "
                            f"{state.pending_summarization_count} summary")
    if state.is_streaming and state.streaming_chunks:
        table.add_row("Live", Text(" ".join(state.streaming_chunks), style="italic"))
    if state.transcription_error:
        table.add_row("Transcription error", Text(state.transcription_error, style="bold red"))
    if state.summary_error:
        table.add_row("Summary error", Text(state.summary_error, style="bold red"))

    return Panel(table, title=record.name, border_style="yellow" if state.is_busy else "blue")


def render_result(record: Record) -> List[Panel]:
    """Panels with the saved transcript and summary of a record."""
    panels = []
    if record.transcription_text:
        panels.append(Panel(record.transcription_text, title="Transcript", border_style="green"))
    if record.summary_text:
        panels.append(Panel(record.summary_text, title="Summary", border_style="magenta"))
    return panels


def print_update(console: Console, update: TranscriptionUpdate) -> None:
    if update.is_partial:
        console.print(update.text, style="dim")
    else:
        console.print(Panel(update.text, title="Final transcript", border_style="green"))
