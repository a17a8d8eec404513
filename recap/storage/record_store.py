"""File-based storage of records and their audio."""

import json
import logging
import shutil
import threading
from pathlib import Path
from typing import List, Optional, Union

from ..models.record import Record

logger = logging.getLogger(__name__)


class RecordStore:
    """Stores each record as a JSON file next to a copy of its audio."""

    def __init__(self, data_dir: str = "./data"):
        """Initialize record store with data directory.

        Args:
            data_dir: Base directory for storing all data
        """
        self.data_dir = Path(data_dir)
        self.records_dir = self.data_dir / "records"
        self.audio_dir = self.data_dir / "audio"
        self.lock = threading.Lock()

        self._ensure_directories()

        logger.info(f"RecordStore initialized with data_dir: {self.data_dir}")

    def _ensure_directories(self) -> None:
        """Ensure all required directories exist."""
        for directory in [self.data_dir, self.records_dir, self.audio_dir]:
            directory.mkdir(parents=True, exist_ok=True)
            logger.debug(f"Ensured directory exists: {directory}")

    def create_record(self, audio_path: Union[str, Path], name: Optional[str] = None,
                      copy_audio: bool = True) -> Record:
        """Create a record for an audio file.

        Args:
            audio_path: Existing audio file
            name: Display name; defaults to the file name without extension
            copy_audio: Copy the audio into the data directory

        Returns:
            The saved record
        """
        source = Path(audio_path)
        record = Record(name=name or source.stem)

        if copy_audio:
            target = self.audio_dir / f"{record.id}{source.suffix}"
            shutil.copyfile(source, target)
            record.file_path = str(target)
        else:
            record.file_path = str(source.absolute())

        self.save(record)
        logger.info(f"Created record {record.id} for {source.name}")
        return record

    def get(self, record_id: str) -> Optional[Record]:
        """Load a record, or None if it does not exist."""
        record_file = self._record_file(record_id)
        with self.lock:
            if not record_file.exists():
                logger.warning(f"Record file not found: {record_file}")
                return None
            with open(record_file, "r", encoding="utf-8") as f:
                data = json.load(f)
        return Record.from_dict(data)

    def save(self, record: Record) -> str:
        """Write a record to disk and return the path of its JSON file."""
        record_file = self._record_file(record.id)
        tmp_file = record_file.with_suffix(".json.tmp")
        with self.lock:
            with open(tmp_file, "w", encoding="utf-8") as f:
                json.dump(record.to_dict(), f, indent=2, ensure_ascii=False)
            tmp_file.replace(record_file)
        logger.debug(f"Record saved: {record_file}")
        return str(record_file)

    def save_transcript(self, record: Record, text: str) -> None:
        record.has_transcription = True
        record.transcription_text = text
        self.save(record)

    def save_summary(self, record: Record, summary: str) -> None:
        record.summary_text = summary
        self.save(record)

    def save_title(self, record: Record, title: str) -> None:
        record.name = title
        self.save(record)

    def list_records(self) -> List[Record]:
        """List all records, oldest first."""
        records = []
        for record_file in sorted(self.records_dir.glob("*.json")):
            record = self.get(record_file.stem)
            if record is not None:
                records.append(record)
        records.sort(key=lambda r: r.date)
        return records

    def delete(self, record_id: str) -> bool:
        record = self.get(record_id)
        if record is None:
            return False
        with self.lock:
            self._record_file(record_id).unlink(missing_ok=True)
            if record.file_path and Path(record.file_path).parent == self.audio_dir:
                Path(record.file_path).unlink(missing_ok=True)
        logger.info(f"Deleted record {record_id}")
        return True

    def audio_path_for(self, record: Record) -> Optional[Path]:
        """Readable audio file of a record, or None if it is missing."""
        if record.has_valid_file:
            return Path(record.file_path)
        return None

    def _record_file(self, record_id: str) -> Path:
        return self.records_dir / f"{record_id}.json"
