"""Record data model."""

import uuid
from dataclasses import dataclass, field, asdict
from datetime import datetime
from pathlib import Path
from typing import Optional, Dict, Any


@dataclass
class Record:
    """A recording and the text derived from it."""
    name: str
    file_path: Optional[str] = None
    id: str = field(default_factory=lambda: uuid.uuid4().hex)
    date: datetime = field(default_factory=datetime.now)
    duration: float = 0.0
    has_transcription: bool = False
    transcription_text: Optional[str] = None
    summary_text: Optional[str] = None

    @property
    def has_summary(self) -> bool:
        return bool(self.summary_text and self.summary_text.strip())

    @property
    def has_valid_file(self) -> bool:
        return bool(self.file_path) and Path(self.file_path).is_file()

    def to_dict(self) -> Dict[str, Any]:
        data = asdict(self)
        data["date"] = self.date.isoformat()
        return data

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Record":
        values = dict(data)
        if isinstance(values.get("date"), str):
            values["date"] = datetime.fromisoformat(values["date"])
        return cls(**values)
