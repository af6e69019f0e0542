"""Framework-agnostic domain models for the transcription backend.

The HTTP layer converts these into pydantic DTOs in mappers.py; nothing in
the processing code depends on FastAPI or pydantic.
"""

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from pathlib import Path
from typing import BinaryIO, Optional


@dataclass(frozen=True)
class AudioSource:
    """Caller-owned audio stream plus metadata. Read-only to the core."""
    stream: BinaryIO
    name: str
    size: Optional[int] = None
    content_type: Optional[str] = None

    @property
    def suffix(self) -> str:
        return Path(self.name).suffix or ".bin"


@dataclass(frozen=True)
class SegmentSpec:
    """One transcoded slice of the input, in temporal order."""
    index: int
    file_path: Path
    start_offset_seconds: float


@dataclass
class SubSegment:
    """A backend-provided timed piece of one segment's transcript."""
    text: str
    start: float = 0.0
    end: float = 0.0


@dataclass
class SegmentTranscription:
    """Raw backend result for a single segment."""
    text: str
    segments: Optional[list[SubSegment]] = None


@dataclass(frozen=True)
class TranscriptChunk:
    """Transcript for one segment with its nominal start/end offsets."""
    index: int
    start_seconds: float
    end_seconds: float
    text: str


@dataclass
class FullTranscript:
    full_text: str
    chunks: list[TranscriptChunk] = field(default_factory=list)


class ConnectionState(str, Enum):
    IDLE = "idle"
    CONNECTING = "connecting"
    LIVE = "live"
    STOPPED = "stopped"


@dataclass(frozen=True)
class FinalizedBlock:
    """An append-only entry of the realtime transcript log."""
    timestamp: datetime
    label: Optional[str]
    text: str

    def render(self) -> str:
        stamp = self.timestamp.strftime("%H:%M:%S")
        if self.text == MARKER_TEXT:
            return f"[{stamp}] {self.label} {self.text}" if self.label else f"[{stamp}] {self.text}"
        header = f"[{stamp}] {self.label}" if self.label else f"[{stamp}]"
        return f"{header}\n{self.text}"


MARKER_TEXT = "— MARCA —"
