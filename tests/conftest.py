"""Shared fakes for the transcription ports."""

import io
from pathlib import Path
from typing import Optional

import pytest

from domain.errors import SegmentationFailure
from domain.models import SegmentSpec, SegmentTranscription
from ports.audio import AudioProcessingPort
from ports.progress import ProgressPort
from ports.transcription import TranscriptionPort


class FakeAudioAdapter(AudioProcessingPort):
    """Writes `count` segment files instead of running ffmpeg."""

    def __init__(self, count: int):
        self.count = count
        self.calls: list[tuple[Path, int, Path]] = []

    def split_into_segments(self, input_path, segment_seconds, output_dir):
        self.calls.append((input_path, segment_seconds, output_dir))
        if self.count == 0:
            raise SegmentationFailure("ffmpeg produced no segments")
        specs = []
        for i in range(self.count):
            path = output_dir / f"segment_{i:04d}.mp3"
            path.write_bytes(b"ID3")
            specs.append(SegmentSpec(index=i, file_path=path, start_offset_seconds=i * segment_seconds))
        return specs


class FakeTranscription(TranscriptionPort):
    """Returns queued results in call order; an Exception entry is raised."""

    def __init__(self, results: Optional[list] = None):
        self.results = list(results or [])
        self.calls: list[tuple[Path, bool]] = []

    def transcribe(self, audio_path, verbose=False):
        self.calls.append((Path(audio_path), verbose))
        assert Path(audio_path).exists(), "segment file must exist while transcribing"
        result = self.results.pop(0) if self.results else SegmentTranscription(text="")
        if isinstance(result, Exception):
            raise result
        return result

    def model_name(self):
        return "fake-model"


class RecordingProgress(ProgressPort):
    def __init__(self):
        self.events: list[tuple[str, str]] = []

    def report(self, job_id, stage, progress=0.0, detail=None):
        self.events.append((stage, detail))


@pytest.fixture
def scratch_dir(tmp_path):
    path = tmp_path / "scratch"
    path.mkdir()
    return path


@pytest.fixture
def audio_bytes():
    return io.BytesIO(b"\x00\x01" * 512)


@pytest.fixture
def progress():
    return RecordingProgress()
