"""AudioProcessingPort — abstract interface for cutting audio into segments."""

from abc import ABC, abstractmethod
from pathlib import Path

from domain.models import SegmentSpec


class AudioProcessingPort(ABC):
    @abstractmethod
    def split_into_segments(
        self, input_path: Path, segment_seconds: int, output_dir: Path
    ) -> list[SegmentSpec]:
        """Cut input into mono 16kHz segments written to output_dir.

        Returns segments in temporal order. Raises SegmentationFailure if
        the transcoder fails or produces nothing.
        """
