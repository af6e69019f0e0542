"""TranscriptionPort — abstract interface for speech-to-text backends."""

from abc import ABC, abstractmethod
from pathlib import Path

from domain.models import SegmentTranscription


class TranscriptionPort(ABC):
    @abstractmethod
    def transcribe(self, audio_path: Path, verbose: bool = False) -> SegmentTranscription:
        """Transcribe one audio file.

        With verbose=True the backend is asked for sub-segment timing.
        Raises BackendFailure on any non-success response.
        """

    @abstractmethod
    def model_name(self) -> str:
        """Return the model used for API responses and logs."""
