"""Error taxonomy shared by the batch and realtime paths."""

from typing import Optional


class TranscriptionError(Exception):
    """Base class for every failure surfaced by the transcription core."""


class SegmentationFailure(TranscriptionError):
    """The transcoder could not run or produced no segments."""


class BackendFailure(TranscriptionError):
    """A transcription backend call failed."""

    def __init__(self, message: str, status: Optional[int] = None):
        self.status = status
        self.message = message
        prefix = f"Backend error ({status}): " if status is not None else "Backend error: "
        super().__init__(prefix + message)


class SignalingFailure(TranscriptionError):
    """The realtime session could not be established."""

    def __init__(self, message: str, status: Optional[int] = None):
        self.status = status
        super().__init__(message)


class MalformedEvent(TranscriptionError):
    """A realtime event that cannot be parsed or has an unexpected shape.

    Raised internally by the event parser and always discarded by the
    reconciler.
    """


class InvalidStateError(TranscriptionError):
    """A realtime operation was requested in a connection state that forbids it."""


class InvalidRequest(TranscriptionError):
    """Caller input was rejected before any work was done."""
