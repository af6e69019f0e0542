"""Domain <-> DTO mappers.

Converts FullTranscript/TranscriptChunk (domain) into the pydantic response
models. The API response schema is defined by models.py.
"""

from domain.models import FullTranscript, TranscriptChunk
from models import ChunkDTO, SegmentedTranscriptionResponse


def chunk_to_dto(chunk: TranscriptChunk) -> ChunkDTO:
    """Convert a domain TranscriptChunk to a ChunkDTO."""
    return ChunkDTO(
        index=chunk.index,
        start=chunk.start_seconds,
        end=chunk.end_seconds,
        text=chunk.text,
    )


def transcript_to_dto(transcript: FullTranscript) -> SegmentedTranscriptionResponse:
    """Convert a FullTranscript to the segmented response, preserving chunk order."""
    return SegmentedTranscriptionResponse(
        full_text=transcript.full_text,
        chunks=[chunk_to_dto(c) for c in transcript.chunks],
    )
