from typing import List, Optional, Dict, Any
from pydantic import BaseModel, ConfigDict, Field


class ChunkDTO(BaseModel):
    """Transcript for one segment with nominal offsets in seconds"""
    index: int
    start: float
    end: float
    text: str


class SegmentedTranscriptionResponse(BaseModel):
    """Response format for segmented transcription"""
    model_config = ConfigDict(populate_by_name=True)

    full_text: str = Field(alias="fullText")
    chunks: List[ChunkDTO] = []


class TranscriptionResponse(BaseModel):
    """Response format for single-call transcription"""
    text: str


class TranscribeFromUrlRequest(BaseModel):
    url: str
    suffix: str = ".m4a"


class HealthResponse(BaseModel):
    status: str = "ok"
    config: Optional[Dict[str, Any]] = None
