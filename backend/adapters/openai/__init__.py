"""OpenAI adapters for batch transcription and realtime signaling."""

from .transcription import OpenAITranscriptionAdapter
from .signaling import OpenAIRealtimeSignalingAdapter

__all__ = ["OpenAITranscriptionAdapter", "OpenAIRealtimeSignalingAdapter"]
