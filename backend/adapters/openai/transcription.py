"""OpenAITranscriptionAdapter — one segment in, text plus sub-segments out.

The OpenAI client is built once by config.create_transcription_adapter and
injected here; this adapter holds no global client state.
"""

import logging
from pathlib import Path
from typing import Any, Optional

import openai

from domain.errors import BackendFailure
from domain.models import SegmentTranscription, SubSegment
from ports.transcription import TranscriptionPort

logger = logging.getLogger(__name__)


def _field(obj: Any, name: str, default: Any = None) -> Any:
    # SDK responses are objects; mocked or raw responses may be dicts.
    if isinstance(obj, dict):
        return obj.get(name, default)
    return getattr(obj, name, default)


class OpenAITranscriptionAdapter(TranscriptionPort):
    def __init__(
        self,
        client: openai.OpenAI,
        model: str = "whisper-1",
        verbose_model: Optional[str] = None,
        language: Optional[str] = "es",
    ):
        self._client = client
        self._model = model
        # gpt-4o-* models do not return verbose_json, so timing requests
        # may go to a different model.
        self._verbose_model = verbose_model or model
        self._language = language

    def transcribe(self, audio_path: Path, verbose: bool = False) -> SegmentTranscription:
        model = self._verbose_model if verbose else self._model
        params: dict[str, Any] = {"model": model}
        if self._language:
            params["language"] = self._language
        if verbose:
            params["response_format"] = "verbose_json"
            params["timestamp_granularities"] = ["segment"]

        logger.debug(f"Transcribing {audio_path.name} with {model} (verbose={verbose})")
        try:
            with open(audio_path, "rb") as audio_file:
                response = self._client.audio.transcriptions.create(file=audio_file, **params)
        except openai.APIStatusError as e:
            logger.error(f"Transcription of {audio_path.name} failed: {e.status_code} {e.message}")
            raise BackendFailure(e.message, status=e.status_code) from e
        except openai.APIError as e:
            logger.error(f"Transcription of {audio_path.name} failed: {e}")
            raise BackendFailure(str(e)) from e

        return self._parse_response(response)

    def _parse_response(self, response: Any) -> SegmentTranscription:
        if isinstance(response, str):
            return SegmentTranscription(text=response)

        text = _field(response, "text") or ""
        raw_segments = _field(response, "segments")
        if raw_segments is None:
            return SegmentTranscription(text=text)

        segments = [
            SubSegment(
                text=_field(seg, "text") or "",
                start=float(_field(seg, "start", 0.0) or 0.0),
                end=float(_field(seg, "end", 0.0) or 0.0),
            )
            for seg in raw_segments
        ]
        return SegmentTranscription(text=text, segments=segments)

    def model_name(self) -> str:
        return self._model
