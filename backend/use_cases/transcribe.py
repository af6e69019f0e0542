"""Batch transcription use cases.

SegmentedTranscriptionUseCase orchestrates the long-file pipeline:
stage input -> cut into segments -> transcribe each segment in order ->
offset-correct and merge. Ports are injected; scratch storage is owned by
a single execute() call and released on every exit path.
"""

import logging
import re
import uuid
from pathlib import Path
from typing import Optional

import httpx

from adapters.local.scratch import ScratchSpace
from domain.errors import BackendFailure, InvalidRequest
from domain.models import (
    AudioSource, FullTranscript, SegmentSpec, SegmentTranscription, TranscriptChunk,
)
from ports.audio import AudioProcessingPort
from ports.progress import ProgressPort
from ports.transcription import TranscriptionPort

logger = logging.getLogger(__name__)

FULL_TEXT_SEPARATOR = "\n\n"
SUFFIX_PATTERN = re.compile(r"^\.[A-Za-z0-9]{1,8}$")


def chunk_text(result: SegmentTranscription) -> str:
    """Prefer joined sub-segment text, then the top-level text, then ""."""
    if result.segments:
        joined = " ".join(s.text.strip() for s in result.segments if s.text and s.text.strip())
        if joined:
            return joined
    return (result.text or "").strip()


def merge_results(
    specs: list[SegmentSpec],
    results: list[SegmentTranscription],
    segment_seconds: int,
) -> FullTranscript:
    """Build the ordered chunk list and full text from per-segment results.

    Offsets are nominal: index * segment_seconds, not the decoded length.
    """
    chunks: list[TranscriptChunk] = []
    text_parts: list[str] = []
    for spec, result in sorted(zip(specs, results), key=lambda pair: pair[0].index):
        start = float(spec.index * segment_seconds)
        chunks.append(TranscriptChunk(
            index=spec.index,
            start_seconds=start,
            end_seconds=start + segment_seconds,
            text=chunk_text(result),
        ))
        text_parts.append(result.text or "")

    return FullTranscript(
        full_text=FULL_TEXT_SEPARATOR.join(text_parts).strip(),
        chunks=chunks,
    )


class SegmentedTranscriptionUseCase:
    def __init__(
        self,
        transcription: TranscriptionPort,
        audio: AudioProcessingPort,
        progress: ProgressPort,
        scratch_dir: Optional[str] = None,
    ):
        self._transcription = transcription
        self._audio = audio
        self._progress = progress
        self._scratch_dir = scratch_dir

    def execute(self, source: AudioSource, segment_seconds: int) -> FullTranscript:
        if isinstance(segment_seconds, bool) or not isinstance(segment_seconds, int) or segment_seconds <= 0:
            raise ValueError(f"segment_seconds must be a positive integer, got {segment_seconds!r}")

        job_id = uuid.uuid4().hex[:12]

        with ScratchSpace(self._scratch_dir) as scratch:
            # 1. Stage the caller's stream into owned storage
            self._progress.report(job_id, "staging", detail=source.name)
            input_path = scratch.write_stream(source.stream, f"input{source.suffix}")

            # 2. Cut into segments
            self._progress.report(job_id, "segmenting")
            specs = self._audio.split_into_segments(
                input_path, segment_seconds, scratch.subdir("segments"),
            )

            # 3. Transcribe sequentially in index order
            results: list[SegmentTranscription] = []
            for spec in specs:
                self._progress.report(
                    job_id, "transcribing",
                    progress=(spec.index + 1) / len(specs),
                    detail=f"segment {spec.index + 1}/{len(specs)}",
                )
                try:
                    results.append(self._transcription.transcribe(spec.file_path, verbose=True))
                except BackendFailure:
                    logger.error(f"[{job_id}] Segment {spec.index} failed, aborting")
                    raise

            # 4. Merge with nominal offsets
            self._progress.report(job_id, "merging")
            transcript = merge_results(specs, results, segment_seconds)

        logger.info(
            f"[{job_id}] Transcribed {len(transcript.chunks)} segments with {self._transcription.model_name()}, "
            f"{len(transcript.full_text)} characters"
        )
        return transcript


class SingleTranscriptionUseCase:
    """One file, one backend call, plain text back."""

    def __init__(
        self,
        transcription: TranscriptionPort,
        scratch_dir: Optional[str] = None,
        http_client: Optional[httpx.Client] = None,
        allowed_hosts: Optional[list[str]] = None,
    ):
        self._transcription = transcription
        self._scratch_dir = scratch_dir
        self._http = http_client
        self._allowed_hosts = {h.lower() for h in (allowed_hosts or [])}

    def execute(self, source: AudioSource) -> str:
        with ScratchSpace(self._scratch_dir) as scratch:
            input_path = scratch.write_stream(source.stream, f"input{source.suffix}")
            return self._transcription.transcribe(input_path).text or ""

    def execute_from_url(self, url: str, suffix: str = ".m4a") -> str:
        """Download a stored object into scratch storage and transcribe it.

        Only https URLs on an allowed storage host are fetched, and the
        suffix must be a plain extension such as ".m4a".
        """
        if self._http is None:
            raise RuntimeError("No HTTP client configured for downloads")
        if not SUFFIX_PATTERN.match(suffix or ""):
            raise InvalidRequest(f"Invalid file suffix: {suffix!r}")
        self._check_url(url)

        with ScratchSpace(self._scratch_dir) as scratch:
            input_path = scratch.root / f"download{suffix}"
            self._download(url, input_path)
            return self._transcription.transcribe(input_path).text or ""

    def _download(self, url: str, target: Path) -> None:
        try:
            with self._http.stream("GET", url) as response:
                if not response.is_success:
                    raise BackendFailure(
                        f"Could not download source ({response.status_code})",
                        status=response.status_code,
                    )
                with open(target, "wb") as out:
                    for block in response.iter_bytes():
                        out.write(block)
        except httpx.HTTPError as e:
            raise BackendFailure(f"Could not download source: {e}") from e
        logger.info(f"Downloaded {target.stat().st_size} bytes to scratch")

    def _check_url(self, url: str) -> None:
        try:
            parsed = httpx.URL(url)
        except httpx.InvalidURL as e:
            raise InvalidRequest(f"Invalid url: {e}") from e
        if parsed.scheme != "https":
            raise InvalidRequest("Only https urls can be transcribed")
        if parsed.host.lower() not in self._allowed_hosts:
            raise InvalidRequest(f"Host not allowed: {parsed.host}")
