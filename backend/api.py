"""HTTP surface: batch transcription routes and realtime session signaling.

Routes stay thin; all work is delegated to the use cases, which receive
their adapters from config.py factories (or from create_app arguments).
"""

import logging
from typing import Optional

from fastapi import FastAPI, File, Form, Request, UploadFile
from fastapi.responses import JSONResponse, Response
from starlette.concurrency import run_in_threadpool

from config import (
    Config, get_config, create_audio_adapter, create_http_client, create_progress_adapter,
    create_signaling_adapter, create_transcription_adapter,
)
from domain.errors import (
    BackendFailure, InvalidRequest, SegmentationFailure, SignalingFailure, TranscriptionError,
)
from domain.models import AudioSource
from mappers import transcript_to_dto
from models import (
    HealthResponse, SegmentedTranscriptionResponse, TranscribeFromUrlRequest, TranscriptionResponse,
)
from ports.audio import AudioProcessingPort
from ports.progress import ProgressPort
from ports.realtime import SignalingPort
from ports.transcription import TranscriptionPort
from use_cases.transcribe import SegmentedTranscriptionUseCase, SingleTranscriptionUseCase

logger = logging.getLogger(__name__)

ERROR_STATUS = {
    InvalidRequest: 400,
    SegmentationFailure: 422,
    BackendFailure: 502,
    SignalingFailure: 502,
}


def _error(message: str, status_code: int) -> JSONResponse:
    return JSONResponse({"error": message}, status_code=status_code)


def _to_source(upload: UploadFile) -> AudioSource:
    return AudioSource(
        stream=upload.file,
        name=upload.filename or "audio",
        size=upload.size,
        content_type=upload.content_type,
    )


def create_app(
    cfg: Optional[Config] = None,
    transcription: Optional[TranscriptionPort] = None,
    audio: Optional[AudioProcessingPort] = None,
    progress: Optional[ProgressPort] = None,
    signaling: Optional[SignalingPort] = None,
    http_client=None,
) -> FastAPI:
    cfg = cfg or get_config()
    http_client = http_client or create_http_client(cfg)
    transcription = transcription or create_transcription_adapter(cfg)
    signaling = signaling or create_signaling_adapter(cfg, http_client)

    segmented = SegmentedTranscriptionUseCase(
        transcription,
        audio or create_audio_adapter(cfg),
        progress or create_progress_adapter(),
        scratch_dir=cfg.temp_dir,
    )
    single = SingleTranscriptionUseCase(
        transcription,
        scratch_dir=cfg.temp_dir,
        http_client=http_client,
        allowed_hosts=cfg.storage_allowed_hosts,
    )

    app = FastAPI(title="Transcription Studio")

    @app.exception_handler(TranscriptionError)
    async def transcription_error_handler(request: Request, exc: TranscriptionError):
        status_code = next(
            (code for kind, code in ERROR_STATUS.items() if isinstance(exc, kind)), 500
        )
        logger.error(f"{request.url.path} failed: {exc}")
        return _error(str(exc), status_code)

    @app.get("/health", response_model=HealthResponse)
    def health():
        return HealthResponse(config=cfg.as_dict())

    @app.post("/v1/audio/transcriptions", response_model=TranscriptionResponse)
    def transcribe(file: UploadFile = File(...)):
        text = single.execute(_to_source(file))
        return TranscriptionResponse(text=text)

    @app.post("/v1/audio/transcriptions/segmented", response_model=SegmentedTranscriptionResponse)
    def transcribe_segmented(
        file: UploadFile = File(...),
        segment_seconds: Optional[int] = Form(None),
    ):
        seconds = segment_seconds if segment_seconds is not None else cfg.segment_seconds
        if seconds <= 0:
            return _error("segment_seconds must be a positive integer", 400)
        logger.info(f"Segmented transcription of {file.filename} ({seconds}s segments)")
        transcript = segmented.execute(_to_source(file), seconds)
        return transcript_to_dto(transcript)

    @app.post("/v1/audio/transcriptions/from-url", response_model=TranscriptionResponse)
    def transcribe_from_url(body: TranscribeFromUrlRequest):
        if not body.url.strip():
            return _error("Missing url", 400)
        text = single.execute_from_url(body.url, suffix=body.suffix)
        return TranscriptionResponse(text=text)

    @app.post("/v1/realtime/session")
    async def realtime_session(request: Request):
        offer = (await request.body()).decode("utf-8", errors="replace")
        if not offer.strip():
            return _error("Empty SDP offer", 400)
        answer = await run_in_threadpool(signaling.exchange, offer)
        return Response(content=answer, media_type="application/sdp")

    return app
