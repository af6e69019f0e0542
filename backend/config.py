import os
import logging
from typing import Dict, Optional, Any
from pathlib import Path

logger = logging.getLogger(__name__)

try:
    from dotenv import load_dotenv
    load_dotenv()
except ImportError:
    pass

DEFAULT_HOST = "0.0.0.0"
DEFAULT_PORT = 8001
DEFAULT_TRANSCRIBE_MODEL = "gpt-4o-transcribe"
DEFAULT_SEGMENT_MODEL = "whisper-1"
DEFAULT_REALTIME_MODEL = "gpt-4o-transcribe"
DEFAULT_LANGUAGE = "es"
DEFAULT_SEGMENT_SECONDS = 900
DEFAULT_REALTIME_URL = "https://api.openai.com/v1/realtime/calls"


def _env_bool(name: str, default: str) -> bool:
    return os.environ.get(name, default).lower() in ("1", "true", "yes")


class Config:
    _instance = None

    def __new__(cls):
        if cls._instance is None:
            cls._instance = super(Config, cls).__new__(cls)
            cls._instance._initialize()
        return cls._instance

    def _initialize(self):
        self.host = os.environ.get("HOST", DEFAULT_HOST)
        self.port = int(os.environ.get("PORT", DEFAULT_PORT))
        self.debug = os.environ.get("DEBUG", "0") == "1"

        self.openai_api_key = os.environ.get("OPENAI_API_KEY")
        self.openai_base_url = os.environ.get("OPENAI_BASE_URL") or None
        self.request_timeout = float(os.environ.get("REQUEST_TIMEOUT", "600"))

        # Batch transcription
        self.transcribe_model = os.environ.get("TRANSCRIBE_MODEL", DEFAULT_TRANSCRIBE_MODEL)
        # Segmented path needs sub-segment timing (verbose_json)
        self.segment_model = os.environ.get("SEGMENT_MODEL", DEFAULT_SEGMENT_MODEL)
        self.language = os.environ.get("LANGUAGE", DEFAULT_LANGUAGE) or None
        self.segment_seconds = int(os.environ.get("SEGMENT_SECONDS", DEFAULT_SEGMENT_SECONDS))
        self.audio_bitrate = os.environ.get("AUDIO_BITRATE", "64k")
        self.ffmpeg_binary = os.environ.get("FFMPEG_BINARY", "ffmpeg")
        self.temp_dir = os.environ.get("TEMP_DIR", "/tmp/transcribe")
        # Hosts the from-url route may download from (comma-separated)
        self.storage_allowed_hosts = [
            h.strip().lower() for h in os.environ.get("STORAGE_ALLOWED_HOSTS", "").split(",") if h.strip()
        ]

        # Realtime
        self.realtime_url = os.environ.get("REALTIME_URL", DEFAULT_REALTIME_URL)
        self.realtime_model = os.environ.get("REALTIME_MODEL", DEFAULT_REALTIME_MODEL)
        self.vad_threshold = float(os.environ.get("VAD_THRESHOLD", "0.45"))
        self.vad_prefix_padding_ms = int(os.environ.get("VAD_PREFIX_PADDING_MS", "150"))
        self.vad_silence_duration_ms = int(os.environ.get("VAD_SILENCE_DURATION_MS", "220"))
        self.noise_reduction = os.environ.get("NOISE_REDUCTION", "near_field") or None
        self.flush_interval = float(os.environ.get("FLUSH_INTERVAL", str(1 / 60)))
        self.auto_clear_live = _env_bool("AUTO_CLEAR_LIVE", "true")

        Path(self.temp_dir).mkdir(parents=True, exist_ok=True)

    def get_api_key(self) -> Optional[str]:
        return self.openai_api_key

    def as_dict(self) -> Dict[str, Any]:
        return {
            "host": self.host,
            "port": self.port,
            "debug": self.debug,
            "transcribe_model": self.transcribe_model,
            "segment_model": self.segment_model,
            "realtime_model": self.realtime_model,
            "language": self.language,
            "segment_seconds": self.segment_seconds,
            "audio_bitrate": self.audio_bitrate,
            "storage_allowed_hosts": self.storage_allowed_hosts,
            "has_api_key": self.openai_api_key is not None,
        }


config = Config()


def get_config() -> Config:
    return config


def create_openai_client(cfg: Config):
    """Build the single OpenAI client injected into the adapters."""
    import openai

    if not cfg.openai_api_key:
        logger.warning("OPENAI_API_KEY is not set; backend calls will fail")
    return openai.OpenAI(
        api_key=cfg.openai_api_key or "missing",
        base_url=cfg.openai_base_url,
        timeout=cfg.request_timeout,
        max_retries=0,
    )


def create_transcription_adapter(cfg: Config, client=None):
    from adapters.openai.transcription import OpenAITranscriptionAdapter

    adapter = OpenAITranscriptionAdapter(
        client or create_openai_client(cfg),
        model=cfg.transcribe_model,
        verbose_model=cfg.segment_model,
        language=cfg.language,
    )
    logger.info(f"Transcription adapter: model={cfg.transcribe_model}, segment_model={cfg.segment_model}")
    return adapter


def create_audio_adapter(cfg: Config):
    """Create the audio segmentation adapter (always FFmpeg)."""
    from adapters.ffmpeg.audio import FFmpegAudioAdapter
    return FFmpegAudioAdapter(ffmpeg_binary=cfg.ffmpeg_binary, bitrate=cfg.audio_bitrate)


def create_progress_adapter():
    from adapters.local.log_progress import LogProgressAdapter
    return LogProgressAdapter()


def create_http_client(cfg: Config):
    import httpx
    return httpx.Client(timeout=cfg.request_timeout, follow_redirects=False)


def create_signaling_adapter(cfg: Config, http_client=None):
    from adapters.openai.signaling import OpenAIRealtimeSignalingAdapter, build_session_config

    session_config = build_session_config(
        model=cfg.realtime_model,
        language=cfg.language,
        vad_threshold=cfg.vad_threshold,
        prefix_padding_ms=cfg.vad_prefix_padding_ms,
        silence_duration_ms=cfg.vad_silence_duration_ms,
        noise_reduction=cfg.noise_reduction,
    )
    return OpenAIRealtimeSignalingAdapter(
        http_client or create_http_client(cfg),
        api_key=cfg.openai_api_key or "",
        session_config=session_config,
        url=cfg.realtime_url,
    )


def create_reconciler(cfg: Config):
    from domain.reconciler import TranscriptReconciler
    return TranscriptReconciler(auto_clear_live=cfg.auto_clear_live, flush_interval=cfg.flush_interval)
