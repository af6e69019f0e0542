"""OpenAIRealtimeSignalingAdapter — trades an SDP offer for an SDP answer.

Posts the browser/client offer together with a transcription session
config to the realtime calls endpoint. Media negotiation itself happens
in the peer connection, outside this process.
"""

import json
import logging
from typing import Any, Optional

import httpx

from domain.errors import SignalingFailure
from ports.realtime import SignalingPort

logger = logging.getLogger(__name__)

DEFAULT_REALTIME_URL = "https://api.openai.com/v1/realtime/calls"


def build_session_config(
    model: str = "gpt-4o-transcribe",
    language: Optional[str] = "es",
    vad_threshold: float = 0.45,
    prefix_padding_ms: int = 150,
    silence_duration_ms: int = 220,
    noise_reduction: Optional[str] = "near_field",
) -> dict[str, Any]:
    transcription: dict[str, Any] = {"model": model}
    if language:
        transcription["language"] = language

    audio_input: dict[str, Any] = {
        "transcription": transcription,
        "turn_detection": {
            "type": "server_vad",
            "threshold": vad_threshold,
            "prefix_padding_ms": prefix_padding_ms,
            "silence_duration_ms": silence_duration_ms,
        },
    }
    if noise_reduction:
        audio_input["noise_reduction"] = {"type": noise_reduction}

    return {"type": "transcription", "audio": {"input": audio_input}}


class OpenAIRealtimeSignalingAdapter(SignalingPort):
    def __init__(
        self,
        http_client: httpx.Client,
        api_key: str,
        session_config: dict[str, Any],
        url: str = DEFAULT_REALTIME_URL,
    ):
        self._http = http_client
        self._api_key = api_key
        self._session_config = session_config
        self._url = url

    def exchange(self, offer_sdp: str) -> str:
        if not offer_sdp or not offer_sdp.strip():
            raise SignalingFailure("Empty SDP offer")

        # Multipart form fields, no filenames.
        files = {
            "sdp": (None, offer_sdp),
            "session": (None, json.dumps(self._session_config)),
        }
        headers = {"Authorization": f"Bearer {self._api_key}"}

        try:
            response = self._http.post(self._url, headers=headers, files=files)
        except httpx.HTTPError as e:
            logger.error(f"Realtime signaling request failed: {e}")
            raise SignalingFailure(f"Could not reach realtime backend: {e}") from e

        if response.status_code >= 400:
            logger.error(f"Realtime signaling rejected: {response.status_code} {response.text}")
            raise SignalingFailure(
                f"Realtime backend error ({response.status_code}): {response.text}",
                status=response.status_code,
            )

        answer = response.text
        if not answer.strip():
            raise SignalingFailure("Realtime backend returned an empty SDP answer")
        logger.info("Realtime session negotiated")
        return answer
