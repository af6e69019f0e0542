"""FFmpegAudioAdapter — cuts audio into fixed-duration segments via ffmpeg."""

import logging
import subprocess
from pathlib import Path

from domain.errors import SegmentationFailure
from domain.models import SegmentSpec
from ports.audio import AudioProcessingPort

logger = logging.getLogger(__name__)

SEGMENT_PATTERN = "segment_%04d.mp3"
SEGMENT_GLOB = "segment_*.mp3"


class FFmpegAudioAdapter(AudioProcessingPort):
    def __init__(
        self,
        ffmpeg_binary: str = "ffmpeg",
        sample_rate: int = 16000,
        bitrate: str = "64k",
    ):
        self._ffmpeg = ffmpeg_binary
        self._sample_rate = sample_rate
        self._bitrate = bitrate

    def build_command(self, input_path: Path, segment_seconds: int, output_dir: Path) -> list[str]:
        return [
            self._ffmpeg, "-hide_banner", "-y",
            "-i", str(input_path),
            "-vn",
            "-ac", "1",
            "-ar", str(self._sample_rate),
            "-b:a", self._bitrate,
            "-f", "segment",
            "-segment_time", str(segment_seconds),
            "-reset_timestamps", "1",
            str(output_dir / SEGMENT_PATTERN),
        ]

    def split_into_segments(
        self, input_path: Path, segment_seconds: int, output_dir: Path
    ) -> list[SegmentSpec]:
        cmd = self.build_command(input_path, segment_seconds, output_dir)
        logger.info(f"Splitting {input_path.name} into {segment_seconds}s segments")

        try:
            result = subprocess.run(cmd, capture_output=True, text=True)
        except OSError as e:
            raise SegmentationFailure(f"Could not run ffmpeg: {e}") from e

        if result.returncode != 0:
            logger.error(f"Error splitting audio: {result.stderr}")
            raise SegmentationFailure(f"Failed to split audio: {result.stderr.strip()}")

        # Zero-padded names make lexicographic order the temporal order.
        files = sorted(output_dir.glob(SEGMENT_GLOB))
        if not files:
            raise SegmentationFailure("ffmpeg produced no segments")

        logger.info(f"Produced {len(files)} segments")
        return [
            SegmentSpec(index=i, file_path=path, start_offset_seconds=float(i * segment_seconds))
            for i, path in enumerate(files)
        ]
