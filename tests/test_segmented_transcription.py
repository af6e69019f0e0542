"""Tests for the segmented transcription pipeline."""

import io
import logging

import httpx
import pytest

from conftest import FakeAudioAdapter, FakeTranscription
from domain.errors import BackendFailure, InvalidRequest, SegmentationFailure
from domain.models import AudioSource, SegmentSpec, SegmentTranscription, SubSegment
from use_cases.transcribe import (
    SegmentedTranscriptionUseCase, SingleTranscriptionUseCase, chunk_text, merge_results,
)


def make_source(data: bytes = b"audio-bytes", name: str = "meeting.m4a") -> AudioSource:
    return AudioSource(stream=io.BytesIO(data), name=name, size=len(data), content_type="audio/mp4")


def make_use_case(audio, transcription, progress, scratch_dir):
    return SegmentedTranscriptionUseCase(transcription, audio, progress, scratch_dir=str(scratch_dir))


class TestChunkText:
    def test_prefers_joined_sub_segments(self):
        result = SegmentTranscription(
            text="Hola.  Qué tal",
            segments=[SubSegment(text=" Hola. "), SubSegment(text="Qué tal ")],
        )
        assert chunk_text(result) == "Hola. Qué tal"

    def test_falls_back_to_trimmed_top_level_text(self):
        assert chunk_text(SegmentTranscription(text="  sin segmentos  ")) == "sin segmentos"

    def test_empty_sub_segment_list_falls_back(self):
        assert chunk_text(SegmentTranscription(text="texto", segments=[])) == "texto"

    def test_blank_sub_segments_fall_back(self):
        result = SegmentTranscription(text="texto", segments=[SubSegment(text="  ")])
        assert chunk_text(result) == "texto"

    def test_nothing_yields_empty_string(self):
        assert chunk_text(SegmentTranscription(text="")) == ""


class TestMergeResults:
    def test_orders_by_index_and_uses_nominal_offsets(self, tmp_path):
        specs = [SegmentSpec(i, tmp_path / f"s{i}", i * 60.0) for i in range(3)]
        results = [SegmentTranscription(text=t) for t in ("uno", "dos", "tres")]

        transcript = merge_results(list(reversed(specs)), list(reversed(results)), 60)

        assert [c.index for c in transcript.chunks] == [0, 1, 2]
        assert [c.start_seconds for c in transcript.chunks] == [0.0, 60.0, 120.0]
        assert [c.end_seconds for c in transcript.chunks] == [60.0, 120.0, 180.0]
        assert transcript.full_text == "uno\n\ndos\n\ntres"


class TestSegmentedTranscription:
    def test_chunk_order_matches_segments(self, progress, scratch_dir):
        audio = FakeAudioAdapter(count=5)
        transcription = FakeTranscription([SegmentTranscription(text=f"t{i}") for i in range(5)])

        transcript = make_use_case(audio, transcription, progress, scratch_dir).execute(make_source(), 120)

        for i, chunk in enumerate(transcript.chunks):
            assert chunk.index == i
            assert chunk.start_seconds == i * 120
            assert chunk.end_seconds == i * 120 + 120
            assert chunk.text == f"t{i}"

    def test_thirty_two_minute_file_in_fifteen_minute_segments(self, progress, scratch_dir):
        audio = FakeAudioAdapter(count=3)
        texts = ["Primera parte.", "Segunda parte.", "Final corto."]
        transcription = FakeTranscription([SegmentTranscription(text=t) for t in texts])

        transcript = make_use_case(audio, transcription, progress, scratch_dir).execute(make_source(), 900)

        assert len(transcript.chunks) == 3
        assert [c.start_seconds for c in transcript.chunks] == [0, 900, 1800]
        assert transcript.full_text == "Primera parte.\n\nSegunda parte.\n\nFinal corto."

    def test_requests_verbose_timing_in_index_order(self, progress, scratch_dir):
        audio = FakeAudioAdapter(count=3)
        transcription = FakeTranscription()

        make_use_case(audio, transcription, progress, scratch_dir).execute(make_source(), 10)

        assert [p.name for p, _ in transcription.calls] == [
            "segment_0000.mp3", "segment_0001.mp3", "segment_0002.mp3",
        ]
        assert all(verbose for _, verbose in transcription.calls)

    def test_top_level_text_used_without_sub_segments(self, progress, scratch_dir):
        audio = FakeAudioAdapter(count=1)
        transcription = FakeTranscription([SegmentTranscription(text="  buenos días  ", segments=None)])

        transcript = make_use_case(audio, transcription, progress, scratch_dir).execute(make_source(), 900)

        assert transcript.chunks[0].text == "buenos días"

    def test_silent_segment_gives_empty_text(self, progress, scratch_dir):
        audio = FakeAudioAdapter(count=2)
        transcription = FakeTranscription([
            SegmentTranscription(text="algo"),
            SegmentTranscription(text="", segments=[]),
        ])

        transcript = make_use_case(audio, transcription, progress, scratch_dir).execute(make_source(), 900)

        assert transcript.chunks[1].text == ""
        assert transcript.full_text == "algo"

    def test_full_text_uses_top_level_text_not_chunk_text(self, progress, scratch_dir):
        audio = FakeAudioAdapter(count=1)
        transcription = FakeTranscription([
            SegmentTranscription(text=" Hola,  mundo ", segments=[SubSegment(" Hola,"), SubSegment(" mundo")]),
        ])

        transcript = make_use_case(audio, transcription, progress, scratch_dir).execute(make_source(), 900)

        assert transcript.chunks[0].text == "Hola, mundo"
        assert transcript.full_text == "Hola,  mundo"

    def test_input_is_staged_before_segmenting(self, progress, scratch_dir):
        audio = FakeAudioAdapter(count=1)
        seen = {}

        class Inspecting(FakeTranscription):
            def transcribe(self, audio_path, verbose=False):
                input_path = audio.calls[0][0]
                seen["content"] = input_path.read_bytes()
                seen["suffix"] = input_path.suffix
                return super().transcribe(audio_path, verbose)

        make_use_case(audio, Inspecting(), progress, scratch_dir).execute(make_source(b"raw"), 900)

        assert seen == {"content": b"raw", "suffix": ".m4a"}

    def test_zero_segments_fails_without_transcribing(self, progress, scratch_dir):
        audio = FakeAudioAdapter(count=0)
        transcription = FakeTranscription()

        with pytest.raises(SegmentationFailure):
            make_use_case(audio, transcription, progress, scratch_dir).execute(make_source(), 900)

        assert transcription.calls == []

    def test_backend_failure_aborts_remaining_segments(self, progress, scratch_dir):
        audio = FakeAudioAdapter(count=3)
        transcription = FakeTranscription([
            SegmentTranscription(text="ok"),
            BackendFailure("rate limited", status=429),
            SegmentTranscription(text="never"),
        ])

        with pytest.raises(BackendFailure) as exc_info:
            make_use_case(audio, transcription, progress, scratch_dir).execute(make_source(), 900)

        assert exc_info.value.status == 429
        assert len(transcription.calls) == 2

    @pytest.mark.parametrize("outcome", ["success", "segmentation", "backend", "unexpected"])
    def test_scratch_space_is_always_removed(self, progress, scratch_dir, outcome):
        audio = FakeAudioAdapter(count=0 if outcome == "segmentation" else 2)
        results = {
            "success": [SegmentTranscription(text="a"), SegmentTranscription(text="b")],
            "segmentation": [],
            "backend": [BackendFailure("boom", status=500)],
            "unexpected": [RuntimeError("bug")],
        }[outcome]
        use_case = make_use_case(audio, FakeTranscription(results), progress, scratch_dir)

        try:
            use_case.execute(make_source(), 900)
        except (SegmentationFailure, BackendFailure, RuntimeError):
            pass

        assert list(scratch_dir.iterdir()) == []

    @pytest.mark.parametrize("seconds", [0, -5, 1.5, True])
    def test_rejects_invalid_segment_seconds(self, progress, scratch_dir, seconds):
        use_case = make_use_case(FakeAudioAdapter(1), FakeTranscription(), progress, scratch_dir)
        with pytest.raises(ValueError):
            use_case.execute(make_source(), seconds)

    def test_reports_progress_stages(self, progress, scratch_dir):
        use_case = make_use_case(FakeAudioAdapter(2), FakeTranscription(), progress, scratch_dir)

        use_case.execute(make_source(), 900)

        stages = [stage for stage, _ in progress.events]
        assert stages == ["staging", "segmenting", "transcribing", "transcribing", "merging"]
        assert progress.events[3][1] == "segment 2/2"

    def test_completion_log_names_the_model(self, progress, scratch_dir, caplog):
        use_case = make_use_case(FakeAudioAdapter(1), FakeTranscription(), progress, scratch_dir)

        with caplog.at_level(logging.INFO, logger="use_cases.transcribe"):
            use_case.execute(make_source(), 900)

        assert "fake-model" in caplog.text


class TestSingleTranscription:
    def test_returns_backend_text(self, scratch_dir):
        transcription = FakeTranscription([SegmentTranscription(text="hola")])
        use_case = SingleTranscriptionUseCase(transcription, scratch_dir=str(scratch_dir))

        assert use_case.execute(make_source()) == "hola"
        assert transcription.calls[0][1] is False
        assert list(scratch_dir.iterdir()) == []

    def test_from_url_requires_http_client(self, scratch_dir):
        use_case = SingleTranscriptionUseCase(FakeTranscription(), scratch_dir=str(scratch_dir))
        with pytest.raises(RuntimeError):
            use_case.execute_from_url("https://storage.example/audio.m4a")

    def test_from_url_downloads_into_scratch(self, scratch_dir):
        def handler(request):
            return httpx.Response(200, content=b"m4a-bytes")

        seen = {}

        class Inspecting(FakeTranscription):
            def transcribe(self, audio_path, verbose=False):
                seen["content"] = audio_path.read_bytes()
                return SegmentTranscription(text="desde storage")

        use_case = SingleTranscriptionUseCase(
            Inspecting(), scratch_dir=str(scratch_dir),
            http_client=httpx.Client(transport=httpx.MockTransport(handler)),
            allowed_hosts=["storage.example"],
        )

        assert use_case.execute_from_url("https://storage.example/a.m4a") == "desde storage"
        assert seen["content"] == b"m4a-bytes"
        assert list(scratch_dir.iterdir()) == []

    def test_from_url_download_error_is_backend_failure(self, scratch_dir):
        transcription = FakeTranscription()
        use_case = SingleTranscriptionUseCase(
            transcription, scratch_dir=str(scratch_dir),
            http_client=httpx.Client(transport=httpx.MockTransport(lambda r: httpx.Response(404))),
            allowed_hosts=["storage.example"],
        )

        with pytest.raises(BackendFailure) as exc_info:
            use_case.execute_from_url("https://storage.example/missing.m4a")

        assert exc_info.value.status == 404
        assert transcription.calls == []
        assert list(scratch_dir.iterdir()) == []

    def make_downloading_use_case(self, scratch_dir, transcription, requests):
        def handler(request):
            requests.append(request)
            return httpx.Response(200, content=b"m4a-bytes")

        return SingleTranscriptionUseCase(
            transcription, scratch_dir=str(scratch_dir),
            http_client=httpx.Client(transport=httpx.MockTransport(handler)),
            allowed_hosts=["Storage.Example"],
        )

    @pytest.mark.parametrize("suffix", ["/../../x.m4a", "/x.m4a", ".m4a/", "m4a", ""])
    def test_from_url_rejects_path_like_suffix(self, scratch_dir, suffix):
        transcription, requests = FakeTranscription(), []
        use_case = self.make_downloading_use_case(scratch_dir, transcription, requests)

        with pytest.raises(InvalidRequest):
            use_case.execute_from_url("https://storage.example/a.m4a", suffix=suffix)

        assert requests == []
        assert transcription.calls == []
        assert list(scratch_dir.iterdir()) == []

    @pytest.mark.parametrize("url", [
        "http://storage.example/a.m4a",
        "https://169.254.169.254/latest/meta-data/",
        "https://localhost:8000/health",
        "file:///etc/passwd",
        "not a url",
    ])
    def test_from_url_rejects_untrusted_urls(self, scratch_dir, url):
        transcription, requests = FakeTranscription(), []
        use_case = self.make_downloading_use_case(scratch_dir, transcription, requests)

        with pytest.raises(InvalidRequest):
            use_case.execute_from_url(url)

        assert requests == []
        assert transcription.calls == []

    def test_from_url_host_match_is_case_insensitive(self, scratch_dir):
        transcription = FakeTranscription([SegmentTranscription(text="ok")])
        requests = []
        use_case = self.make_downloading_use_case(scratch_dir, transcription, requests)

        assert use_case.execute_from_url("https://STORAGE.example/a.m4a", suffix=".mp3") == "ok"
        assert len(requests) == 1
        assert transcription.calls[0][0].name == "download.mp3"

    def test_from_url_redirect_is_not_followed(self, scratch_dir):
        requests = []

        def handler(request):
            requests.append(request)
            return httpx.Response(302, headers={"location": "http://169.254.169.254/"})

        transcription = FakeTranscription()
        use_case = SingleTranscriptionUseCase(
            transcription, scratch_dir=str(scratch_dir),
            http_client=httpx.Client(transport=httpx.MockTransport(handler), follow_redirects=False),
            allowed_hosts=["storage.example"],
        )

        with pytest.raises(BackendFailure) as exc_info:
            use_case.execute_from_url("https://storage.example/a.m4a")

        assert exc_info.value.status == 302
        assert len(requests) == 1
        assert transcription.calls == []
