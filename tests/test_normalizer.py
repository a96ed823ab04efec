"""Tests for chunk planning and audio normalization."""

from pathlib import Path

import pytest

from conftest import FakeProber, FakeTranscoder
from lecture_ingest.audio import AudioNormalizer, plan_chunks
from lecture_ingest.cancellation import CancellationToken
from lecture_ingest.errors import InvalidInput, JobCanceled, NoAudioTrack
from lecture_ingest.workspace import Workspace


class TestPlanChunks:
    def test_remainder_chunk(self):
        assert plan_chunks(720, 300) == [(0, 0.0, 300.0), (1, 300.0, 600.0), (2, 600.0, 720.0)]

    def test_exact_multiple_has_no_empty_tail(self):
        assert plan_chunks(600, 300) == [(0, 0.0, 300.0), (1, 300.0, 600.0)]

    def test_windows_are_contiguous_and_cover_source(self):
        plan = plan_chunks(3601.5, 300)
        assert plan[0][1] == 0.0
        assert plan[-1][2] == 3601.5
        for (_, _, end), (_, start, _) in zip(plan, plan[1:]):
            assert end == start
        assert [index for index, _, _ in plan] == list(range(len(plan)))

    def test_zero_duration(self):
        assert plan_chunks(0, 300) == []

    def test_invalid_chunk_length(self):
        with pytest.raises(ValueError):
            plan_chunks(100, 0)


class TestAudioNormalizer:
    def test_long_audio_is_split(self, workspace_root):
        transcoder = FakeTranscoder()
        normalizer = AudioNormalizer(FakeProber(720), transcoder, chunk_seconds=300)

        with Workspace.create(base_dir=str(workspace_root)) as ws:
            result = normalizer.normalize(b"mp3 data", "lecture.mp3", workspace=ws)

            assert result.total_duration == 720
            assert [(c.index, c.start_time, c.end_time) for c in result.chunks] == [
                (0, 0.0, 300.0),
                (1, 300.0, 600.0),
                (2, 600.0, 720.0),
            ]
            assert [c.duration for c in result.chunks] == [300.0, 300.0, 120.0]
            assert all(Path(c.file_path).exists() for c in result.chunks)
            assert Path(result.chunks[2].file_path).name == "chunk_002.mp3"

        segments = [call for call in transcoder.calls if call[0] == "segment"]
        assert [(start, duration) for _, _, start, duration in segments] == [(0.0, 300.0), (300.0, 300.0), (600.0, 120.0)]

    def test_short_audio_is_one_converted_chunk(self, workspace_root):
        transcoder = FakeTranscoder()
        normalizer = AudioNormalizer(FakeProber(200), transcoder, chunk_seconds=300)

        with Workspace.create(base_dir=str(workspace_root)) as ws:
            result = normalizer.normalize(b"wav data", "memo.wav", workspace=ws)

        assert len(result.chunks) == 1
        assert result.chunks[0].end_time == 200
        assert Path(result.chunks[0].file_path).name == "converted.mp3"
        assert [call[0] for call in transcoder.calls] == ["convert"]

    def test_above_single_chunk_ratio_is_segmented(self, workspace_root):
        normalizer = AudioNormalizer(FakeProber(250), FakeTranscoder(), chunk_seconds=300)

        with Workspace.create(base_dir=str(workspace_root)) as ws:
            result = normalizer.normalize(b"data", "memo.mp3", workspace=ws)

        assert len(result.chunks) == 1
        assert result.chunks[0].end_time == 250
        assert Path(result.chunks[0].file_path).name == "chunk_000.mp3"

    def test_short_video_uses_extracted_audio(self, workspace_root):
        transcoder = FakeTranscoder()
        normalizer = AudioNormalizer(FakeProber(100, has_video=True), transcoder, chunk_seconds=300)

        with Workspace.create(base_dir=str(workspace_root)) as ws:
            result = normalizer.normalize(b"mp4 data", "lecture.mp4", workspace=ws)

        assert [call[0] for call in transcoder.calls] == ["extract_audio"]
        assert Path(result.chunks[0].file_path).name == "extracted_audio.mp3"

    def test_video_without_audio(self, workspace_root):
        normalizer = AudioNormalizer(FakeProber(100, has_audio=False, has_video=True), FakeTranscoder())

        with Workspace.create(base_dir=str(workspace_root)) as ws:
            with pytest.raises(NoAudioTrack):
                normalizer.normalize(b"mp4 data", "silent.mov", workspace=ws)

    def test_unknown_duration(self, workspace_root):
        normalizer = AudioNormalizer(FakeProber(0), FakeTranscoder())

        with Workspace.create(base_dir=str(workspace_root)) as ws:
            with pytest.raises(InvalidInput):
                normalizer.normalize(b"data", "broken.mp3", workspace=ws)

    def test_own_workspace_removed_on_failure(self, monkeypatch, workspace_root):
        created = []
        original_create = Workspace.create

        def create():
            ws = original_create(base_dir=str(workspace_root))
            created.append(ws)
            return ws

        monkeypatch.setattr(Workspace, "create", staticmethod(create))
        normalizer = AudioNormalizer(FakeProber(0), FakeTranscoder())

        with pytest.raises(InvalidInput):
            normalizer.normalize(b"data", "broken.mp3")

        assert len(created) == 1
        assert not created[0].exists

    def test_cancel_stops_further_segments(self, workspace_root):
        token = CancellationToken()
        transcoder = FakeTranscoder(on_call=lambda _operation: token.cancel())
        normalizer = AudioNormalizer(FakeProber(7200), transcoder, chunk_seconds=300)

        with Workspace.create(base_dir=str(workspace_root)) as ws:
            with pytest.raises(JobCanceled):
                normalizer.normalize(b"mp3 data", "semester.mp3", workspace=ws, cancel_token=token)

        assert len(transcoder.calls) == 1

    def test_canceled_token_skips_video_extraction(self, workspace_root):
        token = CancellationToken()
        token.cancel()
        transcoder = FakeTranscoder()
        normalizer = AudioNormalizer(FakeProber(100, has_video=True), transcoder)

        with Workspace.create(base_dir=str(workspace_root)) as ws:
            with pytest.raises(JobCanceled):
                normalizer.normalize(b"mp4 data", "lecture.mp4", workspace=ws, cancel_token=token)

        assert transcoder.calls == []
