"""Tests for the sequential scene batch."""

import asyncio

from veostudio.auth import PacingPolicy
from veostudio.pipeline.batch import CANCELLED_MESSAGE, SceneBatchOrchestrator
from veostudio.pipeline.models import AspectRatio, ImageResult, Scene, StepStatus

PACING = PacingPolicy(delay_seconds=12)


def _scenes(n):
    return [
        Scene(id=f"scene_{i}", index=i, prompt="fox", video_prompt=f"shot {i}", voice_script=f"line {i}")
        for i in range(n)
    ]


def _batch(session, artifacts, sleep, **kwargs):
    return SceneBatchOrchestrator(session, artifacts, PACING, sleep=sleep, **kwargs)


class TestProcessAll:
    def test_all_scenes_succeed_in_order(self, session, provider, artifacts, sleep):
        reference = ImageResult(base64="aW1n", mime_type="image/png")
        results = asyncio.run(_batch(session, artifacts, sleep).process_all(
            _scenes(3), reference, AspectRatio.LANDSCAPE,
        ))

        assert [s.id for s in results] == ["scene_0", "scene_1", "scene_2"]
        assert all(s.status == StepStatus.SUCCESS for s in results)
        assert all(s.audio_url.startswith("data:audio/") for s in results)
        assert all(s.video_url.startswith("file://") for s in results)
        assert all(s.character_image == reference.data_url for s in results)

        # speech → pace → video (one poll) per scene, pace between scenes
        assert sleep.calls == [12, 10, 12, 12, 10, 12, 12, 10]

    def test_calls_are_sequential(self, session, provider, artifacts, sleep):
        asyncio.run(_batch(session, artifacts, sleep).process_all(_scenes(2), None, AspectRatio.LANDSCAPE))

        kinds = []
        for request in provider.requests:
            path = request.url.path
            if path.endswith(":generateContent"):
                kinds.append("tts")
            elif path.endswith(":generateVideos"):
                kinds.append("video")
        assert kinds == ["tts", "video", "tts", "video"]

    def test_failure_is_isolated(self, session, provider, artifacts, sleep):
        provider.failing_prompts = {"shot 1"}
        results = asyncio.run(_batch(session, artifacts, sleep).process_all(
            _scenes(3), None, AspectRatio.LANDSCAPE,
        ))

        assert [s.status for s in results] == [StepStatus.SUCCESS, StepStatus.ERROR, StepStatus.SUCCESS]
        failed = results[1]
        assert failed.audio_url is None
        assert failed.video_url is None
        assert "500" in failed.error

    def test_speech_failure_skips_video(self, session, provider, artifacts, sleep):
        provider.tts_status = 500
        results = asyncio.run(_batch(session, artifacts, sleep).process_all(
            _scenes(2), None, AspectRatio.LANDSCAPE,
        ))

        assert all(s.status == StepStatus.ERROR for s in results)
        assert not provider.calls_to(":generateVideos")

    def test_progress_events(self, session, provider, artifacts, sleep):
        provider.failing_prompts = {"shot 0"}
        events = []

        asyncio.run(_batch(session, artifacts, sleep).process_all(
            _scenes(2), None, AspectRatio.LANDSCAPE,
            on_progress=lambda scene_id, status, result: events.append((scene_id, status)),
        ))

        assert events == [
            ("scene_0", StepStatus.PENDING),
            ("scene_0", StepStatus.ERROR),
            ("scene_1", StepStatus.PENDING),
            ("scene_1", StepStatus.SUCCESS),
        ]

    def test_listener_errors_do_not_abort(self, session, provider, artifacts, sleep):
        def listener(scene_id, status, result):
            raise RuntimeError("listener broke")

        results = asyncio.run(_batch(session, artifacts, sleep).process_all(
            _scenes(2), None, AspectRatio.LANDSCAPE, on_progress=listener,
        ))
        assert all(s.status == StepStatus.SUCCESS for s in results)

    def test_empty_batch(self, session, artifacts, sleep):
        results = asyncio.run(_batch(session, artifacts, sleep).process_all([], None, AspectRatio.LANDSCAPE))
        assert results == []
        assert sleep.calls == []


class TestCancellation:
    def test_remaining_scenes_marked_cancelled(self, session, provider, artifacts, sleep):
        cancel = asyncio.Event()

        def on_progress(scene_id, status, result):
            if status == StepStatus.SUCCESS:
                cancel.set()

        results = asyncio.run(_batch(session, artifacts, sleep, cancel_event=cancel).process_all(
            _scenes(3), None, AspectRatio.LANDSCAPE, on_progress=on_progress,
        ))

        assert [s.status for s in results] == [StepStatus.SUCCESS, StepStatus.ERROR, StepStatus.ERROR]
        assert results[2].error == CANCELLED_MESSAGE
        assert len(provider.calls_to(":generateVideos")) == 1
