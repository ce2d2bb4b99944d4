"""Tests for Veo job submission, the polling ceiling and download."""

import asyncio
from pathlib import Path
from urllib.parse import urlparse

import httpx
import pytest

from veostudio.auth import AuthMode, Credentials
from veostudio.errors import DownloadError, HttpError, VideoTimeoutError
from veostudio.pipeline.animate import extract_video_uri, generate_video, operation_endpoint
from veostudio.pipeline.models import AspectRatio, ImageResult, ModelVariant, Resolution
from veostudio.transport import GenerationTransport, ProviderSession


def _session(settings, provider, **overrides):
    settings = settings.model_copy(update=overrides)
    client = httpx.AsyncClient(transport=httpx.MockTransport(provider))
    return ProviderSession(GenerationTransport(settings, client=client), AuthMode.APIKEY, Credentials(api_key="k"))


class TestHelpers:
    def test_operation_endpoint(self):
        assert operation_endpoint("abc") == "operations/abc"
        assert operation_endpoint("models/veo/operations/abc") == "models/veo/operations/abc"

    def test_extract_uri_shapes(self):
        assert extract_video_uri({"response": {"generatedVideos": [{"video": {"uri": "u1"}}]}}) == "u1"
        samples = {"response": {"generateVideoResponse": {"generatedSamples": [{"video": {"uri": "u2"}}]}}}
        assert extract_video_uri(samples) == "u2"
        assert extract_video_uri({"done": True}) is None


class TestGenerateVideo:
    def test_submit_poll_download(self, session, provider, artifacts, sleep):
        provider.polls_until_done = 3
        reference = ImageResult(base64="aW1n", mime_type="image/png")

        result = asyncio.run(generate_video(
            session, "a fox walks", artifacts,
            reference_image=reference,
            aspect_ratio=AspectRatio.PORTRAIT,
            resolution=Resolution.FULL_HD,
            sleep=sleep,
        ))

        body = provider.json_bodies("veo-3.1-generate-preview:generateVideos")[0]
        assert body["prompt"] == "a fox walks"
        assert body["config"]["aspectRatio"] == "9:16"
        assert body["config"]["resolution"] == "1080p"
        assert body["config"]["referenceImages"][0]["image"]["imageBytes"] == "aW1n"
        assert sleep.calls == [10, 10, 10]
        assert Path(urlparse(result.url).path).read_bytes() == provider.video_bytes

    def test_fast_variant_model(self, session, provider, artifacts, sleep):
        asyncio.run(generate_video(session, "p", artifacts, model_variant=ModelVariant.FAST, sleep=sleep))
        assert provider.calls_to("veo-3.1-fast-generate-preview:generateVideos")

    def test_done_on_last_allowed_poll(self, settings, provider, artifacts, sleep):
        provider.polls_until_done = 60
        session = _session(settings, provider, max_polls=60)

        result = asyncio.run(generate_video(session, "p", artifacts, sleep=sleep))

        assert result.size_bytes == len(provider.video_bytes)
        assert len(provider.calls_to("/operations/")) == 60

    def test_times_out_at_ceiling(self, settings, provider, artifacts, sleep):
        provider.polls_until_done = 61
        session = _session(settings, provider, max_polls=60)

        with pytest.raises(VideoTimeoutError) as exc:
            asyncio.run(generate_video(session, "p", artifacts, sleep=sleep))

        assert exc.value.polls == 60
        assert len(provider.calls_to("/operations/")) == 60
        assert not provider.calls_to("clip.mp4")

    def test_missing_uri(self, session, provider, artifacts, sleep):
        provider.omit_uri = True
        with pytest.raises(DownloadError):
            asyncio.run(generate_video(session, "p", artifacts, sleep=sleep))

    def test_submit_failure_propagates(self, session, provider, artifacts, sleep):
        provider.failing_prompts = {"p"}
        with pytest.raises(HttpError):
            asyncio.run(generate_video(session, "p", artifacts, sleep=sleep))
