"""Shared fixtures: a fake Gemini/Imagen/Veo backend served through httpx.MockTransport."""

import json
import re

import httpx
import pytest

from veostudio.auth import AuthMode, Credentials
from veostudio.config import PipelineSettings
from veostudio.pipeline.orchestrator import VideoGenerationService
from veostudio.pipeline.storage import LocalArtifactStore, MemoryRecordStore
from veostudio.transport import GenerationTransport, ProviderSession

API_KEY = "test-key"
VIDEO_URI = "https://files.example.com/v1beta/files/clip.mp4"
VIDEO_BYTES = b"\x00\x00\x00\x18ftypmp42fake-video"
IMAGE_B64 = "aW1hZ2U="
AUDIO_B64 = "YXVkaW8="


class RecordingSleep:
    """Stands in for asyncio.sleep and remembers every delay."""

    def __init__(self):
        self.calls = []

    async def __call__(self, seconds):
        self.calls.append(seconds)


class FakeProvider:
    """
    Routes requests by endpoint the way the real API does.

    Knobs:
        plan_status      HTTP status for the planner call (200 → valid plan)
        plan_text        override the planner's JSON text
        image_statuses   statuses for successive image calls (then 200)
        tts_status       HTTP status for speech calls
        failing_prompts  video prompts whose submission returns HTTP 500
        polls_until_done poll count at which an operation reports done
        omit_uri         finished operations carry no video uri
    """

    video_bytes = VIDEO_BYTES

    def __init__(self):
        self.requests: list[httpx.Request] = []
        self.plan_status = 200
        self.plan_text = None
        self.image_statuses: list[int] = []
        self.tts_status = 200
        self.failing_prompts: set[str] = set()
        self.polls_until_done = 1
        self.omit_uri = False
        self._ops: dict[str, int] = {}

    # ── Introspection ────────────────────────────────────────────────────

    def calls_to(self, fragment: str) -> list[httpx.Request]:
        return [r for r in self.requests if fragment in r.url.path]

    def json_bodies(self, fragment: str) -> list[dict]:
        return [json.loads(r.content) for r in self.calls_to(fragment)]

    # ── Handlers ─────────────────────────────────────────────────────────

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        path = request.url.path

        if path.endswith("clip.mp4"):
            return httpx.Response(200, content=VIDEO_BYTES, headers={"Content-Type": "video/mp4"})
        if "tts" in path and path.endswith(":generateContent"):
            return self._speech()
        if path.endswith(":generateContent"):
            return self._plan(json.loads(request.content))
        if path.endswith(":generateImages"):
            return self._image()
        if path.endswith(":generateVideos"):
            return self._submit_video(json.loads(request.content))
        if "/operations/" in path:
            return self._poll(path.rsplit("/", 1)[-1])
        return httpx.Response(404, text="unknown endpoint")

    def _plan(self, body: dict) -> httpx.Response:
        if self.plan_status != 200:
            return httpx.Response(self.plan_status, text='{"error": {"message": "rejected"}}')
        prompt = body["contents"][0]["parts"][0]["text"]
        count = int(re.search(r"Number of scenes: (\d+)", prompt).group(1))
        text = self.plan_text or json.dumps({
            "characterPrompt": "A red fox in a trench coat",
            "videoPrompt": "A detective story in the city",
            "voiceScript": "Every city has secrets.",
            "scenes": [
                {"videoPrompt": f"Scene {i} shot", "voiceScript": f"Line {i}"}
                for i in range(count)
            ],
        })
        return httpx.Response(200, json={"candidates": [{"content": {"parts": [{"text": text}]}}]})

    def _image(self) -> httpx.Response:
        status = self.image_statuses.pop(0) if self.image_statuses else 200
        if status != 200:
            return httpx.Response(status, text="image failure")
        return httpx.Response(200, json={
            "generatedImages": [{"image": {"imageBytes": IMAGE_B64, "mimeType": "image/png"}}],
        })

    def _speech(self) -> httpx.Response:
        if self.tts_status != 200:
            return httpx.Response(self.tts_status, text="tts failure")
        return httpx.Response(200, json={"candidates": [{"content": {"parts": [
            {"inlineData": {"mimeType": "audio/L16;rate=24000", "data": AUDIO_B64}},
        ]}}]})

    def _submit_video(self, body: dict) -> httpx.Response:
        if body["prompt"] in self.failing_prompts:
            return httpx.Response(500, text="backend error")
        op = f"op_{len(self._ops)}"
        self._ops[op] = 0
        return httpx.Response(200, json={"name": f"operations/{op}", "done": False})

    def _poll(self, op: str) -> httpx.Response:
        self._ops[op] += 1
        if self._ops[op] < self.polls_until_done:
            return httpx.Response(200, json={"name": f"operations/{op}", "done": False})
        response = {} if self.omit_uri else {"generatedVideos": [{"video": {"uri": VIDEO_URI}}]}
        return httpx.Response(200, json={"name": f"operations/{op}", "done": True, "response": response})


# ── Fixtures ─────────────────────────────────────────────────────────────────

@pytest.fixture
def settings(tmp_path):
    return PipelineSettings(
        api_key="",
        cookie_delay_seconds=5,
        apikey_delay_seconds=12,
        poll_interval_seconds=10,
        max_polls=5,
        artifacts_dir=str(tmp_path / "artifacts"),
    )


@pytest.fixture
def provider():
    return FakeProvider()


@pytest.fixture
def transport(settings, provider):
    client = httpx.AsyncClient(transport=httpx.MockTransport(provider))
    return GenerationTransport(settings, client=client)


@pytest.fixture
def session(transport):
    return ProviderSession(transport, AuthMode.APIKEY, Credentials(api_key=API_KEY))


@pytest.fixture
def sleep():
    return RecordingSleep()


@pytest.fixture
def artifacts(tmp_path):
    return LocalArtifactStore(tmp_path / "artifacts")


@pytest.fixture
def store():
    return MemoryRecordStore()


@pytest.fixture
def service(settings, store, transport, artifacts, sleep):
    svc = VideoGenerationService(
        settings=settings,
        store=store,
        transport=transport,
        artifacts=artifacts,
        sleep=sleep,
    )
    svc.save_credentials(Credentials(api_key=API_KEY))
    return svc
