"""
Scene video — Veo long-running jobs.

Submits a generation job, polls the operation until it is done (bounded by
settings.max_polls × settings.poll_interval_seconds), then downloads the
result with the run's auth and stores it as a local artifact.
"""

import asyncio
import logging
from typing import Awaitable, Callable, Optional

from ..errors import DownloadError, VideoTimeoutError
from ..transport import ProviderSession
from .models import AspectRatio, ImageResult, ModelVariant, Resolution, VideoResult
from .storage import ArtifactStore

logger = logging.getLogger(__name__)

Sleep = Callable[[float], Awaitable[None]]


def operation_endpoint(name: str) -> str:
    """Operation names are either bare ids or full resource paths."""
    if "/" in name:
        return name
    return f"operations/{name}"


def extract_video_uri(operation: dict) -> Optional[str]:
    response = operation.get("response") or {}

    videos = response.get("generatedVideos") or []
    if videos:
        uri = (videos[0].get("video") or {}).get("uri")
        if uri:
            return uri

    # predictLongRunning response shape
    samples = (response.get("generateVideoResponse") or {}).get("generatedSamples") or []
    if samples:
        return (samples[0].get("video") or {}).get("uri")
    return None


async def generate_video(
    session: ProviderSession,
    prompt: str,
    artifacts: ArtifactStore,
    reference_image: Optional[ImageResult] = None,
    aspect_ratio: AspectRatio = AspectRatio.LANDSCAPE,
    resolution: Resolution = Resolution.HD,
    model_variant: ModelVariant = ModelVariant.QUALITY,
    videos_per_prompt: int = 1,
    sleep: Sleep = asyncio.sleep,
) -> VideoResult:
    """
    Render one scene clip.

    Args:
        session:           Provider session for this run.
        prompt:            The scene's video prompt.
        artifacts:         Where the downloaded clip is written.
        reference_image:   Optional character reference for visual consistency.
        aspect_ratio:      16:9 or 9:16.
        resolution:        720p or 1080p.
        model_variant:     quality or fast Veo model.
        videos_per_prompt: numberOfVideos requested; the first is kept.

    Returns:
        VideoResult with the bytes and a local URL.

    Raises:
        VideoTimeoutError: the job did not finish within the polling ceiling.
        DownloadError:     no download URI, or the download failed.
    """
    settings = session.settings
    model = settings.video_model(model_variant.value)

    config: dict = {
        "numberOfVideos": videos_per_prompt,
        "resolution": resolution.value,
        "aspectRatio": aspect_ratio.value,
    }
    if reference_image is not None:
        config["referenceImages"] = [{
            "image": {
                "imageBytes": reference_image.base64,
                "mimeType": reference_image.mime_type,
            }
        }]

    logger.info(
        f"Submitting {model} job ({aspect_ratio.value}, {resolution.value})",
        extra={"details": {"prompt": prompt[:100], "has_reference": reference_image is not None}},
    )
    operation = await session.call(
        f"models/{model}:generateVideos", "POST", {"prompt": prompt, "config": config},
        label="video_submit",
    )

    name = operation.get("name", "")
    polls = 0
    while not operation.get("done"):
        if polls >= settings.max_polls:
            raise VideoTimeoutError(polls, settings.poll_interval_seconds)
        polls += 1
        await sleep(settings.poll_interval_seconds)
        operation = await session.call(operation_endpoint(name), "GET", label="video_poll")
        logger.info(f"Veo poll {polls}/{settings.max_polls}: done={bool(operation.get('done'))}")

    if operation.get("error"):
        error = operation["error"]
        raise DownloadError(
            f"Video generation failed: {error.get('message', 'unknown error')}",
            {"operation_error": error},
        )

    uri = extract_video_uri(operation)
    if not uri:
        raise DownloadError("Video generation succeeded, but no download link was found.")

    logger.info(f"Video ready after {polls} poll(s), downloading")
    data, content_type = await session.download(uri)
    url = artifacts.save(data, content_type)

    logger.info(f"Video stored: {url} ({len(data) // 1024} KB)", extra={"success": True})
    return VideoResult(url=url, mime_type=content_type, data=data)
