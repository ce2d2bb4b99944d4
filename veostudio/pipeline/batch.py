"""
Scene batch processing.

Runs speech then video for each scene, strictly one scene at a time and in
order, pacing provider calls with the run's delay. A failing scene is marked
`error` and the batch moves on; process_all() itself never raises for a
scene failure.
"""

import asyncio
import logging
from typing import Any, Awaitable, Callable, Optional

from ..auth import PacingPolicy
from ..transport import ProviderSession
from .animate import generate_video
from .models import AspectRatio, ImageResult, ModelVariant, Resolution, Scene, StepStatus
from .speech import generate_speech
from .storage import ArtifactStore

logger = logging.getLogger(__name__)

ProgressCallback = Callable[[str, StepStatus, Any], None]
Sleep = Callable[[float], Awaitable[None]]

CANCELLED_MESSAGE = "Run cancelled before this scene was processed"


class SceneBatchOrchestrator:
    """
    Sequential scene renderer.

    Usage:
        batch = SceneBatchOrchestrator(session, artifacts, pacing)
        scenes = await batch.process_all(scenes, reference, AspectRatio.LANDSCAPE, on_progress)

    The auth session and pacing passed in are the snapshot for the whole batch.
    """

    def __init__(
        self,
        session: ProviderSession,
        artifacts: ArtifactStore,
        pacing: PacingPolicy,
        resolution: Resolution = Resolution.HD,
        model_variant: ModelVariant = ModelVariant.QUALITY,
        videos_per_prompt: int = 1,
        cancel_event: Optional[asyncio.Event] = None,
        sleep: Sleep = asyncio.sleep,
    ):
        self.session = session
        self.artifacts = artifacts
        self.pacing = pacing
        self.resolution = resolution
        self.model_variant = model_variant
        self.videos_per_prompt = videos_per_prompt
        self.cancel_event = cancel_event
        self._sleep = sleep

    @property
    def cancelled(self) -> bool:
        return self.cancel_event is not None and self.cancel_event.is_set()

    def _emit(self, on_progress: Optional[ProgressCallback], scene_id: str, status: StepStatus, result: Any = None):
        if on_progress is None:
            return
        try:
            on_progress(scene_id, status, result)
        except Exception as e:
            logger.warning(f"Progress listener failed for scene {scene_id}: {e}")

    async def _render(
        self,
        scene: Scene,
        reference_image: Optional[ImageResult],
        aspect_ratio: AspectRatio,
    ) -> Scene:
        audio = await generate_speech(self.session, scene.voice_script)

        # Pace before the heavier video call
        await self._sleep(self.pacing.delay_seconds)

        video = await generate_video(
            self.session,
            scene.video_prompt,
            self.artifacts,
            reference_image=reference_image,
            aspect_ratio=aspect_ratio,
            resolution=self.resolution,
            model_variant=self.model_variant,
            videos_per_prompt=self.videos_per_prompt,
            sleep=self._sleep,
        )

        return scene.model_copy(update={
            "audio_url": audio.data_url,
            "video_url": video.url,
            "character_image": reference_image.data_url if reference_image else None,
            "status": StepStatus.SUCCESS,
            "error": None,
        })

    async def process_all(
        self,
        scenes: list[Scene],
        reference_image: Optional[ImageResult],
        aspect_ratio: AspectRatio,
        on_progress: Optional[ProgressCallback] = None,
    ) -> list[Scene]:
        """
        Render every scene.

        Returns:
            A list with the same length, order and ids as `scenes`; every
            entry is `success` (audio and video set) or `error` (media null).
        """
        results: list[Scene] = []
        total = len(scenes)

        for i, scene in enumerate(scenes):
            if self.cancelled:
                failed = scene.model_copy(update={
                    "audio_url": None, "video_url": None, "character_image": None,
                    "status": StepStatus.ERROR, "error": CANCELLED_MESSAGE,
                })
                results.append(failed)
                self._emit(on_progress, scene.id, StepStatus.ERROR, asyncio.CancelledError(CANCELLED_MESSAGE))
                continue

            self._emit(on_progress, scene.id, StepStatus.PENDING)
            logger.info(
                f"Generating scene {i + 1}/{total}",
                extra={"details": {"scene_id": scene.id}},
            )

            try:
                updated = await self._render(scene, reference_image, aspect_ratio)
            except Exception as e:
                logger.error(f"Scene {scene.id} failed: {e}", extra={"details": {"error": str(e)}})
                failed = scene.model_copy(update={
                    "audio_url": None, "video_url": None, "character_image": None,
                    "status": StepStatus.ERROR, "error": str(e),
                })
                results.append(failed)
                self._emit(on_progress, scene.id, StepStatus.ERROR, e)
            else:
                results.append(updated)
                logger.info(f"Scene {i + 1}/{total} complete", extra={"success": True})
                self._emit(on_progress, scene.id, StepStatus.SUCCESS, updated)

            if i < total - 1 and not self.cancelled:
                await self._sleep(self.pacing.delay_seconds)

        succeeded = sum(1 for s in results if s.status == StepStatus.SUCCESS)
        logger.info(f"Batch finished: {succeeded}/{total} scenes succeeded")
        return results
