"""
VideoGenerationService — main pipeline orchestrator.

Drives one run at a time per run id through the stages in state.py:
  Step 0: Resolve credentials / auth mode (once per run)
  Step 1: Creative plan (Gemini)
  Step 2: Character variations (Imagen), when character mode is on
  Step 3: Review pause, or straight on in auto mode
  Step 4: Scene batch — speech + Veo per scene
  Step 5: Persist the RunRecord

Collaborators (settings, record store, transport, artifact store) are passed
in by the host application.
"""

import asyncio
import logging
import uuid
from datetime import datetime, timezone
from typing import Any, Callable, Optional

from ..auth import AuthMode, Credentials, PacingPolicy, pacing_for, resolve
from ..config import PipelineSettings
from ..errors import (
    ApprovalError,
    AuthError,
    GenerationError,
    InvalidTransitionError,
    NoVariationsError,
    RateLimitError,
    RunNotFoundError,
)
from ..metrics import MetricsRegistry
from ..transport import GenerationTransport, ProviderSession
from .batch import SceneBatchOrchestrator
from .character import generate_character_variations
from .models import (
    CharacterVariation,
    CreativeAssets,
    GeneratedData,
    GenerationStatus,
    RunConfiguration,
    RunRecord,
    RunStatusResponse,
    Scene,
    StepStatus,
    select_variation,
    selected_variation,
)
from .planner import generate_creative_assets
from .project_service import ProjectService
from .state import (
    Approved,
    BatchFinished,
    CredentialsConfirmed,
    Failed,
    PlanReady,
    RunEvent,
    RunStage,
    RunState,
    VariationsReady,
    transition,
)
from .storage import ArtifactStore, LocalArtifactStore, RecordStore, create_record_store

logger = logging.getLogger(__name__)

RunProgressListener = Callable[[str, str, StepStatus, Any], None]


class RunSession:
    """Everything one run owns. Mutated only by VideoGenerationService."""

    def __init__(self, run_id: str, idea: str, script: str, config: RunConfiguration):
        self.run_id = run_id
        self.idea = idea
        self.script = script
        self.config = config
        self.state = RunState()
        self.status = GenerationStatus()
        self.auth_mode = AuthMode.NONE
        self.pacing: Optional[PacingPolicy] = None
        self.provider: Optional[ProviderSession] = None
        self.creative_assets: Optional[CreativeAssets] = None
        self.variations: list[CharacterVariation] = []
        self.scenes: list[Scene] = []
        self.created_at = datetime.now(timezone.utc).isoformat()
        self.cancel_event = asyncio.Event()
        self.task: Optional[asyncio.Task] = None

    @property
    def stage(self) -> RunStage:
        return self.state.stage

    def generated_data(self) -> GeneratedData:
        selected = selected_variation(self.variations)
        return GeneratedData(
            character_image=selected.image_url if selected else None,
            character_variations=list(self.variations),
            creative_assets=self.creative_assets,
            scenes=list(self.scenes),
        )


def _is_credential_error(error: BaseException) -> bool:
    if isinstance(error, AuthError):
        return True
    if isinstance(error, NoVariationsError) and error.causes:
        return all(c.get("type") == "AuthError" for c in error.causes)
    return False


def _hint_for(error: BaseException) -> Optional[str]:
    if isinstance(error, RateLimitError):
        return error.hint
    if isinstance(error, NoVariationsError):
        return " ".join(error.hints) or None
    return None


class VideoGenerationService:
    """
    Production pipeline orchestrator.

    Usage:
        service = VideoGenerationService(settings, store)
        service.save_credentials(Credentials(api_key="..."))

        run = await service.start_run(idea, script, config)
        if run.stage == RunStage.REVIEW_PENDING:
            run = await service.approve(run.run_id, character_id="var_1")
    """

    def __init__(
        self,
        settings: Optional[PipelineSettings] = None,
        store: Optional[RecordStore] = None,
        transport: Optional[GenerationTransport] = None,
        artifacts: Optional[ArtifactStore] = None,
        metrics: Optional[MetricsRegistry] = None,
        sleep: Callable = asyncio.sleep,
    ):
        self.settings = settings or PipelineSettings.from_env()
        self.metrics = metrics or MetricsRegistry()
        self.projects = ProjectService(store if store is not None else create_record_store(self.settings))
        self.transport = transport or GenerationTransport(self.settings, self.metrics)
        self.artifacts = artifacts or LocalArtifactStore(self.settings.artifacts_dir)
        self._sleep = sleep
        self._runs: dict[str, RunSession] = {}
        self._listeners: list[RunProgressListener] = []

    # ── Lookup & observers ───────────────────────────────────────────────

    def get_run(self, run_id: str) -> RunSession:
        run = self._runs.get(run_id)
        if run is None:
            raise RunNotFoundError(f"Run {run_id} not found.")
        return run

    def get_status(self, run_id: str) -> RunStatusResponse:
        run = self.get_run(run_id)
        return RunStatusResponse(
            run_id=run.run_id,
            stage=run.stage.value,
            auth_mode=run.auth_mode.value,
            status=run.status,
            character_variations=run.variations,
            scenes=run.scenes,
            error=run.state.error,
            error_type=run.state.error_type,
            error_hint=run.state.error_hint,
            record_id=run.run_id if run.stage in (RunStage.COMPLETE, RunStage.REVIEW_PENDING) else None,
        )

    def add_progress_listener(self, listener: RunProgressListener) -> Callable[[], None]:
        """listener(run_id, scene_id, status, result) for every scene event."""
        self._listeners.append(listener)

        def remove():
            if listener in self._listeners:
                self._listeners.remove(listener)

        return remove

    def save_credentials(self, credentials: Credentials) -> dict:
        return self.projects.save_credentials(credentials)

    # ── Stage bookkeeping ────────────────────────────────────────────────

    def _apply(self, run: RunSession, event: RunEvent):
        previous = run.stage
        run.state = transition(run.state, event)
        logger.info(f"[{run.run_id}] {previous.value} → {run.stage.value}")

    def _fail(self, run: RunSession, error: BaseException):
        for step in ("planning", "character", "voice", "video"):
            if getattr(run.status, step) == StepStatus.PENDING:
                setattr(run.status, step, StepStatus.ERROR)

        message = error.message if isinstance(error, GenerationError) else (str(error) or type(error).__name__)
        self._apply(run, Failed(
            message=message,
            error_type=type(error).__name__,
            credential_error=_is_credential_error(error),
            hint=_hint_for(error),
        ))
        logger.error(
            f"[{run.run_id}] Run failed: {message}",
            extra={"details": error.to_dict() if isinstance(error, GenerationError) else None},
        )

    def _credentials(self) -> Optional[Credentials]:
        credentials = self.projects.load_credentials()
        if credentials is None and self.settings.api_key:
            credentials = Credentials(api_key=self.settings.api_key)
        return credentials

    def _bind_auth(self, run: RunSession) -> bool:
        """Resolve and snapshot the run's auth. False when nothing is usable."""
        credentials = self._credentials()
        run.auth_mode = resolve(run.config, credentials)
        logger.info(f"[{run.run_id}] Auth mode: {run.auth_mode.value}")

        if run.auth_mode == AuthMode.NONE:
            self._fail(run, AuthError("No credentials configured. Provide an API key or session cookies."))
            return False

        run.pacing = pacing_for(run.auth_mode, self.settings)
        run.provider = ProviderSession(self.transport, run.auth_mode, credentials)
        return True

    # ── Run entry points ─────────────────────────────────────────────────

    def create_run(self, idea: str, script: str, config: RunConfiguration) -> RunSession:
        run = RunSession(uuid.uuid4().hex, idea, script, config)
        self._runs[run.run_id] = run
        self.projects.save_last_inputs(idea, script, config)
        return run

    async def start_run(self, idea: str, script: str, config: RunConfiguration) -> RunSession:
        """Run until complete, failed, or suspended for review."""
        run = self.create_run(idea, script, config)
        await self.execute(run)
        return run

    def start_run_background(self, idea: str, script: str, config: RunConfiguration) -> RunSession:
        """Fire-and-forget wrapper for start_run."""
        run = self.create_run(idea, script, config)
        run.task = asyncio.create_task(self.execute(run))
        return run

    async def execute(self, run: RunSession):
        if not self._bind_auth(run):
            return
        self._apply(run, CredentialsConfirmed())

        try:
            await self._prepare(run)
        except asyncio.CancelledError:
            self._fail(run, GenerationError("Run cancelled"))
            raise
        except Exception as e:
            self._fail(run, e)
            return

        if run.stage == RunStage.REVIEW_PENDING:
            self._persist(run)
            logger.info(f"[{run.run_id}] Waiting for review approval")
            return

        await self._run_batch(run)

    async def _prepare(self, run: RunSession):
        """Planning and (optionally) character generation."""
        config = run.config

        # ── Step 1: Creative plan ────────────────────────────────────
        run.status.planning = StepStatus.PENDING
        assets = await generate_creative_assets(run.provider, run.idea, run.script, config)
        run.creative_assets = assets
        run.scenes = list(assets.scenes)
        run.status.planning = StepStatus.SUCCESS
        self._apply(run, PlanReady(use_character_image=config.use_character_image, mode=config.mode))

        if run.stage != RunStage.CHARACTER_GENERATION:
            return

        # ── Step 2: Character variations ─────────────────────────────
        run.status.character = StepStatus.PENDING
        images = await generate_character_variations(
            run.provider,
            assets.character_prompt,
            self.settings.variation_count,
            run.pacing,
            sleep=self._sleep,
        )
        # First variation is the default selection
        run.variations = [
            CharacterVariation(
                id=f"var_{i}",
                base64=image.base64,
                mime_type=image.mime_type,
                prompt=assets.character_prompt,
                selected=(i == 0),
            )
            for i, image in enumerate(images)
        ]
        run.status.character = StepStatus.SUCCESS
        self._apply(run, VariationsReady(mode=config.mode))

    # ── Review ───────────────────────────────────────────────────────────

    def _require_review(self, run: RunSession):
        if run.stage != RunStage.REVIEW_PENDING:
            raise InvalidTransitionError(
                f"Run {run.run_id} is not awaiting review (stage={run.stage.value})",
                {"stage": run.stage.value},
            )

    def select_character(self, run_id: str, variation_id: str) -> RunSession:
        run = self.get_run(run_id)
        self._require_review(run)
        run.variations = select_variation(run.variations, variation_id)
        logger.info(f"[{run_id}] Selected character {variation_id}")
        return run

    def edit_scene(
        self,
        run_id: str,
        scene_id: str,
        video_prompt: Optional[str] = None,
        voice_script: Optional[str] = None,
    ) -> Scene:
        run = self.get_run(run_id)
        self._require_review(run)

        updates = {}
        if video_prompt is not None:
            updates["video_prompt"] = video_prompt
        if voice_script is not None:
            updates["voice_script"] = voice_script

        for i, scene in enumerate(run.scenes):
            if scene.id == scene_id:
                run.scenes[i] = scene.model_copy(update=updates)
                return run.scenes[i]
        raise ValueError(f"Unknown scene: {scene_id}")

    def _accept_approval(
        self,
        run: RunSession,
        character_id: Optional[str],
        scenes: Optional[list[Scene]],
    ):
        self._require_review(run)

        variations = run.variations
        if character_id is not None:
            variations = select_variation(variations, character_id)
        if run.config.use_character_image and selected_variation(variations) is None:
            raise ApprovalError("Select a character variation before approving.")

        run.variations = variations
        if scenes is not None:
            run.scenes = [
                s.model_copy(update={
                    "index": i, "status": StepStatus.IDLE,
                    "audio_url": None, "video_url": None, "character_image": None, "error": None,
                })
                for i, s in enumerate(scenes)
            ]
        self._apply(run, Approved())

    async def approve(
        self,
        run_id: str,
        character_id: Optional[str] = None,
        scenes: Optional[list[Scene]] = None,
    ) -> RunSession:
        """Approval signal: resume a review-pending run at the batch stage."""
        run = self.get_run(run_id)
        self._accept_approval(run, character_id, scenes)
        await self._run_batch(run)
        return run

    def approve_background(
        self,
        run_id: str,
        character_id: Optional[str] = None,
        scenes: Optional[list[Scene]] = None,
    ) -> RunSession:
        run = self.get_run(run_id)
        self._accept_approval(run, character_id, scenes)
        run.task = asyncio.create_task(self._run_batch(run))
        return run

    def resume(self, record_id: str) -> RunSession:
        """
        Rehydrate a review-pending run from its stored record (e.g. after a restart).
        Credentials are resolved again for the resumed run, so a run that stopped
        at awaiting_credentials picks up credentials saved since.
        """
        cached = self._runs.get(record_id)
        if cached is not None and cached.stage not in (RunStage.AWAITING_CREDENTIALS, RunStage.IDLE):
            return cached

        try:
            record = self.projects.get_record(record_id)
        except RunNotFoundError:
            if cached is not None:
                return cached
            raise
        if record.stage != RunStage.REVIEW_PENDING.value:
            if cached is not None:
                return cached
            raise InvalidTransitionError(
                f"Project {record_id} is not awaiting review (stage={record.stage})",
                {"stage": record.stage},
            )

        run = RunSession(record.id, record.idea, record.script, record.config)
        run.created_at = record.created_at
        run.creative_assets = record.creative_assets
        run.variations = list(record.generated_data.character_variations)
        run.scenes = list(record.generated_data.scenes)
        run.status = GenerationStatus(
            planning=StepStatus.SUCCESS,
            character=StepStatus.SUCCESS if run.variations else StepStatus.IDLE,
        )
        self._runs[run.run_id] = run

        if self._bind_auth(run):
            run.state = RunState(stage=RunStage.REVIEW_PENDING)
            logger.info(f"[{run.run_id}] Resumed from stored project")
        return run

    def cancel(self, run_id: str) -> RunSession:
        """Stop scheduling further work for a run."""
        run = self.get_run(run_id)
        run.cancel_event.set()
        if run.task is not None and not run.task.done() and run.stage in (
            RunStage.PLANNING, RunStage.CHARACTER_GENERATION,
        ):
            run.task.cancel()
        logger.info(f"[{run_id}] Cancellation requested")
        return run

    # ── Batch ────────────────────────────────────────────────────────────

    def _scene_progress(self, run: RunSession):
        def on_progress(scene_id: str, status: StepStatus, result: Any = None):
            for i, scene in enumerate(run.scenes):
                if scene.id != scene_id:
                    continue
                if isinstance(result, Scene):
                    run.scenes[i] = result
                elif status == StepStatus.ERROR:
                    run.scenes[i] = scene.model_copy(update={"status": status, "error": str(result)})
                else:
                    run.scenes[i] = scene.model_copy(update={"status": status})
            for listener in list(self._listeners):
                listener(run.run_id, scene_id, status, result)

        return on_progress

    async def _run_batch(self, run: RunSession):
        config = run.config
        selected = selected_variation(run.variations) if config.use_character_image else None
        reference = selected.to_image() if selected else None

        run.status.voice = StepStatus.PENDING
        run.status.video = StepStatus.PENDING

        batch = SceneBatchOrchestrator(
            run.provider,
            self.artifacts,
            run.pacing,
            resolution=config.resolution,
            model_variant=config.model_variant,
            videos_per_prompt=config.videos_per_prompt,
            cancel_event=run.cancel_event,
            sleep=self._sleep,
        )

        try:
            scenes = await batch.process_all(
                list(run.scenes), reference, config.aspect_ratio, self._scene_progress(run),
            )
        except Exception as e:
            logger.error(f"[{run.run_id}] Batch aborted unexpectedly: {e}", exc_info=True)
            self._fail(run, e)
            return

        run.scenes = scenes
        any_success = any(s.status == StepStatus.SUCCESS for s in scenes)
        run.status.voice = StepStatus.SUCCESS if any_success else StepStatus.ERROR
        run.status.video = StepStatus.SUCCESS if any_success else StepStatus.ERROR

        self._apply(run, BatchFinished())
        self._persist(run)

    # ── Persistence ──────────────────────────────────────────────────────

    def _persist(self, run: RunSession) -> RunRecord:
        record = self.projects.new_record(run.run_id, run.idea, run.script, run.config)
        record = record.model_copy(update={
            "stage": run.stage.value,
            "creative_assets": run.creative_assets,
            "generated_data": run.generated_data(),
            "created_at": run.created_at,
        })
        return self.projects.save_record(record)
