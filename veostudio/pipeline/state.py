"""
Run stages and the transition function.

A run is always in exactly one RunStage. Events are applied with
transition(), which returns the next RunState or raises
InvalidTransitionError; nothing else changes the stage.

    awaiting_credentials → planning → character_generation
        → (review_pending | batch_processing) → complete

Failed moves any stage to awaiting_credentials (credential errors) or idle.
"""

from enum import Enum
from typing import Literal, Optional, Union

from pydantic import BaseModel

from ..errors import InvalidTransitionError
from .models import GenerationMode


class RunStage(str, Enum):
    AWAITING_CREDENTIALS = "awaiting_credentials"
    IDLE = "idle"
    PLANNING = "planning"
    CHARACTER_GENERATION = "character_generation"
    REVIEW_PENDING = "review_pending"
    BATCH_PROCESSING = "batch_processing"
    COMPLETE = "complete"


class RunState(BaseModel):
    model_config = {"frozen": True}

    stage: RunStage = RunStage.AWAITING_CREDENTIALS
    error: Optional[str] = None
    error_type: Optional[str] = None
    error_hint: Optional[str] = None


# ── Events ───────────────────────────────────────────────────────────────────

class CredentialsConfirmed(BaseModel):
    kind: Literal["credentials_confirmed"] = "credentials_confirmed"


class PlanReady(BaseModel):
    kind: Literal["plan_ready"] = "plan_ready"
    use_character_image: bool
    mode: GenerationMode


class VariationsReady(BaseModel):
    kind: Literal["variations_ready"] = "variations_ready"
    mode: GenerationMode


class Approved(BaseModel):
    kind: Literal["approved"] = "approved"


class BatchFinished(BaseModel):
    kind: Literal["batch_finished"] = "batch_finished"


class Failed(BaseModel):
    kind: Literal["failed"] = "failed"
    message: str
    error_type: str = "GenerationError"
    credential_error: bool = False
    hint: Optional[str] = None


RunEvent = Union[CredentialsConfirmed, PlanReady, VariationsReady, Approved, BatchFinished, Failed]


def _fork(mode: GenerationMode) -> RunStage:
    return RunStage.REVIEW_PENDING if mode == GenerationMode.REVIEW else RunStage.BATCH_PROCESSING


def transition(state: RunState, event: RunEvent) -> RunState:
    """Apply one event to a run state."""
    stage = state.stage

    if isinstance(event, Failed):
        target = RunStage.AWAITING_CREDENTIALS if event.credential_error else RunStage.IDLE
        return RunState(
            stage=target,
            error=event.message,
            error_type=event.error_type,
            error_hint=event.hint,
        )

    if isinstance(event, CredentialsConfirmed) and stage in (
        RunStage.AWAITING_CREDENTIALS, RunStage.IDLE,
    ):
        return RunState(stage=RunStage.PLANNING)

    if isinstance(event, PlanReady) and stage == RunStage.PLANNING:
        if event.use_character_image:
            return RunState(stage=RunStage.CHARACTER_GENERATION)
        return RunState(stage=_fork(event.mode))

    if isinstance(event, VariationsReady) and stage == RunStage.CHARACTER_GENERATION:
        return RunState(stage=_fork(event.mode))

    if isinstance(event, Approved) and stage == RunStage.REVIEW_PENDING:
        return RunState(stage=RunStage.BATCH_PROCESSING)

    if isinstance(event, BatchFinished) and stage == RunStage.BATCH_PROCESSING:
        return RunState(stage=RunStage.COMPLETE)

    raise InvalidTransitionError(
        f"Event '{event.kind}' is not allowed in stage '{stage.value}'",
        {"stage": stage.value, "event": event.kind},
    )
