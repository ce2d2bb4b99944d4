"""Tests for the run state machine."""

import pytest

from veostudio.errors import InvalidTransitionError
from veostudio.pipeline.models import GenerationMode
from veostudio.pipeline.state import (
    Approved,
    BatchFinished,
    CredentialsConfirmed,
    Failed,
    PlanReady,
    RunStage,
    RunState,
    VariationsReady,
    transition,
)


def _at(stage):
    return RunState(stage=stage)


class TestHappyPaths:
    def test_auto_without_character(self):
        state = transition(RunState(), CredentialsConfirmed())
        assert state.stage == RunStage.PLANNING
        state = transition(state, PlanReady(use_character_image=False, mode=GenerationMode.AUTO))
        assert state.stage == RunStage.BATCH_PROCESSING
        state = transition(state, BatchFinished())
        assert state.stage == RunStage.COMPLETE

    def test_review_with_character(self):
        state = transition(_at(RunStage.PLANNING), PlanReady(use_character_image=True, mode=GenerationMode.REVIEW))
        assert state.stage == RunStage.CHARACTER_GENERATION
        state = transition(state, VariationsReady(mode=GenerationMode.REVIEW))
        assert state.stage == RunStage.REVIEW_PENDING
        state = transition(state, Approved())
        assert state.stage == RunStage.BATCH_PROCESSING

    def test_review_without_character_pauses(self):
        state = transition(_at(RunStage.PLANNING), PlanReady(use_character_image=False, mode=GenerationMode.REVIEW))
        assert state.stage == RunStage.REVIEW_PENDING

    def test_new_run_from_idle(self):
        assert transition(_at(RunStage.IDLE), CredentialsConfirmed()).stage == RunStage.PLANNING


class TestFailures:
    @pytest.mark.parametrize("stage", list(RunStage))
    def test_credential_failure_from_any_stage(self, stage):
        state = transition(_at(stage), Failed(message="rejected", error_type="AuthError", credential_error=True))
        assert state.stage == RunStage.AWAITING_CREDENTIALS
        assert state.error == "rejected"

    def test_other_failure_goes_idle_with_hint(self):
        event = Failed(message="quota", error_type="RateLimitError", hint="switch auth")
        state = transition(_at(RunStage.PLANNING), event)
        assert state.stage == RunStage.IDLE
        assert state.error_type == "RateLimitError"
        assert state.error_hint == "switch auth"


class TestInvalidTransitions:
    @pytest.mark.parametrize("stage, event", [
        (RunStage.PLANNING, Approved()),
        (RunStage.BATCH_PROCESSING, Approved()),
        (RunStage.COMPLETE, BatchFinished()),
        (RunStage.REVIEW_PENDING, BatchFinished()),
        (RunStage.PLANNING, CredentialsConfirmed()),
        (RunStage.CHARACTER_GENERATION, PlanReady(use_character_image=True, mode=GenerationMode.AUTO)),
    ])
    def test_rejected(self, stage, event):
        with pytest.raises(InvalidTransitionError):
            transition(_at(stage), event)

    def test_state_is_immutable(self):
        state = RunState()
        with pytest.raises(Exception):
            state.stage = RunStage.COMPLETE
