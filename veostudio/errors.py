"""
Error taxonomy for the generation pipeline.

Errors are raised where the failure happens and carry structured detail,
so the pipeline can route on type instead of parsing message text.
"""

from typing import Optional


class GenerationError(Exception):
    """Root of every error raised by the generation core."""

    def __init__(self, message: str, details: Optional[dict] = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}

    def to_dict(self) -> dict:
        return {
            "type": type(self).__name__,
            "message": self.message,
            "details": self.details,
        }


# ── Transport ────────────────────────────────────────────────────────────────

class TransportError(GenerationError):
    """Network-level failure talking to the provider."""


class AuthError(TransportError):
    """No usable credentials, or the provider rejected them."""


class RateLimitError(TransportError):
    """HTTP 429 — quota exhausted for the current auth mode."""

    def __init__(self, message: str, hint: str = "", details: Optional[dict] = None):
        super().__init__(message, details)
        self.hint = hint

    def to_dict(self) -> dict:
        data = super().to_dict()
        data["hint"] = self.hint
        return data


class HttpError(TransportError):
    """Any other non-2xx response."""

    def __init__(self, status_code: int, body: str = "", details: Optional[dict] = None):
        super().__init__(f"API error {status_code}: {body[:200]}", details)
        self.status_code = status_code
        self.body = body


# ── Generators ───────────────────────────────────────────────────────────────

class PlanningError(GenerationError):
    """The planner returned a malformed or incomplete plan."""


class ImageGenError(GenerationError):
    """The image model returned no images."""


class TTSError(GenerationError):
    """The speech model returned no inline audio."""


class VideoTimeoutError(GenerationError):
    """The video job did not finish within the polling ceiling."""

    def __init__(self, polls: int, interval: float):
        super().__init__(
            f"Video generation timed out after {polls} polls ({polls * interval:.0f}s)",
            {"polls": polls, "interval_seconds": interval},
        )
        self.polls = polls
        self.interval = interval


class DownloadError(GenerationError):
    """The finished video could not be located or downloaded."""


class NoVariationsError(GenerationError):
    """Every character-image attempt failed."""

    def __init__(self, attempts: int, causes: list, hints: list):
        super().__init__(
            f"Failed to generate any character variations ({attempts} attempts)",
            {"attempts": attempts, "causes": causes, "hints": hints},
        )
        self.attempts = attempts
        self.causes = causes
        self.hints = hints


# ── Run control ──────────────────────────────────────────────────────────────

class InvalidTransitionError(GenerationError):
    """An event is not valid in the run's current stage."""


class RunNotFoundError(GenerationError):
    """No run (or stored record) with the given id."""


class ApprovalError(GenerationError):
    """Approval is missing a required character selection."""
