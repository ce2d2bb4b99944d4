"""
Settings for the generation worker.

Every field can be overridden through a VEOSTUDIO_* environment variable.
A settings object is captured once per run and treated as read-only for it.
"""

import os
from typing import Optional

from pydantic import BaseModel, Field

ENV_PREFIX = "VEOSTUDIO_"


def _env(name: str, default: str) -> str:
    return os.getenv(f"{ENV_PREFIX}{name}", default)


class PipelineSettings(BaseModel):
    """Static configuration applied to every pipeline run."""

    model_config = {"frozen": True}

    api_base: str = "https://generativelanguage.googleapis.com/v1beta"
    api_key: str = ""

    planner_model: str = "gemini-2.5-flash"
    image_model: str = "imagen-4.0-generate-001"
    tts_model: str = "gemini-2.5-flash-preview-tts"
    video_models: dict[str, str] = Field(default_factory=lambda: {
        "quality": "veo-3.1-generate-preview",
        "fast": "veo-3.1-fast-generate-preview",
    })
    voice_name: str = "Kore"

    # Pacing between provider calls, per auth mode
    cookie_delay_seconds: float = 5.0
    apikey_delay_seconds: float = 12.0

    # Video job polling
    poll_interval_seconds: float = 10.0
    max_polls: int = 60

    request_timeout_seconds: float = 120.0
    variation_count: int = 3

    session_origin: str = "https://aistudio.google.com"
    cookie_domains: tuple[str, ...] = ("google", "googleapis")

    artifacts_dir: str = "artifacts"

    supabase_url: Optional[str] = None
    supabase_key: Optional[str] = None
    records_table: str = "veostudio_records"

    @classmethod
    def from_env(cls) -> "PipelineSettings":
        """Create a settings object populated from environment variables."""
        defaults = cls()
        return cls(
            api_base=_env("API_BASE", defaults.api_base),
            api_key=os.getenv("GEMINI_API_KEY") or os.getenv("GOOGLE_API_KEY", ""),
            planner_model=_env("PLANNER_MODEL", defaults.planner_model),
            image_model=_env("IMAGE_MODEL", defaults.image_model),
            tts_model=_env("TTS_MODEL", defaults.tts_model),
            video_models={
                "quality": _env("VIDEO_MODEL_QUALITY", defaults.video_models["quality"]),
                "fast": _env("VIDEO_MODEL_FAST", defaults.video_models["fast"]),
            },
            voice_name=_env("VOICE_NAME", defaults.voice_name),
            cookie_delay_seconds=float(_env("COOKIE_DELAY", str(defaults.cookie_delay_seconds))),
            apikey_delay_seconds=float(_env("APIKEY_DELAY", str(defaults.apikey_delay_seconds))),
            poll_interval_seconds=float(_env("POLL_INTERVAL", str(defaults.poll_interval_seconds))),
            max_polls=int(_env("MAX_POLLS", str(defaults.max_polls))),
            request_timeout_seconds=float(
                _env("REQUEST_TIMEOUT", str(defaults.request_timeout_seconds))
            ),
            variation_count=int(_env("VARIATION_COUNT", str(defaults.variation_count))),
            session_origin=_env("SESSION_ORIGIN", defaults.session_origin),
            cookie_domains=tuple(
                d.strip()
                for d in _env("COOKIE_DOMAINS", ",".join(defaults.cookie_domains)).split(",")
                if d.strip()
            ),
            artifacts_dir=_env("ARTIFACTS_DIR", defaults.artifacts_dir),
            supabase_url=os.getenv("SUPABASE_URL"),
            supabase_key=os.getenv("SUPABASE_SERVICE_ROLE_KEY"),
            records_table=_env("RECORDS_TABLE", defaults.records_table),
        )

    def video_model(self, variant: str) -> str:
        return self.video_models.get(variant, self.video_models["quality"])
