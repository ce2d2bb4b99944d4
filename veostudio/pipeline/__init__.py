"""
Video Generation Pipeline

  Planning   — Gemini turns an idea (and optional script) into a scene plan
  Character  — Imagen reference variations, optional human review
  Batch      — per scene: TTS voice-over → Veo clip, paced and failure-isolated
  Projects   — run records with resume, export and import
"""

from .orchestrator import VideoGenerationService
from .routes import pipeline_router, project_router
from .models import RunConfiguration, StepStatus
from .state import RunStage

__all__ = [
    "VideoGenerationService",
    "pipeline_router",
    "project_router",
    "RunConfiguration",
    "RunStage",
    "StepStatus",
]
