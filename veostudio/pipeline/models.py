"""
Pydantic models and enums for the video generation pipeline.
"""

import math
import re
from enum import Enum
from typing import Optional

from pydantic import BaseModel, Field, computed_field

from ..auth import Cookie

# Veo renders fixed-length clips
SCENE_LENGTH_SECONDS = 8


# ── Enums ────────────────────────────────────────────────────────────────────

class StepStatus(str, Enum):
    IDLE = "idle"
    PENDING = "pending"
    SUCCESS = "success"
    ERROR = "error"


class GenerationMode(str, Enum):
    AUTO = "auto"
    REVIEW = "review"


class VideoStyle(str, Enum):
    CINEMATIC = "cinematic"
    DOCUMENTARY = "documentary"
    CARTOON = "cartoon"
    REALISTIC = "realistic"
    ANIME = "anime"
    CUSTOM = "custom"


class Language(str, Enum):
    EN = "en"
    VI = "vi"
    JA = "ja"
    KO = "ko"
    ZH = "zh"
    FR = "fr"
    ES = "es"


LANGUAGE_NAMES = {
    Language.EN: "English",
    Language.VI: "Vietnamese",
    Language.JA: "Japanese",
    Language.KO: "Korean",
    Language.ZH: "Chinese",
    Language.FR: "French",
    Language.ES: "Spanish",
}


class AspectRatio(str, Enum):
    LANDSCAPE = "16:9"
    PORTRAIT = "9:16"


class Resolution(str, Enum):
    HD = "720p"
    FULL_HD = "1080p"


class ModelVariant(str, Enum):
    QUALITY = "quality"
    FAST = "fast"


# ── Run configuration ────────────────────────────────────────────────────────

def scene_count_for(total_duration_minutes: float) -> int:
    """ceil(total seconds / scene length); rounding guards float noise (0.4 min → 3)."""
    total_seconds = round(total_duration_minutes * 60, 6)
    return max(1, math.ceil(total_seconds / SCENE_LENGTH_SECONDS))


class RunConfiguration(BaseModel):
    """Per-run options. scene_count is always derived from the duration."""
    style: VideoStyle = VideoStyle.CINEMATIC
    custom_style: Optional[str] = None
    language: Language = Language.EN
    total_duration_minutes: float = Field(1.0, gt=0)
    aspect_ratio: AspectRatio = AspectRatio.LANDSCAPE
    resolution: Resolution = Resolution.HD
    model_variant: ModelVariant = ModelVariant.QUALITY
    videos_per_prompt: int = Field(1, ge=1, le=4)
    mode: GenerationMode = GenerationMode.AUTO
    use_character_image: bool = True
    use_cookie_auth: bool = False

    @computed_field
    @property
    def scene_count(self) -> int:
        return scene_count_for(self.total_duration_minutes)

    @property
    def style_description(self) -> str:
        if self.style == VideoStyle.CUSTOM and self.custom_style:
            return self.custom_style
        return self.style.value

    @property
    def language_name(self) -> str:
        return LANGUAGE_NAMES[self.language]


# ── Media results ────────────────────────────────────────────────────────────

_DATA_URL_RE = re.compile(r"^data:([^;]+);base64,(.+)$", re.DOTALL)


class InlineMedia(BaseModel):
    """Base64 payload returned inline by the provider (image or audio)."""
    base64: str = Field(repr=False)
    mime_type: str

    @property
    def data_url(self) -> str:
        return f"data:{self.mime_type};base64,{self.base64}"

    @classmethod
    def from_data_url(cls, url: str) -> "InlineMedia":
        match = _DATA_URL_RE.match(url)
        if not match:
            raise ValueError("Invalid data URL format")
        return cls(mime_type=match.group(1), base64=match.group(2))


class ImageResult(InlineMedia):
    pass


class AudioResult(InlineMedia):
    pass


class VideoResult(BaseModel):
    """A downloaded video: raw bytes plus a locally addressable URL."""
    url: str
    mime_type: str = "video/mp4"
    data: bytes = Field(b"", exclude=True, repr=False)

    @property
    def size_bytes(self) -> int:
        return len(self.data)


# ── Scenes & assets ──────────────────────────────────────────────────────────

class Scene(BaseModel):
    id: str
    index: int
    prompt: str = ""  # inherited character prompt
    video_prompt: str
    voice_script: str
    character_image: Optional[str] = None
    audio_url: Optional[str] = None
    video_url: Optional[str] = None
    status: StepStatus = StepStatus.IDLE
    error: Optional[str] = None


class CreativeAssets(BaseModel):
    character_prompt: str
    video_prompt: str
    voice_script: str
    scenes: list[Scene] = Field(default_factory=list)


class CharacterVariation(BaseModel):
    id: str
    base64: str = Field(repr=False)
    mime_type: str = "image/png"
    prompt: str
    selected: bool = False

    @computed_field
    @property
    def image_url(self) -> str:
        return f"data:{self.mime_type};base64,{self.base64}"

    def to_image(self) -> ImageResult:
        return ImageResult(base64=self.base64, mime_type=self.mime_type)


def select_variation(variations: list[CharacterVariation], variation_id: str) -> list[CharacterVariation]:
    """Return a copy with exactly `variation_id` selected."""
    if not any(v.id == variation_id for v in variations):
        raise ValueError(f"Unknown character variation: {variation_id}")
    return [v.model_copy(update={"selected": v.id == variation_id}) for v in variations]


def selected_variation(variations: list[CharacterVariation]) -> Optional[CharacterVariation]:
    return next((v for v in variations if v.selected), None)


class GenerationStatus(BaseModel):
    """Externally observable step indicators; not used for control flow."""
    planning: StepStatus = StepStatus.IDLE
    character: StepStatus = StepStatus.IDLE
    voice: StepStatus = StepStatus.IDLE
    video: StepStatus = StepStatus.IDLE


class GeneratedData(BaseModel):
    character_image: Optional[str] = None
    character_variations: list[CharacterVariation] = Field(default_factory=list)
    creative_assets: Optional[CreativeAssets] = None
    scenes: list[Scene] = Field(default_factory=list)


class RunRecord(BaseModel):
    """Named snapshot of a run, stored by the persistence collaborator."""
    id: str
    name: str
    idea: str
    script: str = ""
    config: RunConfiguration
    stage: str = "complete"
    creative_assets: Optional[CreativeAssets] = None
    generated_data: GeneratedData = Field(default_factory=GeneratedData)
    created_at: str
    updated_at: str


# ── API Request / Response Models ────────────────────────────────────────────

class CredentialsRequest(BaseModel):
    api_key: str = ""
    cookies: list[Cookie] = Field(default_factory=list)
    cookie_export: Optional[str] = Field(None, description="Raw cookie export file (JSON list)")


class RunRequest(BaseModel):
    idea: str = Field(..., min_length=1, description="The video idea")
    script: str = ""
    config: RunConfiguration = Field(default_factory=RunConfiguration)


class SelectCharacterRequest(BaseModel):
    variation_id: str


class SceneEditRequest(BaseModel):
    video_prompt: Optional[str] = None
    voice_script: Optional[str] = None


class ApproveRequest(BaseModel):
    character_id: Optional[str] = None
    scenes: Optional[list[Scene]] = None


class RunStatusResponse(BaseModel):
    run_id: str
    stage: str
    auth_mode: str
    status: GenerationStatus
    character_variations: list[CharacterVariation] = Field(default_factory=list)
    scenes: list[Scene] = Field(default_factory=list)
    error: Optional[str] = None
    error_type: Optional[str] = None
    error_hint: Optional[str] = None
    record_id: Optional[str] = None
