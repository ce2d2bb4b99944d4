"""
Planning step — Gemini structured output.

Turns the idea (and optional user script) into a character prompt, an
overall prompt, an overall voice script and exactly `scene_count` scenes.
"""

import json
import logging
import uuid

from ..errors import PlanningError
from ..transport import ProviderSession
from .models import CreativeAssets, RunConfiguration, Scene, StepStatus

logger = logging.getLogger(__name__)

PLAN_SCHEMA = {
    "type": "OBJECT",
    "properties": {
        "characterPrompt": {"type": "STRING", "description": "Prompt for character image generation."},
        "videoPrompt": {"type": "STRING", "description": "General video theme."},
        "voiceScript": {"type": "STRING", "description": "Overall script for voiceover."},
        "scenes": {
            "type": "ARRAY",
            "items": {
                "type": "OBJECT",
                "properties": {
                    "videoPrompt": {"type": "STRING"},
                    "voiceScript": {"type": "STRING"},
                },
                "required": ["videoPrompt", "voiceScript"],
            },
        },
    },
    "required": ["characterPrompt", "videoPrompt", "voiceScript", "scenes"],
}

REQUIRED_FIELDS = ("characterPrompt", "videoPrompt", "voiceScript")


def build_plan_prompt(idea: str, user_script: str, config: RunConfiguration) -> str:
    style = config.style_description
    language = config.language_name
    return f"""Based on the following idea, generate a set of creative assets for a video.

User's idea: "{idea}"
User provided script: "{user_script or 'Not provided'}"

Video Configuration:
- Style: {style}
- Language: {language}
- Number of scenes: {config.scene_count}
- Duration per scene: 8 seconds (fixed)
- Total duration: ~{config.total_duration_minutes:g} minute(s)

Your tasks:
1. **characterPrompt**: Create a detailed, visually rich prompt for an image generation model to create the main character.
   The character should fit the "{style}" style. Describe appearance, clothing, and setting.

2. **scenes**: Generate exactly {config.scene_count} distinct scenes. For each scene:
   - videoPrompt: Describe an 8-second cinematic scene in "{style}" style
   - voiceScript: Write dialogue/narration in {language}
   - Ensure continuity between scenes

3. **voiceScript**: If the user provided a script, use it. Otherwise, create an overall narration.

4. **videoPrompt**: Summarize the overall theme of the video.

Return the response in JSON format with these fields:
{{
  "characterPrompt": "string",
  "videoPrompt": "string",
  "voiceScript": "string",
  "scenes": [
    {{ "videoPrompt": "string", "voiceScript": "string" }}
  ]
}}"""


def _response_text(result: dict) -> str:
    candidates = result.get("candidates") or []
    if not candidates:
        raise PlanningError("Planner returned no candidates.")
    parts = candidates[0].get("content", {}).get("parts", [])
    text = "".join(p.get("text", "") for p in parts if isinstance(p, dict))
    if not text.strip():
        raise PlanningError("Planner returned an empty response.")
    return text


def _parse_json_response(text: str) -> dict:
    """Parse JSON from the model, tolerating a markdown code fence."""
    text = text.strip()
    try:
        return json.loads(text)
    except json.JSONDecodeError:
        if "```" in text:
            json_block = text.split("```")[1]
            if json_block.startswith("json"):
                json_block = json_block[4:]
            try:
                return json.loads(json_block.strip())
            except json.JSONDecodeError:
                pass
        raise PlanningError(
            "Could not generate creative plan. The model returned an invalid format.",
            {"preview": text[:200]},
        )


def parse_plan(text: str, config: RunConfiguration) -> CreativeAssets:
    """
    Strictly validate the planner output and materialize Scene records.

    Raises:
        PlanningError: invalid JSON, missing fields, or a scene count other
                       than config.scene_count.
    """
    data = _parse_json_response(text)
    if not isinstance(data, dict):
        raise PlanningError("Creative plan must be a JSON object.")

    missing = [f for f in REQUIRED_FIELDS if not isinstance(data.get(f), str) or not data[f].strip()]
    if missing:
        raise PlanningError(f"Creative plan is missing fields: {', '.join(missing)}", {"missing": missing})

    raw_scenes = data.get("scenes")
    if not isinstance(raw_scenes, list):
        raise PlanningError("Creative plan has no scenes array.")
    if len(raw_scenes) != config.scene_count:
        raise PlanningError(
            f"Expected {config.scene_count} scenes, planner returned {len(raw_scenes)}",
            {"expected": config.scene_count, "received": len(raw_scenes)},
        )

    character_prompt = data["characterPrompt"]
    scenes = []
    for idx, raw in enumerate(raw_scenes):
        if not isinstance(raw, dict) or not all(
            isinstance(raw.get(k), str) and raw[k].strip() for k in ("videoPrompt", "voiceScript")
        ):
            raise PlanningError(f"Scene {idx} is missing videoPrompt or voiceScript", {"scene_index": idx})
        scenes.append(Scene(
            id=f"scene_{uuid.uuid4().hex[:12]}_{idx}",
            index=idx,
            prompt=character_prompt,
            video_prompt=raw["videoPrompt"],
            voice_script=raw["voiceScript"],
            status=StepStatus.IDLE,
        ))

    return CreativeAssets(
        character_prompt=character_prompt,
        video_prompt=data["videoPrompt"],
        voice_script=data["voiceScript"],
        scenes=scenes,
    )


async def generate_creative_assets(
    session: ProviderSession,
    idea: str,
    user_script: str,
    config: RunConfiguration,
) -> CreativeAssets:
    """
    Ask the planner model for the creative plan. Not retried on failure.

    Args:
        session:     Provider session for this run.
        idea:        The user's idea text.
        user_script: Optional user-supplied narration.
        config:      Run configuration (style, language, scene count).

    Returns:
        CreativeAssets with `scene_count` idle scenes.
    """
    settings = session.settings
    request_body = {
        "contents": [{"parts": [{"text": build_plan_prompt(idea, user_script, config)}]}],
        "generationConfig": {
            "responseMimeType": "application/json",
            "responseSchema": PLAN_SCHEMA,
            "temperature": 0.9,
            "topP": 0.95,
            "topK": 40,
        },
    }

    logger.info(
        f"Generating creative plan: {config.scene_count} scenes, style={config.style_description}",
        extra={"details": {"scene_count": config.scene_count, "auth_mode": session.auth_mode.value}},
    )
    result = await session.call(
        f"models/{settings.planner_model}:generateContent", "POST", request_body, label="plan",
    )

    assets = parse_plan(_response_text(result), config)
    logger.info(f"Generated {len(assets.scenes)} scenes", extra={"success": True})
    return assets
