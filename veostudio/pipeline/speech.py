"""
Narration — Gemini text-to-speech.
"""

import logging

from ..errors import TTSError
from ..transport import ProviderSession
from .models import AudioResult

logger = logging.getLogger(__name__)


async def generate_speech(session: ProviderSession, script: str) -> AudioResult:
    """
    Synthesize one narration clip with the configured prebuilt voice.

    Raises:
        TTSError: the response carried no inline audio payload.
    """
    settings = session.settings
    request_body = {
        "contents": [{"parts": [{"text": script}]}],
        "generationConfig": {
            "responseModalities": ["AUDIO"],
            "speechConfig": {
                "voiceConfig": {
                    "prebuiltVoiceConfig": {"voiceName": settings.voice_name},
                },
            },
        },
    }

    logger.info(f"Generating speech ({len(script)} chars)")
    result = await session.call(
        f"models/{settings.tts_model}:generateContent", "POST", request_body, label="tts",
    )

    candidates = result.get("candidates") or []
    parts = candidates[0].get("content", {}).get("parts", []) if candidates else []

    for part in parts:
        inline = part.get("inlineData") if isinstance(part, dict) else None
        if inline and inline.get("data"):
            mime_type = inline.get("mimeType") or "audio/L16;rate=24000"
            logger.info(f"Speech generated ({mime_type})", extra={"success": True})
            return AudioResult(base64=inline["data"], mime_type=mime_type)

    raise TTSError("Text-to-speech generation failed: no audio data in response.")
