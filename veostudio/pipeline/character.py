"""
Character reference images — Imagen.

generate_character_image() requests one 1:1 image.
generate_character_variations() drives it several times with pacing,
one extended-delay retry for the first slot, and partial-success tolerance.
"""

import asyncio
import logging
from typing import Awaitable, Callable

from ..auth import PacingPolicy
from ..errors import AuthError, HttpError, ImageGenError, NoVariationsError, RateLimitError
from ..transport import ProviderSession
from .models import ImageResult

logger = logging.getLogger(__name__)

Sleep = Callable[[float], Awaitable[None]]


async def generate_character_image(session: ProviderSession, prompt: str) -> ImageResult:
    """
    Generate a single character image.

    Raises:
        ImageGenError: the provider returned zero images.
    """
    request_body = {
        "prompt": prompt,
        "config": {
            "numberOfImages": 1,
            "aspectRatio": "1:1",
            "outputMimeType": "image/png",
        },
    }

    result = await session.call(
        f"models/{session.settings.image_model}:generateImages", "POST", request_body, label="image",
    )

    images = result.get("generatedImages") or []
    if images:
        image = images[0].get("image") or {}
        data = image.get("imageBytes")
        mime_type = image.get("mimeType") or "image/png"
    else:
        # :predict response shape
        predictions = result.get("predictions") or []
        data = predictions[0].get("bytesBase64Encoded") if predictions else None
        mime_type = (predictions[0].get("mimeType") if predictions else None) or "image/png"

    if not data:
        raise ImageGenError("Image generation failed: the provider returned no images.")

    logger.info(f"Character image generated ({len(data) // 1024} KB base64)", extra={"success": True})
    return ImageResult(base64=data, mime_type=mime_type)


def _guidance(causes: list[Exception], image_model: str) -> list[str]:
    """Actionable hints for an all-failed variation run."""
    hints = []
    if any(isinstance(e, AuthError) for e in causes):
        hints.append("Credentials were rejected: check the API key or re-import session cookies.")
    rate_limited = [e for e in causes if isinstance(e, RateLimitError)]
    if rate_limited:
        hints.append(rate_limited[0].hint)
    if any(isinstance(e, HttpError) and e.status_code in (403, 404) for e in causes):
        hints.append(f"The account may not have access to {image_model}.")
    if not hints:
        hints.append(f"Verify the account has access to {image_model} and try again later.")
    return hints


def _describe(error: Exception) -> dict:
    to_dict = getattr(error, "to_dict", None)
    if callable(to_dict):
        return to_dict()
    return {"type": type(error).__name__, "message": str(error)}


async def generate_character_variations(
    session: ProviderSession,
    prompt: str,
    count: int,
    pacing: PacingPolicy,
    sleep: Sleep = asyncio.sleep,
) -> list[ImageResult]:
    """
    Generate up to `count` candidate reference images, sequentially.

    - The configured delay separates attempts.
    - A failure after at least one success stops early with the partial set.
    - A failure of the first slot is retried once after twice the delay.

    Raises:
        NoVariationsError: every attempt (including the retry) failed.
    """
    variations: list[ImageResult] = []
    causes: list[Exception] = []
    attempts = 0

    logger.info(f"Generating {count} character variations")

    for slot in range(count):
        if slot > 0:
            await sleep(pacing.delay_seconds)

        attempts += 1
        try:
            variations.append(await generate_character_image(session, prompt))
            logger.info(f"Variation {slot + 1}/{count} complete", extra={"success": True})
            continue
        except Exception as e:
            causes.append(e)
            logger.warning(f"Failed variation {slot + 1}: {e}")

        if variations:
            logger.info(f"Stopping with {len(variations)} successful variation(s)")
            break

        if slot == 0:
            logger.info(f"Retrying first variation in {pacing.retry_delay_seconds:g}s")
            await sleep(pacing.retry_delay_seconds)
            attempts += 1
            try:
                variations.append(await generate_character_image(session, prompt))
                logger.info("First variation succeeded on retry", extra={"success": True})
            except Exception as e:
                causes.append(e)
                logger.warning(f"Retry of variation 1 failed: {e}")

    if not variations:
        raise NoVariationsError(
            attempts=attempts,
            causes=[_describe(e) for e in causes],
            hints=_guidance(causes, session.settings.image_model),
        )

    return variations
