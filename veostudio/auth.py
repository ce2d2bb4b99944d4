"""
Auth strategy selection.

Two ways to reach the provider:
  - cookie: exported browser-session cookies plus a time-stamped session hash
  - apikey: the API key as a `key` query parameter

The mode is resolved once per run from the run configuration and the stored
credentials. It also decides the pacing delay between provider calls.
"""

import hashlib
import json
import logging
import time
from enum import Enum
from typing import Optional

from pydantic import BaseModel, Field

from .config import PipelineSettings
from .errors import AuthError

logger = logging.getLogger(__name__)

SESSION_COOKIE_NAMES = ("SAPISID", "__Secure-1PSID", "__Secure-3PSID")


class AuthMode(str, Enum):
    COOKIE = "cookie"
    APIKEY = "apikey"
    NONE = "none"


# ── Credentials ──────────────────────────────────────────────────────────────

class Cookie(BaseModel):
    """A browser cookie record; only domain, name and value are used."""
    domain: str
    name: str
    value: str
    secure: bool = False
    http_only: bool = Field(False, alias="httpOnly")

    model_config = {"populate_by_name": True}


class Credentials(BaseModel):
    api_key: str = ""
    cookies: list[Cookie] = Field(default_factory=list)

    def metadata(self) -> dict:
        """Secret-free summary that is safe to persist or log."""
        return {
            "has_key": bool(self.api_key),
            "has_cookies": bool(self.cookies),
            "cookie_count": len(self.cookies),
        }


def parse_cookie_export(content: str | bytes | list) -> list[Cookie]:
    """
    Parse a cookie export (EditThisCookie / Cookie-Editor JSON format).

    Raises:
        ValueError: if the payload is not a JSON list of cookie objects.
    """
    if isinstance(content, (str, bytes)):
        try:
            content = json.loads(content)
        except json.JSONDecodeError as e:
            raise ValueError(f"Cookie file is not valid JSON: {e}") from e

    if not isinstance(content, list):
        raise ValueError("Cookie file must contain a JSON list of cookies")

    cookies = []
    for item in content:
        if not isinstance(item, dict) or not item.get("name") or "value" not in item:
            continue
        cookies.append(Cookie.model_validate({
            "domain": item.get("domain", ""),
            "name": item["name"],
            "value": item["value"],
            "secure": bool(item.get("secure", False)),
            "httpOnly": bool(item.get("httpOnly", False)),
        }))
    return cookies


# ── Mode resolution ──────────────────────────────────────────────────────────

def resolve(config, credentials: Optional[Credentials]) -> AuthMode:
    """
    Decide the auth mode for a run.

    Args:
        config:      Anything with a `use_cookie_auth` flag (RunConfiguration).
        credentials: Stored credentials, or None.

    Returns:
        COOKIE iff cookie auth is requested and at least one cookie exists,
        else APIKEY iff a key is present, else NONE.
    """
    if credentials is None:
        return AuthMode.NONE
    if getattr(config, "use_cookie_auth", False) and len(credentials.cookies) > 0:
        return AuthMode.COOKIE
    if credentials.api_key:
        return AuthMode.APIKEY
    return AuthMode.NONE


class PacingPolicy(BaseModel):
    """Inter-request delays for one run, fixed when the run starts."""

    model_config = {"frozen": True}

    delay_seconds: float

    @property
    def retry_delay_seconds(self) -> float:
        return self.delay_seconds * 2


def pacing_for(mode: AuthMode, settings: PipelineSettings) -> PacingPolicy:
    if mode == AuthMode.COOKIE:
        return PacingPolicy(delay_seconds=settings.cookie_delay_seconds)
    return PacingPolicy(delay_seconds=settings.apikey_delay_seconds)


# ── Cookie request material ──────────────────────────────────────────────────

def cookie_header(cookies: list[Cookie], domains: tuple[str, ...]) -> str:
    """Join name=value pairs for cookies belonging to the provider's domains."""
    return "; ".join(
        f"{c.name}={c.value}"
        for c in cookies
        if any(d in c.domain for d in domains)
    )


def session_auth_header(
    cookies: list[Cookie],
    origin: str,
    timestamp: Optional[int] = None,
) -> Optional[str]:
    """
    Build the SAPISIDHASH authorization value from the session cookie.

    The digest is SHA-1 over "{timestamp} {session-cookie} {origin}".
    Returns None when no session cookie is present.
    """
    session = next((c for c in cookies if c.name in SESSION_COOKIE_NAMES), None)
    if session is None:
        logger.warning(
            "No session cookie found for authorization hash",
            extra={"details": {"available": [c.name for c in cookies]}},
        )
        return None

    ts = int(time.time()) if timestamp is None else timestamp
    digest = hashlib.sha1(f"{ts} {session.value} {origin}".encode("utf-8")).hexdigest()
    return f"SAPISIDHASH {ts}_{digest}"


def require_usable(mode: AuthMode, credentials: Optional[Credentials], domains: tuple[str, ...]):
    """Raise AuthError unless `mode` can actually authenticate a request."""
    if credentials is None or mode == AuthMode.NONE:
        raise AuthError("No authentication method available. Provide cookies or an API key.")
    if mode == AuthMode.COOKIE and not cookie_header(credentials.cookies, domains):
        raise AuthError("No provider cookies available. Import cookies from your session.")
    if mode == AuthMode.APIKEY and not credentials.api_key:
        raise AuthError("API key missing for API-key authentication.")
