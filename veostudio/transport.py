"""
Transport adapter for the generation provider.

One authenticated HTTP call per `send()`: builds headers for the resolved
auth mode, maps non-2xx responses onto the error taxonomy and returns parsed
JSON. No retries happen here; retry policy belongs to the callers.
"""

import logging
import time
from typing import Any, Optional

import httpx

from .auth import AuthMode, Credentials, cookie_header, require_usable, session_auth_header
from .config import PipelineSettings
from .errors import AuthError, DownloadError, HttpError, RateLimitError, TransportError
from .metrics import MetricsRegistry

logger = logging.getLogger(__name__)

# Provider error bodies that mean the key/session itself was rejected
INVALID_CREDENTIAL_MARKERS = (
    "API_KEY_INVALID",
    "API key not valid",
    "Requested entity was not found",
)

BODY_PREVIEW_CHARS = 500

USER_AGENT = (
    "Mozilla/5.0 (Macintosh; Intel Mac OS X 10_15_7) AppleWebKit/537.36 "
    "(KHTML, like Gecko) Chrome/120.0.0.0 Safari/537.36"
)


def rate_limit_hint(mode: AuthMode) -> str:
    if mode == AuthMode.APIKEY:
        return "Quota exceeded for the API key. Enable cookie authentication to use your session quota."
    return "Quota exceeded for the session. Switch to API-key authentication or wait for the quota to reset."


def classify_response(status_code: int, body: str, mode: AuthMode) -> TransportError:
    """Map a non-2xx response onto the error taxonomy."""
    preview = body[:BODY_PREVIEW_CHARS]
    if status_code == 429:
        return RateLimitError(
            f"Rate limit exceeded (HTTP 429): {preview[:200]}",
            hint=rate_limit_hint(mode),
            details={"status_code": status_code, "auth_mode": mode.value},
        )
    if status_code in (401, 403) or (
        status_code in (400, 404) and any(m in body for m in INVALID_CREDENTIAL_MARKERS)
    ):
        return AuthError(
            f"Credentials rejected by provider (HTTP {status_code}): {preview[:200]}",
            {"status_code": status_code, "auth_mode": mode.value},
        )
    return HttpError(status_code, preview)


class GenerationTransport:
    """
    Authenticated JSON-over-HTTPS client.

    Usage:
        transport = GenerationTransport(settings)
        data = await transport.send("models/gemini-2.5-flash:generateContent",
                                    "POST", body, AuthMode.APIKEY, credentials)
    """

    def __init__(
        self,
        settings: PipelineSettings,
        metrics: Optional[MetricsRegistry] = None,
        client: Optional[httpx.AsyncClient] = None,
    ):
        self.settings = settings
        self.metrics = metrics or MetricsRegistry()
        self._client = client or httpx.AsyncClient(
            timeout=httpx.Timeout(settings.request_timeout_seconds),
        )

    async def aclose(self):
        await self._client.aclose()

    def url_for(self, endpoint: str) -> str:
        if endpoint.startswith("http://") or endpoint.startswith("https://"):
            return endpoint
        return f"{self.settings.api_base.rstrip('/')}/{endpoint.lstrip('/')}"

    def _auth(self, mode: AuthMode, credentials: Optional[Credentials]) -> tuple[dict, dict]:
        """Return (headers, query params) for the auth mode."""
        require_usable(mode, credentials, self.settings.cookie_domains)

        if mode == AuthMode.COOKIE:
            origin = self.settings.session_origin
            headers = {
                "Cookie": cookie_header(credentials.cookies, self.settings.cookie_domains),
                "Origin": origin,
                "Referer": f"{origin}/",
                "User-Agent": USER_AGENT,
            }
            session_hash = session_auth_header(credentials.cookies, origin)
            if session_hash:
                headers["Authorization"] = session_hash
            return headers, {}

        return {}, {"key": credentials.api_key}

    async def send(
        self,
        endpoint: str,
        method: str = "POST",
        body: Optional[dict] = None,
        auth_mode: AuthMode = AuthMode.APIKEY,
        credentials: Optional[Credentials] = None,
        label: str = "generate",
    ) -> Any:
        """
        Perform a single authenticated call and return the parsed JSON body.

        Raises:
            AuthError:      no usable credentials, or the provider rejected them.
            RateLimitError: HTTP 429.
            HttpError:      any other non-2xx status.
            TransportError: network failure or a non-JSON success body.
        """
        auth_headers, params = self._auth(auth_mode, credentials)
        headers = {
            "Content-Type": "application/json",
            "Accept": "application/json",
            **auth_headers,
        }
        url = self.url_for(endpoint)

        self.metrics.inc_counter(f"requests.{label}")
        logger.info(
            f"{method} {label} via {auth_mode.value} auth",
            extra={"details": {"endpoint": url[:100], "auth_mode": auth_mode.value}},
        )

        started = time.monotonic()
        try:
            response = await self._client.request(
                method, url, headers=headers, params=params, json=body,
            )
        except httpx.HTTPError as e:
            self.metrics.record_error(label, "network", str(e))
            raise TransportError(f"Network error calling {label}: {e}") from e
        finally:
            self.metrics.record_latency(label, (time.monotonic() - started) * 1000)

        if not response.is_success:
            error = classify_response(response.status_code, response.text, auth_mode)
            self.metrics.inc_counter(f"errors.{type(error).__name__}")
            self.metrics.record_error(label, type(error).__name__, error.message)
            logger.error(
                f"{label} failed with HTTP {response.status_code}",
                extra={"details": {"status": response.status_code, "body": response.text[:200]}},
            )
            if isinstance(error, RateLimitError):
                logger.error(f"Quota exceeded: {error.hint}")
            raise error

        try:
            return response.json()
        except ValueError as e:
            raise TransportError(f"{label} returned a non-JSON body: {response.text[:200]}") from e

    async def download(
        self,
        url: str,
        auth_mode: AuthMode,
        credentials: Optional[Credentials],
    ) -> tuple[bytes, str]:
        """
        Fetch a binary payload (the finished video) with the run's auth.

        Returns:
            (content, content_type)
        """
        auth_headers, params = self._auth(auth_mode, credentials)
        self.metrics.inc_counter("requests.download")

        try:
            response = await self._client.get(
                url, headers=auth_headers, params=params, follow_redirects=True,
            )
        except httpx.HTTPError as e:
            self.metrics.record_error("download", "network", str(e))
            raise DownloadError(f"Failed to download video: {e}") from e

        if not response.is_success:
            self.metrics.record_error("download", "http", f"HTTP {response.status_code}")
            raise DownloadError(
                f"Failed to download video. Status: {response.status_code}",
                {"status_code": response.status_code},
            )

        content_type = response.headers.get("Content-Type", "video/mp4").split(";")[0]
        return response.content, content_type


class ProviderSession:
    """The transport bound to one run's auth snapshot."""

    def __init__(
        self,
        transport: GenerationTransport,
        auth_mode: AuthMode,
        credentials: Optional[Credentials],
    ):
        self.transport = transport
        self.auth_mode = auth_mode
        self.credentials = credentials

    @property
    def settings(self) -> PipelineSettings:
        return self.transport.settings

    async def call(
        self,
        endpoint: str,
        method: str = "POST",
        body: Optional[dict] = None,
        label: str = "generate",
    ) -> Any:
        return await self.transport.send(
            endpoint, method, body, self.auth_mode, self.credentials, label=label,
        )

    async def download(self, url: str) -> tuple[bytes, str]:
        return await self.transport.download(url, self.auth_mode, self.credentials)
