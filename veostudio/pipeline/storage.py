"""
Storage collaborators for the pipeline.

  - RecordStore: simple get/set keyed record store (credentials, last-used
    inputs, run records). In-memory for tests and local use, Supabase in
    production.
  - ArtifactStore: where downloaded videos are written.
"""

import logging
import mimetypes
import uuid
from pathlib import Path
from typing import Any, Optional, Protocol

from supabase import Client, create_client

logger = logging.getLogger(__name__)


# ── Keyed record store ───────────────────────────────────────────────────────

class RecordStore(Protocol):
    def get(self, key: str, default: Any = None) -> Any:
        ...

    def set(self, key: str, value: Any) -> None:
        ...

    def delete(self, key: str) -> None:
        ...


class MemoryRecordStore:
    """Process-local store."""

    def __init__(self, initial: Optional[dict] = None):
        self._data: dict[str, Any] = dict(initial or {})

    def get(self, key: str, default: Any = None) -> Any:
        return self._data.get(key, default)

    def set(self, key: str, value: Any) -> None:
        self._data[key] = value

    def delete(self, key: str) -> None:
        self._data.pop(key, None)


class SupabaseRecordStore:
    """
    Key/value rows in a Supabase table with columns (key text primary key, value jsonb).
    The client is created lazily on first use.
    """

    def __init__(self, url: str, key: str, table: str, client: Optional[Client] = None):
        self._url = url
        self._key = key
        self._table = table
        self._client = client

    def _get_client(self) -> Client:
        if self._client is None:
            if not self._url or not self._key:
                raise RuntimeError("SUPABASE_URL and SUPABASE_SERVICE_ROLE_KEY must be set")
            self._client = create_client(self._url, self._key)
        return self._client

    def get(self, key: str, default: Any = None) -> Any:
        result = self._get_client().table(self._table).select("value").eq("key", key).execute()
        if not result.data:
            return default
        return result.data[0].get("value", default)

    def set(self, key: str, value: Any) -> None:
        self._get_client().table(self._table).upsert({"key": key, "value": value}).execute()

    def delete(self, key: str) -> None:
        self._get_client().table(self._table).delete().eq("key", key).execute()


def create_record_store(settings) -> RecordStore:
    """Supabase when configured, otherwise in-memory."""
    if settings.supabase_url and settings.supabase_key:
        logger.info(f"Using Supabase record store (table={settings.records_table})")
        return SupabaseRecordStore(settings.supabase_url, settings.supabase_key, settings.records_table)
    logger.warning("Supabase not configured — run records are kept in memory only")
    return MemoryRecordStore()


# ── Video artifacts ──────────────────────────────────────────────────────────

class ArtifactStore(Protocol):
    def save(self, data: bytes, content_type: str) -> str:
        ...


class LocalArtifactStore:
    """Writes artifacts under a directory and returns file:// URLs."""

    def __init__(self, base_dir: str | Path):
        self._base_dir = Path(base_dir)

    def save(self, data: bytes, content_type: str = "video/mp4") -> str:
        self._base_dir.mkdir(parents=True, exist_ok=True)
        ext = mimetypes.guess_extension(content_type) or ".bin"
        path = self._base_dir / f"video_{uuid.uuid4().hex}{ext}"
        path.write_bytes(data)
        return path.resolve().as_uri()
