"""
Run records & last-used inputs.

Everything the pipeline persists goes through a RecordStore:
  - credentials (secret) and credential metadata (safe to show)
  - last idea / script / config
  - the `projects` list of RunRecord snapshots, newest first on read
"""

import json
import logging
import uuid
from datetime import datetime, timezone
from typing import Optional

from pydantic import ValidationError

from ..auth import Credentials
from ..errors import RunNotFoundError
from .models import GeneratedData, RunConfiguration, RunRecord
from .storage import RecordStore

logger = logging.getLogger(__name__)

# ── Keys ─────────────────────────────────────────────────────────────────────

CREDENTIALS_KEY = "session_credentials"
CREDENTIALS_META_KEY = "api_config"
LAST_IDEA_KEY = "last_idea"
LAST_SCRIPT_KEY = "last_script"
LAST_CONFIG_KEY = "last_config"
PROJECTS_KEY = "projects"

NAME_LENGTH = 50


def _now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


class ProjectService:
    """Reads and writes pipeline records on a RecordStore."""

    def __init__(self, store: RecordStore):
        self.store = store

    # ── Credentials ──────────────────────────────────────────────────────

    def save_credentials(self, credentials: Credentials) -> dict:
        self.store.set(CREDENTIALS_KEY, credentials.model_dump(by_alias=True))
        meta = credentials.metadata()
        self.store.set(CREDENTIALS_META_KEY, meta)
        logger.info("Credentials saved", extra={"details": meta})
        return meta

    def load_credentials(self) -> Optional[Credentials]:
        raw = self.store.get(CREDENTIALS_KEY)
        if not raw:
            return None
        try:
            return Credentials.model_validate(raw)
        except ValidationError as e:
            logger.error(f"Stored credentials are unreadable: {e}")
            return None

    def credentials_info(self) -> Optional[dict]:
        return self.store.get(CREDENTIALS_META_KEY)

    # ── Last-used inputs ─────────────────────────────────────────────────

    def save_last_inputs(self, idea: str, script: str, config: RunConfiguration):
        self.store.set(LAST_IDEA_KEY, idea)
        self.store.set(LAST_SCRIPT_KEY, script)
        self.store.set(LAST_CONFIG_KEY, config.model_dump(mode="json"))

    def last_inputs(self) -> dict:
        raw_config = self.store.get(LAST_CONFIG_KEY)
        return {
            "idea": self.store.get(LAST_IDEA_KEY, ""),
            "script": self.store.get(LAST_SCRIPT_KEY, ""),
            "config": RunConfiguration.model_validate(raw_config) if raw_config else None,
        }

    # ── Run records ──────────────────────────────────────────────────────

    def new_record(
        self,
        record_id: str,
        idea: str,
        script: str,
        config: RunConfiguration,
    ) -> RunRecord:
        now = _now_iso()
        return RunRecord(
            id=record_id,
            name=idea[:NAME_LENGTH],
            idea=idea,
            script=script,
            config=config,
            generated_data=GeneratedData(),
            created_at=now,
            updated_at=now,
        )

    def _load_all(self) -> list[dict]:
        return list(self.store.get(PROJECTS_KEY) or [])

    def save_record(self, record: RunRecord) -> RunRecord:
        """Insert or replace by id."""
        record = record.model_copy(update={"updated_at": _now_iso()})
        projects = self._load_all()
        payload = record.model_dump(mode="json")

        for i, existing in enumerate(projects):
            if existing.get("id") == record.id:
                projects[i] = payload
                break
        else:
            projects.append(payload)

        self.store.set(PROJECTS_KEY, projects)
        logger.info(f"Project {record.id} saved (stage={record.stage})")
        return record

    def list_records(self) -> list[RunRecord]:
        records = [RunRecord.model_validate(p) for p in self._load_all()]
        return sorted(records, key=lambda r: r.created_at, reverse=True)

    def get_record(self, record_id: str) -> RunRecord:
        for p in self._load_all():
            if p.get("id") == record_id:
                return RunRecord.model_validate(p)
        raise RunNotFoundError(f"Project {record_id} not found.")

    def export_record(self, record_id: str) -> str:
        return self.get_record(record_id).model_dump_json(indent=2)

    def import_record(self, content: str | dict) -> RunRecord:
        """Import an exported record under a fresh id and timestamps."""
        data = json.loads(content) if isinstance(content, str) else dict(content)
        try:
            record = RunRecord.model_validate(data)
        except ValidationError as e:
            raise ValueError(f"Failed to parse project file: {e}") from e

        now = _now_iso()
        record = record.model_copy(update={
            "id": uuid.uuid4().hex,
            "created_at": now,
            "updated_at": now,
        })
        return self.save_record(record)
