"""Tests for run records, credentials and the record stores."""

import json
from unittest.mock import MagicMock

import pytest

from veostudio.auth import Cookie, Credentials
from veostudio.config import PipelineSettings
from veostudio.errors import RunNotFoundError
from veostudio.pipeline.models import RunConfiguration
from veostudio.pipeline.project_service import CREDENTIALS_META_KEY, ProjectService
from veostudio.pipeline.storage import (
    LocalArtifactStore,
    MemoryRecordStore,
    SupabaseRecordStore,
    create_record_store,
)


@pytest.fixture
def projects():
    return ProjectService(MemoryRecordStore())


def _record(projects, record_id, idea="idea"):
    return projects.new_record(record_id, idea, "", RunConfiguration())


class TestCredentials:
    def test_round_trip_and_metadata(self, projects):
        creds = Credentials(api_key="k", cookies=[Cookie(domain=".google.com", name="SID", value="v")])
        meta = projects.save_credentials(creds)

        assert meta == {"has_key": True, "has_cookies": True, "cookie_count": 1}
        assert projects.load_credentials() == creds
        assert projects.credentials_info() == meta

    def test_metadata_has_no_secrets(self, projects):
        projects.save_credentials(Credentials(api_key="super-secret"))
        assert "super-secret" not in json.dumps(projects.store.get(CREDENTIALS_META_KEY))

    def test_missing_credentials(self, projects):
        assert projects.load_credentials() is None


class TestRecords:
    def test_upsert_by_id(self, projects):
        projects.save_record(_record(projects, "a", "first"))
        projects.save_record(_record(projects, "a", "second"))

        records = projects.list_records()
        assert len(records) == 1
        assert records[0].idea == "second"

    def test_list_newest_first(self, projects):
        old = _record(projects, "old").model_copy(update={"created_at": "2024-01-01T00:00:00+00:00"})
        new = _record(projects, "new").model_copy(update={"created_at": "2025-01-01T00:00:00+00:00"})
        projects.save_record(old)
        projects.save_record(new)

        assert [r.id for r in projects.list_records()] == ["new", "old"]

    def test_name_truncated(self, projects):
        record = _record(projects, "a", "x" * 80)
        assert len(record.name) == 50

    def test_get_missing(self, projects):
        with pytest.raises(RunNotFoundError):
            projects.get_record("missing")

    def test_export_import_assigns_new_id(self, projects):
        projects.save_record(_record(projects, "a", "exported idea"))
        exported = projects.export_record("a")

        imported = projects.import_record(exported)

        assert imported.id != "a"
        assert imported.idea == "exported idea"
        assert len(projects.list_records()) == 2

    def test_import_rejects_garbage(self, projects):
        with pytest.raises(ValueError):
            projects.import_record({"name": "no config"})


class TestStores:
    def test_supabase_store_queries_table(self):
        client = MagicMock()
        table = client.table.return_value
        table.select.return_value.eq.return_value.execute.return_value = MagicMock(data=[{"value": [1, 2]}])
        store = SupabaseRecordStore("https://x.supabase.co", "key", "records", client=client)

        assert store.get("projects") == [1, 2]
        store.set("last_idea", "hello")

        client.table.assert_called_with("records")
        table.upsert.assert_called_once_with({"key": "last_idea", "value": "hello"})

    def test_supabase_store_default_when_missing(self):
        client = MagicMock()
        client.table.return_value.select.return_value.eq.return_value.execute.return_value = MagicMock(data=[])
        store = SupabaseRecordStore("u", "k", "records", client=client)
        assert store.get("projects", []) == []

    def test_factory_falls_back_to_memory(self):
        assert isinstance(create_record_store(PipelineSettings()), MemoryRecordStore)

    def test_factory_uses_supabase_when_configured(self):
        settings = PipelineSettings(supabase_url="https://x.supabase.co", supabase_key="k")
        assert isinstance(create_record_store(settings), SupabaseRecordStore)

    def test_local_artifacts(self, tmp_path):
        url = LocalArtifactStore(tmp_path / "out").save(b"data", "video/mp4")
        assert url.startswith("file://")
        assert url.endswith(".mp4")
