"""Tests for environment-driven settings."""

from veostudio.config import PipelineSettings


class TestFromEnv:
    def test_defaults(self, monkeypatch):
        monkeypatch.delenv("VEOSTUDIO_COOKIE_DOMAINS", raising=False)
        monkeypatch.delenv("VEOSTUDIO_MAX_POLLS", raising=False)

        settings = PipelineSettings.from_env()

        assert settings.cookie_domains == ("google", "googleapis")
        assert settings.max_polls == 60

    def test_overrides(self, monkeypatch):
        monkeypatch.setenv("VEOSTUDIO_MAX_POLLS", "7")
        monkeypatch.setenv("VEOSTUDIO_APIKEY_DELAY", "3.5")

        settings = PipelineSettings.from_env()

        assert settings.max_polls == 7
        assert settings.apikey_delay_seconds == 3.5

    def test_cookie_domains_override(self, monkeypatch):
        monkeypatch.setenv("VEOSTUDIO_COOKIE_DOMAINS", "google.com, youtube,,")

        settings = PipelineSettings.from_env()

        assert settings.cookie_domains == ("google.com", "youtube")
