"""Tests for core config module."""

import pytest
from pydantic import ValidationError


@pytest.fixture
def supabase_env(monkeypatch):
    monkeypatch.setenv("SUPABASE_URL", "https://test.supabase.co")
    monkeypatch.setenv("SUPABASE_ANON_KEY", "test-anon-key")


class TestSettings:
    """Test Pydantic Settings loads env vars correctly."""

    def test_settings_loads_supabase_url(self, supabase_env):
        from apps.api.core.config import Settings
        settings = Settings()
        assert settings.SUPABASE_URL == "https://test.supabase.co"

    def test_settings_loads_allowed_origins(self, supabase_env, monkeypatch):
        """Settings should parse ALLOWED_ORIGINS as comma-separated list."""
        monkeypatch.setenv("ALLOWED_ORIGINS", "http://localhost:3000, https://seller.example.com,")

        from apps.api.core.config import Settings
        settings = Settings()
        assert settings.allowed_origins == [
            "http://localhost:3000",
            "https://seller.example.com",
        ]

    def test_import_defaults(self, supabase_env):
        from apps.api.core.config import Settings
        settings = Settings()
        assert settings.IMPORT_CHUNK_SIZE == 500
        assert settings.DEDUP_LOOKUP_CHUNK_SIZE == 200
        assert settings.STALE_JOB_TTL_SECONDS == 1800
        assert settings.MAX_UPLOAD_BYTES == 20 * 1024 * 1024
        assert settings.is_production is False

    def test_import_overrides(self, supabase_env, monkeypatch):
        monkeypatch.setenv("IMPORT_CHUNK_SIZE", "250")
        monkeypatch.setenv("ENVIRONMENT", "production")

        from apps.api.core.config import Settings
        settings = Settings()
        assert settings.IMPORT_CHUNK_SIZE == 250
        assert settings.is_production is True

    def test_chunk_size_must_be_positive(self, supabase_env, monkeypatch):
        monkeypatch.setenv("IMPORT_CHUNK_SIZE", "0")

        from apps.api.core.config import Settings
        with pytest.raises(ValidationError):
            Settings()

    def test_settings_requires_supabase_url(self, monkeypatch):
        monkeypatch.delenv("SUPABASE_URL", raising=False)
        monkeypatch.setenv("SUPABASE_ANON_KEY", "test-anon-key")

        from apps.api.core.config import Settings
        with pytest.raises(ValidationError):
            Settings()
