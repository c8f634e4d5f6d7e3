from __future__ import annotations

import pytest

from reconciliation.config import Settings, get_settings


@pytest.fixture
def clean_env(monkeypatch):
    for name in ("ENVIRONMENT", "CONTACT_STORE_BACKEND", "DATABASE_URL", "LOG_LEVEL", "LOG_FORMAT"):
        monkeypatch.delenv(name, raising=False)
    get_settings.cache_clear()
    yield monkeypatch
    get_settings.cache_clear()


@pytest.mark.unit
def test_defaults(clean_env):
    settings = Settings(_env_file=None)

    assert settings.environment == "development"
    assert settings.contact_store_backend == "postgres"
    assert settings.database_url.startswith("postgresql+asyncpg://")
    assert settings.api_port == 3000
    assert settings.db_auto_create_schema is False
    assert settings.log_format == "json"


@pytest.mark.unit
def test_environment_overrides(clean_env):
    clean_env.setenv("CONTACT_STORE_BACKEND", "memory")
    clean_env.setenv("API_PORT", "8080")
    clean_env.setenv("DB_POOL_MODE", "null")

    settings = Settings(_env_file=None)

    assert settings.contact_store_backend == "memory"
    assert settings.api_port == 8080
    assert settings.db_pool_mode == "null"


@pytest.mark.unit
def test_get_settings_is_cached(clean_env):
    assert get_settings() is get_settings()
