"""Tests for settings loading and the database pool built from them."""

from carpool.config import Settings, settings
from carpool.infrastructure.database import engine


class TestSettings:
    def test_pool_sizing_from_environment(self, monkeypatch):
        monkeypatch.setenv("DB_POOL_SIZE", "5")
        monkeypatch.setenv("DB_MAX_OVERFLOW", "0")
        configured = Settings(_env_file=None)
        assert configured.db_pool_size == 5
        assert configured.db_max_overflow == 0

    def test_engine_pool_uses_configured_size(self):
        assert engine.pool.size() == settings.db_pool_size
