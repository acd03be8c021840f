from datetime import timedelta

import pytest

from stalewise import CacheSettings, _config
from stalewise import cache as C

from _support import ok


@pytest.fixture(autouse=True)
def isolated_env(monkeypatch, tmp_path):
    monkeypatch.chdir(tmp_path)
    for name in ("DATABASE_URL", "DEFAULT_SOFT_TTL", "DEFAULT_HARD_TTL", "DEFAULT_NEGATIVE_TTL", "DEFAULT_ALLOW_STALE", "LOG_LEVEL", "LOG_JSON"):
        monkeypatch.delenv(f"STALEWISE_{name}", raising=False)


def test_defaults():
    settings = CacheSettings()
    assert settings.database_url == "sqlite+aiosqlite:///stalewise.db"
    assert settings.default_soft_ttl == timedelta(hours=12)
    assert settings.default_negative_ttl == timedelta(seconds=10)


def test_env_overrides(monkeypatch):
    monkeypatch.setenv("STALEWISE_DEFAULT_SOFT_TTL", "PT1H")
    monkeypatch.setenv("STALEWISE_DEFAULT_HARD_TTL", "P1D")
    monkeypatch.setenv("STALEWISE_DEFAULT_ALLOW_STALE", "true")

    opts = CacheSettings().default_options("undoc-api", "account-info")

    assert opts.soft_ttl == timedelta(hours=1)
    assert opts.hard_ttl == timedelta(days=1)
    assert opts.allow_stale
    assert opts.address == C.CacheKey("undoc-api", "account-info")


async def test_service_from_settings(tmp_path):
    settings = CacheSettings(database_url=f"sqlite+aiosqlite:///{tmp_path / 'cache.db'}")
    service = await C.CacheService.from_settings(settings, setup_logging=False)

    async def compute():
        return {"token": "abc"}

    try:
        opts = settings.default_options("undoc-api", "account-info")
        assert ok(await service.get_or_compute(opts, compute)).source is C.CacheSource.COMPUTED
        assert ok(await service.get_or_compute(opts, compute)).source is C.CacheSource.FRESH
    finally:
        await service.aclose()

    assert (tmp_path / "cache.db").exists()


def test_configure_logging_uses_settings(monkeypatch):
    calls = []
    monkeypatch.setattr(_config, "configure_logging", lambda level, *, json: calls.append((level, json)))
    monkeypatch.setenv("STALEWISE_LOG_LEVEL", "debug")
    monkeypatch.setenv("STALEWISE_LOG_JSON", "true")

    CacheSettings().configure_logging()

    assert calls == [("debug", True)]


async def test_from_settings_applies_logging(monkeypatch, tmp_path):
    calls = []
    monkeypatch.setattr(_config, "configure_logging", lambda level, *, json: calls.append((level, json)))
    settings = CacheSettings(
        database_url=f"sqlite+aiosqlite:///{tmp_path / 'cache.db'}",
        log_level="warning",
    )

    service = await C.CacheService.from_settings(settings)
    await service.aclose()
    quiet = await C.CacheService.from_settings(settings, setup_logging=False)
    await quiet.aclose()

    assert calls == [("warning", False)]
