import logging

import pytest

from coredna.core.config import Settings, validate_config


def _settings(**overrides):
    return Settings(_env_file=None, **overrides)


def test_defaults_are_valid():
    cfg = _settings()
    assert cfg.STORE_BACKEND == "memory"
    assert cfg.FREE_IMAGE_SIZE == "800x600"
    assert validate_config(strict=True, settings_obj=cfg) is True


def test_sql_backend_requires_database_url_in_strict_mode():
    cfg = _settings(STORE_BACKEND="sql", DATABASE_URL=None)
    with pytest.raises(RuntimeError, match="DATABASE_URL"):
        validate_config(strict=True, settings_obj=cfg)


def test_non_strict_mode_only_warns(caplog):
    cfg = _settings(STORE_BACKEND="redis", PROVIDER_TIMEOUT_SECONDS=0)
    logger = logging.getLogger("coredna.test.config")
    with caplog.at_level(logging.WARNING, logger="coredna.test.config"):
        assert validate_config(strict=False, settings_obj=cfg, logger=logger) is False
    assert "STORE_BACKEND" in caplog.text
    assert "PROVIDER_TIMEOUT_SECONDS" in caplog.text


def test_cors_origins_split():
    cfg = _settings(CORS_ORIGINS="http://a.test, http://b.test,")
    assert cfg.cors_origins == ["http://a.test", "http://b.test"]
