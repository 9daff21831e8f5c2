import atexit

import pytest

from api import create_app
from api.config import (
    DEV_JWT_SECRET,
    DevelopmentConfig,
    ProductionConfig,
    TestingConfig,
    get_config,
    validate_config,
)

GOOD_SECRET = "x" * 32


@pytest.mark.parametrize(
    "name, expected",
    [
        ("prod", ProductionConfig),
        ("production", ProductionConfig),
        ("test", TestingConfig),
        ("Testing", TestingConfig),
        ("dev", DevelopmentConfig),
        ("anything-else", DevelopmentConfig),
    ],
)
def test_get_config_by_name(name, expected):
    assert get_config(name) is expected


def test_get_config_falls_back_to_app_env(monkeypatch):
    monkeypatch.setenv("APP_ENV", "production")
    assert get_config(None) is ProductionConfig


def test_valid_config_passes():
    validate_config({"DATABASE_URL": "sqlite://", "JWT_SECRET": GOOD_SECRET})


@pytest.mark.parametrize(
    "config, reason",
    [
        ({"JWT_SECRET": GOOD_SECRET}, "DATABASE_URL"),
        ({"DATABASE_URL": "sqlite://"}, "JWT_SECRET"),
        ({"DATABASE_URL": "sqlite://", "JWT_SECRET": "short"}, "at least 32"),
        ({"DATABASE_URL": "sqlite://", "JWT_SECRET": DEV_JWT_SECRET}, "explicitly"),
    ],
)
def test_invalid_config_is_refused(config, reason):
    with pytest.raises(ValueError, match=reason):
        validate_config(config)


def test_dev_secret_allowed_in_debug():
    validate_config({"DATABASE_URL": "sqlite://", "JWT_SECRET": DEV_JWT_SECRET, "DEBUG": True})


def test_create_app_refuses_weak_secret():
    with pytest.raises(ValueError):
        create_app("testing", overrides={"JWT_SECRET": "too-short"})


def test_testing_config_uses_cheap_hashing():
    assert TestingConfig.ARGON2_TIME_COST == 1
    assert TestingConfig.SESSION_COOKIE_SECURE is False
    assert TestingConfig.ACCESS_TOKEN_EXPIRES.total_seconds() == 600
    assert TestingConfig.REFRESH_TOKEN_EXPIRES.total_seconds() == 7 * 24 * 3600


def test_apps_share_one_exit_hook(monkeypatch):
    import api

    registered = []
    monkeypatch.setattr(atexit, "register", lambda fn, *a, **kw: registered.append(fn))
    apps = [create_app("testing") for _ in range(3)]
    try:
        assert registered == []
        for app in apps:
            assert app.extensions["auth"].storage in api._live_storages
    finally:
        for app in apps:
            app.extensions["auth"].storage.dispose()
