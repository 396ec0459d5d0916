from __future__ import annotations

import pytest

from app.core.config import AppEnv, Settings, load_settings

_SNAPSHOT_VARS = (
    "SNAPSHOT_MAX_WORKERS",
    "SNAPSHOT_RUN_TIMEOUT_SECONDS",
    "SNAPSHOT_WRITE_ATTEMPTS",
    "SNAPSHOT_RETRY_WAIT_SECONDS",
)


@pytest.fixture
def clean_env(monkeypatch: pytest.MonkeyPatch) -> pytest.MonkeyPatch:
    for name in ("APP_ENV", "LOG_LEVEL", "JWT_PUBLIC_KEY", *_SNAPSHOT_VARS):
        monkeypatch.delenv(name, raising=False)
    return monkeypatch


# ---- APP_ENV / LOG_LEVEL ----


def test_load_settings_defaults(clean_env) -> None:
    settings = load_settings()
    assert settings.app_env == "dev"
    assert settings.log_level == "info"


@pytest.mark.parametrize(
    "app_env,log_level,expected",
    [
        ("prod", "error", ("prod", "error")),
        ("PROD", "DEBUG", ("prod", "debug")),
        ("  test  ", "  warning  ", ("test", "warning")),
    ],
)
def test_load_settings_normalizes(clean_env, app_env, log_level, expected) -> None:
    clean_env.setenv("APP_ENV", app_env)
    clean_env.setenv("LOG_LEVEL", log_level)
    settings = load_settings()
    assert (settings.app_env, settings.log_level) == expected


@pytest.mark.parametrize("value", ["staging", ""])
def test_load_settings_rejects_bad_app_env(clean_env, value) -> None:
    clean_env.setenv("APP_ENV", value)
    with pytest.raises(ValueError, match="APP_ENV must be dev|test|prod"):
        load_settings()


@pytest.mark.parametrize("value", ["verbose", ""])
def test_load_settings_rejects_bad_log_level(clean_env, value) -> None:
    clean_env.setenv("LOG_LEVEL", value)
    with pytest.raises(ValueError, match="LOG_LEVEL must be debug|info|warning|error"):
        load_settings()


# ---- snapshot batch tuning ----


def test_snapshot_defaults(clean_env) -> None:
    settings = load_settings()
    assert settings.snapshot_max_workers == 4
    assert settings.snapshot_run_timeout_seconds is None
    assert settings.snapshot_write_attempts == 3
    assert settings.snapshot_retry_wait_seconds == 0.5


def test_snapshot_settings_from_env(clean_env) -> None:
    clean_env.setenv("SNAPSHOT_MAX_WORKERS", "8")
    clean_env.setenv("SNAPSHOT_RUN_TIMEOUT_SECONDS", "120")
    clean_env.setenv("SNAPSHOT_WRITE_ATTEMPTS", "5")
    clean_env.setenv("SNAPSHOT_RETRY_WAIT_SECONDS", "0")
    settings = load_settings()
    assert settings.snapshot_max_workers == 8
    assert settings.snapshot_run_timeout_seconds == 120.0
    assert settings.snapshot_write_attempts == 5
    assert settings.snapshot_retry_wait_seconds == 0.0


@pytest.mark.parametrize(
    "name,value,message",
    [
        ("SNAPSHOT_MAX_WORKERS", "0", "must be >= 1"),
        ("SNAPSHOT_MAX_WORKERS", "many", "must be an integer"),
        ("SNAPSHOT_WRITE_ATTEMPTS", "0", "must be >= 1"),
        ("SNAPSHOT_RUN_TIMEOUT_SECONDS", "-5", "must be >= 0"),
        ("SNAPSHOT_RETRY_WAIT_SECONDS", "soon", "must be a number"),
    ],
)
def test_snapshot_settings_rejected(clean_env, name, value, message) -> None:
    clean_env.setenv(name, value)
    with pytest.raises(ValueError, match=f"{name} {message}"):
        load_settings()


def test_public_key_newlines_unescaped(clean_env) -> None:
    clean_env.setenv("JWT_PUBLIC_KEY", "-----BEGIN-----\\nabc\\n-----END-----")
    settings = load_settings()
    assert settings.jwt_public_key == "-----BEGIN-----\nabc\n-----END-----"


# ---- Settings properties ----


def _make_settings(app_env: AppEnv = "dev") -> Settings:
    return Settings(  # type: ignore[arg-type]
        app_env=app_env,
        log_level="info",
        log_json=False,
        port=8000,
        database_url=None,
        redis_url=None,
    )


@pytest.mark.parametrize("app_env", ["dev", "test", "prod"])
def test_settings_env_flags(app_env) -> None:
    s = _make_settings(app_env)
    assert (s.is_dev, s.is_test, s.is_prod) == (
        app_env == "dev",
        app_env == "test",
        app_env == "prod",
    )


def test_settings_is_frozen() -> None:
    s = _make_settings()
    with pytest.raises(AttributeError):
        s.snapshot_max_workers = 1  # type: ignore[misc]
