from datetime import timedelta

import pytest
from pydantic import ValidationError

from personnel.config import Settings, get_settings, reset_settings_cache


def test_jwt_secret_is_required(monkeypatch):
    monkeypatch.delenv("JWT_SECRET", raising=False)

    with pytest.raises(ValidationError):
        Settings()
    with pytest.raises(ValidationError):
        Settings(jwt_secret="   ")


@pytest.mark.parametrize("field", ["access_token_ttl_minutes", "refresh_token_ttl_minutes"])
def test_ttls_must_be_positive(field):
    with pytest.raises(ValidationError):
        Settings(jwt_secret="s", **{field: 0})


def test_ttl_properties():
    settings = Settings(jwt_secret="s", access_token_ttl_minutes=15, refresh_token_ttl_minutes=60)

    assert settings.access_token_ttl == timedelta(minutes=15)
    assert settings.refresh_token_ttl == timedelta(hours=1)


def test_defaults():
    settings = Settings(jwt_secret="s")

    assert settings.access_token_ttl_minutes == 15
    assert settings.refresh_token_ttl_minutes == 7 * 24 * 60
    assert settings.logout_revokes_all_refresh_tokens is True


def test_from_env_reads_environment(monkeypatch):
    monkeypatch.setenv("JWT_SECRET", "from-env")
    monkeypatch.setenv("ACCESS_TOKEN_TTL_MINUTES", "5")
    monkeypatch.setenv("LOGOUT_REVOKES_ALL_REFRESH_TOKENS", "false")
    monkeypatch.setenv("REDIS_URL", "redis://cache:6379/2")

    settings = Settings.from_env()

    assert settings.jwt_secret == "from-env"
    assert settings.access_token_ttl_minutes == 5
    assert settings.logout_revokes_all_refresh_tokens is False
    assert settings.redis_url == "redis://cache:6379/2"


def test_from_env_reads_dotenv_file(monkeypatch, tmp_path):
    monkeypatch.delenv("JWT_SECRET", raising=False)
    monkeypatch.chdir(tmp_path)
    (tmp_path / ".env").write_text("JWT_SECRET=dotenv-secret\nREFRESH_TOKEN_TTL_MINUTES=30\n")

    settings = Settings.from_env()

    assert settings.jwt_secret == "dotenv-secret"
    assert settings.refresh_token_ttl_minutes == 30


def test_environment_wins_over_dotenv(monkeypatch, tmp_path):
    monkeypatch.setenv("JWT_SECRET", "env-secret")
    monkeypatch.chdir(tmp_path)
    (tmp_path / ".env").write_text("JWT_SECRET=dotenv-secret\n")

    assert Settings.from_env().jwt_secret == "env-secret"


def test_get_settings_is_cached_until_reset(monkeypatch):
    monkeypatch.setenv("JWT_SECRET", "first")
    first = get_settings()
    monkeypatch.setenv("JWT_SECRET", "second")

    assert get_settings() is first

    reset_settings_cache()
    assert get_settings().jwt_secret == "second"


@pytest.mark.parametrize(
    "overrides",
    [
        {"argon2_time_cost": 1},
        {"argon2_memory_cost_kib": 4096},
    ],
)
def test_weak_argon2_costs_rejected_outside_test_mode(overrides):
    with pytest.raises(ValidationError):
        Settings(jwt_secret="s", test_mode=False, **overrides)


def test_test_mode_allows_cheap_argon2_costs():
    settings = Settings(
        jwt_secret="s",
        test_mode=True,
        argon2_time_cost=1,
        argon2_memory_cost_kib=8,
        argon2_parallelism=1,
    )

    assert settings.argon2_time_cost == 1


def test_argon2_memory_must_cover_parallelism():
    """Test that memory below 8 KiB per lane is a configuration error, even in test mode."""
    with pytest.raises(ValidationError) as excinfo:
        Settings(
            jwt_secret="s",
            test_mode=True,
            argon2_time_cost=1,
            argon2_memory_cost_kib=16,
            argon2_parallelism=4,
        )

    assert "argon2_parallelism" in str(excinfo.value)
