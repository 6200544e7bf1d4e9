from __future__ import annotations

import os
from datetime import timedelta
from typing import Any

from dotenv import dotenv_values
from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

# OWASP argon2id floor (m=19 MiB, t=2); only TEST_MODE may go lower
MIN_ARGON2_TIME_COST = 2
MIN_ARGON2_MEMORY_COST_KIB = 19 * 1024


def env_field(default: Any, env: str, **kwargs):
    extra = kwargs.pop("json_schema_extra", {}) or {}
    extra = {**extra, "env": env}
    return Field(default, json_schema_extra=extra, **kwargs)


class Settings(BaseModel):
    """Process configuration, read once at startup and passed to components."""

    database_url: str = env_field(
        "postgresql://localhost:5432/personnel", "DATABASE_URL"
    )
    redis_url: str = env_field("redis://localhost:6379/0", "REDIS_URL")
    redis_socket_timeout: float = env_field(5.0, "REDIS_SOCKET_TIMEOUT")
    jwt_secret: str = env_field(
        "",
        "JWT_SECRET",
        description="Shared HS256 signing secret; must be non-empty",
        validate_default=True,
    )
    access_token_ttl_minutes: int = env_field(
        15,
        "ACCESS_TOKEN_TTL_MINUTES",
        description="Access token and access cache entry lifetime",
    )
    refresh_token_ttl_minutes: int = env_field(
        7 * 24 * 60,
        "REFRESH_TOKEN_TTL_MINUTES",
        description="Refresh token and refresh cache entry lifetime",
    )
    argon2_time_cost: int = env_field(3, "ARGON2_TIME_COST")
    argon2_memory_cost_kib: int = env_field(64 * 1024, "ARGON2_MEMORY_COST_KIB")
    argon2_parallelism: int = env_field(4, "ARGON2_PARALLELISM")
    logout_revokes_all_refresh_tokens: bool = env_field(
        True,
        "LOGOUT_REVOKES_ALL_REFRESH_TOKENS",
        description=(
            "Delete every refresh_token:* cache entry on any logout. "
            "This ends all principals' refresh sessions, not only the caller's."
        ),
    )
    default_employee_password: str = env_field(
        "default123", "DEFAULT_EMPLOYEE_PASSWORD"
    )
    use_memory_store: bool = env_field(False, "USE_MEMORY_STORE")
    use_memory_cache: bool = env_field(False, "USE_MEMORY_CACHE")
    test_mode: bool = env_field(
        False,
        "TEST_MODE",
        description="Use the synchronous Redis client so tests can share one event loop per call",
    )
    enable_hsts: bool = env_field(False, "ENABLE_HSTS")

    model_config = ConfigDict(extra="ignore")

    @classmethod
    def from_env(cls) -> "Settings":
        env_file_values = dotenv_values(".env")
        merged: dict[str, str] = {}
        for name, field in cls.model_fields.items():
            extra = field.json_schema_extra or {}
            env_key = extra.get("env") if isinstance(extra, dict) else None
            env_name = env_key or name.upper()
            if env_name in os.environ:
                merged[name] = os.environ[env_name]
            elif env_name in env_file_values:
                merged[name] = env_file_values[env_name]
        return cls(**merged)

    @field_validator("jwt_secret")
    @classmethod
    def _require_jwt_secret(cls, value: str | None) -> str:
        if value is None or not value.strip():
            raise ValueError("jwt_secret is empty")
        return value

    @field_validator(
        "access_token_ttl_minutes",
        "refresh_token_ttl_minutes",
        "argon2_time_cost",
        "argon2_memory_cost_kib",
        "argon2_parallelism",
    )
    @classmethod
    def _require_positive(cls, value: int) -> int:
        if value <= 0:
            raise ValueError("must be a positive integer")
        return value

    @model_validator(mode="after")
    def _check_argon2_costs(self) -> "Settings":
        # argon2 rejects memory below 8 KiB per lane
        if self.argon2_memory_cost_kib < 8 * self.argon2_parallelism:
            raise ValueError(
                "argon2_memory_cost_kib must be at least 8 * argon2_parallelism"
            )
        if self.test_mode:
            return self
        if self.argon2_time_cost < MIN_ARGON2_TIME_COST:
            raise ValueError(
                f"argon2_time_cost must be at least {MIN_ARGON2_TIME_COST} outside test mode"
            )
        if self.argon2_memory_cost_kib < MIN_ARGON2_MEMORY_COST_KIB:
            raise ValueError(
                f"argon2_memory_cost_kib must be at least {MIN_ARGON2_MEMORY_COST_KIB} "
                "outside test mode"
            )
        return self

    @property
    def access_token_ttl(self) -> timedelta:
        return timedelta(minutes=self.access_token_ttl_minutes)

    @property
    def refresh_token_ttl(self) -> timedelta:
        return timedelta(minutes=self.refresh_token_ttl_minutes)


def get_settings() -> Settings:
    global _settings_cache
    if _settings_cache is None:
        _settings_cache = Settings.from_env()
    return _settings_cache


_settings_cache: Settings | None = None


def reset_settings_cache() -> None:
    """Clear cached settings so future calls re-read the environment."""

    global _settings_cache
    _settings_cache = None
