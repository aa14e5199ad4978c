"""
Central configuration using Pydantic BaseSettings.

Validates all env vars at startup (fail-fast). The JWT signing secret is
checked when AuthSettings is built: a missing, known-insecure, or short
secret raises ConfigurationInvalid and the service refuses to start.

Usage:
    from config.settings import get_settings

    settings = get_settings()
    print(settings.auth.jwt_secret.get_secret_value())

Lazy initialization: get_settings() creates the singleton on first call.
Tests can reset via get_settings.cache_clear().
"""

import logging
from functools import lru_cache
from typing import Optional

from pydantic import SecretStr, model_validator
from pydantic_settings import BaseSettings

from core.errors import ConfigurationInvalid

logger = logging.getLogger(__name__)

# Minimum signing key size for HS256 (256 bits)
MIN_SECRET_BYTES = 32

# Values that have shipped in sample configs and must never sign real tokens
INSECURE_SECRETS = frozenset({
    "taskactivity-secret-key-change-this-in-production-must-be-at-least-256-bits-long",
    "change-me-to-a-long-random-string-before-deploying!!",
    "your-256-bit-secret-key-goes-here-replace-this-value",
    "secret",
    "changeme",
    "jwt-secret",
})

KEY_GENERATION_HELP = 'Generate one with: python -c "import secrets; print(secrets.token_hex(32))"'


def validate_signing_secret(secret: str) -> None:
    """Reject absent, default, or undersized signing secrets.

    Raises:
        ConfigurationInvalid: if the secret cannot be used to sign tokens
    """
    if not secret or not secret.strip():
        raise ConfigurationInvalid(f"JWT_SECRET env var is required. {KEY_GENERATION_HELP}")

    if secret in INSECURE_SECRETS:
        raise ConfigurationInvalid(
            f"JWT_SECRET is set to a known insecure default value. {KEY_GENERATION_HELP}"
        )

    size = len(secret.encode("utf-8"))
    if size < MIN_SECRET_BYTES:
        raise ConfigurationInvalid(
            f"JWT_SECRET must be at least {MIN_SECRET_BYTES} bytes (got {size}). {KEY_GENERATION_HELP}"
        )


# =============================================================================
# Nested Settings Groups
# =============================================================================


class AuthSettings(BaseSettings):
    """JWT, lockout, and password policy configuration."""

    model_config = {"env_prefix": "", "extra": "ignore"}

    jwt_secret: SecretStr = SecretStr("")
    jwt_algorithm: str = "HS256"
    jwt_expiration_hours: int = 24
    jwt_refresh_expiration_days: int = 7

    # Seeded on first start only; the account must change it at first login
    admin_initial_password: SecretStr = SecretStr("")

    # Account lockout
    lockout_threshold: int = 5

    # Password policy
    password_min_length: int = 10
    password_require_uppercase: bool = True
    password_require_lowercase: bool = True
    password_require_digit: bool = True
    password_require_special: bool = True
    password_history_size: int = 5

    # Password lifecycle
    password_expiration_days: int = 90
    expiration_warning_days: int = 7

    # Self-service reset by email
    password_reset_token_minutes: int = 15
    password_reset_link_base_url: str = "http://localhost:8080"

    # Revocation registry backend: "sqlite", "memory" or "redis"
    revocation_backend: str = "sqlite"
    redis_blacklist_fail_closed: bool = False

    @model_validator(mode="after")
    def _validate_secret(self):
        """Refuse to build auth settings around an unusable signing secret."""
        validate_signing_secret(self.jwt_secret.get_secret_value())
        if self.lockout_threshold < 1:
            raise ConfigurationInvalid("LOCKOUT_THRESHOLD must be at least 1")
        if self.expiration_warning_days < 1:
            raise ConfigurationInvalid("EXPIRATION_WARNING_DAYS must be at least 1")
        if self.password_reset_token_minutes < 1:
            raise ConfigurationInvalid("PASSWORD_RESET_TOKEN_MINUTES must be at least 1")
        return self


class SchedulerSettings(BaseSettings):
    """Daily job schedule (cron expressions, UTC)."""

    model_config = {"env_prefix": "SCHEDULER_", "extra": "ignore"}

    enabled: bool = True
    lifecycle_scan_cron: str = "0 8 * * *"
    revocation_purge_cron: str = "0 2 * * *"
    reset_token_purge_cron: str = "*/5 * * * *"


class MailSettings(BaseSettings):
    """Outbound mail for lifecycle and lockout notifications."""

    model_config = {"env_prefix": "MAIL_", "extra": "ignore"}

    enabled: bool = False
    smtp_host: Optional[str] = None
    smtp_port: int = 587
    smtp_user: Optional[str] = None
    smtp_password: SecretStr = SecretStr("")
    use_tls: bool = True
    from_address: Optional[str] = None
    admin_address: Optional[str] = None


class RedisSettings(BaseSettings):
    """Redis connection configuration."""

    model_config = {"env_prefix": "", "extra": "ignore"}

    redis_url: str = "redis://localhost:6379/0"


class DatabaseSettings(BaseSettings):
    """Database configuration."""

    model_config = {"env_prefix": "", "extra": "ignore"}

    database_path: str = "data/taskactivity.db"


class RateLimitSettings(BaseSettings):
    """Rate limiting configuration."""

    model_config = {"env_prefix": "RATE_LIMIT_", "extra": "ignore"}

    default: str = "500 per minute"
    auth: str = "10 per minute"
    storage: Optional[str] = None  # Falls back to memory://


# =============================================================================
# Root Settings
# =============================================================================


class AppSettings(BaseSettings):
    """Root application settings composing all sub-settings."""

    model_config = {"env_prefix": "", "extra": "ignore", "env_file": ".env", "env_file_encoding": "utf-8"}

    # Logging
    log_level: str = "INFO"
    log_format: str = "json"
    log_file: str = ""

    # Nested groups (initialized separately to support env_prefix)
    auth: AuthSettings = None  # type: ignore[assignment]
    scheduler: SchedulerSettings = None  # type: ignore[assignment]
    mail: MailSettings = None  # type: ignore[assignment]
    redis: RedisSettings = None  # type: ignore[assignment]
    database: DatabaseSettings = None  # type: ignore[assignment]
    rate_limit: RateLimitSettings = None  # type: ignore[assignment]

    @model_validator(mode="before")
    @classmethod
    def _init_nested(cls, values):
        """Initialize nested settings from environment."""
        if values.get("auth") is None:
            values["auth"] = AuthSettings()
        if values.get("scheduler") is None:
            values["scheduler"] = SchedulerSettings()
        if values.get("mail") is None:
            values["mail"] = MailSettings()
        if values.get("redis") is None:
            values["redis"] = RedisSettings()
        if values.get("database") is None:
            values["database"] = DatabaseSettings()
        if values.get("rate_limit") is None:
            values["rate_limit"] = RateLimitSettings()
        return values


@lru_cache(maxsize=1)
def get_settings() -> AppSettings:
    """
    Get the application settings singleton.

    Lazy-initialized on first call. Validates all env vars (fail-fast).
    Tests can reset via: get_settings.cache_clear()
    """
    settings = AppSettings()
    logger.info(
        "Settings loaded: signing secret %d bytes, lockout threshold %d",
        len(settings.auth.jwt_secret.get_secret_value().encode("utf-8")),
        settings.auth.lockout_threshold,
    )
    return settings
