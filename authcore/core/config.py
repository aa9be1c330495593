"""authcore Configuration - environment-driven settings."""

import secrets
from functools import lru_cache
from typing import Literal

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


# Minimum Argon2 parameters considered safe for production use
_MIN_ARGON2_TIME_COST = 2
_MIN_ARGON2_MEMORY_COST = 19456  # 19 MiB (OWASP minimum for Argon2id)


class Settings(BaseSettings):
    """Application settings loaded from environment variables or a .env file."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # Application
    app_name: str = "authcore"
    app_version: str = "0.1.0"
    debug: bool = False
    log_level: str = "INFO"
    log_format: Literal["structured", "dev"] = "dev"

    # Database
    database_url: str = "sqlite+aiosqlite:///./authcore.db"
    db_pool_size: int = 20
    db_max_overflow: int = 20
    db_pool_timeout: int = 30
    db_pool_recycle: int = 1800

    # Session tokens
    jwt_secret_key: str | None = None
    jwt_algorithm: str = "HS256"
    session_token_ttl_seconds: int = Field(default=3600, gt=0)

    # Rotate on refresh: the presented token is blacklisted, so it can be exchanged only once
    revoke_on_refresh: bool = True

    # Email verification
    verification_token_ttl_seconds: int = Field(default=86400, gt=0)
    require_verified_email: bool = True
    verification_url_base: str = "http://localhost:8000/api/verify"
    email_webhook_url: str | None = None
    email_from_address: str = "no-reply@localhost"

    # Garbage collection of the blacklist and verification store
    token_purge_interval_seconds: int = Field(default=300, gt=0)
    token_purge_batch_size: int = Field(default=500, gt=0)

    # Argon2id password hashing (64 MiB, 3 iterations, 4 lanes)
    argon2_time_cost: int = Field(default=3, ge=1)
    argon2_memory_cost: int = Field(default=65536, ge=8)
    argon2_parallelism: int = Field(default=4, ge=1)

    # CORS
    cors_origins: str = "http://localhost:3000"

    @field_validator("jwt_secret_key")
    @classmethod
    def validate_jwt_secret_key(cls, v: str | None) -> str | None:
        """Reject short signing keys; an unset key falls back to a per-process key."""
        if v is None or v == "":
            return None
        if len(v) < 32:
            raise ValueError("JWT_SECRET_KEY must be at least 32 characters")
        return v

    @field_validator("jwt_algorithm")
    @classmethod
    def validate_jwt_algorithm(cls, v: str) -> str:
        """Only HMAC algorithms are supported with a shared secret."""
        if v not in ("HS256", "HS384", "HS512"):
            raise ValueError("JWT_ALGORITHM must be one of HS256, HS384, HS512")
        return v

    @field_validator("log_level")
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        level = v.upper()
        if level not in ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"):
            raise ValueError(f"Invalid log level: {v}")
        return level

    @property
    def effective_jwt_secret_key(self) -> str:
        """The signing key for session tokens.

        When JWT_SECRET_KEY is not configured a random key is generated once
        for this process. Every restart then invalidates outstanding tokens.
        """
        if self.jwt_secret_key:
            return self.jwt_secret_key
        return _process_secret_key()

    @property
    def cors_origins_list(self) -> list[str]:
        return [origin.strip() for origin in self.cors_origins.split(",") if origin.strip()]

    def check_security_configuration(self) -> list[str]:
        """Return warnings about insecure but permitted settings."""
        warnings: list[str] = []
        if not self.jwt_secret_key:
            warnings.append(
                "JWT_SECRET_KEY is not set; using a random per-process key. "
                "All session tokens become invalid on restart."
            )
        if self.argon2_time_cost < _MIN_ARGON2_TIME_COST:
            warnings.append(
                f"ARGON2_TIME_COST={self.argon2_time_cost} is below the recommended "
                f"minimum of {_MIN_ARGON2_TIME_COST}"
            )
        if self.argon2_memory_cost < _MIN_ARGON2_MEMORY_COST:
            warnings.append(
                f"ARGON2_MEMORY_COST={self.argon2_memory_cost} KiB is below the "
                f"recommended minimum of {_MIN_ARGON2_MEMORY_COST} KiB"
            )
        if not self.require_verified_email:
            warnings.append("REQUIRE_VERIFIED_EMAIL is disabled; unverified accounts can log in")
        if self.debug and not self.email_webhook_url:
            warnings.append(
                "DEBUG is enabled without EMAIL_WEBHOOK_URL; "
                "verification links are written to the log"
            )
        if not self.revoke_on_refresh:
            warnings.append(
                "REVOKE_ON_REFRESH is disabled; refreshed tokens stay valid until expiry"
            )
        return warnings


@lru_cache(maxsize=1)
def _process_secret_key() -> str:
    return secrets.token_urlsafe(48)


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()


settings = get_settings()
