"""
Application configuration management.

Centralized configuration using Pydantic Settings with environment variable support.
Validates all configuration parameters at startup to fail fast on misconfiguration.
The MFA core itself never reads these settings directly: entry points build an
``MfaPolicy`` from them and pass it into the services.
"""

import logging
import os
from dataclasses import dataclass
from typing import Any, Optional

import structlog
from pydantic import Field, ValidationError, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

logger = structlog.get_logger(__name__)


class Settings(BaseSettings):
    """
    Application settings loaded from environment variables and ``.env``.
    """

    # Application Configuration
    PROJECT_NAME: str = Field(default="ChiroFlow MFA", description="Application name")
    ENVIRONMENT: str = Field(default="dev", description="Environment (dev, staging, prod)")
    LOG_LEVEL: str = Field(default="INFO", description="Logging level")

    # Database Configuration
    DATABASE_URL: str = Field(
        default="sqlite:///./mfa.db",
        description="Connection string for the MFA credential store",
    )

    # MFA Policy
    MFA_ISSUER: str = Field(default="ChiroFlow", description="Issuer shown in authenticator apps")
    MFA_TOTP_WINDOW: int = Field(default=1, description="Accepted time steps either side of now")
    MFA_MAX_FAILED_ATTEMPTS: int = Field(default=5, description="Failures before lockout")
    MFA_LOCKOUT_WINDOW_MINUTES: int = Field(default=15, description="Trailing failure window")
    MFA_BACKUP_CODE_COUNT: int = Field(default=10, description="Backup codes issued per enrollment")
    MFA_BACKUP_CODE_BYTES: int = Field(default=4, description="Random bytes per backup code")
    MFA_ENCRYPTION_KEY: Optional[str] = Field(
        default=None,
        description="Fernet key for encrypting MFA secrets at rest. Required in production/staging.",
    )

    model_config = SettingsConfigDict(
        env_file=".env", env_file_encoding="utf-8", case_sensitive=False, extra="ignore"
    )

    @field_validator("MFA_ENCRYPTION_KEY", mode="before")
    @classmethod
    def validate_mfa_encryption_key(cls, v: Any) -> Optional[str]:
        """Require an encryption key outside of development."""
        env = os.environ.get("ENVIRONMENT", "dev").lower()
        if not v:
            if env in ["prod", "production", "staging"]:
                raise ValueError("MFA_ENCRYPTION_KEY must be set in production/staging environments")
            return None
        return str(v)

    @field_validator("ENVIRONMENT")
    @classmethod
    def validate_environment(cls, v: str) -> str:
        """Validate environment is one of the allowed values."""
        v_lower = v.lower()
        if v_lower == "production":
            v_lower = "prod"
        if v_lower == "test":
            v_lower = "dev"

        allowed = ["dev", "staging", "prod"]
        if v_lower not in allowed:
            raise ValueError(f"ENVIRONMENT must be one of {allowed}")
        return v_lower

    @field_validator("LOG_LEVEL")
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        """Validate log level is a valid logging level."""
        allowed = ["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]
        if v.upper() not in allowed:
            raise ValueError(f"LOG_LEVEL must be one of {allowed}")
        return v.upper()

    @field_validator("MFA_TOTP_WINDOW")
    @classmethod
    def validate_totp_window(cls, v: int) -> int:
        """Widening the window raises guessability; keep it small."""
        if v < 0 or v > 3:
            raise ValueError("MFA_TOTP_WINDOW must be between 0 and 3")
        return v

    @field_validator(
        "MFA_MAX_FAILED_ATTEMPTS", "MFA_LOCKOUT_WINDOW_MINUTES", "MFA_BACKUP_CODE_COUNT"
    )
    @classmethod
    def validate_positive(cls, v: int, info) -> int:
        """Validate policy counters are positive."""
        if v < 1:
            raise ValueError(f"{info.field_name} must be positive")
        return v

    @field_validator("MFA_BACKUP_CODE_BYTES")
    @classmethod
    def validate_backup_code_bytes(cls, v: int) -> int:
        """Backup codes carry at least 32 bits of entropy."""
        if v < 4:
            raise ValueError("MFA_BACKUP_CODE_BYTES must be at least 4")
        return v


@dataclass(frozen=True)
class MfaPolicy:
    """
    Policy constants for enrollment and verification.

    Passed explicitly into the services so alternate policies can be used
    side by side (e.g. in tests).
    """

    issuer: str = "ChiroFlow"
    totp_window: int = 1
    max_failures: int = 5
    window_minutes: int = 15
    backup_code_count: int = 10
    backup_code_bytes: int = 4

    @classmethod
    def from_settings(cls, settings: Settings) -> "MfaPolicy":
        return cls(
            issuer=settings.MFA_ISSUER,
            totp_window=settings.MFA_TOTP_WINDOW,
            max_failures=settings.MFA_MAX_FAILED_ATTEMPTS,
            window_minutes=settings.MFA_LOCKOUT_WINDOW_MINUTES,
            backup_code_count=settings.MFA_BACKUP_CODE_COUNT,
            backup_code_bytes=settings.MFA_BACKUP_CODE_BYTES,
        )


_settings: Optional[Settings] = None


def get_settings() -> Settings:
    """
    Get application settings singleton.

    Intended for process entry points only; library code receives an
    ``MfaPolicy`` instead.

    Raises:
        ValidationError: If configuration is invalid
    """
    global _settings
    if _settings:
        return _settings

    try:
        _settings = Settings()
        return _settings
    except ValidationError as e:
        logger.error("configuration_validation_failed", error=str(e))
        raise


def configure_logging(settings: Settings) -> None:
    """
    Configure application logging based on settings.

    Args:
        settings: Application settings containing log level configuration
    """
    from src.shared.observability import setup_logging

    setup_logging(level=getattr(logging, settings.LOG_LEVEL))
