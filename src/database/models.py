"""
SQLAlchemy ORM Models for MFA

Tables backing the ``MfaStore`` collaborator:
- mfa_credentials: one row per user, secret encrypted at rest
- mfa_backup_codes: hashed one-time recovery codes
- mfa_attempts: append-only verification log consulted by the rate limiter
"""

from datetime import datetime
from typing import Optional

from sqlalchemy import (
    Boolean,
    CheckConstraint,
    DateTime,
    Index,
    Integer,
    String,
    UniqueConstraint,
)
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column
from sqlalchemy.sql import func


class Base(DeclarativeBase):
    """Base class for all ORM models."""

    pass


class MfaCredentialRow(Base):
    """Per-user TOTP credential."""

    __tablename__ = "mfa_credentials"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    user_id: Mapped[str] = mapped_column(String(64), unique=True, nullable=False, index=True)
    # Fernet token when a cipher is configured, base32 otherwise
    secret: Mapped[Optional[str]] = mapped_column(String(255))
    method: Mapped[str] = mapped_column(String(16), nullable=False, default="totp")
    is_enabled: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    verified_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True))
    last_used_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True))
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now())

    __table_args__ = (
        CheckConstraint(
            "NOT is_enabled OR verified_at IS NOT NULL", name="ck_mfa_enabled_requires_verified"
        ),
    )


class MfaBackupCodeRow(Base):
    """Hashed backup code; ``used`` only ever goes from false to true."""

    __tablename__ = "mfa_backup_codes"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    user_id: Mapped[str] = mapped_column(String(64), nullable=False, index=True)
    code_hash: Mapped[str] = mapped_column(String(64), nullable=False)
    used: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    used_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True))

    __table_args__ = (UniqueConstraint("user_id", "code_hash", name="uq_mfa_backup_code"),)


class MfaAttemptRow(Base):
    """Append-only MFA verification attempt."""

    __tablename__ = "mfa_attempts"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    user_id: Mapped[str] = mapped_column(String(64), nullable=False)
    attempt_type: Mapped[str] = mapped_column(String(16), nullable=False)
    success: Mapped[bool] = mapped_column(Boolean, nullable=False)
    failure_reason: Mapped[Optional[str]] = mapped_column(String(255))
    occurred_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)

    __table_args__ = (
        Index("idx_mfa_attempts_user_failures", "user_id", "success", "occurred_at"),
    )
