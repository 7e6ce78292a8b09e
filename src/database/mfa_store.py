"""
SQLAlchemy-backed MFA store.

Implements the ``MfaStore`` collaborator on the tables in ``models``:
- conditional backup-code redemption (``UPDATE ... WHERE used = false``)
- conditional secret issue (``UPDATE ... WHERE is_enabled = false``) together
  with its backup codes, and backup-code set replacement, each in one transaction
- optional Fernet encryption of shared secrets at rest
"""

from datetime import datetime, timezone
from typing import List, Optional, Sequence

from sqlalchemy import delete, func, insert, select, update
from sqlalchemy.orm import sessionmaker

from src.security.encryption import SecretCipher
from src.security.mfa_types import AttemptRecord, AttemptType, BackupCode, MfaCredential

from .models import MfaAttemptRow, MfaBackupCodeRow, MfaCredentialRow


def _to_utc(value: Optional[datetime]) -> Optional[datetime]:
    """SQLite drops tzinfo; everything is stored and returned as UTC."""
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


class SqlAlchemyMfaStore:
    def __init__(self, session_factory: sessionmaker, cipher: Optional[SecretCipher] = None):
        self.session_factory = session_factory
        self.cipher = cipher

    # =========================================================================
    # CREDENTIALS
    # =========================================================================

    def _seal(self, secret: Optional[str]) -> Optional[str]:
        if secret and self.cipher:
            return self.cipher.encrypt(secret)
        return secret

    def _unseal(self, stored: Optional[str]) -> Optional[str]:
        if stored and self.cipher:
            return self.cipher.decrypt(stored)
        return stored

    def get_credential(self, user_id: str) -> Optional[MfaCredential]:
        with self.session_factory() as session:
            row = session.execute(
                select(MfaCredentialRow).where(MfaCredentialRow.user_id == user_id)
            ).scalar_one_or_none()
            if row is None:
                return None
            return MfaCredential(
                user_id=row.user_id,
                secret=self._unseal(row.secret),
                method=row.method,
                is_enabled=row.is_enabled,
                verified_at=_to_utc(row.verified_at),
                last_used_at=_to_utc(row.last_used_at),
            )

    def _values(self, credential: MfaCredential) -> dict:
        return {
            "secret": self._seal(credential.secret),
            "method": credential.method,
            "is_enabled": credential.is_enabled,
            "verified_at": _to_utc(credential.verified_at),
            "last_used_at": _to_utc(credential.last_used_at),
        }

    def put_credential(self, credential: MfaCredential) -> None:
        values = self._values(credential)
        with self.session_factory() as session, session.begin():
            result = session.execute(
                update(MfaCredentialRow)
                .where(MfaCredentialRow.user_id == credential.user_id)
                .values(**values)
            )
            if result.rowcount == 0:
                session.execute(
                    insert(MfaCredentialRow).values(user_id=credential.user_id, **values)
                )

    def issue_credential(
        self,
        credential: MfaCredential,
        backup_code_hashes: Sequence[str],
        replace_enabled: bool = False,
    ) -> bool:
        """
        Write a new secret and its backup codes in one transaction.

        Without ``replace_enabled`` the update only matches a row that is not
        enabled, so a concurrent confirm is never overwritten.
        """
        user_id = credential.user_id
        values = self._values(credential)
        stmt = update(MfaCredentialRow).where(MfaCredentialRow.user_id == user_id)
        if not replace_enabled:
            stmt = stmt.where(MfaCredentialRow.is_enabled.is_(False))

        with self.session_factory() as session, session.begin():
            result = session.execute(stmt.values(**values))
            if result.rowcount == 0:
                exists = session.execute(
                    select(MfaCredentialRow.user_id).where(MfaCredentialRow.user_id == user_id)
                ).first()
                if exists is not None:
                    return False
                session.execute(insert(MfaCredentialRow).values(user_id=user_id, **values))
            self._write_backup_codes(session, user_id, backup_code_hashes)
            return True

    def touch_last_used(self, user_id: str, when: datetime) -> bool:
        with self.session_factory() as session, session.begin():
            result = session.execute(
                update(MfaCredentialRow)
                .where(
                    MfaCredentialRow.user_id == user_id,
                    MfaCredentialRow.is_enabled.is_(True),
                )
                .values(last_used_at=_to_utc(when))
            )
            return result.rowcount == 1

    # =========================================================================
    # ATTEMPTS
    # =========================================================================

    def append_attempt(self, record: AttemptRecord) -> None:
        with self.session_factory() as session, session.begin():
            session.add(
                MfaAttemptRow(
                    user_id=record.user_id,
                    attempt_type=AttemptType(record.attempt_type).value,
                    success=record.success,
                    failure_reason=record.failure_reason,
                    occurred_at=_to_utc(record.occurred_at),
                )
            )

    def _failures_since(self, user_id: str, since: datetime):
        return (
            MfaAttemptRow.user_id == user_id,
            MfaAttemptRow.success.is_(False),
            MfaAttemptRow.occurred_at >= _to_utc(since),
        )

    def count_recent_failures(self, user_id: str, since: datetime) -> int:
        with self.session_factory() as session:
            return session.execute(
                select(func.count(MfaAttemptRow.id)).where(*self._failures_since(user_id, since))
            ).scalar_one()

    def oldest_recent_failure(self, user_id: str, since: datetime) -> Optional[datetime]:
        with self.session_factory() as session:
            oldest = session.execute(
                select(func.min(MfaAttemptRow.occurred_at)).where(
                    *self._failures_since(user_id, since)
                )
            ).scalar_one_or_none()
            return _to_utc(oldest)

    def list_attempts(self, user_id: str) -> List[AttemptRecord]:
        """Attempt history for a user, oldest first."""
        with self.session_factory() as session:
            rows = session.execute(
                select(MfaAttemptRow)
                .where(MfaAttemptRow.user_id == user_id)
                .order_by(MfaAttemptRow.occurred_at, MfaAttemptRow.id)
            ).scalars()
            return [
                AttemptRecord(
                    user_id=row.user_id,
                    attempt_type=AttemptType(row.attempt_type),
                    success=row.success,
                    occurred_at=_to_utc(row.occurred_at),
                    failure_reason=row.failure_reason,
                )
                for row in rows
            ]

    # =========================================================================
    # BACKUP CODES
    # =========================================================================

    def get_backup_codes(self, user_id: str) -> List[BackupCode]:
        with self.session_factory() as session:
            rows = session.execute(
                select(MfaBackupCodeRow)
                .where(MfaBackupCodeRow.user_id == user_id)
                .order_by(MfaBackupCodeRow.id)
            ).scalars()
            return [BackupCode(code_hash=row.code_hash, used=row.used) for row in rows]

    @staticmethod
    def _write_backup_codes(session, user_id: str, hashes: Sequence[str]) -> None:
        session.execute(delete(MfaBackupCodeRow).where(MfaBackupCodeRow.user_id == user_id))
        if hashes:
            session.execute(
                insert(MfaBackupCodeRow),
                [{"user_id": user_id, "code_hash": h, "used": False} for h in hashes],
            )

    def replace_backup_codes(self, user_id: str, hashes: Sequence[str]) -> None:
        with self.session_factory() as session, session.begin():
            self._write_backup_codes(session, user_id, hashes)

    def mark_backup_code_used(self, user_id: str, code_hash: str) -> bool:
        with self.session_factory() as session, session.begin():
            result = session.execute(
                update(MfaBackupCodeRow)
                .where(
                    MfaBackupCodeRow.user_id == user_id,
                    MfaBackupCodeRow.code_hash == code_hash,
                    MfaBackupCodeRow.used.is_(False),
                )
                .values(used=True, used_at=datetime.now(timezone.utc))
            )
            return result.rowcount == 1
