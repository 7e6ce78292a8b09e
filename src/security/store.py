"""
In-memory MFA store.

Reference implementation of the ``MfaStore`` collaborator. Safe to share
between threads; every operation runs under a single lock so conditional
updates behave like their SQL counterparts.
"""

import threading
from dataclasses import replace
from datetime import datetime
from typing import Dict, List, Optional, Sequence

from src.security.mfa_types import AttemptRecord, BackupCode, MfaCredential


class InMemoryMfaStore:
    def __init__(self):
        self._lock = threading.Lock()
        self._credentials: Dict[str, MfaCredential] = {}
        self._backup_codes: Dict[str, List[BackupCode]] = {}
        self.attempts: List[AttemptRecord] = []

    def get_credential(self, user_id: str) -> Optional[MfaCredential]:
        with self._lock:
            credential = self._credentials.get(user_id)
            return replace(credential) if credential else None

    def put_credential(self, credential: MfaCredential) -> None:
        with self._lock:
            self._credentials[credential.user_id] = replace(credential)

    def issue_credential(
        self,
        credential: MfaCredential,
        backup_code_hashes: Sequence[str],
        replace_enabled: bool = False,
    ) -> bool:
        with self._lock:
            existing = self._credentials.get(credential.user_id)
            if existing is not None and existing.is_enabled and not replace_enabled:
                return False
            self._credentials[credential.user_id] = replace(credential)
            self._backup_codes[credential.user_id] = [
                BackupCode(code_hash=h) for h in backup_code_hashes
            ]
            return True

    def touch_last_used(self, user_id: str, when: datetime) -> bool:
        with self._lock:
            credential = self._credentials.get(user_id)
            if credential is None or not credential.is_enabled:
                return False
            credential.last_used_at = when
            return True

    def append_attempt(self, record: AttemptRecord) -> None:
        with self._lock:
            self.attempts.append(record)

    def _recent_failures(self, user_id: str, since: datetime) -> List[AttemptRecord]:
        return [
            a
            for a in self.attempts
            if a.user_id == user_id and not a.success and a.occurred_at >= since
        ]

    def count_recent_failures(self, user_id: str, since: datetime) -> int:
        with self._lock:
            return len(self._recent_failures(user_id, since))

    def oldest_recent_failure(self, user_id: str, since: datetime) -> Optional[datetime]:
        with self._lock:
            failures = self._recent_failures(user_id, since)
            return min(a.occurred_at for a in failures) if failures else None

    def get_backup_codes(self, user_id: str) -> List[BackupCode]:
        with self._lock:
            return [replace(code) for code in self._backup_codes.get(user_id, [])]

    def replace_backup_codes(self, user_id: str, hashes: Sequence[str]) -> None:
        with self._lock:
            self._backup_codes[user_id] = [BackupCode(code_hash=h) for h in hashes]

    def mark_backup_code_used(self, user_id: str, code_hash: str) -> bool:
        with self._lock:
            for code in self._backup_codes.get(user_id, []):
                if code.code_hash == code_hash and not code.used:
                    code.used = True
                    return True
            return False
