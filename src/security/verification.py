"""
MFA Verification Service
========================

Login-time verification: rate limit first, then the TOTP code, then the
user's unused backup codes. Expected failures come back as ``VerifyResult``
values; only storage problems raise.
"""

import hmac
import threading
import weakref
from datetime import datetime
from typing import Any, Callable, Optional

import structlog

from src.config import MfaPolicy
from src.security import base32, totp
from src.security.audit import AuditEvent, log_audit
from src.security.codes import hash_backup_code, normalize_code
from src.security.exceptions import storage_guard
from src.security.mfa import require_user
from src.security.mfa_types import (
    AttemptRecord,
    AttemptType,
    MfaStore,
    VerifyResult,
)
from src.security.rate_limit import AttemptRateLimiter, utc_now
from src.utils.sanitization import fingerprint

module_logger = structlog.get_logger(__name__)

INVALID_CODE_REASON = "invalid token or backup code"


class MfaVerificationService:
    def __init__(
        self,
        store: MfaStore,
        policy: Optional[MfaPolicy] = None,
        clock: Optional[Callable[[], datetime]] = None,
        logger: Optional[Any] = None,
        rate_limiter: Optional[AttemptRateLimiter] = None,
        audit_logger: Optional[Any] = None,
    ):
        self.store = store
        self.policy = policy or MfaPolicy()
        self.clock = clock or utc_now
        self.logger = logger or module_logger
        self.rate_limiter = rate_limiter or AttemptRateLimiter(store, clock=self.clock)
        self.audit_logger = audit_logger
        # Serializes check-then-record per user within this process; an entry
        # lives only while some call holds its lock
        self._locks_guard = threading.Lock()
        self._user_locks = weakref.WeakValueDictionary()

    def _lock_for(self, user_id: str) -> threading.Lock:
        with self._locks_guard:
            lock = self._user_locks.get(user_id)
            if lock is None:
                lock = threading.Lock()
                self._user_locks[user_id] = lock
            return lock

    def verify_login(self, user_id: str, submitted_code: str) -> VerifyResult:
        """
        Verify a login-time MFA code.

        Args:
            user_id: User completing the login.
            submitted_code: 6-digit TOTP code or a backup code.

        Returns:
            VerifyResult with outcome SUCCESS, INVALID_TOKEN, LOCKED_OUT or NOT_INITIATED.

        Raises:
            StorageFailure: The credential store failed.
        """
        user_id = require_user(user_id)

        with self._lock_for(user_id):
            with storage_guard("check_locked", user_id):
                lock = self.rate_limiter.check_locked(
                    user_id, self.policy.max_failures, self.policy.window_minutes
                )
            if lock.locked:
                log_audit(
                    AuditEvent.MFA_LOCKED_OUT,
                    user_id=user_id,
                    details={"remaining_minutes": lock.remaining_minutes},
                    logger=self.audit_logger,
                )
                return VerifyResult.locked_out(lock.remaining_minutes)

            with storage_guard("get_credential", user_id):
                credential = self.store.get_credential(user_id)
            if credential is None or not credential.is_enabled or not credential.secret:
                self.logger.info("mfa_verify_not_initiated", user_id=user_id)
                return VerifyResult.not_initiated()

            now = self.clock()
            code = normalize_code(submitted_code or "")

            if totp.verify(
                base32.decode(credential.secret),
                code,
                int(now.timestamp()),
                window=self.policy.totp_window,
            ):
                self._touch(user_id, now)
                return self._succeed(user_id, AttemptType.TOTP, now)

            if self._redeem_backup_code(user_id, code):
                self._touch(user_id, now)
                return self._succeed(user_id, AttemptType.BACKUP_CODE, now)

            self._append(user_id, AttemptType.TOTP, False, now, INVALID_CODE_REASON)
            self.logger.info("mfa_verify_failed", user_id=user_id)
            log_audit(AuditEvent.MFA_LOGIN_FAILURE, user_id=user_id, logger=self.audit_logger)
            return VerifyResult.invalid_token()

    def _redeem_backup_code(self, user_id: str, code: str) -> bool:
        """Consume a matching unused backup code; only the caller that flips ``used`` wins."""
        if not code:
            return False

        candidate = hash_backup_code(code)
        with storage_guard("get_backup_codes", user_id):
            backup_codes = self.store.get_backup_codes(user_id)

        for backup_code in backup_codes:
            if backup_code.used or not hmac.compare_digest(backup_code.code_hash, candidate):
                continue
            with storage_guard("mark_backup_code_used", user_id):
                won = self.store.mark_backup_code_used(user_id, backup_code.code_hash)
            if not won:
                self.logger.warning(
                    "mfa_backup_code_already_redeemed",
                    user_id=user_id,
                    code_ref=fingerprint(candidate),
                )
            return won

        return False

    def _touch(self, user_id: str, now: datetime) -> None:
        # Narrow update; never writes back the credential read above
        with storage_guard("touch_last_used", user_id):
            touched = self.store.touch_last_used(user_id, now)
        if not touched:
            self.logger.info("mfa_credential_changed_during_verify", user_id=user_id)

    def _succeed(self, user_id: str, method: AttemptType, now: datetime) -> VerifyResult:
        self._append(user_id, method, True, now)
        self.logger.info("mfa_verify_succeeded", user_id=user_id, method=method.value)
        if method is AttemptType.BACKUP_CODE:
            log_audit(AuditEvent.MFA_BACKUP_CODE_USED, user_id=user_id, logger=self.audit_logger)
        log_audit(
            AuditEvent.MFA_LOGIN_SUCCESS,
            user_id=user_id,
            details={"method": method.value},
            logger=self.audit_logger,
        )
        return VerifyResult.success(method)

    def _append(
        self,
        user_id: str,
        attempt_type: AttemptType,
        success: bool,
        now: datetime,
        failure_reason: Optional[str] = None,
    ) -> None:
        record = AttemptRecord(
            user_id=user_id,
            attempt_type=attempt_type,
            success=success,
            occurred_at=now,
            failure_reason=failure_reason,
        )
        with storage_guard("append_attempt", user_id):
            self.store.append_attempt(record)
