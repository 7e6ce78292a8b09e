"""
MFA Enrollment Service
======================

Handles Multi-Factor Authentication enrollment using Time-based One-Time
Passwords (TOTP):

    INTRO -> SETUP (initiate) -> VERIFY -> ENABLED (confirm)

An enabled credential is only ever replaced through ``reset``; ``initiate``
refuses to overwrite it.
"""

from datetime import datetime
from typing import Any, Callable, List, Optional

import structlog

from src.config import MfaPolicy
from src.security import base32, totp
from src.security.audit import AuditEvent, log_audit
from src.security.codes import (
    generate_backup_codes,
    generate_secret,
    hash_backup_code,
    normalize_code,
)
from src.security.exceptions import (
    MfaAlreadyEnabledError,
    MfaNotInitiatedError,
    NotAuthenticatedError,
    storage_guard,
)
from src.security.mfa_types import (
    AttemptRecord,
    AttemptType,
    EnrollmentState,
    MfaCredential,
    MfaSetupData,
    MfaStatus,
    MfaStore,
)
from src.security.rate_limit import utc_now
from src.utils.sanitization import mask_email

module_logger = structlog.get_logger(__name__)


def require_user(user_id: Optional[str]) -> str:
    """Reject calls made without an authenticated caller."""
    if not user_id:
        raise NotAuthenticatedError()
    return str(user_id)


class MfaEnrollmentService:
    def __init__(
        self,
        store: MfaStore,
        policy: Optional[MfaPolicy] = None,
        clock: Optional[Callable[[], datetime]] = None,
        logger: Optional[Any] = None,
        qr_renderer: Optional[Callable[[str], str]] = None,
        audit_logger: Optional[Any] = None,
    ):
        self.store = store
        self.policy = policy or MfaPolicy()
        self.clock = clock or utc_now
        self.logger = logger or module_logger
        self.qr_renderer = qr_renderer
        self.audit_logger = audit_logger

    # ------------------------------------------------------------------
    # State
    # ------------------------------------------------------------------

    def _load(self, user_id: str) -> Optional[MfaCredential]:
        with storage_guard("get_credential", user_id):
            return self.store.get_credential(user_id)

    def get_state(self, user_id: str) -> EnrollmentState:
        credential = self._load(require_user(user_id))
        if credential is None or not credential.secret:
            return EnrollmentState.INTRO
        if credential.is_enabled:
            return EnrollmentState.ENABLED
        return EnrollmentState.VERIFY

    def get_status(self, user_id: str) -> Optional[MfaStatus]:
        """Summary of the user's MFA credential, or None if never enrolled."""
        credential = self._load(require_user(user_id))
        if credential is None:
            return None
        return MfaStatus(
            is_enabled=credential.is_enabled,
            is_verified=credential.verified_at is not None,
            method=credential.method,
            last_used_at=credential.last_used_at,
        )

    # ------------------------------------------------------------------
    # Transitions
    # ------------------------------------------------------------------

    def initiate(self, user_id: str, account_label: str) -> MfaSetupData:
        """
        Issue a new secret and backup codes for a user without enabled MFA.

        Args:
            user_id: Authenticated user.
            account_label: Label shown in the authenticator app, usually the email.

        Raises:
            MfaAlreadyEnabledError: The user already has enabled MFA; use ``reset``.
        """
        user_id = require_user(user_id)
        existing = self._load(user_id)
        if existing is not None and existing.is_enabled:
            self._reject_overwrite(user_id)

        setup = self._issue(user_id, account_label)
        if setup is None:
            # Confirmed by a concurrent request after the read above
            self._reject_overwrite(user_id)
        log_audit(AuditEvent.MFA_SETUP_INITIATED, user_id=user_id, logger=self.audit_logger)
        return setup

    def reset(self, user_id: str, account_label: str) -> MfaSetupData:
        """Explicit re-enrollment: replace secret and backup codes even if enabled."""
        user_id = require_user(user_id)
        setup = self._issue(user_id, account_label, replace_enabled=True)
        log_audit(AuditEvent.MFA_RESET, user_id=user_id, logger=self.audit_logger)
        return setup

    def confirm(self, user_id: str, token: str) -> bool:
        """
        Verify the first code from the authenticator and enable MFA.

        Returns False (and records a failed attempt) when the code is wrong.
        """
        user_id = require_user(user_id)
        credential = self._load(user_id)
        if credential is None or not credential.secret:
            raise MfaNotInitiatedError()
        if credential.is_enabled:
            raise MfaAlreadyEnabledError()

        now = self.clock()
        is_valid = totp.verify(
            base32.decode(credential.secret),
            normalize_code(token or ""),
            int(now.timestamp()),
            window=self.policy.totp_window,
        )

        if not is_valid:
            self._record(user_id, success=False, now=now, failure_reason="Invalid token")
            self.logger.info("mfa_enrollment_token_rejected", user_id=user_id)
            log_audit(AuditEvent.MFA_VERIFY_FAILED, user_id=user_id, logger=self.audit_logger)
            return False

        credential.is_enabled = True
        credential.verified_at = now
        with storage_guard("put_credential", user_id):
            self.store.put_credential(credential)
        self._record(user_id, success=True, now=now)

        self.logger.info("mfa_enabled", user_id=user_id)
        log_audit(AuditEvent.MFA_ENABLED, user_id=user_id, logger=self.audit_logger)
        return True

    def regenerate_backup_codes(self, user_id: str) -> List[str]:
        """Replace the whole backup-code set of an enabled credential."""
        user_id = require_user(user_id)
        credential = self._load(user_id)
        if credential is None or not credential.is_enabled:
            raise MfaNotInitiatedError(
                message="Multi-Factor Authentication must be enabled before regenerating backup codes"
            )

        codes = self._replace_backup_codes(user_id)
        log_audit(
            AuditEvent.MFA_BACKUP_CODES_REGENERATED,
            user_id=user_id,
            details={"count": len(codes)},
            logger=self.audit_logger,
        )
        return codes

    def disable(self, user_id: str) -> None:
        """Turn MFA off and discard the secret and backup codes."""
        user_id = require_user(user_id)
        credential = self._load(user_id)
        if credential is None or not credential.is_enabled:
            raise MfaNotInitiatedError(
                message="Multi-Factor Authentication is already disabled for this account"
            )

        credential.is_enabled = False
        credential.verified_at = None
        credential.secret = None
        with storage_guard("put_credential", user_id):
            self.store.put_credential(credential)
        with storage_guard("replace_backup_codes", user_id):
            self.store.replace_backup_codes(user_id, [])

        self.logger.info("mfa_disabled", user_id=user_id)
        log_audit(AuditEvent.MFA_DISABLED, user_id=user_id, logger=self.audit_logger)

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _reject_overwrite(self, user_id: str) -> None:
        self.logger.warning("mfa_setup_rejected", user_id=user_id, reason="already_enabled")
        raise MfaAlreadyEnabledError()

    def _issue(
        self, user_id: str, account_label: str, replace_enabled: bool = False
    ) -> Optional[MfaSetupData]:
        """Write a new secret with a new backup-code set; None if an enabled credential blocked it."""
        secret = generate_secret()
        backup_codes = self._new_backup_codes()
        credential = MfaCredential(user_id=user_id, secret=secret)
        with storage_guard("issue_credential", user_id):
            written = self.store.issue_credential(
                credential,
                [hash_backup_code(c) for c in backup_codes],
                replace_enabled=replace_enabled,
            )
        if not written:
            return None

        uri = totp.provisioning_uri(secret, account_label, self.policy.issuer)
        qr_code = self.qr_renderer(uri) if self.qr_renderer else None

        self.logger.info(
            "mfa_secret_issued",
            user_id=user_id,
            account=mask_email(account_label),
            backup_code_count=len(backup_codes),
        )
        return MfaSetupData(
            secret=secret,
            provisioning_uri=uri,
            backup_codes=backup_codes,
            qr_code=qr_code,
        )

    def _new_backup_codes(self) -> List[str]:
        return generate_backup_codes(
            count=self.policy.backup_code_count, num_bytes=self.policy.backup_code_bytes
        )

    def _replace_backup_codes(self, user_id: str) -> List[str]:
        codes = self._new_backup_codes()
        with storage_guard("replace_backup_codes", user_id):
            self.store.replace_backup_codes(user_id, [hash_backup_code(c) for c in codes])
        return codes

    def _record(
        self, user_id: str, success: bool, now: datetime, failure_reason: Optional[str] = None
    ) -> None:
        record = AttemptRecord(
            user_id=user_id,
            attempt_type=AttemptType.TOTP,
            success=success,
            occurred_at=now,
            failure_reason=failure_reason,
        )
        with storage_guard("append_attempt", user_id):
            self.store.append_attempt(record)
