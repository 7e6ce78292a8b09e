"""
Security Module
===============

Multi-factor authentication for ChiroFlow accounts:
- RFC 4226 / RFC 6238 one-time passwords over a local HMAC-SHA1
- Secret, provisioning URI and backup-code issuance
- Failed-attempt rate limiting
- Enrollment and login-time verification services
- Audit logging
"""

from .audit import AuditEvent, log_audit
from .exceptions import (
    MfaAlreadyEnabledError,
    MfaError,
    MfaNotInitiatedError,
    NotAuthenticatedError,
    StorageFailure,
)
from .mfa import MfaEnrollmentService
from .mfa_types import (
    AttemptRecord,
    AttemptType,
    BackupCode,
    EnrollmentState,
    MfaCredential,
    MfaSetupData,
    MfaStatus,
    MfaStore,
    VerifyOutcome,
    VerifyResult,
)
from .rate_limit import AttemptRateLimiter
from .store import InMemoryMfaStore
from .verification import MfaVerificationService

__all__ = [
    # Services
    "MfaEnrollmentService",
    "MfaVerificationService",
    "AttemptRateLimiter",
    "InMemoryMfaStore",
    # Types
    "AttemptRecord",
    "AttemptType",
    "BackupCode",
    "EnrollmentState",
    "MfaCredential",
    "MfaSetupData",
    "MfaStatus",
    "MfaStore",
    "VerifyOutcome",
    "VerifyResult",
    # Errors
    "MfaError",
    "MfaAlreadyEnabledError",
    "MfaNotInitiatedError",
    "NotAuthenticatedError",
    "StorageFailure",
    # Audit
    "AuditEvent",
    "log_audit",
]
