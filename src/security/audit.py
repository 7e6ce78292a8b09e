"""
Audit Logging Service
=====================

Structured audit trail for MFA security events. Event details pass through
a redaction step so shared secrets, submitted tokens and backup codes can
never reach the log, whatever a caller puts in them.
"""

from enum import Enum
from typing import Any, Dict, Optional

import structlog

from src.utils.sanitization import redact

# Use a dedicated logger for audit trails
audit_logger = structlog.get_logger("audit")

SENSITIVE_KEYS = frozenset(
    {"secret", "token", "code", "codes", "backup_code", "backup_codes", "submitted_code", "otp"}
)


class AuditEvent(str, Enum):
    """All auditable MFA events."""

    MFA_SETUP_INITIATED = "MFA_SETUP_INITIATED"
    MFA_ENABLED = "MFA_ENABLED"
    MFA_VERIFY_FAILED = "MFA_VERIFY_FAILED"
    MFA_DISABLED = "MFA_DISABLED"
    MFA_RESET = "MFA_RESET"
    MFA_BACKUP_CODES_REGENERATED = "MFA_BACKUP_CODES_REGENERATED"
    MFA_LOGIN_SUCCESS = "MFA_LOGIN_SUCCESS"
    MFA_LOGIN_FAILURE = "MFA_LOGIN_FAILURE"
    MFA_BACKUP_CODE_USED = "MFA_BACKUP_CODE_USED"
    MFA_LOCKED_OUT = "MFA_LOCKED_OUT"


def log_audit(
    event: AuditEvent,
    user_id: Optional[str] = None,
    details: Optional[Dict[str, Any]] = None,
    logger: Optional[Any] = None,
):
    """
    Log a structured audit event.

    Args:
        event: The type of event that occurred.
        user_id: The user associated with the event.
        details: Additional structured details about the event.
        logger: Sink to write to; defaults to the "audit" logger.
    """
    log_data: Dict[str, Any] = {
        "event_type": event.value,
        "user_id": user_id,
    }
    if details:
        log_data["details"] = redact(details, SENSITIVE_KEYS)

    (logger or audit_logger).info("audit_event", **log_data)
