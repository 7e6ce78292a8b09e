"""
MFA data model, result types and the persistence collaborator interface.
"""

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import List, Optional, Protocol, Sequence

METHOD_TOTP = "totp"


class AttemptType(str, Enum):
    TOTP = "totp"
    BACKUP_CODE = "backup_code"


@dataclass
class MfaCredential:
    """
    Per-user TOTP credential.

    ``is_enabled`` is only ever true while ``verified_at`` is set.
    """

    user_id: str
    secret: Optional[str] = None
    method: str = METHOD_TOTP
    is_enabled: bool = False
    verified_at: Optional[datetime] = None
    last_used_at: Optional[datetime] = None

    def __post_init__(self):
        if self.is_enabled and self.verified_at is None:
            raise ValueError("An enabled MFA credential must have a verification timestamp")

    def __repr__(self) -> str:
        # Keep the shared secret out of reprs, tracebacks and logs
        return (
            f"MfaCredential(user_id={self.user_id!r}, method={self.method!r}, "
            f"is_enabled={self.is_enabled!r}, verified_at={self.verified_at!r}, "
            f"last_used_at={self.last_used_at!r})"
        )


@dataclass
class BackupCode:
    code_hash: str
    used: bool = False


@dataclass(frozen=True)
class AttemptRecord:
    """Append-only log entry of a verification attempt."""

    user_id: str
    attempt_type: AttemptType
    success: bool
    occurred_at: datetime
    failure_reason: Optional[str] = None


@dataclass(frozen=True)
class LockStatus:
    locked: bool
    remaining_minutes: int = 0


class VerifyOutcome(str, Enum):
    SUCCESS = "success"
    INVALID_TOKEN = "invalid_token"
    LOCKED_OUT = "locked_out"
    NOT_INITIATED = "not_initiated"


@dataclass(frozen=True)
class VerifyResult:
    """Outcome of a login-time verification; expected failures are values, not exceptions."""

    outcome: VerifyOutcome
    remaining_minutes: int = 0
    method: Optional[AttemptType] = None

    @property
    def ok(self) -> bool:
        return self.outcome is VerifyOutcome.SUCCESS

    @classmethod
    def success(cls, method: AttemptType) -> "VerifyResult":
        return cls(VerifyOutcome.SUCCESS, method=method)

    @classmethod
    def invalid_token(cls) -> "VerifyResult":
        return cls(VerifyOutcome.INVALID_TOKEN)

    @classmethod
    def locked_out(cls, remaining_minutes: int) -> "VerifyResult":
        return cls(VerifyOutcome.LOCKED_OUT, remaining_minutes=remaining_minutes)

    @classmethod
    def not_initiated(cls) -> "VerifyResult":
        return cls(VerifyOutcome.NOT_INITIATED)


class EnrollmentState(str, Enum):
    INTRO = "intro"
    SETUP = "setup"
    VERIFY = "verify"
    ENABLED = "enabled"


@dataclass
class MfaSetupData:
    """Returned once by ``initiate``/``reset``; plaintext codes are never stored."""

    secret: str
    provisioning_uri: str
    backup_codes: List[str] = field(default_factory=list)
    qr_code: Optional[str] = None

    def __repr__(self) -> str:
        return f"MfaSetupData(backup_codes=<{len(self.backup_codes)} codes>, qr_code={self.qr_code is not None})"


@dataclass(frozen=True)
class MfaStatus:
    is_enabled: bool
    is_verified: bool
    method: str
    last_used_at: Optional[datetime]


class MfaStore(Protocol):
    """
    Persistence collaborator consumed by the MFA services.

    Implementations raise on failure; the services wrap those errors in
    ``StorageFailure``.
    """

    def get_credential(self, user_id: str) -> Optional[MfaCredential]:  # pragma: no cover - protocol definition
        ...

    def put_credential(self, credential: MfaCredential) -> None:  # pragma: no cover - protocol definition
        ...

    def issue_credential(
        self,
        credential: MfaCredential,
        backup_code_hashes: Sequence[str],
        replace_enabled: bool = False,
    ) -> bool:  # pragma: no cover - protocol definition
        """
        Store a freshly issued credential together with its backup-code set.

        Both writes happen atomically. Unless ``replace_enabled`` is set, nothing
        is written when the stored credential is enabled; return whether this
        call wrote.
        """
        ...

    def touch_last_used(self, user_id: str, when: datetime) -> bool:  # pragma: no cover - protocol definition
        """Set ``last_used_at`` only while the credential is enabled; return whether it did."""
        ...

    def append_attempt(self, record: AttemptRecord) -> None:  # pragma: no cover - protocol definition
        ...

    def count_recent_failures(self, user_id: str, since: datetime) -> int:  # pragma: no cover - protocol definition
        ...

    def oldest_recent_failure(self, user_id: str, since: datetime) -> Optional[datetime]:  # pragma: no cover - protocol definition
        ...

    def get_backup_codes(self, user_id: str) -> List[BackupCode]:  # pragma: no cover - protocol definition
        ...

    def replace_backup_codes(self, user_id: str, hashes: Sequence[str]) -> None:  # pragma: no cover - protocol definition
        ...

    def mark_backup_code_used(self, user_id: str, code_hash: str) -> bool:  # pragma: no cover - protocol definition
        """Set ``used`` only if currently unused; return whether this call made the change."""
        ...
