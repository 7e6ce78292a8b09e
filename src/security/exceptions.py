from contextlib import contextmanager
from typing import Any, Iterator, Optional


class MfaError(Exception):
    """Base class for all MFA errors."""

    error_code: str = "MfaError"
    message: str = "An unexpected MFA error occurred."

    def __init__(
        self,
        message: Optional[str] = None,
        error_code: Optional[str] = None,
        details: Optional[Any] = None,
    ):
        self.message = message or self.message
        self.error_code = error_code or self.error_code
        self.details = details
        super().__init__(self.message)


class NotAuthenticatedError(MfaError):
    error_code = "NotAuthenticated"
    message = "User not authenticated."


class MfaNotInitiatedError(MfaError):
    error_code = "NotInitiated"
    message = "Multi-Factor Authentication setup has not been initiated for this account."


class MfaAlreadyEnabledError(MfaError):
    error_code = "Conflict"
    message = "Multi-Factor Authentication is already enabled. Reset it explicitly to re-enroll."


class StorageFailure(MfaError):
    """
    The persistence collaborator failed.

    Carries the operation name and user id only; the underlying exception is
    chained as ``__cause__``.
    """

    error_code = "StorageFailure"
    message = "The MFA credential store is unavailable."

    def __init__(self, operation: str, user_id: Optional[str] = None, message: Optional[str] = None):
        self.operation = operation
        self.user_id = user_id
        super().__init__(
            message=message or f"MFA store operation '{operation}' failed",
            details={"operation": operation, "user_id": user_id},
        )


@contextmanager
def storage_guard(operation: str, user_id: Optional[str] = None) -> Iterator[None]:
    """Re-raise any collaborator error as ``StorageFailure``; no retries."""
    try:
        yield
    except MfaError:
        raise
    except Exception as exc:
        raise StorageFailure(operation, user_id=user_id) from exc
