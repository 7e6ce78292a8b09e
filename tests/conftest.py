from datetime import datetime, timedelta, timezone

import pytest

from src.config import MfaPolicy
from src.security import base32, totp
from src.security.mfa import MfaEnrollmentService
from src.security.store import InMemoryMfaStore
from src.security.verification import MfaVerificationService

# 2026-01-15 09:00:00 UTC, aligned to a 30-second step
START = datetime(2026, 1, 15, 9, 0, 0, tzinfo=timezone.utc)

TEST_USER = "user-123"
TEST_EMAIL = "dr.adams@example.com"


class FixedClock:
    """Deterministic clock; advance it explicitly."""

    def __init__(self, now: datetime = START):
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> None:
        self.now = self.now + timedelta(**kwargs)

    @property
    def unix(self) -> int:
        return int(self.now.timestamp())


@pytest.fixture
def clock():
    return FixedClock()


@pytest.fixture
def store():
    return InMemoryMfaStore()


@pytest.fixture
def policy():
    return MfaPolicy()


@pytest.fixture
def enrollment(store, policy, clock):
    return MfaEnrollmentService(store, policy=policy, clock=clock)


@pytest.fixture
def verification(store, policy, clock):
    return MfaVerificationService(store, policy=policy, clock=clock)


def current_code(secret: str, clock: FixedClock, offset_steps: int = 0) -> str:
    return totp.generate(base32.decode(secret), clock.unix + offset_steps * totp.STEP_SECONDS)


@pytest.fixture
def enrolled(enrollment, clock):
    """A user with MFA enabled; returns the setup data (secret and backup codes)."""
    setup = enrollment.initiate(TEST_USER, TEST_EMAIL)
    assert enrollment.confirm(TEST_USER, current_code(setup.secret, clock)) is True
    # Move to the next step so enrollment's code is not the "current" one
    clock.advance(seconds=30)
    return setup


@pytest.fixture
def code_at(clock):
    """TOTP code for a secret at the fixed clock, optionally shifted by whole steps."""

    def _code(secret: str, offset_steps: int = 0) -> str:
        return current_code(secret, clock, offset_steps)

    return _code


class HookedStore(InMemoryMfaStore):
    """In-memory store that runs ``after_read`` once, right after the next credential read."""

    def __init__(self):
        super().__init__()
        self.after_read = None

    def get_credential(self, user_id):
        credential = super().get_credential(user_id)
        hook, self.after_read = self.after_read, None
        if hook is not None:
            hook()
        return credential


@pytest.fixture
def hooked_store():
    return HookedStore()
