from datetime import timedelta

from src.security.mfa_types import AttemptRecord, AttemptType
from src.security.rate_limit import AttemptRateLimiter


def _fail(store, user_id, when):
    store.append_attempt(
        AttemptRecord(
            user_id=user_id,
            attempt_type=AttemptType.TOTP,
            success=False,
            occurred_at=when,
            failure_reason="invalid token or backup code",
        )
    )


def test_not_locked_below_threshold(store, clock):
    limiter = AttemptRateLimiter(store, clock=clock)
    for _ in range(4):
        _fail(store, "u1", clock())

    status = limiter.check_locked("u1", max_failures=5, window_minutes=15)
    assert status.locked is False
    assert status.remaining_minutes == 0


def test_locked_at_threshold(store, clock):
    limiter = AttemptRateLimiter(store, clock=clock)
    for _ in range(5):
        _fail(store, "u1", clock())

    status = limiter.check_locked("u1", max_failures=5, window_minutes=15)
    assert status.locked is True
    assert status.remaining_minutes == 15


def test_remaining_minutes_counts_down_from_oldest_failure(store, clock):
    limiter = AttemptRateLimiter(store, clock=clock)
    _fail(store, "u1", clock())
    clock.advance(minutes=2)
    for _ in range(4):
        _fail(store, "u1", clock())
    clock.advance(minutes=8)

    status = limiter.check_locked("u1", max_failures=5, window_minutes=15)
    assert status.locked is True
    # Oldest failure at t0 leaves the window at t0 + 15 min; now is t0 + 10 min
    assert status.remaining_minutes == 5


def test_remaining_minutes_rounds_up(store, clock):
    limiter = AttemptRateLimiter(store, clock=clock)
    for _ in range(5):
        _fail(store, "u1", clock())
    clock.advance(minutes=14, seconds=30)

    status = limiter.check_locked("u1", max_failures=5, window_minutes=15)
    assert status.locked is True
    assert status.remaining_minutes == 1


def test_failures_outside_window_are_ignored(store, clock):
    limiter = AttemptRateLimiter(store, clock=clock)
    for _ in range(5):
        _fail(store, "u1", clock() - timedelta(minutes=16))

    assert limiter.check_locked("u1", max_failures=5, window_minutes=15).locked is False


def test_successes_do_not_count(store, clock):
    limiter = AttemptRateLimiter(store, clock=clock)
    for _ in range(10):
        store.append_attempt(
            AttemptRecord(
                user_id="u1",
                attempt_type=AttemptType.TOTP,
                success=True,
                occurred_at=clock(),
            )
        )

    assert limiter.check_locked("u1", max_failures=5, window_minutes=15).locked is False


def test_failures_are_per_user(store, clock):
    limiter = AttemptRateLimiter(store, clock=clock)
    for _ in range(5):
        _fail(store, "u1", clock())

    assert limiter.check_locked("u2", max_failures=5, window_minutes=15).locked is False


def test_custom_policy(store, clock):
    limiter = AttemptRateLimiter(store, clock=clock)
    for _ in range(2):
        _fail(store, "u1", clock())

    assert limiter.check_locked("u1", max_failures=2, window_minutes=1).locked is True
    clock.advance(minutes=1, seconds=1)
    assert limiter.check_locked("u1", max_failures=2, window_minutes=1).locked is False
