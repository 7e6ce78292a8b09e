from datetime import datetime, timedelta, timezone

import pytest
from sqlalchemy import select
from sqlalchemy.exc import IntegrityError

from src.database import create_db_engine, create_session_factory, init_db
from src.database.mfa_store import SqlAlchemyMfaStore
from src.database.models import MfaCredentialRow
from src.security.encryption import SecretCipher
from src.security.mfa_types import AttemptRecord, AttemptType, MfaCredential

NOW = datetime(2026, 1, 15, 9, 0, 0, tzinfo=timezone.utc)


@pytest.fixture
def session_factory():
    engine = create_db_engine("sqlite:///:memory:")
    init_db(engine)
    return create_session_factory(engine)


@pytest.fixture
def sql_store(session_factory):
    return SqlAlchemyMfaStore(session_factory)


def test_put_and_get_credential(sql_store):
    sql_store.put_credential(MfaCredential(user_id="u1", secret="JBSWY3DPEHPK3PXP"))

    credential = sql_store.get_credential("u1")
    assert credential.secret == "JBSWY3DPEHPK3PXP"
    assert credential.is_enabled is False
    assert credential.method == "totp"
    assert sql_store.get_credential("u2") is None


def test_put_credential_updates_existing_row(sql_store, session_factory):
    sql_store.put_credential(MfaCredential(user_id="u1", secret="AAAA"))
    sql_store.put_credential(
        MfaCredential(user_id="u1", secret="BBBB", is_enabled=True, verified_at=NOW, last_used_at=NOW)
    )

    credential = sql_store.get_credential("u1")
    assert credential.secret == "BBBB"
    assert credential.is_enabled is True
    assert credential.verified_at == NOW
    assert credential.verified_at.tzinfo is not None
    assert credential.last_used_at == NOW

    with session_factory() as session:
        assert len(session.execute(select(MfaCredentialRow)).scalars().all()) == 1


def test_secret_encrypted_at_rest(session_factory):
    cipher = SecretCipher(SecretCipher.generate_key())
    store = SqlAlchemyMfaStore(session_factory, cipher=cipher)
    store.put_credential(MfaCredential(user_id="u1", secret="JBSWY3DPEHPK3PXP"))

    with session_factory() as session:
        raw = session.execute(select(MfaCredentialRow.secret)).scalar_one()
    assert raw != "JBSWY3DPEHPK3PXP"
    assert store.get_credential("u1").secret == "JBSWY3DPEHPK3PXP"


def test_backup_codes_conditional_update(sql_store):
    sql_store.replace_backup_codes("u1", ["h1", "h2"])

    assert sql_store.mark_backup_code_used("u1", "h1") is True
    assert sql_store.mark_backup_code_used("u1", "h1") is False
    assert sql_store.mark_backup_code_used("u2", "h2") is False
    assert [(c.code_hash, c.used) for c in sql_store.get_backup_codes("u1")] == [
        ("h1", True),
        ("h2", False),
    ]


def test_replace_backup_codes(sql_store):
    sql_store.replace_backup_codes("u1", ["h1"])
    sql_store.replace_backup_codes("u1", ["h2", "h3"])
    assert [c.code_hash for c in sql_store.get_backup_codes("u1")] == ["h2", "h3"]

    sql_store.replace_backup_codes("u1", [])
    assert sql_store.get_backup_codes("u1") == []


def test_recent_failures(sql_store):
    def attempt(when, success, user_id="u1"):
        sql_store.append_attempt(
            AttemptRecord(
                user_id=user_id,
                attempt_type=AttemptType.TOTP,
                success=success,
                occurred_at=when,
                failure_reason=None if success else "invalid token or backup code",
            )
        )

    attempt(NOW - timedelta(minutes=30), False)
    attempt(NOW - timedelta(minutes=10), False)
    attempt(NOW - timedelta(minutes=5), False)
    attempt(NOW - timedelta(minutes=5), True)
    attempt(NOW, False, user_id="u2")

    since = NOW - timedelta(minutes=15)
    assert sql_store.count_recent_failures("u1", since) == 2
    assert sql_store.oldest_recent_failure("u1", since) == NOW - timedelta(minutes=10)
    assert sql_store.oldest_recent_failure("u3", since) is None

    history = sql_store.list_attempts("u1")
    assert len(history) == 4
    assert history[-1].success is True
    assert history[0].failure_reason == "invalid token or backup code"


def test_issue_credential_is_conditional(sql_store):
    assert sql_store.issue_credential(MfaCredential(user_id="u1", secret="AAAA"), ["h1"]) is True
    assert sql_store.issue_credential(MfaCredential(user_id="u1", secret="BBBB"), ["h2"]) is True
    sql_store.put_credential(MfaCredential(user_id="u1", secret="BBBB", is_enabled=True, verified_at=NOW))

    assert sql_store.issue_credential(MfaCredential(user_id="u1", secret="CCCC"), ["h3"]) is False
    assert sql_store.get_credential("u1").secret == "BBBB"
    assert sql_store.get_credential("u1").is_enabled is True
    assert [c.code_hash for c in sql_store.get_backup_codes("u1")] == ["h2"]

    assert sql_store.issue_credential(
        MfaCredential(user_id="u1", secret="DDDD"), ["h4"], replace_enabled=True
    ) is True
    assert sql_store.get_credential("u1").secret == "DDDD"
    assert sql_store.get_credential("u1").is_enabled is False
    assert [c.code_hash for c in sql_store.get_backup_codes("u1")] == ["h4"]


def test_issue_credential_rolls_back_secret_when_codes_fail(sql_store):
    sql_store.issue_credential(MfaCredential(user_id="u1", secret="AAAA"), ["h1"])

    # Duplicate hashes violate the (user_id, code_hash) constraint
    with pytest.raises(IntegrityError):
        sql_store.issue_credential(MfaCredential(user_id="u1", secret="BBBB"), ["h2", "h2"])

    assert sql_store.get_credential("u1").secret == "AAAA"
    assert [c.code_hash for c in sql_store.get_backup_codes("u1")] == ["h1"]


def test_touch_last_used_only_while_enabled(sql_store):
    sql_store.put_credential(MfaCredential(user_id="u1", secret="AAAA"))
    assert sql_store.touch_last_used("u1", NOW) is False
    assert sql_store.touch_last_used("u2", NOW) is False

    sql_store.put_credential(MfaCredential(user_id="u1", secret="AAAA", is_enabled=True, verified_at=NOW))
    assert sql_store.touch_last_used("u1", NOW) is True

    credential = sql_store.get_credential("u1")
    assert credential.last_used_at == NOW
    assert credential.secret == "AAAA"
