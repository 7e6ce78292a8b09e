import base64
from unittest.mock import patch

from src.config import MfaPolicy, Settings
from src.database.mfa_store import SqlAlchemyMfaStore
from src.security.encryption import SecretCipher
from src.services.mfa_service import build_mfa_services


def test_build_mfa_services_from_settings():
    settings = Settings(
        DATABASE_URL="sqlite:///:memory:",
        MFA_ISSUER="Westside",
        MFA_MAX_FAILED_ATTEMPTS=3,
        MFA_ENCRYPTION_KEY=SecretCipher.generate_key(),
    )

    services = build_mfa_services(settings)

    assert isinstance(services.store, SqlAlchemyMfaStore)
    assert services.store.cipher is not None
    assert services.enrollment.policy == MfaPolicy.from_settings(settings)
    assert services.verification.policy.max_failures == 3
    assert services.enrollment.store is services.verification.store


def test_build_mfa_services_renders_qr_codes():
    services = build_mfa_services(Settings(DATABASE_URL="sqlite:///:memory:"))

    setup = services.enrollment.initiate("u1", "dr.adams@example.com")

    assert setup.provisioning_uri.startswith("otpauth://totp/ChiroFlow%3A")
    assert base64.b64decode(setup.qr_code).startswith(b"\x89PNG")


def test_build_mfa_services_warns_without_encryption_key():
    with patch("src.services.mfa_service.logger") as mock_logger:
        services = build_mfa_services(
            Settings(DATABASE_URL="sqlite:///:memory:"), render_qr=False
        )

    assert services.store.cipher is None
    assert services.enrollment.qr_renderer is None
    mock_logger.warning.assert_called_once()
