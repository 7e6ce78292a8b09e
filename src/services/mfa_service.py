"""
MFA service wiring.

Builds the enrollment and verification services from application settings
for process entry points. Library callers can construct the services
directly with their own store and policy.
"""

from dataclasses import dataclass
from typing import Optional

import structlog
from sqlalchemy.orm import sessionmaker

from src.config import MfaPolicy, Settings
from src.database import create_db_engine, create_session_factory, init_db
from src.database.mfa_store import SqlAlchemyMfaStore
from src.security.encryption import SecretCipher
from src.security.mfa import MfaEnrollmentService
from src.security.qr import generate_qr_code
from src.security.verification import MfaVerificationService

logger = structlog.get_logger(__name__)


@dataclass
class MfaServices:
    enrollment: MfaEnrollmentService
    verification: MfaVerificationService
    store: SqlAlchemyMfaStore


def build_mfa_services(
    settings: Settings,
    session_factory: Optional[sessionmaker] = None,
    render_qr: bool = True,
) -> MfaServices:
    """Create a store and both MFA services sharing one policy."""
    if session_factory is None:
        engine = create_db_engine(settings.DATABASE_URL)
        init_db(engine)
        session_factory = create_session_factory(engine)

    cipher = SecretCipher(settings.MFA_ENCRYPTION_KEY) if settings.MFA_ENCRYPTION_KEY else None
    if cipher is None:
        logger.warning("mfa_secrets_unencrypted", environment=settings.ENVIRONMENT)

    store = SqlAlchemyMfaStore(session_factory, cipher=cipher)
    policy = MfaPolicy.from_settings(settings)

    return MfaServices(
        enrollment=MfaEnrollmentService(
            store,
            policy=policy,
            qr_renderer=generate_qr_code if render_qr else None,
        ),
        verification=MfaVerificationService(store, policy=policy),
        store=store,
    )
