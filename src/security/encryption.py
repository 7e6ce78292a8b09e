import structlog
from cryptography.fernet import Fernet, InvalidToken

logger = structlog.get_logger(__name__)


class SecretCipher:
    """Fernet encryption for MFA shared secrets at rest."""

    def __init__(self, key: str):
        try:
            self.fernet = Fernet(key)
        except (ValueError, TypeError):
            logger.critical("mfa_cipher_init_failed", reason="invalid_key")
            raise

    @classmethod
    def generate_key(cls) -> str:
        return Fernet.generate_key().decode()

    def encrypt(self, data: str) -> str:
        """Encrypts a string."""
        if not data:
            return data
        return self.fernet.encrypt(data.encode()).decode()

    def decrypt(self, token: str) -> str:
        """Decrypts a token."""
        if not token:
            return token
        try:
            return self.fernet.decrypt(token.encode()).decode()
        except InvalidToken:
            logger.error("mfa_secret_decrypt_failed")
            raise
