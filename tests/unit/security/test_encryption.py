import pytest
from cryptography.fernet import InvalidToken

from src.security.encryption import SecretCipher


def test_encrypt_decrypt_round_trip():
    cipher = SecretCipher(SecretCipher.generate_key())
    token = cipher.encrypt("JBSWY3DPEHPK3PXP")
    assert token != "JBSWY3DPEHPK3PXP"
    assert cipher.decrypt(token) == "JBSWY3DPEHPK3PXP"


def test_empty_values_pass_through():
    cipher = SecretCipher(SecretCipher.generate_key())
    assert cipher.encrypt("") == ""
    assert cipher.decrypt("") == ""


def test_wrong_key_fails():
    token = SecretCipher(SecretCipher.generate_key()).encrypt("JBSWY3DPEHPK3PXP")
    with pytest.raises(InvalidToken):
        SecretCipher(SecretCipher.generate_key()).decrypt(token)


def test_invalid_key_rejected():
    with pytest.raises(ValueError):
        SecretCipher("not-a-fernet-key")
