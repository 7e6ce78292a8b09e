"""
Secret & Backup-Code Generation
===============================

Shared secrets and one-time recovery codes drawn from the operating
system's CSPRNG.
"""

import hashlib
import secrets
from typing import List

from src.security.base32 import ALPHABET

SECRET_LENGTH = 32


def generate_secret(length: int = SECRET_LENGTH) -> str:
    """
    Generate a base32 TOTP secret.

    Each random byte is reduced modulo 32 onto the base32 alphabet; 256 is a
    multiple of 32 so the mapping is unbiased. 32 characters carry 160 bits.
    """
    return "".join(ALPHABET[byte % len(ALPHABET)] for byte in secrets.token_bytes(length))


def generate_backup_codes(count: int = 10, num_bytes: int = 4) -> List[str]:
    """Generate ``count`` upper-case hex backup codes of ``num_bytes`` random bytes each."""
    return [secrets.token_hex(num_bytes).upper() for _ in range(count)]


def normalize_code(code: str) -> str:
    """Strip whitespace (including the space users type mid-code) and upper-case."""
    return "".join(code.split()).upper()


def hash_backup_code(code: str) -> str:
    """One-way, deterministic hash of a backup code for storage and comparison."""
    return hashlib.sha256(normalize_code(code).encode("utf-8")).hexdigest()
