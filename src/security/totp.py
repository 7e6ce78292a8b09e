"""
TOTP Generator/Verifier
=======================

RFC 6238 time-based one-time passwords over HMAC-SHA1 with RFC 4226
dynamic truncation. Codes are always 6 digits on a 30-second step.
"""

import hmac
import struct
from urllib.parse import quote

from src.security.hmac_sha1 import hmac_sha1

DIGITS = 6
STEP_SECONDS = 30

_MODULUS = 10**DIGITS

# Matches JavaScript's encodeURIComponent, which authenticator apps expect
_URI_SAFE = "!*'()"


def counter_for(unix_time: int, step_seconds: int = STEP_SECONDS) -> int:
    """HOTP counter for a point in time."""
    return int(unix_time) // step_seconds


def generate(secret: bytes, unix_time: int, step_seconds: int = STEP_SECONDS) -> str:
    """Generate the 6-digit code for ``unix_time``."""
    counter_bytes = struct.pack(">Q", counter_for(unix_time, step_seconds))
    digest = hmac_sha1(secret, counter_bytes)

    offset = digest[19] & 0x0F
    code_int = (
        (digest[offset] & 0x7F) << 24
        | (digest[offset + 1] & 0xFF) << 16
        | (digest[offset + 2] & 0xFF) << 8
        | (digest[offset + 3] & 0xFF)
    ) % _MODULUS

    return str(code_int).zfill(DIGITS)


def verify(
    secret: bytes,
    token: str,
    unix_time: int,
    window: int = 1,
    step_seconds: int = STEP_SECONDS,
) -> bool:
    """
    Check ``token`` against the codes for ``window`` steps either side of
    ``unix_time``.

    Every candidate is compared in constant time. ``window=1`` accepts a
    90-second span; the failed-attempt policy assumes that width.
    """
    if not token:
        return False

    submitted = token.encode("utf-8")
    for i in range(-window, window + 1):
        moment = unix_time + i * step_seconds
        if moment < 0:
            continue
        if hmac.compare_digest(generate(secret, moment, step_seconds).encode("utf-8"), submitted):
            return True
    return False


def provisioning_uri(secret: str, account_label: str, issuer: str) -> str:
    """
    Build the ``otpauth://`` URI authenticator apps import via QR code.

    Shape: ``otpauth://totp/{Issuer:AccountLabel}?secret={SECRET}&issuer={Issuer}``
    with label and issuer URL-encoded.
    """
    label = quote(f"{issuer}:{account_label}", safe=_URI_SAFE)
    return f"otpauth://totp/{label}?secret={secret}&issuer={quote(issuer, safe=_URI_SAFE)}"
