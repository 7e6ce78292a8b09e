"""HMAC (RFC 2104) keyed on the local SHA-1 primitive."""

from src.security.sha1 import BLOCK_SIZE, sha1

_IPAD = bytes([0x36] * BLOCK_SIZE)
_OPAD = bytes([0x5C] * BLOCK_SIZE)


def hmac_sha1(key: bytes, message: bytes) -> bytes:
    """
    Compute ``sha1((key ^ opad) || sha1((key ^ ipad) || message))``.

    Keys longer than the 64-byte block are hashed first; shorter keys are
    right-padded with zero bytes.
    """
    if len(key) > BLOCK_SIZE:
        key = sha1(key)
    key = key.ljust(BLOCK_SIZE, b"\x00")

    inner_key = bytes(k ^ p for k, p in zip(key, _IPAD))
    outer_key = bytes(k ^ p for k, p in zip(key, _OPAD))

    return sha1(outer_key + sha1(inner_key + message))
