"""
Base32 Codec
============

RFC 4648 base32 (alphabet ``A-Z2-7``) as used by authenticator apps for
shared secrets. Decoding is lenient: input is case-insensitive, trailing
``=`` padding is stripped and characters outside the alphabet are skipped,
so secrets pasted or typed by users (with spaces or dashes) still decode.
"""

ALPHABET = "ABCDEFGHIJKLMNOPQRSTUVWXYZ234567"

_DECODE_MAP = {char: index for index, char in enumerate(ALPHABET)}


def decode(value: str) -> bytes:
    """
    Decode a base32 string into raw bytes.

    Bits are accumulated MSB-first, 5 per character, and emitted in 8-bit
    groups. A trailing partial group shorter than 8 bits is discarded.
    """
    buffer = 0
    bits = 0
    out = bytearray()

    for char in value.upper().rstrip("="):
        index = _DECODE_MAP.get(char)
        if index is None:
            continue
        buffer = (buffer << 5) | index
        bits += 5
        if bits >= 8:
            bits -= 8
            out.append((buffer >> bits) & 0xFF)
            buffer &= (1 << bits) - 1

    return bytes(out)


def encode(data: bytes, padding: bool = False) -> str:
    """
    Encode raw bytes as base32.

    Provisioning URIs conventionally omit padding, so it is off by default.
    """
    buffer = 0
    bits = 0
    chars = []

    for byte in data:
        buffer = (buffer << 8) | byte
        bits += 8
        while bits >= 5:
            bits -= 5
            chars.append(ALPHABET[(buffer >> bits) & 0x1F])
        buffer &= (1 << bits) - 1

    if bits:
        chars.append(ALPHABET[(buffer << (5 - bits)) & 0x1F])

    if padding and len(chars) % 8:
        chars.append("=" * (8 - len(chars) % 8))

    return "".join(chars)
