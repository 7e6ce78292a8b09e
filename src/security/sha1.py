"""
SHA-1 Primitive
===============

Pure-Python SHA-1 (FIPS 180-4) over the Merkle-Damgard construction:
pad the message to a multiple of 512 bits, expand each block into an
80-word schedule and run four groups of 20 rounds.
"""

import struct

DIGEST_SIZE = 20
BLOCK_SIZE = 64

_MASK = 0xFFFFFFFF

_IV = (0x67452301, 0xEFCDAB89, 0x98BADCFE, 0x10325476, 0xC3D2E1F0)

_K = (0x5A827999, 0x6ED9EBA1, 0x8F1BBCDC, 0xCA62C1D6)


def _rotl(value: int, count: int) -> int:
    return ((value << count) | (value >> (32 - count))) & _MASK


def _pad(data: bytes) -> bytes:
    bit_length = len(data) * 8
    # 0x80 marker, zeros to 56 mod 64, then the 64-bit big-endian length
    zeros = (55 - len(data)) % BLOCK_SIZE
    return data + b"\x80" + b"\x00" * zeros + struct.pack(">Q", bit_length & 0xFFFFFFFFFFFFFFFF)


def _compress(state: tuple, block: bytes) -> tuple:
    w = list(struct.unpack(">16I", block))
    for i in range(16, 80):
        w.append(_rotl(w[i - 3] ^ w[i - 8] ^ w[i - 14] ^ w[i - 16], 1))

    a, b, c, d, e = state

    for i in range(80):
        if i < 20:
            f = (b & c) | (~b & d)
            k = _K[0]
        elif i < 40:
            f = b ^ c ^ d
            k = _K[1]
        elif i < 60:
            f = (b & c) | (b & d) | (c & d)
            k = _K[2]
        else:
            f = b ^ c ^ d
            k = _K[3]

        temp = (_rotl(a, 5) + (f & _MASK) + e + k + w[i]) & _MASK
        e = d
        d = c
        c = _rotl(b, 30)
        b = a
        a = temp

    return (
        (state[0] + a) & _MASK,
        (state[1] + b) & _MASK,
        (state[2] + c) & _MASK,
        (state[3] + d) & _MASK,
        (state[4] + e) & _MASK,
    )


def sha1(data: bytes) -> bytes:
    """Compute the 20-byte SHA-1 digest of ``data``."""
    padded = _pad(bytes(data))
    state = _IV
    for offset in range(0, len(padded), BLOCK_SIZE):
        state = _compress(state, padded[offset : offset + BLOCK_SIZE])
    return struct.pack(">5I", *state)
