"""Content fingerprints for change detection (SHA-1, lowercase hex).

``content_hash`` prefers ``hashlib``; interpreters that refuse SHA-1 (FIPS
builds raise ``ValueError``) fall back to the pure-Python ``sha1_hex``.
"""

import hashlib
import logging
import struct

logger = logging.getLogger(__name__)

_MASK = 0xFFFFFFFF


def _rotl(value: int, bits: int) -> int:
    return ((value << bits) | (value >> (32 - bits))) & _MASK


def sha1_hex(message: str) -> str:
    """SHA-1 of the UTF-8 encoding of ``message`` (FIPS PUB 180-4)."""
    data = message.encode("utf-8")
    bit_length = len(data) * 8

    # Pad: 0x80, zeros up to 56 mod 64, then the 64-bit big-endian length.
    data += b"\x80"
    data += b"\x00" * ((56 - len(data) % 64) % 64)
    data += struct.pack(">Q", bit_length)

    h0, h1, h2, h3, h4 = 0x67452301, 0xEFCDAB89, 0x98BADCFE, 0x10325476, 0xC3D2E1F0

    for block_start in range(0, len(data), 64):
        w = list(struct.unpack(">16I", data[block_start:block_start + 64]))
        for i in range(16, 80):
            w.append(_rotl(w[i - 3] ^ w[i - 8] ^ w[i - 14] ^ w[i - 16], 1))

        a, b, c, d, e = h0, h1, h2, h3, h4

        for i in range(80):
            if i < 20:
                f = (b & c) | (~b & d)
                k = 0x5A827999
            elif i < 40:
                f = b ^ c ^ d
                k = 0x6ED9EBA1
            elif i < 60:
                f = (b & c) | (b & d) | (c & d)
                k = 0x8F1BBCDC
            else:
                f = b ^ c ^ d
                k = 0xCA62C1D6

            temp = (_rotl(a, 5) + (f & _MASK) + e + k + w[i]) & _MASK
            e = d
            d = c
            c = _rotl(b, 30)
            b = a
            a = temp

        h0 = (h0 + a) & _MASK
        h1 = (h1 + b) & _MASK
        h2 = (h2 + c) & _MASK
        h3 = (h3 + d) & _MASK
        h4 = (h4 + e) & _MASK

    return "".join(f"{h:08x}" for h in (h0, h1, h2, h3, h4))


def content_hash(message: str) -> str:
    try:
        return hashlib.sha1(message.encode("utf-8"), usedforsecurity=False).hexdigest()
    except ValueError:
        logger.debug("hashlib refused sha1, using the pure-Python digest")
        return sha1_hex(message)
