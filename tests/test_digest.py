import hashlib

import pytest

from modules import digest

REFERENCE = {
    "": "da39a3ee5e6b4b0d3255bfef95601890afd80709",
    "abc": "a9993e364706816aba3e25717850c26c9cd0d89d",
    "abcdbcdecdefdefgefghfghighijhijkijkljklmklmnlmnomnopnopq": "84983e441c3bd26ebaae4aa1f95129e5e54670f1",
}


@pytest.mark.parametrize(("message", "expected"), REFERENCE.items())
def test_fallback_matches_reference_vectors(message, expected) -> None:
    assert digest.sha1_hex(message) == expected
    assert digest.content_hash(message) == expected


@pytest.mark.parametrize("size", [55, 56, 63, 64, 65, 1000])
def test_fallback_matches_hashlib_across_block_boundaries(size) -> None:
    message = "é" * (size // 2) + "x" * (size % 2)
    assert digest.sha1_hex(message) == hashlib.sha1(message.encode("utf-8")).hexdigest()


def test_content_hash_falls_back_when_platform_refuses(monkeypatch) -> None:
    def refuse(*_args, **_kwargs):
        raise ValueError("unsupported hash type sha1")

    monkeypatch.setattr(digest.hashlib, "sha1", refuse)

    assert digest.content_hash("abc") == REFERENCE["abc"]
