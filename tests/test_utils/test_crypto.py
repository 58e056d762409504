"""Tests for the address envelope cipher."""

from __future__ import annotations

import json

import pytest

from token_custody.errors.custody_errors import DecryptionError
from token_custody.utils.crypto import NONCE_SIZE, TAG_SIZE, Envelope, EnvelopeCipher, sha256

_ADDRESS = "9xQeWvG816bUx9EPjHmaT23yvVM2ZWbrrpZb9PusVFin"


class TestSha256:
    def test_known_vector(self) -> None:
        assert sha256(b"abc").hex() == (
            "ba7816bf8f01cfea414140de5dae2223b00361a396177a9cb410ff61f20015ad"
        )


class TestEnvelopeCipher:
    def test_round_trip(self) -> None:
        cipher = EnvelopeCipher("secret")
        assert cipher.decrypt(cipher.encrypt(_ADDRESS)) == _ADDRESS

    def test_envelope_shape(self) -> None:
        sealed = EnvelopeCipher("secret").encrypt(_ADDRESS)
        assert set(json.loads(sealed)) == {"iv", "content", "tag"}
        env = Envelope.loads(sealed)
        assert len(env.iv) == NONCE_SIZE
        assert len(env.tag) == TAG_SIZE
        assert _ADDRESS.encode() not in env.content

    def test_fresh_nonce_per_call(self) -> None:
        cipher = EnvelopeCipher("secret")
        assert cipher.encrypt(_ADDRESS) != cipher.encrypt(_ADDRESS)

    def test_empty_key_rejected(self) -> None:
        with pytest.raises(ValueError, match="encryption key"):
            EnvelopeCipher("")

    def test_wrong_key(self) -> None:
        sealed = EnvelopeCipher("one").encrypt(_ADDRESS)
        with pytest.raises(DecryptionError):
            EnvelopeCipher("two").decrypt(sealed)

    def test_tampered_content(self) -> None:
        cipher = EnvelopeCipher("secret")
        env = Envelope.loads(cipher.encrypt(_ADDRESS))
        flipped = bytes([env.content[0] ^ 1]) + env.content[1:]
        tampered = Envelope(iv=env.iv, content=flipped, tag=env.tag).dumps()
        with pytest.raises(DecryptionError):
            cipher.decrypt(tampered)

    @pytest.mark.parametrize(
        "text",
        ["", "not json", "{}", '{"iv": "!!", "content": "", "tag": ""}', "[1, 2]"],
    )
    def test_malformed_envelope(self, text: str) -> None:
        with pytest.raises(DecryptionError):
            EnvelopeCipher("secret").decrypt(text)
