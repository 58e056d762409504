"""Cryptographic helpers: hashing and the at-rest address envelope.

Recipient addresses are stored as a JSON envelope ``{"iv", "content", "tag"}``
with each field base64 encoded, sealed with AES-256-GCM under a key derived
from the configured ``encryption_key``.
"""

from __future__ import annotations

import base64
import binascii
import hashlib
import json
import os
from dataclasses import dataclass

from cryptography.exceptions import InvalidTag
from cryptography.hazmat.primitives.ciphers.aead import AESGCM

from token_custody.errors.custody_errors import DecryptionError

NONCE_SIZE = 12
TAG_SIZE = 16


def sha256(data: bytes) -> bytes:
    """Single SHA-256 hash."""
    return hashlib.sha256(data).digest()


@dataclass(frozen=True)
class Envelope:
    """One sealed value: nonce, ciphertext and GCM authentication tag."""

    iv: bytes
    content: bytes
    tag: bytes

    def dumps(self) -> str:
        """Serialize to the JSON text stored in the database."""
        return json.dumps(
            {
                "iv": base64.b64encode(self.iv).decode("ascii"),
                "content": base64.b64encode(self.content).decode("ascii"),
                "tag": base64.b64encode(self.tag).decode("ascii"),
            },
            separators=(",", ":"),
        )

    @classmethod
    def loads(cls, text: str) -> Envelope:
        """Parse the stored JSON text.

        Raises:
            DecryptionError: If the text is not a well-formed envelope.
        """
        try:
            raw = json.loads(text)
            return cls(
                iv=base64.b64decode(raw["iv"], validate=True),
                content=base64.b64decode(raw["content"], validate=True),
                tag=base64.b64decode(raw["tag"], validate=True),
            )
        except (ValueError, TypeError, KeyError, binascii.Error) as exc:
            msg = "malformed encryption envelope"
            raise DecryptionError(msg) from exc


class EnvelopeCipher:
    """AES-256-GCM sealing of short strings such as wallet addresses."""

    def __init__(self, key: str) -> None:
        if not key:
            msg = "encryption key must not be empty"
            raise ValueError(msg)
        self._aead = AESGCM(sha256(key.encode("utf-8")))

    def encrypt(self, plaintext: str) -> str:
        """Seal *plaintext* under a fresh random nonce.

        Returns:
            The serialized envelope.
        """
        iv = os.urandom(NONCE_SIZE)
        sealed = self._aead.encrypt(iv, plaintext.encode("utf-8"), None)
        return Envelope(iv=iv, content=sealed[:-TAG_SIZE], tag=sealed[-TAG_SIZE:]).dumps()

    def decrypt(self, envelope: str) -> str:
        """Open a serialized envelope.

        Raises:
            DecryptionError: On tampering, truncation or a key mismatch.
        """
        env = Envelope.loads(envelope)
        if len(env.iv) != NONCE_SIZE or len(env.tag) != TAG_SIZE:
            msg = "malformed encryption envelope"
            raise DecryptionError(msg)
        try:
            plain = self._aead.decrypt(env.iv, env.content + env.tag, None)
        except InvalidTag as exc:
            raise DecryptionError from exc
        return plain.decode("utf-8")
