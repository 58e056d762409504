"""Key handling: Base58, Ed25519 keypairs and program-derived addresses.

Provides:
- Base58 encoding/decoding (Solana addresses, signatures, secrets)
- ``Keypair`` for Ed25519 signing (via ``cryptography``)
- Ed25519 curve membership test used by PDA derivation
- ``find_program_address`` / ``associated_token_address``
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING, Self

from cryptography.exceptions import InvalidSignature
from cryptography.hazmat.primitives.asymmetric.ed25519 import (
    Ed25519PrivateKey,
    Ed25519PublicKey,
)
from cryptography.hazmat.primitives.serialization import (
    Encoding,
    NoEncryption,
    PrivateFormat,
    PublicFormat,
)

from token_custody.utils.crypto import sha256

if TYPE_CHECKING:
    from collections.abc import Sequence

PUBKEY_LENGTH = 32
SIGNATURE_LENGTH = 64
MAX_SEED_LENGTH = 32
MAX_SEEDS = 16

SYSTEM_PROGRAM_ID = "11111111111111111111111111111111"
TOKEN_PROGRAM_ID = "TokenkegQfeZyiNwAJbNbGKPFXCWuBvf9Ss623VQ5DA"
ASSOCIATED_TOKEN_PROGRAM_ID = "ATokenGPvbdGVxr1b2hvZbsiqW5xWH25efTNsLJA8knL"

_PDA_MARKER = b"ProgramDerivedAddress"

# ---------------------------------------------------------------------------
# Base58 encoding (Bitcoin alphabet, used by Solana)
# ---------------------------------------------------------------------------

_B58_ALPHABET = b"123456789ABCDEFGHJKLMNPQRSTUVWXYZabcdefghijkmnopqrstuvwxyz"


def base58_encode(payload: bytes) -> str:
    """Encode raw bytes to Base58."""
    n = int.from_bytes(payload, "big")
    result: list[int] = []
    while n > 0:
        n, remainder = divmod(n, 58)
        result.append(_B58_ALPHABET[remainder])
    # Preserve leading zero bytes
    for byte in payload:
        if byte == 0:
            result.append(_B58_ALPHABET[0])
        else:
            break
    return bytes(reversed(result)).decode("ascii")


def base58_decode(s: str) -> bytes:
    """Decode a Base58 string to raw bytes.

    Raises:
        ValueError: If *s* contains a character outside the alphabet.
    """
    n = 0
    for char in s:
        digit = _B58_ALPHABET.find(char.encode("ascii", errors="replace"))
        if digit < 0:
            msg = f"Invalid base58 character: {char!r}"
            raise ValueError(msg)
        n = n * 58 + digit
    result = n.to_bytes((n.bit_length() + 7) // 8, "big") if n > 0 else b""
    # Leading '1' chars are 0x00 bytes
    pad_count = len(s) - len(s.lstrip("1"))
    return b"\x00" * pad_count + result


def decode_pubkey(address: str) -> bytes:
    """Decode a Base58 address into its 32 raw bytes.

    Raises:
        ValueError: If the address does not decode to 32 bytes.
    """
    raw = base58_decode(address)
    if len(raw) != PUBKEY_LENGTH:
        msg = f"Address must decode to {PUBKEY_LENGTH} bytes, got {len(raw)}"
        raise ValueError(msg)
    return raw


# ---------------------------------------------------------------------------
# Ed25519
# ---------------------------------------------------------------------------

_P = 2**255 - 19
_D = (-121665 * pow(121666, -1, _P)) % _P


def is_on_curve(point: bytes) -> bool:
    """Check whether 32 bytes decompress to a point on the Ed25519 curve."""
    if len(point) != PUBKEY_LENGTH:
        return False
    y = int.from_bytes(point, "little") & ((1 << 255) - 1)
    if y >= _P:
        return False
    y2 = y * y % _P
    u = (y2 - 1) % _P
    v = (_D * y2 + 1) % _P
    x2 = u * pow(v, -1, _P) % _P
    if x2 == 0:
        return True
    return pow(x2, (_P - 1) // 2, _P) == 1


def verify_signature(public_key: bytes, message: bytes, signature: bytes) -> bool:
    """Verify an Ed25519 signature over *message*."""
    if len(public_key) != PUBKEY_LENGTH or len(signature) != SIGNATURE_LENGTH:
        return False
    try:
        Ed25519PublicKey.from_public_bytes(public_key).verify(signature, message)
    except (InvalidSignature, ValueError):
        return False
    return True


@dataclass(frozen=True)
class Keypair:
    """An Ed25519 signing keypair.

    Attributes:
        seed: 32-byte private seed.
        public_key: 32-byte public key.
    """

    seed: bytes
    public_key: bytes

    @classmethod
    def generate(cls) -> Self:
        """Create a fresh random keypair."""
        private = Ed25519PrivateKey.generate()
        seed = private.private_bytes(Encoding.Raw, PrivateFormat.Raw, NoEncryption())
        return cls.from_seed(seed)

    @classmethod
    def from_seed(cls, seed: bytes) -> Self:
        """Derive a keypair from a 32-byte seed."""
        if len(seed) != 32:
            msg = f"Seed must be 32 bytes, got {len(seed)}"
            raise ValueError(msg)
        private = Ed25519PrivateKey.from_private_bytes(seed)
        public = private.public_key().public_bytes(Encoding.Raw, PublicFormat.Raw)
        return cls(seed=seed, public_key=public)

    @classmethod
    def from_secret_key(cls, secret: bytes) -> Self:
        """Load a 64-byte ``seed || public_key`` secret, or a bare 32-byte seed.

        Raises:
            ValueError: If the length is wrong or the embedded public key
                does not match the seed.
        """
        if len(secret) == 32:
            return cls.from_seed(secret)
        if len(secret) != 64:
            msg = f"Secret key must be 32 or 64 bytes, got {len(secret)}"
            raise ValueError(msg)
        kp = cls.from_seed(secret[:32])
        if kp.public_key != secret[32:]:
            msg = "Secret key public half does not match its seed"
            raise ValueError(msg)
        return kp

    @classmethod
    def from_base58(cls, secret: str) -> Self:
        """Load a Base58-encoded secret key."""
        return cls.from_secret_key(base58_decode(secret))

    @property
    def address(self) -> str:
        """Base58 public key."""
        return base58_encode(self.public_key)

    def secret_key(self) -> bytes:
        """Return the 64-byte ``seed || public_key`` form."""
        return self.seed + self.public_key

    def sign(self, message: bytes) -> bytes:
        """Sign *message* and return the 64-byte signature."""
        return Ed25519PrivateKey.from_private_bytes(self.seed).sign(message)

    def __repr__(self) -> str:
        return f"Keypair(address={self.address!r})"


# ---------------------------------------------------------------------------
# Program-derived addresses
# ---------------------------------------------------------------------------


def create_program_address(seeds: Sequence[bytes], program_id: bytes) -> bytes:
    """Hash *seeds* into an address owned by *program_id*.

    Raises:
        ValueError: If a seed is too long or the result lies on the curve.
    """
    if len(seeds) > MAX_SEEDS:
        msg = f"At most {MAX_SEEDS} seeds allowed"
        raise ValueError(msg)
    for seed in seeds:
        if len(seed) > MAX_SEED_LENGTH:
            msg = f"Seed longer than {MAX_SEED_LENGTH} bytes"
            raise ValueError(msg)
    digest = sha256(b"".join(seeds) + program_id + _PDA_MARKER)
    if is_on_curve(digest):
        msg = "Derived address lies on the Ed25519 curve"
        raise ValueError(msg)
    return digest


def find_program_address(seeds: Sequence[bytes], program_id: bytes) -> tuple[bytes, int]:
    """Find the first off-curve address for *seeds*, trying bumps 255 down to 0.

    Returns:
        ``(address, bump)``.
    """
    for bump in range(255, -1, -1):
        try:
            return create_program_address([*seeds, bytes([bump])], program_id), bump
        except ValueError:
            continue
    msg = "Unable to find a viable program address bump seed"
    raise ValueError(msg)


def associated_token_address(owner: bytes, mint: bytes) -> bytes:
    """Return the associated token account of *owner* for *mint*."""
    address, _ = find_program_address(
        [owner, decode_pubkey(TOKEN_PROGRAM_ID), mint],
        decode_pubkey(ASSOCIATED_TOKEN_PROGRAM_ID),
    )
    return address
