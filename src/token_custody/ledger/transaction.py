"""Transaction serialisation for Solana legacy transactions.

Provides pure-Python wire encoding and decoding:
- compact-u16 length prefixes
- ``Instruction`` / ``AccountMeta`` (uncompiled form)
- ``Message`` compilation, serialize / deserialize
- ``Transaction`` signature slots, partial signing and txid
"""

from __future__ import annotations

import base64
import binascii
from dataclasses import dataclass, field
from io import BytesIO
from typing import TYPE_CHECKING

from token_custody.ledger.keys import (
    PUBKEY_LENGTH,
    SIGNATURE_LENGTH,
    base58_encode,
    verify_signature,
)

if TYPE_CHECKING:
    from collections.abc import Sequence

    from token_custody.ledger.keys import Keypair

EMPTY_SIGNATURE = b"\x00" * SIGNATURE_LENGTH

# Wire size ceiling of one transaction packet
PACKET_DATA_SIZE = 1232

# ---------------------------------------------------------------------------
# compact-u16 encoding / decoding
# ---------------------------------------------------------------------------


def encode_compact_u16(n: int) -> bytes:
    """Encode an integer in Solana's compact-u16 (ShortVec) form."""
    if not 0 <= n <= 0xFFFF:
        msg = f"compact-u16 out of range: {n}"
        raise ValueError(msg)
    out = bytearray()
    while True:
        byte = n & 0x7F
        n >>= 7
        if n:
            out.append(byte | 0x80)
        else:
            out.append(byte)
            return bytes(out)


def read_compact_u16(stream: BytesIO) -> int:
    """Read a compact-u16 from a byte stream."""
    value = 0
    for shift in (0, 7, 14):
        raw = stream.read(1)
        if not raw:
            msg = "Unexpected end of stream reading compact-u16"
            raise ValueError(msg)
        byte = raw[0]
        value |= (byte & 0x7F) << shift
        if not byte & 0x80:
            if value > 0xFFFF:
                break
            return value
    msg = "Invalid compact-u16 encoding"
    raise ValueError(msg)


def _read_exact(stream: BytesIO, size: int, what: str) -> bytes:
    data = stream.read(size)
    if len(data) != size:
        msg = f"Unexpected end of stream reading {what}"
        raise ValueError(msg)
    return data


# ---------------------------------------------------------------------------
# Instructions
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class AccountMeta:
    """An account referenced by an instruction."""

    pubkey: bytes
    is_signer: bool
    is_writable: bool


@dataclass(frozen=True)
class Instruction:
    """An uncompiled instruction: program, accounts and opaque data."""

    program_id: bytes
    accounts: tuple[AccountMeta, ...]
    data: bytes


@dataclass
class CompiledInstruction:
    """An instruction whose keys are indices into ``Message.account_keys``."""

    program_id_index: int
    accounts: list[int]
    data: bytes

    def serialize(self) -> bytes:
        """Serialize the instruction to bytes."""
        result = bytes([self.program_id_index])
        result += encode_compact_u16(len(self.accounts)) + bytes(self.accounts)
        result += encode_compact_u16(len(self.data)) + self.data
        return result

    @classmethod
    def deserialize(cls, stream: BytesIO) -> CompiledInstruction:
        """Deserialize an instruction from a byte stream."""
        program_id_index = _read_exact(stream, 1, "program index")[0]
        accounts = list(_read_exact(stream, read_compact_u16(stream), "account indices"))
        data = _read_exact(stream, read_compact_u16(stream), "instruction data")
        return cls(program_id_index=program_id_index, accounts=accounts, data=data)


# ---------------------------------------------------------------------------
# Message
# ---------------------------------------------------------------------------


@dataclass
class Message:
    """A legacy transaction message.

    Attributes:
        num_required_signatures: Leading account keys that must sign.
        num_readonly_signed: Trailing read-only keys among the signers.
        num_readonly_unsigned: Trailing read-only keys among the non-signers.
        account_keys: Ordered 32-byte account keys.
        recent_blockhash: 32-byte blockhash bounding the transaction lifetime.
        instructions: Compiled instructions.
    """

    num_required_signatures: int
    num_readonly_signed: int
    num_readonly_unsigned: int
    account_keys: list[bytes]
    recent_blockhash: bytes
    instructions: list[CompiledInstruction] = field(default_factory=list)

    @classmethod
    def compile(
        cls,
        fee_payer: bytes,
        instructions: Sequence[Instruction],
        recent_blockhash: bytes,
    ) -> Message:
        """Order and deduplicate accounts, then compile *instructions*.

        The fee payer is always the first writable signer. Remaining keys
        follow in first-seen order within the groups: writable signers,
        read-only signers, writable non-signers, read-only non-signers.
        """
        flags: dict[bytes, list[bool]] = {fee_payer: [True, True]}
        for ix in instructions:
            for meta in ix.accounts:
                entry = flags.setdefault(meta.pubkey, [False, False])
                entry[0] = entry[0] or meta.is_signer
                entry[1] = entry[1] or meta.is_writable
            flags.setdefault(ix.program_id, [False, False])

        def group(signer: bool, writable: bool) -> list[bytes]:
            return [k for k, (s, w) in flags.items() if s == signer and w == writable]

        writable_signed = group(True, True)
        readonly_signed = group(True, False)
        writable_unsigned = group(False, True)
        readonly_unsigned = group(False, False)
        keys = writable_signed + readonly_signed + writable_unsigned + readonly_unsigned
        index = {k: i for i, k in enumerate(keys)}

        compiled = [
            CompiledInstruction(
                program_id_index=index[ix.program_id],
                accounts=[index[m.pubkey] for m in ix.accounts],
                data=ix.data,
            )
            for ix in instructions
        ]
        return cls(
            num_required_signatures=len(writable_signed) + len(readonly_signed),
            num_readonly_signed=len(readonly_signed),
            num_readonly_unsigned=len(readonly_unsigned),
            account_keys=keys,
            recent_blockhash=recent_blockhash,
            instructions=compiled,
        )

    @property
    def fee_payer(self) -> bytes:
        """The first account key, which pays the fee."""
        return self.account_keys[0]

    @property
    def signer_keys(self) -> list[bytes]:
        """Keys that must provide a signature, in signature-slot order."""
        return self.account_keys[: self.num_required_signatures]

    def serialize(self) -> bytes:
        """Serialize the message to bytes (the data every signer signs)."""
        result = bytes(
            [self.num_required_signatures, self.num_readonly_signed, self.num_readonly_unsigned]
        )
        result += encode_compact_u16(len(self.account_keys))
        result += b"".join(self.account_keys)
        result += self.recent_blockhash
        result += encode_compact_u16(len(self.instructions))
        for ix in self.instructions:
            result += ix.serialize()
        return result

    @classmethod
    def deserialize(cls, stream: BytesIO) -> Message:
        """Deserialize a message from a byte stream."""
        header = _read_exact(stream, 3, "message header")
        if header[0] & 0x80:
            msg = "Versioned transactions are not supported"
            raise ValueError(msg)
        n_keys = read_compact_u16(stream)
        keys = [_read_exact(stream, PUBKEY_LENGTH, "account key") for _ in range(n_keys)]
        blockhash = _read_exact(stream, PUBKEY_LENGTH, "recent blockhash")
        n_ix = read_compact_u16(stream)
        instructions = [CompiledInstruction.deserialize(stream) for _ in range(n_ix)]
        if header[0] > n_keys:
            msg = "Header requires more signers than there are account keys"
            raise ValueError(msg)
        return cls(
            num_required_signatures=header[0],
            num_readonly_signed=header[1],
            num_readonly_unsigned=header[2],
            account_keys=keys,
            recent_blockhash=blockhash,
            instructions=instructions,
        )


# ---------------------------------------------------------------------------
# Transaction
# ---------------------------------------------------------------------------


@dataclass
class Transaction:
    """A signed (or partially signed) legacy transaction.

    Attributes:
        message: The compiled message.
        signatures: One 64-byte slot per required signer; an all-zero slot
            is a missing signature.
    """

    message: Message
    signatures: list[bytes] = field(default_factory=list)

    def __post_init__(self) -> None:
        if not self.signatures:
            self.signatures = [EMPTY_SIGNATURE] * self.message.num_required_signatures

    @classmethod
    def new(
        cls,
        fee_payer: bytes,
        instructions: Sequence[Instruction],
        recent_blockhash: bytes,
    ) -> Transaction:
        """Build an unsigned transaction."""
        return cls(message=Message.compile(fee_payer, instructions, recent_blockhash))

    # -- signing -----------------------------------------------------------

    def message_bytes(self) -> bytes:
        """Return the serialized message that signers sign."""
        return self.message.serialize()

    def _slot_of(self, public_key: bytes) -> int:
        try:
            return self.message.signer_keys.index(public_key)
        except ValueError:
            msg = f"{base58_encode(public_key)} is not a required signer"
            raise ValueError(msg) from None

    def sign(self, *keypairs: Keypair) -> None:
        """Fill the signature slots of *keypairs*, leaving others untouched."""
        data = self.message_bytes()
        for kp in keypairs:
            self.signatures[self._slot_of(kp.public_key)] = kp.sign(data)

    def add_signature(self, public_key: bytes, signature: bytes) -> None:
        """Attach an externally produced signature for *public_key*.

        Raises:
            ValueError: If the key is not a signer or the signature is invalid.
        """
        slot = self._slot_of(public_key)
        if not verify_signature(public_key, self.message_bytes(), signature):
            msg = "Signature does not verify against the transaction message"
            raise ValueError(msg)
        self.signatures[slot] = signature

    @property
    def required_signers(self) -> int:
        """Number of signatures the message requires."""
        return self.message.num_required_signatures

    @property
    def signature_count(self) -> int:
        """Number of filled signature slots."""
        return sum(1 for sig in self.signatures if sig != EMPTY_SIGNATURE)

    def missing_signers(self) -> list[str]:
        """Base58 keys whose slot is still empty."""
        return [
            base58_encode(key)
            for key, sig in zip(self.message.signer_keys, self.signatures, strict=True)
            if sig == EMPTY_SIGNATURE
        ]

    def verify_signatures(self) -> bool:
        """Check every filled slot verifies against its signer key."""
        data = self.message_bytes()
        return all(
            sig == EMPTY_SIGNATURE or verify_signature(key, data, sig)
            for key, sig in zip(self.message.signer_keys, self.signatures, strict=True)
        )

    @property
    def tx_id(self) -> str:
        """Base58 of the fee payer signature, the transaction's identifier."""
        return base58_encode(self.signatures[0])

    # -- wire format -------------------------------------------------------

    def serialize(self) -> bytes:
        """Serialize the transaction to wire bytes."""
        result = encode_compact_u16(len(self.signatures))
        result += b"".join(self.signatures)
        result += self.message.serialize()
        return result

    def to_base64(self) -> str:
        """Serialize to base64 text (the encoding RPC nodes accept)."""
        return base64.b64encode(self.serialize()).decode("ascii")

    @classmethod
    def deserialize(cls, stream: BytesIO) -> Transaction:
        """Deserialize a transaction from a byte stream."""
        n_sigs = read_compact_u16(stream)
        signatures = [_read_exact(stream, SIGNATURE_LENGTH, "signature") for _ in range(n_sigs)]
        message = Message.deserialize(stream)
        if n_sigs != message.num_required_signatures:
            msg = "Signature count does not match the message header"
            raise ValueError(msg)
        if stream.read(1):
            msg = "Trailing bytes after transaction"
            raise ValueError(msg)
        return cls(message=message, signatures=signatures)

    @classmethod
    def from_bytes(cls, data: bytes) -> Transaction:
        """Deserialize a transaction from raw bytes."""
        return cls.deserialize(BytesIO(data))

    @classmethod
    def from_base64(cls, text: str) -> Transaction:
        """Deserialize a transaction from base64 text.

        Raises:
            ValueError: If the text is not valid base64 or not a transaction.
        """
        try:
            raw = base64.b64decode(text, validate=True)
        except binascii.Error as exc:
            msg = "Transaction is not valid base64"
            raise ValueError(msg) from exc
        return cls.from_bytes(raw)
