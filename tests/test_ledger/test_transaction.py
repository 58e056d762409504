"""Tests for the legacy transaction wire codec and SPL instructions."""

from __future__ import annotations

import os
import struct
from decimal import Decimal
from io import BytesIO

import pytest

from token_custody.ledger.client import build_transfer_instructions, to_base_units
from token_custody.ledger.instructions import CREATE_IDEMPOTENT, TRANSFER_CHECKED, transfer_checked
from token_custody.ledger.keys import (
    ASSOCIATED_TOKEN_PROGRAM_ID,
    TOKEN_PROGRAM_ID,
    Keypair,
    decode_pubkey,
)
from token_custody.ledger.transaction import (
    EMPTY_SIGNATURE,
    Transaction,
    encode_compact_u16,
    read_compact_u16,
)

# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _transfer_tx(fee_payer: Keypair, owner: Keypair, amount: int = 1_500_000_000) -> Transaction:
    mint = Keypair.generate().public_key
    recipient = Keypair.generate().public_key
    return Transaction.new(
        fee_payer.public_key,
        build_transfer_instructions(
            fee_payer=fee_payer.public_key,
            owner=owner.public_key,
            recipient=recipient,
            mint=mint,
            amount=amount,
            decimals=9,
        ),
        os.urandom(32),
    )


# ---------------------------------------------------------------------------
# compact-u16
# ---------------------------------------------------------------------------


class TestCompactU16:
    @pytest.mark.parametrize(
        ("value", "encoded"),
        [
            (0, b"\x00"),
            (0x7F, b"\x7f"),
            (0x80, b"\x80\x01"),
            (0x3FFF, b"\xff\x7f"),
            (0x4000, b"\x80\x80\x01"),
            (0xFFFF, b"\xff\xff\x03"),
        ],
    )
    def test_encode_decode(self, value: int, encoded: bytes) -> None:
        assert encode_compact_u16(value) == encoded
        assert read_compact_u16(BytesIO(encoded)) == value

    def test_out_of_range(self) -> None:
        with pytest.raises(ValueError, match="out of range"):
            encode_compact_u16(0x10000)

    def test_truncated(self) -> None:
        with pytest.raises(ValueError, match="Unexpected end"):
            read_compact_u16(BytesIO(b"\x80"))


# ---------------------------------------------------------------------------
# Instructions
# ---------------------------------------------------------------------------


class TestInstructions:
    def test_transfer_checked_layout(self) -> None:
        keys = [Keypair.generate().public_key for _ in range(4)]
        ix = transfer_checked(
            source=keys[0], mint=keys[1], destination=keys[2], owner=keys[3], amount=42, decimals=6
        )
        assert ix.program_id == decode_pubkey(TOKEN_PROGRAM_ID)
        assert ix.data == struct.pack("<BQB", TRANSFER_CHECKED, 42, 6)
        assert [m.is_signer for m in ix.accounts] == [False, False, False, True]

    def test_transfer_checked_rejects_zero(self) -> None:
        key = Keypair.generate().public_key
        with pytest.raises(ValueError, match="u64"):
            transfer_checked(
                source=key, mint=key, destination=key, owner=key, amount=0, decimals=9
            )

    def test_transfer_creates_recipient_account_first(self) -> None:
        payer = Keypair.generate().public_key
        ixs = build_transfer_instructions(
            fee_payer=payer,
            owner=Keypair.generate().public_key,
            recipient=Keypair.generate().public_key,
            mint=Keypair.generate().public_key,
            amount=1,
            decimals=9,
        )
        assert ixs[0].program_id == decode_pubkey(ASSOCIATED_TOKEN_PROGRAM_ID)
        assert ixs[0].data == bytes([CREATE_IDEMPOTENT])
        assert ixs[0].accounts[0].pubkey == payer
        assert ixs[1].program_id == decode_pubkey(TOKEN_PROGRAM_ID)

    def test_to_base_units(self) -> None:
        assert to_base_units(Decimal("1.5"), 9) == 1_500_000_000
        assert to_base_units(Decimal("2"), 0) == 2
        with pytest.raises(ValueError, match="decimal places"):
            to_base_units(Decimal("0.001"), 2)


# ---------------------------------------------------------------------------
# Transaction
# ---------------------------------------------------------------------------


class TestTransaction:
    def test_two_signers_fee_payer_first(self) -> None:
        fee_payer, owner = Keypair.generate(), Keypair.generate()
        tx = _transfer_tx(fee_payer, owner)
        assert tx.required_signers == 2
        assert tx.message.fee_payer == fee_payer.public_key
        assert tx.message.signer_keys == [fee_payer.public_key, owner.public_key]
        assert tx.signatures == [EMPTY_SIGNATURE, EMPTY_SIGNATURE]

    def test_partial_sign(self) -> None:
        fee_payer, owner = Keypair.generate(), Keypair.generate()
        tx = _transfer_tx(fee_payer, owner)
        tx.sign(fee_payer)
        assert tx.signature_count == 1
        assert tx.missing_signers() == [owner.address]
        assert tx.verify_signatures()

    def test_add_external_signature(self) -> None:
        fee_payer, owner = Keypair.generate(), Keypair.generate()
        tx = _transfer_tx(fee_payer, owner)
        tx.sign(fee_payer)
        tx.add_signature(owner.public_key, owner.sign(tx.message_bytes()))
        assert tx.signature_count == tx.required_signers
        assert tx.missing_signers() == []
        assert tx.verify_signatures()

    def test_add_signature_rejects_bad_signature(self) -> None:
        fee_payer, owner = Keypair.generate(), Keypair.generate()
        tx = _transfer_tx(fee_payer, owner)
        with pytest.raises(ValueError, match="does not verify"):
            tx.add_signature(owner.public_key, owner.sign(b"something else"))

    def test_add_signature_rejects_non_signer(self) -> None:
        fee_payer, owner, stranger = Keypair.generate(), Keypair.generate(), Keypair.generate()
        tx = _transfer_tx(fee_payer, owner)
        with pytest.raises(ValueError, match="not a required signer"):
            tx.add_signature(stranger.public_key, stranger.sign(tx.message_bytes()))

    def test_sign_non_signer(self) -> None:
        tx = _transfer_tx(Keypair.generate(), Keypair.generate())
        with pytest.raises(ValueError, match="not a required signer"):
            tx.sign(Keypair.generate())

    def test_wire_round_trip_keeps_signatures(self) -> None:
        fee_payer, owner = Keypair.generate(), Keypair.generate()
        tx = _transfer_tx(fee_payer, owner)
        tx.sign(fee_payer)
        decoded = Transaction.from_base64(tx.to_base64())
        assert decoded.message == tx.message
        assert decoded.signatures == tx.signatures
        assert decoded.tx_id == tx.tx_id
        assert decoded.verify_signatures()

    def test_tampered_message_fails_verification(self) -> None:
        fee_payer, owner = Keypair.generate(), Keypair.generate()
        tx = _transfer_tx(fee_payer, owner)
        tx.sign(fee_payer)
        raw = bytearray(tx.serialize())
        raw[-1] ^= 0xFF  # last byte of the transfer instruction data
        assert not Transaction.from_bytes(bytes(raw)).verify_signatures()

    @pytest.mark.parametrize("text", ["not base64!!", "AAAA", ""])
    def test_from_base64_rejects_garbage(self, text: str) -> None:
        with pytest.raises(ValueError):
            Transaction.from_base64(text)

    def test_trailing_bytes_rejected(self) -> None:
        tx = _transfer_tx(Keypair.generate(), Keypair.generate())
        with pytest.raises(ValueError, match="Trailing"):
            Transaction.from_bytes(tx.serialize() + b"\x00")
