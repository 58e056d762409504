"""SPL token instruction builders."""

from __future__ import annotations

import struct

from token_custody.ledger.keys import (
    ASSOCIATED_TOKEN_PROGRAM_ID,
    SYSTEM_PROGRAM_ID,
    TOKEN_PROGRAM_ID,
    decode_pubkey,
)
from token_custody.ledger.transaction import AccountMeta, Instruction

# SPL token program instruction tags
TRANSFER_CHECKED = 12

# Associated token account program instruction tags
CREATE_IDEMPOTENT = 1


def transfer_checked(
    *,
    source: bytes,
    mint: bytes,
    destination: bytes,
    owner: bytes,
    amount: int,
    decimals: int,
) -> Instruction:
    """Move *amount* base units between token accounts of *mint*.

    Args:
        source: Sender token account.
        mint: Token mint.
        destination: Recipient token account.
        owner: Owner of *source*; must sign.
        amount: Amount in base units (``u64``).
        decimals: Mint decimals, checked on-chain against the mint.
    """
    if not 0 < amount < 2**64:
        msg = f"Amount out of u64 range: {amount}"
        raise ValueError(msg)
    return Instruction(
        program_id=decode_pubkey(TOKEN_PROGRAM_ID),
        accounts=(
            AccountMeta(source, is_signer=False, is_writable=True),
            AccountMeta(mint, is_signer=False, is_writable=False),
            AccountMeta(destination, is_signer=False, is_writable=True),
            AccountMeta(owner, is_signer=True, is_writable=False),
        ),
        data=struct.pack("<BQB", TRANSFER_CHECKED, amount, decimals),
    )


def create_associated_token_account_idempotent(
    *,
    payer: bytes,
    associated_account: bytes,
    owner: bytes,
    mint: bytes,
) -> Instruction:
    """Create *owner*'s token account for *mint* unless it already exists."""
    return Instruction(
        program_id=decode_pubkey(ASSOCIATED_TOKEN_PROGRAM_ID),
        accounts=(
            AccountMeta(payer, is_signer=True, is_writable=True),
            AccountMeta(associated_account, is_signer=False, is_writable=True),
            AccountMeta(owner, is_signer=False, is_writable=False),
            AccountMeta(mint, is_signer=False, is_writable=False),
            AccountMeta(decode_pubkey(SYSTEM_PROGRAM_ID), is_signer=False, is_writable=False),
            AccountMeta(decode_pubkey(TOKEN_PROGRAM_ID), is_signer=False, is_writable=False),
        ),
        data=bytes([CREATE_IDEMPOTENT]),
    )
