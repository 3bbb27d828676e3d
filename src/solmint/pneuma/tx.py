"""
Transaction Builder - Build, sign, and send Solana transactions.

Uses solders for message compilation and signing and the Ledger protocol
for sending.  All fees are paid by the payer keypair.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Sequence

from solders.hash import Hash
from solders.instruction import Instruction
from solders.keypair import Keypair
from solders.message import Message
from solders.pubkey import Pubkey
from solders.transaction import Transaction

from ..errors import TransactionRejected
from .cluster import DEFAULT_COMMITMENT, Commitment
from .rpc import Ledger


@dataclass(frozen=True)
class TransactionSpec:
    """Instructions for one transaction plus any signers besides the payer.

    Attributes:
        instructions: Instructions, executed in order and atomically
        signers: Extra keypairs (e.g. a new mint account) required to sign
        memo: Short human-readable description used in status output
    """

    instructions: tuple[Instruction, ...]
    signers: tuple[Keypair, ...] = field(default_factory=tuple)
    memo: str = ""


def required_signers(instructions: Sequence[Instruction], payer: Pubkey) -> list[Pubkey]:
    """Pubkeys that must sign, fee payer first."""
    keys = [payer]
    for ix in instructions:
        for meta in ix.accounts:
            if meta.is_signer and meta.pubkey not in keys:
                keys.append(meta.pubkey)
    return keys


def build_transaction(
    instructions: Sequence[Instruction],
    payer: Keypair,
    signers: Sequence[Keypair],
    blockhash: Hash,
) -> Transaction:
    """
    Compile and sign a transaction.

    Args:
        instructions: Instructions to include
        payer: Fee payer keypair (always signs)
        signers: Additional keypairs; only those the instructions need are used
        blockhash: Recent blockhash

    Returns:
        Signed Transaction

    Raises:
        TransactionRejected: If a required signature is not available
    """
    if not instructions:
        raise ValueError("A transaction needs at least one instruction")

    available = {kp.pubkey(): kp for kp in [payer, *signers]}
    needed = required_signers(instructions, payer.pubkey())
    missing = [str(key) for key in needed if key not in available]
    if missing:
        raise TransactionRejected(
            f"Missing signature for required signer(s): {', '.join(missing)}"
        )

    message = Message.new_with_blockhash(list(instructions), payer.pubkey(), blockhash)
    return Transaction([available[key] for key in needed], message, blockhash)


def sign_and_send(
    ledger: Ledger,
    spec: TransactionSpec,
    payer: Keypair,
    commitment: Commitment = DEFAULT_COMMITMENT,
) -> str:
    """
    Sign a transaction, send it, and wait for confirmation.

    Args:
        ledger: Ledger to submit to
        spec: Instructions and extra signers
        payer: Fee payer keypair
        commitment: Commitment to wait for

    Returns:
        Transaction signature (base58)
    """
    blockhash = ledger.get_latest_blockhash()
    tx = build_transaction(spec.instructions, payer, spec.signers, blockhash)
    signature = ledger.send_transaction(tx)
    ledger.confirm_transaction(signature, commitment)
    return signature
