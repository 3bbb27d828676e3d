"""
SPL Token helpers - mints, associated token accounts, mint and transfer.

Resource keys describe an account by how its address is derived and how it
is created; the sequencer decides whether creation is needed.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Optional

from solders.keypair import Keypair
from solders.pubkey import Pubkey
from solders.system_program import CreateAccountParams, create_account
from spl.token._layouts import MINT_LAYOUT
from spl.token.constants import TOKEN_PROGRAM_ID
from spl.token.instructions import (
    InitializeMintParams,
    MintToParams,
    TransferParams,
    create_associated_token_account,
    get_associated_token_address,
    initialize_mint,
    mint_to,
    transfer,
)

from ..errors import ResourceNotFound
from .rpc import Ledger
from .tx import TransactionSpec

# Size of an SPL Token mint account
MINT_SIZE = MINT_LAYOUT.sizeof()


@dataclass(frozen=True)
class AssociatedTokenAccountKey:
    """The associated token account of (owner, mint)."""

    owner: Pubkey
    mint: Pubkey

    @property
    def label(self) -> str:
        return f"token account of {self.owner} for mint {self.mint}"

    def address(self) -> Pubkey:
        return get_associated_token_address(self.owner, self.mint)

    def creation(self, ledger: Ledger, payer: Pubkey) -> TransactionSpec:
        ix = create_associated_token_account(payer, self.owner, self.mint)
        return TransactionSpec((ix,), memo="Create associated token account")


@dataclass(frozen=True)
class MintKey:
    """A new token mint whose address is the given keypair's public key."""

    mint: Keypair
    decimals: int
    mint_authority: Pubkey
    freeze_authority: Optional[Pubkey] = None

    @property
    def label(self) -> str:
        return f"mint {self.mint.pubkey()}"

    def address(self) -> Pubkey:
        return self.mint.pubkey()

    def creation(self, ledger: Ledger, payer: Pubkey) -> TransactionSpec:
        lamports = ledger.get_minimum_balance_for_rent_exemption(MINT_SIZE)
        create_ix = create_account(
            CreateAccountParams(
                from_pubkey=payer,
                to_pubkey=self.mint.pubkey(),
                lamports=lamports,
                space=MINT_SIZE,
                owner=TOKEN_PROGRAM_ID,
            )
        )
        init_ix = initialize_mint(
            InitializeMintParams(
                decimals=self.decimals,
                program_id=TOKEN_PROGRAM_ID,
                mint=self.mint.pubkey(),
                mint_authority=self.mint_authority,
                freeze_authority=self.freeze_authority,
            )
        )
        return TransactionSpec(
            (create_ix, init_ix),
            signers=(self.mint,),
            memo=f"Create mint ({self.decimals} decimals)",
        )


def mint_to_spec(
    mint: Pubkey,
    destination: Pubkey,
    authority: Pubkey,
    amount: int,
) -> TransactionSpec:
    """Mint ``amount`` minor units into a token account."""
    if amount <= 0:
        raise ValueError("Amount must be positive")
    ix = mint_to(
        MintToParams(
            program_id=TOKEN_PROGRAM_ID,
            mint=mint,
            dest=destination,
            mint_authority=authority,
            amount=amount,
        )
    )
    return TransactionSpec((ix,), memo=f"Mint {amount} minor units")


def transfer_spec(
    source: Pubkey,
    destination: Pubkey,
    owner: Pubkey,
    amount: int,
) -> TransactionSpec:
    """Move ``amount`` minor units between token accounts of the same mint."""
    if amount <= 0:
        raise ValueError("Amount must be positive")
    ix = transfer(
        TransferParams(
            program_id=TOKEN_PROGRAM_ID,
            source=source,
            dest=destination,
            owner=owner,
            amount=amount,
        )
    )
    return TransactionSpec((ix,), memo=f"Transfer {amount} minor units")


def read_mint_decimals(ledger: Ledger, mint: Pubkey) -> int:
    """Decimals of an existing mint, read from its account data."""
    info = ledger.get_account_info(mint)
    if info is None:
        raise ResourceNotFound(f"Mint {mint} not found")
    if info.owner != TOKEN_PROGRAM_ID or len(info.data) < MINT_SIZE:
        raise ResourceNotFound(f"Account {mint} is not a token mint")
    return MINT_LAYOUT.parse(info.data).decimals
