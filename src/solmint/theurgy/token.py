"""
Theurgy Token - fungible SPL token operations.

Commands:
- create-mint:           Create a new token mint owned by the actor
- create-token-account:  Resolve or create an associated token account
- create-token-metadata: Attach name/symbol/URI metadata to a mint
- mint-tokens:           Mint tokens to a wallet's associated token account
- transfer-token:        Transfer tokens between wallets

Amounts are given in major units ("10" or "1.5") and converted using the
mint's decimals, read from the chain.
"""

from __future__ import annotations

from pathlib import Path
from typing import Optional

import click

from ..errors import SequencerError
from ..flows import (
    create_mint_steps,
    create_token_account_steps,
    create_token_metadata_steps,
    mint_tokens_steps,
    transfer_token_steps,
)
from ..pneuma.token import read_mint_decimals
from ..sequencer import ActionSequencer
from ..spec.models import TokenMetadata
from ..utils import to_minor_units
from .common import fail, ledger_options, make_sequencer, parse_pubkey, run_steps


def _minor_amount(sequencer: ActionSequencer, mint, amount: str) -> int:
    try:
        decimals = read_mint_decimals(sequencer.ledger, mint)
        return to_minor_units(amount, decimals)
    except (SequencerError, ValueError) as exc:
        fail(exc)


@click.command("create-mint")
@click.option("--decimals", type=click.IntRange(0, 9), default=2, show_default=True)
@ledger_options
def create_mint(
    decimals: int,
    cluster: str,
    rpc_url: Optional[str],
    commitment: str,
    keypair_path: Optional[Path],
) -> None:
    """Create a token mint with the actor as mint and freeze authority."""
    click.echo("=== Create Mint ===")
    sequencer = make_sequencer(cluster, rpc_url, commitment, keypair_path)
    report = run_steps(sequencer, create_mint_steps(sequencer.payer.pubkey(), decimals))
    click.echo(f"Mint: {report['mint'].address}")


@click.command("create-token-account")
@click.option("--mint", required=True, help="Token mint address")
@click.option("--owner", default=None, help="Account owner (default: actor)")
@ledger_options
def create_token_account(
    mint: str,
    owner: Optional[str],
    cluster: str,
    rpc_url: Optional[str],
    commitment: str,
    keypair_path: Optional[Path],
) -> None:
    """Resolve or create the associated token account of an owner."""
    click.echo("=== Token Account ===")
    mint_key = parse_pubkey(mint, "mint")
    sequencer = make_sequencer(cluster, rpc_url, commitment, keypair_path)
    owner_key = parse_pubkey(owner, "owner") if owner else sequencer.payer.pubkey()
    report = run_steps(sequencer, create_token_account_steps(owner_key, mint_key))
    click.echo(f"Token account: {report['token-account'].address}")


@click.command("create-token-metadata")
@click.option("--mint", required=True, help="Token mint address")
@click.option("--name", required=True, help="Token name (max 32 bytes)")
@click.option("--symbol", required=True, help="Token symbol (max 10 bytes)")
@click.option("--uri", required=True, help="URI of the off-chain JSON metadata")
@click.option("--seller-fee", type=click.IntRange(0, 10_000), default=0, help="Basis points")
@ledger_options
def create_token_metadata(
    mint: str,
    name: str,
    symbol: str,
    uri: str,
    seller_fee: int,
    cluster: str,
    rpc_url: Optional[str],
    commitment: str,
    keypair_path: Optional[Path],
) -> None:
    """Attach metadata to a mint the actor controls."""
    click.echo("=== Token Metadata ===")
    mint_key = parse_pubkey(mint, "mint")
    metadata = TokenMetadata(name=name, symbol=symbol, uri=uri, seller_fee_basis_points=seller_fee)
    sequencer = make_sequencer(cluster, rpc_url, commitment, keypair_path)
    try:
        steps = create_token_metadata_steps(mint_key, sequencer.payer.pubkey(), metadata)
    except ValueError as exc:
        fail(exc)
    report = run_steps(sequencer, steps)
    click.echo(f"Metadata account: {report['metadata'].address}")


@click.command("mint-tokens")
@click.option("--mint", required=True, help="Token mint address")
@click.option("--amount", required=True, help="Amount in major units, e.g. 10 or 2.5")
@click.option("--to", "recipient", default=None, help="Recipient wallet (default: actor)")
@click.option(
    "--create-account/--no-create-account",
    default=True,
    help="Create the recipient's token account if it does not exist",
)
@ledger_options
def mint_tokens(
    mint: str,
    amount: str,
    recipient: Optional[str],
    create_account: bool,
    cluster: str,
    rpc_url: Optional[str],
    commitment: str,
    keypair_path: Optional[Path],
) -> None:
    """Mint tokens to a wallet's associated token account."""
    click.echo("=== Mint Tokens ===")
    mint_key = parse_pubkey(mint, "mint")
    sequencer = make_sequencer(cluster, rpc_url, commitment, keypair_path)
    recipient_key = parse_pubkey(recipient, "recipient") if recipient else sequencer.payer.pubkey()
    raw = _minor_amount(sequencer, mint_key, amount)

    steps = mint_tokens_steps(
        mint_key,
        recipient_key,
        sequencer.payer.pubkey(),
        raw,
        create_account=create_account,
    )
    run_steps(sequencer, steps)
    click.echo(f"Minted {amount} ({raw} minor units) to {recipient_key}")


@click.command("transfer-token")
@click.option("--mint", required=True, help="Token mint address")
@click.option("--to", "recipient", required=True, help="Recipient wallet")
@click.option("--amount", required=True, help="Amount in major units")
@ledger_options
def transfer_token(
    mint: str,
    recipient: str,
    amount: str,
    cluster: str,
    rpc_url: Optional[str],
    commitment: str,
    keypair_path: Optional[Path],
) -> None:
    """Transfer tokens from the actor to another wallet."""
    click.echo("=== Transfer Token ===")
    mint_key = parse_pubkey(mint, "mint")
    recipient_key = parse_pubkey(recipient, "recipient")
    sequencer = make_sequencer(cluster, rpc_url, commitment, keypair_path)
    raw = _minor_amount(sequencer, mint_key, amount)

    steps = transfer_token_steps(mint_key, sequencer.payer.pubkey(), recipient_key, raw)
    run_steps(sequencer, steps)
    click.echo(f"Transferred {amount} ({raw} minor units) to {recipient_key}")
