"""
Theurgy Wallet - SOL and token balances, devnet airdrops.

Commands:
- airdrop: Request SOL for the actor (devnet/testnet/localnet)
- balance: Show the SOL balance, or a token balance with --mint
"""

from __future__ import annotations

import sys
from decimal import Decimal
from pathlib import Path
from typing import Optional

import click
from spl.token.instructions import get_associated_token_address

from ..errors import ResourceNotFound, SequencerError
from ..pneuma.cluster import Commitment, report_link
from ..pneuma.rpc import Ledger
from ..pneuma.token import read_mint_decimals
from ..utils import from_minor_units
from .common import fail, ledger_options, load_actor, make_ledger, parse_pubkey

LAMPORTS_PER_SOL = 1_000_000_000


def request_airdrop(
    ledger: Ledger,
    address,
    sol: Decimal,
    commitment: Commitment,
) -> str:
    """Request an airdrop and wait for it to land.  Returns the signature."""
    lamports = int(sol * LAMPORTS_PER_SOL)
    signature = ledger.request_airdrop(address, lamports)
    ledger.confirm_transaction(signature, commitment)
    return signature


@click.command()
@click.option("--sol", type=Decimal, default=Decimal(1), show_default=True, help="Amount of SOL")
@ledger_options
def airdrop(
    sol: Decimal,
    cluster: str,
    rpc_url: Optional[str],
    commitment: str,
    keypair_path: Optional[Path],
) -> None:
    """Request SOL for the actor from the cluster faucet."""
    if cluster == "mainnet-beta":
        click.secho("ERROR: airdrops are not available on mainnet-beta", fg="red")
        sys.exit(1)

    actor = load_actor(keypair_path)
    ledger = make_ledger(cluster, rpc_url, commitment)
    click.echo(f"Requesting {sol} SOL for {actor.pubkey()}...")
    try:
        signature = request_airdrop(ledger, actor.pubkey(), sol, Commitment(commitment))
        balance = ledger.get_balance(actor.pubkey())
    except SequencerError as exc:
        fail(exc)

    click.secho(f"  Airdrop confirmed: {signature}", fg="green")
    click.echo(f"  Link:    {report_link('transaction', signature, cluster)}")
    click.echo(f"  Balance: {Decimal(balance) / LAMPORTS_PER_SOL} SOL")


@click.command()
@click.option("--mint", default=None, help="Token mint; omit for the SOL balance")
@click.option("--owner", default=None, help="Wallet to inspect (default: actor)")
@ledger_options
def balance(
    mint: Optional[str],
    owner: Optional[str],
    cluster: str,
    rpc_url: Optional[str],
    commitment: str,
    keypair_path: Optional[Path],
) -> None:
    """Show a SOL or token balance."""
    wallet = parse_pubkey(owner, "owner") if owner else load_actor(keypair_path).pubkey()
    ledger = make_ledger(cluster, rpc_url, commitment)

    try:
        if mint is None:
            lamports = ledger.get_balance(wallet)
            click.echo(f"{wallet}: {Decimal(lamports) / LAMPORTS_PER_SOL} SOL")
            return

        mint_key = parse_pubkey(mint, "mint")
        decimals = read_mint_decimals(ledger, mint_key)
        account = get_associated_token_address(wallet, mint_key)
        try:
            raw = ledger.get_token_account_balance(account)
        except ResourceNotFound:
            raw = 0
    except SequencerError as exc:
        fail(exc)

    click.echo(f"{wallet}: {from_minor_units(raw, decimals):f} ({raw} minor units)")
    click.echo(f"  Token account: {account}")
    click.echo(f"  Link: {report_link('address', str(account), cluster)}")
