"""
Genesis - Create (or load) the actor keypair.

Flow:
1. Load SECRET_KEY from ~/.solmint/.env, generating a keypair if absent
   (or import a solana-keygen file given with --keypair)
2. With --fund, airdrop SOL when the balance is below --min-sol
"""

from __future__ import annotations

import sys
from decimal import Decimal
from pathlib import Path
from typing import Optional

import click

from ..errors import MissingSecret, SequencerError
from ..pneuma.cluster import Commitment, report_link
from ..sigil.keypair import SOLMINT_ENV, ensure_keypair, keypair_from_file, save_keypair
from .common import fail, ledger_options, make_ledger
from .wallet import LAMPORTS_PER_SOL, request_airdrop


@click.command()
@click.option("--fund", is_flag=True, help="Airdrop SOL if the balance is low")
@click.option(
    "--min-sol",
    type=Decimal,
    default=Decimal(1),
    show_default=True,
    help="Balance below which --fund requests an airdrop",
)
@ledger_options
def genesis(
    fund: bool,
    min_sol: Decimal,
    cluster: str,
    rpc_url: Optional[str],
    commitment: str,
    keypair_path: Optional[Path],
) -> None:
    """Create the actor keypair and optionally fund it."""
    click.echo("=== solmint genesis ===")
    click.echo("")

    try:
        if keypair_path is not None:
            keypair, created = keypair_from_file(keypair_path), False
            save_keypair(keypair)
            click.echo(f"  Imported keypair from {keypair_path}")
        else:
            keypair, created = ensure_keypair()
    except MissingSecret as exc:
        click.secho(f"ERROR: {exc}", fg="red")
        click.echo(f"Fix or remove SECRET_KEY in {SOLMINT_ENV}.")
        sys.exit(exc.exit_code)

    if created:
        click.secho(f"  Generated new keypair: {keypair.pubkey()}", fg="green")
        click.echo(f"  Saved to: {SOLMINT_ENV}")
    else:
        click.echo(f"  Loaded keypair: {keypair.pubkey()}")

    if not fund:
        return

    ledger = make_ledger(cluster, rpc_url, commitment)
    try:
        lamports = ledger.get_balance(keypair.pubkey())
        click.echo(f"  Balance: {Decimal(lamports) / LAMPORTS_PER_SOL} SOL")
        if lamports >= min_sol * LAMPORTS_PER_SOL:
            return
        click.echo(f"  Requesting airdrop of {min_sol} SOL...")
        signature = request_airdrop(
            ledger, keypair.pubkey(), min_sol, Commitment(commitment)
        )
        lamports = ledger.get_balance(keypair.pubkey())
    except SequencerError as exc:
        fail(exc)

    click.secho(f"  Airdrop confirmed: {report_link('transaction', signature, cluster)}", fg="green")
    click.echo(f"  Balance: {Decimal(lamports) / LAMPORTS_PER_SOL} SOL")
