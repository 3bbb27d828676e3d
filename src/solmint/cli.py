"""
solmint CLI

Command-line interface for SPL tokens and Metaplex NFTs on Solana.

Identity = one Ed25519 keypair (SECRET_KEY in ~/.solmint/.env).  It pays
every fee and is the mint, update and collection authority.

Commands:
  genesis                - Create or import the actor keypair
  whoami                 - Show the actor address
  airdrop                - Request SOL from the cluster faucet
  balance                - Show a SOL or token balance
  link                   - Print an explorer link
  create-mint            - Create a token mint
  create-token-account   - Resolve or create an associated token account
  create-token-metadata  - Attach metadata to a mint
  mint-tokens            - Mint tokens to a wallet
  transfer-token         - Transfer tokens to a wallet
  nft                    - Collections and NFTs (collection, create, update, launch)
"""

from __future__ import annotations

import sys

import click

from .errors import MissingSecret
from .pneuma.cluster import CLUSTER_URLS, DEFAULT_CLUSTER, report_link
from .sigil.keypair import load_keypair


# ============ Constants ============

VERSION = "0.3.0"


# ============ Banner ============


def _print_banner() -> None:
    border = click.style("  ◆ ═══════════════════════════════════ ◆", fg="cyan")
    click.echo()
    click.echo(border)
    click.echo()
    click.echo(
        click.style("        S O L M I N T", fg="bright_white", bold=True)
        + click.style(f"    v{VERSION}", dim=True)
    )
    click.secho("        ─── tokens & NFTs on Solana ───", fg="cyan")
    click.echo()
    click.echo(border)
    click.echo()


# ============ Main CLI Group ============


@click.group(invoke_without_command=True)
@click.version_option(version=VERSION, prog_name="solmint")
@click.pass_context
def cli(ctx: click.Context) -> None:
    """solmint - SPL tokens and NFTs on Solana."""
    if ctx.invoked_subcommand is None:
        _print_banner()
        click.echo(ctx.get_help())


# ============ Top-level Commands ============

from .theurgy.genesis import genesis
from .theurgy.nft import nft
from .theurgy.token import (
    create_mint,
    create_token_account,
    create_token_metadata,
    mint_tokens,
    transfer_token,
)
from .theurgy.wallet import airdrop, balance

cli.add_command(genesis)
cli.add_command(airdrop)
cli.add_command(balance)
cli.add_command(create_mint)
cli.add_command(create_token_account)
cli.add_command(create_token_metadata)
cli.add_command(mint_tokens)
cli.add_command(transfer_token)
cli.add_command(nft)


# ============ Identity ============


@cli.command()
def whoami() -> None:
    """Show the actor address."""
    try:
        keypair = load_keypair()
    except MissingSecret as exc:
        click.echo("No keypair found.")
        click.echo("Run 'solmint genesis' to create one.")
        sys.exit(exc.exit_code)
    click.echo(f"Address: {keypair.pubkey()}")


# ============ Links ============


@cli.command()
@click.argument("kind", type=click.Choice(["transaction", "tx", "address", "block"]))
@click.argument("identifier")
@click.option(
    "--cluster",
    type=click.Choice(list(CLUSTER_URLS)),
    envvar="SOLANA_CLUSTER",
    default=DEFAULT_CLUSTER,
    show_default=True,
)
def link(kind: str, identifier: str, cluster: str) -> None:
    """Print the explorer link for a transaction, address or block."""
    click.echo(report_link(kind, identifier, cluster))


# ============ Entry Points ============


def main() -> None:
    """solmint CLI entry point."""
    # Box-drawing characters in the banner need UTF-8 on Windows consoles
    if sys.platform == "win32":
        try:
            sys.stdout.reconfigure(encoding="utf-8")  # type: ignore[union-attr]
            sys.stderr.reconfigure(encoding="utf-8")  # type: ignore[union-attr]
        except (AttributeError, OSError):
            pass
    cli()


if __name__ == "__main__":
    main()
