"""
Theurgy NFT - publish collections and NFTs with Token Metadata.

Commands (group ``nft``):
- collection DATA.json:  Create a sized collection parent
- create DATA.json:      Create an NFT, optionally verified into a collection
- update DATA.json:      Re-publish an NFT's off-chain document and point
                         its metadata at the new URI
- launch PLAN.json:      Collection, member NFT and optional update in one run

DATA.json describes one NFT (name, symbol, description, image_file and
optional seller_fee_basis_points); image paths are relative to the file.
Documents go to Pinata when PINATA_JWT is set, otherwise to
~/.solmint/uploads.
"""

from __future__ import annotations

from pathlib import Path
from typing import Optional

import click

from ..anamnesis.storage import default_backend
from ..errors import InvalidPlan
from ..flows import create_nft_steps, nft_launch_steps, update_nft_steps
from ..spec.models import NftData, NftPlan
from .common import fail, ledger_options, make_sequencer, parse_pubkey, run_steps

_data_file = click.argument("data_file", type=click.Path(exists=True, dir_okay=False, path_type=Path))
_storage_dir = click.option(
    "--storage-dir",
    type=click.Path(file_okay=False, path_type=Path),
    default=None,
    help="Local upload directory when PINATA_JWT is not set",
)


def _load_nft(path: Path, is_collection: bool = False) -> NftData:
    try:
        return NftData.from_path(path, is_collection=is_collection)
    except InvalidPlan as exc:
        fail(exc)


@click.group()
def nft() -> None:
    """Create and update NFTs."""


@nft.command("collection")
@_data_file
@_storage_dir
@ledger_options
def nft_collection(
    data_file: Path,
    storage_dir: Optional[Path],
    cluster: str,
    rpc_url: Optional[str],
    commitment: str,
    keypair_path: Optional[Path],
) -> None:
    """Create a collection NFT."""
    click.echo("=== NFT Collection ===")
    data = _load_nft(data_file, is_collection=True)
    sequencer = make_sequencer(cluster, rpc_url, commitment, keypair_path)
    steps = create_nft_steps(
        default_backend(storage_dir),
        data,
        sequencer.payer.pubkey(),
        prefix="collection",
    )
    report = run_steps(sequencer, steps)
    click.echo(f"Collection mint: {report['collection.mint'].address}")


@nft.command("create")
@_data_file
@click.option("--collection", default=None, help="Collection mint to verify the NFT into")
@click.option("--owner", default=None, help="Wallet receiving the NFT (default: actor)")
@_storage_dir
@ledger_options
def nft_create(
    data_file: Path,
    collection: Optional[str],
    owner: Optional[str],
    storage_dir: Optional[Path],
    cluster: str,
    rpc_url: Optional[str],
    commitment: str,
    keypair_path: Optional[Path],
) -> None:
    """Create an NFT."""
    click.echo("=== Create NFT ===")
    data = _load_nft(data_file)
    collection_mint = parse_pubkey(collection, "collection mint") if collection else None
    owner_key = parse_pubkey(owner, "owner") if owner else None
    sequencer = make_sequencer(cluster, rpc_url, commitment, keypair_path)
    steps = create_nft_steps(
        default_backend(storage_dir),
        data,
        sequencer.payer.pubkey(),
        owner=owner_key,
        collection_mint=collection_mint,
    )
    report = run_steps(sequencer, steps)
    click.echo(f"NFT mint: {report['nft.mint'].address}")


@nft.command("update")
@_data_file
@click.option("--mint", required=True, help="Mint of the NFT to update")
@_storage_dir
@ledger_options
def nft_update(
    data_file: Path,
    mint: str,
    storage_dir: Optional[Path],
    cluster: str,
    rpc_url: Optional[str],
    commitment: str,
    keypair_path: Optional[Path],
) -> None:
    """Upload a new off-chain document and point the NFT at it."""
    click.echo("=== Update NFT ===")
    data = _load_nft(data_file)
    mint_key = parse_pubkey(mint, "mint")
    sequencer = make_sequencer(cluster, rpc_url, commitment, keypair_path)
    steps = update_nft_steps(
        default_backend(storage_dir),
        data,
        mint_key,
        sequencer.payer.pubkey(),
    )
    report = run_steps(sequencer, steps)
    click.echo(f"New URI: {report['update.metadata-uri']}")


@nft.command("launch")
@click.argument("plan_file", type=click.Path(exists=True, dir_okay=False, path_type=Path))
@_storage_dir
@ledger_options
def nft_launch(
    plan_file: Path,
    storage_dir: Optional[Path],
    cluster: str,
    rpc_url: Optional[str],
    commitment: str,
    keypair_path: Optional[Path],
) -> None:
    """Run a whole collection + NFT plan."""
    click.echo("=== NFT Launch ===")
    try:
        plan = NftPlan.from_path(plan_file)
    except InvalidPlan as exc:
        fail(exc)

    sequencer = make_sequencer(cluster, rpc_url, commitment, keypair_path)
    steps = nft_launch_steps(default_backend(storage_dir), plan, sequencer.payer.pubkey())
    report = run_steps(sequencer, steps)

    click.echo(f"Collection mint: {report['collection.mint'].address}")
    click.echo(f"NFT mint:        {report['nft.mint'].address}")
    for name in ("collection.metadata-uri", "nft.metadata-uri", "update.metadata-uri"):
        if name in report.outputs:
            click.echo(f"{name}: {report[name]}")
