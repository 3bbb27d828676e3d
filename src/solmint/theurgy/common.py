"""
Shared plumbing for commands: connection options, actor loading, status
output and the error boundary.
"""

from __future__ import annotations

import sys
from pathlib import Path
from typing import Callable, NoReturn, Optional, Sequence

import click
from solders.keypair import Keypair
from solders.pubkey import Pubkey

from ..errors import InvalidPlan, MissingSecret, SequencerError, TransactionRejected
from ..pneuma.cluster import CLUSTER_URLS, DEFAULT_CLUSTER, Commitment, cluster_api_url, report_link
from ..pneuma.rpc import LedgerClient
from ..sequencer import (
    ActionSequencer,
    ResourceReference,
    RunReport,
    Step,
    StepRecord,
    StepState,
    TransactionResult,
)
from ..sigil.keypair import keypair_from_file, load_keypair


def ledger_options(func: Callable) -> Callable:
    """--cluster, --rpc-url, --commitment and --keypair."""
    func = click.option(
        "--keypair",
        "keypair_path",
        type=click.Path(dir_okay=False, path_type=Path),
        default=None,
        help="solana-keygen JSON file (default: SECRET_KEY from ~/.solmint/.env)",
    )(func)
    func = click.option(
        "--commitment",
        type=click.Choice([c.value for c in Commitment]),
        envvar="SOLANA_COMMITMENT",
        default=Commitment.CONFIRMED.value,
        show_default=True,
        help="Commitment to wait for",
    )(func)
    func = click.option(
        "--rpc-url",
        envvar="SOLANA_RPC_URL",
        default=None,
        help="JSON-RPC endpoint (default: the cluster's public endpoint)",
    )(func)
    func = click.option(
        "--cluster",
        type=click.Choice(list(CLUSTER_URLS)),
        envvar="SOLANA_CLUSTER",
        default=DEFAULT_CLUSTER,
        show_default=True,
        help="Cluster for the endpoint and explorer links",
    )(func)
    return func


def parse_pubkey(value: str, what: str = "address") -> Pubkey:
    try:
        return Pubkey.from_string(value)
    except ValueError:
        click.secho(f"ERROR: invalid {what}: {value}", fg="red")
        sys.exit(1)


def load_actor(keypair_path: Optional[Path] = None) -> Keypair:
    """Load the signing identity or exit with MissingSecret's code."""
    try:
        if keypair_path is not None:
            return keypair_from_file(keypair_path)
        return load_keypair()
    except MissingSecret as exc:
        click.secho(f"ERROR: {exc}", fg="red")
        click.echo("Run 'solmint genesis' first.")
        sys.exit(exc.exit_code)


def make_ledger(cluster: str, rpc_url: Optional[str], commitment: str) -> LedgerClient:
    return LedgerClient(
        rpc_url=rpc_url or cluster_api_url(cluster),
        commitment=Commitment(commitment),
    )


def make_sequencer(
    cluster: str,
    rpc_url: Optional[str],
    commitment: str,
    keypair_path: Optional[Path] = None,
) -> ActionSequencer:
    actor = load_actor(keypair_path)
    click.echo(f"  Actor:   {actor.pubkey()}")
    click.echo(f"  Cluster: {cluster}")
    click.echo("")
    return ActionSequencer(
        ledger=make_ledger(cluster, rpc_url, commitment),
        payer=actor,
        cluster=cluster,
        commitment=Commitment(commitment),
        on_event=event_printer(cluster),
    )


# ============ Output ============


def event_printer(cluster: str) -> Callable[[StepRecord], None]:
    """Status lines for each step state change."""

    def on_event(record: StepRecord) -> None:
        if record.state is StepState.SUBMITTED:
            click.echo(f"[{record.name}] {record.step.description or record.name}...")
        elif record.state is StepState.CONFIRMED:
            _print_output(record.output, cluster)
        elif record.state is StepState.FAILED:
            click.secho(f"  Failed: {record.error}", fg="red")

    return on_event


def _print_output(output: object, cluster: str) -> None:
    if isinstance(output, ResourceReference):
        if output.created:
            click.secho(f"  Created: {output.address}", fg="green")
            click.echo(f"  Tx:      {report_link('transaction', output.signature, cluster)}")
        else:
            click.echo(f"  Exists:  {output.address}")
        click.echo(f"  Link:    {output.link}")
    elif isinstance(output, TransactionResult):
        click.secho(f"  Confirmed: {output.signature}", fg="green")
        click.echo(f"  Link:    {output.link}")
    elif isinstance(output, str):
        click.echo(f"  URI:     {output}")


def fail(exc: Exception) -> NoReturn:
    """Print an error with its diagnostics and exit with its code."""
    click.secho(f"ERROR: {exc}", fg="red")
    if isinstance(exc, TransactionRejected):
        for line in exc.logs:
            click.secho(f"  {line}", dim=True)
    if isinstance(exc, InvalidPlan):
        for line in exc.errors:
            click.echo(f"  - {line}")
    sys.exit(getattr(exc, "exit_code", 1))


def run_steps(sequencer: ActionSequencer, steps: Sequence[Step]) -> RunReport:
    try:
        report = sequencer.run(steps)
    except (SequencerError, ValueError) as exc:
        fail(exc)
    click.echo("")
    click.secho("Done.", fg="green", bold=True)
    return report
