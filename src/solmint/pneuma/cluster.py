"""
Cluster configuration and explorer links.
"""

from __future__ import annotations

import os
from enum import Enum
from typing import Optional
from urllib.parse import quote

CLUSTER_URLS: dict[str, str] = {
    "devnet": "https://api.devnet.solana.com",
    "testnet": "https://api.testnet.solana.com",
    "mainnet-beta": "https://api.mainnet-beta.solana.com",
    "localnet": "http://localhost:8899",
}

DEFAULT_CLUSTER = "devnet"
EXPLORER_URL = "https://explorer.solana.com"

_LINK_PATHS = {
    "transaction": "tx",
    "tx": "tx",
    "address": "address",
    "block": "block",
}


class Commitment(str, Enum):
    PROCESSED = "processed"
    CONFIRMED = "confirmed"
    FINALIZED = "finalized"

    @property
    def rank(self) -> int:
        return _COMMITMENT_ORDER.index(self)

    def satisfied_by(self, status: Optional[str]) -> bool:
        """True if a reported confirmationStatus meets this commitment."""
        if status is None:
            return False
        try:
            return Commitment(status).rank >= self.rank
        except ValueError:
            return False


_COMMITMENT_ORDER = [Commitment.PROCESSED, Commitment.CONFIRMED, Commitment.FINALIZED]

DEFAULT_COMMITMENT = Commitment.CONFIRMED


def get_cluster() -> str:
    """Get the cluster name from environment or default."""
    return os.environ.get("SOLANA_CLUSTER", DEFAULT_CLUSTER)


def cluster_api_url(cluster: str) -> str:
    """Public RPC endpoint for a cluster name."""
    try:
        return CLUSTER_URLS[cluster]
    except KeyError:
        raise ValueError(
            f"Unknown cluster {cluster!r}; expected one of {', '.join(CLUSTER_URLS)}"
        ) from None


def get_rpc_url(cluster: Optional[str] = None) -> str:
    """SOLANA_RPC_URL if set, otherwise the public endpoint for the cluster."""
    return os.environ.get("SOLANA_RPC_URL") or cluster_api_url(cluster or get_cluster())


def report_link(kind: str, identifier: str, cluster: str = DEFAULT_CLUSTER) -> str:
    """
    Build a Solana Explorer link.

    Args:
        kind: "transaction" (or "tx"), "address" or "block"
        identifier: Signature, base58 address or slot
        cluster: Cluster name the identifier lives on

    Returns:
        Explorer URL
    """
    try:
        path = _LINK_PATHS[kind]
    except KeyError:
        raise ValueError(f"Unknown link kind: {kind!r}") from None
    if cluster not in CLUSTER_URLS:
        raise ValueError(f"Unknown cluster {cluster!r}")

    base = f"{EXPLORER_URL}/{path}/{identifier}"
    if cluster == "mainnet-beta":
        return base
    if cluster == "localnet":
        return f"{base}?cluster=custom&customUrl={quote(CLUSTER_URLS['localnet'], safe='')}"
    return f"{base}?cluster={cluster}"
