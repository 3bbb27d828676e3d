"""
JSON-RPC Client for Solana clusters.

Lightweight alternative to a full client SDK: uses httpx for HTTP and
solders for the transaction objects it serializes.  Supports account
queries, balance queries, transaction submission and confirmation polling.
"""

from __future__ import annotations

import base64
import time
from dataclasses import dataclass
from typing import Any, Optional, Protocol

import httpx
from solders.hash import Hash
from solders.pubkey import Pubkey
from solders.transaction import Transaction

from ..errors import (
    ConfirmationTimeout,
    ResourceNotFound,
    SequencerError,
    TransactionRejected,
    UpstreamUnavailable,
)
from .cluster import DEFAULT_COMMITMENT, Commitment, get_rpc_url

# JSON-RPC error code for "invalid params", returned for unknown token accounts
INVALID_PARAMS = -32602


class JsonRpcError(SequencerError):
    """An error object returned by the JSON-RPC endpoint."""

    def __init__(self, code: int, message: str, data: Any = None) -> None:
        super().__init__(f"RPC error {code}: {message}")
        self.code = code
        self.rpc_message = message
        self.data = data


@dataclass(frozen=True)
class AccountInfo:
    lamports: int
    owner: Pubkey
    data: bytes
    executable: bool = False


class Ledger(Protocol):
    """The ledger operations the sequencer and flows depend on."""

    def get_account_info(self, address: Pubkey) -> Optional[AccountInfo]:
        ...

    def get_balance(self, address: Pubkey) -> int:
        ...

    def get_token_account_balance(self, address: Pubkey) -> int:
        ...

    def get_minimum_balance_for_rent_exemption(self, size: int) -> int:
        ...

    def get_latest_blockhash(self) -> Hash:
        ...

    def send_transaction(self, tx: Transaction) -> str:
        ...

    def confirm_transaction(self, signature: str, commitment: Commitment) -> None:
        ...

    def request_airdrop(self, address: Pubkey, lamports: int) -> str:
        ...


@dataclass
class LedgerClient:
    """
    Ledger implementation backed by a Solana JSON-RPC endpoint.

    Attributes:
        rpc_url: Endpoint URL (default: SOLANA_RPC_URL or the cluster's public URL)
        commitment: Commitment used for reads and preflight
        timeout: HTTP timeout per request, in seconds
        confirm_timeout: Maximum time to wait for confirmation, in seconds
        poll_interval: Delay between signature status polls, in seconds
        transport: Optional httpx transport (tests use httpx.MockTransport)
    """

    rpc_url: str = ""
    commitment: Commitment = DEFAULT_COMMITMENT
    timeout: float = 30.0
    confirm_timeout: float = 60.0
    poll_interval: float = 1.0
    transport: Optional[httpx.BaseTransport] = None

    def __post_init__(self) -> None:
        if not self.rpc_url:
            self.rpc_url = get_rpc_url()

    def _rpc_call(self, method: str, params: list) -> Any:
        """
        Make a JSON-RPC call.

        Args:
            method: RPC method name (e.g., "getAccountInfo")
            params: RPC parameters

        Returns:
            Result field from the RPC response

        Raises:
            UpstreamUnavailable: If the endpoint cannot be reached
            JsonRpcError: If the endpoint returns an error object
        """
        payload = {
            "jsonrpc": "2.0",
            "method": method,
            "params": params,
            "id": 1,
        }

        try:
            with httpx.Client(timeout=self.timeout, transport=self.transport) as client:
                response = client.post(self.rpc_url, json=payload)
                response.raise_for_status()
                data = response.json()
        except httpx.HTTPStatusError as exc:
            raise UpstreamUnavailable(
                f"RPC endpoint {self.rpc_url} returned {exc.response.status_code}"
            ) from exc
        except (httpx.HTTPError, httpx.InvalidURL) as exc:
            raise UpstreamUnavailable(f"RPC endpoint {self.rpc_url} unreachable: {exc}") from exc
        except ValueError as exc:
            raise UpstreamUnavailable(f"RPC endpoint {self.rpc_url} returned invalid JSON") from exc

        if "error" in data:
            error = data["error"]
            raise JsonRpcError(error.get("code", 0), error.get("message", ""), error.get("data"))

        return data.get("result")

    # ---- Queries ----

    def get_account_info(self, address: Pubkey) -> Optional[AccountInfo]:
        result = self._rpc_call(
            "getAccountInfo",
            [str(address), {"encoding": "base64", "commitment": self.commitment.value}],
        )
        value = result.get("value") if result else None
        if value is None:
            return None
        raw, _encoding = value["data"]
        return AccountInfo(
            lamports=value["lamports"],
            owner=Pubkey.from_string(value["owner"]),
            data=base64.b64decode(raw),
            executable=value.get("executable", False),
        )

    def get_balance(self, address: Pubkey) -> int:
        """Lamport balance of an account."""
        result = self._rpc_call(
            "getBalance", [str(address), {"commitment": self.commitment.value}]
        )
        return int(result["value"])

    def get_token_account_balance(self, address: Pubkey) -> int:
        """Raw (minor unit) balance of a token account."""
        try:
            result = self._rpc_call(
                "getTokenAccountBalance",
                [str(address), {"commitment": self.commitment.value}],
            )
        except JsonRpcError as exc:
            if exc.code == INVALID_PARAMS:
                raise ResourceNotFound(f"Token account {address} not found") from exc
            raise
        return int(result["value"]["amount"])

    def get_minimum_balance_for_rent_exemption(self, size: int) -> int:
        return int(self._rpc_call("getMinimumBalanceForRentExemption", [size]))

    def get_latest_blockhash(self) -> Hash:
        result = self._rpc_call(
            "getLatestBlockhash", [{"commitment": self.commitment.value}]
        )
        return Hash.from_string(result["value"]["blockhash"])

    # ---- Transactions ----

    def send_transaction(self, tx: Transaction) -> str:
        """
        Send a signed transaction.

        Returns:
            Transaction signature (base58)

        Raises:
            TransactionRejected: If preflight or the node rejects the transaction
        """
        encoded = base64.b64encode(bytes(tx)).decode("ascii")
        try:
            return self._rpc_call(
                "sendTransaction",
                [
                    encoded,
                    {"encoding": "base64", "preflightCommitment": self.commitment.value},
                ],
            )
        except JsonRpcError as exc:
            logs = []
            if isinstance(exc.data, dict):
                logs = exc.data.get("logs") or []
            raise TransactionRejected(exc.rpc_message, logs=logs) from exc

    def confirm_transaction(
        self,
        signature: str,
        commitment: Commitment = DEFAULT_COMMITMENT,
    ) -> None:
        """
        Wait until a signature reaches the requested commitment.

        Raises:
            TransactionRejected: If the transaction landed with an error
            ConfirmationTimeout: If not confirmed within confirm_timeout
        """
        deadline = time.monotonic() + self.confirm_timeout
        while True:
            result = self._rpc_call(
                "getSignatureStatuses",
                [[signature], {"searchTransactionHistory": True}],
            )
            status = (result.get("value") or [None])[0]
            if status is not None:
                if status.get("err") is not None:
                    raise TransactionRejected(
                        f"Transaction {signature} failed: {status['err']}"
                    )
                if commitment.satisfied_by(status.get("confirmationStatus")):
                    return
            if time.monotonic() >= deadline:
                raise ConfirmationTimeout(
                    f"Transaction {signature} not {commitment.value} within "
                    f"{self.confirm_timeout}s",
                    signature=signature,
                )
            time.sleep(self.poll_interval)

    def request_airdrop(self, address: Pubkey, lamports: int) -> str:
        """Request devnet/testnet SOL.  Returns the airdrop signature."""
        try:
            return self._rpc_call("requestAirdrop", [str(address), lamports])
        except JsonRpcError as exc:
            raise TransactionRejected(f"Airdrop refused: {exc.rpc_message}") from exc
