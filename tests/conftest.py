"""
Shared fixtures: an in-memory ledger that applies the system, SPL token,
associated token account and token metadata instructions the flows use.

The fake enforces the checks that matter for sequencing (accounts must
exist before use, authorities must sign, payers must be funded, accounts
cannot be created twice) and nothing else.
"""

from __future__ import annotations

import os
from dataclasses import replace
from pathlib import Path
from typing import Optional
from unittest.mock import patch

import pytest
from solders.hash import Hash
from solders.instruction import AccountMeta, Instruction
from solders.keypair import Keypair
from solders.pubkey import Pubkey
from solders.signature import Signature
from solders.system_program import ID as SYSTEM_PROGRAM_ID
from solders.system_program import decode_create_account
from solders.token.state import Mint, TokenAccount, TokenAccountState
from solders.transaction import Transaction
from spl.token._layouts import InstructionType
from spl.token.constants import ASSOCIATED_TOKEN_PROGRAM_ID, TOKEN_PROGRAM_ID
from spl.token.instructions import decode_initialize_mint, decode_mint_to, decode_transfer

from solmint.anamnesis.storage import LocalDirBackend
from solmint.errors import ResourceNotFound, TransactionRejected, UpstreamUnavailable
from solmint.pneuma.cluster import Commitment
from solmint.pneuma.metadata import (
    CREATE_METADATA_ACCOUNT_ARGS_V3,
    METADATA_V1,
    METADATA_V1_KEY,
    TOKEN_METADATA_PROGRAM_ID,
    UPDATE_METADATA_ACCOUNT_ARGS_V2,
    Collection,
    DataV2,
    OnChainMetadata,
    decode_metadata,
    find_master_edition_pda,
    find_metadata_pda,
)
from solmint.pneuma.rpc import AccountInfo
from solmint.sequencer import ActionSequencer
from solmint.spec.models import NftData

LAMPORTS_PER_SOL = 1_000_000_000
FEE = 5_000


# ============ Account data ============


def mint_data(authority: Optional[Pubkey], supply: int, decimals: int, freeze: Optional[Pubkey]) -> bytes:
    return bytes(Mint(authority, supply, decimals, True, freeze))


def token_account_data(mint: Pubkey, owner: Pubkey, amount: int) -> bytes:
    return bytes(TokenAccount(mint, owner, amount, None, TokenAccountState.Initialized, None, 0))


def encode_metadata_account(account: OnChainMetadata) -> bytes:
    fields = account.data.as_layout()
    return METADATA_V1.build(
        {
            "key": METADATA_V1_KEY,
            "update_authority": account.update_authority,
            "mint": account.mint,
            "data": fields,
            "primary_sale_happened": account.primary_sale_happened,
            "is_mutable": account.is_mutable,
            "edition_nonce": account.edition_nonce,
            "token_standard": account.token_standard,
            "collection": fields["collection"],
            "uses": fields["uses"],
        }
    )


# ============ Fake ledger ============


class _Rejected(Exception):
    pass


class FakeLedger:
    """In-memory ledger implementing the Ledger protocol."""

    def __init__(self) -> None:
        self.accounts: dict[Pubkey, AccountInfo] = {}
        self.collection_sizes: dict[Pubkey, int] = {}
        self.sent: list[Transaction] = []
        self.confirmed: list[tuple[str, Commitment]] = []
        self.airdrops: list[tuple[Pubkey, int]] = []
        self.queries: list[Pubkey] = []

    # ---- test helpers ----

    def fund(self, address: Pubkey, sol: int = 10) -> None:
        self.accounts[address] = AccountInfo(sol * LAMPORTS_PER_SOL, SYSTEM_PROGRAM_ID, b"")

    def signatures(self) -> list[str]:
        return [str(tx.signatures[0]) for tx in self.sent]

    def token_amount(self, account: Pubkey) -> int:
        return TokenAccount.from_bytes(self.accounts[account].data).amount

    def mint_info(self, mint: Pubkey) -> Mint:
        return Mint.from_bytes(self.accounts[mint].data)

    def metadata(self, mint: Pubkey) -> OnChainMetadata:
        return decode_metadata(self.accounts[find_metadata_pda(mint)].data)

    # ---- Ledger protocol ----

    def get_account_info(self, address: Pubkey) -> Optional[AccountInfo]:
        self.queries.append(address)
        return self.accounts.get(address)

    def get_balance(self, address: Pubkey) -> int:
        info = self.accounts.get(address)
        return info.lamports if info else 0

    def get_token_account_balance(self, address: Pubkey) -> int:
        info = self.accounts.get(address)
        if info is None or info.owner != TOKEN_PROGRAM_ID:
            raise ResourceNotFound(f"Token account {address} not found")
        return TokenAccount.from_bytes(info.data).amount

    def get_minimum_balance_for_rent_exemption(self, size: int) -> int:
        return (size + 128) * 6_960

    def get_latest_blockhash(self) -> Hash:
        return Hash.new_unique()

    def send_transaction(self, tx: Transaction) -> str:
        message = tx.message
        keys = list(message.account_keys)
        signers = set(keys[: message.header.num_required_signatures])
        state = dict(self.accounts)
        sizes = dict(self.collection_sizes)
        try:
            self._debit(state, keys[0], FEE)
            for cix in message.instructions:
                ix = Instruction(
                    keys[cix.program_id_index],
                    bytes(cix.data),
                    [AccountMeta(keys[i], keys[i] in signers, True) for i in bytes(cix.accounts)],
                )
                self._apply(state, sizes, signers, ix)
        except _Rejected as exc:
            raise TransactionRejected(
                f"Transaction simulation failed: {exc}",
                logs=[f"Program log: Error: {exc}"],
            ) from None
        self.accounts = state
        self.collection_sizes = sizes
        self.sent.append(tx)
        return str(tx.signatures[0])

    def confirm_transaction(self, signature: str, commitment: Commitment) -> None:
        self.confirmed.append((signature, commitment))

    def request_airdrop(self, address: Pubkey, lamports: int) -> str:
        current = self.get_balance(address)
        self.accounts[address] = AccountInfo(current + lamports, SYSTEM_PROGRAM_ID, b"")
        self.airdrops.append((address, lamports))
        return str(Signature.new_unique())

    # ---- instruction processing ----

    @staticmethod
    def _debit(state: dict, payer: Pubkey, lamports: int) -> None:
        info = state.get(payer)
        if info is None or info.lamports < lamports:
            raise _Rejected("Attempt to debit an account but found no record of a prior credit.")
        state[payer] = replace(info, lamports=info.lamports - lamports)

    def _create(self, state: dict, payer: Pubkey, address: Pubkey, owner: Pubkey, data: bytes) -> None:
        if address in state:
            raise _Rejected(f"account {address} already in use")
        lamports = self.get_minimum_balance_for_rent_exemption(len(data))
        self._debit(state, payer, lamports)
        state[address] = AccountInfo(lamports, owner, data)

    def _apply(self, state, sizes, signers, ix: Instruction) -> None:
        accounts = [meta.pubkey for meta in ix.accounts]
        if ix.program_id == SYSTEM_PROGRAM_ID:
            self._system(state, signers, ix)
        elif ix.program_id == TOKEN_PROGRAM_ID:
            self._token(state, signers, ix)
        elif ix.program_id == ASSOCIATED_TOKEN_PROGRAM_ID:
            self._associated(state, accounts)
        elif ix.program_id == TOKEN_METADATA_PROGRAM_ID:
            self._metadata(state, sizes, signers, accounts, bytes(ix.data))
        else:
            raise _Rejected(f"unknown program {ix.program_id}")

    def _system(self, state, signers, ix: Instruction) -> None:
        # CreateAccount is system instruction 0
        if bytes(ix.data)[:4] != bytes(4):
            raise _Rejected("unsupported system instruction")
        params = decode_create_account(ix)
        new = params["to_pubkey"]
        if new not in signers:
            raise _Rejected("new account must sign")
        if new in state:
            raise _Rejected(f"account {new} already in use")
        self._debit(state, params["from_pubkey"], params["lamports"])
        state[new] = AccountInfo(params["lamports"], params["owner"], bytes(params["space"]))

    def _token_account(self, state, address: Pubkey) -> TokenAccount:
        if address not in state:
            raise _Rejected("invalid account data for instruction")
        return TokenAccount.from_bytes(state[address].data)

    def _token(self, state, signers, ix: Instruction) -> None:
        kind = bytes(ix.data)[0]
        if kind == InstructionType.INITIALIZE_MINT:
            params = decode_initialize_mint(ix)
            info = state.get(params.mint)
            if info is None or info.owner != TOKEN_PROGRAM_ID:
                raise _Rejected("mint account not allocated")
            state[params.mint] = replace(
                info,
                data=mint_data(params.mint_authority, 0, params.decimals, params.freeze_authority),
            )
        elif kind == InstructionType.MINT_TO:
            params = decode_mint_to(ix)
            if params.mint not in state:
                raise _Rejected("invalid account data for instruction")
            dest = self._token_account(state, params.dest)
            mint = Mint.from_bytes(state[params.mint].data)
            if mint.mint_authority != params.mint_authority or params.mint_authority not in signers:
                raise _Rejected("owner does not match")
            if dest.mint != params.mint:
                raise _Rejected("account not associated with this mint")
            state[params.mint] = replace(
                state[params.mint],
                data=mint_data(mint.mint_authority, mint.supply + params.amount, mint.decimals, mint.freeze_authority),
            )
            state[params.dest] = replace(
                state[params.dest], data=token_account_data(dest.mint, dest.owner, dest.amount + params.amount)
            )
        elif kind == InstructionType.TRANSFER:
            params = decode_transfer(ix)
            source = self._token_account(state, params.source)
            dest = self._token_account(state, params.dest)
            if source.owner != params.owner or params.owner not in signers:
                raise _Rejected("owner does not match")
            if dest.mint != source.mint:
                raise _Rejected("account not associated with this mint")
            if source.amount < params.amount:
                raise _Rejected("insufficient funds")
            state[params.source] = replace(
                state[params.source],
                data=token_account_data(source.mint, source.owner, source.amount - params.amount),
            )
            state[params.dest] = replace(
                state[params.dest], data=token_account_data(dest.mint, dest.owner, dest.amount + params.amount)
            )
        else:
            raise _Rejected(f"unsupported token instruction {kind}")

    def _associated(self, state, accounts) -> None:
        payer, address, owner, mint = accounts[0], accounts[1], accounts[2], accounts[3]
        if mint not in state or state[mint].owner != TOKEN_PROGRAM_ID:
            raise _Rejected("invalid mint")
        self._create(state, payer, address, TOKEN_PROGRAM_ID, token_account_data(mint, owner, 0))

    def _metadata(self, state, sizes, signers, accounts, data) -> None:
        kind = data[0]
        if kind == 33:  # CreateMetadataAccountV3
            metadata, mint, mint_authority, payer, update_authority = accounts[:5]
            args = CREATE_METADATA_ACCOUNT_ARGS_V3.parse(data)
            if mint not in state or state[mint].owner != TOKEN_PROGRAM_ID:
                raise _Rejected("mint not initialized")
            if Mint.from_bytes(state[mint].data).mint_authority != mint_authority or mint_authority not in signers:
                raise _Rejected("mint authority mismatch")
            account = OnChainMetadata(
                update_authority, mint, DataV2.from_layout(args.data), is_mutable=args.is_mutable
            )
            self._create(state, payer, metadata, TOKEN_METADATA_PROGRAM_ID, encode_metadata_account(account))
            if args.collection_details is not None:
                sizes[metadata] = args.collection_details.size
        elif kind == 17:  # CreateMasterEditionV3
            edition, mint, _ua, mint_authority, payer, metadata = accounts[:6]
            if metadata not in state:
                raise _Rejected("metadata account missing")
            parsed = Mint.from_bytes(state[mint].data)
            if parsed.supply != 1:
                raise _Rejected("editions require a supply of exactly one")
            if parsed.mint_authority != mint_authority or mint_authority not in signers:
                raise _Rejected("mint authority mismatch")
            self._create(state, payer, edition, TOKEN_METADATA_PROGRAM_ID, b"\x06" + bytes(17))
            state[mint] = replace(
                state[mint],
                data=mint_data(edition, 1, parsed.decimals, edition if parsed.freeze_authority else None),
            )
        elif kind == 15:  # UpdateMetadataAccountV2
            metadata, update_authority = accounts[:2]
            if metadata not in state:
                raise _Rejected("metadata account missing")
            args = UPDATE_METADATA_ACCOUNT_ARGS_V2.parse(data)
            current = decode_metadata(state[metadata].data)
            if current.update_authority != update_authority or update_authority not in signers:
                raise _Rejected("update authority mismatch")
            if not current.is_mutable:
                raise _Rejected("data is immutable")
            if args.data is not None:
                current = replace(current, data=DataV2.from_layout(args.data))
            state[metadata] = replace(state[metadata], data=encode_metadata_account(current))
        elif kind == 30:  # VerifySizedCollectionItem
            metadata, authority, _payer, collection_mint, collection_metadata, edition = accounts[:6]
            if edition not in state or collection_metadata not in state:
                raise _Rejected("collection must be a unique master edition")
            if collection_metadata not in sizes:
                raise _Rejected("collection is not sized")
            item = decode_metadata(state[metadata].data)
            parent = decode_metadata(state[collection_metadata].data)
            if parent.update_authority != authority or authority not in signers:
                raise _Rejected("incorrect collection update authority")
            if item.data.collection is None or item.data.collection.key != collection_mint:
                raise _Rejected("collection not set on item")
            verified = replace(item.data, collection=Collection(collection_mint, True))
            state[metadata] = replace(
                state[metadata], data=encode_metadata_account(replace(item, data=verified))
            )
            sizes[collection_metadata] += 1
        else:
            raise _Rejected(f"unsupported metadata instruction {kind}")


class UnreachableStorage:
    """Storage backend whose every upload fails."""

    def __init__(self) -> None:
        self.attempts = 0

    def upload(self, data: bytes, name: str, content_type: str) -> str:
        self.attempts += 1
        raise UpstreamUnavailable("Storage upload failed: connection refused")


# ============ Fixtures ============


@pytest.fixture(autouse=True)
def solmint_home(tmp_path: Path, monkeypatch) -> Path:
    """Point ~/.solmint at a temp dir and isolate solmint environment variables."""
    home = tmp_path / ".solmint"
    monkeypatch.setattr("solmint.sigil.keypair.SOLMINT_DIR", home)
    monkeypatch.setattr("solmint.sigil.keypair.SOLMINT_ENV", home / ".env")
    with patch.dict(os.environ):
        for name in ("SECRET_KEY", "SOLANA_CLUSTER", "SOLANA_RPC_URL", "SOLANA_COMMITMENT", "PINATA_JWT"):
            os.environ.pop(name, None)
        yield home


@pytest.fixture()
def ledger() -> FakeLedger:
    return FakeLedger()


@pytest.fixture()
def actor(ledger: FakeLedger) -> Keypair:
    keypair = Keypair()
    ledger.fund(keypair.pubkey())
    return keypair


@pytest.fixture()
def sequencer(ledger: FakeLedger, actor: Keypair) -> ActionSequencer:
    return ActionSequencer(ledger=ledger, payer=actor, cluster="devnet")


@pytest.fixture()
def storage(tmp_path: Path) -> LocalDirBackend:
    return LocalDirBackend(root=tmp_path / "uploads")


@pytest.fixture()
def image_file(tmp_path: Path) -> Path:
    path = tmp_path / "assets" / "silver.png"
    path.parent.mkdir(parents=True)
    path.write_bytes(b"\x89PNG\r\n\x1a\n" + b"\x00" * 32)
    return path


@pytest.fixture()
def collection_data(image_file: Path) -> NftData:
    return NftData(
        name="Silver Collection",
        symbol="SLVC",
        description="A collection of silver things",
        image_file=image_file,
        is_collection=True,
    )


@pytest.fixture()
def nft_data(image_file: Path) -> NftData:
    return NftData(
        name="Silver NFT",
        symbol="SLV",
        description="A silver NFT",
        image_file=image_file,
        seller_fee_basis_points=100,
    )
