"""
End-to-end flow tests: token and NFT pipelines run through the sequencer
against the in-memory ledger.
"""

from __future__ import annotations

import json
from pathlib import Path

import pytest
from solders.keypair import Keypair
from solders.pubkey import Pubkey
from spl.token.instructions import get_associated_token_address

from solmint.errors import InvalidPlan, ResourceNotFound, UpstreamUnavailable
from solmint.flows import (
    create_mint_steps,
    create_nft_steps,
    create_token_account_steps,
    create_token_metadata_steps,
    mint_tokens_steps,
    nft_launch_steps,
    transfer_token_steps,
    update_nft_steps,
    uploads_first,
)
from solmint.pneuma.metadata import find_master_edition_pda, find_metadata_pda
from solmint.pneuma.token import read_mint_decimals
from solmint.sequencer import StepKind, StepState
from solmint.spec.models import NftData, NftPlan, TokenMetadata
from solmint.utils import to_minor_units

from conftest import UnreachableStorage


@pytest.fixture()
def token_mint(sequencer, actor) -> Pubkey:
    report = sequencer.run(create_mint_steps(actor.pubkey(), decimals=2))
    return report["mint"].address


class TestTokenFlows:
    def test_create_mint(self, ledger, token_mint, actor) -> None:
        info = ledger.mint_info(token_mint)
        assert info.decimals == 2
        assert info.mint_authority == actor.pubkey()
        assert info.supply == 0

    def test_read_mint_decimals(self, ledger, token_mint, actor) -> None:
        assert read_mint_decimals(ledger, token_mint) == 2
        with pytest.raises(ResourceNotFound, match="not a token mint"):
            read_mint_decimals(ledger, actor.pubkey())

    def test_create_token_account_is_idempotent(self, sequencer, ledger, token_mint) -> None:
        owner = Pubkey.new_unique()
        first = sequencer.run(create_token_account_steps(owner, token_mint))["token-account"]
        sent = len(ledger.sent)
        second = sequencer.run(create_token_account_steps(owner, token_mint))["token-account"]

        assert first.created and not second.created
        assert first.address == second.address
        assert len(ledger.sent) == sent

    def test_mint_ten_tokens_with_two_decimals(self, sequencer, ledger, actor, token_mint) -> None:
        ata = get_associated_token_address(actor.pubkey(), token_mint)
        sequencer.run(create_token_account_steps(actor.pubkey(), token_mint))
        before = ledger.get_token_account_balance(ata)
        sent = len(ledger.sent)

        amount = to_minor_units("10", 2)
        report = sequencer.run(
            mint_tokens_steps(token_mint, actor.pubkey(), actor.pubkey(), amount, create_account=False)
        )

        assert amount == 1000
        assert ledger.get_token_account_balance(ata) - before == 1000
        assert report["destination"].created is False
        assert len(ledger.sent) == sent + 1
        assert report["mint-to"].signature == ledger.signatures()[-1]

    def test_mint_without_account_creation_requires_existing_account(
        self, sequencer, ledger, actor, token_mint
    ) -> None:
        sent = len(ledger.sent)
        with pytest.raises(ResourceNotFound):
            sequencer.run(
                mint_tokens_steps(token_mint, Pubkey.new_unique(), actor.pubkey(), 100, create_account=False)
            )
        assert len(ledger.sent) == sent
        assert sequencer.report.records[-1].state is StepState.PENDING

    def test_mint_creates_recipient_account(self, sequencer, ledger, actor, token_mint) -> None:
        recipient = Pubkey.new_unique()
        report = sequencer.run(mint_tokens_steps(token_mint, recipient, actor.pubkey(), 250))
        assert report["destination"].created is True
        assert ledger.token_amount(report["destination"].address) == 250

    def test_transfer(self, sequencer, ledger, actor, token_mint) -> None:
        sequencer.run(mint_tokens_steps(token_mint, actor.pubkey(), actor.pubkey(), 1000))
        recipient = Pubkey.new_unique()

        report = sequencer.run(transfer_token_steps(token_mint, actor.pubkey(), recipient, 100))

        assert ledger.token_amount(report["source"].address) == 900
        assert ledger.token_amount(report["destination"].address) == 100
        assert report["destination"].created is True

    def test_transfer_without_source_account_fails(self, sequencer, ledger, actor, token_mint) -> None:
        sent = len(ledger.sent)
        with pytest.raises(ResourceNotFound):
            sequencer.run(transfer_token_steps(token_mint, actor.pubkey(), Pubkey.new_unique(), 1))
        assert len(ledger.sent) == sent

    def test_token_metadata(self, sequencer, ledger, actor, token_mint) -> None:
        metadata = TokenMetadata(
            name="Silver Solana Token",
            symbol="Silver",
            uri="https://example.com/silver.json",
        )
        report = sequencer.run(create_token_metadata_steps(token_mint, actor.pubkey(), metadata))

        assert report["metadata"].address == find_metadata_pda(token_mint)
        onchain = ledger.metadata(token_mint)
        assert onchain.data.name == "Silver Solana Token"
        assert onchain.data.symbol == "Silver"
        assert onchain.update_authority == actor.pubkey()

        # Running again finds the existing account
        again = sequencer.run(create_token_metadata_steps(token_mint, actor.pubkey(), metadata))
        assert again["metadata"].created is False

    def test_token_metadata_for_unknown_mint(self, sequencer, actor) -> None:
        metadata = TokenMetadata(name="Ghost", symbol="GH", uri="https://example.com/g.json")
        with pytest.raises(ResourceNotFound):
            sequencer.run(create_token_metadata_steps(Pubkey.new_unique(), actor.pubkey(), metadata))


class TestNftFlows:
    def test_collection(self, sequencer, ledger, actor, storage, collection_data) -> None:
        mint = Keypair()
        report = sequencer.run(
            create_nft_steps(storage, collection_data, actor.pubkey(), mint=mint, prefix="collection")
        )

        assert report.succeeded
        metadata = ledger.metadata(mint.pubkey())
        assert metadata.data.name == "Silver Collection"
        assert metadata.data.uri == report["collection.metadata-uri"]
        assert ledger.collection_sizes[find_metadata_pda(mint.pubkey())] == 0
        assert find_master_edition_pda(mint.pubkey()) in ledger.accounts
        # Mint authority moved to the master edition
        assert ledger.mint_info(mint.pubkey()).mint_authority == find_master_edition_pda(mint.pubkey())

    def test_nft_verified_into_existing_collection(
        self, sequencer, ledger, actor, storage, collection_data, nft_data
    ) -> None:
        collection = Keypair()
        sequencer.run(
            create_nft_steps(storage, collection_data, actor.pubkey(), mint=collection, prefix="collection")
        )

        nft_mint = Keypair()
        report = sequencer.run(
            create_nft_steps(
                storage,
                nft_data,
                actor.pubkey(),
                mint=nft_mint,
                collection_mint=collection.pubkey(),
            )
        )

        assert "nft.collection" in report.outputs
        item = ledger.metadata(nft_mint.pubkey())
        assert item.data.collection is not None
        assert item.data.collection.key == collection.pubkey()
        assert item.data.collection.verified is True
        assert ledger.collection_sizes[find_metadata_pda(collection.pubkey())] == 1

    def test_nft_into_missing_collection_fails_before_minting(
        self, sequencer, ledger, actor, storage, nft_data
    ) -> None:
        with pytest.raises(ResourceNotFound, match="master edition of collection"):
            sequencer.run(
                create_nft_steps(storage, nft_data, actor.pubkey(), collection_mint=Pubkey.new_unique())
            )
        assert ledger.sent == []
        states = {r.name: r.state for r in sequencer.report.records}
        assert states["nft.collection"] is StepState.FAILED
        assert states["nft.mint"] is StepState.PENDING

    def test_multibyte_name_over_limit_is_rejected_on_load(self, tmp_path, image_file) -> None:
        path = tmp_path / "nft.json"
        payload = {"name": "\u00e9" * 20, "symbol": "SLV", "description": "d", "image_file": str(image_file)}
        path.write_text(json.dumps(payload), encoding="utf-8")

        with pytest.raises(InvalidPlan, match="32 bytes"):
            NftData.from_path(path)

    def test_overlong_uri_fails_before_minting(self, sequencer, ledger, actor, nft_data) -> None:
        class DeepStorage:
            def upload(self, data: bytes, name: str, content_type: str) -> str:
                return "file:///" + "deep/" * 50 + name

        with pytest.raises(ValueError, match="URI longer than"):
            sequencer.run(create_nft_steps(DeepStorage(), nft_data, actor.pubkey()))

        assert ledger.sent == []
        states = {r.name: r.state for r in sequencer.report.records}
        assert states["nft.data"] is StepState.FAILED
        assert states["nft.mint"] is StepState.PENDING

    def test_unreachable_storage_aborts_before_any_transaction(
        self, sequencer, ledger, actor, nft_data
    ) -> None:
        storage = UnreachableStorage()
        with pytest.raises(UpstreamUnavailable):
            sequencer.run(create_nft_steps(storage, nft_data, actor.pubkey()))

        assert storage.attempts == 1
        assert ledger.sent == []
        states = [r.state for r in sequencer.report.records]
        assert states[0] is StepState.FAILED
        assert all(state is StepState.PENDING for state in states[1:])

    def test_update_points_metadata_at_new_uri(
        self, sequencer, ledger, actor, storage, nft_data, image_file
    ) -> None:
        mint = Keypair()
        created = sequencer.run(create_nft_steps(storage, nft_data, actor.pubkey(), mint=mint))
        old_uri = created["nft.metadata-uri"]

        updated_data = type(nft_data)(
            name=nft_data.name,
            symbol=nft_data.symbol,
            description="Updated description",
            image_file=image_file,
            seller_fee_basis_points=nft_data.seller_fee_basis_points,
        )
        report = sequencer.run(update_nft_steps(storage, updated_data, mint.pubkey(), actor.pubkey()))

        new_uri = report["update.metadata-uri"]
        assert new_uri != old_uri
        onchain = ledger.metadata(mint.pubkey())
        assert onchain.data.uri == new_uri
        assert onchain.data.name == nft_data.name
        assert onchain.data.seller_fee_basis_points == 100

    def test_update_of_unknown_nft_fails(self, sequencer, ledger, actor, storage, nft_data) -> None:
        with pytest.raises(ResourceNotFound):
            sequencer.run(update_nft_steps(storage, nft_data, Pubkey.new_unique(), actor.pubkey()))
        assert ledger.sent == []


class TestLaunch:
    def _plan(self, tmp_path: Path, image_file: Path, with_update: bool = True) -> NftPlan:
        entry = {
            "symbol": "SLV",
            "image_file": str(image_file),
            "seller_fee_basis_points": 100,
        }
        payload = {
            "collection": {**entry, "name": "Silver Collection", "description": "Collection"},
            "nft": {**entry, "name": "Silver NFT", "description": "Member"},
        }
        if with_update:
            payload["update"] = {**entry, "name": "Silver NFT", "description": "Member, updated"}
        path = tmp_path / "plan.json"
        path.write_text(json.dumps(payload), encoding="utf-8")
        return NftPlan.from_path(path)

    def test_offchain_steps_run_first(self, tmp_path, actor, storage, image_file) -> None:
        steps = nft_launch_steps(storage, self._plan(tmp_path, image_file), actor.pubkey())
        offchain = (StepKind.UPLOAD, StepKind.PREPARE)
        kinds = [s.kind for s in steps]
        first_onchain = next(i for i, k in enumerate(kinds) if k not in offchain)
        assert kinds[:first_onchain].count(StepKind.UPLOAD) == 3
        assert not any(k in offchain for k in kinds[first_onchain:])
        assert [s.name for s in steps][:first_onchain] == [
            "collection.metadata-uri",
            "collection.data",
            "nft.metadata-uri",
            "nft.data",
            "update.metadata-uri",
            "update.uri",
        ]

    def test_full_launch(self, tmp_path, sequencer, ledger, actor, storage, image_file) -> None:
        collection = Keypair()
        nft_mint = Keypair()
        steps = nft_launch_steps(
            storage,
            self._plan(tmp_path, image_file),
            actor.pubkey(),
            collection_mint=collection,
            nft_mint=nft_mint,
        )

        report = sequencer.run(steps)

        assert report.succeeded
        item = ledger.metadata(nft_mint.pubkey())
        assert item.data.collection.key == collection.pubkey()
        assert item.data.collection.verified is True
        assert item.data.uri == report["update.metadata-uri"]
        assert ledger.collection_sizes[find_metadata_pda(collection.pubkey())] == 1

    def test_launch_without_update(self, tmp_path, sequencer, actor, storage, image_file) -> None:
        steps = nft_launch_steps(storage, self._plan(tmp_path, image_file, with_update=False), actor.pubkey())
        assert not any(s.name.startswith("update.") for s in steps)
        assert sequencer.run(steps).succeeded

    def test_launch_with_unreachable_storage_sends_nothing(
        self, tmp_path, sequencer, ledger, actor, image_file
    ) -> None:
        steps = nft_launch_steps(UnreachableStorage(), self._plan(tmp_path, image_file), actor.pubkey())
        with pytest.raises(UpstreamUnavailable):
            sequencer.run(steps)
        assert ledger.sent == []


def test_uploads_first_keeps_dependent_uploads_in_place() -> None:
    from solmint.sequencer import resolve, upload

    steps = [
        resolve("a", lambda _: None),
        upload("b", lambda _: "x"),
        upload("c", lambda inp: inp["a"], requires=("a",)),
    ]
    assert [s.name for s in uploads_first(steps)] == ["b", "a", "c"]
