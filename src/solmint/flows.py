"""
Flows - the token and NFT pipelines, expressed as step lists.

Each builder returns steps for ActionSequencer.run().  Builders never touch
the network; every address that can be derived locally is derived when the
step runs, from the outputs the step declares it requires.

NFT pipelines upload their off-chain documents before the first on-chain
step, so an unreachable storage backend aborts the run before any
transaction is sent.
"""

from __future__ import annotations

from typing import Optional, Sequence

from solders.keypair import Keypair
from solders.pubkey import Pubkey
from spl.token.instructions import get_associated_token_address

from .anamnesis.offchain import upload_metadata
from .anamnesis.storage import StorageBackend
from .pneuma.metadata import (
    Collection,
    DataV2,
    MasterEditionKey,
    MetadataKey,
    check_uri_length,
    decode_metadata,
    find_master_edition_pda,
    find_metadata_pda,
    update_metadata_account_v2,
    verify_sized_collection_item,
    with_uri,
)
from .pneuma.token import AssociatedTokenAccountKey, MintKey, mint_to_spec, transfer_spec
from .pneuma.tx import TransactionSpec
from .sequencer import ExistingAccountKey, Step, StepKind, prepare, resolve, submit, upload
from .spec.models import NftData, NftPlan, TokenMetadata
from .spec.schemas import SchemaRegistry


# ============ Fungible token ============


def create_mint_steps(
    authority: Pubkey,
    decimals: int,
    mint: Optional[Keypair] = None,
) -> list[Step]:
    """Create a new mint; the mint address is the (generated) keypair's pubkey."""
    mint = mint or Keypair()
    return [
        resolve(
            "mint",
            lambda _: MintKey(mint, decimals, authority, authority),
            description=f"Create token mint ({decimals} decimals)",
        ),
    ]


def create_token_account_steps(owner: Pubkey, mint: Pubkey) -> list[Step]:
    return [
        resolve(
            "token-account",
            lambda _: AssociatedTokenAccountKey(owner, mint),
            description=f"Resolve token account of {owner}",
        ),
    ]


def create_token_metadata_steps(
    mint: Pubkey,
    authority: Pubkey,
    metadata: TokenMetadata,
) -> list[Step]:
    data = DataV2(
        name=metadata.name,
        symbol=metadata.symbol,
        uri=metadata.uri,
        seller_fee_basis_points=metadata.seller_fee_basis_points,
    )
    return [
        resolve(
            "mint",
            lambda _: ExistingAccountKey(mint, f"mint {mint}"),
            description="Check mint exists",
        ),
        resolve(
            "metadata",
            lambda inp: MetadataKey(inp["mint"].address, data, authority),
            requires=("mint",),
            description=f"Attach metadata '{metadata.name}'",
        ),
    ]


def _token_account_key(owner: Pubkey, mint: Pubkey, create: bool):
    if create:
        return AssociatedTokenAccountKey(owner, mint)
    return ExistingAccountKey(
        get_associated_token_address(owner, mint),
        f"token account of {owner} for mint {mint}",
    )


def mint_tokens_steps(
    mint: Pubkey,
    recipient: Pubkey,
    authority: Pubkey,
    amount: int,
    create_account: bool = True,
) -> list[Step]:
    """
    Mint ``amount`` minor units to the recipient's associated token account.

    Args:
        create_account: Create the recipient's token account if absent;
                        otherwise it must already exist
    """
    return [
        resolve(
            "destination",
            lambda _: _token_account_key(recipient, mint, create_account),
            description=f"Resolve token account of {recipient}",
        ),
        submit(
            "mint-to",
            lambda inp: mint_to_spec(mint, inp["destination"].address, authority, amount),
            requires=("destination",),
            description=f"Mint {amount} minor units",
        ),
    ]


def transfer_token_steps(
    mint: Pubkey,
    sender: Pubkey,
    recipient: Pubkey,
    amount: int,
) -> list[Step]:
    """Transfer between the sender's and recipient's associated token accounts."""
    return [
        resolve(
            "source",
            lambda _: _token_account_key(sender, mint, create=False),
            description=f"Resolve token account of {sender}",
        ),
        resolve(
            "destination",
            lambda _: AssociatedTokenAccountKey(recipient, mint),
            description=f"Resolve token account of {recipient}",
        ),
        submit(
            "transfer",
            lambda inp: transfer_spec(
                inp["source"].address, inp["destination"].address, sender, amount
            ),
            requires=("source", "destination"),
            description=f"Transfer {amount} minor units",
        ),
    ]


# ============ NFTs ============


def create_nft_steps(
    storage: StorageBackend,
    nft: NftData,
    authority: Pubkey,
    mint: Optional[Keypair] = None,
    owner: Optional[Pubkey] = None,
    collection_mint: Optional[Pubkey] = None,
    collection_step: Optional[str] = None,
    prefix: str = "nft",
    registry: Optional[SchemaRegistry] = None,
) -> list[Step]:
    """
    Publish one NFT: upload, mint one token, attach metadata and a master edition.

    A collection parent (``nft.is_collection``) is created as a sized
    collection.  A member NFT names its collection and is verified against
    it as the last step.

    The on-chain fields are built and length-checked right after the upload,
    before the mint exists, so an over-long name or URI sends nothing.

    Args:
        storage: Backend for the image and metadata document
        nft: What to publish
        authority: Mint, update and collection authority
        mint: Mint keypair (generated if omitted)
        owner: Wallet receiving the token (defaults to authority)
        collection_mint: Collection the NFT belongs to
        collection_step: Step in the same pipeline that creates the
                         collection's master edition; when omitted the
                         edition must already exist on chain and is
                         checked before anything is minted
        prefix: Prefix for step names
        registry: Schema registry for metadata validation
    """
    mint = mint or Keypair()
    owner = owner or authority
    names = {
        part: f"{prefix}.{part}"
        for part in ("metadata-uri", "data", "mint", "token-account", "mint-one", "metadata", "edition")
    }

    collection = Collection(key=collection_mint) if collection_mint else None
    collection_size = 0 if nft.is_collection else None

    steps = [
        upload(
            names["metadata-uri"],
            lambda _: upload_metadata(storage, nft, registry),
            description=f"Upload metadata for '{nft.name}'",
        ),
        prepare(
            names["data"],
            lambda inp: DataV2(
                name=nft.name,
                symbol=nft.symbol,
                uri=inp[names["metadata-uri"]],
                seller_fee_basis_points=nft.seller_fee_basis_points,
                collection=collection,
            ),
            requires=(names["metadata-uri"],),
            description="Check on-chain metadata fields",
        ),
    ]

    if collection_mint is not None and collection_step is None:
        collection_step = f"{prefix}.collection"
        steps.append(
            resolve(
                collection_step,
                lambda _: ExistingAccountKey(
                    find_master_edition_pda(collection_mint),
                    f"master edition of collection {collection_mint}",
                ),
                description="Check collection exists",
            )
        )

    steps += [
        resolve(
            names["mint"],
            lambda _: MintKey(mint, 0, authority, authority),
            requires=(names["data"],),
            description=f"Create mint for '{nft.name}'",
        ),
        resolve(
            names["token-account"],
            lambda inp: AssociatedTokenAccountKey(owner, inp[names["mint"]].address),
            requires=(names["mint"],),
            description=f"Resolve token account of {owner}",
        ),
        submit(
            names["mint-one"],
            lambda inp: mint_to_spec(
                inp[names["mint"]].address,
                inp[names["token-account"]].address,
                authority,
                1,
            ),
            requires=(names["mint"], names["token-account"]),
            description="Mint the single token",
        ),
        resolve(
            names["metadata"],
            lambda inp: MetadataKey(
                inp[names["mint"]].address,
                inp[names["data"]],
                authority,
                collection_size=collection_size,
            ),
            requires=(names["data"], names["mint"]),
            description=f"Create metadata '{nft.name}'",
        ),
        resolve(
            names["edition"],
            lambda inp: MasterEditionKey(inp[names["mint"]].address, authority),
            requires=(names["mint"], names["mint-one"], names["metadata"]),
            description="Create master edition",
        ),
    ]

    if collection_mint is None:
        return steps

    steps.append(
        submit(
            f"{prefix}.verify",
            lambda inp: TransactionSpec(
                (
                    verify_sized_collection_item(
                        inp[names["mint"]].address, collection_mint, authority, authority
                    ),
                ),
                memo="Verify collection membership",
            ),
            requires=(names["mint"], names["edition"], collection_step),
            description="Verify collection membership",
        )
    )
    return steps


def update_nft_steps(
    storage: StorageBackend,
    nft: NftData,
    mint: Pubkey,
    authority: Pubkey,
    after: Sequence[str] = (),
    prefix: str = "update",
    registry: Optional[SchemaRegistry] = None,
) -> list[Step]:
    """
    Re-publish an NFT's off-chain document and point its metadata at it.

    Only the URI changes; the other on-chain fields are carried over from
    the current metadata account.

    Args:
        after: Steps that must have run first (e.g. the NFT's creation)
    """
    uri_step = f"{prefix}.metadata-uri"
    checked_step = f"{prefix}.uri"
    current_step = f"{prefix}.current"

    def update_spec(inp) -> TransactionSpec:
        current = decode_metadata(inp[current_step].account.data)
        ix = update_metadata_account_v2(
            mint, authority, data=with_uri(current.data, inp[checked_step])
        )
        return TransactionSpec((ix,), memo="Update metadata URI")

    return [
        upload(
            uri_step,
            lambda _: upload_metadata(storage, nft, registry),
            description=f"Upload metadata for '{nft.name}'",
        ),
        prepare(
            checked_step,
            lambda inp: check_uri_length(inp[uri_step]),
            requires=(uri_step,),
            description="Check URI length",
        ),
        resolve(
            current_step,
            lambda _: ExistingAccountKey(find_metadata_pda(mint), f"metadata for {mint}"),
            requires=tuple(after),
            description="Read current metadata",
        ),
        submit(
            f"{prefix}.set-uri",
            update_spec,
            requires=(checked_step, current_step),
            description="Point metadata at the new document",
        ),
    ]


def uploads_first(steps: Sequence[Step]) -> list[Step]:
    """
    Move off-chain steps ahead of every on-chain step.

    An upload or prepare step moves when every step it requires has moved;
    relative order is otherwise kept.
    """
    moved: list[Step] = []
    moved_names: set[str] = set()
    for step in steps:
        if step.kind in (StepKind.UPLOAD, StepKind.PREPARE) and all(
            name in moved_names for name in step.requires
        ):
            moved.append(step)
            moved_names.add(step.name)
    return moved + [s for s in steps if s.name not in moved_names]


def nft_launch_steps(
    storage: StorageBackend,
    plan: NftPlan,
    authority: Pubkey,
    collection_mint: Optional[Keypair] = None,
    nft_mint: Optional[Keypair] = None,
    registry: Optional[SchemaRegistry] = None,
) -> list[Step]:
    """
    Collection, member NFT, verification and optional update in one run.

    Steps are prefixed ``collection.``, ``nft.`` and ``update.``.
    """
    collection_mint = collection_mint or Keypair()
    nft_mint = nft_mint or Keypair()

    steps = create_nft_steps(
        storage,
        plan.collection,
        authority,
        mint=collection_mint,
        prefix="collection",
        registry=registry,
    )
    steps += create_nft_steps(
        storage,
        plan.nft,
        authority,
        mint=nft_mint,
        collection_mint=collection_mint.pubkey(),
        collection_step="collection.edition",
        prefix="nft",
        registry=registry,
    )
    if plan.update is not None:
        steps += update_nft_steps(
            storage,
            plan.update,
            nft_mint.pubkey(),
            authority,
            after=("nft.verify",),
            registry=registry,
        )
    return uploads_first(steps)
