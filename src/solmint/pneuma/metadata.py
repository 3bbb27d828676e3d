"""
Token Metadata - Metaplex Token Metadata program instructions and accounts.

Instruction data and accounts are Borsh layouts built with borsh-construct;
only the instructions the token and NFT flows use are covered:

- CreateMetadataAccountV3 (33)
- CreateMasterEditionV3 (17)
- UpdateMetadataAccountV2 (15)
- VerifySizedCollectionItem (30)

Metadata accounts live at the program-derived address
["metadata", program_id, mint]; master editions append "edition".
"""

from __future__ import annotations

from dataclasses import dataclass, replace
from typing import Any, Optional

from borsh_construct import U8, U16, U64, Bool, CStruct, Enum, Option, String, Vec
from construct import Adapter, Bytes, ConstructError
from solders.instruction import AccountMeta, Instruction
from solders.pubkey import Pubkey
from solders.system_program import ID as SYSTEM_PROGRAM_ID
from solders.sysvar import RENT
from spl.token.constants import TOKEN_PROGRAM_ID

from .rpc import Ledger
from .tx import TransactionSpec

TOKEN_METADATA_PROGRAM_ID = Pubkey.from_string("metaqbxxUerdq28cj1RbAWkYQm3ybzjb6a8bt518x1s")

CREATE_METADATA_ACCOUNT_V3 = 33
CREATE_MASTER_EDITION_V3 = 17
UPDATE_METADATA_ACCOUNT_V2 = 15
VERIFY_SIZED_COLLECTION_ITEM = 30

# Account discriminator of a MetadataV1 account
METADATA_V1_KEY = 4

MAX_NAME_LENGTH = 32
MAX_SYMBOL_LENGTH = 10
MAX_URI_LENGTH = 200
MAX_CREATOR_LIMIT = 5


def check_uri_length(uri: str) -> str:
    """Return uri if it fits the on-chain field, else raise ValueError."""
    if len(uri.encode("utf-8")) > MAX_URI_LENGTH:
        raise ValueError(f"URI longer than {MAX_URI_LENGTH} bytes: {uri!r}")
    return uri


def check_field_lengths(name: str, symbol: str, uri: Optional[str] = None) -> None:
    """
    Check string fields against the on-chain limits, which count UTF-8 bytes.

    Raises:
        ValueError: If a field is too long
    """
    if len(name.encode("utf-8")) > MAX_NAME_LENGTH:
        raise ValueError(f"Name longer than {MAX_NAME_LENGTH} bytes: {name!r}")
    if len(symbol.encode("utf-8")) > MAX_SYMBOL_LENGTH:
        raise ValueError(f"Symbol longer than {MAX_SYMBOL_LENGTH} bytes: {symbol!r}")
    if uri is not None:
        check_uri_length(uri)


# ============ Data types ============


@dataclass(frozen=True)
class Creator:
    address: Pubkey
    verified: bool
    share: int


@dataclass(frozen=True)
class Collection:
    key: Pubkey
    verified: bool = False


@dataclass(frozen=True)
class Uses:
    use_method: int
    remaining: int
    total: int


@dataclass(frozen=True)
class DataV2:
    """On-chain metadata fields set at creation or update."""

    name: str
    symbol: str
    uri: str
    seller_fee_basis_points: int = 0
    creators: Optional[tuple[Creator, ...]] = None
    collection: Optional[Collection] = None
    uses: Optional[Uses] = None

    def __post_init__(self) -> None:
        check_field_lengths(self.name, self.symbol, self.uri)
        if not 0 <= self.seller_fee_basis_points <= 10_000:
            raise ValueError("seller_fee_basis_points must be between 0 and 10000")
        if self.creators is not None:
            if len(self.creators) > MAX_CREATOR_LIMIT:
                raise ValueError(f"At most {MAX_CREATOR_LIMIT} creators are allowed")
            if self.creators and sum(c.share for c in self.creators) != 100:
                raise ValueError("Creator shares must add up to 100")

    def as_layout(self) -> dict[str, Any]:
        """Field values for the DATA_V2 layout."""
        return {
            "name": self.name,
            "symbol": self.symbol,
            "uri": self.uri,
            "seller_fee_basis_points": self.seller_fee_basis_points,
            "creators": None if self.creators is None else [
                {"address": c.address, "verified": c.verified, "share": c.share}
                for c in self.creators
            ],
            "collection": None if self.collection is None else {
                "verified": self.collection.verified,
                "key": self.collection.key,
            },
            "uses": None if self.uses is None else {
                "use_method": self.uses.use_method,
                "remaining": self.uses.remaining,
                "total": self.uses.total,
            },
        }

    @classmethod
    def from_layout(cls, fields: Any) -> "DataV2":
        """Build from parsed DATA_V2 fields (or Data fields plus collection/uses)."""
        creators = fields["creators"]
        collection = fields.get("collection")
        uses = fields.get("uses")
        return cls(
            # Fixed-size fields are padded with NUL bytes on chain
            name=fields["name"].rstrip("\x00"),
            symbol=fields["symbol"].rstrip("\x00"),
            uri=fields["uri"].rstrip("\x00"),
            seller_fee_basis_points=fields["seller_fee_basis_points"],
            creators=None if creators is None else tuple(
                Creator(c["address"], c["verified"], c["share"]) for c in creators
            ),
            collection=None if collection is None else Collection(
                key=collection["key"], verified=collection["verified"]
            ),
            uses=None if uses is None else Uses(
                uses["use_method"], uses["remaining"], uses["total"]
            ),
        )


@dataclass(frozen=True)
class OnChainMetadata:
    """Decoded MetadataV1 account."""

    update_authority: Pubkey
    mint: Pubkey
    data: DataV2
    primary_sale_happened: bool = False
    is_mutable: bool = True
    edition_nonce: Optional[int] = None
    token_standard: Optional[int] = None


# ============ Borsh layouts ============


class _PubkeyAdapter(Adapter):
    def _decode(self, obj, context, path) -> Pubkey:
        return Pubkey.from_bytes(obj)

    def _encode(self, obj, context, path) -> bytes:
        return bytes(obj)


PUBKEY = _PubkeyAdapter(Bytes(32))

CREATOR = CStruct("address" / PUBKEY, "verified" / Bool, "share" / U8)
COLLECTION = CStruct("verified" / Bool, "key" / PUBKEY)
USES = CStruct("use_method" / U8, "remaining" / U64, "total" / U64)

DATA_V2 = CStruct(
    "name" / String,
    "symbol" / String,
    "uri" / String,
    "seller_fee_basis_points" / U16,
    "creators" / Option(Vec(CREATOR)),
    "collection" / Option(COLLECTION),
    "uses" / Option(USES),
)

# The account stores Data (no collection/uses) and appends those later
DATA = CStruct(
    "name" / String,
    "symbol" / String,
    "uri" / String,
    "seller_fee_basis_points" / U16,
    "creators" / Option(Vec(CREATOR)),
)

METADATA_V1 = CStruct(
    "key" / U8,
    "update_authority" / PUBKEY,
    "mint" / PUBKEY,
    "data" / DATA,
    "primary_sale_happened" / Bool,
    "is_mutable" / Bool,
    "edition_nonce" / Option(U8),
    "token_standard" / Option(U8),
    "collection" / Option(COLLECTION),
    "uses" / Option(USES),
)

COLLECTION_DETAILS = Enum("V1" / CStruct("size" / U64), enum_name="CollectionDetails")

CREATE_METADATA_ACCOUNT_ARGS_V3 = CStruct(
    "instruction" / U8,
    "data" / DATA_V2,
    "is_mutable" / Bool,
    "collection_details" / Option(COLLECTION_DETAILS),
)

CREATE_MASTER_EDITION_ARGS_V3 = CStruct(
    "instruction" / U8,
    "max_supply" / Option(U64),
)

UPDATE_METADATA_ACCOUNT_ARGS_V2 = CStruct(
    "instruction" / U8,
    "data" / Option(DATA_V2),
    "update_authority" / Option(PUBKEY),
    "primary_sale_happened" / Option(Bool),
    "is_mutable" / Option(Bool),
)


def encode_data_v2(data: DataV2) -> bytes:
    """Borsh-encode DataV2."""
    return DATA_V2.build(data.as_layout())


def decode_metadata(data: bytes) -> OnChainMetadata:
    """
    Decode a MetadataV1 account.

    Bytes after the `uses` field (newer fields, zero padding) are ignored.

    Raises:
        ValueError: If the data is not a complete MetadataV1 account
    """
    if not data or data[0] != METADATA_V1_KEY:
        key = data[0] if data else None
        raise ValueError(f"Not a metadata account (key={key})")
    try:
        parsed = METADATA_V1.parse(data)
    except ConstructError as exc:
        raise ValueError(f"Metadata account data is malformed: {exc}") from exc

    fields = dict(parsed.data, collection=parsed.collection, uses=parsed.uses)
    return OnChainMetadata(
        update_authority=parsed.update_authority,
        mint=parsed.mint,
        data=DataV2.from_layout(fields),
        primary_sale_happened=parsed.primary_sale_happened,
        is_mutable=parsed.is_mutable,
        edition_nonce=parsed.edition_nonce,
        token_standard=parsed.token_standard,
    )


# ============ Addresses ============


def find_metadata_pda(mint: Pubkey) -> Pubkey:
    """Metadata account address for a mint."""
    address, _bump = Pubkey.find_program_address(
        [b"metadata", bytes(TOKEN_METADATA_PROGRAM_ID), bytes(mint)],
        TOKEN_METADATA_PROGRAM_ID,
    )
    return address


def find_master_edition_pda(mint: Pubkey) -> Pubkey:
    """Master edition account address for a mint."""
    address, _bump = Pubkey.find_program_address(
        [b"metadata", bytes(TOKEN_METADATA_PROGRAM_ID), bytes(mint), b"edition"],
        TOKEN_METADATA_PROGRAM_ID,
    )
    return address


# ============ Instructions ============


def create_metadata_account_v3(
    mint: Pubkey,
    mint_authority: Pubkey,
    payer: Pubkey,
    update_authority: Pubkey,
    data: DataV2,
    is_mutable: bool = True,
    collection_size: Optional[int] = None,
) -> Instruction:
    """
    Build CreateMetadataAccountV3.

    Args:
        collection_size: Set (usually to 0) to create a sized collection parent
    """
    details = None if collection_size is None else COLLECTION_DETAILS.enum.V1(size=collection_size)
    payload = CREATE_METADATA_ACCOUNT_ARGS_V3.build(
        {
            "instruction": CREATE_METADATA_ACCOUNT_V3,
            "data": data.as_layout(),
            "is_mutable": is_mutable,
            "collection_details": details,
        }
    )
    accounts = [
        AccountMeta(find_metadata_pda(mint), is_signer=False, is_writable=True),
        AccountMeta(mint, is_signer=False, is_writable=False),
        AccountMeta(mint_authority, is_signer=True, is_writable=False),
        AccountMeta(payer, is_signer=True, is_writable=True),
        AccountMeta(update_authority, is_signer=True, is_writable=False),
        AccountMeta(SYSTEM_PROGRAM_ID, is_signer=False, is_writable=False),
        AccountMeta(RENT, is_signer=False, is_writable=False),
    ]
    return Instruction(TOKEN_METADATA_PROGRAM_ID, payload, accounts)


def create_master_edition_v3(
    mint: Pubkey,
    update_authority: Pubkey,
    mint_authority: Pubkey,
    payer: Pubkey,
    max_supply: Optional[int] = 0,
) -> Instruction:
    """Build CreateMasterEditionV3.  max_supply=0 makes a one-of-one NFT."""
    payload = CREATE_MASTER_EDITION_ARGS_V3.build(
        {"instruction": CREATE_MASTER_EDITION_V3, "max_supply": max_supply}
    )
    accounts = [
        AccountMeta(find_master_edition_pda(mint), is_signer=False, is_writable=True),
        AccountMeta(mint, is_signer=False, is_writable=True),
        AccountMeta(update_authority, is_signer=True, is_writable=False),
        AccountMeta(mint_authority, is_signer=True, is_writable=False),
        AccountMeta(payer, is_signer=True, is_writable=True),
        AccountMeta(find_metadata_pda(mint), is_signer=False, is_writable=True),
        AccountMeta(TOKEN_PROGRAM_ID, is_signer=False, is_writable=False),
        AccountMeta(SYSTEM_PROGRAM_ID, is_signer=False, is_writable=False),
        AccountMeta(RENT, is_signer=False, is_writable=False),
    ]
    return Instruction(TOKEN_METADATA_PROGRAM_ID, payload, accounts)


def update_metadata_account_v2(
    mint: Pubkey,
    update_authority: Pubkey,
    data: Optional[DataV2] = None,
    new_update_authority: Optional[Pubkey] = None,
    primary_sale_happened: Optional[bool] = None,
    is_mutable: Optional[bool] = None,
) -> Instruction:
    payload = UPDATE_METADATA_ACCOUNT_ARGS_V2.build(
        {
            "instruction": UPDATE_METADATA_ACCOUNT_V2,
            "data": None if data is None else data.as_layout(),
            "update_authority": new_update_authority,
            "primary_sale_happened": primary_sale_happened,
            "is_mutable": is_mutable,
        }
    )
    accounts = [
        AccountMeta(find_metadata_pda(mint), is_signer=False, is_writable=True),
        AccountMeta(update_authority, is_signer=True, is_writable=False),
    ]
    return Instruction(TOKEN_METADATA_PROGRAM_ID, payload, accounts)


def verify_sized_collection_item(
    mint: Pubkey,
    collection_mint: Pubkey,
    collection_authority: Pubkey,
    payer: Pubkey,
) -> Instruction:
    accounts = [
        AccountMeta(find_metadata_pda(mint), is_signer=False, is_writable=True),
        AccountMeta(collection_authority, is_signer=True, is_writable=False),
        AccountMeta(payer, is_signer=True, is_writable=True),
        AccountMeta(collection_mint, is_signer=False, is_writable=False),
        AccountMeta(find_metadata_pda(collection_mint), is_signer=False, is_writable=True),
        AccountMeta(find_master_edition_pda(collection_mint), is_signer=False, is_writable=False),
    ]
    return Instruction(TOKEN_METADATA_PROGRAM_ID, bytes([VERIFY_SIZED_COLLECTION_ITEM]), accounts)


# ============ Resource keys ============


@dataclass(frozen=True)
class MetadataKey:
    """Metadata account of a mint, created with CreateMetadataAccountV3 if absent."""

    mint: Pubkey
    data: DataV2
    authority: Pubkey
    is_mutable: bool = True
    collection_size: Optional[int] = None

    @property
    def label(self) -> str:
        return f"metadata for {self.mint}"

    def address(self) -> Pubkey:
        return find_metadata_pda(self.mint)

    def creation(self, ledger: Ledger, payer: Pubkey) -> TransactionSpec:
        ix = create_metadata_account_v3(
            mint=self.mint,
            mint_authority=self.authority,
            payer=payer,
            update_authority=self.authority,
            data=self.data,
            is_mutable=self.is_mutable,
            collection_size=self.collection_size,
        )
        return TransactionSpec((ix,), memo=f"Create metadata '{self.data.name}'")


@dataclass(frozen=True)
class MasterEditionKey:
    """Master edition of an NFT mint; takes over its mint authority."""

    mint: Pubkey
    authority: Pubkey
    max_supply: Optional[int] = 0

    @property
    def label(self) -> str:
        return f"master edition for {self.mint}"

    def address(self) -> Pubkey:
        return find_master_edition_pda(self.mint)

    def creation(self, ledger: Ledger, payer: Pubkey) -> TransactionSpec:
        ix = create_master_edition_v3(
            mint=self.mint,
            update_authority=self.authority,
            mint_authority=self.authority,
            payer=payer,
            max_supply=self.max_supply,
        )
        return TransactionSpec((ix,), memo="Create master edition")


def with_uri(data: DataV2, uri: str) -> DataV2:
    """Copy of data pointing at a new off-chain document."""
    return replace(data, uri=uri)
