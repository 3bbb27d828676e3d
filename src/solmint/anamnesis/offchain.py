"""
Off-chain NFT metadata: upload the image, then the JSON document that
points at it.  The returned URI is what goes into the on-chain metadata.
"""

from __future__ import annotations

import mimetypes
from typing import Any

import rfc8785

from ..errors import InvalidPlan
from ..spec.models import NftData
from ..spec.schemas import SchemaRegistry
from .storage import StorageBackend


def build_metadata_document(nft: NftData, image_uri: str, image_type: str) -> dict[str, Any]:
    """Metaplex-style JSON metadata for an NFT."""
    return {
        "name": nft.name,
        "symbol": nft.symbol,
        "description": nft.description,
        "image": image_uri,
        "seller_fee_basis_points": nft.seller_fee_basis_points,
        "properties": {
            "category": "image",
            "files": [{"uri": image_uri, "type": image_type}],
        },
    }


def content_type(nft: NftData) -> str:
    return mimetypes.guess_type(nft.image_file.name)[0] or "application/octet-stream"


def upload_image(storage: StorageBackend, nft: NftData) -> str:
    try:
        data = nft.image_file.read_bytes()
    except FileNotFoundError as exc:
        raise InvalidPlan(f"Image file not found: {nft.image_file}") from exc
    return storage.upload(data, nft.image_file.name, content_type(nft))


def upload_metadata(
    storage: StorageBackend,
    nft: NftData,
    registry: SchemaRegistry | None = None,
) -> str:
    """
    Upload an NFT's image and metadata document.

    The document is validated against nft-metadata.schema.json and
    serialized with RFC 8785 canonical JSON, so identical metadata always
    produces identical bytes.

    Returns:
        URI of the metadata document
    """
    registry = registry or SchemaRegistry.default()

    image_uri = upload_image(storage, nft)
    document = build_metadata_document(nft, image_uri, content_type(nft))
    registry.validate_instance(document, "nft-metadata.schema.json")

    return storage.upload(
        rfc8785.dumps(document),
        f"{nft.name}.json",
        "application/json",
    )
