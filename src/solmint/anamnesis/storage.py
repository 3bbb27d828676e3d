from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path
from typing import Optional, Protocol

import httpx

from ..errors import UpstreamUnavailable
from ..utils import sha256_hex


class StorageBackend(Protocol):
    def upload(self, data: bytes, name: str, content_type: str) -> str:
        """Store data and return a URI it can be fetched from."""
        ...


@dataclass(frozen=True)
class LocalDirBackend:
    """Content-addressed files under a local directory, served as file:// URIs."""

    root: Path

    def upload(self, data: bytes, name: str, content_type: str) -> str:
        self.root.mkdir(parents=True, exist_ok=True)
        suffix = Path(name).suffix
        target = self.root / f"{sha256_hex(data)}{suffix}"
        if not target.exists():
            self._atomic_write(target, data)
        return target.resolve().as_uri()

    def _atomic_write(self, path: Path, data: bytes) -> None:
        tmp = path.with_suffix(path.suffix + ".tmp")
        try:
            with tmp.open("wb") as handle:
                handle.write(data)
                handle.flush()
                os.fsync(handle.fileno())
            tmp.replace(path)
        except Exception:
            tmp.unlink(missing_ok=True)
            raise


# ============ Pinata (IPFS) Backend ============


@dataclass(frozen=True)
class PinataBackend:
    """
    Pin files to IPFS through the Pinata API.

    Workflow:
    1. POST the file to /pinning/pinFileToIPFS with a JWT bearer token
    2. Pinata returns the content hash (CID)
    3. The URI is the gateway URL for that CID

    Attributes:
        jwt: Pinata API JWT
        gateway_url: Gateway used to build returned URIs
        api_url: Pinata API base URL
        timeout: Upload timeout in seconds
        transport: Optional httpx transport (tests use httpx.MockTransport)
    """

    jwt: str
    gateway_url: str = "https://gateway.pinata.cloud"
    api_url: str = "https://api.pinata.cloud"
    timeout: float = 60.0
    transport: Optional[httpx.BaseTransport] = None

    def upload(self, data: bytes, name: str, content_type: str) -> str:
        try:
            with httpx.Client(timeout=self.timeout, transport=self.transport) as client:
                resp = client.post(
                    f"{self.api_url}/pinning/pinFileToIPFS",
                    headers={"Authorization": f"Bearer {self.jwt}"},
                    files={"file": (name, data, content_type)},
                )
        except (httpx.HTTPError, httpx.InvalidURL) as exc:
            raise UpstreamUnavailable(f"Storage upload failed: {exc}") from exc

        if resp.status_code not in (200, 201):
            raise UpstreamUnavailable(
                f"Storage upload failed: {resp.status_code} - {resp.text}"
            )

        cid = resp.json().get("IpfsHash")
        if not cid:
            raise UpstreamUnavailable("Storage upload returned no IpfsHash")
        return f"{self.gateway_url.rstrip('/')}/ipfs/{cid}"


def default_backend(storage_dir: Optional[Path] = None) -> StorageBackend:
    """PinataBackend when PINATA_JWT is set, otherwise a local directory."""
    jwt = os.environ.get("PINATA_JWT")
    if jwt:
        gateway = os.environ.get("PINATA_GATEWAY_URL", "https://gateway.pinata.cloud")
        return PinataBackend(jwt=jwt, gateway_url=gateway)
    if storage_dir is None:
        from ..sigil.keypair import SOLMINT_DIR

        storage_dir = SOLMINT_DIR / "uploads"
    return LocalDirBackend(root=storage_dir)
