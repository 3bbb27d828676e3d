"""
Ed25519 Keypair Management for solmint.

The actor identity is a single Solana keypair.  It pays fees, acts as mint
and update authority, and owns the token accounts the commands touch.

Keys are stored in ~/.solmint/.env as SECRET_KEY, using the JSON byte-array
form written by ``solana-keygen`` (a base58 secret is accepted on load).

Dependencies: solders (keypair primitives), base58, python-dotenv (.env loading)
"""

from __future__ import annotations

import json
import os
from pathlib import Path
from typing import Optional

import base58
from dotenv import load_dotenv
from solders.keypair import Keypair

from ..errors import MissingSecret


# Default config directory
SOLMINT_DIR = Path.home() / ".solmint"
SOLMINT_ENV = SOLMINT_DIR / ".env"

DEFAULT_SECRET_NAME = "SECRET_KEY"


def generate_keypair() -> Keypair:
    """Generate a new random keypair."""
    return Keypair()


def parse_secret(raw: str) -> Keypair:
    """
    Parse secret key material into a Keypair.

    Args:
        raw: Either a JSON array of 64 integers (solana-keygen format)
             or a base58-encoded 64-byte secret key.

    Returns:
        Keypair

    Raises:
        ValueError: If the material is not a valid 64-byte secret key
    """
    text = raw.strip()
    if text.startswith("["):
        try:
            values = json.loads(text)
        except json.JSONDecodeError as exc:
            raise ValueError(f"Secret key is not valid JSON: {exc}") from exc
        if not isinstance(values, list) or len(values) != 64:
            raise ValueError("Secret key array must contain exactly 64 numbers")
        if not all(isinstance(v, int) and 0 <= v <= 255 for v in values):
            raise ValueError("Secret key array must contain byte values (0-255)")
        return Keypair.from_bytes(bytes(values))

    try:
        secret = base58.b58decode(text)
    except ValueError as exc:
        raise ValueError(f"Secret key is neither a byte array nor base58: {exc}") from exc
    if len(secret) != 64:
        raise ValueError(f"Secret key must be 64 bytes, got {len(secret)}")
    return Keypair.from_bytes(secret)


def load_keypair(
    name: str = DEFAULT_SECRET_NAME,
    env_path: Optional[Path] = None,
) -> Keypair:
    """
    Load a keypair from an environment variable.

    ~/.solmint/.env (or ``env_path``) is loaded first, so values there
    override the inherited process environment.

    Args:
        name: Environment variable holding the secret key
        env_path: Path to .env file (default: ~/.solmint/.env)

    Returns:
        Keypair

    Raises:
        MissingSecret: If the variable is absent or malformed
    """
    env_path = env_path or SOLMINT_ENV

    if env_path.exists():
        load_dotenv(env_path, override=True)

    raw = os.environ.get(name)
    if not raw:
        raise MissingSecret(
            f"{name} not found. Run 'solmint genesis' or set {name} in {env_path}"
        )

    try:
        return parse_secret(raw)
    except ValueError as exc:
        raise MissingSecret(f"{name} is malformed: {exc}") from exc


def keypair_from_file(path: Path) -> Keypair:
    """Load a keypair from a solana-keygen JSON file."""
    try:
        content = path.expanduser().read_text(encoding="utf-8")
    except FileNotFoundError as exc:
        raise MissingSecret(f"Keypair file not found: {path}") from exc
    try:
        return parse_secret(content)
    except ValueError as exc:
        raise MissingSecret(f"Keypair file {path} is malformed: {exc}") from exc


def save_keypair(
    keypair: Keypair,
    name: str = DEFAULT_SECRET_NAME,
    env_path: Optional[Path] = None,
) -> Path:
    """
    Save a keypair to the .env file, preserving other entries.

    Args:
        keypair: Keypair to persist
        name: Variable name to store it under
        env_path: Path to .env file (default: ~/.solmint/.env)

    Returns:
        Path to the saved .env file
    """
    env_path = env_path or SOLMINT_ENV
    env_path.parent.mkdir(parents=True, exist_ok=True)

    existing = read_env_file(env_path)
    existing[name] = json.dumps(list(bytes(keypair)), separators=(",", ":"))

    lines = [f"{k}={v}" for k, v in existing.items()]
    env_path.write_text("\n".join(lines) + "\n", encoding="utf-8")

    # Set secure permissions on Unix
    if os.name != "nt":
        env_path.chmod(0o600)

    return env_path


def ensure_keypair(
    name: str = DEFAULT_SECRET_NAME,
    env_path: Optional[Path] = None,
) -> tuple[Keypair, bool]:
    """Load the keypair, generating and saving one if none exists.

    Returns (keypair, created).  A malformed secret is not overwritten.
    """
    env_path = env_path or SOLMINT_ENV
    try:
        return load_keypair(name, env_path), False
    except MissingSecret:
        if os.environ.get(name):
            raise
    keypair = generate_keypair()
    save_keypair(keypair, name, env_path)
    os.environ[name] = json.dumps(list(bytes(keypair)), separators=(",", ":"))
    return keypair, True


def read_env_file(env_path: Path) -> dict[str, str]:
    """Read KEY=VALUE lines from a .env file (comments and blanks skipped)."""
    existing: dict[str, str] = {}
    if env_path.exists():
        for line in env_path.read_text(encoding="utf-8").splitlines():
            stripped = line.strip()
            if stripped and not stripped.startswith("#") and "=" in stripped:
                k, v = stripped.split("=", 1)
                existing[k.strip()] = v.strip()
    return existing
