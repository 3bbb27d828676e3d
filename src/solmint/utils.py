from __future__ import annotations

import hashlib
from decimal import Decimal, InvalidOperation


def sha256_hex(data: bytes) -> str:
    return hashlib.sha256(data).hexdigest()


def to_minor_units(amount: str | int | float | Decimal, decimals: int) -> int:
    """Convert a human amount into the token's smallest unit.

    ``to_minor_units("10", 2) == 1000``.  Amounts with more fractional
    digits than the mint supports are rejected rather than rounded.
    """
    if decimals < 0:
        raise ValueError(f"decimals must be non-negative, got {decimals}")
    try:
        value = Decimal(str(amount))
    except InvalidOperation as exc:
        raise ValueError(f"Invalid amount: {amount!r}") from exc
    if not value.is_finite() or value <= 0:
        raise ValueError(f"Amount must be positive, got {amount!r}")
    scaled = value.scaleb(decimals)
    if scaled != scaled.to_integral_value():
        raise ValueError(
            f"Amount {amount} has more than {decimals} fractional digits"
        )
    return int(scaled)


def from_minor_units(raw: int, decimals: int) -> Decimal:
    return Decimal(raw).scaleb(-decimals)
