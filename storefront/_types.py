"""
Core types for storefront.

Re-exports kungfu result types + shared aliases and money helpers.
"""

from __future__ import annotations

import uuid
from decimal import Decimal, ROUND_HALF_UP

# Re-export from kungfu
from kungfu import Result, Ok, Error

# ═══════════════════════════════════════════════════════════════════════════════
# Identity Aliases
# ═══════════════════════════════════════════════════════════════════════════════

type ProductId = str
type VariantId = str
type LineId = str
type CartId = str
type UserId = str
type AddressId = str
type CarrierId = str

type Money = Decimal
"""Prices are Decimal in the store currency, never float."""

ZERO = Decimal("0")

# ═══════════════════════════════════════════════════════════════════════════════
# Helpers
# ═══════════════════════════════════════════════════════════════════════════════


def money(value: object) -> Money:
    """
    Coerce a wire number/string into Money.

    Note: str() first so 499.9 does not become 499.899999...
    """
    if isinstance(value, Decimal):
        return value
    return Decimal(str(value))


def round_money(value: Money) -> Money:
    return value.quantize(Decimal("0.01"), rounding=ROUND_HALF_UP)


def to_minor_units(value: Money) -> int:
    return int((value * 100).quantize(Decimal("1"), rounding=ROUND_HALF_UP))


def from_minor_units(value: int) -> Money:
    return Decimal(value) / 100


def new_local_id() -> str:
    """Locally generated identifier (guest lines, merge tokens)."""
    return uuid.uuid4().hex


def is_uuid(value: str) -> bool:
    try:
        uuid.UUID(value)
    except (ValueError, AttributeError, TypeError):
        return False
    return True


# ═══════════════════════════════════════════════════════════════════════════════
# Exports
# ═══════════════════════════════════════════════════════════════════════════════

__all__ = (
    # Re-exports from kungfu
    "Result",
    "Ok",
    "Error",
    # Aliases
    "ProductId",
    "VariantId",
    "LineId",
    "CartId",
    "UserId",
    "AddressId",
    "CarrierId",
    "Money",
    "ZERO",
    # Helpers
    "money",
    "round_money",
    "to_minor_units",
    "from_minor_units",
    "new_local_id",
    "is_uuid",
)
