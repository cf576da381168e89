"""
Cart service protocol — what CartStore and CartMerger need from the backend.

Every operation returns the full authoritative cart (or a typed error);
the caller replaces its local copy with it.
"""

from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass
from typing import Protocol

from kungfu import Result

from storefront._errors import BackendError
from storefront._types import CartId, LineId, UserId, VariantId
from storefront.cart._types import Cart, CartStatus


@dataclass(frozen=True, slots=True)
class MergeLine:
    """One guest line sent to the backend. No price: the server re-prices."""

    variant_id: VariantId
    quantity: int


class CartService(Protocol):
    async def get_cart(self, cart_id: CartId) -> Result[Cart, BackendError]: ...

    async def get_user_cart(self, user_id: UserId) -> Result[Cart, BackendError]: ...

    async def add_item(
        self, user_id: UserId, variant_id: VariantId, quantity: int
    ) -> Result[Cart, BackendError]: ...

    async def increase_qty(
        self, user_id: UserId, line_id: LineId, variant_id: VariantId, delta: int
    ) -> Result[Cart, BackendError]: ...

    async def decrease_qty(
        self, user_id: UserId, line_id: LineId, variant_id: VariantId, delta: int
    ) -> Result[Cart, BackendError]: ...

    async def remove_item(
        self, user_id: UserId, line_id: LineId
    ) -> Result[Cart, BackendError]: ...

    async def merge_guest_cart(
        self, user_id: UserId, lines: Sequence[MergeLine], token: str
    ) -> Result[Cart, BackendError]:
        """
        Add guest lines to the user's cart.

        Note: `token` is sent as the idempotency key; replaying the same
        token must not add the lines twice.
        """
        ...

    async def update_status(
        self, cart_id: CartId, status: CartStatus
    ) -> Result[None, BackendError]: ...

    async def discard_cart(self, cart_id: CartId) -> Result[None, BackendError]: ...


__all__ = ("MergeLine", "CartService")
