"""
Cart types — tagged line items, carts, errors.
"""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass, field, replace
from enum import Enum, auto
from typing import Literal

from storefront._types import (
    Money,
    ZERO,
    ProductId,
    VariantId,
    LineId,
    CartId,
    UserId,
    new_local_id,
)
from storefront._errors import BackendError
from storefront.variant import Product, VariantProduct


# ═══════════════════════════════════════════════════════════════════════════════
# Item Reference — what is being added
# ═══════════════════════════════════════════════════════════════════════════════


@dataclass(frozen=True, slots=True)
class ItemRef:
    """
    Snapshot of a purchasable thing at add-to-cart time.

    Built from a resolved variant or from a plain (axis-less) product.
    """

    product_id: ProductId
    title: str
    unit_price: Money
    variant_id: VariantId | None = None
    compare_price: Money | None = None
    sku: str = ""
    options: Mapping[str, str] = field(default_factory=dict)
    image: str | None = None

    @classmethod
    def of(cls, product: Product, variant: VariantProduct | None = None) -> ItemRef:
        if variant is None:
            return cls(
                product_id=product.id,
                title=product.title,
                unit_price=product.price,
                compare_price=product.compare_price,
                sku=product.sku,
                image=product.images[0].url if product.images else None,
            )
        images = variant.images or product.images
        return cls(
            product_id=product.id,
            title=product.title,
            unit_price=variant.price,
            variant_id=variant.id,
            compare_price=variant.compare_price,
            sku=variant.sku,
            options=dict(variant.option_values),
            image=images[0].url if images else None,
        )

    @property
    def key(self) -> str:
        return line_key_for(self.variant_id, self.product_id)


# ═══════════════════════════════════════════════════════════════════════════════
# Line Items — VariantLine | PlainLine
# ═══════════════════════════════════════════════════════════════════════════════


@dataclass(frozen=True, slots=True)
class VariantLine:
    line_id: LineId
    product_id: ProductId
    variant_id: VariantId
    title: str
    quantity: int
    unit_price: Money
    compare_price: Money | None = None
    sku: str = ""
    options: Mapping[str, str] = field(default_factory=dict)
    image: str | None = None
    kind: Literal["variant"] = "variant"

    @property
    def key(self) -> str:
        return line_key_for(self.variant_id, self.product_id)


@dataclass(frozen=True, slots=True)
class PlainLine:
    line_id: LineId
    product_id: ProductId
    title: str
    quantity: int
    unit_price: Money
    compare_price: Money | None = None
    sku: str = ""
    image: str | None = None
    kind: Literal["plain"] = "plain"

    @property
    def key(self) -> str:
        return line_key_for(None, self.product_id)


type CartLineItem = VariantLine | PlainLine


def line_key_for(variant_id: VariantId | None, product_id: ProductId) -> str:
    """Dedup identity: variant id first, product id when there is no variant."""
    if variant_id:
        return f"variant:{variant_id}"
    return f"product:{product_id}"


def line_from_ref(ref: ItemRef, quantity: int, line_id: LineId | None = None) -> CartLineItem:
    line_id = line_id or new_local_id()
    if ref.variant_id:
        return VariantLine(
            line_id=line_id,
            product_id=ref.product_id,
            variant_id=ref.variant_id,
            title=ref.title,
            quantity=quantity,
            unit_price=ref.unit_price,
            compare_price=ref.compare_price,
            sku=ref.sku,
            options=dict(ref.options),
            image=ref.image,
        )
    return PlainLine(
        line_id=line_id,
        product_id=ref.product_id,
        title=ref.title,
        quantity=quantity,
        unit_price=ref.unit_price,
        compare_price=ref.compare_price,
        sku=ref.sku,
        image=ref.image,
    )


def with_quantity(line: CartLineItem, quantity: int) -> CartLineItem:
    return replace(line, quantity=quantity)


# ═══════════════════════════════════════════════════════════════════════════════
# Cart
# ═══════════════════════════════════════════════════════════════════════════════


class CartMode(Enum):
    GUEST = auto()  # Device-local, no backend identity
    SERVER = auto()  # Backend cart tied to a user


class CartStatus(Enum):
    ACTIVE = "active"
    ABANDONED = "abandoned"
    CHECKED_OUT = "checked_out"
    EXPIRED = "expired"


@dataclass(frozen=True, slots=True)
class CartTotals:
    subtotal: Money  # at compare (list) prices
    discounted_subtotal: Money  # at selling prices
    product_discount: Money
    item_count: int


@dataclass(frozen=True, slots=True)
class Cart:
    """
    Ordered collection of lines.

    Guest carts carry `version` (bumped on every local change) and
    `merge_token` (stable for the cart's lifetime). Together they key
    the login merge. Server carts carry `cart_id` and `user_id`.
    """

    mode: CartMode
    lines: tuple[CartLineItem, ...] = ()
    cart_id: CartId | None = None
    user_id: UserId | None = None
    status: CartStatus = CartStatus.ACTIVE
    version: int = 0
    merge_token: str = ""

    @classmethod
    def empty_guest(cls) -> Cart:
        return cls(mode=CartMode.GUEST, merge_token=new_local_id())

    @classmethod
    def server(
        cls,
        cart_id: CartId,
        user_id: UserId | None,
        lines: tuple[CartLineItem, ...] = (),
        status: CartStatus = CartStatus.ACTIVE,
    ) -> Cart:
        return cls(
            mode=CartMode.SERVER,
            lines=lines,
            cart_id=cart_id,
            user_id=user_id,
            status=status,
        )

    @property
    def is_guest(self) -> bool:
        return self.mode == CartMode.GUEST

    @property
    def is_empty(self) -> bool:
        return not self.lines

    def line(self, line_id: LineId) -> CartLineItem | None:
        return next((l for l in self.lines if l.line_id == line_id), None)

    def line_by_key(self, key: str) -> CartLineItem | None:
        return next((l for l in self.lines if l.key == key), None)

    def with_lines(self, lines: tuple[CartLineItem, ...]) -> Cart:
        """New cart with these lines; guest carts bump their version."""
        version = self.version + 1 if self.is_guest else self.version
        return replace(self, lines=lines, version=version)

    @property
    def totals(self) -> CartTotals:
        discounted = sum((l.unit_price * l.quantity for l in self.lines), ZERO)
        subtotal = sum(
            ((l.compare_price or l.unit_price) * l.quantity for l in self.lines), ZERO
        )
        return CartTotals(
            subtotal=subtotal,
            discounted_subtotal=discounted,
            product_discount=max(ZERO, subtotal - discounted),
            item_count=sum(l.quantity for l in self.lines),
        )


# ═══════════════════════════════════════════════════════════════════════════════
# Errors
# ═══════════════════════════════════════════════════════════════════════════════


class CartErrorKind(Enum):
    LINE_BUSY = auto()  # Another mutation on the same line is in flight
    LINE_NOT_FOUND = auto()
    INVALID_QUANTITY = auto()
    BACKEND = auto()  # Cart service failed, local view restored
    STORAGE = auto()  # Guest storage failed, local view restored


@dataclass(frozen=True, slots=True)
class CartError:
    """
    Cart mutation error.

    Note: message is user-facing and always says what to do next.
    """

    kind: CartErrorKind
    message: str
    line_key: str | None = None
    original_error: BackendError | Exception | None = None

    @property
    def retryable(self) -> bool:
        return self.kind in (
            CartErrorKind.LINE_BUSY,
            CartErrorKind.BACKEND,
            CartErrorKind.STORAGE,
        )


# ═══════════════════════════════════════════════════════════════════════════════
# Exports
# ═══════════════════════════════════════════════════════════════════════════════

__all__ = (
    "ItemRef",
    "VariantLine",
    "PlainLine",
    "CartLineItem",
    "line_key_for",
    "line_from_ref",
    "with_quantity",
    "CartMode",
    "CartStatus",
    "CartTotals",
    "Cart",
    "CartErrorKind",
    "CartError",
)
