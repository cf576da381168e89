"""
VariantResolver — stateful selection over one product.

Every selection produces a new ResolverView (state + resolution + display)
and swaps it in with a single assignment, so readers never observe price
from one variant next to stock or images from another.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from decimal import Decimal

from kungfu import Result, Ok, Error

from storefront._types import Money, round_money
from storefront.variant._types import (
    Product,
    VariantProduct,
    ImageRef,
    SelectionState,
    Resolution,
    Resolved,
    AxisAvailability,
    SelectionError,
)
from storefront.variant._resolve import (
    availability,
    clear_option,
    resolve_variant,
    select_option,
    validate_selection,
)

logger = logging.getLogger(__name__)


# ═══════════════════════════════════════════════════════════════════════════════
# Display Snapshot
# ═══════════════════════════════════════════════════════════════════════════════


@dataclass(frozen=True, slots=True)
class VariantDisplay:
    """What the product page shows: always from exactly one source."""

    price: Money
    compare_price: Money | None
    discount_percent: int
    stock_qty: int
    in_stock: bool
    sku: str
    images: tuple[ImageRef, ...]
    variant_id: str | None


def _discount_percent(price: Money, compare_price: Money | None) -> int:
    if compare_price is None or compare_price <= price or compare_price <= 0:
        return 0
    ratio = (compare_price - price) / compare_price * Decimal(100)
    return int(round_money(ratio))


def display_for(product: Product, resolution: Resolution) -> VariantDisplay:
    """
    Display snapshot for a resolution.

    Unresolved selections show the product's base price and images.
    A variant without its own images inherits the product's.
    """
    match resolution:
        case Resolved(variant):
            return VariantDisplay(
                price=variant.price,
                compare_price=variant.compare_price,
                discount_percent=_discount_percent(variant.price, variant.compare_price),
                stock_qty=variant.stock_qty,
                in_stock=variant.stock_qty > 0,
                sku=variant.sku,
                images=variant.images or product.images,
                variant_id=variant.id,
            )
        case _:
            return VariantDisplay(
                price=product.price,
                compare_price=product.compare_price,
                discount_percent=_discount_percent(product.price, product.compare_price),
                stock_qty=product.stock_qty,
                in_stock=product.stock_qty > 0,
                sku=product.sku,
                images=product.images,
                variant_id=None,
            )


# ═══════════════════════════════════════════════════════════════════════════════
# Resolver
# ═══════════════════════════════════════════════════════════════════════════════


@dataclass(frozen=True, slots=True)
class ResolverView:
    state: SelectionState
    resolution: Resolution
    display: VariantDisplay
    grid: tuple[AxisAvailability, ...]


def _view(product: Product, state: SelectionState) -> ResolverView:
    resolution = resolve_variant(product, state)
    return ResolverView(
        state=state,
        resolution=resolution,
        display=display_for(product, resolution),
        grid=availability(product, state),
    )


class VariantResolver:
    """
    Selection session for one product page.

    Example:
        resolver = VariantResolver(product)
        resolver.select("Size", "S")
        resolver.select("Color", "Red")
        match resolver.resolution:
            case Resolved(variant): ...
    """

    def __init__(
        self,
        product: Product,
        initial: SelectionState | None = None,
    ) -> None:
        self._product = product
        self._view = _view(product, initial or SelectionState())

    @property
    def product(self) -> Product:
        return self._product

    @property
    def view(self) -> ResolverView:
        return self._view

    @property
    def state(self) -> SelectionState:
        return self._view.state

    @property
    def resolution(self) -> Resolution:
        return self._view.resolution

    @property
    def display(self) -> VariantDisplay:
        return self._view.display

    def select(self, axis: str, value: str) -> Result[ResolverView, SelectionError]:
        match select_option(self._product, self._view.state, axis, value):
            case Ok(state):
                self._view = _view(self._product, state)
                return Ok(self._view)
            case Error(err):
                logger.debug("Rejected %s=%s: %s", axis, value, err.message)
                return Error(err)

    def clear(self, axis: str) -> ResolverView:
        self._view = _view(self._product, clear_option(self._product, self.state, axis))
        return self._view

    def selected_variant(self) -> Result[VariantProduct, SelectionError]:
        """Add-to-cart gate with "Please select: ..." style messages."""
        return validate_selection(self._product, self._view.state)


# ═══════════════════════════════════════════════════════════════════════════════
# Exports
# ═══════════════════════════════════════════════════════════════════════════════

__all__ = (
    "VariantDisplay",
    "ResolverView",
    "VariantResolver",
    "display_for",
)
