"""
Variant types — products, variation axes, selections, resolutions.
"""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass, field
from enum import Enum, auto

from storefront._types import Money, ProductId, VariantId


# ═══════════════════════════════════════════════════════════════════════════════
# Catalog Shapes
# ═══════════════════════════════════════════════════════════════════════════════


@dataclass(frozen=True, slots=True)
class VariationOption:
    """One axis of variation, e.g. Size with values (S, M, L)."""

    name: str
    values: tuple[str, ...]


@dataclass(frozen=True, slots=True)
class ImageRef:
    url: str
    position: int = 0


@dataclass(frozen=True, slots=True)
class VariantProduct:
    """
    Concrete purchasable combination of axis values.

    Note: option_values maps axis name → value. A variant of an axis-less
    product has an empty mapping.
    """

    id: VariantId
    product_id: ProductId
    price: Money
    sku: str
    stock_qty: int
    option_values: Mapping[str, str] = field(default_factory=dict)
    compare_price: Money | None = None
    images: tuple[ImageRef, ...] = ()

    def matches(self, selected: Mapping[str, str]) -> bool:
        """True if every selected axis agrees with this variant."""
        return all(self.option_values.get(k) == v for k, v in selected.items())

    def matches_exactly(self, selected: Mapping[str, str]) -> bool:
        return len(selected) == len(self.option_values) and self.matches(selected)


@dataclass(frozen=True, slots=True)
class Product:
    id: ProductId
    title: str
    price: Money
    options: tuple[VariationOption, ...] = ()
    variants: tuple[VariantProduct, ...] = ()
    brand: str | None = None
    compare_price: Money | None = None
    images: tuple[ImageRef, ...] = ()
    stock_qty: int = 0
    sku: str = ""

    @property
    def axis_names(self) -> tuple[str, ...]:
        return tuple(o.name for o in self.options)

    @property
    def has_variants(self) -> bool:
        return bool(self.options)

    def axis_index(self, axis: str) -> int | None:
        for i, option in enumerate(self.options):
            if option.name == axis:
                return i
        return None

    def variant(self, variant_id: VariantId) -> VariantProduct | None:
        return next((v for v in self.variants if v.id == variant_id), None)


# ═══════════════════════════════════════════════════════════════════════════════
# Selection State
# ═══════════════════════════════════════════════════════════════════════════════


@dataclass(frozen=True, slots=True)
class SelectionState:
    """
    Partial axis → value mapping, built left to right.

    Note: Immutable; with_value/without return new states.
    """

    selected: Mapping[str, str] = field(default_factory=dict)

    def get(self, axis: str) -> str | None:
        return self.selected.get(axis)

    def has(self, axis: str) -> bool:
        return axis in self.selected

    def with_value(self, axis: str, value: str) -> SelectionState:
        return SelectionState({**self.selected, axis: value})

    def without(self, *axes: str) -> SelectionState:
        return SelectionState(
            {k: v for k, v in self.selected.items() if k not in axes}
        )

    def restricted_to(self, axes: tuple[str, ...]) -> dict[str, str]:
        """Selected values for the given axes only."""
        return {a: self.selected[a] for a in axes if a in self.selected}

    def __len__(self) -> int:
        return len(self.selected)


# ═══════════════════════════════════════════════════════════════════════════════
# Resolution — VariantProduct | Incomplete | NoMatch
# ═══════════════════════════════════════════════════════════════════════════════


@dataclass(frozen=True, slots=True)
class Resolved:
    variant: VariantProduct


@dataclass(frozen=True, slots=True)
class Incomplete:
    """Some axes have no value yet (in declared order)."""

    missing: tuple[str, ...]


@dataclass(frozen=True, slots=True)
class NoMatch:
    """Every axis is filled but no variant has this combination."""

    selection: SelectionState


type Resolution = Resolved | Incomplete | NoMatch


# ═══════════════════════════════════════════════════════════════════════════════
# Availability
# ═══════════════════════════════════════════════════════════════════════════════


@dataclass(frozen=True, slots=True)
class ValueAvailability:
    """
    Render hints for one candidate value.

    selectable: every earlier axis has a value.
    available: some variant matches earlier selections + this value.
    A selected-but-unavailable value is shown as a browse hint.
    """

    value: str
    available: bool
    selectable: bool
    selected: bool


@dataclass(frozen=True, slots=True)
class AxisAvailability:
    axis: str
    values: tuple[ValueAvailability, ...]


# ═══════════════════════════════════════════════════════════════════════════════
# Errors
# ═══════════════════════════════════════════════════════════════════════════════


class SelectionErrorKind(Enum):
    INCOMPLETE = auto()  # Missing axis, prompt the user
    NO_MATCH = auto()  # Combination does not exist
    UNKNOWN_AXIS = auto()
    UNKNOWN_VALUE = auto()
    NOT_SELECTABLE = auto()  # Earlier axis still empty


@dataclass(frozen=True, slots=True)
class SelectionError:
    kind: SelectionErrorKind
    message: str
    missing: tuple[str, ...] = ()


# ═══════════════════════════════════════════════════════════════════════════════
# Exports
# ═══════════════════════════════════════════════════════════════════════════════

__all__ = (
    "VariationOption",
    "ImageRef",
    "VariantProduct",
    "Product",
    "SelectionState",
    "Resolved",
    "Incomplete",
    "NoMatch",
    "Resolution",
    "ValueAvailability",
    "AxisAvailability",
    "SelectionErrorKind",
    "SelectionError",
)
