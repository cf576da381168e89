"""
Variant — resolve a concrete variant from partial option selections.

    from storefront import variant as V

    resolver = V.VariantResolver(product)
    resolver.select("Size", "S")
    resolver.select("Color", "Blue")

    match resolver.resolution:
        case V.Resolved(variant): ...
        case V.Incomplete(missing): ...   # prompt for missing axes
        case V.NoMatch(): ...             # combination does not exist
"""

from storefront.variant._types import (
    VariationOption,
    ImageRef,
    VariantProduct,
    Product,
    SelectionState,
    Resolved,
    Incomplete,
    NoMatch,
    Resolution,
    ValueAvailability,
    AxisAvailability,
    SelectionErrorKind,
    SelectionError,
)
from storefront.variant._resolve import (
    is_value_selectable,
    is_value_available,
    availability,
    select_option,
    clear_option,
    resolve_variant,
    validate_selection,
)
from storefront.variant._resolver import (
    VariantDisplay,
    ResolverView,
    VariantResolver,
    display_for,
)

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
    "is_value_selectable",
    "is_value_available",
    "availability",
    "select_option",
    "clear_option",
    "resolve_variant",
    "validate_selection",
    "VariantDisplay",
    "ResolverView",
    "VariantResolver",
    "display_for",
)
