"""
Variant resolution — pure functions over Product + SelectionState.

Axes are always processed in the product's declared order.
"""

from __future__ import annotations

import logging

from kungfu import Result, Ok, Error

from storefront.variant._types import (
    Product,
    VariantProduct,
    SelectionState,
    Resolution,
    Resolved,
    Incomplete,
    NoMatch,
    ValueAvailability,
    AxisAvailability,
    SelectionError,
    SelectionErrorKind,
)

logger = logging.getLogger(__name__)


# ═══════════════════════════════════════════════════════════════════════════════
# Availability
# ═══════════════════════════════════════════════════════════════════════════════


def _any_variant_matches(product: Product, constraint: dict[str, str]) -> bool:
    return any(v.matches(constraint) for v in product.variants)


def is_value_selectable(product: Product, state: SelectionState, axis: str) -> bool:
    """Axes fill left to right: every earlier axis must already have a value."""
    index = product.axis_index(axis)
    if index is None:
        return False
    return all(state.has(a) for a in product.axis_names[:index])


def is_value_available(
    product: Product,
    state: SelectionState,
    axis: str,
    value: str,
) -> bool:
    """
    Some variant matches the selected earlier axes together with `value`.

    Later axes are not constrained yet.
    """
    index = product.axis_index(axis)
    if index is None:
        return False
    constraint = state.restricted_to(product.axis_names[:index])
    constraint[axis] = value
    return _any_variant_matches(product, constraint)


def availability(product: Product, state: SelectionState) -> tuple[AxisAvailability, ...]:
    """Availability grid for every axis/value, in declared order."""
    return tuple(
        AxisAvailability(
            axis=option.name,
            values=tuple(
                ValueAvailability(
                    value=value,
                    available=is_value_available(product, state, option.name, value),
                    selectable=is_value_selectable(product, state, option.name),
                    selected=state.get(option.name) == value,
                )
                for value in option.values
            ),
        )
        for option in product.options
    )


# ═══════════════════════════════════════════════════════════════════════════════
# Selection
# ═══════════════════════════════════════════════════════════════════════════════


def select_option(
    product: Product,
    state: SelectionState,
    axis: str,
    value: str,
) -> Result[SelectionState, SelectionError]:
    """
    Set `axis` to `value` and drop every later selection that became unreachable.

    Walks later axes in order, keeping a value only while some variant matches
    all retained selections up to and including it.
    """
    index = product.axis_index(axis)
    if index is None:
        return Error(
            SelectionError(
                kind=SelectionErrorKind.UNKNOWN_AXIS,
                message=f"{product.title} has no option {axis!r}",
            )
        )
    if value not in product.options[index].values:
        return Error(
            SelectionError(
                kind=SelectionErrorKind.UNKNOWN_VALUE,
                message=f"{value!r} is not a valid {axis}",
            )
        )
    if not is_value_selectable(product, state, axis):
        missing = tuple(a for a in product.axis_names[:index] if not state.has(a))
        return Error(
            SelectionError(
                kind=SelectionErrorKind.NOT_SELECTABLE,
                message=f"Please select: {', '.join(missing)}",
                missing=missing,
            )
        )

    names = product.axis_names
    constraint = state.restricted_to(names[:index])
    constraint[axis] = value
    cleared: list[str] = []

    for later in names[index + 1 :]:
        later_value = state.get(later)
        if later_value is None:
            continue
        candidate = {**constraint, later: later_value}
        if _any_variant_matches(product, candidate):
            constraint = candidate
        else:
            cleared.append(later)

    if cleared:
        logger.debug("Selecting %s=%s cleared %s", axis, value, cleared)

    # Axes that were empty stay empty, so constraint is the whole new selection.
    return Ok(SelectionState(constraint))


def clear_option(product: Product, state: SelectionState, axis: str) -> SelectionState:
    """Remove `axis` and every later axis (they are no longer selectable)."""
    index = product.axis_index(axis)
    if index is None:
        return state
    return state.without(*product.axis_names[index:])


# ═══════════════════════════════════════════════════════════════════════════════
# Resolution
# ═══════════════════════════════════════════════════════════════════════════════


def resolve_variant(product: Product, state: SelectionState) -> Resolution:
    missing = tuple(a for a in product.axis_names if not state.has(a))
    if missing:
        return Incomplete(missing)

    selection = state.restricted_to(product.axis_names)
    matches = [v for v in product.variants if v.matches_exactly(selection)]

    match matches:
        case [variant]:
            return Resolved(variant)
        case []:
            return NoMatch(state)
        case _:
            logger.warning(
                "Product %s has %d variants for %s", product.id, len(matches), selection
            )
            return NoMatch(state)


def validate_selection(
    product: Product, state: SelectionState
) -> Result[VariantProduct, SelectionError]:
    """Resolution as a Result with user-facing messages (add-to-cart gate)."""
    match resolve_variant(product, state):
        case Resolved(variant):
            return Ok(variant)
        case Incomplete(missing):
            return Error(
                SelectionError(
                    kind=SelectionErrorKind.INCOMPLETE,
                    message=f"Please select: {', '.join(missing)}",
                    missing=missing,
                )
            )
        case NoMatch():
            return Error(
                SelectionError(
                    kind=SelectionErrorKind.NO_MATCH,
                    message="Selected combination is not available",
                )
            )


# ═══════════════════════════════════════════════════════════════════════════════
# Exports
# ═══════════════════════════════════════════════════════════════════════════════

__all__ = (
    "is_value_selectable",
    "is_value_available",
    "availability",
    "select_option",
    "clear_option",
    "resolve_variant",
    "validate_selection",
)
