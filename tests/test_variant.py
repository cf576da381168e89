"""Tests for variant selection, availability and resolution."""

import itertools
from decimal import Decimal

import pytest
from kungfu import Ok, Error

from storefront.variant import (
    Incomplete,
    NoMatch,
    Resolved,
    SelectionErrorKind,
    SelectionState,
    VariantResolver,
    availability,
    clear_option,
    resolve_variant,
    select_option,
)

from tests.fakes import V_M_BLUE, V_S_RED, shirt


def grid_row(view, axis):
    return {v.value: v for v in next(a for a in view.grid if a.axis == axis).values}


class TestSelection:
    """Left-to-right selection over Size x Color."""

    def test_size_then_missing_color_is_incomplete(self, product):
        resolver = VariantResolver(product)

        result = resolver.select("Size", "S")

        assert isinstance(result, Ok)
        assert resolver.resolution == Incomplete(("Color",))

    def test_nonexistent_combination_then_existing_one(self, product):
        """S + Blue does not exist; switching to Red resolves (S, Red)."""
        resolver = VariantResolver(product)
        resolver.select("Size", "S")

        resolver.select("Color", "Blue")
        assert isinstance(resolver.resolution, NoMatch)

        resolver.select("Color", "Red")
        match resolver.resolution:
            case Resolved(variant):
                assert variant.id == V_S_RED
            case other:
                pytest.fail(f"expected Resolved, got {other}")

    def test_later_axis_not_selectable_before_earlier(self, product):
        resolver = VariantResolver(product)

        match resolver.select("Color", "Red"):
            case Error(err):
                assert err.kind == SelectionErrorKind.NOT_SELECTABLE
                assert err.missing == ("Size",)
            case Ok(_):
                pytest.fail("Color must wait for Size")
        assert len(resolver.state) == 0

    def test_unknown_axis_and_value(self, product):
        state = SelectionState()

        match select_option(product, state, "Material", "Linen"):
            case Error(err):
                assert err.kind == SelectionErrorKind.UNKNOWN_AXIS
            case Ok(_):
                pytest.fail("unknown axis accepted")

        match select_option(product, state, "Size", "XXL"):
            case Error(err):
                assert err.kind == SelectionErrorKind.UNKNOWN_VALUE
            case Ok(_):
                pytest.fail("unknown value accepted")


class TestDownstreamClear:
    """Changing an axis drops later selections that became unreachable."""

    def test_changing_size_clears_unreachable_color(self, product):
        resolver = VariantResolver(product)
        resolver.select("Size", "S")
        resolver.select("Color", "Red")

        resolver.select("Size", "M")

        assert dict(resolver.state.selected) == {"Size": "M"}
        assert resolver.resolution == Incomplete(("Color",))

    def test_reachable_color_is_kept(self, product):
        resolver = VariantResolver(product)
        resolver.select("Size", "S")
        resolver.select("Color", "Red")

        resolver.select("Size", "S")

        assert dict(resolver.state.selected) == {"Size": "S", "Color": "Red"}

    @pytest.mark.parametrize("size", ["S", "M", "L"])
    @pytest.mark.parametrize("color", ["Red", "Blue"])
    @pytest.mark.parametrize("new_size", ["S", "M", "L"])
    def test_retained_selection_is_always_reachable(self, product, size, color, new_size):
        state = SelectionState({"Size": size, "Color": color})

        match select_option(product, state, "Size", new_size):
            case Ok(new_state):
                selected = dict(new_state.selected)
            case Error(err):
                pytest.fail(err.message)

        assert selected["Size"] == new_size
        if "Color" in selected:
            assert any(v.matches(selected) for v in product.variants)

    def test_clear_option_removes_axis_and_later(self, product):
        state = SelectionState({"Size": "S", "Color": "Red"})

        assert clear_option(product, state, "Size") == SelectionState()
        assert clear_option(product, state, "Color") == SelectionState({"Size": "S"})


class TestResolution:
    @pytest.mark.parametrize(
        "size,color", list(itertools.product(["S", "M", "L"], ["Red", "Blue"]))
    )
    def test_full_selection_is_one_variant_or_no_match(self, product, size, color):
        resolution = resolve_variant(product, SelectionState({"Size": size, "Color": color}))

        expected = {("S", "Red"): V_S_RED, ("M", "Blue"): V_M_BLUE}.get((size, color))
        match resolution:
            case Resolved(variant):
                assert variant.id == expected
            case NoMatch():
                assert expected is None
            case Incomplete():
                pytest.fail("every axis was selected")

    def test_missing_axes_in_declared_order(self, product):
        assert resolve_variant(product, SelectionState()) == Incomplete(("Size", "Color"))

    def test_selected_variant_messages(self, product):
        resolver = VariantResolver(product)

        match resolver.selected_variant():
            case Error(err):
                assert err.kind == SelectionErrorKind.INCOMPLETE
                assert err.message == "Please select: Size, Color"
            case Ok(_):
                pytest.fail("nothing selected yet")

        resolver.select("Size", "S")
        resolver.select("Color", "Blue")
        match resolver.selected_variant():
            case Error(err):
                assert err.kind == SelectionErrorKind.NO_MATCH
            case Ok(_):
                pytest.fail("S/Blue does not exist")


class TestAvailability:
    def test_values_without_a_variant_are_unavailable(self, product):
        resolver = VariantResolver(product)
        resolver.select("Size", "S")

        sizes = grid_row(resolver.view, "Size")
        colors = grid_row(resolver.view, "Color")

        assert sizes["S"].selected and sizes["S"].available
        assert not sizes["L"].available
        assert colors["Red"].available and colors["Red"].selectable
        assert not colors["Blue"].available

    def test_later_axis_not_selectable_until_earlier_chosen(self, product):
        grid = availability(product, SelectionState())

        color = next(a for a in grid if a.axis == "Color")
        assert all(not v.selectable for v in color.values)

    def test_selected_but_unavailable_value_stays_visible(self, product):
        resolver = VariantResolver(product)
        resolver.select("Size", "S")
        resolver.select("Color", "Blue")

        blue = grid_row(resolver.view, "Color")["Blue"]

        assert blue.selected
        assert not blue.available


class TestDisplay:
    def test_resolved_variant_drives_every_field(self, product):
        resolver = VariantResolver(product)
        resolver.select("Size", "S")
        resolver.select("Color", "Red")

        display = resolver.display

        assert display.variant_id == V_S_RED
        assert display.price == Decimal("500")
        assert display.compare_price == Decimal("625")
        assert display.discount_percent == 20
        assert display.in_stock
        assert display.sku == "SHIRT-S-RED"
        assert [i.url for i in display.images] == ["https://cdn.example/s-red.jpg"]

    def test_unresolved_shows_product_base(self, product):
        resolver = VariantResolver(product)
        resolver.select("Size", "S")

        display = resolver.display

        assert display.variant_id is None
        assert display.price == Decimal("450")
        assert display.sku == "SHIRT"

    def test_variant_without_images_inherits_product_images(self):
        resolver = VariantResolver(shirt())
        resolver.select("Size", "M")
        resolver.select("Color", "Blue")

        display = resolver.display

        assert display.variant_id == V_M_BLUE
        assert not display.in_stock
        assert [i.url for i in display.images] == ["https://cdn.example/shirt.jpg"]
        assert display.discount_percent == 0

    def test_view_is_one_consistent_snapshot(self, product):
        resolver = VariantResolver(product)
        before = resolver.view

        resolver.select("Size", "S")
        resolver.select("Color", "Red")

        after = resolver.view
        assert before.display.variant_id is None
        match after.resolution:
            case Resolved(variant):
                assert after.display.variant_id == variant.id
                assert after.display.price == variant.price
            case other:
                pytest.fail(f"expected Resolved, got {other}")
