"""Tests for carrier rate parsing and the shipping quoter."""

import asyncio
from dataclasses import replace
from decimal import Decimal

import pytest
from kungfu import Ok, Error

from storefront.shipping import (
    GUEST_ADDRESS_MESSAGE,
    NO_SHIPPING_MESSAGE,
    AwaitingAddress,
    NoShippingPossible,
    PricedQuote,
    QuoteFailure,
    Quoted,
    Quoting,
    ShippingErrorKind,
    ShippingQuoter,
    parse_carrier_rate,
    parse_rates,
)

from tests.fakes import FAILED_RATES, GOOD_RATES, address, err, http_error, ok, saved_address


class TestParseCarrierRate:
    def test_bare_number(self):
        quote = parse_carrier_rate("aramex", 250, "INR")

        assert quote == PricedQuote("aramex", Decimal("250"), "INR", transit="7-14 days")

    def test_amount_object(self):
        quote = parse_carrier_rate("dhl", {"amount": "180.5", "currency": "INR", "estimatedDays": 5}, "INR")

        assert isinstance(quote, PricedQuote)
        assert quote.amount == Decimal("180.5")
        assert quote.transit == "5 days"

    def test_service_list_picks_cheapest(self):
        raw = {
            "services": [
                {"title": "Express", "transit_time": "3-5 days", "price": {"logistic_fee": 900}},
                {"title": "Economy", "transit_time": "8-12 days", "price": {"logistic_fee": 320}},
                {"title": "Broken", "price": {}},
            ]
        }

        quote = parse_carrier_rate("shipGlobal", raw, "INR")

        assert isinstance(quote, PricedQuote)
        assert (quote.service, quote.amount, quote.transit) == ("Economy", Decimal("320"), "8-12 days")

    @pytest.mark.parametrize(
        "raw,message",
        [
            ({"error": "Destination not served"}, "Destination not served"),
            ({"error": {"message": "Invalid postcode"}}, "Invalid postcode"),
            (None, "No rate returned"),
            (0, "Rate unavailable"),
            ({"amount": -5}, "Rate unavailable"),
            ("n/a", "Unrecognised rate format"),
            ([1, 2], "Unrecognised rate format"),
            (True, "Unrecognised rate format"),
            ({"services": []}, "No services available"),
            ({"amount": float("nan")}, "Unrecognised rate format"),
            ({"amount": "NaN"}, "Unrecognised rate format"),
            (float("inf"), "Unrecognised rate format"),
            ("-Infinity", "Unrecognised rate format"),
            ({"services": [{"price": {"logistic_fee": float("nan")}}]}, "No services available"),
        ],
    )
    def test_failures(self, raw, message):
        quote = parse_carrier_rate("dhl", raw, "INR")

        assert quote == QuoteFailure("dhl", message)

    def test_one_quote_per_configured_carrier(self):
        quotes = parse_rates({"aramex": 250, "unlisted": 10}, ("aramex", "dhl"), "INR")

        assert set(quotes.quotes) == {"aramex", "dhl"}
        assert isinstance(quotes.get("dhl"), QuoteFailure)


class TestShippingQuoter:
    async def test_cheapest_is_auto_selected(self, rate_service, config):
        quoter = ShippingQuoter(rate_service, config)

        state = await quoter.quote("cart-1", saved_address())

        assert isinstance(state, Quoted)
        assert [q.carrier for q in state.quotes.available] == ["dhl", "aramex", "shipGlobal"]
        assert state.selected == "dhl"
        assert quoter.selected.amount == Decimal("180")

    async def test_selection_survives_requote(self, rate_service, config):
        quoter = ShippingQuoter(rate_service, config)
        await quoter.quote("cart-1", saved_address())

        ok(quoter.select("aramex"))
        state = await quoter.quote("cart-1", saved_address())

        assert state.selected == "aramex"

    async def test_all_carriers_failed(self, rate_service, config):
        rate_service.rates["addr-1"] = FAILED_RATES
        quoter = ShippingQuoter(rate_service, config)

        state = await quoter.quote("cart-1", saved_address())

        assert isinstance(state, NoShippingPossible)
        assert state.message == NO_SHIPPING_MESSAGE
        assert quoter.selected is None
        assert err(quoter.select("dhl")).kind == ShippingErrorKind.NOT_QUOTED

    async def test_backend_failure_fails_every_carrier(self, rate_service, config):
        rate_service.rates["addr-1"] = http_error(502, "Bad gateway")
        quoter = ShippingQuoter(rate_service, config)

        state = await quoter.quote("cart-1", saved_address())

        assert isinstance(state, NoShippingPossible)
        assert all(q.message == "Bad gateway" for q in state.quotes.unavailable)

    async def test_nan_rate_fails_only_that_carrier(self, rate_service, config):
        rate_service.rates["addr-1"] = {**GOOD_RATES, "dhl": {"amount": float("nan")}}
        quoter = ShippingQuoter(rate_service, config)

        state = await quoter.quote("cart-1", saved_address())

        assert isinstance(state, Quoted)
        assert isinstance(state.quotes.get("dhl"), QuoteFailure)
        assert state.selected == "aramex"

    async def test_errored_carrier_cannot_be_selected(self, rate_service, config):
        rate_service.rates["addr-1"] = {**GOOD_RATES, "aramex": {"error": "Not served"}}
        quoter = ShippingQuoter(rate_service, config)
        await quoter.quote("cart-1", saved_address())

        match quoter.select("aramex"):
            case Error(error):
                assert error.kind == ShippingErrorKind.CARRIER_UNAVAILABLE
                assert "Not served" in error.message
            case Ok(_):
                pytest.fail("errored carrier was selected")
        assert err(quoter.select("fedex")).kind == ShippingErrorKind.UNKNOWN_CARRIER
        assert quoter.selected.carrier == "dhl"

    async def test_guest_gets_no_backend_call(self, rate_service, config):
        quoter = ShippingQuoter(rate_service, config)

        state = await quoter.quote("cart-1", None)

        assert state == AwaitingAddress()
        assert state.message == GUEST_ADDRESS_MESSAGE
        assert rate_service.calls == []

    async def test_stale_response_is_dropped(self, rate_service, config):
        rate_service.gates["addr-1"] = asyncio.Event()
        rate_service.rates["addr-1"] = FAILED_RATES
        quoter = ShippingQuoter(rate_service, config)

        slow = asyncio.create_task(quoter.quote("cart-1", saved_address("addr-1")))
        await asyncio.sleep(0)
        assert isinstance(quoter.state, Quoting)

        fresh = await quoter.quote("cart-1", saved_address("addr-2"))
        rate_service.gates["addr-1"].set()
        await slow

        assert isinstance(fresh, Quoted)
        assert quoter.state == fresh
        assert quoter.current_address_id == "addr-2"

    async def test_invalidate_drops_in_flight(self, rate_service, config):
        rate_service.gates["addr-1"] = asyncio.Event()
        quoter = ShippingQuoter(rate_service, config)

        pending = asyncio.create_task(quoter.quote("cart-1", saved_address()))
        await asyncio.sleep(0)
        quoter.invalidate()
        rate_service.gates["addr-1"].set()
        await pending

        assert isinstance(quoter.state, AwaitingAddress)

    async def test_same_address_is_not_requoted(self, rate_service, config):
        quoter = ShippingQuoter(rate_service, config)
        await quoter.quote("cart-1", saved_address())

        await quoter.address_changed("cart-1", saved_address())
        await quoter.address_changed("cart-1", saved_address("addr-2"))

        assert [address_id for _, address_id in rate_service.calls] == ["addr-1", "addr-2"]

    async def test_edited_address_is_requoted(self, rate_service, config):
        quoter = ShippingQuoter(rate_service, config)
        home = saved_address()
        await quoter.quote("cart-1", home)

        await quoter.address_changed("cart-1", replace(home, address=address(city="Pune")))
        await quoter.address_changed("cart-1", replace(home, is_default=False))

        assert [address_id for _, address_id in rate_service.calls] == ["addr-1", "addr-1"]
