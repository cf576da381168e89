"""Tests for the place-order gate and the checkout state machine."""

import asyncio
from dataclasses import replace
from decimal import Decimal

import pytest
from kungfu import Ok, Error

from storefront.cart import Cart, CartStore, ItemRef, VariantLine
from storefront.checkout import (
    AddressPending,
    Blocker,
    BuyNowRequest,
    Cancelled,
    CheckoutErrorKind,
    CheckoutOrchestrator,
    CheckoutSnapshot,
    Failed,
    GateClosed,
    GateOpen,
    GatewayDismissed,
    GatewayFailed,
    GatewaySession,
    GatewaySuccess,
    OrderGuard,
    PaymentInFlight,
    PersistentCheckoutCart,
    PollingGateway,
    Ready,
    ShippingPending,
    Succeeded,
    decide,
    start_buy_now,
)
from storefront.checkout._orchestrator import CREATE_FAILED_MESSAGE, LOGIN_REQUIRED_MESSAGE
from storefront.shipping import (
    GUEST_ADDRESS_MESSAGE,
    NO_SHIPPING_MESSAGE,
    PricedQuote,
    QuoteFailure,
    ShippingQuoter,
)

from tests.fakes import (
    FAILED_RATES,
    FakeGateway,
    P_SHIRT,
    V_S_RED,
    address,
    err,
    http_error,
    mug,
    ok,
    saved_address,
)


def paid() -> GatewaySuccess:
    return GatewaySuccess(gateway_order_id="rzp_order_1", gateway_payment_id="pay_abc", signature="sig_1")


@pytest.fixture
def make_checkout(cart_service, rate_service, checkout_service, verification_service, config):
    cart_service.put(V_S_RED, 2)

    async def make(gateway, *, guard=None, cart=None):
        if cart is None:
            cart = PersistentCheckoutCart(ok(await CartStore.open_server("user-1", cart_service)))
        return CheckoutOrchestrator(
            cart,
            ShippingQuoter(rate_service, config),
            checkout_service,
            verification_service,
            gateway,
            config=config,
            guard=guard,
        )

    return make


# ═══════════════════════════════════════════════════════════════════════════════
# Gate
# ═══════════════════════════════════════════════════════════════════════════════


class TestPlaceOrderGate:
    @pytest.mark.parametrize("empty", [False, True])
    @pytest.mark.parametrize("has_address", [True, False])
    @pytest.mark.parametrize("quote_kind", ["priced", "failed", "none"])
    @pytest.mark.parametrize("in_flight", [False, True])
    async def test_open_only_when_everything_is_in_place(self, empty, has_address, quote_kind, in_flight):
        line = VariantLine("l1", P_SHIRT, V_S_RED, "Linen Shirt", 2, Decimal("500"))
        quote = {
            "priced": PricedQuote("dhl", Decimal("180"), "INR"),
            "failed": QuoteFailure("dhl", "No route"),
            "none": None,
        }[quote_kind]
        snapshot = CheckoutSnapshot(
            cart=Cart.server("cart-1", "user-1", () if empty else (line,)),
            address=address() if has_address else None,
            carrier=None if quote is None else "dhl",
            quote=quote,
            payment_in_flight=in_flight,
        )

        decision = await decide(snapshot)

        should_open = not empty and has_address and quote_kind == "priced" and not in_flight
        assert isinstance(decision, GateOpen) == should_open
        if isinstance(decision, GateClosed):
            assert decision.blockers
            assert decision.message
            assert (Blocker.CARRIER_ERRORED in decision.blockers) == (quote_kind == "failed")
        shipping = Decimal("180") if quote_kind == "priced" else Decimal("0")
        items = Decimal("0") if empty else Decimal("1000")
        assert decision.totals.total == items + shipping


# ═══════════════════════════════════════════════════════════════════════════════
# Address / shipping
# ═══════════════════════════════════════════════════════════════════════════════


class TestCheckoutSetup:
    async def test_saved_address_makes_it_ready(self, make_checkout):
        checkout = await make_checkout(FakeGateway())

        state = await checkout.start(saved_address())

        assert state == Ready()
        assert checkout.session.carrier == "dhl"
        assert checkout.session.totals.total == Decimal("1180")
        assert await checkout.can_place_order()

    async def test_no_address_blocks(self, make_checkout, checkout_service):
        checkout = await make_checkout(FakeGateway())

        assert await checkout.start() == AddressPending()

        error = err(await checkout.place_order())
        assert error.kind == CheckoutErrorKind.NOT_READY
        assert error.message == "Please choose a shipping address."
        assert checkout_service.requests == []

    async def test_every_carrier_failed(self, make_checkout, rate_service, checkout_service):
        rate_service.rates["addr-1"] = FAILED_RATES
        checkout = await make_checkout(FakeGateway())

        state = await checkout.start(saved_address())

        assert state == ShippingPending(notice=NO_SHIPPING_MESSAGE)
        assert not await checkout.can_place_order()
        assert err(await checkout.place_order()).kind == CheckoutErrorKind.NOT_READY
        assert checkout_service.requests == []

    async def test_edited_address_is_requoted(self, make_checkout, rate_service):
        checkout = await make_checkout(FakeGateway())
        home = saved_address()
        await checkout.start(home)
        rate_service.rates["addr-1"] = FAILED_RATES

        edited = replace(home, address=address(city="Dubai", country="UAE"))
        state = ok(await checkout.select_address(edited))

        assert len(rate_service.calls) == 2
        assert state == ShippingPending(notice=NO_SHIPPING_MESSAGE)
        assert checkout.session.shipping_address.city == "Dubai"
        assert not await checkout.can_place_order()

    async def test_reselecting_same_address_keeps_quotes(self, make_checkout, rate_service):
        checkout = await make_checkout(FakeGateway())
        await checkout.start(saved_address())

        state = ok(await checkout.select_address(saved_address()))

        assert state == Ready()
        assert len(rate_service.calls) == 1

    async def test_switching_carrier_updates_totals(self, make_checkout):
        checkout = await make_checkout(FakeGateway())
        await checkout.start(saved_address())

        ok(checkout.select_carrier("aramex"))

        assert checkout.session.carrier == "aramex"
        assert checkout.session.totals.shipping == Decimal("250")
        assert checkout.session.totals.total == Decimal("1250")

    async def test_refresh_picks_up_cart_changes(self, make_checkout, cart_service):
        store = ok(await CartStore.open_server("user-1", cart_service))
        checkout = await make_checkout(FakeGateway(), cart=PersistentCheckoutCart(store))
        await checkout.start(saved_address())

        ok(await store.add(ItemRef.of(mug()), 1))
        await checkout.refresh()

        assert checkout.session.totals.item_count == 3

    async def test_guest_address_waits_for_login(self, make_checkout, rate_service):
        store = CartStore(Cart.empty_guest())
        ok(await store.add(ItemRef.of(mug()), 1))
        checkout = await make_checkout(FakeGateway(), cart=PersistentCheckoutCart(store))

        state = ok(await checkout.use_guest_address(address()))

        assert state == ShippingPending(notice=GUEST_ADDRESS_MESSAGE)
        assert rate_service.calls == []
        error = err(await checkout.place_order())
        assert error.kind == CheckoutErrorKind.CART_UNAVAILABLE
        assert error.message == LOGIN_REQUIRED_MESSAGE

    async def test_incomplete_guest_address(self, make_checkout):
        checkout = await make_checkout(FakeGateway())

        error = err(await checkout.use_guest_address(address(city="  ")))

        assert error.kind == CheckoutErrorKind.INVALID_ADDRESS
        assert error.message == "Please fill in: city"

    async def test_errored_carrier_is_rejected(self, make_checkout, rate_service):
        rate_service.rates["addr-1"] = {"aramex": {"error": "Not served"}, "dhl": 180}
        checkout = await make_checkout(FakeGateway())
        await checkout.start(saved_address())

        error = err(checkout.select_carrier("aramex"))

        assert error.kind == CheckoutErrorKind.NOT_READY
        assert checkout.session.carrier == "dhl"


# ═══════════════════════════════════════════════════════════════════════════════
# Payment
# ═══════════════════════════════════════════════════════════════════════════════


class TestPayment:
    async def test_successful_order(self, make_checkout, cart_service, checkout_service, verification_service):
        gateway = FakeGateway(paid())
        verification_service.on_verify = cart_service.lines.clear
        store = ok(await CartStore.open_server("user-1", cart_service))
        checkout = await make_checkout(gateway, cart=PersistentCheckoutCart(store))
        await checkout.start(saved_address())

        state = ok(await checkout.place_order())

        assert isinstance(state, Succeeded)
        assert state.confirmation.redirect_url == "/order-success?order_id=order-1&total=1180.00"
        [request] = checkout_service.requests
        assert (request.carrier, request.shipping, request.buy_now) == ("dhl", Decimal("180"), False)
        [session] = gateway.sessions
        assert session.amount_minor == 118000
        assert session.customer.name == "Asha Rao"
        [verify] = verification_service.requests
        assert (verify.gateway_payment_id, verify.signature, verify.payment_id) == ("pay_abc", "sig_1", "pay-1")
        assert store.cart.is_empty

    async def test_dismissed_then_retry_uses_same_order(self, make_checkout, checkout_service):
        """Closing the gateway popup cancels; retry re-opens the same order."""
        gateway = FakeGateway(GatewayDismissed(), paid())
        checkout = await make_checkout(gateway)
        await checkout.start(saved_address())

        state = ok(await checkout.place_order())
        assert isinstance(state, Cancelled)

        state = ok(await checkout.retry_payment())

        assert isinstance(state, Succeeded)
        assert len(checkout_service.requests) == 1
        assert [s.order_id for s in gateway.sessions] == ["order-1", "order-1"]

    async def test_second_click_is_a_no_op(self, make_checkout, checkout_service):
        gateway = FakeGateway(paid())
        gateway.gate = asyncio.Event()
        guard = OrderGuard()
        checkout = await make_checkout(gateway, guard=guard)
        other_tab = await make_checkout(FakeGateway(paid()), guard=guard)
        await checkout.start(saved_address())
        await other_tab.start(saved_address())

        first = asyncio.create_task(checkout.place_order())
        await asyncio.wait_for(gateway.opened.wait(), 1)

        assert isinstance(ok(await checkout.place_order()), PaymentInFlight)
        assert ok(await other_tab.place_order()) == Ready()
        assert not await other_tab.can_place_order()
        assert len(checkout_service.requests) == 1

        gateway.gate.set()
        assert isinstance(ok(await first), Succeeded)
        assert await other_tab.can_place_order()

    async def test_declined_payment_returns_to_ready(self, make_checkout, checkout_service):
        gateway = FakeGateway(GatewayFailed("Card declined"), paid())
        checkout = await make_checkout(gateway)
        await checkout.start(saved_address())

        error = err(await checkout.place_order())

        assert error.kind == CheckoutErrorKind.PAYMENT_FAILED
        assert error.message == "Payment failed: Card declined. Please try again."
        assert error.reference == "order-1"
        assert checkout.state == Ready(notice=error.message)
        assert checkout.session.order is None

        assert isinstance(ok(await checkout.place_order()), Succeeded)
        assert len(checkout_service.requests) == 2

    async def test_verification_failure_is_terminal(self, make_checkout, checkout_service, verification_service, cart_service):
        verification_service.result = Error(http_error(400, "Signature mismatch"))
        checkout = await make_checkout(FakeGateway(paid()))
        await checkout.start(saved_address())

        error = err(await checkout.place_order())

        assert error.kind == CheckoutErrorKind.VERIFICATION_FAILED
        assert error.reference == "pay_abc"
        assert "pay_abc" in error.message
        assert isinstance(checkout.state, Failed)

        assert isinstance(ok(await checkout.place_order()), Failed)
        assert len(checkout_service.requests) == 1
        assert len(verification_service.requests) == 1
        assert cart_service.lines

    async def test_gateway_never_ready(self, make_checkout, checkout_service, config):
        flags = {"ready": False}

        async def probe() -> bool:
            return flags["ready"]

        async def opener(session):
            return paid()

        checkout = await make_checkout(PollingGateway(probe, opener, config))
        await checkout.start(saved_address())

        error = err(await checkout.place_order())

        assert error.kind == CheckoutErrorKind.GATEWAY_UNAVAILABLE
        assert error.message == "Failed to load payment gateway. Please try again."
        assert checkout.state == Ready(notice=error.message)
        assert checkout_service.requests == []

        flags["ready"] = True
        assert isinstance(ok(await checkout.place_order()), Succeeded)

    async def test_order_creation_failure(self, make_checkout, checkout_service):
        checkout_service.errors.append(http_error())
        gateway = FakeGateway(paid())
        checkout = await make_checkout(gateway)
        await checkout.start(saved_address())

        error = err(await checkout.place_order())

        assert error.kind == CheckoutErrorKind.CREATE_FAILED
        assert checkout.state == Ready(notice=CREATE_FAILED_MESSAGE)
        assert gateway.sessions == []
        assert isinstance(ok(await checkout.place_order()), Succeeded)

    async def test_raising_checkout_service(self, make_checkout, checkout_service):
        checkout_service.raise_on_create = RuntimeError("connection reset")
        checkout = await make_checkout(FakeGateway(paid()))
        await checkout.start(saved_address())

        error = err(await checkout.place_order())

        assert error.kind == CheckoutErrorKind.CREATE_FAILED
        assert "connection reset" in error.original_error.message

    async def test_no_editing_while_cancelled(self, make_checkout):
        checkout = await make_checkout(FakeGateway(GatewayDismissed()))
        await checkout.start(saved_address())
        await checkout.place_order()

        error = err(checkout.select_carrier("aramex"))

        assert error.kind == CheckoutErrorKind.INVALID_TRANSITION
        assert "Cancelled" in error.message

    async def test_abandon_payment(self, make_checkout, checkout_service):
        checkout = await make_checkout(FakeGateway(GatewayDismissed(), paid()))
        await checkout.start(saved_address())
        await checkout.place_order()

        assert ok(checkout.abandon_payment()) == Ready()
        assert checkout.session.order is None

        assert isinstance(ok(await checkout.place_order()), Succeeded)
        assert len(checkout_service.requests) == 2

    async def test_late_success_after_cancel_still_verifies(self, make_checkout, verification_service):
        gateway = FakeGateway(paid())
        gateway.gate = asyncio.Event()
        checkout = await make_checkout(gateway)
        await checkout.start(saved_address())

        task = asyncio.create_task(checkout.place_order())
        await asyncio.wait_for(gateway.opened.wait(), 1)
        assert isinstance(ok(checkout.cancel()), Cancelled)
        gateway.gate.set()

        assert isinstance(ok(await task), Succeeded)
        assert len(verification_service.requests) == 1

    async def test_late_dismissal_after_cancel_is_ignored(self, make_checkout):
        gateway = FakeGateway(GatewayDismissed())
        gateway.gate = asyncio.Event()
        checkout = await make_checkout(gateway)
        await checkout.start(saved_address())

        task = asyncio.create_task(checkout.place_order())
        await asyncio.wait_for(gateway.opened.wait(), 1)
        ok(checkout.cancel())
        gateway.gate.set()
        await task

        assert isinstance(checkout.state, Cancelled)


# ═══════════════════════════════════════════════════════════════════════════════
# Buy now
# ═══════════════════════════════════════════════════════════════════════════════


class TestBuyNow:
    @pytest.fixture
    def buy_now_cart(self, cart_service):
        line = VariantLine("bn-line", P_SHIRT, V_S_RED, "Linen Shirt", 1, Decimal("500"))
        cart_service.carts["buy-now-cart"] = Cart.server("buy-now-cart", "user-1", (line,))

    async def test_close_discards_once(self, make_checkout, buy_now_cart, cart_service, checkout_service):
        temp = ok(await start_buy_now(BuyNowRequest(P_SHIRT, 1, V_S_RED), checkout_service, cart_service))
        checkout = await make_checkout(FakeGateway(), cart=temp)
        await checkout.start(saved_address())

        await checkout.close()
        await checkout.close()

        assert cart_service.discarded == ["buy-now-cart"]

    async def test_success_discards_and_leaves_persistent_cart(self, make_checkout, buy_now_cart, cart_service, checkout_service):
        temp = ok(await start_buy_now(BuyNowRequest(P_SHIRT, 1, V_S_RED), checkout_service, cart_service))
        checkout = await make_checkout(FakeGateway(paid()), cart=temp)
        await checkout.start(saved_address())

        assert isinstance(ok(await checkout.place_order()), Succeeded)
        await checkout.close()

        [request] = checkout_service.requests
        assert (request.cart_id, request.buy_now) == ("buy-now-cart", True)
        assert cart_service.discarded == ["buy-now-cart"]
        assert cart_service.lines[V_S_RED].quantity == 2

    async def test_unloadable_cart_is_discarded(self, cart_service, checkout_service):
        checkout_service.buy_now_result = Ok("missing-cart")

        error = err(await start_buy_now(BuyNowRequest(P_SHIRT, 1, V_S_RED), checkout_service, cart_service))

        assert error.kind == CheckoutErrorKind.CART_UNAVAILABLE
        assert cart_service.discarded == ["missing-cart"]

    async def test_buy_now_rejected(self, cart_service, checkout_service):
        checkout_service.buy_now_result = Error(http_error(409, "Out of stock"))

        error = err(await start_buy_now(BuyNowRequest(P_SHIRT, 1, V_S_RED), checkout_service, cart_service))

        assert error.message == "Could not start checkout for this product. Please try again."
        assert cart_service.discarded == []


# ═══════════════════════════════════════════════════════════════════════════════
# Gateway readiness
# ═══════════════════════════════════════════════════════════════════════════════


class TestPollingGateway:
    async def test_ready_after_a_few_polls(self, config):
        polls = []

        async def probe() -> bool:
            polls.append(1)
            return len(polls) >= 3

        gateway = PollingGateway(probe, None, config)

        assert ok(await gateway.wait_until_ready()) is None
        assert gateway.ready
        assert len(polls) == 3

    async def test_raising_probe_times_out(self, config):
        async def probe() -> bool:
            raise RuntimeError("script blocked")

        gateway = PollingGateway(probe, None, config)

        assert err(await gateway.wait_until_ready()).message == (
            "Failed to load payment gateway. Please try again."
        )
        assert not gateway.ready

    async def test_raising_opener_is_a_failed_payment(self, config):
        async def probe() -> bool:
            return True

        async def opener(session):
            raise RuntimeError("popup blocked")

        gateway = PollingGateway(probe, opener, config)

        result = await gateway.open(
            GatewaySession(
                key_id="rzp_key",
                gateway_order_id="rzp_order_1",
                amount=Decimal("1180"),
                currency="INR",
                order_id="order-1",
            )
        )

        assert isinstance(result, GatewayFailed)
