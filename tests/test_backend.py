"""Tests for the httpx backend client and wire models (httpx.MockTransport)."""

import json
from decimal import Decimal
from typing import Any

import httpx
import pytest

from storefront._errors import BackendErrorKind
from storefront.address import AddressDraft
from storefront.backend import (
    IDEMPOTENCY_HEADER,
    BackendClient,
    HttpAddressService,
    HttpCartService,
    HttpCheckoutService,
    HttpPaymentVerificationService,
    HttpShippingRateService,
)
from storefront.cart import CartStatus, MergeLine, PlainLine, VariantLine
from storefront.checkout import BuyNowRequest, CheckoutRequest, Customer, VerifyRequest
from storefront.config import StorefrontConfig

from tests.fakes import P_SHIRT, V_S_RED, address, err, ok


def envelope(data: Any = None, *, success: bool = True, message: str | None = None) -> httpx.Response:
    body: dict[str, Any] = {"success": success, "data": data}
    if message is not None:
        body["message"] = message
    return httpx.Response(200, json=body)


CART = {
    "id": "cart-1",
    "user_id": "user-1",
    "status": "active",
    "CartItems": [
        {
            "id": "line-1",
            "cart_id": "cart-1",
            "variant_id": V_S_RED,
            "quantity": 2,
            "price": "450",
            "Variant": {
                "id": V_S_RED,
                "price": "500",
                "compare_price": "625",
                "sku": "SHIRT-S-RED",
                "stock_qty": 4,
                "image_urls": [
                    {"url": "https://cdn.example/back.jpg", "position": 2},
                    {"url": "https://cdn.example/front.jpg", "position": 1},
                ],
                "option_values": {"Size": "S", "Color": "Red"},
                "product_id": P_SHIRT,
                "Product": {"id": P_SHIRT, "title": "Linen Shirt"},
            },
        },
        {"id": "line-2", "variant_id": "legacy-42", "quantity": 1, "price": "99"},
    ],
}

ORDER = {
    "order_id": "order-1",
    "payment_id": "pay-1",
    "razorpay_order_id": "rzp_order_1",
    "amount": 118000,
    "currency": "INR",
    "key_id": "rzp_key",
    "order_details": {"subtotal": "1000", "shipping": "180", "final_amount": "1180"},
}


class Backend:
    """
    Scripted MockTransport handler.

    Routes match on method + path suffix. Responses are served in order and
    the last one repeats.
    """

    def __init__(self) -> None:
        self.routes: dict[tuple[str, str], list[httpx.Response | Exception]] = {}
        self.requests: list[httpx.Request] = []

    def on(self, method: str, suffix: str, *responses: httpx.Response | Exception) -> None:
        self.routes[(method, suffix)] = list(responses)

    def sent(self, suffix: str) -> list[httpx.Request]:
        return [r for r in self.requests if r.url.path.endswith(suffix)]

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        for (method, suffix), responses in self.routes.items():
            if request.method == method and request.url.path.endswith(suffix):
                response = responses.pop(0) if len(responses) > 1 else responses[0]
                if isinstance(response, Exception):
                    raise response
                return response
        return httpx.Response(404, json={"success": False, "message": "No route"})


def body_of(request: httpx.Request) -> Any:
    return json.loads(request.content)


@pytest.fixture
def backend() -> Backend:
    return Backend()


@pytest.fixture
async def client(backend):
    client = BackendClient(StorefrontConfig(), token="tok", transport=httpx.MockTransport(backend))
    yield client
    await client.aclose()


# ═══════════════════════════════════════════════════════════════════════════════
# Envelope / errors
# ═══════════════════════════════════════════════════════════════════════════════


class TestEnvelope:
    async def test_data_is_unwrapped(self, backend, client):
        backend.on("GET", "/ping", envelope({"pong": True}))

        assert ok(await client.call("GET", "/ping")) == {"pong": True}

    async def test_bearer_token_and_base_url(self, backend, client):
        backend.on("GET", "/ping", envelope())

        await client.call("GET", "/ping")

        [request] = backend.requests
        assert request.headers["Authorization"] == "Bearer tok"
        assert request.url.path == "/api/ping"

    async def test_no_token_no_header(self, backend):
        backend.on("GET", "/ping", envelope())
        async with BackendClient(transport=httpx.MockTransport(backend)) as client:
            await client.call("GET", "/ping")

        assert "Authorization" not in backend.requests[0].headers

    @pytest.mark.parametrize(
        "response,kind,transient",
        [
            (httpx.Response(401, json={"message": "Token expired"}), BackendErrorKind.UNAUTHORIZED, False),
            (httpx.Response(500, json={"message": "Boom"}), BackendErrorKind.HTTP, True),
            (httpx.Response(404, json={"message": "Missing"}), BackendErrorKind.HTTP, False),
            (envelope(success=False, message="Out of stock"), BackendErrorKind.REJECTED, False),
            (httpx.Response(200, text="<html>oops</html>"), BackendErrorKind.DECODE, False),
            (httpx.Response(200, json={"data": 1}), BackendErrorKind.DECODE, False),
        ],
    )
    async def test_error_kinds(self, backend, client, response, kind, transient):
        backend.on("GET", "/ping", response)

        error = err(await client.call("GET", "/ping"))

        assert error.kind == kind
        assert error.is_transient == transient

    async def test_backend_message_is_kept(self, backend, client):
        backend.on("GET", "/ping", envelope(success=False, message="Out of stock"))

        assert err(await client.call("GET", "/ping")).message == "Out of stock"

    async def test_transport_failure(self, backend, client):
        backend.on("GET", "/ping", httpx.ConnectError("Connection refused"))

        error = err(await client.call("GET", "/ping"))

        assert error.kind == BackendErrorKind.TRANSPORT
        assert error.is_transient
        assert isinstance(error.cause, httpx.ConnectError)


# ═══════════════════════════════════════════════════════════════════════════════
# Cart
# ═══════════════════════════════════════════════════════════════════════════════


class TestHttpCartService:
    async def test_user_cart_is_decoded_with_current_prices(self, backend, client):
        backend.on("GET", "/get-user-cart/user-1", envelope(CART))

        cart = ok(await HttpCartService(client).get_user_cart("user-1"))

        assert cart.cart_id == "cart-1"
        assert cart.status == CartStatus.ACTIVE
        first, second = cart.lines
        assert isinstance(first, VariantLine)
        assert first.unit_price == Decimal("500")
        assert first.image == "https://cdn.example/front.jpg"
        assert first.options == {"Size": "S", "Color": "Red"}
        assert first.title == "Linen Shirt"
        assert isinstance(second, PlainLine)
        assert second.unit_price == Decimal("99")

    async def test_missing_cart_is_created(self, backend, client):
        backend.on("GET", "/get-user-cart/user-1", envelope(None), envelope(CART))
        backend.on("POST", "/create-cart/user-1", envelope())

        cart = ok(await HttpCartService(client).get_user_cart("user-1"))

        assert cart.cart_id == "cart-1"
        assert len(backend.sent("/create-cart/user-1")) == 1

    async def test_mutation_rereads_cart(self, backend, client):
        backend.on("POST", "/add-item/user-1", envelope())
        backend.on("GET", "/get-user-cart/user-1", envelope(CART))

        ok(await HttpCartService(client).add_item("user-1", V_S_RED, 2))

        [add] = backend.sent("/add-item/user-1")
        assert body_of(add) == {"variant_id": V_S_RED, "quantity": 2}
        assert len(backend.sent("/get-user-cart/user-1")) == 1

    async def test_decrease_sends_negative_delta(self, backend, client):
        backend.on("PUT", "/update-item/line-1", envelope())
        backend.on("GET", "/get-user-cart/user-1", envelope(CART))

        ok(await HttpCartService(client).decrease_qty("user-1", "line-1", V_S_RED, 1))

        [update] = backend.sent("/update-item/line-1")
        assert body_of(update) == {"quantity": -1, "variant_id": V_S_RED}

    async def test_failed_mutation_does_not_reread(self, backend, client):
        backend.on("POST", "/remove-item/line-1", httpx.Response(500, json={"message": "Boom"}))

        error = err(await HttpCartService(client).remove_item("user-1", "line-1"))

        assert error.status_code == 500
        assert backend.sent("/get-user-cart/user-1") == []

    async def test_merge_carries_idempotency_key(self, backend, client):
        backend.on("POST", "/add-multiple-items/user-1", envelope())
        backend.on("GET", "/get-user-cart/user-1", envelope(CART))

        ok(await HttpCartService(client).merge_guest_cart("user-1", [MergeLine(V_S_RED, 2)], "merge:abc"))

        [merge] = backend.sent("/add-multiple-items/user-1")
        assert merge.headers[IDEMPOTENCY_HEADER] == "merge:abc"
        assert body_of(merge) == {"products": [{"variant_id": V_S_RED, "quantity": 2}]}

    async def test_status_update(self, backend, client):
        backend.on("PUT", "/update-status/cart-1", envelope())

        ok(await HttpCartService(client).update_status("cart-1", CartStatus.ABANDONED))

        assert body_of(backend.requests[0]) == {"status": "abandoned"}


# ═══════════════════════════════════════════════════════════════════════════════
# Addresses / rates
# ═══════════════════════════════════════════════════════════════════════════════


class TestHttpAddressService:
    async def test_list(self, backend, client):
        row = {"id": "addr-1", "user_id": "user-1", "address_name": "Home", "is_default": True}
        row.update(first_name="Asha", last_name="Rao", address_line_1="12 MG Road", city="Bengaluru",
                   state="KA", zip_code="560001", country="India")
        backend.on("GET", "/get-addresses/user-1", envelope([row]))

        [saved] = ok(await HttpAddressService(client).list_addresses("user-1"))

        assert saved.id == "addr-1"
        assert saved.is_default
        assert saved.address.full_name == "Asha Rao"

    async def test_list_of_wrong_shape(self, backend, client):
        backend.on("GET", "/get-addresses/user-1", envelope({"id": "addr-1"}))

        error = err(await HttpAddressService(client).list_addresses("user-1"))

        assert error.kind == BackendErrorKind.DECODE

    async def test_add_sends_flat_body(self, backend, client):
        backend.on("POST", "/add-address/user-1", envelope())

        ok(await HttpAddressService(client).add_address("user-1", AddressDraft(address(), "Home", True)))

        body = body_of(backend.requests[0])
        assert body["first_name"] == "Asha"
        assert body["address_name"] == "Home"
        assert body["is_default"] is True
        assert "company" not in body


class TestHttpShippingRateService:
    async def test_rates_by_carrier(self, backend, client):
        backend.on("POST", "/get-shipping-rates/cart-1", envelope({"aramex": 250}))

        rates = ok(await HttpShippingRateService(client).get_rates("cart-1", "addr-1"))

        assert rates == {"aramex": 250}
        assert body_of(backend.requests[0]) == {"destination_id": "addr-1"}

    async def test_non_mapping_is_decode_error(self, backend, client):
        backend.on("POST", "/get-shipping-rates/cart-1", envelope([250]))

        error = err(await HttpShippingRateService(client).get_rates("cart-1", "addr-1"))

        assert error.kind == BackendErrorKind.DECODE


# ═══════════════════════════════════════════════════════════════════════════════
# Checkout / payment
# ═══════════════════════════════════════════════════════════════════════════════


class TestHttpCheckoutService:
    def request(self) -> CheckoutRequest:
        return CheckoutRequest(
            cart_id="cart-1",
            shipping_address=address(),
            billing_address=address(),
            carrier="dhl",
            shipping=Decimal("180.00"),
            customer=Customer(email="asha@example.com"),
        )

    async def test_create_checkout(self, backend, client):
        backend.on("POST", "/order/checkout", envelope(ORDER))

        order = ok(await HttpCheckoutService(client).create_checkout(self.request()))

        assert order.amount == Decimal("1180")
        assert order.amount_minor == 118000
        assert (order.order_id, order.gateway_order_id, order.cart_id) == ("order-1", "rzp_order_1", "cart-1")
        assert order.details.final_amount == Decimal("1180")
        body = body_of(backend.requests[0])
        assert body["shipping"] == 180.0
        assert body["shipping_carrier"] == "dhl"
        assert body["customer_email"] == "asha@example.com"
        assert body["buy_now"] is False
        assert "discount_code" not in body

    async def test_bad_order_payload(self, backend, client):
        backend.on("POST", "/order/checkout", envelope({"order_id": "order-1"}))

        error = err(await HttpCheckoutService(client).create_checkout(self.request()))

        assert error.kind == BackendErrorKind.DECODE

    async def test_buy_now(self, backend, client):
        backend.on("POST", "/order/buynow", envelope({"cart_id": "buy-now-cart"}))

        cart_id = ok(await HttpCheckoutService(client).buy_now(BuyNowRequest(P_SHIRT, 1, V_S_RED)))

        assert cart_id == "buy-now-cart"
        assert body_of(backend.requests[0])["variant_id"] == V_S_RED

    async def test_verify_body(self, backend, client):
        backend.on("POST", "/payment/verify", envelope())
        request = VerifyRequest("rzp_order_1", "pay_abc", "sig_1", "pay-1", "order-1")

        ok(await HttpPaymentVerificationService(client).verify(request))

        assert body_of(backend.requests[0]) == {
            "razorpay_order_id": "rzp_order_1",
            "razorpay_payment_id": "pay_abc",
            "razorpay_signature": "sig_1",
            "payment_id": "pay-1",
            "order_id": "order-1",
        }
