"""
HTTP implementations of the collaborator protocols.

    HttpCartService                 storefront.cart.CartService
    HttpAddressService              storefront.address.AddressService
    HttpShippingRateService         storefront.shipping.ShippingRateService
    HttpCheckoutService             storefront.checkout.CheckoutService
    HttpPaymentVerificationService  storefront.checkout.PaymentVerificationService

Cart mutations answer with a bare envelope, so each one re-reads the user's
cart and returns that.
"""

from __future__ import annotations

import logging
from collections.abc import Mapping, Sequence
from typing import Any

from kungfu import Result, Ok, Error

from storefront._errors import BackendError, BackendErrorKind
from storefront._types import AddressId, CarrierId, CartId, LineId, UserId, VariantId
from storefront.address import AddressDraft, UserAddress
from storefront.cart import Cart, CartStatus, MergeLine
from storefront.checkout import (
    BuyNowRequest,
    CheckoutRequest,
    PendingOrder,
    VerifyRequest,
)
from storefront.backend._client import BackendClient, decode
from storefront.backend._models import (
    AddressDraftBody,
    BuyNowBody,
    BuyNowResponseDTO,
    CartDTO,
    CheckoutBody,
    CheckoutResponseDTO,
    UserAddressDTO,
    VerifyBody,
    dump,
)

logger = logging.getLogger(__name__)

IDEMPOTENCY_HEADER = "Idempotency-Key"


def _decode_error(message: str) -> BackendError:
    return BackendError(kind=BackendErrorKind.DECODE, message=message)


# ═══════════════════════════════════════════════════════════════════════════════
# Cart
# ═══════════════════════════════════════════════════════════════════════════════


class HttpCartService:
    def __init__(self, client: BackendClient) -> None:
        self._client = client

    async def get_cart(self, cart_id: CartId) -> Result[Cart, BackendError]:
        match await self._client.call("GET", f"/user/cart/get-cart/{cart_id}"):
            case Ok(data):
                return self._cart(data)
            case Error(err):
                return Error(err)

    async def get_user_cart(self, user_id: UserId) -> Result[Cart, BackendError]:
        """The user's cart; opens one when the backend has none yet."""
        match await self._client.call("GET", f"/user/cart/get-user-cart/{user_id}"):
            case Ok(None):
                pass
            case Ok(data):
                return self._cart(data)
            case Error(err):
                return Error(err)

        logger.info("No cart for user %s, creating one", user_id)
        match await self._client.call("POST", f"/user/cart/create-cart/{user_id}"):
            case Error(err):
                return Error(err)
            case Ok(_):
                pass
        match await self._client.call("GET", f"/user/cart/get-user-cart/{user_id}"):
            case Ok(None):
                return Error(_decode_error("Cart was not created"))
            case Ok(data):
                return self._cart(data)
            case Error(err):
                return Error(err)

    async def add_item(
        self, user_id: UserId, variant_id: VariantId, quantity: int
    ) -> Result[Cart, BackendError]:
        body = {"variant_id": variant_id, "quantity": quantity}
        return await self._mutate(
            user_id, "POST", f"/user/cart/add-item/{user_id}", json=body
        )

    async def increase_qty(
        self, user_id: UserId, line_id: LineId, variant_id: VariantId, delta: int
    ) -> Result[Cart, BackendError]:
        return await self._update(user_id, line_id, variant_id, delta)

    async def decrease_qty(
        self, user_id: UserId, line_id: LineId, variant_id: VariantId, delta: int
    ) -> Result[Cart, BackendError]:
        return await self._update(user_id, line_id, variant_id, -delta)

    async def remove_item(self, user_id: UserId, line_id: LineId) -> Result[Cart, BackendError]:
        return await self._mutate(user_id, "POST", f"/user/cart/remove-item/{line_id}")

    async def merge_guest_cart(
        self, user_id: UserId, lines: Sequence[MergeLine], token: str
    ) -> Result[Cart, BackendError]:
        body = {
            "products": [{"variant_id": l.variant_id, "quantity": l.quantity} for l in lines]
        }
        return await self._mutate(
            user_id,
            "POST",
            f"/user/cart/add-multiple-items/{user_id}",
            json=body,
            headers={IDEMPOTENCY_HEADER: token},
        )

    async def update_status(self, cart_id: CartId, status: CartStatus) -> Result[None, BackendError]:
        match await self._client.call(
            "PUT", f"/user/cart/update-status/{cart_id}", json={"status": status.value}
        ):
            case Ok(_):
                return Ok(None)
            case Error(err):
                return Error(err)

    async def discard_cart(self, cart_id: CartId) -> Result[None, BackendError]:
        match await self._client.call("GET", f"/user/cart/discard-cart/{cart_id}"):
            case Ok(_):
                return Ok(None)
            case Error(err):
                return Error(err)

    async def _update(
        self, user_id: UserId, line_id: LineId, variant_id: VariantId, delta: int
    ) -> Result[Cart, BackendError]:
        # update-item takes a signed delta, not the new quantity
        body = {"quantity": delta, "variant_id": variant_id}
        return await self._mutate(user_id, "PUT", f"/user/cart/update-item/{line_id}", json=body)

    async def _mutate(
        self,
        user_id: UserId,
        method: str,
        path: str,
        *,
        json: Any = None,
        headers: Mapping[str, str] | None = None,
    ) -> Result[Cart, BackendError]:
        match await self._client.call(method, path, json=json, headers=headers):
            case Ok(_):
                return await self.get_user_cart(user_id)
            case Error(err):
                return Error(err)

    @staticmethod
    def _cart(data: Any) -> Result[Cart, BackendError]:
        match decode(CartDTO, data):
            case Ok(dto):
                return Ok(dto.to_domain())
            case Error(err):
                return Error(err)


# ═══════════════════════════════════════════════════════════════════════════════
# Addresses
# ═══════════════════════════════════════════════════════════════════════════════


class HttpAddressService:
    def __init__(self, client: BackendClient) -> None:
        self._client = client

    async def list_addresses(self, user_id: UserId) -> Result[list[UserAddress], BackendError]:
        match await self._client.call("GET", f"/user/profile/get-addresses/{user_id}"):
            case Ok(None):
                return Ok([])
            case Ok(list() as rows):
                addresses: list[UserAddress] = []
                for row in rows:
                    match decode(UserAddressDTO, row):
                        case Ok(dto):
                            addresses.append(dto.to_domain())
                        case Error(err):
                            return Error(err)
                return Ok(addresses)
            case Ok(_):
                return Error(_decode_error("Expected a list of addresses"))
            case Error(err):
                return Error(err)

    async def add_address(self, user_id: UserId, draft: AddressDraft) -> Result[None, BackendError]:
        body = dump(AddressDraftBody.from_domain(draft))
        return await self._send("POST", f"/user/profile/add-address/{user_id}", body)

    async def update_address(
        self, address_id: AddressId, draft: AddressDraft
    ) -> Result[None, BackendError]:
        body = dump(AddressDraftBody.from_domain(draft))
        return await self._send("PUT", f"/user/profile/update-address/{address_id}", body)

    async def delete_address(self, address_id: AddressId) -> Result[None, BackendError]:
        return await self._send("DELETE", f"/user/profile/delete-address/{address_id}", None)

    async def _send(self, method: str, path: str, body: Any) -> Result[None, BackendError]:
        match await self._client.call(method, path, json=body):
            case Ok(_):
                return Ok(None)
            case Error(err):
                return Error(err)


# ═══════════════════════════════════════════════════════════════════════════════
# Shipping rates
# ═══════════════════════════════════════════════════════════════════════════════


class HttpShippingRateService:
    def __init__(self, client: BackendClient) -> None:
        self._client = client

    async def get_rates(
        self, cart_id: CartId, address_id: AddressId
    ) -> Result[Mapping[CarrierId, Any], BackendError]:
        match await self._client.call(
            "POST",
            f"/user/order/get-shipping-rates/{cart_id}",
            json={"destination_id": address_id},
        ):
            case Ok(Mapping() as rates):
                return Ok(rates)
            case Ok(_):
                return Error(_decode_error("Expected per-carrier rates"))
            case Error(err):
                return Error(err)


# ═══════════════════════════════════════════════════════════════════════════════
# Checkout / payment
# ═══════════════════════════════════════════════════════════════════════════════


class HttpCheckoutService:
    def __init__(self, client: BackendClient) -> None:
        self._client = client

    async def create_checkout(self, request: CheckoutRequest) -> Result[PendingOrder, BackendError]:
        body = dump(CheckoutBody.from_domain(request))
        match await self._client.call("POST", "/user/order/checkout", json=body):
            case Ok(data):
                pass
            case Error(err):
                return Error(err)
        match decode(CheckoutResponseDTO, data):
            case Ok(dto):
                return Ok(dto.to_domain(request.cart_id))
            case Error(err):
                return Error(err)

    async def buy_now(self, request: BuyNowRequest) -> Result[CartId, BackendError]:
        body = dump(BuyNowBody.from_domain(request))
        match await self._client.call("POST", "/user/order/buynow", json=body):
            case Ok(data):
                pass
            case Error(err):
                return Error(err)
        match decode(BuyNowResponseDTO, data):
            case Ok(dto):
                return Ok(dto.cart_id)
            case Error(err):
                return Error(err)


class HttpPaymentVerificationService:
    def __init__(self, client: BackendClient) -> None:
        self._client = client

    async def verify(self, request: VerifyRequest) -> Result[None, BackendError]:
        body = dump(VerifyBody.from_domain(request))
        match await self._client.call("POST", "/user/payment/verify", json=body):
            case Ok(_):
                return Ok(None)
            case Error(err):
                return Error(err)


__all__ = (
    "IDEMPOTENCY_HEADER",
    "HttpCartService",
    "HttpAddressService",
    "HttpShippingRateService",
    "HttpCheckoutService",
    "HttpPaymentVerificationService",
)
