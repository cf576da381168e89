"""
Checkout cart sources.

    PersistentCheckoutCart   the user's CartStore; reset after a paid order
    BuyNowCart               temporary backend cart for one product; discarded
                             on success, cancellation and close

The orchestrator only sees CheckoutCart, so a buy-now checkout can never
touch the persistent cart.
"""

from __future__ import annotations

import logging
from typing import Protocol

from kungfu import Result, Ok, Error

from storefront._types import CartId
from storefront.cart import Cart, CartService, CartStore
from storefront.checkout._types import (
    BuyNowRequest,
    CheckoutError,
    CheckoutErrorKind,
    CheckoutService,
)

logger = logging.getLogger(__name__)


class CheckoutCart(Protocol):
    @property
    def cart(self) -> Cart: ...

    @property
    def temporary(self) -> bool: ...

    async def finish_order(self) -> None:
        """Called once after verification succeeds."""
        ...

    async def release(self) -> None:
        """Called when the checkout is left without a paid order."""
        ...


class PersistentCheckoutCart:
    def __init__(self, store: CartStore) -> None:
        self._store = store

    @property
    def cart(self) -> Cart:
        return self._store.cart

    @property
    def temporary(self) -> bool:
        return False

    async def finish_order(self) -> None:
        match await self._store.reset_after_order():
            case Ok(cart):
                logger.debug("Cart reset after order (%d lines)", len(cart.lines))
            case Error(err):
                # Order is already paid; the next reload picks up the fresh cart.
                logger.error("Cart reset after order failed: %s", err.message)

    async def release(self) -> None:
        pass


class BuyNowCart:
    """
    Isolated single-product cart.

    Note: discard is attempted at most once, whatever path gets there first.
    """

    def __init__(self, cart: Cart, service: CartService) -> None:
        self._cart = cart
        self._service = service
        self._discarded = False

    @property
    def cart(self) -> Cart:
        return self._cart

    @property
    def temporary(self) -> bool:
        return True

    @property
    def discarded(self) -> bool:
        return self._discarded

    async def finish_order(self) -> None:
        await self._discard()

    async def release(self) -> None:
        await self._discard()

    async def _discard(self) -> None:
        if self._discarded or self._cart.cart_id is None:
            return
        self._discarded = True
        match await self._service.discard_cart(self._cart.cart_id):
            case Ok(_):
                logger.debug("Discarded buy-now cart %s", self._cart.cart_id)
            case Error(err):
                logger.warning(
                    "Could not discard buy-now cart %s: %s", self._cart.cart_id, err.message
                )


async def start_buy_now(
    request: BuyNowRequest,
    checkout_service: CheckoutService,
    cart_service: CartService,
) -> Result[BuyNowCart, CheckoutError]:
    """
    Create and load the temporary cart.

    If the cart is created but cannot be loaded it is discarded before
    returning the error.
    """
    match await checkout_service.buy_now(request):
        case Ok(cart_id):
            pass
        case Error(err):
            logger.error("Buy now failed for product %s: %s", request.product_id, err.message)
            return Error(
                CheckoutError(
                    kind=CheckoutErrorKind.CART_UNAVAILABLE,
                    message="Could not start checkout for this product. Please try again.",
                    original_error=err,
                )
            )

    match await cart_service.get_cart(cart_id):
        case Ok(cart):
            return Ok(BuyNowCart(cart, cart_service))
        case Error(err):
            await _discard_quietly(cart_service, cart_id)
            return Error(
                CheckoutError(
                    kind=CheckoutErrorKind.CART_UNAVAILABLE,
                    message="Could not load checkout for this product. Please try again.",
                    original_error=err,
                )
            )


async def _discard_quietly(service: CartService, cart_id: CartId) -> None:
    match await service.discard_cart(cart_id):
        case Error(err):
            logger.warning("Could not discard buy-now cart %s: %s", cart_id, err.message)
        case _:
            pass


__all__ = ("CheckoutCart", "PersistentCheckoutCart", "BuyNowCart", "start_buy_now")
