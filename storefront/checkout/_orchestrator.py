"""
CheckoutOrchestrator — address, shipping, payment and verification in one state machine.

    AddressPending ─→ ShippingPending ─→ Ready ─→ PaymentInFlight ─→ Verifying ─→ Succeeded
                                          ↑            │    ↑            │
                                          │            ↓    │ retry      ├─→ Failed
                                          └─ abandon ─ Cancelled ←───────┘ cancel

Every collaborator failure comes back as a CheckoutError value and a state
the UI can render. Nothing here raises past the orchestrator.
"""

from __future__ import annotations

import logging
from collections.abc import Awaitable, Callable
from dataclasses import replace

from combinators import lift as L
from kungfu import Result, Ok, Error

from storefront._errors import BackendError, BackendErrorKind
from storefront._types import CarrierId, CartId
from storefront.address import Address, UserAddress, validate_address
from storefront.cart import AbandonmentTimer
from storefront.config import StorefrontConfig
from storefront.shipping import (
    AwaitingAddress,
    NoShippingPossible,
    PricedQuote,
    Quote,
    Quoted,
    ShippingQuoter,
)
from storefront.checkout._carts import CheckoutCart
from storefront.checkout._gate import (
    BLOCKER_MESSAGES,
    Blocker,
    CheckoutSnapshot,
    GateClosed,
    GateDecision,
    GateOpen,
    compute_totals,
    decide,
)
from storefront.checkout._types import (
    AddressPending,
    Cancelled,
    CheckoutError,
    CheckoutErrorKind,
    CheckoutRequest,
    CheckoutService,
    CheckoutSession,
    CheckoutState,
    Customer,
    Failed,
    GatewayClient,
    GatewayDismissed,
    GatewayFailed,
    GatewayResult,
    GatewaySession,
    GatewaySuccess,
    OrderConfirmation,
    PaymentInFlight,
    PaymentVerificationService,
    PendingOrder,
    Ready,
    ShippingPending,
    Succeeded,
    Verifying,
    VerifyRequest,
)

logger = logging.getLogger(__name__)

CREATE_FAILED_MESSAGE = "Could not create your order. Please try again."
LOGIN_REQUIRED_MESSAGE = "Please log in to place your order."


# ═══════════════════════════════════════════════════════════════════════════════
# Order guard
# ═══════════════════════════════════════════════════════════════════════════════


class OrderGuard:
    """
    Carts with an order being placed or paid.

    Note: share one guard between orchestrators that may see the same cart.
    """

    def __init__(self) -> None:
        self._held: set[CartId] = set()

    def held(self, cart_id: CartId) -> bool:
        return cart_id in self._held

    def acquire(self, cart_id: CartId) -> bool:
        if cart_id in self._held:
            return False
        self._held.add(cart_id)
        return True

    def release(self, cart_id: CartId) -> None:
        self._held.discard(cart_id)


# ═══════════════════════════════════════════════════════════════════════════════
# Orchestrator
# ═══════════════════════════════════════════════════════════════════════════════


class CheckoutOrchestrator:
    """
    Drives one checkout session.

    Example:
        checkout = CheckoutOrchestrator(
            PersistentCheckoutCart(store), quoter, checkout_service,
            verification_service, gateway, config=config,
        )
        await checkout.start(book.default)
        match await checkout.place_order():
            case Ok(Succeeded(confirmation)):
                redirect(confirmation.redirect_url)
            case Ok(Cancelled()):
                ...                         # offer retry_payment / abandon_payment
            case Error(err):
                show(err.message)
    """

    def __init__(
        self,
        cart: CheckoutCart,
        quoter: ShippingQuoter,
        checkout_service: CheckoutService,
        verification_service: PaymentVerificationService,
        gateway: GatewayClient,
        *,
        config: StorefrontConfig | None = None,
        customer: Customer | None = None,
        guard: OrderGuard | None = None,
        timer: AbandonmentTimer | None = None,
        discount_code: str | None = None,
    ) -> None:
        self._cart = cart
        self._quoter = quoter
        self._checkout_service = checkout_service
        self._verification = verification_service
        self._gateway = gateway
        self._config = config or StorefrontConfig()
        self._customer = customer or Customer()
        self._guard = guard or OrderGuard()
        self._timer = timer
        self._session = CheckoutSession(
            cart_id=cart.cart.cart_id or "",
            temporary_cart=cart.temporary,
            discount_code=discount_code,
        )
        self._state: CheckoutState = AddressPending()
        self._attempt = 0
        self._closed = False

    # ───────────────────────────────────────────────────────────────────────────
    # Read side
    # ───────────────────────────────────────────────────────────────────────────

    @property
    def state(self) -> CheckoutState:
        return self._state

    @property
    def session(self) -> CheckoutSession:
        return self._session

    @property
    def quoter(self) -> ShippingQuoter:
        return self._quoter

    def snapshot(self) -> CheckoutSnapshot:
        return self._snapshot(in_flight=self._payment_pending())

    async def gate(self) -> GateDecision:
        return await decide(self.snapshot())

    async def can_place_order(self) -> bool:
        return isinstance(await self.gate(), GateOpen)

    # ───────────────────────────────────────────────────────────────────────────
    # Address / shipping
    # ───────────────────────────────────────────────────────────────────────────

    async def start(self, address: UserAddress | None = None) -> CheckoutState:
        """Open the session, pre-selecting `address` (usually the default one)."""
        if address is not None:
            match await self.select_address(address):
                case Ok(state):
                    return state
                case Error(_):
                    return self._state
        return self._transition(self._settle())

    async def select_address(self, address: UserAddress) -> Result[CheckoutState, CheckoutError]:
        """Use a saved address; re-quotes shipping unless it is already quoted."""
        if (err := self._require_editable("change the address")) is not None:
            return Error(err)
        self._session = replace(
            self._session, saved_address=address, shipping_address=address.address
        )
        self._transition(ShippingPending())
        await self._quoter.address_changed(self._cart_id, address)
        return Ok(self._transition(self._settle()))

    async def use_guest_address(self, address: Address) -> Result[CheckoutState, CheckoutError]:
        """Use guest form fields. There is no saved address to quote against."""
        if (err := self._require_editable("change the address")) is not None:
            return Error(err)
        match validate_address(address):
            case Error(invalid):
                return Error(
                    CheckoutError(kind=CheckoutErrorKind.INVALID_ADDRESS, message=invalid.message)
                )
            case Ok(_):
                pass
        self._session = replace(self._session, saved_address=None, shipping_address=address)
        self._transition(ShippingPending())
        await self._quoter.quote(self._cart_id, None)
        return Ok(self._transition(self._settle()))

    def set_billing_address(self, address: Address | None) -> Result[CheckoutState, CheckoutError]:
        """None means "same as shipping"."""
        if (err := self._require_editable("change the billing address")) is not None:
            return Error(err)
        if address is not None:
            match validate_address(address):
                case Error(invalid):
                    return Error(
                        CheckoutError(
                            kind=CheckoutErrorKind.INVALID_ADDRESS, message=invalid.message
                        )
                    )
                case Ok(_):
                    pass
        self._session = replace(self._session, billing_address=address)
        return Ok(self._state)

    def select_carrier(self, carrier: CarrierId) -> Result[CheckoutState, CheckoutError]:
        if (err := self._require_editable("change the shipping method")) is not None:
            return Error(err)
        match self._quoter.select(carrier):
            case Ok(_):
                return Ok(self._transition(self._settle()))
            case Error(shipping_err):
                return Error(
                    CheckoutError(kind=CheckoutErrorKind.NOT_READY, message=shipping_err.message)
                )

    async def refresh(self) -> CheckoutState:
        """
        Re-read what the session depends on: shipping quotes and totals.

        Note: runs after cart changes. Payment states are left alone.
        """
        if not self._editable():
            return self._state
        saved = self._session.saved_address
        if saved is not None:
            await self._quoter.quote(self._cart_id, saved)
        return self._transition(self._settle(self._notice()))

    # ───────────────────────────────────────────────────────────────────────────
    # Payment
    # ───────────────────────────────────────────────────────────────────────────

    async def place_order(self) -> Result[CheckoutState, CheckoutError]:
        """
        Create the backend order and open the payment UI.

        A second call while an order for this cart is being placed or paid
        returns the current state and does nothing else.
        """
        cart_id = self._cart.cart.cart_id
        if cart_id is None:
            return Error(
                CheckoutError(
                    kind=CheckoutErrorKind.CART_UNAVAILABLE, message=LOGIN_REQUIRED_MESSAGE
                )
            )
        if self._payment_pending():
            logger.debug("Place order ignored: payment already in progress for cart %s", cart_id)
            return Ok(self._state)
        if not self._editable():
            return Error(self._invalid_transition("place the order"))

        self._guard.acquire(cart_id)

        decision = await decide(self._snapshot(in_flight=False))
        match decision:
            case GateClosed() as closed:
                self._guard.release(cart_id)
                return Error(
                    CheckoutError(kind=CheckoutErrorKind.NOT_READY, message=closed.message)
                )
            case GateOpen() as opened:
                pass

        match await self._gateway.wait_until_ready():
            case Error(unavailable):
                self._guard.release(cart_id)
                self._transition(self._settle(unavailable.message))
                return Error(
                    CheckoutError(
                        kind=CheckoutErrorKind.GATEWAY_UNAVAILABLE, message=unavailable.message
                    )
                )
            case Ok(_):
                pass

        request = self._checkout_request(cart_id, opened)
        match await _guarded(lambda: self._checkout_service.create_checkout(request)):
            case Error(err):
                self._guard.release(cart_id)
                logger.error("Checkout creation failed for cart %s: %s", cart_id, err.message)
                self._transition(self._settle(CREATE_FAILED_MESSAGE))
                return Error(
                    CheckoutError(
                        kind=CheckoutErrorKind.CREATE_FAILED,
                        message=CREATE_FAILED_MESSAGE,
                        original_error=err,
                    )
                )
            case Ok(order):
                pass

        logger.info("Order %s created for cart %s", order.order_id, cart_id)
        self._session = replace(self._session, order=order, totals=opened.totals)
        return await self._pay(order)

    async def retry_payment(self) -> Result[CheckoutState, CheckoutError]:
        """Re-open the payment UI for the same order. No new backend order is created."""
        match self._state:
            case Cancelled(order=order):
                logger.info("Retrying payment for order %s", order.order_id)
                return await self._pay(order)
            case _:
                return Error(self._invalid_transition("retry the payment"))

    def abandon_payment(self) -> Result[CheckoutState, CheckoutError]:
        """Forget the pending order and go back to Ready."""
        match self._state:
            case Cancelled(order=order):
                logger.info("Payment abandoned for order %s", order.order_id)
                self._drop_order(order)
                return Ok(self._transition(self._settle()))
            case _:
                return Error(self._invalid_transition("abandon the payment"))

    def cancel(self) -> Result[CheckoutState, CheckoutError]:
        """
        User left the payment step.

        Note: a gateway success or a verification result that lands after
        this still wins, since money may have moved.
        """
        match self._state:
            case PaymentInFlight(order=order) | Verifying(order=order):
                self._attempt += 1
                return Ok(self._transition(Cancelled(order=order)))
            case _:
                return Error(self._invalid_transition("cancel the payment"))

    async def close(self) -> None:
        """Leave checkout. A temporary cart is discarded unless the order succeeded."""
        if self._closed:
            return
        self._closed = True
        self._attempt += 1
        self._quoter.invalidate()
        if isinstance(self._state, Succeeded):
            return
        if isinstance(self._state, Cancelled | PaymentInFlight):
            self._drop_order(self._state.order)
        elif self._session.cart_id and not isinstance(self._state, Failed | Verifying):
            self._guard.release(self._session.cart_id)
        await self._cart.release()

    # ───────────────────────────────────────────────────────────────────────────
    # Payment internals
    # ───────────────────────────────────────────────────────────────────────────

    async def _pay(self, order: PendingOrder) -> Result[CheckoutState, CheckoutError]:
        self._attempt += 1
        attempt = self._attempt
        self._transition(PaymentInFlight(order=order, attempt=attempt))

        result = await self._open_gateway(self._gateway_session(order))

        if attempt != self._attempt and not isinstance(result, GatewaySuccess):
            logger.warning("Ignoring late gateway result for order %s", order.order_id)
            return Ok(self._state)

        match result:
            case GatewaySuccess() as transaction:
                return await self._verify(order, transaction)
            case GatewayDismissed():
                logger.info("Payment dismissed for order %s", order.order_id)
                return Ok(self._transition(Cancelled(order=order)))
            case GatewayFailed(reason=reason):
                message = f"Payment failed: {reason}. Please try again."
                logger.warning("Payment failed for order %s: %s", order.order_id, reason)
                self._drop_order(order)
                self._transition(self._settle(message))
                return Error(
                    CheckoutError(
                        kind=CheckoutErrorKind.PAYMENT_FAILED,
                        message=message,
                        reference=order.order_id,
                    )
                )

    async def _verify(
        self, order: PendingOrder, transaction: GatewaySuccess
    ) -> Result[CheckoutState, CheckoutError]:
        self._transition(Verifying(order=order, transaction=transaction))
        request = VerifyRequest(
            gateway_order_id=transaction.gateway_order_id,
            gateway_payment_id=transaction.gateway_payment_id,
            signature=transaction.signature,
            payment_id=order.payment_id,
            order_id=order.order_id,
        )
        match await _guarded(lambda: self._verification.verify(request)):
            case Ok(_):
                confirmation = OrderConfirmation(
                    order_id=order.order_id,
                    payment_id=transaction.gateway_payment_id,
                    amount=order.amount,
                    currency=order.currency,
                )
                logger.info("Order %s paid (%s)", order.order_id, transaction.gateway_payment_id)
                self._transition(Succeeded(confirmation=confirmation))
                await self._cart.finish_order()
                if self._timer is not None:
                    self._timer.reset()
                self._guard.release(order.cart_id)
                return Ok(self._state)
            case Error(err):
                reference = transaction.gateway_payment_id
                message = (
                    "Payment verification failed. "
                    f"Please contact support with payment reference {reference}."
                )
                logger.warning(
                    "Verification failed for order %s (payment %s): %s",
                    order.order_id,
                    reference,
                    err.message,
                )
                self._transition(Failed(order=order, transaction=transaction, message=message))
                return Error(
                    CheckoutError(
                        kind=CheckoutErrorKind.VERIFICATION_FAILED,
                        message=message,
                        reference=reference,
                        original_error=err,
                    )
                )

    async def _open_gateway(self, session: GatewaySession) -> GatewayResult:
        match await L.catching_async(lambda: self._gateway.open(session), on_error=str):
            case Ok(result):
                return result
            case Error(reason):
                logger.error("Payment gateway raised for order %s: %s", session.order_id, reason)
                return GatewayFailed(reason="Payment could not be started")

    def _drop_order(self, order: PendingOrder) -> None:
        self._session = replace(self._session, order=None)
        self._guard.release(order.cart_id)

    # ───────────────────────────────────────────────────────────────────────────
    # State internals
    # ───────────────────────────────────────────────────────────────────────────

    @property
    def _cart_id(self) -> CartId:
        return self._cart.cart.cart_id or ""

    def _editable(self) -> bool:
        return isinstance(self._state, AddressPending | ShippingPending | Ready)

    def _payment_pending(self) -> bool:
        if isinstance(self._state, PaymentInFlight | Verifying | Cancelled):
            return True
        cart_id = self._cart.cart.cart_id
        return cart_id is not None and self._guard.held(cart_id)

    def _require_editable(self, action: str) -> CheckoutError | None:
        return None if self._editable() else self._invalid_transition(action)

    def _invalid_transition(self, action: str) -> CheckoutError:
        return CheckoutError(
            kind=CheckoutErrorKind.INVALID_TRANSITION,
            message=f"Cannot {action} right now ({type(self._state).__name__}).",
        )

    def _selected_quote(self) -> tuple[CarrierId | None, Quote | None]:
        match self._quoter.state:
            case Quoted(selected=carrier) as quoted if carrier is not None:
                return carrier, quoted.selected_quote
            case _:
                return None, None

    def _snapshot(self, *, in_flight: bool) -> CheckoutSnapshot:
        carrier, quote = self._selected_quote()
        return CheckoutSnapshot(
            cart=self._cart.cart,
            address=self._session.shipping_address,
            carrier=carrier,
            quote=quote,
            payment_in_flight=in_flight,
            currency=self._config.currency,
        )

    def _notice(self) -> str | None:
        match self._state:
            case AddressPending(notice=notice) | ShippingPending(notice=notice) | Ready(notice=notice):
                return notice
            case _:
                return None

    def _settle(self, notice: str | None = None) -> CheckoutState:
        """Recompute session totals and the pre-payment state."""
        cart = self._cart.cart
        carrier, quote = self._selected_quote()
        self._session = replace(
            self._session,
            cart_id=cart.cart_id or self._session.cart_id,
            carrier=carrier,
            totals=compute_totals(cart, quote, self._config.currency),
        )
        if self._session.shipping_address is None:
            return AddressPending(notice=notice)
        if cart.is_empty:
            return ShippingPending(notice=notice or BLOCKER_MESSAGES[Blocker.EMPTY_CART])
        if not isinstance(quote, PricedQuote):
            return ShippingPending(notice=notice or self._quote_notice())
        return Ready(notice=notice)

    def _quote_notice(self) -> str | None:
        match self._quoter.state:
            case AwaitingAddress(message=message) | NoShippingPossible(message=message):
                return message
            case Quoted():
                return BLOCKER_MESSAGES[Blocker.NO_CARRIER]
            case _:
                return None

    def _transition(self, state: CheckoutState) -> CheckoutState:
        if state != self._state:
            logger.debug("Checkout %s: %s -> %s", self._cart_id, self._state, state)
        self._state = state
        return state

    # ───────────────────────────────────────────────────────────────────────────
    # Requests
    # ───────────────────────────────────────────────────────────────────────────

    def _checkout_request(self, cart_id: CartId, opened: GateOpen) -> CheckoutRequest:
        shipping = self._session.shipping_address
        billing = self._session.billing
        if shipping is None or billing is None:
            raise RuntimeError("Place-order gate opened without a shipping address")
        return CheckoutRequest(
            cart_id=cart_id,
            shipping_address=shipping,
            billing_address=billing,
            carrier=opened.quote.carrier,
            shipping=opened.totals.shipping,
            buy_now=self._cart.temporary,
            discount_code=self._session.discount_code,
            customer=self._customer_for(shipping),
        )

    def _customer_for(self, address: Address) -> Customer:
        return Customer(
            email=self._customer.email,
            phone=self._customer.phone or address.phone,
            name=self._customer.name or address.full_name,
        )

    def _gateway_session(self, order: PendingOrder) -> GatewaySession:
        shipping = self._session.shipping_address
        return GatewaySession(
            key_id=order.key_id,
            gateway_order_id=order.gateway_order_id,
            amount=order.amount,
            currency=order.currency,
            order_id=order.order_id,
            customer=self._customer_for(shipping) if shipping is not None else self._customer,
        )


# ═══════════════════════════════════════════════════════════════════════════════
# Helpers
# ═══════════════════════════════════════════════════════════════════════════════


async def _guarded[T](
    call: Callable[[], Awaitable[Result[T, BackendError]]],
) -> Result[T, BackendError]:
    """Collaborator call whose exceptions become TRANSPORT errors."""
    match await L.catching_async(call, on_error=_transport_error):
        case Ok(result):
            return result
        case Error(err):
            return Error(err)


def _transport_error(e: Exception) -> BackendError:
    return BackendError(kind=BackendErrorKind.TRANSPORT, message=str(e), cause=e)


# ═══════════════════════════════════════════════════════════════════════════════
# Exports
# ═══════════════════════════════════════════════════════════════════════════════

__all__ = ("OrderGuard", "CheckoutOrchestrator")
