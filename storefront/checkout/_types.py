"""
Checkout types — states, session, gateway contract, collaborator protocols.
"""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass, field
from enum import Enum, auto
from typing import Protocol
from urllib.parse import urlencode

from kungfu import Result

from storefront._errors import BackendError
from storefront._types import CarrierId, CartId, Money, ProductId, VariantId, to_minor_units
from storefront.address import Address, UserAddress


# ═══════════════════════════════════════════════════════════════════════════════
# Session pieces
# ═══════════════════════════════════════════════════════════════════════════════


@dataclass(frozen=True, slots=True)
class Customer:
    email: str | None = None
    phone: str | None = None
    name: str | None = None


@dataclass(frozen=True, slots=True)
class CheckoutTotals:
    subtotal: Money
    discounted_subtotal: Money
    product_discount: Money
    shipping: Money
    total: Money
    currency: str
    item_count: int


@dataclass(frozen=True, slots=True)
class OrderDetails:
    subtotal: Money
    tax: Money
    shipping: Money
    discount_amount: Money
    total_amount: Money
    final_amount: Money


@dataclass(frozen=True, slots=True)
class PendingOrder:
    """Backend order + payment intent awaiting payment."""

    order_id: str
    payment_id: str
    gateway_order_id: str
    amount: Money
    currency: str
    key_id: str
    cart_id: CartId
    details: OrderDetails | None = None

    @property
    def amount_minor(self) -> int:
        return to_minor_units(self.amount)


@dataclass(frozen=True, slots=True)
class OrderConfirmation:
    order_id: str
    payment_id: str
    amount: Money
    currency: str

    @property
    def redirect_url(self) -> str:
        return "/order-success?" + urlencode({"order_id": self.order_id, "total": str(self.amount)})


@dataclass(frozen=True, slots=True)
class CheckoutSession:
    """
    Transient aggregate for one checkout.

    Note: billing defaults to the shipping address.
    """

    cart_id: CartId
    temporary_cart: bool = False
    saved_address: UserAddress | None = None
    shipping_address: Address | None = None
    billing_address: Address | None = None
    carrier: CarrierId | None = None
    totals: CheckoutTotals | None = None
    order: PendingOrder | None = None
    discount_code: str | None = None

    @property
    def billing(self) -> Address | None:
        return self.billing_address or self.shipping_address


# ═══════════════════════════════════════════════════════════════════════════════
# Payment gateway contract
# ═══════════════════════════════════════════════════════════════════════════════


@dataclass(frozen=True, slots=True)
class GatewaySession:
    """Everything the gateway UI needs to take one payment."""

    key_id: str
    gateway_order_id: str
    amount: Money
    currency: str
    order_id: str
    customer: Customer = field(default_factory=Customer)
    description: str = "Order payment"

    @property
    def amount_minor(self) -> int:
        """Gateways take integer minor units (paise for INR)."""
        return to_minor_units(self.amount)


@dataclass(frozen=True, slots=True)
class GatewaySuccess:
    gateway_order_id: str
    gateway_payment_id: str
    signature: str


@dataclass(frozen=True, slots=True)
class GatewayDismissed:
    """User closed the payment UI before finishing."""


@dataclass(frozen=True, slots=True)
class GatewayFailed:
    """Payment attempt failed inside the gateway (declined, etc.)."""

    reason: str
    code: str | None = None


type GatewayResult = GatewaySuccess | GatewayDismissed | GatewayFailed


@dataclass(frozen=True, slots=True)
class GatewayUnavailable:
    message: str = "Failed to load payment gateway. Please try again."


class GatewayClient(Protocol):
    async def wait_until_ready(self) -> Result[None, GatewayUnavailable]: ...

    async def open(self, session: GatewaySession) -> GatewayResult: ...


# ═══════════════════════════════════════════════════════════════════════════════
# Backend requests / services
# ═══════════════════════════════════════════════════════════════════════════════


@dataclass(frozen=True, slots=True)
class CheckoutRequest:
    cart_id: CartId
    shipping_address: Address
    billing_address: Address
    carrier: CarrierId
    shipping: Money
    buy_now: bool = False
    discount_code: str | None = None
    customer: Customer = field(default_factory=Customer)


@dataclass(frozen=True, slots=True)
class VerifyRequest:
    gateway_order_id: str
    gateway_payment_id: str
    signature: str
    payment_id: str
    order_id: str


@dataclass(frozen=True, slots=True)
class BuyNowRequest:
    product_id: ProductId
    quantity: int
    variant_id: VariantId | None = None
    selected_options: Mapping[str, str] = field(default_factory=dict)


class CheckoutService(Protocol):
    async def create_checkout(
        self, request: CheckoutRequest
    ) -> Result[PendingOrder, BackendError]: ...

    async def buy_now(self, request: BuyNowRequest) -> Result[CartId, BackendError]: ...


class PaymentVerificationService(Protocol):
    async def verify(self, request: VerifyRequest) -> Result[None, BackendError]: ...


# ═══════════════════════════════════════════════════════════════════════════════
# States
# ═══════════════════════════════════════════════════════════════════════════════


@dataclass(frozen=True, slots=True)
class AddressPending:
    notice: str | None = None


@dataclass(frozen=True, slots=True)
class ShippingPending:
    notice: str | None = None


@dataclass(frozen=True, slots=True)
class Ready:
    """Place order enabled. `notice` carries the last payment problem, if any."""

    notice: str | None = None


@dataclass(frozen=True, slots=True)
class PaymentInFlight:
    order: PendingOrder
    attempt: int


@dataclass(frozen=True, slots=True)
class Verifying:
    order: PendingOrder
    transaction: GatewaySuccess


@dataclass(frozen=True, slots=True)
class Succeeded:
    confirmation: OrderConfirmation


@dataclass(frozen=True, slots=True)
class Cancelled:
    """Gateway dismissed. Offer retry (same order) or abandon."""

    order: PendingOrder
    message: str = "Payment was cancelled. You can try again or cancel the order."


@dataclass(frozen=True, slots=True)
class Failed:
    """Verification rejected. Never retried automatically."""

    order: PendingOrder
    transaction: GatewaySuccess | None
    message: str


type CheckoutState = (
    AddressPending
    | ShippingPending
    | Ready
    | PaymentInFlight
    | Verifying
    | Succeeded
    | Cancelled
    | Failed
)


# ═══════════════════════════════════════════════════════════════════════════════
# Errors
# ═══════════════════════════════════════════════════════════════════════════════


class CheckoutErrorKind(Enum):
    NOT_READY = auto()  # Place-order gate closed
    INVALID_TRANSITION = auto()
    INVALID_ADDRESS = auto()
    GATEWAY_UNAVAILABLE = auto()  # Script never became ready, retry
    CREATE_FAILED = auto()  # Backend order creation failed, retry
    PAYMENT_FAILED = auto()  # Declined etc, back to Ready
    VERIFICATION_FAILED = auto()  # Contact support
    CART_UNAVAILABLE = auto()  # Buy-now cart could not be prepared


@dataclass(frozen=True, slots=True)
class CheckoutError:
    kind: CheckoutErrorKind
    message: str
    reference: str | None = None
    original_error: BackendError | Exception | None = None


# ═══════════════════════════════════════════════════════════════════════════════
# Exports
# ═══════════════════════════════════════════════════════════════════════════════

__all__ = (
    "Customer",
    "CheckoutTotals",
    "OrderDetails",
    "PendingOrder",
    "OrderConfirmation",
    "CheckoutSession",
    "GatewaySession",
    "GatewaySuccess",
    "GatewayDismissed",
    "GatewayFailed",
    "GatewayResult",
    "GatewayUnavailable",
    "GatewayClient",
    "CheckoutRequest",
    "VerifyRequest",
    "BuyNowRequest",
    "CheckoutService",
    "PaymentVerificationService",
    "AddressPending",
    "ShippingPending",
    "Ready",
    "PaymentInFlight",
    "Verifying",
    "Succeeded",
    "Cancelled",
    "Failed",
    "CheckoutState",
    "CheckoutErrorKind",
    "CheckoutError",
)
