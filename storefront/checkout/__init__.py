"""
Checkout — place-order gate, payment gateway contract, orchestration.

    from storefront import checkout as Co

    checkout = Co.CheckoutOrchestrator(
        Co.PersistentCheckoutCart(store),
        quoter,
        checkout_service,
        verification_service,
        Co.PollingGateway(probe, opener, config),
        config=config,
    )
    await checkout.start(book.default)

    match await checkout.place_order():
        case Ok(Co.Succeeded(confirmation)): ...
        case Ok(Co.Cancelled()): await checkout.retry_payment()
        case Error(err): show(err.message)

Buy now:

    match await Co.start_buy_now(request, checkout_service, cart_service):
        case Ok(temp_cart):
            checkout = Co.CheckoutOrchestrator(temp_cart, ...)
"""

from storefront.checkout._types import (
    Customer,
    CheckoutTotals,
    OrderDetails,
    PendingOrder,
    OrderConfirmation,
    CheckoutSession,
    GatewaySession,
    GatewaySuccess,
    GatewayDismissed,
    GatewayFailed,
    GatewayResult,
    GatewayUnavailable,
    GatewayClient,
    CheckoutRequest,
    VerifyRequest,
    BuyNowRequest,
    CheckoutService,
    PaymentVerificationService,
    AddressPending,
    ShippingPending,
    Ready,
    PaymentInFlight,
    Verifying,
    Succeeded,
    Cancelled,
    Failed,
    CheckoutState,
    CheckoutErrorKind,
    CheckoutError,
)
from storefront.checkout._gate import (
    CheckoutSnapshot,
    Blocker,
    BLOCKER_MESSAGES,
    compute_totals,
    place_order_blockers,
    GateOpen,
    GateClosed,
    GateDecision,
    decide,
)
from storefront.checkout._gateway import PollingGateway
from storefront.checkout._carts import (
    CheckoutCart,
    PersistentCheckoutCart,
    BuyNowCart,
    start_buy_now,
)
from storefront.checkout._orchestrator import OrderGuard, CheckoutOrchestrator

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
    "CheckoutSnapshot",
    "Blocker",
    "BLOCKER_MESSAGES",
    "compute_totals",
    "place_order_blockers",
    "GateOpen",
    "GateClosed",
    "GateDecision",
    "decide",
    "PollingGateway",
    "CheckoutCart",
    "PersistentCheckoutCart",
    "BuyNowCart",
    "start_buy_now",
    "OrderGuard",
    "CheckoutOrchestrator",
)
