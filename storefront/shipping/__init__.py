"""
Shipping — multi-carrier quoting with stale-response protection.

    from storefront import shipping as Sh

    quoter = Sh.ShippingQuoter(rate_service, config)
    state = await quoter.quote(cart_id, address)   # address=None → AwaitingAddress

    match state:
        case Sh.Quoted(quotes=q, selected=carrier): q.available   # cheapest first
        case Sh.NoShippingPossible(message=msg): ...              # contact support
"""

from storefront.shipping._types import (
    CarrierInfo,
    KNOWN_CARRIERS,
    carrier_info,
    PricedQuote,
    QuoteFailure,
    Quote,
    QuoteSet,
    GUEST_ADDRESS_MESSAGE,
    NO_SHIPPING_MESSAGE,
    AwaitingAddress,
    Quoting,
    Quoted,
    NoShippingPossible,
    QuoteState,
    ShippingErrorKind,
    ShippingError,
    ShippingRateService,
)
from storefront.shipping._rates import (
    is_rate_error,
    parse_carrier_rate,
    parse_rates,
    failed_everywhere,
)
from storefront.shipping._quoter import ShippingQuoter, auto_select

__all__ = (
    "CarrierInfo",
    "KNOWN_CARRIERS",
    "carrier_info",
    "PricedQuote",
    "QuoteFailure",
    "Quote",
    "QuoteSet",
    "GUEST_ADDRESS_MESSAGE",
    "NO_SHIPPING_MESSAGE",
    "AwaitingAddress",
    "Quoting",
    "Quoted",
    "NoShippingPossible",
    "QuoteState",
    "ShippingErrorKind",
    "ShippingError",
    "ShippingRateService",
    "is_rate_error",
    "parse_carrier_rate",
    "parse_rates",
    "failed_everywhere",
    "ShippingQuoter",
    "auto_select",
)
