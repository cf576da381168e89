"""
ShippingQuoter — one live quote set per checkout.

Every request takes a fresh token. A response whose token is no longer
the latest (address changed, quoter invalidated) is dropped on arrival.
"""

from __future__ import annotations

import logging

from kungfu import Result, Ok, Error

from storefront._types import CarrierId, CartId
from storefront.address import Address, UserAddress
from storefront.config import StorefrontConfig
from storefront.shipping._types import (
    AwaitingAddress,
    NoShippingPossible,
    PricedQuote,
    QuoteFailure,
    QuoteSet,
    QuoteState,
    Quoted,
    Quoting,
    ShippingError,
    ShippingErrorKind,
    ShippingRateService,
)
from storefront.shipping._rates import failed_everywhere, parse_rates

logger = logging.getLogger(__name__)


def auto_select(quotes: QuoteSet, current: CarrierId | None) -> CarrierId | None:
    """Keep `current` while it is still priced, else the cheapest priced carrier."""
    if current is not None and isinstance(quotes.get(current), PricedQuote):
        return current
    cheapest = quotes.cheapest
    return cheapest.carrier if cheapest is not None else None


class ShippingQuoter:
    """
    Quotes every configured carrier for a cart + saved address.

    Example:
        quoter = ShippingQuoter(rate_service, config)
        match await quoter.quote(cart_id, book.default):
            case Quoted(quotes, selected=carrier): ...
            case NoShippingPossible(message=msg): ...   # contact support
            case AwaitingAddress(message=msg): ...      # guest / no address
    """

    def __init__(
        self,
        service: ShippingRateService,
        config: StorefrontConfig | None = None,
    ) -> None:
        self._service = service
        self._config = config or StorefrontConfig()
        self._token = 0
        self._state: QuoteState = AwaitingAddress()
        self._preferred: CarrierId | None = None
        self._quoted: Address | None = None

    @property
    def state(self) -> QuoteState:
        return self._state

    @property
    def selected(self) -> PricedQuote | None:
        match self._state:
            case Quoted() as quoted:
                quote = quoted.selected_quote
                return quote if isinstance(quote, PricedQuote) else None
            case _:
                return None

    @property
    def current_address_id(self) -> str | None:
        match self._state:
            case Quoting(address_id=address_id) | Quoted(address_id=address_id):
                return address_id
            case NoShippingPossible(address_id=address_id):
                return address_id
            case _:
                return None

    def invalidate(self) -> QuoteState:
        """Forget the quote set; any response still in flight is ignored."""
        self._token += 1
        self._quoted = None
        self._state = AwaitingAddress()
        return self._state

    async def quote(self, cart_id: CartId, address: UserAddress | None) -> QuoteState:
        """
        Request fresh quotes for `address`.

        No saved address (guest) means no backend call and AwaitingAddress.
        """
        self._token += 1
        token = self._token
        self._quoted = address.address if address is not None else None
        if address is None:
            self._state = AwaitingAddress()
            return self._state

        self._state = Quoting(token=token, address_id=address.id)
        logger.debug("Quoting cart %s to address %s (token %d)", cart_id, address.id, token)

        carriers = self._config.carriers
        match await self._service.get_rates(cart_id, address.id):
            case Ok(raw):
                quotes = parse_rates(raw, carriers, self._config.currency)
            case Error(err):
                logger.error("Shipping rates failed for cart %s: %s", cart_id, err.message)
                quotes = failed_everywhere(carriers, err.message)

        if token != self._token:
            logger.warning("Dropping stale shipping quotes (token %d, latest %d)", token, self._token)
            return self._state

        if quotes.all_failed:
            self._state = NoShippingPossible(quotes=quotes, address_id=address.id)
        else:
            self._state = Quoted(
                quotes=quotes,
                address_id=address.id,
                selected=auto_select(quotes, self._preferred),
            )
            self._preferred = self._state.selected
        return self._state

    async def address_changed(self, cart_id: CartId, address: UserAddress | None) -> QuoteState:
        """Re-quote unless this exact address (same id and contents) is already quoted."""
        if (
            address is not None
            and address.id == self.current_address_id
            and address.address == self._quoted
        ):
            return self._state
        return await self.quote(cart_id, address)

    def select(self, carrier: CarrierId) -> Result[PricedQuote, ShippingError]:
        match self._state:
            case Quoted(quotes=quotes) as quoted:
                pass
            case _:
                return Error(
                    ShippingError(
                        kind=ShippingErrorKind.NOT_QUOTED,
                        message="Shipping rates are not ready yet.",
                        carrier=carrier,
                    )
                )

        match quotes.get(carrier):
            case PricedQuote() as quote:
                self._state = Quoted(quotes=quotes, address_id=quoted.address_id, selected=carrier)
                self._preferred = carrier
                return Ok(quote)
            case QuoteFailure() as failure:
                return Error(
                    ShippingError(
                        kind=ShippingErrorKind.CARRIER_UNAVAILABLE,
                        message=(
                            f"{failure.name} cannot ship here: {failure.message}. "
                            "Please choose another carrier."
                        ),
                        carrier=carrier,
                    )
                )
            case _:
                return Error(
                    ShippingError(
                        kind=ShippingErrorKind.UNKNOWN_CARRIER,
                        message=f"Unknown carrier {carrier!r}.",
                        carrier=carrier,
                    )
                )


__all__ = ("ShippingQuoter", "auto_select")
