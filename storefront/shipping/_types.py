"""
Shipping types — carriers, per-carrier quotes, quoter states.
"""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass, field
from enum import Enum, auto
from typing import Any, Protocol

from kungfu import Result

from storefront._errors import BackendError
from storefront._types import AddressId, CarrierId, CartId, Money


# ═══════════════════════════════════════════════════════════════════════════════
# Carriers
# ═══════════════════════════════════════════════════════════════════════════════


@dataclass(frozen=True, slots=True)
class CarrierInfo:
    id: CarrierId
    name: str
    transit: str | None = None


KNOWN_CARRIERS: dict[CarrierId, CarrierInfo] = {
    "aramex": CarrierInfo("aramex", "Aramex International", "7-14 days"),
    "dhl": CarrierInfo("dhl", "DHL Express", "4-7 days"),
    "shipGlobal": CarrierInfo("shipGlobal", "ShipGlobal Direct", "7-10 days"),
}


def carrier_info(carrier: CarrierId) -> CarrierInfo:
    return KNOWN_CARRIERS.get(carrier, CarrierInfo(carrier, carrier))


# ═══════════════════════════════════════════════════════════════════════════════
# Quotes — priced or error, never both
# ═══════════════════════════════════════════════════════════════════════════════


@dataclass(frozen=True, slots=True)
class PricedQuote:
    carrier: CarrierId
    amount: Money
    currency: str
    transit: str | None = None
    service: str | None = None

    @property
    def name(self) -> str:
        return carrier_info(self.carrier).name


@dataclass(frozen=True, slots=True)
class QuoteFailure:
    carrier: CarrierId
    message: str

    @property
    def name(self) -> str:
        return carrier_info(self.carrier).name


type Quote = PricedQuote | QuoteFailure


@dataclass(frozen=True, slots=True)
class QuoteSet:
    """All configured carriers' results for one cart + address."""

    quotes: Mapping[CarrierId, Quote] = field(default_factory=dict)

    @property
    def available(self) -> tuple[PricedQuote, ...]:
        """Priced quotes, cheapest first."""
        priced = [q for q in self.quotes.values() if isinstance(q, PricedQuote)]
        return tuple(sorted(priced, key=lambda q: q.amount))

    @property
    def unavailable(self) -> tuple[QuoteFailure, ...]:
        return tuple(q for q in self.quotes.values() if isinstance(q, QuoteFailure))

    @property
    def cheapest(self) -> PricedQuote | None:
        available = self.available
        return available[0] if available else None

    @property
    def all_failed(self) -> bool:
        return not self.available

    def get(self, carrier: CarrierId) -> Quote | None:
        return self.quotes.get(carrier)


# ═══════════════════════════════════════════════════════════════════════════════
# Quoter States
# ═══════════════════════════════════════════════════════════════════════════════

GUEST_ADDRESS_MESSAGE = "Please login or add an address to see shipping rates."
NO_SHIPPING_MESSAGE = (
    "No shipping options are available for this address. "
    "Please try another address or contact support."
)


@dataclass(frozen=True, slots=True)
class AwaitingAddress:
    message: str = GUEST_ADDRESS_MESSAGE


@dataclass(frozen=True, slots=True)
class Quoting:
    token: int
    address_id: AddressId


@dataclass(frozen=True, slots=True)
class Quoted:
    quotes: QuoteSet
    address_id: AddressId
    selected: CarrierId | None = None

    @property
    def selected_quote(self) -> Quote | None:
        if self.selected is None:
            return None
        return self.quotes.get(self.selected)


@dataclass(frozen=True, slots=True)
class NoShippingPossible:
    """Every carrier errored. Terminal until the address changes."""

    quotes: QuoteSet
    address_id: AddressId
    message: str = NO_SHIPPING_MESSAGE


type QuoteState = AwaitingAddress | Quoting | Quoted | NoShippingPossible


# ═══════════════════════════════════════════════════════════════════════════════
# Errors / Service
# ═══════════════════════════════════════════════════════════════════════════════


class ShippingErrorKind(Enum):
    NOT_QUOTED = auto()
    UNKNOWN_CARRIER = auto()
    CARRIER_UNAVAILABLE = auto()


@dataclass(frozen=True, slots=True)
class ShippingError:
    kind: ShippingErrorKind
    message: str
    carrier: CarrierId | None = None


class ShippingRateService(Protocol):
    async def get_rates(
        self, cart_id: CartId, address_id: AddressId
    ) -> Result[Mapping[CarrierId, Any], BackendError]:
        """Raw per-carrier payloads; parsing happens in the quoter."""
        ...


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
)
