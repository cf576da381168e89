"""
Carrier rate parsing — each carrier answers in its own shape.

    aramex      123.4                                  | {"error": ...}
    dhl         {"amount": 99, "currency": "INR", ...} | {"error": ...}
    shipGlobal  {"services": [{"title", "transit_time", "price": {"logistic_fee"}}]}
                                                       | {"error": ...}

Anything unparseable, missing, non-finite, or priced <= 0 becomes a QuoteFailure.
"""

from __future__ import annotations

from collections.abc import Mapping, Sequence
from decimal import InvalidOperation
from typing import Any

from storefront._types import CarrierId, ZERO, money
from storefront.shipping._types import (
    PricedQuote,
    Quote,
    QuoteFailure,
    QuoteSet,
    carrier_info,
)


def is_rate_error(raw: Any) -> bool:
    return isinstance(raw, Mapping) and "error" in raw


def _error_message(raw: Any) -> str:
    error = raw.get("error") if isinstance(raw, Mapping) else None
    if isinstance(error, Mapping):
        return str(error.get("message") or error)
    return str(error or "Rate unavailable")


def _price(value: Any) -> Any:
    if isinstance(value, bool) or value is None:
        raise ValueError("no price")
    amount = money(value)
    if not amount.is_finite():
        raise ValueError("non-finite price")
    return amount


def _ship_global(carrier: CarrierId, raw: Mapping[str, Any], currency: str) -> Quote:
    services: Sequence[Any] = raw.get("services") or []
    priced: list[PricedQuote] = []
    for service in services:
        try:
            fee = _price((service.get("price") or {}).get("logistic_fee"))
        except (ValueError, InvalidOperation, AttributeError):
            continue
        priced.append(
            PricedQuote(
                carrier=carrier,
                amount=fee,
                currency=currency,
                transit=service.get("transit_time") or carrier_info(carrier).transit,
                service=service.get("title"),
            )
        )
    if not priced:
        return QuoteFailure(carrier, "No services available")
    return min(priced, key=lambda q: q.amount)


def parse_carrier_rate(carrier: CarrierId, raw: Any, currency: str) -> Quote:
    """Normalise one carrier payload into PricedQuote | QuoteFailure."""
    if raw is None:
        return QuoteFailure(carrier, "No rate returned")
    if is_rate_error(raw):
        return QuoteFailure(carrier, _error_message(raw))

    transit = carrier_info(carrier).transit
    try:
        match raw:
            case Mapping() if "services" in raw:
                quote = _ship_global(carrier, raw, currency)
            case Mapping() if "amount" in raw:
                days = raw.get("estimatedDays")
                quote = PricedQuote(
                    carrier=carrier,
                    amount=_price(raw["amount"]),
                    currency=str(raw.get("currency") or currency),
                    transit=f"{days} days" if days else transit,
                )
            case int() | float() | str():
                quote = PricedQuote(
                    carrier=carrier, amount=_price(raw), currency=currency, transit=transit
                )
            case _:
                return QuoteFailure(carrier, "Unrecognised rate format")
    except (ValueError, InvalidOperation):
        return QuoteFailure(carrier, "Unrecognised rate format")

    if isinstance(quote, PricedQuote) and quote.amount <= ZERO:
        return QuoteFailure(carrier, "Rate unavailable")
    return quote


def parse_rates(
    raw: Mapping[CarrierId, Any],
    carriers: Sequence[CarrierId],
    currency: str,
) -> QuoteSet:
    """One quote per configured carrier, in configured order."""
    return QuoteSet({c: parse_carrier_rate(c, raw.get(c), currency) for c in carriers})


def failed_everywhere(carriers: Sequence[CarrierId], message: str) -> QuoteSet:
    return QuoteSet({c: QuoteFailure(c, message) for c in carriers})


__all__ = (
    "is_rate_error",
    "parse_carrier_rate",
    "parse_rates",
    "failed_everywhere",
)
