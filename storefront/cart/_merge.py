"""
CartMerger — folds a guest cart into the user's server cart at login.

Flow for one login:
    validate guest lines ─► ledger lookup (token) ─┬─ COMPLETED ─► clear guest, reload
                                                   └─ new / PENDING / FAILED
                                                        ─► send lines with token (retry, same token)
                                                        ─► ledger COMPLETED ─► clear guest

The merge token is derived from the guest cart's merge token, its version
and the user id, so a replay of the same guest content is always the same
request to the backend.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Sequence
from dataclasses import dataclass
from enum import Enum, auto

from kungfu import Result, Ok, Error

from storefront._errors import BackendError
from storefront._types import Money, UserId, is_uuid
from storefront.config import StorefrontConfig
from storefront.cart._types import Cart, CartLineItem, with_quantity
from storefront.cart._service import CartService, MergeLine
from storefront.cart._storage import GuestCartStorage
from storefront.cart._ledger import MergeLedger, RecordState
from storefront.cart._store import backend_item_id

logger = logging.getLogger(__name__)


# ═══════════════════════════════════════════════════════════════════════════════
# Merge Policy — pure
# ═══════════════════════════════════════════════════════════════════════════════


def merge_lines(
    guest: Sequence[CartLineItem],
    server: Sequence[CartLineItem],
) -> tuple[CartLineItem, ...]:
    """
    Sum quantities of lines with the same identity, append the rest.

    Server lines keep their ids, order and prices; appended guest lines
    keep theirs until the backend assigns new ones.
    """
    merged = list(server)
    for line in guest:
        index = next((i for i, s in enumerate(merged) if s.key == line.key), None)
        if index is None:
            merged.append(line)
        else:
            existing = merged[index]
            merged[index] = with_quantity(existing, existing.quantity + line.quantity)
    return tuple(merged)


def merge_token(guest: Cart, user_id: UserId) -> str:
    return f"merge:{user_id}:{guest.merge_token}:v{guest.version}"


# ═══════════════════════════════════════════════════════════════════════════════
# Outcome / Errors
# ═══════════════════════════════════════════════════════════════════════════════


@dataclass(frozen=True, slots=True)
class DroppedLine:
    line: CartLineItem
    reason: str


@dataclass(frozen=True, slots=True)
class PriceChange:
    """Guest snapshot price vs the price the server cart now charges."""

    key: str
    title: str
    old_price: Money
    new_price: Money


@dataclass(frozen=True, slots=True)
class MergeOutcome:
    cart: Cart
    token: str | None
    dropped: tuple[DroppedLine, ...] = ()
    price_changes: tuple[PriceChange, ...] = ()
    # Lines the server holds at a quantity other than guest + server (stock caps).
    adjusted: tuple[str, ...] = ()
    # True when the ledger already had this merge; nothing was sent.
    replayed: bool = False


class MergeErrorKind(Enum):
    LEDGER = auto()  # Ledger unreadable, nothing sent
    BACKEND = auto()  # Backend rejected the merge
    EXHAUSTED = auto()  # Transient failures on every attempt


@dataclass(frozen=True, slots=True)
class MergeError:
    """
    Merge failure.

    Note: the guest cart is kept on every error. Replaying later reuses
    the same token, so nothing is counted twice.
    """

    kind: MergeErrorKind
    message: str
    token: str | None = None
    original_error: BackendError | Exception | None = None


# ═══════════════════════════════════════════════════════════════════════════════
# Line validation
# ═══════════════════════════════════════════════════════════════════════════════


def partition_lines(
    lines: Sequence[CartLineItem],
) -> tuple[tuple[CartLineItem, ...], tuple[DroppedLine, ...]]:
    """Split guest lines into sendable ones and ones the backend would reject."""
    valid: list[CartLineItem] = []
    dropped: list[DroppedLine] = []
    for line in lines:
        if not line.product_id:
            dropped.append(DroppedLine(line, "missing product"))
        elif line.quantity <= 0:
            dropped.append(DroppedLine(line, "non-positive quantity"))
        elif not is_uuid(backend_item_id(line)):
            dropped.append(DroppedLine(line, "malformed item id"))
        else:
            valid.append(line)
    return tuple(valid), tuple(dropped)


def price_changes(
    guest: Sequence[CartLineItem], merged: Cart
) -> tuple[PriceChange, ...]:
    changes: list[PriceChange] = []
    for line in guest:
        current = merged.line_by_key(line.key)
        if current is not None and current.unit_price != line.unit_price:
            changes.append(
                PriceChange(
                    key=line.key,
                    title=line.title,
                    old_price=line.unit_price,
                    new_price=current.unit_price,
                )
            )
    return tuple(changes)


def adjusted_lines(expected: Sequence[CartLineItem], actual: Cart) -> tuple[str, ...]:
    adjusted: list[str] = []
    for line in expected:
        current = actual.line_by_key(line.key)
        if current is None or current.quantity != line.quantity:
            adjusted.append(line.key)
    return tuple(adjusted)


# ═══════════════════════════════════════════════════════════════════════════════
# Merger
# ═══════════════════════════════════════════════════════════════════════════════


class CartMerger:
    """
    Guest → server cart reconciliation, once per login.

    Example:
        merger = CartMerger(cart_service, guest_storage, MemoryMergeLedger())
        match await merger.merge(guest_cart, server_cart):
            case Ok(outcome):
                store.adopt(outcome.cart, cart_service)
            case Error(err):
                ...  # guest cart kept; call merge() again later
    """

    def __init__(
        self,
        service: CartService,
        storage: GuestCartStorage,
        ledger: MergeLedger,
        config: StorefrontConfig | None = None,
    ) -> None:
        self._service = service
        self._storage = storage
        self._ledger = ledger
        self._config = config or StorefrontConfig()
        self._in_flight: dict[str, asyncio.Future[Result[MergeOutcome, MergeError]]] = {}

    async def merge(
        self, guest: Cart, server: Cart
    ) -> Result[MergeOutcome, MergeError]:
        """
        Merge `guest` into `server` (server must carry the user id).

        Concurrent calls for the same guest content share one attempt.
        """
        user_id = server.user_id
        if user_id is None:
            raise ValueError("Server cart has no user id")

        valid, dropped = partition_lines(guest.lines)
        for item in dropped:
            logger.warning("Dropping guest line %s: %s", item.line.key, item.reason)

        if not valid:
            return Ok(await self._nothing_to_merge(server, dropped))

        token = merge_token(guest, user_id)
        if (pending := self._in_flight.get(token)) is not None:
            logger.debug("Merge %s already in flight, joining", token)
            return await asyncio.shield(pending)

        future = asyncio.ensure_future(self._merge(token, user_id, valid, dropped, server))
        self._in_flight[token] = future
        future.add_done_callback(lambda _: self._in_flight.pop(token, None))
        return await asyncio.shield(future)

    # ───────────────────────────────────────────────────────────────────────────

    async def _nothing_to_merge(
        self, server: Cart, dropped: tuple[DroppedLine, ...]
    ) -> MergeOutcome:
        # Only invalid lines: drop the guest cart and keep the server cart.
        await self._clear_guest()
        cart = server
        if server.user_id is not None:
            match await self._service.get_user_cart(server.user_id):
                case Ok(fresh):
                    cart = fresh
                case Error(err):
                    logger.error("Reload after empty merge failed: %s", err.message)
        return MergeOutcome(cart=cart, token=None, dropped=dropped)

    async def _merge(
        self,
        token: str,
        user_id: UserId,
        lines: tuple[CartLineItem, ...],
        dropped: tuple[DroppedLine, ...],
        server: Cart,
    ) -> Result[MergeOutcome, MergeError]:
        match await self._ledger.get(token):
            case Error(err):
                return Error(
                    MergeError(
                        kind=MergeErrorKind.LEDGER,
                        message="Could not merge your saved cart. Please try again.",
                        token=token,
                        original_error=err.cause,
                    )
                )
            case Ok(record) if record is not None and record.state == RecordState.COMPLETED:
                logger.info("Merge %s already acknowledged, not resending", token)
                return Ok(await self._replayed(token, user_id, lines, dropped, server))
            case Ok(None):
                match await self._ledger.begin(token, user_id):
                    case Error(err):
                        return Error(
                            MergeError(
                                kind=MergeErrorKind.LEDGER,
                                message="Could not merge your saved cart. Please try again.",
                                token=token,
                                original_error=err.cause,
                            )
                        )
                    case Ok(created):
                        if not created:
                            logger.debug("Merge %s started elsewhere, resending", token)
            case Ok(record):
                logger.info("Resending merge %s (was %s)", token, record.state.name)

        return await self._send(token, user_id, lines, dropped, server)

    async def _send(
        self,
        token: str,
        user_id: UserId,
        lines: tuple[CartLineItem, ...],
        dropped: tuple[DroppedLine, ...],
        server: Cart,
    ) -> Result[MergeOutcome, MergeError]:
        payload = [MergeLine(backend_item_id(l), l.quantity) for l in lines]
        attempts = self._config.merge_max_attempts
        delay = self._config.merge_retry_delay.total_seconds()
        last_error: BackendError | None = None

        for attempt in range(1, attempts + 1):
            result = await self._service.merge_guest_cart(user_id, payload, token)
            match result:
                case Ok(cart):
                    await self._acknowledge(token, cart)
                    await self._clear_guest()
                    logger.info("Merged %d guest lines into cart %s", len(lines), cart.cart_id)
                    return Ok(
                        MergeOutcome(
                            cart=cart,
                            token=token,
                            dropped=dropped,
                            price_changes=price_changes(lines, cart),
                            adjusted=adjusted_lines(merge_lines(lines, server.lines), cart),
                        )
                    )
                case Error(err):
                    last_error = err
                    logger.warning(
                        "Merge %s attempt %d/%d failed: %s", token, attempt, attempts, err.message
                    )
                    if not err.is_transient:
                        break
                    if attempt < attempts:
                        await asyncio.sleep(delay)

        message = last_error.message if last_error is not None else "unknown error"
        await self._ledger.fail(token, message)
        transient = last_error is not None and last_error.is_transient
        return Error(
            MergeError(
                kind=MergeErrorKind.EXHAUSTED if transient else MergeErrorKind.BACKEND,
                message="We couldn't add your saved items to your cart yet. They are kept and we'll retry.",
                token=token,
                original_error=last_error,
            )
        )

    async def _replayed(
        self,
        token: str,
        user_id: UserId,
        lines: tuple[CartLineItem, ...],
        dropped: tuple[DroppedLine, ...],
        server: Cart,
    ) -> MergeOutcome:
        # Acknowledged earlier but the guest cart survived (crash before clear).
        await self._clear_guest()
        cart = server
        match await self._service.get_user_cart(user_id):
            case Ok(fresh):
                cart = fresh
            case Error(err):
                logger.error("Reload after replayed merge failed: %s", err.message)
        return MergeOutcome(
            cart=cart,
            token=token,
            dropped=dropped,
            price_changes=price_changes(lines, cart),
            replayed=True,
        )

    async def _acknowledge(self, token: str, cart: Cart) -> None:
        match await self._ledger.complete(token, cart.cart_id):
            case Error(err):
                # Backend dedups by token, so a later replay is still safe.
                logger.error("Could not record merge %s: %s", token, err.message)
            case Ok(_):
                pass

    async def _clear_guest(self) -> None:
        match await self._storage.clear():
            case Error(err):
                logger.error("Could not clear guest cart: %s", err.message)
            case Ok(_):
                pass


# ═══════════════════════════════════════════════════════════════════════════════
# Exports
# ═══════════════════════════════════════════════════════════════════════════════

__all__ = (
    "merge_lines",
    "merge_token",
    "partition_lines",
    "price_changes",
    "DroppedLine",
    "PriceChange",
    "MergeOutcome",
    "MergeErrorKind",
    "MergeError",
    "CartMerger",
)
