"""
CartStore — the one owner of cart lines.

Guest carts mutate local state and persist it; server carts round-trip to
the cart service and adopt whatever cart the service returns.

Per-line discipline: a mutation holds its line key until it completes.
A second mutation for the same key is rejected with LINE_BUSY, never
queued behind or merged into the first.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable

from kungfu import Result, Ok, Error

from storefront._errors import BackendError, BackendErrorKind
from storefront._types import LineId, UserId
from storefront.cart._types import (
    Cart,
    CartLineItem,
    CartError,
    CartErrorKind,
    ItemRef,
    VariantLine,
    line_from_ref,
    with_quantity,
)
from storefront.cart._service import CartService
from storefront.cart._storage import GuestCartStorage, MemoryGuestStorage

logger = logging.getLogger(__name__)

type Listener = Callable[[Cart], None]
type ServiceCall = Callable[[UserId], Awaitable[Result[Cart, BackendError]]]


# ═══════════════════════════════════════════════════════════════════════════════
# Pure line operations (guest mode)
# ═══════════════════════════════════════════════════════════════════════════════


def add_to_lines(cart: Cart, item: ItemRef, quantity: int) -> Cart:
    """Increment the matching line, or append a new one."""
    existing = cart.line_by_key(item.key)
    if existing is None:
        return cart.with_lines((*cart.lines, line_from_ref(item, quantity)))
    return change_quantity(cart, existing.line_id, existing.quantity + quantity)


def change_quantity(cart: Cart, line_id: LineId, quantity: int) -> Cart:
    """Set a line's quantity; quantity <= 0 removes the line."""
    if quantity <= 0:
        return remove_line(cart, line_id)
    return cart.with_lines(
        tuple(
            with_quantity(line, quantity) if line.line_id == line_id else line
            for line in cart.lines
        )
    )


def remove_line(cart: Cart, line_id: LineId) -> Cart:
    return cart.with_lines(tuple(l for l in cart.lines if l.line_id != line_id))


def restore_line(
    cart: Cart,
    key: str,
    previous: CartLineItem | None,
    index: int,
) -> Cart:
    """Put one line back the way it was, leaving other lines alone."""
    lines = [l for l in cart.lines if l.key != key]
    if previous is not None:
        lines.insert(min(index, len(lines)), previous)
    return cart.with_lines(tuple(lines))


def backend_item_id(line: CartLineItem | ItemRef) -> str:
    """
    Id the cart service keys items by.

    Note: plain products have no variant; the service accepts the product id
    in the variant_id slot for them.
    """
    match line:
        case VariantLine(variant_id=variant_id):
            return variant_id
        case ItemRef(variant_id=variant_id, product_id=product_id):
            return variant_id or product_id
        case _:
            return line.product_id


# ═══════════════════════════════════════════════════════════════════════════════
# Store
# ═══════════════════════════════════════════════════════════════════════════════


class CartStore:
    """
    Cart state holder with serialized per-line mutations.

    Example:
        store = CartStore(Cart.empty_guest(), storage=storage)
        await store.add(ItemRef.of(product, variant), 2)
        await store.decrease(line_id)      # removes the line at quantity 0

    All readers share one store; `cart` is an immutable snapshot.
    """

    def __init__(
        self,
        cart: Cart,
        *,
        service: CartService | None = None,
        storage: GuestCartStorage | None = None,
    ) -> None:
        if not cart.is_guest and (service is None or cart.user_id is None):
            raise ValueError("Server carts need a cart service and a user id")
        self._cart = cart
        self._service = service
        self._storage: GuestCartStorage = storage or MemoryGuestStorage()
        self._busy: set[str] = set()
        self._save_lock = asyncio.Lock()
        self._listeners: list[Listener] = []
        self._last_error: CartError | None = None

    # ───────────────────────────────────────────────────────────────────────────
    # Construction
    # ───────────────────────────────────────────────────────────────────────────

    @classmethod
    async def open_guest(cls, storage: GuestCartStorage) -> Result[CartStore, CartError]:
        """Load the device's guest cart (an empty one if none was stored)."""
        match await storage.load():
            case Ok(stored):
                return Ok(cls(stored or Cart.empty_guest(), storage=storage))
            case Error(err):
                return Error(
                    CartError(
                        kind=CartErrorKind.STORAGE,
                        message="Could not load your cart. Please refresh the page.",
                        original_error=err.cause,
                    )
                )

    @classmethod
    async def open_server(
        cls,
        user_id: UserId,
        service: CartService,
        storage: GuestCartStorage | None = None,
    ) -> Result[CartStore, CartError]:
        match await service.get_user_cart(user_id):
            case Ok(cart):
                return Ok(cls(cart, service=service, storage=storage))
            case Error(err):
                return Error(
                    CartError(
                        kind=CartErrorKind.BACKEND,
                        message="Could not load your cart. Please try again.",
                        original_error=err,
                    )
                )

    # ───────────────────────────────────────────────────────────────────────────
    # Read side
    # ───────────────────────────────────────────────────────────────────────────

    @property
    def cart(self) -> Cart:
        return self._cart

    @property
    def last_error(self) -> CartError | None:
        """Most recent user-visible failure, cleared by the next success."""
        return self._last_error

    @property
    def service(self) -> CartService | None:
        return self._service

    @property
    def storage(self) -> GuestCartStorage:
        return self._storage

    def is_busy(self, line_id: LineId) -> bool:
        line = self._cart.line(line_id)
        return line is not None and line.key in self._busy

    def subscribe(self, listener: Listener) -> Callable[[], None]:
        """Call `listener` with every new cart; returns an unsubscribe function."""
        self._listeners.append(listener)
        return lambda: self._listeners.remove(listener)

    # ───────────────────────────────────────────────────────────────────────────
    # Mutations
    # ───────────────────────────────────────────────────────────────────────────

    async def add(self, item: ItemRef, quantity: int = 1) -> Result[Cart, CartError]:
        if quantity < 1:
            return self._fail(_invalid_quantity(quantity, item.key))
        if self._cart.is_guest:
            return await self._guest_mutation(
                item.key, lambda cart: add_to_lines(cart, item, quantity)
            )
        return await self._server_mutation(
            item.key,
            "add this item",
            lambda uid: self._require_service().add_item(
                uid, backend_item_id(item), quantity
            ),
        )

    async def increase(self, line_id: LineId, delta: int = 1) -> Result[Cart, CartError]:
        if delta < 1:
            return self._fail(_invalid_quantity(delta, None))
        match self._line(line_id):
            case Error(err):
                return self._fail(err)
            case Ok(line):
                pass

        if self._cart.is_guest:
            return await self._guest_mutation(
                line.key,
                lambda cart: change_quantity(cart, line_id, _current(cart, line_id) + delta),
            )
        return await self._server_mutation(
            line.key,
            "update the quantity",
            lambda uid: self._require_service().increase_qty(
                uid, line_id, backend_item_id(line), delta
            ),
        )

    async def decrease(self, line_id: LineId, delta: int = 1) -> Result[Cart, CartError]:
        """Lower quantity by `delta`; at zero or below the line is removed."""
        if delta < 1:
            return self._fail(_invalid_quantity(delta, None))
        match self._line(line_id):
            case Error(err):
                return self._fail(err)
            case Ok(line):
                pass

        if self._cart.is_guest:
            return await self._guest_mutation(
                line.key,
                lambda cart: change_quantity(cart, line_id, _current(cart, line_id) - delta),
            )
        if line.quantity - delta <= 0:
            return await self._server_mutation(
                line.key,
                "remove this item",
                lambda uid: self._require_service().remove_item(uid, line_id),
            )
        return await self._server_mutation(
            line.key,
            "update the quantity",
            lambda uid: self._require_service().decrease_qty(
                uid, line_id, backend_item_id(line), delta
            ),
        )

    async def remove(self, line_id: LineId) -> Result[Cart, CartError]:
        match self._line(line_id):
            case Error(err):
                return self._fail(err)
            case Ok(line):
                pass

        if self._cart.is_guest:
            return await self._guest_mutation(
                line.key, lambda cart: remove_line(cart, line_id)
            )
        return await self._server_mutation(
            line.key,
            "remove this item",
            lambda uid: self._require_service().remove_item(uid, line_id),
        )

    # ───────────────────────────────────────────────────────────────────────────
    # Whole-cart operations
    # ───────────────────────────────────────────────────────────────────────────

    async def reload(self) -> Result[Cart, CartError]:
        """Re-read the authoritative cart (server) or stored cart (guest)."""
        if self._cart.is_guest:
            match await self._storage.load():
                case Ok(stored):
                    self._set(stored or Cart.empty_guest())
                    return Ok(self._cart)
                case Error(err):
                    return self._fail(
                        CartError(
                            kind=CartErrorKind.STORAGE,
                            message="Could not load your cart. Please refresh the page.",
                            original_error=err.cause,
                        )
                    )

        match await self._require_service().get_user_cart(self._require_user()):
            case Ok(cart):
                self._set(cart)
                return Ok(cart)
            case Error(err):
                return self._fail(
                    CartError(
                        kind=CartErrorKind.BACKEND,
                        message="Could not refresh your cart. Please try again.",
                        original_error=err,
                    )
                )

    async def reset_after_order(self) -> Result[Cart, CartError]:
        """
        Drop the purchased cart.

        Server: the backend has already opened a fresh empty cart, so reload.
        Guest: clear the stored cart.
        """
        if not self._cart.is_guest:
            return await self.reload()
        return await self.clear_guest()

    async def clear_guest(self) -> Result[Cart, CartError]:
        match await self._storage.clear():
            case Ok(_):
                self._set(Cart.empty_guest())
                return Ok(self._cart)
            case Error(err):
                return self._fail(
                    CartError(
                        kind=CartErrorKind.STORAGE,
                        message="Could not clear your cart. Please try again.",
                        original_error=err.cause,
                    )
                )

    def adopt(self, cart: Cart, service: CartService | None = None) -> None:
        """
        Replace the whole cart (login merge result, logout reset).

        Note: switching to a server cart needs a service, either passed here
        or already held.
        """
        if service is not None:
            self._service = service
        if not cart.is_guest and (self._service is None or cart.user_id is None):
            raise ValueError("Server carts need a cart service and a user id")
        self._busy.clear()
        self._set(cart)

    # ───────────────────────────────────────────────────────────────────────────
    # Internals
    # ───────────────────────────────────────────────────────────────────────────

    def _require_service(self) -> CartService:
        if self._service is None:
            raise RuntimeError("Cart service required for a server cart")
        return self._service

    def _require_user(self) -> UserId:
        if self._cart.user_id is None:
            raise RuntimeError("Server cart has no user id")
        return self._cart.user_id

    def _line(self, line_id: LineId) -> Result[CartLineItem, CartError]:
        line = self._cart.line(line_id)
        if line is None:
            return Error(
                CartError(
                    kind=CartErrorKind.LINE_NOT_FOUND,
                    message="This item is no longer in your cart. Refresh to see the latest cart.",
                )
            )
        return Ok(line)

    def _busy_error(self, key: str) -> CartError:
        return CartError(
            kind=CartErrorKind.LINE_BUSY,
            message="This item is still being updated. Please wait a moment.",
            line_key=key,
        )

    async def _guest_mutation(
        self,
        key: str,
        apply: Callable[[Cart], Cart],
    ) -> Result[Cart, CartError]:
        if key in self._busy:
            return self._fail(self._busy_error(key))

        self._busy.add(key)
        try:
            previous = self._cart.line_by_key(key)
            index = self._cart.lines.index(previous) if previous is not None else len(
                self._cart.lines
            )
            self._set(apply(self._cart))

            # Saves run one at a time and always write the current local cart.
            async with self._save_lock:
                match await self._storage.save(self._cart):
                    case Ok(_):
                        self._last_error = None
                        return Ok(self._cart)
                    case Error(err):
                        self._set(restore_line(self._cart, key, previous, index))
                        # An earlier save may already hold this change.
                        await self._write_back()
                        return self._fail(
                            CartError(
                                kind=CartErrorKind.STORAGE,
                                message="Could not save your cart. Please try again.",
                                line_key=key,
                                original_error=err.cause,
                            )
                        )
        finally:
            self._busy.discard(key)

    async def _write_back(self) -> None:
        match await self._storage.save(self._cart):
            case Error(err):
                logger.error("Stored guest cart may be stale after a failed save: %s", err.message)
            case _:
                pass

    async def _server_mutation(
        self,
        key: str,
        action: str,
        call: ServiceCall,
    ) -> Result[Cart, CartError]:
        # Local view is untouched until the service answers.
        if key in self._busy:
            return self._fail(self._busy_error(key))

        user_id = self._require_user()

        self._busy.add(key)
        try:
            result = await call(user_id)
        except Exception as e:
            logger.exception("Cart service raised during %s", action)
            result = Error(
                BackendError(kind=BackendErrorKind.TRANSPORT, message=str(e), cause=e)
            )
        finally:
            self._busy.discard(key)

        match result:
            case Ok(cart):
                self._set(cart)
                self._last_error = None
                return Ok(cart)
            case Error(err):
                logger.error("Cart mutation failed (%s): %s", action, err.message)
                return self._fail(
                    CartError(
                        kind=CartErrorKind.BACKEND,
                        message=f"Could not {action}. Please try again.",
                        line_key=key,
                        original_error=err,
                    )
                )

    def _set(self, cart: Cart) -> None:
        self._cart = cart
        for listener in tuple(self._listeners):
            listener(cart)

    def _fail(self, error: CartError) -> Result[Cart, CartError]:
        if error.kind == CartErrorKind.LINE_BUSY:
            logger.warning("Rejected concurrent mutation on %s", error.line_key)
        self._last_error = error
        return Error(error)


# ═══════════════════════════════════════════════════════════════════════════════
# Helpers
# ═══════════════════════════════════════════════════════════════════════════════


def _current(cart: Cart, line_id: LineId) -> int:
    line = cart.line(line_id)
    return line.quantity if line is not None else 0


def _invalid_quantity(value: int, key: str | None) -> CartError:
    return CartError(
        kind=CartErrorKind.INVALID_QUANTITY,
        message=f"Quantity must be at least 1 (got {value}).",
        line_key=key,
    )


# ═══════════════════════════════════════════════════════════════════════════════
# Exports
# ═══════════════════════════════════════════════════════════════════════════════

__all__ = (
    "CartStore",
    "add_to_lines",
    "change_quantity",
    "remove_line",
    "restore_line",
    "backend_item_id",
)
