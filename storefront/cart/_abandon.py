"""
Cart abandonment — mark an idle server cart as abandoned.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable
from datetime import timedelta

from kungfu import Ok, Error

from storefront.cart._types import Cart, CartStatus
from storefront.cart._store import CartStore

logger = logging.getLogger(__name__)


class AbandonmentTimer:
    """
    Restarts on every cart change; fires once after `timeout` of quiet.

    Only non-empty server carts are tracked. Guest carts have no backend
    identity to mark.

    Example:
        timer = AbandonmentTimer(store, timeout=config.abandonment_timeout)
        timer.start()
        ...
        timer.reset()   # after a successful order
        timer.stop()
    """

    def __init__(self, store: CartStore, timeout: timedelta) -> None:
        self._store = store
        self._timeout = timeout
        self._task: asyncio.Task[None] | None = None
        self._unsubscribe: Callable[[], None] | None = None
        self._last_abandoned: str | None = None

    @property
    def armed(self) -> bool:
        return self._task is not None and not self._task.done()

    @property
    def last_abandoned(self) -> str | None:
        """Id of the most recent cart this timer marked abandoned."""
        return self._last_abandoned

    def start(self) -> None:
        if self._unsubscribe is None:
            self._unsubscribe = self._store.subscribe(self._on_change)
        self._arm(self._store.cart)

    def stop(self) -> None:
        self._disarm()
        if self._unsubscribe is not None:
            self._unsubscribe()
            self._unsubscribe = None

    def reset(self) -> None:
        """Activity elsewhere (checkout, page view) counts as a touch."""
        self._arm(self._store.cart)

    def _on_change(self, cart: Cart) -> None:
        self._arm(cart)

    def _arm(self, cart: Cart) -> None:
        self._disarm()
        if cart.is_guest or cart.is_empty or cart.cart_id is None:
            return
        self._task = asyncio.get_running_loop().create_task(self._fire(cart.cart_id))

    def _disarm(self) -> None:
        if self._task is not None and not self._task.done():
            self._task.cancel()
        self._task = None

    async def _fire(self, cart_id: str) -> None:
        await asyncio.sleep(self._timeout.total_seconds())
        service = self._store.service
        if service is None:
            return
        match await service.update_status(cart_id, CartStatus.ABANDONED):
            case Ok(_):
                logger.info("Cart %s marked abandoned", cart_id)
                self._last_abandoned = cart_id
            case Error(err):
                logger.error("Could not mark cart %s abandoned: %s", cart_id, err.message)


__all__ = ("AbandonmentTimer",)
