"""
PollingGateway — GatewayClient over a script that loads on its own schedule.

The payment provider's client script appears asynchronously. Readiness is
polled here so the orchestrator only ever sees
`wait_until_ready() -> Ok(None) | Error(GatewayUnavailable)`.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable

from combinators import lift as L
from kungfu import Result, Ok, Error

from storefront.config import StorefrontConfig
from storefront.checkout._types import (
    GatewayFailed,
    GatewayResult,
    GatewaySession,
    GatewayUnavailable,
)

logger = logging.getLogger(__name__)

type ReadinessProbe = Callable[[], Awaitable[bool]]
type GatewayOpener = Callable[[GatewaySession], Awaitable[GatewayResult]]


class PollingGateway:
    """
    Example:
        gateway = PollingGateway(
            probe=lambda: sdk.is_loaded(),
            opener=sdk.open_checkout,
            config=StorefrontConfig().with_gateway(ready_timeout=5),
        )
    """

    def __init__(
        self,
        probe: ReadinessProbe,
        opener: GatewayOpener,
        config: StorefrontConfig | None = None,
    ) -> None:
        self._probe = probe
        self._opener = opener
        self._config = config or StorefrontConfig()
        self._ready = False

    @property
    def ready(self) -> bool:
        return self._ready

    async def wait_until_ready(self) -> Result[None, GatewayUnavailable]:
        if self._ready:
            return Ok(None)

        interval = self._config.gateway_poll_interval.total_seconds()
        timeout = self._config.gateway_ready_timeout.total_seconds()
        loop = asyncio.get_running_loop()
        deadline = loop.time() + timeout

        while True:
            match await L.catching_async(self._probe, on_error=str):
                case Ok(True):
                    self._ready = True
                    return Ok(None)
                case Error(reason):
                    logger.warning("Gateway readiness probe raised: %s", reason)
                case _:
                    pass
            if loop.time() >= deadline:
                logger.error("Payment gateway not ready after %.1fs", timeout)
                return Error(GatewayUnavailable())
            await asyncio.sleep(interval)

    async def open(self, session: GatewaySession) -> GatewayResult:
        """Hand the session to the provider UI. A raising opener counts as a failed payment."""
        match await L.catching_async(lambda: self._opener(session), on_error=str):
            case Ok(result):
                return result
            case Error(reason):
                logger.error("Payment gateway raised for order %s: %s", session.order_id, reason)
                return GatewayFailed(reason="Payment could not be started. Please try again.")


__all__ = ("PollingGateway", "ReadinessProbe", "GatewayOpener")
