"""
Storefront configuration — immutable, fluent.

    config = (
        StorefrontConfig()
        .with_api(base_url="https://shop.example/api", timeout=5)
        .with_carriers("aramex", "dhl")
        .with_gateway(poll_interval=0.05, ready_timeout=5)
    )

    config = StorefrontConfig.from_env()  # STOREFRONT_API_BASE_URL, ...
"""

from __future__ import annotations

import logging
import os
from collections.abc import Mapping
from dataclasses import dataclass, replace
from datetime import timedelta


# ═══════════════════════════════════════════════════════════════════════════════
# Defaults
# ═══════════════════════════════════════════════════════════════════════════════

DEFAULT_CARRIERS: tuple[str, ...] = ("aramex", "dhl", "shipGlobal")

# One minute of inactivity marks the cart abandoned.
CART_ABANDONMENT_TIMEOUT = timedelta(minutes=1)


# ═══════════════════════════════════════════════════════════════════════════════
# Config
# ═══════════════════════════════════════════════════════════════════════════════


@dataclass(frozen=True, slots=True)
class StorefrontConfig:
    """
    Runtime configuration shared by every component.

    Note: Immutable, each with_* returns a new config.
    """

    api_base_url: str = "http://localhost:8000/api"
    request_timeout: timedelta = timedelta(seconds=10)
    carriers: tuple[str, ...] = DEFAULT_CARRIERS
    gateway_poll_interval: timedelta = timedelta(milliseconds=100)
    gateway_ready_timeout: timedelta = timedelta(seconds=10)
    merge_max_attempts: int = 3
    merge_retry_delay: timedelta = timedelta(milliseconds=500)
    abandonment_timeout: timedelta = CART_ABANDONMENT_TIMEOUT
    guest_storage_url: str = "sqlite+aiosqlite:///:memory:"
    currency: str = "INR"

    def with_api(
        self,
        *,
        base_url: str | None = None,
        timeout: float | None = None,
    ) -> StorefrontConfig:
        """
        Set backend base url and/or request timeout (seconds).

        Example:
            .with_api(base_url="https://shop.example/api")
            .with_api(timeout=3)
        """
        return replace(
            self,
            api_base_url=base_url if base_url is not None else self.api_base_url,
            request_timeout=(
                timedelta(seconds=timeout)
                if timeout is not None
                else self.request_timeout
            ),
        )

    def with_carriers(self, *carriers: str) -> StorefrontConfig:
        if not carriers:
            raise ValueError("At least one carrier is required")
        return replace(self, carriers=tuple(carriers))

    def with_gateway(
        self,
        *,
        poll_interval: float | None = None,
        ready_timeout: float | None = None,
    ) -> StorefrontConfig:
        """Payment gateway readiness polling, both in seconds."""
        return replace(
            self,
            gateway_poll_interval=(
                timedelta(seconds=poll_interval)
                if poll_interval is not None
                else self.gateway_poll_interval
            ),
            gateway_ready_timeout=(
                timedelta(seconds=ready_timeout)
                if ready_timeout is not None
                else self.gateway_ready_timeout
            ),
        )

    def with_merge_retry(
        self,
        *,
        attempts: int | None = None,
        delay: float | None = None,
    ) -> StorefrontConfig:
        if attempts is not None and attempts < 1:
            raise ValueError("attempts must be >= 1")
        return replace(
            self,
            merge_max_attempts=attempts if attempts is not None else self.merge_max_attempts,
            merge_retry_delay=(
                timedelta(seconds=delay) if delay is not None else self.merge_retry_delay
            ),
        )

    def with_abandonment_timeout(
        self,
        *,
        seconds: float | None = None,
        minutes: float | None = None,
    ) -> StorefrontConfig:
        total = (seconds or 0) + (minutes or 0) * 60
        return replace(self, abandonment_timeout=timedelta(seconds=total))

    def with_guest_storage(self, url: str) -> StorefrontConfig:
        return replace(self, guest_storage_url=url)

    def with_currency(self, currency: str) -> StorefrontConfig:
        return replace(self, currency=currency.upper())

    # ───────────────────────────────────────────────────────────────────────────
    # Environment
    # ───────────────────────────────────────────────────────────────────────────

    @classmethod
    def from_env(
        cls,
        prefix: str = "STOREFRONT_",
        environ: Mapping[str, str] | None = None,
    ) -> StorefrontConfig:
        """
        Build config from environment variables.

        Recognised (with prefix): API_BASE_URL, REQUEST_TIMEOUT, CARRIERS
        (comma separated), GATEWAY_POLL_INTERVAL, GATEWAY_READY_TIMEOUT,
        MERGE_MAX_ATTEMPTS, MERGE_RETRY_DELAY, ABANDONMENT_TIMEOUT,
        GUEST_STORAGE_URL, CURRENCY. Durations are seconds.
        """
        env = os.environ if environ is None else environ

        def get(name: str) -> str | None:
            value = env.get(prefix + name)
            return value.strip() if value else None

        def seconds(name: str) -> float | None:
            raw = get(name)
            if raw is None:
                return None
            try:
                return float(raw)
            except ValueError as e:
                raise ValueError(f"{prefix}{name} must be a number, got {raw!r}") from e

        config = cls().with_api(
            base_url=get("API_BASE_URL"),
            timeout=seconds("REQUEST_TIMEOUT"),
        )
        if (carriers := get("CARRIERS")) is not None:
            config = config.with_carriers(
                *(c.strip() for c in carriers.split(",") if c.strip())
            )
        config = config.with_gateway(
            poll_interval=seconds("GATEWAY_POLL_INTERVAL"),
            ready_timeout=seconds("GATEWAY_READY_TIMEOUT"),
        )
        attempts = get("MERGE_MAX_ATTEMPTS")
        config = config.with_merge_retry(
            attempts=int(attempts) if attempts is not None else None,
            delay=seconds("MERGE_RETRY_DELAY"),
        )
        if (abandon := seconds("ABANDONMENT_TIMEOUT")) is not None:
            config = config.with_abandonment_timeout(seconds=abandon)
        if (url := get("GUEST_STORAGE_URL")) is not None:
            config = config.with_guest_storage(url)
        if (currency := get("CURRENCY")) is not None:
            config = config.with_currency(currency)
        return config


# ═══════════════════════════════════════════════════════════════════════════════
# Logging
# ═══════════════════════════════════════════════════════════════════════════════


def configure_logging(level: int | str = logging.INFO) -> None:
    """Basic log format for applications embedding storefront."""
    logging.basicConfig(
        level=level,
        format="%(asctime)s %(levelname)-7s %(name)s: %(message)s",
    )


# ═══════════════════════════════════════════════════════════════════════════════
# Exports
# ═══════════════════════════════════════════════════════════════════════════════

__all__ = (
    "DEFAULT_CARRIERS",
    "CART_ABANDONMENT_TIMEOUT",
    "StorefrontConfig",
    "configure_logging",
)
