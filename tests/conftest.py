"""Shared pytest fixtures for storefront tests."""

from datetime import timedelta
from decimal import Decimal

import pytest

from storefront.config import StorefrontConfig
from storefront.variant import Product

from tests.fakes import (
    FakeAddressService,
    FakeCartService,
    FakeCheckoutService,
    FakeRateService,
    FakeVerificationService,
    V_M_BLUE,
    V_S_RED,
    mug,
    saved_address,
    shirt,
)


@pytest.fixture
def config() -> StorefrontConfig:
    """Fast timings so retry and polling tests stay quick."""
    return (
        StorefrontConfig()
        .with_gateway(poll_interval=0.001, ready_timeout=0.02)
        .with_merge_retry(attempts=3, delay=0)
    )


@pytest.fixture
def product() -> Product:
    return shirt()


@pytest.fixture
def plain_product() -> Product:
    return mug()


@pytest.fixture
def cart_service() -> FakeCartService:
    return FakeCartService(prices={V_S_RED: Decimal("500"), V_M_BLUE: Decimal("520")})


@pytest.fixture
def address_service() -> FakeAddressService:
    return FakeAddressService([saved_address("addr-1"), saved_address("addr-2", is_default=False)])


@pytest.fixture
def rate_service() -> FakeRateService:
    return FakeRateService()


@pytest.fixture
def checkout_service() -> FakeCheckoutService:
    return FakeCheckoutService()


@pytest.fixture
def verification_service() -> FakeVerificationService:
    return FakeVerificationService()


@pytest.fixture
def short_timeout() -> timedelta:
    return timedelta(milliseconds=10)
