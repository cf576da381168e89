"""
Backend — httpx clients for the storefront API.

    from storefront import backend as B

    client = B.BackendClient(config, token=token)
    carts = B.HttpCartService(client)
    store = await CartStore.open_server(user_id, carts)

Every method returns Result[..., BackendError]; nothing raises.
"""

from storefront.backend._client import Envelope, BackendClient, decode
from storefront.backend._models import (
    CartDTO,
    CartItemDTO,
    VariantDTO,
    UserAddressDTO,
    AddressDraftBody,
    CheckoutBody,
    CheckoutResponseDTO,
    BuyNowBody,
    VerifyBody,
)
from storefront.backend._services import (
    IDEMPOTENCY_HEADER,
    HttpCartService,
    HttpAddressService,
    HttpShippingRateService,
    HttpCheckoutService,
    HttpPaymentVerificationService,
)

__all__ = (
    "Envelope",
    "BackendClient",
    "decode",
    "CartDTO",
    "CartItemDTO",
    "VariantDTO",
    "UserAddressDTO",
    "AddressDraftBody",
    "CheckoutBody",
    "CheckoutResponseDTO",
    "BuyNowBody",
    "VerifyBody",
    "IDEMPOTENCY_HEADER",
    "HttpCartService",
    "HttpAddressService",
    "HttpShippingRateService",
    "HttpCheckoutService",
    "HttpPaymentVerificationService",
)
