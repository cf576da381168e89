"""
Wire models — pydantic shapes of the storefront API, with domain codecs.

Inbound models implement `to_domain()`, outbound ones `from_domain()`.
"""

from decimal import Decimal
from typing import Any

from pydantic import BaseModel, ConfigDict, Field

from storefront._types import ZERO, from_minor_units
from storefront.address import Address, AddressDraft, UserAddress
from storefront.cart import Cart, CartLineItem, CartStatus, PlainLine, VariantLine
from storefront.checkout import (
    BuyNowRequest,
    CheckoutRequest,
    OrderDetails,
    PendingOrder,
    VerifyRequest,
)


class WireModel(BaseModel):
    model_config = ConfigDict(populate_by_name=True)


# ═══════════════════════════════════════════════════════════════════════════════
# Cart
# ═══════════════════════════════════════════════════════════════════════════════


class ImageDTO(WireModel):
    url: str
    position: int = 0


class ProductRefDTO(WireModel):
    id: str
    title: str = ""
    brand: str | None = None


class VariantDTO(WireModel):
    id: str
    price: Decimal
    compare_price: Decimal | None = None
    sku: str | None = None
    stock_qty: int = 0
    image_urls: list[ImageDTO] = Field(default_factory=list)
    option_values: dict[str, str] | None = None
    product_id: str = ""
    product: ProductRefDTO | None = Field(default=None, alias="Product")

    @property
    def first_image(self) -> str | None:
        if not self.image_urls:
            return None
        return min(self.image_urls, key=lambda i: i.position).url


class CartItemDTO(WireModel):
    id: str
    cart_id: str | None = None
    variant_id: str | None = None
    quantity: int
    price: Decimal | None = None
    variant: VariantDTO | None = Field(default=None, alias="Variant")

    def to_domain(self) -> CartLineItem:
        """Current variant price wins over the stored line price."""
        variant = self.variant
        if variant is None:
            return PlainLine(
                line_id=self.id,
                product_id=self.variant_id or self.id,
                title="",
                quantity=self.quantity,
                unit_price=self.price if self.price is not None else ZERO,
            )
        product = variant.product
        return VariantLine(
            line_id=self.id,
            product_id=variant.product_id or (product.id if product else ""),
            variant_id=self.variant_id or variant.id,
            title=product.title if product else "",
            quantity=self.quantity,
            unit_price=variant.price,
            compare_price=variant.compare_price,
            sku=variant.sku or "",
            options=dict(variant.option_values or {}),
            image=variant.first_image,
        )


class CartDTO(WireModel):
    id: str
    user_id: str | None = None
    status: str = CartStatus.ACTIVE.value
    items: list[CartItemDTO] = Field(default_factory=list, alias="CartItems")

    def to_domain(self) -> Cart:
        try:
            status = CartStatus(self.status)
        except ValueError:
            status = CartStatus.ACTIVE
        return Cart.server(
            cart_id=self.id,
            user_id=self.user_id,
            lines=tuple(item.to_domain() for item in self.items),
            status=status,
        )


# ═══════════════════════════════════════════════════════════════════════════════
# Addresses
# ═══════════════════════════════════════════════════════════════════════════════


class AddressBody(WireModel):
    first_name: str
    last_name: str
    address_line_1: str
    address_line_2: str | None = None
    company: str | None = None
    city: str
    state: str
    zip_code: str
    country: str
    phone: str | None = None
    country_code: str | None = None
    country_code_iso: str | None = None

    def to_address(self) -> Address:
        return Address(
            first_name=self.first_name,
            last_name=self.last_name,
            address_line_1=self.address_line_1,
            address_line_2=self.address_line_2,
            company=self.company,
            city=self.city,
            state=self.state,
            zip_code=self.zip_code,
            country=self.country,
            phone=self.phone,
            country_code=self.country_code,
            country_code_iso=self.country_code_iso,
        )

    @classmethod
    def from_address(cls, address: Address) -> "AddressBody":
        return cls(
            first_name=address.first_name,
            last_name=address.last_name,
            address_line_1=address.address_line_1,
            address_line_2=address.address_line_2,
            company=address.company,
            city=address.city,
            state=address.state,
            zip_code=address.zip_code,
            country=address.country,
            phone=address.phone,
            country_code=address.country_code,
            country_code_iso=address.country_code_iso,
        )


class UserAddressDTO(AddressBody):
    id: str
    user_id: str = ""
    address_name: str | None = None
    is_default: bool = False

    def to_domain(self) -> UserAddress:
        return UserAddress(
            id=self.id,
            user_id=self.user_id,
            address=self.to_address(),
            address_name=self.address_name or "",
            is_default=self.is_default,
        )


class AddressDraftBody(AddressBody):
    address_name: str = ""
    is_default: bool = False

    @classmethod
    def from_domain(cls, draft: AddressDraft) -> "AddressDraftBody":
        return cls(
            **AddressBody.from_address(draft.address).model_dump(),
            address_name=draft.address_name,
            is_default=draft.is_default,
        )


# ═══════════════════════════════════════════════════════════════════════════════
# Orders / payments
# ═══════════════════════════════════════════════════════════════════════════════


class CheckoutBody(WireModel):
    cart_id: str
    discount_code: str | None = None
    shipping: float
    shipping_address: AddressBody
    billing_address: AddressBody
    shipping_carrier: str
    customer_email: str | None = None
    customer_phone: str | None = None
    buy_now: bool = False

    @classmethod
    def from_domain(cls, request: CheckoutRequest) -> "CheckoutBody":
        return cls(
            cart_id=request.cart_id,
            discount_code=request.discount_code,
            shipping=float(request.shipping),
            shipping_address=AddressBody.from_address(request.shipping_address),
            billing_address=AddressBody.from_address(request.billing_address),
            shipping_carrier=request.carrier,
            customer_email=request.customer.email,
            customer_phone=request.customer.phone,
            buy_now=request.buy_now,
        )


class OrderDetailsDTO(WireModel):
    subtotal: Decimal = ZERO
    tax: Decimal = ZERO
    shipping: Decimal = ZERO
    discount_amount: Decimal = ZERO
    total_amount: Decimal = ZERO
    final_amount: Decimal = ZERO

    def to_domain(self) -> OrderDetails:
        return OrderDetails(
            subtotal=self.subtotal,
            tax=self.tax,
            shipping=self.shipping,
            discount_amount=self.discount_amount,
            total_amount=self.total_amount,
            final_amount=self.final_amount,
        )


class CheckoutResponseDTO(WireModel):
    """Note: `amount` is in minor units (paise), as the gateway takes it."""

    order_id: str
    payment_id: str
    razorpay_order_id: str
    amount: int
    currency: str = "INR"
    key_id: str
    order_details: OrderDetailsDTO | None = None

    def to_domain(self, cart_id: str) -> PendingOrder:
        return PendingOrder(
            order_id=self.order_id,
            payment_id=self.payment_id,
            gateway_order_id=self.razorpay_order_id,
            amount=from_minor_units(self.amount),
            currency=self.currency,
            key_id=self.key_id,
            cart_id=cart_id,
            details=self.order_details.to_domain() if self.order_details else None,
        )


class BuyNowBody(WireModel):
    product_id: str
    quantity: int
    variant_id: str | None = None
    selected_options: dict[str, str] = Field(default_factory=dict)

    @classmethod
    def from_domain(cls, request: BuyNowRequest) -> "BuyNowBody":
        return cls(
            product_id=request.product_id,
            quantity=request.quantity,
            variant_id=request.variant_id,
            selected_options=dict(request.selected_options),
        )


class BuyNowResponseDTO(WireModel):
    cart_id: str


class VerifyBody(WireModel):
    razorpay_order_id: str
    razorpay_payment_id: str
    razorpay_signature: str
    payment_id: str
    order_id: str

    @classmethod
    def from_domain(cls, request: VerifyRequest) -> "VerifyBody":
        return cls(
            razorpay_order_id=request.gateway_order_id,
            razorpay_payment_id=request.gateway_payment_id,
            razorpay_signature=request.signature,
            payment_id=request.payment_id,
            order_id=request.order_id,
        )


def dump(model: BaseModel) -> dict[str, Any]:
    """JSON-ready body without unset optionals."""
    return model.model_dump(mode="json", exclude_none=True)


__all__ = (
    "WireModel",
    "ImageDTO",
    "ProductRefDTO",
    "VariantDTO",
    "CartItemDTO",
    "CartDTO",
    "AddressBody",
    "UserAddressDTO",
    "AddressDraftBody",
    "CheckoutBody",
    "OrderDetailsDTO",
    "CheckoutResponseDTO",
    "BuyNowBody",
    "BuyNowResponseDTO",
    "VerifyBody",
    "dump",
)
