"""
Web — FastAPI surface over variant resolution and the cart.

    app = create_app(catalog=lookup_product, store=store)

    POST   /variants/resolve
    GET    /cart
    POST   /cart/items
    POST   /cart/lines/{line_id}/increase
    POST   /cart/lines/{line_id}/decrease
    DELETE /cart/lines/{line_id}

Requests implement `to_domain()`, responses `from_domain()`. Domain errors
map to HTTP status codes in one place (`_cart_status`).
"""

from collections.abc import Awaitable, Callable
from decimal import Decimal

import fastapi
from kungfu import Ok, Error
from pydantic import BaseModel, Field

from storefront._types import ProductId
from storefront.cart import (
    Cart,
    CartError,
    CartErrorKind,
    CartLineItem,
    CartStore,
    ItemRef,
    VariantLine,
)
from storefront.variant import (
    Incomplete,
    NoMatch,
    Product,
    Resolved,
    ResolverView,
    VariantResolver,
)

type ProductLookup = Callable[[ProductId], Awaitable[Product | None]]


# ═══════════════════════════════════════════════════════════════════════════════
# Variant models
# ═══════════════════════════════════════════════════════════════════════════════


class OptionChoice(BaseModel):
    axis: str
    value: str


class ResolveRequest(BaseModel):
    """Choices are applied in order, as a shopper would click them."""

    product_id: str
    choices: list[OptionChoice] = Field(default_factory=list)

    def to_domain(self) -> tuple[tuple[str, str], ...]:
        return tuple((c.axis, c.value) for c in self.choices)


class ValueOut(BaseModel):
    value: str
    available: bool
    selectable: bool
    selected: bool


class AxisOut(BaseModel):
    axis: str
    values: list[ValueOut]


class DisplayOut(BaseModel):
    price: Decimal
    compare_price: Decimal | None
    discount_percent: int
    stock_qty: int
    in_stock: bool
    sku: str
    images: list[str]


class ResolveResponse(BaseModel):
    status: str
    variant_id: str | None = None
    missing: list[str] = Field(default_factory=list)
    selected: dict[str, str] = Field(default_factory=dict)
    display: DisplayOut
    grid: list[AxisOut]

    @classmethod
    def from_domain(cls, view: ResolverView) -> "ResolveResponse":
        match view.resolution:
            case Resolved(variant):
                status, variant_id, missing = "resolved", variant.id, ()
            case Incomplete(missing=axes):
                status, variant_id, missing = "incomplete", None, axes
            case NoMatch():
                status, variant_id, missing = "no_match", None, ()
        display = view.display
        return cls(
            status=status,
            variant_id=variant_id,
            missing=list(missing),
            selected=dict(view.state.selected),
            display=DisplayOut(
                price=display.price,
                compare_price=display.compare_price,
                discount_percent=display.discount_percent,
                stock_qty=display.stock_qty,
                in_stock=display.in_stock,
                sku=display.sku,
                images=[i.url for i in display.images],
            ),
            grid=[
                AxisOut(
                    axis=axis.axis,
                    values=[
                        ValueOut(
                            value=v.value,
                            available=v.available,
                            selectable=v.selectable,
                            selected=v.selected,
                        )
                        for v in axis.values
                    ],
                )
                for axis in view.grid
            ],
        )


# ═══════════════════════════════════════════════════════════════════════════════
# Cart models
# ═══════════════════════════════════════════════════════════════════════════════


class AddItemRequest(BaseModel):
    product_id: str
    variant_id: str | None = None
    quantity: int = 1


class DeltaRequest(BaseModel):
    delta: int = 1


class LineOut(BaseModel):
    line_id: str
    kind: str
    product_id: str
    variant_id: str | None
    title: str
    quantity: int
    unit_price: Decimal
    compare_price: Decimal | None
    options: dict[str, str]
    image: str | None

    @classmethod
    def from_domain(cls, line: CartLineItem) -> "LineOut":
        is_variant = isinstance(line, VariantLine)
        return cls(
            line_id=line.line_id,
            kind=line.kind,
            product_id=line.product_id,
            variant_id=line.variant_id if is_variant else None,
            title=line.title,
            quantity=line.quantity,
            unit_price=line.unit_price,
            compare_price=line.compare_price,
            options=dict(line.options) if is_variant else {},
            image=line.image,
        )


class CartResponse(BaseModel):
    mode: str
    cart_id: str | None
    lines: list[LineOut]
    item_count: int
    subtotal: Decimal
    discounted_subtotal: Decimal
    product_discount: Decimal

    @classmethod
    def from_domain(cls, cart: Cart) -> "CartResponse":
        totals = cart.totals
        return cls(
            mode=cart.mode.name.lower(),
            cart_id=cart.cart_id,
            lines=[LineOut.from_domain(line) for line in cart.lines],
            item_count=totals.item_count,
            subtotal=totals.subtotal,
            discounted_subtotal=totals.discounted_subtotal,
            product_discount=totals.product_discount,
        )


# ═══════════════════════════════════════════════════════════════════════════════
# Error mapping
# ═══════════════════════════════════════════════════════════════════════════════

_CART_STATUS: dict[CartErrorKind, int] = {
    CartErrorKind.LINE_BUSY: 409,
    CartErrorKind.LINE_NOT_FOUND: 404,
    CartErrorKind.INVALID_QUANTITY: 422,
    CartErrorKind.BACKEND: 502,
    CartErrorKind.STORAGE: 503,
}


def _cart_status(err: CartError) -> fastapi.HTTPException:
    return fastapi.HTTPException(status_code=_CART_STATUS[err.kind], detail=err.message)


# ═══════════════════════════════════════════════════════════════════════════════
# App
# ═══════════════════════════════════════════════════════════════════════════════


def create_app(catalog: ProductLookup, store: CartStore) -> fastapi.FastAPI:
    """Build the app around one catalog lookup and one shared cart store."""
    app = fastapi.FastAPI(title="storefront")

    async def _product(product_id: str) -> Product:
        product = await catalog(product_id)
        if product is None:
            raise fastapi.HTTPException(status_code=404, detail="Product not found")
        return product

    @app.post("/variants/resolve", response_model=ResolveResponse)
    async def resolve(req: ResolveRequest) -> ResolveResponse:
        resolver = VariantResolver(await _product(req.product_id))
        for axis, value in req.to_domain():
            match resolver.select(axis, value):
                case Error(err):
                    raise fastapi.HTTPException(status_code=422, detail=err.message)
                case Ok(_):
                    pass
        return ResolveResponse.from_domain(resolver.view)

    @app.get("/cart", response_model=CartResponse)
    async def get_cart() -> CartResponse:
        return CartResponse.from_domain(store.cart)

    @app.post("/cart/items", response_model=CartResponse)
    async def add_item(req: AddItemRequest) -> CartResponse:
        product = await _product(req.product_id)
        variant = None
        if product.has_variants:
            variant = product.variant(req.variant_id) if req.variant_id else None
            if variant is None:
                raise fastapi.HTTPException(
                    status_code=422, detail="Please select all options before adding to cart"
                )
        match await store.add(ItemRef.of(product, variant), req.quantity):
            case Ok(cart):
                return CartResponse.from_domain(cart)
            case Error(err):
                raise _cart_status(err)

    @app.post("/cart/lines/{line_id}/increase", response_model=CartResponse)
    async def increase(line_id: str, req: DeltaRequest) -> CartResponse:
        match await store.increase(line_id, req.delta):
            case Ok(cart):
                return CartResponse.from_domain(cart)
            case Error(err):
                raise _cart_status(err)

    @app.post("/cart/lines/{line_id}/decrease", response_model=CartResponse)
    async def decrease(line_id: str, req: DeltaRequest) -> CartResponse:
        match await store.decrease(line_id, req.delta):
            case Ok(cart):
                return CartResponse.from_domain(cart)
            case Error(err):
                raise _cart_status(err)

    @app.delete("/cart/lines/{line_id}", response_model=CartResponse)
    async def remove(line_id: str) -> CartResponse:
        match await store.remove(line_id):
            case Ok(cart):
                return CartResponse.from_domain(cart)
            case Error(err):
                raise _cart_status(err)

    return app


__all__ = (
    "ProductLookup",
    "ResolveRequest",
    "ResolveResponse",
    "AddItemRequest",
    "DeltaRequest",
    "CartResponse",
    "create_app",
)
