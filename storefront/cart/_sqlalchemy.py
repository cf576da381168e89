"""
SQLAlchemy persistence — guest carts and the merge ledger.

Usage:
    session_factory, engine = await create_database("sqlite+aiosqlite:///guest.db")

    storage = SQLAlchemyGuestStorage(session_factory, device_id="device-1")
    ledger = SQLAlchemyMergeLedger(session_factory)

Note: guest carts are stored as one JSON document per device, validated
through pydantic on the way back in.
"""

from datetime import datetime
from decimal import Decimal
from typing import Any, Literal, cast

from pydantic import BaseModel
from sqlalchemy import DateTime, Integer, String, Text, select, delete
from sqlalchemy.dialects.sqlite import insert as sqlite_insert
from sqlalchemy.engine import CursorResult
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column

from kungfu import Result, Ok, Error

from storefront._types import CartId, UserId
from storefront.cart._types import (
    Cart,
    CartLineItem,
    CartMode,
    PlainLine,
    VariantLine,
)
from storefront.cart._storage import StorageError
from storefront.cart._ledger import MergeRecord, RecordState


# ═══════════════════════════════════════════════════════════════════════════════
# Tables
# ═══════════════════════════════════════════════════════════════════════════════


class Base(DeclarativeBase):
    pass


class GuestCartTable(Base):
    __tablename__ = "guest_carts"

    device_id: Mapped[str] = mapped_column(String(64), primary_key=True)
    merge_token: Mapped[str] = mapped_column(String(64), nullable=False)
    version: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    payload: Mapped[str] = mapped_column(Text, nullable=False)
    updated_at: Mapped[datetime] = mapped_column(DateTime, nullable=False)


class MergeLedgerTable(Base):
    __tablename__ = "cart_merges"

    token: Mapped[str] = mapped_column(String(255), primary_key=True)
    user_id: Mapped[str] = mapped_column(String(64), nullable=False, index=True)
    status: Mapped[str] = mapped_column(String(20), nullable=False, default="pending")
    cart_id: Mapped[str | None] = mapped_column(String(64), nullable=True)
    error: Mapped[str | None] = mapped_column(Text, nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime, nullable=False)


async def create_database(
    url: str = "sqlite+aiosqlite:///:memory:",
) -> tuple[async_sessionmaker[AsyncSession], AsyncEngine]:
    """Create tables and return (session_factory, engine)."""
    engine = create_async_engine(url, echo=False)

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    return async_sessionmaker(engine, expire_on_commit=False), engine


# ═══════════════════════════════════════════════════════════════════════════════
# JSON Codec
# ═══════════════════════════════════════════════════════════════════════════════


class StoredLine(BaseModel):
    kind: Literal["variant", "plain"]
    line_id: str
    product_id: str
    variant_id: str | None = None
    title: str
    quantity: int
    unit_price: Decimal
    compare_price: Decimal | None = None
    sku: str = ""
    options: dict[str, str] = {}
    image: str | None = None

    def to_domain(self) -> CartLineItem:
        if self.kind == "variant" and self.variant_id:
            return VariantLine(
                line_id=self.line_id,
                product_id=self.product_id,
                variant_id=self.variant_id,
                title=self.title,
                quantity=self.quantity,
                unit_price=self.unit_price,
                compare_price=self.compare_price,
                sku=self.sku,
                options=dict(self.options),
                image=self.image,
            )
        return PlainLine(
            line_id=self.line_id,
            product_id=self.product_id,
            title=self.title,
            quantity=self.quantity,
            unit_price=self.unit_price,
            compare_price=self.compare_price,
            sku=self.sku,
            image=self.image,
        )

    @classmethod
    def from_domain(cls, line: CartLineItem) -> "StoredLine":
        match line:
            case VariantLine():
                return cls(
                    kind="variant",
                    line_id=line.line_id,
                    product_id=line.product_id,
                    variant_id=line.variant_id,
                    title=line.title,
                    quantity=line.quantity,
                    unit_price=line.unit_price,
                    compare_price=line.compare_price,
                    sku=line.sku,
                    options=dict(line.options),
                    image=line.image,
                )
            case PlainLine():
                return cls(
                    kind="plain",
                    line_id=line.line_id,
                    product_id=line.product_id,
                    title=line.title,
                    quantity=line.quantity,
                    unit_price=line.unit_price,
                    compare_price=line.compare_price,
                    sku=line.sku,
                    image=line.image,
                )


class StoredCart(BaseModel):
    lines: list[StoredLine]


# ═══════════════════════════════════════════════════════════════════════════════
# Guest Storage
# ═══════════════════════════════════════════════════════════════════════════════


class SQLAlchemyGuestStorage:
    """Guest cart of one device, persisted in `guest_carts`."""

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        device_id: str,
    ) -> None:
        self._session_factory = session_factory
        self._device_id = device_id

    async def load(self) -> Result[Cart | None, StorageError]:
        try:
            async with self._session_factory() as session:
                row = await session.get(GuestCartTable, self._device_id)
                if row is None:
                    return Ok(None)
                stored = StoredCart.model_validate_json(row.payload)
                return Ok(
                    Cart(
                        mode=CartMode.GUEST,
                        lines=tuple(l.to_domain() for l in stored.lines),
                        version=row.version,
                        merge_token=row.merge_token,
                    )
                )
        except Exception as e:
            return Error(StorageError(f"Failed to load guest cart: {e}", e))

    async def save(self, cart: Cart) -> Result[None, StorageError]:
        try:
            payload = StoredCart(
                lines=[StoredLine.from_domain(l) for l in cart.lines]
            ).model_dump_json()
            async with self._session_factory() as session:
                row = await session.get(GuestCartTable, self._device_id)
                if row is None:
                    session.add(
                        GuestCartTable(
                            device_id=self._device_id,
                            merge_token=cart.merge_token,
                            version=cart.version,
                            payload=payload,
                            updated_at=datetime.now(),
                        )
                    )
                else:
                    row.merge_token = cart.merge_token
                    row.version = cart.version
                    row.payload = payload
                    row.updated_at = datetime.now()
                await session.commit()
                return Ok(None)
        except Exception as e:
            return Error(StorageError(f"Failed to save guest cart: {e}", e))

    async def clear(self) -> Result[None, StorageError]:
        try:
            async with self._session_factory() as session:
                await session.execute(
                    delete(GuestCartTable).where(GuestCartTable.device_id == self._device_id)
                )
                await session.commit()
                return Ok(None)
        except Exception as e:
            return Error(StorageError(f"Failed to clear guest cart: {e}", e))


# ═══════════════════════════════════════════════════════════════════════════════
# Merge Ledger
# ═══════════════════════════════════════════════════════════════════════════════


_STATUS = {
    RecordState.PENDING: "pending",
    RecordState.COMPLETED: "completed",
    RecordState.FAILED: "failed",
}
_STATE = {v: k for k, v in _STATUS.items()}


class SQLAlchemyMergeLedger:
    """
    Merge ledger in `cart_merges`.

    Note: begin() is INSERT ... ON CONFLICT DO NOTHING; rowcount tells
    whether this call created the record.
    """

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]) -> None:
        self._session_factory = session_factory

    async def get(self, token: str) -> Result[MergeRecord | None, StorageError]:
        try:
            async with self._session_factory() as session:
                result = await session.execute(
                    select(MergeLedgerTable).where(MergeLedgerTable.token == token)
                )
                row = result.scalar_one_or_none()
                if row is None:
                    return Ok(None)
                return Ok(
                    MergeRecord(
                        token=row.token,
                        user_id=row.user_id,
                        state=_STATE[row.status],
                        created_at=row.created_at,
                        cart_id=row.cart_id,
                        error=row.error,
                    )
                )
        except Exception as e:
            return Error(StorageError(f"Failed to get merge record: {e}", e))

    async def begin(self, token: str, user_id: UserId) -> Result[bool, StorageError]:
        try:
            async with self._session_factory() as session:
                stmt = (
                    sqlite_insert(MergeLedgerTable)
                    .values(
                        token=token,
                        user_id=user_id,
                        status=_STATUS[RecordState.PENDING],
                        created_at=datetime.now(),
                    )
                    .on_conflict_do_nothing(index_elements=["token"])
                )
                cursor = cast(CursorResult[Any], await session.execute(stmt))
                await session.commit()
                return Ok(cursor.rowcount > 0)
        except Exception as e:
            return Error(StorageError(f"Failed to begin merge: {e}", e))

    async def complete(
        self, token: str, cart_id: CartId | None
    ) -> Result[None, StorageError]:
        return await self._update(token, RecordState.COMPLETED, cart_id=cart_id)

    async def fail(self, token: str, message: str) -> Result[None, StorageError]:
        return await self._update(token, RecordState.FAILED, error=message)

    async def _update(
        self,
        token: str,
        state: RecordState,
        *,
        cart_id: CartId | None = None,
        error: str | None = None,
    ) -> Result[None, StorageError]:
        try:
            async with self._session_factory() as session:
                row = await session.get(MergeLedgerTable, token)
                if row is None:
                    return Error(StorageError(f"Merge record not found: {token}"))
                row.status = _STATUS[state]
                if cart_id is not None:
                    row.cart_id = cart_id
                row.error = error
                await session.commit()
                return Ok(None)
        except Exception as e:
            return Error(StorageError(f"Failed to update merge record: {e}", e))


# ═══════════════════════════════════════════════════════════════════════════════
# Exports
# ═══════════════════════════════════════════════════════════════════════════════

__all__ = (
    "Base",
    "GuestCartTable",
    "MergeLedgerTable",
    "create_database",
    "StoredLine",
    "StoredCart",
    "SQLAlchemyGuestStorage",
    "SQLAlchemyMergeLedger",
)
