"""
Guest cart storage — device-local persistence for guest carts.

GuestCartStorage is the protocol; MemoryGuestStorage is for tests and
single-process use. The SQLAlchemy implementation lives in _sqlalchemy.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Protocol

from kungfu import Result, Ok

from storefront.cart._types import Cart


@dataclass(frozen=True)
class StorageError:
    """Storage operation error."""

    message: str
    cause: Exception | None = None


class GuestCartStorage(Protocol):
    async def load(self) -> Result[Cart | None, StorageError]:
        """Stored guest cart, Ok(None) if there is none."""
        ...

    async def save(self, cart: Cart) -> Result[None, StorageError]: ...

    async def clear(self) -> Result[None, StorageError]: ...


class MemoryGuestStorage:
    """
    In-memory guest storage.

    Note: Only for tests / single process. Nothing survives a restart.
    """

    def __init__(self, cart: Cart | None = None) -> None:
        self._cart = cart
        self.saves = 0

    async def load(self) -> Result[Cart | None, StorageError]:
        return Ok(self._cart)

    async def save(self, cart: Cart) -> Result[None, StorageError]:
        self._cart = cart
        self.saves += 1
        return Ok(None)

    async def clear(self) -> Result[None, StorageError]:
        self._cart = None
        return Ok(None)


__all__ = ("StorageError", "GuestCartStorage", "MemoryGuestStorage")
