"""
Merge ledger — remembers which guest-cart merges were acknowledged.

One record per merge token:
    PENDING → COMPLETED (backend acknowledged)
            → FAILED (retries exhausted; replay with the same token)
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass, replace
from datetime import datetime
from enum import Enum, auto
from typing import Protocol

from kungfu import Result, Ok, Error

from storefront._types import CartId, UserId
from storefront.cart._storage import StorageError


# ═══════════════════════════════════════════════════════════════════════════════
# Record
# ═══════════════════════════════════════════════════════════════════════════════


class RecordState(Enum):
    PENDING = auto()
    COMPLETED = auto()
    FAILED = auto()


@dataclass(frozen=True, slots=True)
class MergeRecord:
    token: str
    user_id: UserId
    state: RecordState
    created_at: datetime
    cart_id: CartId | None = None
    error: str | None = None

    @property
    def is_completed(self) -> bool:
        return self.state == RecordState.COMPLETED


# ═══════════════════════════════════════════════════════════════════════════════
# Protocol
# ═══════════════════════════════════════════════════════════════════════════════


class MergeLedger(Protocol):
    async def get(self, token: str) -> Result[MergeRecord | None, StorageError]: ...

    async def begin(self, token: str, user_id: UserId) -> Result[bool, StorageError]:
        """
        Atomically create a PENDING record.

        Returns Ok(True) if created, Ok(False) if the token already exists.
        """
        ...

    async def complete(
        self, token: str, cart_id: CartId | None
    ) -> Result[None, StorageError]: ...

    async def fail(self, token: str, message: str) -> Result[None, StorageError]: ...


# ═══════════════════════════════════════════════════════════════════════════════
# Memory Ledger
# ═══════════════════════════════════════════════════════════════════════════════


class MemoryMergeLedger:
    """
    In-memory ledger.

    Note: single process only.
    """

    def __init__(self) -> None:
        self._records: dict[str, MergeRecord] = {}
        self._lock = asyncio.Lock()

    async def get(self, token: str) -> Result[MergeRecord | None, StorageError]:
        async with self._lock:
            return Ok(self._records.get(token))

    async def begin(self, token: str, user_id: UserId) -> Result[bool, StorageError]:
        async with self._lock:
            if token in self._records:
                return Ok(False)
            self._records[token] = MergeRecord(
                token=token,
                user_id=user_id,
                state=RecordState.PENDING,
                created_at=datetime.now(),
            )
            return Ok(True)

    async def complete(
        self, token: str, cart_id: CartId | None
    ) -> Result[None, StorageError]:
        async with self._lock:
            record = self._records.get(token)
            if record is None:
                return Error(StorageError(f"Merge record not found: {token}"))
            self._records[token] = replace(
                record, state=RecordState.COMPLETED, cart_id=cart_id, error=None
            )
            return Ok(None)

    async def fail(self, token: str, message: str) -> Result[None, StorageError]:
        async with self._lock:
            record = self._records.get(token)
            if record is None:
                return Error(StorageError(f"Merge record not found: {token}"))
            self._records[token] = replace(record, state=RecordState.FAILED, error=message)
            return Ok(None)


# ═══════════════════════════════════════════════════════════════════════════════
# Exports
# ═══════════════════════════════════════════════════════════════════════════════

__all__ = (
    "RecordState",
    "MergeRecord",
    "MergeLedger",
    "MemoryMergeLedger",
)
