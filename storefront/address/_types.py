"""
Address types — postal addresses, saved user addresses, validation.
"""

from __future__ import annotations

from dataclasses import dataclass, fields
from enum import Enum, auto
from typing import Protocol

from kungfu import Result, Ok, Error

from storefront._errors import BackendError
from storefront._types import AddressId, UserId


@dataclass(frozen=True, slots=True)
class Address:
    """Shipping / billing address. Ephemeral for guests, embedded in UserAddress otherwise."""

    first_name: str
    last_name: str
    address_line_1: str
    city: str
    state: str
    zip_code: str
    country: str
    address_line_2: str | None = None
    company: str | None = None
    phone: str | None = None
    country_code: str | None = None
    country_code_iso: str | None = None

    @property
    def full_name(self) -> str:
        return f"{self.first_name} {self.last_name}".strip()


REQUIRED_FIELDS: tuple[str, ...] = (
    "first_name",
    "last_name",
    "address_line_1",
    "city",
    "state",
    "zip_code",
    "country",
)


@dataclass(frozen=True, slots=True)
class UserAddress:
    id: AddressId
    user_id: UserId
    address: Address
    address_name: str = ""
    is_default: bool = False


@dataclass(frozen=True, slots=True)
class AddressDraft:
    """Payload for add/update."""

    address: Address
    address_name: str = ""
    is_default: bool = False


class AddressErrorKind(Enum):
    INVALID = auto()  # Form fields missing
    NOT_FOUND = auto()
    BACKEND = auto()


@dataclass(frozen=True, slots=True)
class AddressError:
    kind: AddressErrorKind
    message: str
    fields: tuple[str, ...] = ()
    original_error: BackendError | None = None


def validate_address(address: Address) -> Result[Address, AddressError]:
    """Guest form check: every required field present and non-blank."""
    values = {f.name: getattr(address, f.name) for f in fields(address)}
    missing = tuple(name for name in REQUIRED_FIELDS if not (values[name] or "").strip())
    if missing:
        pretty = ", ".join(name.replace("_", " ") for name in missing)
        return Error(
            AddressError(
                kind=AddressErrorKind.INVALID,
                message=f"Please fill in: {pretty}",
                fields=missing,
            )
        )
    return Ok(address)


class AddressService(Protocol):
    async def list_addresses(
        self, user_id: UserId
    ) -> Result[list[UserAddress], BackendError]: ...

    async def add_address(
        self, user_id: UserId, draft: AddressDraft
    ) -> Result[None, BackendError]: ...

    async def update_address(
        self, address_id: AddressId, draft: AddressDraft
    ) -> Result[None, BackendError]: ...

    async def delete_address(self, address_id: AddressId) -> Result[None, BackendError]: ...


__all__ = (
    "Address",
    "REQUIRED_FIELDS",
    "UserAddress",
    "AddressDraft",
    "AddressErrorKind",
    "AddressError",
    "validate_address",
    "AddressService",
)
