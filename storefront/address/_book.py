"""
AddressBook — a user's saved addresses, kept in step with the address service.
"""

from __future__ import annotations

import logging
from dataclasses import replace

from kungfu import Result, Ok, Error

from storefront._errors import BackendError
from storefront._types import AddressId, UserId
from storefront.address._types import (
    AddressDraft,
    AddressError,
    AddressErrorKind,
    AddressService,
    UserAddress,
    validate_address,
)

logger = logging.getLogger(__name__)


def single_default(addresses: list[UserAddress], default_id: AddressId | None) -> list[UserAddress]:
    """Keep at most one default: `default_id` if given, else the first flagged one."""
    if default_id is None:
        default_id = next((a.id for a in addresses if a.is_default), None)
    return [
        a if a.is_default == (a.id == default_id) else replace(a, is_default=a.id == default_id)
        for a in addresses
    ]


class AddressBook:
    """
    Saved addresses for one user.

    Every mutation is followed by a reload. The service enforces one
    default, and the local list falls back to `single_default` if the
    reload fails.
    """

    def __init__(self, user_id: UserId, service: AddressService) -> None:
        self._user_id = user_id
        self._service = service
        self._addresses: list[UserAddress] = []
        self._loaded = False

    @property
    def addresses(self) -> tuple[UserAddress, ...]:
        return tuple(self._addresses)

    @property
    def loaded(self) -> bool:
        return self._loaded

    @property
    def default(self) -> UserAddress | None:
        """Default address, else the first one (initial checkout choice)."""
        return next((a for a in self._addresses if a.is_default), None) or (
            self._addresses[0] if self._addresses else None
        )

    def get(self, address_id: AddressId) -> UserAddress | None:
        return next((a for a in self._addresses if a.id == address_id), None)

    async def load(self) -> Result[tuple[UserAddress, ...], AddressError]:
        match await self._service.list_addresses(self._user_id):
            case Ok(addresses):
                self._addresses = single_default(list(addresses), None)
                self._loaded = True
                return Ok(self.addresses)
            case Error(err):
                return Error(_backend("load your addresses", err))

    async def add(self, draft: AddressDraft) -> Result[tuple[UserAddress, ...], AddressError]:
        match validate_address(draft.address):
            case Error(err):
                return Error(err)
            case Ok(_):
                pass
        match await self._service.add_address(self._user_id, draft):
            case Error(err):
                return Error(_backend("save this address", err))
            case Ok(_):
                return await self._reload()

    async def update(
        self, address_id: AddressId, draft: AddressDraft
    ) -> Result[tuple[UserAddress, ...], AddressError]:
        if self.get(address_id) is None:
            return Error(_not_found(address_id))
        match validate_address(draft.address):
            case Error(err):
                return Error(err)
            case Ok(_):
                pass
        match await self._service.update_address(address_id, draft):
            case Error(err):
                return Error(_backend("update this address", err))
            case Ok(_):
                pass

        self._addresses = [
            replace(a, address=draft.address, address_name=draft.address_name, is_default=draft.is_default)
            if a.id == address_id
            else a
            for a in self._addresses
        ]
        if draft.is_default:
            self._addresses = single_default(self._addresses, address_id)
        return await self._reload()

    async def delete(self, address_id: AddressId) -> Result[tuple[UserAddress, ...], AddressError]:
        if self.get(address_id) is None:
            return Error(_not_found(address_id))
        match await self._service.delete_address(address_id):
            case Error(err):
                return Error(_backend("delete this address", err))
            case Ok(_):
                self._addresses = [a for a in self._addresses if a.id != address_id]
                return await self._reload()

    async def set_default(self, address_id: AddressId) -> Result[tuple[UserAddress, ...], AddressError]:
        current = self.get(address_id)
        if current is None:
            return Error(_not_found(address_id))
        return await self.update(
            address_id,
            AddressDraft(address=current.address, address_name=current.address_name, is_default=True),
        )

    async def _reload(self) -> Result[tuple[UserAddress, ...], AddressError]:
        match await self._service.list_addresses(self._user_id):
            case Ok(addresses):
                self._addresses = single_default(list(addresses), None)
            case Error(err):
                logger.warning("Address reload failed, keeping local list: %s", err.message)
                self._addresses = single_default(self._addresses, None)
        return Ok(self.addresses)


def _backend(action: str, err: BackendError) -> AddressError:
    logger.error("Address service failed to %s: %s", action, err.message)
    return AddressError(
        kind=AddressErrorKind.BACKEND,
        message=f"Could not {action}. Please try again.",
        original_error=err,
    )


def _not_found(address_id: AddressId) -> AddressError:
    return AddressError(
        kind=AddressErrorKind.NOT_FOUND,
        message=f"Address {address_id} no longer exists. Please choose another.",
    )


__all__ = ("AddressBook", "single_default")
