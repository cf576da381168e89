"""
Address — saved user addresses and guest address forms.

    from storefront import address as A

    book = A.AddressBook(user_id, address_service)
    await book.load()
    ship_to = book.default          # default, else first saved address

    match A.validate_address(guest_form):
        case Ok(address): ...
        case Error(err): err.fields  # missing fields
"""

from storefront.address._types import (
    Address,
    REQUIRED_FIELDS,
    UserAddress,
    AddressDraft,
    AddressErrorKind,
    AddressError,
    validate_address,
    AddressService,
)
from storefront.address._book import AddressBook, single_default

__all__ = (
    "Address",
    "REQUIRED_FIELDS",
    "UserAddress",
    "AddressDraft",
    "AddressErrorKind",
    "AddressError",
    "validate_address",
    "AddressService",
    "AddressBook",
    "single_default",
)
