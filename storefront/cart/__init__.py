"""
Cart — line ownership, guest persistence, login merge, abandonment.

    from storefront import cart as K

    store = K.CartStore(K.Cart.empty_guest(), storage=K.MemoryGuestStorage())
    await store.add(K.ItemRef.of(product, variant), 2)

    merger = K.CartMerger(cart_service, storage, K.MemoryMergeLedger())
    match await merger.merge(store.cart, server_cart):
        case Ok(outcome):
            store.adopt(outcome.cart, cart_service)
"""

from storefront.cart._types import (
    ItemRef,
    VariantLine,
    PlainLine,
    CartLineItem,
    line_key_for,
    line_from_ref,
    CartMode,
    CartStatus,
    CartTotals,
    Cart,
    CartErrorKind,
    CartError,
)
from storefront.cart._service import MergeLine, CartService
from storefront.cart._storage import StorageError, GuestCartStorage, MemoryGuestStorage
from storefront.cart._store import (
    CartStore,
    add_to_lines,
    change_quantity,
    remove_line,
    backend_item_id,
)
from storefront.cart._ledger import (
    RecordState,
    MergeRecord,
    MergeLedger,
    MemoryMergeLedger,
)
from storefront.cart._merge import (
    merge_lines,
    merge_token,
    partition_lines,
    DroppedLine,
    PriceChange,
    MergeOutcome,
    MergeErrorKind,
    MergeError,
    CartMerger,
)
from storefront.cart._abandon import AbandonmentTimer
from storefront.cart._sqlalchemy import (
    create_database,
    SQLAlchemyGuestStorage,
    SQLAlchemyMergeLedger,
)

__all__ = (
    "ItemRef",
    "VariantLine",
    "PlainLine",
    "CartLineItem",
    "line_key_for",
    "line_from_ref",
    "CartMode",
    "CartStatus",
    "CartTotals",
    "Cart",
    "CartErrorKind",
    "CartError",
    "MergeLine",
    "CartService",
    "StorageError",
    "GuestCartStorage",
    "MemoryGuestStorage",
    "CartStore",
    "add_to_lines",
    "change_quantity",
    "remove_line",
    "backend_item_id",
    "RecordState",
    "MergeRecord",
    "MergeLedger",
    "MemoryMergeLedger",
    "merge_lines",
    "merge_token",
    "partition_lines",
    "DroppedLine",
    "PriceChange",
    "MergeOutcome",
    "MergeErrorKind",
    "MergeError",
    "CartMerger",
    "AbandonmentTimer",
    "create_database",
    "SQLAlchemyGuestStorage",
    "SQLAlchemyMergeLedger",
)
