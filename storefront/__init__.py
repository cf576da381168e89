"""
storefront — cart, variant and checkout orchestration for a commerce storefront.

    from storefront import variant as V    # Variant resolution
    from storefront import cart as K       # Cart store, guest storage, login merge
    from storefront import address as A    # Address book
    from storefront import shipping as Sh  # Multi-carrier quoting
    from storefront import checkout as Co  # Checkout state machine
    from storefront import backend as B    # httpx clients for the storefront API

The FastAPI surface lives in `storefront.web` and is imported on demand.
"""

from storefront import graph
from storefront import variant
from storefront import cart
from storefront import address
from storefront import shipping
from storefront import checkout
from storefront import backend
from storefront.config import StorefrontConfig, configure_logging
from storefront._errors import BackendError, BackendErrorKind

__version__ = "0.1.0"

__all__ = (
    "graph",
    "variant",
    "cart",
    "address",
    "shipping",
    "checkout",
    "backend",
    "StorefrontConfig",
    "configure_logging",
    "BackendError",
    "BackendErrorKind",
)
