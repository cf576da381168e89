"""
Place-order gate — totals and the enable/disable decision as a graph.

    CheckoutSnapshot (injected)
        │
    SnapshotNode ──── TotalsNode
        │                 │
    BlockersNode ─────────┤
        │                 │
        ├── OpenGateNode ─┼── PlaceOrderGate (@polymorphic) ── GateDecisionNode
        └── ClosedGateNode┘

Each gate node validates one side; the polymorphic router picks the case
whose dependency succeeded.
"""

from dataclasses import dataclass, field
from enum import Enum, auto

from nodnod import NodeError, polymorphic, case

from storefront import graph as G
from storefront._types import CarrierId, ZERO, round_money
from storefront.address import Address
from storefront.cart import Cart
from storefront.checkout._types import CheckoutTotals
from storefront.shipping import PricedQuote, Quote, QuoteFailure


# ═══════════════════════════════════════════════════════════════════════════════
# Input — Snapshot (injected)
# ═══════════════════════════════════════════════════════════════════════════════


@dataclass(frozen=True)
class CheckoutSnapshot:
    """
    Everything the gate looks at, captured at one instant.

    Note: `quote` is the quote for `carrier` as last reported by the quoter,
    None when nothing is selected yet.
    """

    cart: Cart
    address: Address | None
    carrier: CarrierId | None
    quote: Quote | None
    payment_in_flight: bool = False
    currency: str = "INR"


class Blocker(Enum):
    EMPTY_CART = auto()
    NO_ADDRESS = auto()
    NO_CARRIER = auto()
    CARRIER_ERRORED = auto()
    PAYMENT_IN_FLIGHT = auto()


BLOCKER_MESSAGES: dict[Blocker, str] = {
    Blocker.EMPTY_CART: "Your cart is empty. Add something to continue.",
    Blocker.NO_ADDRESS: "Please choose a shipping address.",
    Blocker.NO_CARRIER: "Please choose a shipping method.",
    Blocker.CARRIER_ERRORED: "The selected carrier cannot ship here. Please choose another.",
    Blocker.PAYMENT_IN_FLIGHT: "A payment is already in progress.",
}


# ═══════════════════════════════════════════════════════════════════════════════
# Pure helpers
# ═══════════════════════════════════════════════════════════════════════════════


def compute_totals(cart: Cart, quote: Quote | None, currency: str) -> CheckoutTotals:
    cart_totals = cart.totals
    shipping = quote.amount if isinstance(quote, PricedQuote) else ZERO
    return CheckoutTotals(
        subtotal=round_money(cart_totals.subtotal),
        discounted_subtotal=round_money(cart_totals.discounted_subtotal),
        product_discount=round_money(cart_totals.product_discount),
        shipping=round_money(shipping),
        total=round_money(cart_totals.discounted_subtotal + shipping),
        currency=currency,
        item_count=cart_totals.item_count,
    )


def place_order_blockers(snapshot: CheckoutSnapshot) -> tuple[Blocker, ...]:
    """Every reason "place order" must stay disabled, in display order."""
    blockers: list[Blocker] = []
    if snapshot.cart.is_empty:
        blockers.append(Blocker.EMPTY_CART)
    if snapshot.address is None:
        blockers.append(Blocker.NO_ADDRESS)
    if snapshot.carrier is None or snapshot.quote is None:
        blockers.append(Blocker.NO_CARRIER)
    elif isinstance(snapshot.quote, QuoteFailure):
        blockers.append(Blocker.CARRIER_ERRORED)
    if snapshot.payment_in_flight:
        blockers.append(Blocker.PAYMENT_IN_FLIGHT)
    return tuple(blockers)


# ═══════════════════════════════════════════════════════════════════════════════
# Decisions
# ═══════════════════════════════════════════════════════════════════════════════


@dataclass(frozen=True, slots=True)
class GateOpen:
    totals: CheckoutTotals
    quote: PricedQuote


@dataclass(frozen=True, slots=True)
class GateClosed:
    totals: CheckoutTotals
    blockers: tuple[Blocker, ...] = field(default_factory=tuple)

    @property
    def message(self) -> str:
        return BLOCKER_MESSAGES[self.blockers[0]] if self.blockers else ""


type GateDecision = GateOpen | GateClosed


# ═══════════════════════════════════════════════════════════════════════════════
# Nodes
# ═══════════════════════════════════════════════════════════════════════════════


@G.node
class SnapshotNode:
    def __init__(self, snapshot: CheckoutSnapshot) -> None:
        self.snapshot = snapshot

    @classmethod
    def __compose__(cls, snapshot: CheckoutSnapshot) -> "SnapshotNode":
        return cls(snapshot)


@G.node
class TotalsNode:
    def __init__(self, totals: CheckoutTotals) -> None:
        self.totals = totals

    @classmethod
    def __compose__(cls, node: SnapshotNode) -> "TotalsNode":
        s = node.snapshot
        return cls(compute_totals(s.cart, s.quote, s.currency))


@G.node
class BlockersNode:
    def __init__(self, blockers: tuple[Blocker, ...], snapshot: CheckoutSnapshot) -> None:
        self.blockers = blockers
        self.snapshot = snapshot

    @classmethod
    def __compose__(cls, node: SnapshotNode) -> "BlockersNode":
        return cls(place_order_blockers(node.snapshot), node.snapshot)


@G.node
class OpenGateNode:
    """Validates: nothing blocks and the selected quote is priced."""

    def __init__(self, quote: PricedQuote, totals: CheckoutTotals) -> None:
        self.quote = quote
        self.totals = totals

    @classmethod
    def __compose__(cls, node: BlockersNode, totals: TotalsNode) -> "OpenGateNode":
        if node.blockers:
            raise NodeError("Blocked")
        quote = node.snapshot.quote
        if not isinstance(quote, PricedQuote):
            raise NodeError("No priced quote")
        return cls(quote, totals.totals)


@G.node
class ClosedGateNode:
    """Validates: at least one blocker."""

    def __init__(self, blockers: tuple[Blocker, ...], totals: CheckoutTotals) -> None:
        self.blockers = blockers
        self.totals = totals

    @classmethod
    def __compose__(cls, node: BlockersNode, totals: TotalsNode) -> "ClosedGateNode":
        if not node.blockers:
            raise NodeError("Not blocked")
        return cls(node.blockers, totals.totals)


@polymorphic[GateDecision]
class PlaceOrderGate:
    @case
    def gate_open(cls, gate: OpenGateNode) -> GateDecision:
        return GateOpen(totals=gate.totals, quote=gate.quote)

    @case
    def gate_closed(cls, gate: ClosedGateNode) -> GateDecision:
        return GateClosed(totals=gate.totals, blockers=gate.blockers)


@G.node
class GateDecisionNode:
    def __init__(self, decision: GateDecision) -> None:
        self.decision = decision

    @classmethod
    def __compose__(cls, decision: PlaceOrderGate) -> "GateDecisionNode":
        return cls(decision.value)


# ═══════════════════════════════════════════════════════════════════════════════
# Public API
# ═══════════════════════════════════════════════════════════════════════════════


async def decide(snapshot: CheckoutSnapshot) -> GateDecision:
    """Run the gate graph for one snapshot."""
    node = await G.compose(GateDecisionNode, snapshot)
    return node.decision


# ═══════════════════════════════════════════════════════════════════════════════
# Exports
# ═══════════════════════════════════════════════════════════════════════════════

__all__ = (
    "CheckoutSnapshot",
    "Blocker",
    "BLOCKER_MESSAGES",
    "compute_totals",
    "place_order_blockers",
    "GateOpen",
    "GateClosed",
    "GateDecision",
    "SnapshotNode",
    "TotalsNode",
    "BlockersNode",
    "OpenGateNode",
    "ClosedGateNode",
    "PlaceOrderGate",
    "GateDecisionNode",
    "decide",
)
