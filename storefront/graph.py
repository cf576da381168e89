"""
Graph — thin runner over nodnod for checkout computations.

    from storefront import graph as G

    @G.node
    class TotalsNode:
        @classmethod
        def __compose__(cls, snapshot: CheckoutSnapshot) -> "TotalsNode":
            return cls(compute_totals(snapshot))

    totals = await G.compose(TotalsNode, snapshot)

Note: values are injected under their runtime type, so a node depending on
CheckoutSnapshot receives whatever CheckoutSnapshot instance was passed.
"""

from __future__ import annotations

import logging
from typing import Any, cast
from collections.abc import Callable, Coroutine

from nodnod import Scope, Value, EventLoopAgent, Node
from nodnod import scalar_node as node

logger = logging.getLogger(__name__)


# ═══════════════════════════════════════════════════════════════════════════════
# compose — One-shot evaluation
# ═══════════════════════════════════════════════════════════════════════════════


async def compose[T](target: type[T], *inputs: object) -> T:
    """
    Evaluate `target` and every node it depends on.

    Example:
        decision = await compose(PlaceOrderDecision, snapshot)
    """
    return await compose_typed(
        target, *((cast(type[Any], type(value)), value) for value in inputs)
    )


async def compose_typed[T](
    target: type[T],
    *injections: tuple[type[Any], Any],
) -> T:
    """Same as compose(), with explicit (type, value) injections."""
    agent = EventLoopAgent.build({cast(type[Node[Any, Any]], target)})

    scope = Scope(detail=f"compose:{target.__name__}")
    async with scope:
        for typ, value in injections:
            scope.push(Value(typ, value))

        run_method = cast(
            Callable[[Scope, dict[type[Any], Scope]], Coroutine[Any, Any, None]],
            getattr(agent, "run"),
        )
        await run_method(scope, {})

        result = scope.get(target)
        if result is None:
            raise KeyError(f"{target.__name__} was not produced")
        logger.debug("Composed %s", target.__name__)
        return cast(T, result.value)


# ═══════════════════════════════════════════════════════════════════════════════
# Exports
# ═══════════════════════════════════════════════════════════════════════════════

__all__ = ("node", "compose", "compose_typed")
