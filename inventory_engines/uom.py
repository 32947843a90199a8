"""
Module: inventory_engines.uom
Responsibility:
    Convert quantities between units of measure by walking a conversion
    graph.  Each stored conversion is a directed edge (1 from = factor to);
    its reverse edge is implied with factor 1 / factor.  The path with the
    fewest hops wins.

Architecture position:
    Engines -- pure calculation layer, zero I/O.  The kernel's UomService
    loads conversion rows and hands them here as ConversionEdge values.

Invariants enforced:
    - Item-specific conversions take precedence over tenant-wide ones for the
      same (from, to) pair, and are explored first.
    - Results are rounded to 9 decimal places, ROUND_HALF_UP.
    - Intermediate products keep 40 significant digits so multi-hop paths
      and reverse edges do not accumulate rounding error.

Failure modes:
    - InvalidUomError when no path exists.
    - InvalidQuantityError for non-positive quantities.
"""

from __future__ import annotations

from collections import deque
from collections.abc import Iterable
from dataclasses import dataclass
from decimal import Decimal, localcontext
from uuid import UUID

from inventory_engines.tracer import traced_engine
from inventory_kernel.db.types import round_qty
from inventory_kernel.exceptions import InvalidQuantityError, InvalidUomError

_WORKING_PRECISION = 40


def canonical_uom(code: str) -> str:
    return code.strip().upper()


@dataclass(frozen=True, slots=True)
class ConversionEdge:
    """One stored conversion: 1 ``from_uom`` = ``factor`` ``to_uom``."""

    from_uom: str
    to_uom: str
    factor: Decimal
    item_specific: bool = False

    def __post_init__(self) -> None:
        if self.factor <= 0:
            raise ValueError(f"Conversion factor must be positive: {self.factor}")


class UomGraph:
    """
    Directed conversion graph with implied reverse edges.

    Contract:
        Built once per normalization from the rows that apply to one item
        (its own rows plus tenant-wide rows).  Neighbour order is
        deterministic: item-specific edges before tenant-wide ones, each in
        the order supplied.
    """

    def __init__(self, edges: Iterable[ConversionEdge]):
        edges = list(edges)
        self._adjacency: dict[str, dict[str, Decimal]] = {}

        # Tiers: item-specific before tenant-wide; within a tier explicit
        # edges before implied reverses.  The first factor written wins.
        with localcontext() as ctx:
            ctx.prec = _WORKING_PRECISION
            for tier in (True, False):
                tier_edges = [e for e in edges if e.item_specific is tier]
                for edge in tier_edges:
                    self._add(edge.from_uom, edge.to_uom, edge.factor)
                for edge in tier_edges:
                    self._add(edge.to_uom, edge.from_uom, Decimal(1) / edge.factor)

    def _add(self, from_uom: str, to_uom: str, factor: Decimal) -> None:
        neighbours = self._adjacency.setdefault(canonical_uom(from_uom), {})
        neighbours.setdefault(canonical_uom(to_uom), factor)

    @property
    def units(self) -> frozenset[str]:
        return frozenset(self._adjacency)

    def factor(self, from_uom: str, to_uom: str) -> Decimal | None:
        """Multiplier taking ``from_uom`` to ``to_uom`` along the shortest path."""
        src, dst = canonical_uom(from_uom), canonical_uom(to_uom)
        if src == dst:
            return Decimal(1)

        previous: dict[str, str] = {src: src}
        queue: deque[str] = deque([src])
        while queue:
            node = queue.popleft()
            if node == dst:
                break
            for neighbour in self._adjacency.get(node, {}):
                if neighbour not in previous:
                    previous[neighbour] = node
                    queue.append(neighbour)

        if dst not in previous:
            return None

        path = [dst]
        while path[-1] != src:
            path.append(previous[path[-1]])
        path.reverse()

        with localcontext() as ctx:
            ctx.prec = _WORKING_PRECISION
            result = Decimal(1)
            for a, b in zip(path, path[1:]):
                result *= self._adjacency[a][b]
        return result


@traced_engine("uom_conversion", "1.0", fingerprint_fields=("qty", "from_uom", "to_uom"))
def convert_quantity(
    *,
    item_id: UUID | str,
    qty: Decimal,
    from_uom: str,
    to_uom: str,
    edges: Iterable[ConversionEdge],
) -> Decimal:
    """
    Convert ``qty`` from one unit to another for an item.

    Raises:
        InvalidQuantityError: qty is not a positive finite Decimal.
        InvalidUomError: no conversion path exists.
    """
    if not qty.is_finite() or qty <= 0:
        raise InvalidQuantityError(qty)

    factor = UomGraph(edges).factor(from_uom, to_uom)
    if factor is None:
        raise InvalidUomError(str(item_id), canonical_uom(from_uom), canonical_uom(to_uom))

    with localcontext() as ctx:
        ctx.prec = _WORKING_PRECISION
        converted = qty * factor
    return round_qty(converted)
