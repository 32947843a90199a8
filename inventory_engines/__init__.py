"""
Module: inventory_engines
Responsibility:
    Pure calculation engines for the inventory kernel: unit-of-measure
    conversion, allocation ordering and greedy consumption, and backflush
    requirement calculation.

Architecture position:
    Engines -- pure calculation layer, zero I/O.  May import
    inventory_kernel exceptions, logging and db.types helpers only.
    MUST NOT import inventory_kernel services, selectors or models.

Invariants enforced:
    - Engines never read the clock; timestamps arrive as parameters.
    - Decimal-only arithmetic; floats are forbidden.
    - Identical inputs always produce identical outputs.

Audit relevance:
    Every public engine call emits an INVENTORY_ENGINE_TRACE record via
    ``@traced_engine``.
"""

from inventory_engines.allocation import (
    AllocationEngine,
    AllocationLine,
    AllocationPlan,
    AllocationStrategy,
    SupplyCandidate,
    order_candidates,
)
from inventory_engines.backflush import (
    BomComponent,
    ComponentRequirement,
    calculate_requirements,
)
from inventory_engines.uom import ConversionEdge, UomGraph, convert_quantity

__all__ = [
    "AllocationEngine",
    "AllocationLine",
    "AllocationPlan",
    "AllocationStrategy",
    "BomComponent",
    "ComponentRequirement",
    "ConversionEdge",
    "SupplyCandidate",
    "UomGraph",
    "calculate_requirements",
    "convert_quantity",
    "order_candidates",
]
