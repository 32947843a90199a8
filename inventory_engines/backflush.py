"""
Module: inventory_engines.backflush
Responsibility:
    Compute component consumption for a reported production quantity:
    requirement = qty_produced / bom_base_qty x qty_per x (1 + scrap%/100).

Architecture position:
    Engines -- pure calculation layer, zero I/O.  BackflushService converts
    each requirement to the component's base UOM and issues it.

Failure modes:
    - InvalidQuantityError for non-positive qty_produced or bom_base_qty,
      negative qty_per, or negative scrap factor.
"""

from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass
from decimal import Decimal
from uuid import UUID

from inventory_engines.tracer import traced_engine
from inventory_kernel.db.types import round_qty
from inventory_kernel.exceptions import InvalidQuantityError


@dataclass(frozen=True, slots=True)
class BomComponent:
    """One bill-of-materials line as seen by backflush."""

    item_id: UUID
    qty_per: Decimal
    uom: str
    scrap_factor_pct: Decimal = Decimal("0")


@dataclass(frozen=True, slots=True)
class ComponentRequirement:
    """Quantity of one component to consume, in the BOM line's UOM."""

    item_id: UUID
    qty: Decimal
    uom: str


@traced_engine("backflush", "1.0", fingerprint_fields=("qty_produced", "bom_base_qty"))
def calculate_requirements(
    *,
    qty_produced: Decimal,
    bom_base_qty: Decimal,
    components: Sequence[BomComponent],
) -> tuple[ComponentRequirement, ...]:
    """
    Scale each component by the produced quantity, including scrap allowance.

    Components whose requirement rounds to zero are omitted.
    """
    if qty_produced <= 0:
        raise InvalidQuantityError(qty_produced)
    if bom_base_qty <= 0:
        raise InvalidQuantityError(bom_base_qty, "BOM base quantity must be positive")

    requirements: list[ComponentRequirement] = []
    for component in components:
        if component.qty_per < 0:
            raise InvalidQuantityError(component.qty_per, "qty_per cannot be negative")
        if component.scrap_factor_pct < 0:
            raise InvalidQuantityError(
                component.scrap_factor_pct, "scrap factor cannot be negative"
            )
        scrap_multiplier = Decimal(1) + component.scrap_factor_pct / Decimal(100)
        qty = round_qty(qty_produced / bom_base_qty * component.qty_per * scrap_multiplier)
        if qty > 0:
            requirements.append(
                ComponentRequirement(item_id=component.item_id, qty=qty, uom=component.uom)
            )
    return tuple(requirements)
