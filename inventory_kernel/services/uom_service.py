"""
UomService -- Normalize entered quantities to an item's base unit.

Responsibility:
    Loads the item and the conversion rows that apply to it (item-specific
    plus tenant-wide) and delegates the graph walk to
    ``inventory_engines.uom.convert_quantity``.

Architecture position:
    Kernel > Services.  Read-only; used by the transaction engine during
    preflight and by the allocation / backflush layers.

Failure modes:
    - ItemNotFoundError: unknown item.
    - TenantMismatchError: item belongs to another tenant.
    - InvalidQuantityError, InvalidUomError: from the engine.
"""

from __future__ import annotations

from decimal import Decimal
from uuid import UUID

from sqlalchemy import or_, select

from inventory_engines.uom import ConversionEdge, convert_quantity
from inventory_kernel.exceptions import ItemNotFoundError, TenantMismatchError
from inventory_kernel.models.item import Item
from inventory_kernel.models.uom import UomConversion
from inventory_kernel.services.base import BaseService


class UomService(BaseService):
    """Side-effect-free unit conversion against stored conversion rows."""

    def get_item(self, tenant_id: UUID, item_id: UUID) -> Item:
        item = self.session.get(Item, item_id)
        if item is None:
            raise ItemNotFoundError(str(item_id))
        if item.tenant_id != tenant_id:
            raise TenantMismatchError("Item", str(item_id))
        return item

    def edges_for(self, tenant_id: UUID, item_id: UUID) -> list[ConversionEdge]:
        rows = self.session.execute(
            select(UomConversion)
            .where(
                UomConversion.tenant_id == tenant_id,
                or_(UomConversion.item_id == item_id, UomConversion.item_id.is_(None)),
            )
            .order_by(UomConversion.from_uom, UomConversion.to_uom)
        ).scalars()
        return [
            ConversionEdge(
                from_uom=row.from_uom,
                to_uom=row.to_uom,
                factor=row.factor,
                item_specific=row.item_id is not None,
            )
            for row in rows
        ]

    def normalize(self, tenant_id: UUID, item_id: UUID, qty: Decimal, uom: str) -> Decimal:
        """Convert ``qty`` in ``uom`` to the item's base unit."""
        item = self.get_item(tenant_id, item_id)
        return convert_quantity(
            item_id=item_id,
            qty=qty,
            from_uom=uom,
            to_uom=item.base_uom,
            edges=self.edges_for(tenant_id, item_id),
        )

    def denormalize(self, tenant_id: UUID, item_id: UUID, qty_base: Decimal, uom: str) -> Decimal:
        """Convert a base quantity back to ``uom``."""
        item = self.get_item(tenant_id, item_id)
        return convert_quantity(
            item_id=item_id,
            qty=qty_base,
            from_uom=item.base_uom,
            to_uom=uom,
            edges=self.edges_for(tenant_id, item_id),
        )
