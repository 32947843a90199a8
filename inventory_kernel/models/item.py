"""
Module: inventory_kernel.models.item
Responsibility: ORM persistence for item master data: SKU, base unit of
    measure and tracking flags.
Architecture position: Kernel > Models.  May import from db/ only.

Invariants enforced:
    - SKU unique per tenant.
    - base_uom is the unit in which every balance, ledger qty_base and lot
      quantity for the item is stored.
    - Tracking flags decide whether transactions must carry a lot and/or a
      serial-number list.
"""

from uuid import UUID

from sqlalchemy import Boolean, Index, Integer, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from inventory_kernel.db.base import TrackedBase, UUIDString


class Item(TrackedBase):
    """
    Stock-keeping item.

    Non-goals:
        - Pricing, costing and BOM structure live outside the kernel.
    """

    __tablename__ = "items"

    __table_args__ = (
        UniqueConstraint("tenant_id", "sku", name="uq_item_tenant_sku"),
        Index("idx_item_tenant", "tenant_id"),
    )

    tenant_id: Mapped[UUID] = mapped_column(UUIDString(), nullable=False)

    sku: Mapped[str] = mapped_column(String(100), nullable=False)

    name: Mapped[str] = mapped_column(String(255), nullable=False)

    # Unit every base quantity is stored in
    base_uom: Mapped[str] = mapped_column(String(20), nullable=False)

    lot_tracked: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)

    serial_tracked: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)

    # Days from receipt to expiration for lots received without an explicit date
    shelf_life_days: Mapped[int | None] = mapped_column(Integer, nullable=True)

    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)

    def __repr__(self) -> str:
        return f"<Item {self.sku} ({self.base_uom})>"
