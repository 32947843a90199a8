"""
Module: inventory_kernel.models.uom
Responsibility: ORM persistence for unit-of-measure conversion factors.
Architecture position: Kernel > Models.  May import from db/ only.

Invariants enforced:
    - One row per (tenant, item, from_uom, to_uom).  item_id NULL means a
      tenant-wide conversion (FT -> YD) usable by every item.
    - factor > 0: one from_uom equals ``factor`` to_uom.  The reverse edge
      is implied (1 / factor) and never stored.
"""

from decimal import Decimal
from uuid import UUID

from sqlalchemy import CheckConstraint, ForeignKey, Index, Numeric, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from inventory_kernel.db.base import TrackedBase, UUIDString


class UomConversion(TrackedBase):
    """Directed conversion edge between two units of measure."""

    __tablename__ = "uom_conversions"

    __table_args__ = (
        UniqueConstraint(
            "tenant_id", "item_id", "from_uom", "to_uom", name="uq_uom_conversion"
        ),
        CheckConstraint("factor > 0", name="ck_uom_factor_positive"),
        Index("idx_uom_tenant_item", "tenant_id", "item_id"),
    )

    tenant_id: Mapped[UUID] = mapped_column(UUIDString(), nullable=False)

    item_id: Mapped[UUID | None] = mapped_column(
        UUIDString(),
        ForeignKey("items.id"),
        nullable=True,
    )

    from_uom: Mapped[str] = mapped_column(String(20), nullable=False)

    to_uom: Mapped[str] = mapped_column(String(20), nullable=False)

    factor: Mapped[Decimal] = mapped_column(Numeric(38, 18), nullable=False)

    def __repr__(self) -> str:
        return f"<UomConversion 1 {self.from_uom} = {self.factor} {self.to_uom}>"
