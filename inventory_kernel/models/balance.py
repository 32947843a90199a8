"""
Module: inventory_kernel.models.balance
Responsibility: ORM persistence for the materialized on-hand balance per
    (tenant, item, location).
Architecture position: Kernel > Models.  May import from db/ only.

Invariants enforced:
    - One row per (tenant_id, item_id, location_id) (unique constraint).
    - qty_base equals the signed sum of ledger deltas for the pair.  The row
      is a projection of the ledger, never the primary record.
    - Mutated exclusively by the transaction engine through BalanceStore.
    - version is SQLAlchemy's optimistic-lock counter: an UPDATE whose
      version no longer matches raises StaleDataError.

Failure modes:
    - IntegrityError when two writers race to insert the first row for a
      pair; the engine maps it to StorageConflictError and retries.
    - StaleDataError on a lost optimistic-lock race; same mapping.
"""

from datetime import datetime
from decimal import Decimal
from uuid import UUID

from sqlalchemy import BigInteger, ForeignKey, Index, Numeric, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from inventory_kernel.db.base import Base, UTCDateTime, UUIDString


class InventoryBalance(Base):
    """On-hand base quantity of one item at one location."""

    __tablename__ = "inventory_balances"

    __table_args__ = (
        UniqueConstraint(
            "tenant_id", "item_id", "location_id", name="uq_balance_tenant_item_location"
        ),
        Index("idx_balance_site_item", "site_id", "item_id"),
    )

    tenant_id: Mapped[UUID] = mapped_column(UUIDString(), nullable=False)

    item_id: Mapped[UUID] = mapped_column(
        UUIDString(),
        ForeignKey("items.id"),
        nullable=False,
    )

    location_id: Mapped[UUID] = mapped_column(
        UUIDString(),
        ForeignKey("locations.id"),
        nullable=False,
    )

    site_id: Mapped[UUID] = mapped_column(
        UUIDString(),
        ForeignKey("sites.id"),
        nullable=False,
    )

    qty_base: Mapped[Decimal] = mapped_column(
        Numeric(38, 9),
        nullable=False,
        default=Decimal("0"),
    )

    version: Mapped[int] = mapped_column(BigInteger, nullable=False)

    # Start of the current stock run: set on the receipt that makes qty_base
    # positive, cleared when it returns to zero.  Orders untracked stock for
    # FIFO/LIFO.
    first_receipt_at: Mapped[datetime | None] = mapped_column(UTCDateTime(), nullable=True)

    updated_at: Mapped[datetime] = mapped_column(UTCDateTime(), nullable=False)

    __mapper_args__ = {"version_id_col": version}

    def __repr__(self) -> str:
        return f"<InventoryBalance item={self.item_id} loc={self.location_id} qty={self.qty_base}>"
