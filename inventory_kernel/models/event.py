"""
Module: inventory_kernel.models.event
Responsibility: ORM persistence for the append-only inventory event ledger.
Architecture position: Kernel > Models.  May import from db/ only.

Invariants enforced:
    - Rows are never updated or deleted (db/immutability.py listeners).
      Corrections are new compensating events.
    - qty_base > 0 always; direction is encoded by event_type plus
      from/to location, never by sign.
    - MOVE/TRANSFER: both locations set and distinct.  RECEIPT: to only.
      ISSUE: from only.  ADJUST: to for INCREASE, from for DECREASE.
      COUNT: exactly one location, zero balance effect.

Audit relevance:
    The ledger is the source of truth.  Every row names the acting user,
    the reason code (when the change needs one), the source document and
    the request correlation id.  Ordering is (created_at, id).
"""

from datetime import datetime
from decimal import Decimal
from uuid import UUID

from sqlalchemy import JSON, CheckConstraint, ForeignKey, Index, Numeric, String
from sqlalchemy.orm import Mapped, mapped_column

from inventory_kernel.db.base import Base, UTCDateTime, UUIDString
from inventory_kernel.domain.transactions import TxnType


class InventoryEvent(Base):
    """
    One immutable ledger row.

    Contract:
        Written once by the transaction engine inside the same database
        transaction as the balance upsert it explains.
    """

    __tablename__ = "inventory_events"

    __table_args__ = (
        CheckConstraint("qty_base > 0", name="ck_event_qty_base_positive"),
        Index("idx_event_item_from", "tenant_id", "item_id", "from_location_id"),
        Index("idx_event_item_to", "tenant_id", "item_id", "to_location_id"),
        Index("idx_event_created", "tenant_id", "created_at"),
        Index("idx_event_lot", "lot_id"),
        Index("idx_event_reference", "reference_type", "reference_id"),
    )

    tenant_id: Mapped[UUID] = mapped_column(UUIDString(), nullable=False)

    site_id: Mapped[UUID] = mapped_column(
        UUIDString(),
        ForeignKey("sites.id"),
        nullable=False,
    )

    event_type: Mapped[TxnType] = mapped_column(String(20), nullable=False)

    item_id: Mapped[UUID] = mapped_column(
        UUIDString(),
        ForeignKey("items.id"),
        nullable=False,
    )

    from_location_id: Mapped[UUID | None] = mapped_column(
        UUIDString(),
        ForeignKey("locations.id"),
        nullable=True,
    )

    to_location_id: Mapped[UUID | None] = mapped_column(
        UUIDString(),
        ForeignKey("locations.id"),
        nullable=True,
    )

    # As entered by the operator
    qty_entered: Mapped[Decimal] = mapped_column(Numeric(38, 9), nullable=False)

    uom_entered: Mapped[str] = mapped_column(String(20), nullable=False)

    # Normalized to the item's base unit
    qty_base: Mapped[Decimal] = mapped_column(Numeric(38, 9), nullable=False)

    adjust_direction: Mapped[str | None] = mapped_column(String(10), nullable=True)

    reference_type: Mapped[str | None] = mapped_column(String(50), nullable=True)

    reference_id: Mapped[str | None] = mapped_column(String(100), nullable=True)

    reason_code_id: Mapped[UUID | None] = mapped_column(
        UUIDString(),
        ForeignKey("reason_codes.id"),
        nullable=True,
    )

    lot_id: Mapped[UUID | None] = mapped_column(
        UUIDString(),
        ForeignKey("lots.id"),
        nullable=True,
    )

    serial_numbers: Mapped[list | None] = mapped_column(JSON, nullable=True)

    created_by_user_id: Mapped[UUID] = mapped_column(UUIDString(), nullable=False)

    created_at: Mapped[datetime] = mapped_column(UTCDateTime(), nullable=False)

    workcell_id: Mapped[UUID | None] = mapped_column(UUIDString(), nullable=True)

    device_id: Mapped[str | None] = mapped_column(String(100), nullable=True)

    correlation_id: Mapped[str | None] = mapped_column(String(100), nullable=True)

    notes: Mapped[str | None] = mapped_column(String(2000), nullable=True)

    @property
    def serial_list(self) -> tuple[str, ...]:
        return tuple(self.serial_numbers or ())

    def __repr__(self) -> str:
        return f"<InventoryEvent {self.event_type} {self.qty_base} item={self.item_id}>"
