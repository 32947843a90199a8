"""
Module: inventory_kernel.models.lot
Responsibility: ORM persistence for lots and their append-only history.
Architecture position: Kernel > Models.  May import from db/ and domain/
    vocabularies only.

Invariants enforced:
    - (tenant_id, item_id, lot_number) unique.
    - 0 <= qty_available <= qty_produced (check constraint plus service
      guards).
    - A lot sits at exactly one location; moving it relocates the row.
    - LotHistory rows are never updated or deleted.

Audit relevance:
    LotHistory records every quantity and status change with the ledger
    event that caused it, giving lot-level traceability for recalls.
"""

from datetime import date, datetime
from decimal import Decimal
from uuid import UUID

from sqlalchemy import (
    CheckConstraint,
    Date,
    ForeignKey,
    Index,
    Numeric,
    String,
    UniqueConstraint,
)
from sqlalchemy.orm import Mapped, mapped_column

from inventory_kernel.db.base import Base, TrackedBase, UTCDateTime, UUIDString
from inventory_kernel.domain.lot_lifecycle import LotStatus, QcStatus


class Lot(TrackedBase):
    """A received or produced batch of one item."""

    __tablename__ = "lots"

    __table_args__ = (
        UniqueConstraint("tenant_id", "item_id", "lot_number", name="uq_lot_tenant_item_number"),
        CheckConstraint("qty_available >= 0", name="ck_lot_available_non_negative"),
        CheckConstraint("qty_available <= qty_produced", name="ck_lot_available_le_produced"),
        Index("idx_lot_site_item", "site_id", "item_id"),
        Index("idx_lot_expiration", "tenant_id", "expiration_date"),
    )

    tenant_id: Mapped[UUID] = mapped_column(UUIDString(), nullable=False)

    item_id: Mapped[UUID] = mapped_column(
        UUIDString(),
        ForeignKey("items.id"),
        nullable=False,
    )

    lot_number: Mapped[str] = mapped_column(String(100), nullable=False)

    site_id: Mapped[UUID] = mapped_column(
        UUIDString(),
        ForeignKey("sites.id"),
        nullable=False,
    )

    location_id: Mapped[UUID] = mapped_column(
        UUIDString(),
        ForeignKey("locations.id"),
        nullable=False,
    )

    qty_produced: Mapped[Decimal] = mapped_column(Numeric(38, 9), nullable=False)

    qty_available: Mapped[Decimal] = mapped_column(Numeric(38, 9), nullable=False)

    status: Mapped[LotStatus] = mapped_column(
        String(20),
        nullable=False,
        default=LotStatus.AVAILABLE,
    )

    qc_status: Mapped[QcStatus] = mapped_column(
        String(20),
        nullable=False,
        default=QcStatus.PENDING,
    )

    received_at: Mapped[datetime] = mapped_column(UTCDateTime(), nullable=False)

    expiration_date: Mapped[date | None] = mapped_column(Date, nullable=True)

    manufacturing_date: Mapped[date | None] = mapped_column(Date, nullable=True)

    supplier_id: Mapped[UUID | None] = mapped_column(UUIDString(), nullable=True)

    supplier_lot_number: Mapped[str | None] = mapped_column(String(100), nullable=True)

    hold_reason_code_id: Mapped[UUID | None] = mapped_column(
        UUIDString(),
        ForeignKey("reason_codes.id"),
        nullable=True,
    )

    def is_expired(self, today: date) -> bool:
        return self.expiration_date is not None and self.expiration_date < today

    def __repr__(self) -> str:
        return f"<Lot {self.lot_number} {self.status} {self.qty_available}/{self.qty_produced}>"


class LotHistory(Base):
    """Append-only record of one change to a lot."""

    __tablename__ = "lot_history"

    __table_args__ = (Index("idx_lot_history_lot", "lot_id", "created_at"),)

    lot_id: Mapped[UUID] = mapped_column(
        UUIDString(),
        ForeignKey("lots.id"),
        nullable=False,
    )

    tenant_id: Mapped[UUID] = mapped_column(UUIDString(), nullable=False)

    # RECEIVED, ISSUED, ADJUSTED, MOVED, QUARANTINED, RELEASED, QC_RESULT, EXPIRED
    event_type: Mapped[str] = mapped_column(String(30), nullable=False)

    qty_before: Mapped[Decimal] = mapped_column(Numeric(38, 9), nullable=False)

    qty_after: Mapped[Decimal] = mapped_column(Numeric(38, 9), nullable=False)

    qty_changed: Mapped[Decimal] = mapped_column(Numeric(38, 9), nullable=False)

    status_before: Mapped[str | None] = mapped_column(String(20), nullable=True)

    status_after: Mapped[str | None] = mapped_column(String(20), nullable=True)

    inventory_event_id: Mapped[UUID | None] = mapped_column(
        UUIDString(),
        ForeignKey("inventory_events.id"),
        nullable=True,
    )

    user_id: Mapped[UUID] = mapped_column(UUIDString(), nullable=False)

    created_at: Mapped[datetime] = mapped_column(UTCDateTime(), nullable=False)

    notes: Mapped[str | None] = mapped_column(String(2000), nullable=True)
