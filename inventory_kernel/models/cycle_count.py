"""
Module: inventory_kernel.models.cycle_count
Responsibility: ORM persistence for cycle counts and their lines.
Architecture position: Kernel > Models.

Invariants enforced:
    - A COUNTED line's counted_qty_base and variance_qty_base never change
      (db/immutability.py listener).
    - expected_qty_base is snapshotted when the count starts.
"""

from datetime import datetime
from decimal import Decimal
from uuid import UUID

from sqlalchemy import ForeignKey, Index, Numeric, String
from sqlalchemy.orm import Mapped, mapped_column, relationship

from inventory_kernel.db.base import TrackedBase, UTCDateTime, UUIDString
from inventory_kernel.domain.cycle_count_lifecycle import (
    CountLineStatus,
    CycleCountStatus,
    VarianceApproval,
)


class CycleCount(TrackedBase):
    """A periodic physical count of part of a site."""

    __tablename__ = "cycle_counts"

    __table_args__ = (Index("idx_cycle_count_site", "tenant_id", "site_id", "status"),)

    tenant_id: Mapped[UUID] = mapped_column(UUIDString(), nullable=False)

    site_id: Mapped[UUID] = mapped_column(
        UUIDString(),
        ForeignKey("sites.id"),
        nullable=False,
    )

    name: Mapped[str] = mapped_column(String(200), nullable=False)

    status: Mapped[CycleCountStatus] = mapped_column(
        String(20),
        nullable=False,
        default=CycleCountStatus.SCHEDULED,
    )

    created_by_user_id: Mapped[UUID] = mapped_column(UUIDString(), nullable=False)

    started_at: Mapped[datetime | None] = mapped_column(UTCDateTime(), nullable=True)

    completed_at: Mapped[datetime | None] = mapped_column(UTCDateTime(), nullable=True)

    lines: Mapped[list["CycleCountLine"]] = relationship(
        back_populates="cycle_count",
        order_by="CycleCountLine.line_no",
    )

    def __repr__(self) -> str:
        return f"<CycleCount {self.name} {self.status}>"


class CycleCountLine(TrackedBase):
    """Expected vs counted quantity for one (item, location)."""

    __tablename__ = "cycle_count_lines"

    __table_args__ = (Index("idx_cycle_count_line_count", "cycle_count_id", "status"),)

    cycle_count_id: Mapped[UUID] = mapped_column(
        UUIDString(),
        ForeignKey("cycle_counts.id"),
        nullable=False,
    )

    line_no: Mapped[int] = mapped_column(nullable=False)

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

    expected_qty_base: Mapped[Decimal] = mapped_column(
        Numeric(38, 9),
        nullable=False,
        default=Decimal("0"),
    )

    counted_qty_base: Mapped[Decimal | None] = mapped_column(Numeric(38, 9), nullable=True)

    variance_qty_base: Mapped[Decimal | None] = mapped_column(Numeric(38, 9), nullable=True)

    status: Mapped[CountLineStatus] = mapped_column(
        String(20),
        nullable=False,
        default=CountLineStatus.PENDING,
    )

    counted_by_user_id: Mapped[UUID | None] = mapped_column(UUIDString(), nullable=True)

    counted_at: Mapped[datetime | None] = mapped_column(UTCDateTime(), nullable=True)

    # Informational COUNT ledger row written when the variance was recorded
    count_event_id: Mapped[UUID | None] = mapped_column(
        UUIDString(),
        ForeignKey("inventory_events.id"),
        nullable=True,
    )

    approval_status: Mapped[VarianceApproval] = mapped_column(
        String(20),
        nullable=False,
        default=VarianceApproval.NONE,
    )

    approved_by_user_id: Mapped[UUID | None] = mapped_column(UUIDString(), nullable=True)

    adjustment_event_id: Mapped[UUID | None] = mapped_column(
        UUIDString(),
        ForeignKey("inventory_events.id"),
        nullable=True,
    )

    cycle_count: Mapped["CycleCount"] = relationship(back_populates="lines")

    def __repr__(self) -> str:
        return f"<CycleCountLine {self.line_no} {self.status}>"
