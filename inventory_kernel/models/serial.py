"""
Module: inventory_kernel.models.serial
Responsibility: ORM persistence for serial numbers of serial-tracked items.
Architecture position: Kernel > Models.

Invariants enforced:
    - (tenant_id, item_id, serial_number) unique.
    - An AVAILABLE serial sits at exactly one location.  ISSUED and
      SCRAPPED serials keep their last location for traceability.
"""

from enum import Enum
from uuid import UUID

from sqlalchemy import ForeignKey, Index, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from inventory_kernel.db.base import TrackedBase, UUIDString


class SerialStatus(str, Enum):
    AVAILABLE = "AVAILABLE"
    ISSUED = "ISSUED"
    SCRAPPED = "SCRAPPED"


class SerialNumber(TrackedBase):
    """One individually tracked unit."""

    __tablename__ = "serial_numbers"

    __table_args__ = (
        UniqueConstraint("tenant_id", "item_id", "serial_number", name="uq_serial_tenant_item"),
        Index("idx_serial_item_location", "item_id", "location_id", "status"),
    )

    tenant_id: Mapped[UUID] = mapped_column(UUIDString(), nullable=False)

    item_id: Mapped[UUID] = mapped_column(
        UUIDString(),
        ForeignKey("items.id"),
        nullable=False,
    )

    serial_number: Mapped[str] = mapped_column(String(100), nullable=False)

    lot_id: Mapped[UUID | None] = mapped_column(
        UUIDString(),
        ForeignKey("lots.id"),
        nullable=True,
    )

    location_id: Mapped[UUID] = mapped_column(
        UUIDString(),
        ForeignKey("locations.id"),
        nullable=False,
    )

    status: Mapped[SerialStatus] = mapped_column(
        String(20),
        nullable=False,
        default=SerialStatus.AVAILABLE,
    )

    def __repr__(self) -> str:
        return f"<SerialNumber {self.serial_number} {self.status}>"
