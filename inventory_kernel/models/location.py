"""
Module: inventory_kernel.models.location
Responsibility: ORM persistence for sites and the storage locations inside
    them.
Architecture position: Kernel > Models.  May import from db/ only.

Invariants enforced:
    - A location belongs to exactly one site; its site_id is copied onto
      every balance row and ledger row that touches it.
    - Location label unique per site.
"""

from enum import Enum
from uuid import UUID

from sqlalchemy import Boolean, ForeignKey, Index, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from inventory_kernel.db.base import TrackedBase, UUIDString


class LocationType(str, Enum):
    RECEIVING = "RECEIVING"
    STOCK = "STOCK"
    WIP = "WIP"
    QC_HOLD = "QC_HOLD"
    SHIPPING = "SHIPPING"


class Site(TrackedBase):
    """Physical site (warehouse, plant).  Scopes locations and balances."""

    __tablename__ = "sites"

    __table_args__ = (
        UniqueConstraint("tenant_id", "code", name="uq_site_tenant_code"),
    )

    tenant_id: Mapped[UUID] = mapped_column(UUIDString(), nullable=False)

    code: Mapped[str] = mapped_column(String(50), nullable=False)

    name: Mapped[str] = mapped_column(String(255), nullable=False)

    def __repr__(self) -> str:
        return f"<Site {self.code}>"


class Location(TrackedBase):
    """Storage location (bin, rack, staging area) inside a site."""

    __tablename__ = "locations"

    __table_args__ = (
        UniqueConstraint("site_id", "label", name="uq_location_site_label"),
        Index("idx_location_tenant_site", "tenant_id", "site_id"),
    )

    tenant_id: Mapped[UUID] = mapped_column(UUIDString(), nullable=False)

    site_id: Mapped[UUID] = mapped_column(
        UUIDString(),
        ForeignKey("sites.id"),
        nullable=False,
    )

    label: Mapped[str] = mapped_column(String(100), nullable=False)

    location_type: Mapped[LocationType] = mapped_column(
        String(20),
        nullable=False,
        default=LocationType.STOCK,
    )

    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)

    def __repr__(self) -> str:
        return f"<Location {self.label}>"
