"""
Module: inventory_kernel.models.reason_code
Responsibility: ORM persistence for reason codes attached to adjustments,
    scrap and lot holds.
Architecture position: Kernel > Models.  May import from db/ only.
"""

from enum import Enum
from uuid import UUID

from sqlalchemy import Boolean, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from inventory_kernel.db.base import TrackedBase, UUIDString


class ReasonType(str, Enum):
    SCRAP = "SCRAP"
    ADJUST = "ADJUST"
    HOLD = "HOLD"


class ReasonCode(TrackedBase):
    """Coded justification for a manual balance change or a lot hold."""

    __tablename__ = "reason_codes"

    __table_args__ = (
        UniqueConstraint("tenant_id", "code", name="uq_reason_code_tenant_code"),
    )

    tenant_id: Mapped[UUID] = mapped_column(UUIDString(), nullable=False)

    code: Mapped[str] = mapped_column(String(50), nullable=False)

    description: Mapped[str] = mapped_column(String(500), nullable=False)

    reason_type: Mapped[ReasonType] = mapped_column(
        String(20),
        nullable=False,
        default=ReasonType.ADJUST,
    )

    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)

    def __repr__(self) -> str:
        return f"<ReasonCode {self.code}>"
