"""
DTOs -- Immutable records returned across the kernel boundary.

Responsibility:
    Frozen snapshots of ledger events, balances, lots, lot history and cycle
    counts.  Services convert ORM rows to these records before returning,
    so callers never hold live ORM objects bound to a closed session.

Architecture position:
    Kernel > Domain -- pure data.  from_model() class methods are boundary
    converters invoked only from services/ and selectors/.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date, datetime
from decimal import Decimal
from typing import TYPE_CHECKING
from uuid import UUID

from inventory_kernel.domain.cycle_count_lifecycle import (
    CountLineStatus,
    CycleCountStatus,
    VarianceApproval,
)
from inventory_kernel.domain.lot_lifecycle import LotStatus, QcStatus
from inventory_kernel.domain.transactions import TxnType

if TYPE_CHECKING:
    from inventory_kernel.models.balance import InventoryBalance
    from inventory_kernel.models.cycle_count import CycleCount, CycleCountLine
    from inventory_kernel.models.event import InventoryEvent
    from inventory_kernel.models.lot import Lot, LotHistory


@dataclass(frozen=True)
class InventoryEventRecord:
    """Snapshot of one ledger row."""

    id: UUID
    tenant_id: UUID
    site_id: UUID
    event_type: TxnType
    item_id: UUID
    from_location_id: UUID | None
    to_location_id: UUID | None
    qty_entered: Decimal
    uom_entered: str
    qty_base: Decimal
    adjust_direction: str | None
    reference_type: str | None
    reference_id: str | None
    reason_code_id: UUID | None
    lot_id: UUID | None
    serial_numbers: tuple[str, ...]
    created_by_user_id: UUID
    created_at: datetime
    workcell_id: UUID | None
    device_id: str | None
    correlation_id: str | None
    notes: str | None

    @classmethod
    def from_model(cls, row: InventoryEvent) -> InventoryEventRecord:
        return cls(
            id=row.id,
            tenant_id=row.tenant_id,
            site_id=row.site_id,
            event_type=TxnType(row.event_type),
            item_id=row.item_id,
            from_location_id=row.from_location_id,
            to_location_id=row.to_location_id,
            qty_entered=row.qty_entered,
            uom_entered=row.uom_entered,
            qty_base=row.qty_base,
            adjust_direction=row.adjust_direction,
            reference_type=row.reference_type,
            reference_id=row.reference_id,
            reason_code_id=row.reason_code_id,
            lot_id=row.lot_id,
            serial_numbers=row.serial_list,
            created_by_user_id=row.created_by_user_id,
            created_at=row.created_at,
            workcell_id=row.workcell_id,
            device_id=row.device_id,
            correlation_id=row.correlation_id,
            notes=row.notes,
        )


@dataclass(frozen=True)
class BalanceRecord:
    """Snapshot of one balance row."""

    tenant_id: UUID
    item_id: UUID
    location_id: UUID
    site_id: UUID
    qty_base: Decimal
    version: int
    updated_at: datetime

    @classmethod
    def from_model(cls, row: InventoryBalance) -> BalanceRecord:
        return cls(
            tenant_id=row.tenant_id,
            item_id=row.item_id,
            location_id=row.location_id,
            site_id=row.site_id,
            qty_base=row.qty_base,
            version=row.version,
            updated_at=row.updated_at,
        )


@dataclass(frozen=True)
class BalanceDrift:
    """A balance row whose quantity disagrees with its ledger-derived sum."""

    item_id: UUID
    location_id: UUID
    balance_qty: Decimal
    ledger_qty: Decimal

    @property
    def drift(self) -> Decimal:
        return self.balance_qty - self.ledger_qty


@dataclass(frozen=True)
class LotRecord:
    id: UUID
    tenant_id: UUID
    item_id: UUID
    lot_number: str
    site_id: UUID
    location_id: UUID
    qty_produced: Decimal
    qty_available: Decimal
    status: LotStatus
    qc_status: QcStatus
    received_at: datetime
    expiration_date: date | None
    manufacturing_date: date | None
    supplier_id: UUID | None
    supplier_lot_number: str | None
    hold_reason_code_id: UUID | None

    @classmethod
    def from_model(cls, row: Lot) -> LotRecord:
        return cls(
            id=row.id,
            tenant_id=row.tenant_id,
            item_id=row.item_id,
            lot_number=row.lot_number,
            site_id=row.site_id,
            location_id=row.location_id,
            qty_produced=row.qty_produced,
            qty_available=row.qty_available,
            status=LotStatus(row.status),
            qc_status=QcStatus(row.qc_status),
            received_at=row.received_at,
            expiration_date=row.expiration_date,
            manufacturing_date=row.manufacturing_date,
            supplier_id=row.supplier_id,
            supplier_lot_number=row.supplier_lot_number,
            hold_reason_code_id=row.hold_reason_code_id,
        )


@dataclass(frozen=True)
class LotHistoryRecord:
    id: UUID
    lot_id: UUID
    event_type: str
    qty_before: Decimal
    qty_after: Decimal
    qty_changed: Decimal
    status_before: str | None
    status_after: str | None
    inventory_event_id: UUID | None
    user_id: UUID
    created_at: datetime
    notes: str | None

    @classmethod
    def from_model(cls, row: LotHistory) -> LotHistoryRecord:
        return cls(
            id=row.id,
            lot_id=row.lot_id,
            event_type=row.event_type,
            qty_before=row.qty_before,
            qty_after=row.qty_after,
            qty_changed=row.qty_changed,
            status_before=row.status_before,
            status_after=row.status_after,
            inventory_event_id=row.inventory_event_id,
            user_id=row.user_id,
            created_at=row.created_at,
            notes=row.notes,
        )


@dataclass(frozen=True)
class CycleCountLineRecord:
    id: UUID
    cycle_count_id: UUID
    line_no: int
    item_id: UUID
    location_id: UUID
    expected_qty_base: Decimal
    counted_qty_base: Decimal | None
    variance_qty_base: Decimal | None
    status: CountLineStatus
    approval_status: VarianceApproval
    count_event_id: UUID | None
    adjustment_event_id: UUID | None

    @classmethod
    def from_model(cls, row: CycleCountLine) -> CycleCountLineRecord:
        return cls(
            id=row.id,
            cycle_count_id=row.cycle_count_id,
            line_no=row.line_no,
            item_id=row.item_id,
            location_id=row.location_id,
            expected_qty_base=row.expected_qty_base,
            counted_qty_base=row.counted_qty_base,
            variance_qty_base=row.variance_qty_base,
            status=CountLineStatus(row.status),
            approval_status=VarianceApproval(row.approval_status),
            count_event_id=row.count_event_id,
            adjustment_event_id=row.adjustment_event_id,
        )


@dataclass(frozen=True)
class CycleCountRecord:
    id: UUID
    tenant_id: UUID
    site_id: UUID
    name: str
    status: CycleCountStatus
    started_at: datetime | None
    completed_at: datetime | None
    lines: tuple[CycleCountLineRecord, ...]

    @classmethod
    def from_model(cls, row: CycleCount) -> CycleCountRecord:
        return cls(
            id=row.id,
            tenant_id=row.tenant_id,
            site_id=row.site_id,
            name=row.name,
            status=CycleCountStatus(row.status),
            started_at=row.started_at,
            completed_at=row.completed_at,
            lines=tuple(CycleCountLineRecord.from_model(line) for line in row.lines),
        )
