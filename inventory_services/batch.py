"""
inventory_services.batch -- Frozen result types for bulk operations.

Each unit of a bulk operation (one BOM component, one demand line) commits
or fails on its own; the BatchResult collects one LineOutcome per unit in
submission order.

Invariants enforced:
    - succeeded + failed + partial == total.
    - A FAILED outcome carries an error_code and no events.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from decimal import Decimal
from enum import Enum

from inventory_kernel.domain.dtos import InventoryEventRecord
from inventory_kernel.exceptions import InventoryKernelError


class LineStatus(str, Enum):
    """Outcome of one unit of a bulk operation."""

    SUCCEEDED = "succeeded"
    PARTIAL = "partial"  # Committed less than requested
    FAILED = "failed"  # Nothing committed for this unit


class BatchStatus(str, Enum):
    COMPLETED = "completed"  # Every unit succeeded
    PARTIALLY_COMPLETED = "partially_completed"
    FAILED = "failed"  # No unit committed anything


@dataclass(frozen=True)
class LineOutcome:
    """Result of one unit; ``key`` is the caller's identifier (item id, order line)."""

    index: int
    key: str
    status: LineStatus
    requested_qty_base: Decimal = Decimal("0")
    applied_qty_base: Decimal = Decimal("0")
    error_code: str | None = None
    error_message: str | None = None
    events: tuple[InventoryEventRecord, ...] = ()

    @property
    def event_ids(self) -> tuple:
        return tuple(event.id for event in self.events)

    @classmethod
    def failure(
        cls,
        index: int,
        key: str,
        exc: InventoryKernelError,
        requested_qty_base: Decimal = Decimal("0"),
    ) -> LineOutcome:
        return cls(
            index=index,
            key=key,
            status=LineStatus.FAILED,
            requested_qty_base=requested_qty_base,
            error_code=exc.code,
            error_message=str(exc),
        )


@dataclass(frozen=True)
class BatchResult:
    operation: str
    outcomes: tuple[LineOutcome, ...] = field(default_factory=tuple)

    @property
    def total(self) -> int:
        return len(self.outcomes)

    @property
    def succeeded(self) -> int:
        return sum(1 for o in self.outcomes if o.status == LineStatus.SUCCEEDED)

    @property
    def partial(self) -> int:
        return sum(1 for o in self.outcomes if o.status == LineStatus.PARTIAL)

    @property
    def failed(self) -> int:
        return sum(1 for o in self.outcomes if o.status == LineStatus.FAILED)

    @property
    def status(self) -> BatchStatus:
        if self.failed == 0 and self.partial == 0:
            return BatchStatus.COMPLETED
        if self.failed == self.total:
            return BatchStatus.FAILED
        return BatchStatus.PARTIALLY_COMPLETED

    @property
    def events(self) -> tuple[InventoryEventRecord, ...]:
        return tuple(event for outcome in self.outcomes for event in outcome.events)
