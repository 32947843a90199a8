"""
Cycle count lifecycle -- Pure state machines for counts and count lines.

Responsibility:
    Count header: SCHEDULED -> IN_PROGRESS -> COMPLETED, with CANCELLED
    reachable from SCHEDULED or IN_PROGRESS.
    Count line: PENDING -> COUNTED (terminal).  Variance is computed exactly
    once, at the transition, as counted - expected.
    Variance approval is tracked separately (NONE -> APPROVED | REJECTED)
    so COUNTED stays terminal.

Architecture position:
    Kernel > Domain -- pure, zero I/O.

Failure modes:
    - InvalidStateTransitionError on any guard violation.
"""

from __future__ import annotations

from decimal import Decimal
from enum import Enum
from uuid import UUID

from inventory_kernel.exceptions import InvalidQuantityError, InvalidStateTransitionError


class CycleCountStatus(str, Enum):
    SCHEDULED = "SCHEDULED"
    IN_PROGRESS = "IN_PROGRESS"
    COMPLETED = "COMPLETED"
    CANCELLED = "CANCELLED"


class CountLineStatus(str, Enum):
    PENDING = "PENDING"
    COUNTED = "COUNTED"


class VarianceApproval(str, Enum):
    NONE = "NONE"
    APPROVED = "APPROVED"
    REJECTED = "REJECTED"


COUNT_TRANSITIONS: dict[CycleCountStatus, frozenset[CycleCountStatus]] = {
    CycleCountStatus.SCHEDULED: frozenset(
        {CycleCountStatus.IN_PROGRESS, CycleCountStatus.CANCELLED}
    ),
    CycleCountStatus.IN_PROGRESS: frozenset(
        {CycleCountStatus.COMPLETED, CycleCountStatus.CANCELLED}
    ),
    CycleCountStatus.COMPLETED: frozenset(),
    CycleCountStatus.CANCELLED: frozenset(),
}


def check_count_transition(
    count_id: UUID, current: CycleCountStatus | str, target: CycleCountStatus
) -> None:
    current = CycleCountStatus(current)
    if target not in COUNT_TRANSITIONS[current]:
        raise InvalidStateTransitionError(
            "CycleCount", str(count_id), current.value, target.value
        )


def record_line_count(
    line_id: UUID,
    count_status: CycleCountStatus | str,
    line_status: CountLineStatus | str,
    expected_qty_base: Decimal,
    counted_qty_base: Decimal,
) -> Decimal:
    """
    Guard the PENDING -> COUNTED transition and return the frozen variance.

    Raises:
        InvalidStateTransitionError: parent count not IN_PROGRESS, or line
            already COUNTED.
        InvalidQuantityError: negative counted quantity.
    """
    if CycleCountStatus(count_status) != CycleCountStatus.IN_PROGRESS:
        raise InvalidStateTransitionError(
            "CycleCountLine",
            str(line_id),
            CountLineStatus(line_status).value,
            CountLineStatus.COUNTED.value,
        )
    if CountLineStatus(line_status) != CountLineStatus.PENDING:
        raise InvalidStateTransitionError(
            "CycleCountLine",
            str(line_id),
            CountLineStatus(line_status).value,
            CountLineStatus.COUNTED.value,
        )
    if counted_qty_base < 0:
        raise InvalidQuantityError(counted_qty_base, "counted quantity cannot be negative")
    return counted_qty_base - expected_qty_base


def check_variance_decision(
    line_id: UUID,
    line_status: CountLineStatus | str,
    approval: VarianceApproval | str,
    target: VarianceApproval,
) -> None:
    """Approval is decided once, and only for COUNTED lines."""
    if (
        CountLineStatus(line_status) != CountLineStatus.COUNTED
        or VarianceApproval(approval) != VarianceApproval.NONE
    ):
        raise InvalidStateTransitionError(
            "CycleCountLine variance",
            str(line_id),
            VarianceApproval(approval).value,
            target.value,
        )
