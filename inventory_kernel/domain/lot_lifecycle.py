"""
Lot lifecycle -- Pure state machine for lot status and QC status.

Responsibility:
    Declares the lot status and QC status vocabularies and the permitted
    transitions between them.  The lot service consults this module before
    persisting any status change.

Architecture position:
    Kernel > Domain -- pure, zero I/O.

Invariants enforced:
    - (created) -> AVAILABLE | QUARANTINE
    - AVAILABLE <-> QUARANTINE
    - AVAILABLE | QUARANTINE -> EXPIRED | CONSUMED
    - EXPIRED and CONSUMED are terminal.
    - QC status moves independently; a FAILED result forces QUARANTINE.

Failure modes:
    - InvalidStateTransitionError for any other transition.
"""

from __future__ import annotations

from enum import Enum
from uuid import UUID

from inventory_kernel.exceptions import InvalidStateTransitionError


class LotStatus(str, Enum):
    AVAILABLE = "AVAILABLE"
    QUARANTINE = "QUARANTINE"
    EXPIRED = "EXPIRED"
    CONSUMED = "CONSUMED"


class QcStatus(str, Enum):
    PENDING = "PENDING"
    PASSED = "PASSED"
    FAILED = "FAILED"
    CONDITIONAL = "CONDITIONAL"


TERMINAL_LOT_STATUSES = frozenset({LotStatus.EXPIRED, LotStatus.CONSUMED})

LOT_TRANSITIONS: dict[LotStatus, frozenset[LotStatus]] = {
    LotStatus.AVAILABLE: frozenset(
        {LotStatus.QUARANTINE, LotStatus.EXPIRED, LotStatus.CONSUMED}
    ),
    LotStatus.QUARANTINE: frozenset(
        {LotStatus.AVAILABLE, LotStatus.EXPIRED, LotStatus.CONSUMED}
    ),
    LotStatus.EXPIRED: frozenset(),
    LotStatus.CONSUMED: frozenset(),
}

QC_TRANSITIONS: dict[QcStatus, frozenset[QcStatus]] = {
    QcStatus.PENDING: frozenset({QcStatus.PASSED, QcStatus.FAILED, QcStatus.CONDITIONAL}),
    QcStatus.CONDITIONAL: frozenset({QcStatus.PASSED, QcStatus.FAILED}),
    QcStatus.FAILED: frozenset({QcStatus.PASSED, QcStatus.CONDITIONAL}),
    QcStatus.PASSED: frozenset({QcStatus.FAILED}),
}


def initial_lot_status(quarantine_on_receipt: bool) -> LotStatus:
    return LotStatus.QUARANTINE if quarantine_on_receipt else LotStatus.AVAILABLE


def check_lot_transition(lot_id: UUID, current: LotStatus | str, target: LotStatus) -> None:
    """Raise InvalidStateTransitionError unless current -> target is permitted."""
    current = LotStatus(current)
    if target not in LOT_TRANSITIONS[current]:
        raise InvalidStateTransitionError("Lot", str(lot_id), current.value, target.value)


def check_qc_transition(lot_id: UUID, current: QcStatus | str, target: QcStatus) -> None:
    current = QcStatus(current)
    if target not in QC_TRANSITIONS[current]:
        raise InvalidStateTransitionError(
            "Lot QC", str(lot_id), current.value, target.value
        )


def status_after_qc(current: LotStatus | str, qc_result: QcStatus) -> LotStatus:
    """
    Primary status implied by a QC result.

    FAILED forces QUARANTINE; any other result leaves the status alone
    (release back to AVAILABLE is an explicit operator action).
    """
    current = LotStatus(current)
    if qc_result == QcStatus.FAILED and current == LotStatus.AVAILABLE:
        return LotStatus.QUARANTINE
    return current


def is_allocatable(status: LotStatus | str, qc_status: QcStatus | str) -> bool:
    """Lots can be allocated, issued or moved only while AVAILABLE and not QC-failed."""
    return LotStatus(status) == LotStatus.AVAILABLE and QcStatus(qc_status) != QcStatus.FAILED
