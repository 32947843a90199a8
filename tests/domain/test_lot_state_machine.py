"""Tests for the lot status and QC status state machines."""

from uuid import uuid4

import pytest

from inventory_kernel.domain.lot_lifecycle import (
    TERMINAL_LOT_STATUSES,
    LotStatus,
    QcStatus,
    check_lot_transition,
    check_qc_transition,
    initial_lot_status,
    is_allocatable,
    status_after_qc,
)
from inventory_kernel.exceptions import InvalidStateTransitionError

LOT = uuid4()


class TestLotTransitions:
    @pytest.mark.parametrize(
        "current, target",
        [
            (LotStatus.AVAILABLE, LotStatus.QUARANTINE),
            (LotStatus.QUARANTINE, LotStatus.AVAILABLE),
            (LotStatus.AVAILABLE, LotStatus.EXPIRED),
            (LotStatus.QUARANTINE, LotStatus.EXPIRED),
            (LotStatus.AVAILABLE, LotStatus.CONSUMED),
            (LotStatus.QUARANTINE, LotStatus.CONSUMED),
        ],
    )
    def test_permitted(self, current, target):
        check_lot_transition(LOT, current, target)

    @pytest.mark.parametrize("terminal", sorted(TERMINAL_LOT_STATUSES))
    @pytest.mark.parametrize("target", list(LotStatus))
    def test_terminal_statuses_are_final(self, terminal, target):
        with pytest.raises(InvalidStateTransitionError):
            check_lot_transition(LOT, terminal, target)

    def test_self_transition_rejected(self):
        with pytest.raises(InvalidStateTransitionError) as exc_info:
            check_lot_transition(LOT, "AVAILABLE", LotStatus.AVAILABLE)
        assert exc_info.value.from_state == "AVAILABLE"

    def test_initial_status(self):
        assert initial_lot_status(True) == LotStatus.QUARANTINE
        assert initial_lot_status(False) == LotStatus.AVAILABLE


class TestQcTransitions:
    @pytest.mark.parametrize(
        "current, target",
        [
            (QcStatus.PENDING, QcStatus.PASSED),
            (QcStatus.PENDING, QcStatus.FAILED),
            (QcStatus.PENDING, QcStatus.CONDITIONAL),
            (QcStatus.CONDITIONAL, QcStatus.PASSED),
            (QcStatus.CONDITIONAL, QcStatus.FAILED),
            (QcStatus.FAILED, QcStatus.PASSED),
            (QcStatus.FAILED, QcStatus.CONDITIONAL),
            (QcStatus.PASSED, QcStatus.FAILED),
        ],
    )
    def test_permitted(self, current, target):
        check_qc_transition(LOT, current, target)

    @pytest.mark.parametrize(
        "current, target",
        [
            (QcStatus.PASSED, QcStatus.PENDING),
            (QcStatus.PASSED, QcStatus.CONDITIONAL),
            (QcStatus.FAILED, QcStatus.PENDING),
            (QcStatus.PENDING, QcStatus.PENDING),
        ],
    )
    def test_rejected(self, current, target):
        with pytest.raises(InvalidStateTransitionError):
            check_qc_transition(LOT, current, target)


class TestQcEffects:
    def test_failed_qc_quarantines_available_lot(self):
        assert status_after_qc(LotStatus.AVAILABLE, QcStatus.FAILED) == LotStatus.QUARANTINE

    def test_passed_qc_does_not_release(self):
        assert status_after_qc(LotStatus.QUARANTINE, QcStatus.PASSED) == LotStatus.QUARANTINE

    def test_allocatable_only_when_available_and_not_failed(self):
        assert is_allocatable(LotStatus.AVAILABLE, QcStatus.PENDING)
        assert is_allocatable("AVAILABLE", "CONDITIONAL")
        assert not is_allocatable(LotStatus.AVAILABLE, QcStatus.FAILED)
        assert not is_allocatable(LotStatus.QUARANTINE, QcStatus.PASSED)
        assert not is_allocatable(LotStatus.EXPIRED, QcStatus.PASSED)
