"""
Append-only guarantees for the ledger, lot history and counted lines.

These tests go around the services and edit rows through a raw ORM
session, the way a careless migration or admin script would.
"""

from decimal import Decimal
from uuid import uuid4

import pytest
from sqlalchemy import select

from inventory_kernel.db.immutability import (
    register_immutability_listeners,
    unregister_immutability_listeners,
)
from inventory_kernel.domain.cycle_count_lifecycle import VarianceApproval
from inventory_kernel.exceptions import (
    ImmutabilityViolationError,
    InvalidQuantityError,
    InvalidTransactionError,
)
from inventory_kernel.models import InventoryEvent
from inventory_kernel.models.cycle_count import CycleCountLine
from inventory_kernel.models.lot import LotHistory
from inventory_kernel.services.cycle_count_service import CycleCountService
from inventory_kernel.services.event_ledger import EventLedger
from inventory_kernel.services.lot_service import LotService


@pytest.fixture
def receipt(post, item, loc_a):
    return post("RECEIPT", item, 10, to_location_id=loc_a.id)


class TestLedgerEvents:
    def test_update_blocked(self, session, receipt):
        event = session.get(InventoryEvent, receipt.id)
        event.qty_base = Decimal("1000")

        with pytest.raises(ImmutabilityViolationError) as exc_info:
            session.flush()
        session.rollback()

        assert exc_info.value.entity_type == "InventoryEvent"
        assert exc_info.value.entity_id == str(receipt.id)

    def test_delete_blocked(self, session, receipt, ledger_count):
        session.delete(session.get(InventoryEvent, receipt.id))
        with pytest.raises(ImmutabilityViolationError):
            session.flush()
        session.rollback()
        assert ledger_count() == 1

    def test_blocked_attempt_is_logged(self, session, receipt, captured_logs):
        event = session.get(InventoryEvent, receipt.id)
        event.notes = "edited"
        with pytest.raises(ImmutabilityViolationError):
            session.flush()
        session.rollback()

        blocked = [r for r in captured_logs() if r["message"] == "immutability_violation_blocked"]
        assert len(blocked) == 1
        assert blocked[0]["level"] == "ERROR"
        assert blocked[0]["entity_type"] == "InventoryEvent"
        assert blocked[0]["operation"] == "UPDATE"

    def test_unregistered_listeners_allow_edits(self, session, receipt):
        unregister_immutability_listeners()
        try:
            event = session.get(InventoryEvent, receipt.id)
            event.notes = "migrated"
            session.commit()
        finally:
            register_immutability_listeners()

        session.expire_all()
        assert session.get(InventoryEvent, receipt.id).notes == "migrated"

    def test_register_is_idempotent(self, session, receipt):
        register_immutability_listeners()
        register_immutability_listeners()
        event = session.get(InventoryEvent, receipt.id)
        event.notes = "again"
        with pytest.raises(ImmutabilityViolationError):
            session.flush()
        session.rollback()


class TestEventLedgerAppend:
    def test_rejects_impossible_shape(self, session, tenant_id, item, site):
        bad = InventoryEvent(
            tenant_id=tenant_id,
            site_id=site.id,
            event_type="RECEIPT",
            item_id=item.id,
            from_location_id=uuid4(),
            to_location_id=uuid4(),
            qty_entered=Decimal("1"),
            uom_entered="EA",
            qty_base=Decimal("1"),
        )
        with pytest.raises(InvalidTransactionError):
            EventLedger(session).append(bad)

    def test_rejects_non_positive_quantity(self, session, tenant_id, item, site):
        bad = InventoryEvent(
            tenant_id=tenant_id,
            site_id=site.id,
            event_type="ISSUE",
            item_id=item.id,
            from_location_id=uuid4(),
            qty_entered=Decimal("0"),
            uom_entered="EA",
            qty_base=Decimal("0"),
        )
        with pytest.raises(InvalidQuantityError):
            EventLedger(session).append(bad)

    def test_signed_delta_sum(self, session, post, receipt, tenant_id, item, loc_a, loc_b):
        post("MOVE", item, 4, from_location_id=loc_a.id, to_location_id=loc_b.id)
        post("COUNT", item, 2, to_location_id=loc_b.id)

        ledger = EventLedger(session)
        assert ledger.signed_delta_sum(tenant_id, item.id, loc_a.id) == Decimal("6")
        assert ledger.signed_delta_sum(tenant_id, item.id, loc_b.id) == Decimal("4")


class TestLotHistory:
    @pytest.fixture
    def history_row(self, engine, actor, master, loc_a, session):
        lot_item = master.item("API-LOT", lot_tracked=True)
        receipt = LotService(engine).receive_lot(
            actor,
            item_id=lot_item.id,
            lot_number="LOT-9",
            qty=Decimal("5"),
            uom="EA",
            to_location_id=loc_a.id,
        )
        return session.execute(
            select(LotHistory).where(LotHistory.lot_id == receipt.lot.id)
        ).scalar_one()

    def test_update_blocked(self, session, history_row):
        history_row.qty_after = Decimal("500")
        with pytest.raises(ImmutabilityViolationError):
            session.flush()
        session.rollback()

    def test_delete_blocked(self, session, history_row):
        session.delete(history_row)
        with pytest.raises(ImmutabilityViolationError):
            session.flush()
        session.rollback()


class TestCountedLines:
    @pytest.fixture
    def counted_line(self, engine, actor, site, post, item, loc_a, session):
        post("RECEIPT", item, 10, to_location_id=loc_a.id)
        counts = CycleCountService(engine)
        created = counts.create_count(actor, site_id=site.id, name="Audit")
        counts.start_count(actor, created.id)
        counts.record_count(actor, created.lines[0].id, 8)
        return session.get(CycleCountLine, created.lines[0].id)

    @pytest.mark.parametrize(
        "field, value",
        [
            ("counted_qty_base", Decimal("10")),
            ("variance_qty_base", Decimal("0")),
            ("expected_qty_base", Decimal("8")),
            ("status", "PENDING"),
        ],
    )
    def test_counted_values_frozen(self, session, counted_line, field, value):
        setattr(counted_line, field, value)
        with pytest.raises(ImmutabilityViolationError):
            session.flush()
        session.rollback()

    def test_approval_fields_stay_writable(self, session, counted_line):
        counted_line.approval_status = VarianceApproval.REJECTED.value
        session.commit()

    def test_counted_line_cannot_be_deleted(self, session, counted_line):
        session.delete(counted_line)
        with pytest.raises(ImmutabilityViolationError):
            session.flush()
        session.rollback()

    def test_pending_line_is_editable(self, engine, actor, site, post, item, loc_a, session):
        post("RECEIPT", item, 10, to_location_id=loc_a.id)
        counts = CycleCountService(engine)
        created = counts.create_count(actor, site_id=site.id, name="Draft")

        line = session.get(CycleCountLine, created.lines[0].id)
        line.expected_qty_base = Decimal("3")
        session.commit()
