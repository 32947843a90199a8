"""BackflushService: per-component atomic consumption for a production order."""

from decimal import Decimal

import pytest

from inventory_engines.backflush import BomComponent
from inventory_kernel.exceptions import InvalidQuantityError
from inventory_kernel.services.lot_service import LotService
from inventory_services import (
    PRODUCTION_ORDER_REFERENCE,
    BackflushService,
    BatchStatus,
    LineStatus,
)


@pytest.fixture
def backflush(engine):
    return BackflushService(engine)


@pytest.fixture
def bolt(master, post, loc_a):
    bolt = master.item("BOLT")
    post("RECEIPT", bolt, 100, to_location_id=loc_a.id)
    return bolt


@pytest.fixture
def nut(master, post, loc_a):
    nut = master.item("NUT")
    post("RECEIPT", nut, 5, to_location_id=loc_a.id)
    return nut


class TestBackflush:
    def test_consumes_scaled_quantity(self, backflush, actor, bolt, loc_a, balance_of):
        result = backflush.backflush(
            actor,
            production_order_id="WO-1",
            qty_produced=Decimal("5"),
            components=[BomComponent(bolt.id, Decimal("4"), "EA", Decimal("10"))],
            from_location_id=loc_a.id,
        )

        assert result.status is BatchStatus.COMPLETED
        outcome = result.outcomes[0]
        assert outcome.status is LineStatus.SUCCEEDED
        assert outcome.key == str(bolt.id)
        assert outcome.requested_qty_base == Decimal("22")
        assert outcome.applied_qty_base == Decimal("22")
        assert balance_of(bolt, loc_a) == Decimal("78")

        (event,) = outcome.events
        assert event.reference_type == PRODUCTION_ORDER_REFERENCE
        assert event.reference_id == "WO-1"
        assert event.from_location_id == loc_a.id

    def test_bom_uom_is_normalized(self, backflush, actor, master, bolt, loc_a, balance_of):
        master.conversion("BOX", "EA", 12, item=bolt)
        result = backflush.backflush(
            actor,
            production_order_id="WO-2",
            qty_produced=Decimal("4"),
            components=[BomComponent(bolt.id, Decimal("0.5"), "BOX")],
            from_location_id=loc_a.id,
        )

        assert result.outcomes[0].requested_qty_base == Decimal("24")
        assert result.outcomes[0].events[0].qty_entered == Decimal("2")
        assert balance_of(bolt, loc_a) == Decimal("76")

    def test_failed_component_does_not_block_others(
        self, backflush, actor, bolt, nut, loc_a, balance_of
    ):
        result = backflush.backflush(
            actor,
            production_order_id="WO-3",
            qty_produced=Decimal("10"),
            components=[
                BomComponent(nut.id, Decimal("1"), "EA"),
                BomComponent(bolt.id, Decimal("2"), "EA"),
            ],
            from_location_id=loc_a.id,
        )

        assert result.status is BatchStatus.PARTIALLY_COMPLETED
        assert [o.status for o in result.outcomes] == [LineStatus.FAILED, LineStatus.SUCCEEDED]
        assert result.outcomes[0].error_code == "INSUFFICIENT_BALANCE"
        assert result.outcomes[0].events == ()
        assert balance_of(nut, loc_a) == Decimal("5")
        assert balance_of(bolt, loc_a) == Decimal("80")

    def test_every_component_failing(self, backflush, actor, nut, loc_a):
        result = backflush.backflush(
            actor,
            production_order_id="WO-4",
            qty_produced=Decimal("6"),
            components=[BomComponent(nut.id, Decimal("1"), "EA")],
            from_location_id=loc_a.id,
        )
        assert result.status is BatchStatus.FAILED

    def test_zero_requirement_is_skipped(self, backflush, actor, bolt, nut, loc_a):
        result = backflush.backflush(
            actor,
            production_order_id="WO-5",
            qty_produced=Decimal("1"),
            components=[
                BomComponent(nut.id, Decimal("0"), "EA"),
                BomComponent(bolt.id, Decimal("1"), "EA"),
            ],
            from_location_id=loc_a.id,
        )
        assert [o.key for o in result.outcomes] == [str(bolt.id)]

    def test_invalid_produced_quantity_writes_nothing(self, backflush, actor, bolt, loc_a, ledger_count):
        before = ledger_count()
        with pytest.raises(InvalidQuantityError):
            backflush.backflush(
                actor,
                production_order_id="WO-6",
                qty_produced=Decimal("0"),
                components=[BomComponent(bolt.id, Decimal("1"), "EA")],
                from_location_id=loc_a.id,
            )
        assert ledger_count() == before

    def test_logs_completion(self, backflush, actor, bolt, loc_a, captured_logs):
        backflush.backflush(
            actor,
            production_order_id="WO-7",
            qty_produced=Decimal("1"),
            components=[BomComponent(bolt.id, Decimal("1"), "EA")],
            from_location_id=loc_a.id,
        )
        done = [r for r in captured_logs() if r["message"] == "backflush_completed"]
        assert done[0]["production_order_id"] == "WO-7"
        assert done[0]["status"] == "completed"
        assert done[0]["tenant_id"] == str(actor.tenant_id)


class TestLotTrackedComponents:
    @pytest.fixture
    def resin(self, master, engine, actor, deterministic_clock, loc_a, loc_b):
        """Lots R-1 (100, oldest) and R-2 (50) at A-01; R-3 (500) at B-01."""
        resin = master.item("RESIN", lot_tracked=True)
        lots = LotService(engine)
        for number, qty, location in (("R-1", 100, loc_a), ("R-2", 50, loc_a), ("R-3", 500, loc_b)):
            deterministic_clock.advance(days=1)
            lots.receive_lot(
                actor,
                item_id=resin.id,
                lot_number=number,
                qty=Decimal(qty),
                uom="EA",
                to_location_id=location.id,
            )
        return resin

    def test_allocates_oldest_lot_first(self, backflush, actor, resin, loc_a, balance_of):
        result = backflush.backflush(
            actor,
            production_order_id="WO-10",
            qty_produced=Decimal("120"),
            components=[BomComponent(resin.id, Decimal("1"), "EA")],
            from_location_id=loc_a.id,
        )

        outcome = result.outcomes[0]
        assert outcome.status is LineStatus.SUCCEEDED
        assert [e.qty_base for e in outcome.events] == [Decimal("100"), Decimal("20")]
        assert len({e.lot_id for e in outcome.events}) == 2
        assert balance_of(resin, loc_a) == Decimal("30")

    def test_only_line_side_location_is_used(self, backflush, actor, resin, loc_a, loc_b, balance_of):
        result = backflush.backflush(
            actor,
            production_order_id="WO-11",
            qty_produced=Decimal("200"),
            components=[BomComponent(resin.id, Decimal("1"), "EA")],
            from_location_id=loc_a.id,
        )

        assert result.outcomes[0].status is LineStatus.FAILED
        assert result.outcomes[0].error_code == "INSUFFICIENT_SUPPLY"
        assert balance_of(resin, loc_a) == Decimal("150")
        assert balance_of(resin, loc_b) == Decimal("500")
