"""FulfillmentService: allocate-and-issue per demand line."""

from decimal import Decimal
from uuid import uuid4

import pytest

from inventory_kernel.domain.settings import AllocationStrategy
from inventory_services import BatchStatus, DemandLine, FulfillmentService, LineStatus


@pytest.fixture
def fulfillment(engine):
    return FulfillmentService(engine)


@pytest.fixture
def stocked(post, item, loc_a, loc_b, deterministic_clock):
    """WIDGET: 60 at A-01 (older), 40 at B-01."""
    post("RECEIPT", item, 60, to_location_id=loc_a.id)
    deterministic_clock.advance(days=1)
    post("RECEIPT", item, 40, to_location_id=loc_b.id)


class TestAllocateAndIssue:
    def test_issues_across_locations(self, fulfillment, actor, site, item, loc_a, loc_b, stocked, balance_of):
        result = fulfillment.allocate_and_issue(
            actor,
            [DemandLine(item.id, site.id, Decimal("80"), reference_type="SO", reference_id="SO-1")],
        )

        assert result.status is BatchStatus.COMPLETED
        outcome = result.outcomes[0]
        assert outcome.key == "SO-1"
        assert outcome.status is LineStatus.SUCCEEDED
        assert [(e.from_location_id, e.qty_base) for e in outcome.events] == [
            (loc_a.id, Decimal("60")),
            (loc_b.id, Decimal("20")),
        ]
        assert all(e.reference_id == "SO-1" for e in outcome.events)
        assert balance_of(item, loc_a) == Decimal("0")
        assert balance_of(item, loc_b) == Decimal("20")

    def test_strategy_override(self, fulfillment, actor, site, item, loc_b, stocked):
        result = fulfillment.allocate_and_issue(
            actor,
            [DemandLine(item.id, site.id, Decimal("10"), strategy=AllocationStrategy.LIFO)],
        )
        assert result.outcomes[0].events[0].from_location_id == loc_b.id

    def test_shortfall_fails_line(self, fulfillment, actor, site, item, stocked, ledger_count):
        before = ledger_count()
        result = fulfillment.allocate_and_issue(actor, [DemandLine(item.id, site.id, Decimal("150"))])

        outcome = result.outcomes[0]
        assert outcome.status is LineStatus.FAILED
        assert outcome.error_code == "INSUFFICIENT_SUPPLY"
        assert outcome.key == "0"
        assert result.status is BatchStatus.FAILED
        assert ledger_count() == before

    def test_partial_allowed(self, fulfillment, actor, site, item, loc_a, loc_b, stocked, balance_of):
        result = fulfillment.allocate_and_issue(
            actor,
            [DemandLine(item.id, site.id, Decimal("150"), allow_partial=True, key="pick-1")],
        )

        outcome = result.outcomes[0]
        assert outcome.status is LineStatus.PARTIAL
        assert outcome.requested_qty_base == Decimal("150")
        assert outcome.applied_qty_base == Decimal("100")
        assert result.status is BatchStatus.PARTIALLY_COMPLETED
        assert balance_of(item, loc_a) + balance_of(item, loc_b) == Decimal("0")

    def test_partial_with_no_supply_fails(self, fulfillment, actor, site, master):
        empty = master.item("EMPTY")
        result = fulfillment.allocate_and_issue(
            actor, [DemandLine(empty.id, site.id, Decimal("5"), allow_partial=True)]
        )
        assert result.outcomes[0].status is LineStatus.FAILED

    def test_lines_are_independent(self, fulfillment, actor, site, item, master, stocked, balance_of, loc_a):
        result = fulfillment.allocate_and_issue(
            actor,
            [
                DemandLine(item.id, site.id, Decimal("10"), key="a"),
                DemandLine(uuid4(), site.id, Decimal("1"), key="b"),
                DemandLine(item.id, site.id, Decimal("5"), key="c"),
            ],
        )

        assert [o.status for o in result.outcomes] == [
            LineStatus.SUCCEEDED,
            LineStatus.FAILED,
            LineStatus.SUCCEEDED,
        ]
        assert result.outcomes[1].error_code == "ITEM_NOT_FOUND"
        assert balance_of(item, loc_a) == Decimal("45")
        assert len(result.events) == 2

    def test_demand_in_other_uom(self, fulfillment, actor, site, item, master, stocked):
        master.conversion("BOX", "EA", 12, item=item)
        result = fulfillment.allocate_and_issue(
            actor, [DemandLine(item.id, site.id, Decimal("2"), uom="BOX")]
        )
        assert result.outcomes[0].requested_qty_base == Decimal("24")
        assert result.outcomes[0].applied_qty_base == Decimal("24")

    def test_empty_batch_completes(self, fulfillment, actor):
        result = fulfillment.allocate_and_issue(actor, [])
        assert result.total == 0
        assert result.status is BatchStatus.COMPLETED
