"""
Property-based checks for the ledger and the allocator.

Properties:
- Any sequence of receipts, issues and moves leaves every balance equal to
  the signed sum of its ledger rows, and no balance goes negative when
  negative inventory is off.  Rejected transactions leave no trace.
- The allocator either covers the requested quantity exactly or raises
  InsufficientSupplyError whose partial lines cover all eligible supply.
"""

from datetime import datetime, timedelta, timezone
from decimal import Decimal
from uuid import uuid4

import pytest
from hypothesis import HealthCheck, given, settings
from hypothesis import strategies as st

from inventory_engines.allocation import AllocationEngine, SupplyCandidate
from inventory_kernel.domain.settings import AllocationStrategy
from inventory_kernel.exceptions import InsufficientBalanceError, InsufficientSupplyError
from inventory_kernel.selectors.balance_selector import BalanceSelector

quantities = st.decimals(
    min_value=Decimal("0.001"),
    max_value=Decimal("500"),
    places=3,
    allow_nan=False,
    allow_infinity=False,
)

operations = st.lists(
    st.tuples(st.sampled_from(["RECEIPT", "ISSUE", "MOVE_AB", "MOVE_BA"]), quantities),
    min_size=1,
    max_size=15,
)


class TestLedgerBalanceConsistency:
    @given(ops=operations)
    @settings(
        max_examples=30,
        deadline=None,
        suppress_health_check=[HealthCheck.too_slow, HealthCheck.function_scoped_fixture],
    )
    def test_balances_track_ledger(self, ops, master, post, loc_a, loc_b, balance_of, session, tenant_id):
        item = master.item(f"FUZZ-{uuid4().hex[:8]}")
        expected = {"A": Decimal("0"), "B": Decimal("0")}
        locations = {"A": loc_a, "B": loc_b}

        for kind, qty in ops:
            if kind == "RECEIPT":
                post("RECEIPT", item, qty, to_location_id=loc_a.id)
                expected["A"] += qty
                continue

            src, dst = {"ISSUE": ("A", None), "MOVE_AB": ("A", "B"), "MOVE_BA": ("B", "A")}[kind]
            fields = {"from_location_id": locations[src].id}
            if dst is not None:
                fields["to_location_id"] = locations[dst].id
            txn_type = "ISSUE" if dst is None else "MOVE"

            if expected[src] < qty:
                with pytest.raises(InsufficientBalanceError):
                    post(txn_type, item, qty, **fields)
                continue

            post(txn_type, item, qty, **fields)
            expected[src] -= qty
            if dst is not None:
                expected[dst] += qty

        assert balance_of(item, loc_a) == expected["A"]
        assert balance_of(item, loc_b) == expected["B"]
        assert min(expected.values()) >= 0

        session.expire_all()
        assert BalanceSelector(session).reconcile(tenant_id) == []


@st.composite
def supply(draw):
    base = datetime(2024, 1, 1, tzinfo=timezone.utc)
    count = draw(st.integers(min_value=0, max_value=8))
    candidates = []
    for index in range(count):
        lot = draw(st.booleans())
        candidates.append(
            SupplyCandidate(
                location_id=uuid4(),
                available=Decimal(draw(st.integers(min_value=0, max_value=100))),
                lot_id=uuid4() if lot else None,
                lot_number=f"L{index:02d}" if lot else None,
                received_at=base + timedelta(days=draw(st.integers(min_value=0, max_value=30))),
            )
        )
    return candidates


class TestAllocationProperties:
    @given(
        candidates=supply(),
        quantity=st.integers(min_value=1, max_value=600).map(Decimal),
        strategy=st.sampled_from(list(AllocationStrategy)),
    )
    @settings(max_examples=200, deadline=None)
    def test_allocation_covers_request_or_reports_shortfall(self, candidates, quantity, strategy):
        supply_total = sum((c.available for c in candidates), Decimal("0"))
        available_by_source = {(c.location_id, c.lot_id): c.available for c in candidates}

        try:
            plan = AllocationEngine().allocate(
                item_id=uuid4(),
                site_id=uuid4(),
                quantity=quantity,
                strategy=strategy,
                candidates=candidates,
            )
        except InsufficientSupplyError as exc:
            assert supply_total < quantity
            assert exc.available == supply_total
            lines = exc.partial_lines
            assert sum((line.quantity for line in lines), Decimal("0")) == supply_total
        else:
            assert supply_total >= quantity
            lines = plan.lines
            assert plan.total_allocated == quantity

        for line in lines:
            assert Decimal("0") < line.quantity <= available_by_source[(line.location_id, line.lot_id)]
        assert len({(line.location_id, line.lot_id) for line in lines}) == len(lines)

    @given(candidates=supply(), quantity=st.integers(min_value=1, max_value=600).map(Decimal))
    @settings(max_examples=100, deadline=None)
    def test_fifo_never_skips_older_supply(self, candidates, quantity):
        engine = AllocationEngine()
        try:
            lines = engine.allocate(
                item_id=uuid4(),
                site_id=uuid4(),
                quantity=quantity,
                strategy=AllocationStrategy.FIFO,
                candidates=candidates,
            ).lines
        except InsufficientSupplyError as exc:
            lines = exc.partial_lines

        received = {(c.location_id, c.lot_id): c.received_at for c in candidates}
        used = {(line.location_id, line.lot_id) for line in lines}
        if not lines:
            return
        newest_used = max(received[key] for key in used)
        for candidate in candidates:
            key = (candidate.location_id, candidate.lot_id)
            if candidate.available > 0 and candidate.received_at < newest_used:
                assert key in used
