"""
Real thread races against PostgreSQL row locks.

Run with DATABASE_URL pointing at PostgreSQL; skipped on SQLite, whose
single shared in-memory connection cannot interleave transactions.
"""

from concurrent.futures import ThreadPoolExecutor
from decimal import Decimal

import pytest

from inventory_kernel.domain.transactions import InventoryTxnRequest, TxnType
from inventory_kernel.exceptions import InsufficientBalanceError
from inventory_kernel.selectors.balance_selector import BalanceSelector
from inventory_kernel.services.transaction_engine import TransactionEngine

pytestmark = pytest.mark.postgres

THREADS = 10


@pytest.fixture
def live_engine(session_factory, balance_cache):
    return TransactionEngine(session_factory, cache=balance_cache)


def _issue(engine, actor, item, location, qty):
    request = InventoryTxnRequest(
        txn_type=TxnType.ISSUE,
        item_id=item.id,
        qty=Decimal(qty),
        uom="EA",
        from_location_id=location.id,
    )
    try:
        engine.apply(request, actor)
    except InsufficientBalanceError:
        return False
    return True


class TestConcurrentWrites:
    def test_competing_issues_never_overdraw(self, live_engine, actor, post, item, loc_a, balance_of):
        post("RECEIPT", item, 50, to_location_id=loc_a.id)

        with ThreadPoolExecutor(max_workers=THREADS) as pool:
            results = list(
                pool.map(lambda _: _issue(live_engine, actor, item, loc_a, 10), range(THREADS))
            )

        assert results.count(True) == 5
        assert balance_of(item, loc_a) == Decimal("0")

    def test_concurrent_receipts_all_land(self, live_engine, actor, item, loc_a, balance_of, session, tenant_id):
        def receive(_):
            live_engine.apply(
                InventoryTxnRequest(
                    txn_type=TxnType.RECEIPT,
                    item_id=item.id,
                    qty=Decimal("3"),
                    uom="EA",
                    to_location_id=loc_a.id,
                ),
                actor,
            )

        with ThreadPoolExecutor(max_workers=THREADS) as pool:
            list(pool.map(receive, range(THREADS * 2)))

        assert balance_of(item, loc_a) == Decimal("60")
        assert BalanceSelector(session).reconcile(tenant_id) == []

    def test_opposing_moves_do_not_deadlock(
        self, live_engine, actor, post, item, loc_a, loc_b, balance_of, session, tenant_id
    ):
        post("RECEIPT", item, 100, to_location_id=loc_a.id)
        post("RECEIPT", item, 100, to_location_id=loc_b.id)

        def move(index):
            src, dst = (loc_a, loc_b) if index % 2 else (loc_b, loc_a)
            live_engine.apply(
                InventoryTxnRequest(
                    txn_type=TxnType.MOVE,
                    item_id=item.id,
                    qty=Decimal("1"),
                    uom="EA",
                    from_location_id=src.id,
                    to_location_id=dst.id,
                ),
                actor,
            )

        with ThreadPoolExecutor(max_workers=THREADS) as pool:
            list(pool.map(move, range(THREADS * 2)))

        assert balance_of(item, loc_a) + balance_of(item, loc_b) == Decimal("200")
        assert balance_of(item, loc_a) == Decimal("100")
        assert BalanceSelector(session).reconcile(tenant_id) == []
