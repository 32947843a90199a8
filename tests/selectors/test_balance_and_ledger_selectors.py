"""Read side: balance listings, cache behaviour, reconciliation and ledger queries."""

from datetime import timedelta
from decimal import Decimal

import pytest
from sqlalchemy import update

from inventory_kernel.db.immutability import (
    register_immutability_listeners,
    unregister_immutability_listeners,
)
from inventory_kernel.domain.transactions import TxnType
from inventory_kernel.models import InventoryBalance, InventoryEvent
from inventory_kernel.selectors.balance_selector import BalanceSelector
from inventory_kernel.selectors.ledger_selector import LedgerSelector
from inventory_kernel.services.cache import BalanceCache
from inventory_kernel.services.event_ledger import LedgerFilter


@pytest.fixture
def balances(session, balance_cache):
    return BalanceSelector(session, balance_cache)


@pytest.fixture
def ledger(session):
    return LedgerSelector(session)


@pytest.fixture
def history(post, item, loc_a, loc_b):
    """RECEIPT 100 -> A, ISSUE 30 <- A, MOVE 20 A -> B."""
    return [
        post("RECEIPT", item, 100, to_location_id=loc_a.id, reference_type="PO", reference_id="PO-1"),
        post("ISSUE", item, 30, from_location_id=loc_a.id, reference_type="SO", reference_id="SO-1"),
        post("MOVE", item, 20, from_location_id=loc_a.id, to_location_id=loc_b.id),
    ]


class TestBalanceSelector:
    def test_on_hand(self, balances, history, tenant_id, item, loc_a, loc_b):
        assert balances.on_hand(tenant_id, item.id, loc_a.id) == Decimal("50")
        assert balances.on_hand(tenant_id, item.id, loc_b.id) == Decimal("20")

    def test_missing_balance_is_zero(self, balances, tenant_id, item, loc_a):
        assert balances.get_balance(tenant_id, item.id, loc_a.id) is None
        assert balances.on_hand(tenant_id, item.id, loc_a.id) == Decimal("0")

    def test_list_balances_hides_zero_by_default(self, balances, post, history, tenant_id, site, item, loc_b):
        post("ISSUE", item, 20, from_location_id=loc_b.id)

        visible = balances.list_balances(tenant_id, site.id)
        everything = balances.list_balances(tenant_id, site.id, include_zero=True)

        assert len(visible) == 1
        assert len(everything) == 2
        assert {b.qty_base for b in everything} == {Decimal("50"), Decimal("0")}

    def test_list_filtered_by_item(self, balances, master, post, history, tenant_id, site, loc_a):
        bolt = master.item("BOLT")
        post("RECEIPT", bolt, 7, to_location_id=loc_a.id)

        listed = balances.list_balances(tenant_id, site.id, item_id=bolt.id)
        assert [(b.item_id, b.qty_base) for b in listed] == [(bolt.id, Decimal("7"))]

    def test_site_total(self, balances, history, tenant_id, site, item):
        assert balances.site_total(tenant_id, site.id, item.id) == Decimal("70")


class TestBalanceCache:
    def test_reads_are_cached(self, balances, balance_cache, history, tenant_id, item, loc_a):
        balances.get_balance(tenant_id, item.id, loc_a.id)
        assert len(balance_cache) == 1
        hit, record = balance_cache.get((tenant_id, item.id, loc_a.id))
        assert hit
        assert record.qty_base == Decimal("50")

    def test_commit_invalidates(self, balances, session, post, history, tenant_id, site, item, loc_a):
        assert balances.on_hand(tenant_id, item.id, loc_a.id) == Decimal("50")
        assert len(balances.list_balances(tenant_id, site.id)) == 2

        post("RECEIPT", item, 5, to_location_id=loc_a.id)
        session.expire_all()

        assert balances.on_hand(tenant_id, item.id, loc_a.id) == Decimal("55")
        assert balances.site_total(tenant_id, site.id, item.id) == Decimal("75")

    def test_unrelated_cache_stays_stale(self, session, post, history, tenant_id, item, loc_a):
        """A cache the engine does not know about is never invalidated."""
        detached = BalanceSelector(session, BalanceCache())
        assert detached.on_hand(tenant_id, item.id, loc_a.id) == Decimal("50")

        post("RECEIPT", item, 5, to_location_id=loc_a.id)
        session.expire_all()

        assert detached.on_hand(tenant_id, item.id, loc_a.id) == Decimal("50")


class TestReconcile:
    def test_consistent_ledger_has_no_drift(self, balances, history, tenant_id):
        assert balances.reconcile(tenant_id) == []

    def test_count_rows_are_ignored(self, balances, post, history, tenant_id, item, loc_a):
        post("COUNT", item, 3, to_location_id=loc_a.id)
        assert balances.reconcile(tenant_id) == []

    def test_ledger_sums(self, balances, history, tenant_id, item, loc_a, loc_b):
        assert balances.ledger_sums(tenant_id) == {
            (item.id, loc_a.id): Decimal("50"),
            (item.id, loc_b.id): Decimal("20"),
        }

    def test_tampered_balance_is_reported(self, balances, session, history, tenant_id, item, loc_a):
        session.execute(
            update(InventoryBalance)
            .where(InventoryBalance.item_id == item.id, InventoryBalance.location_id == loc_a.id)
            .values(qty_base=Decimal("45"))
        )
        session.commit()

        drift = balances.reconcile(tenant_id)
        assert len(drift) == 1
        assert drift[0].location_id == loc_a.id
        assert drift[0].balance_qty == Decimal("45")
        assert drift[0].ledger_qty == Decimal("50")
        assert drift[0].drift == Decimal("-5")

    def test_deleted_ledger_row_is_reported(self, balances, session, history, tenant_id, loc_b):
        unregister_immutability_listeners()
        try:
            move = session.get(InventoryEvent, history[2].id)
            session.delete(move)
            session.commit()
        finally:
            register_immutability_listeners()

        drift = {d.location_id: d.drift for d in balances.reconcile(tenant_id)}
        assert drift[loc_b.id] == Decimal("20")

    def test_other_tenant_not_included(self, balances, history, foreign_master):
        assert balances.reconcile(foreign_master.tenant_id) == []


class TestLedgerSelector:
    def test_ledger_order(self, ledger, history, tenant_id):
        events = ledger.list_events(LedgerFilter(tenant_id=tenant_id))
        assert [e.event_type for e in events] == [TxnType.RECEIPT, TxnType.ISSUE, TxnType.MOVE]
        assert [e.created_at for e in events] == sorted(e.created_at for e in events)

    def test_location_filter_matches_either_side(self, ledger, history, tenant_id, loc_b):
        events = ledger.list_events(LedgerFilter(tenant_id=tenant_id, location_id=loc_b.id))
        assert [e.id for e in events] == [history[2].id]

    def test_events_for_pair(self, ledger, history, tenant_id, item, loc_a):
        assert len(ledger.events_for(tenant_id, item.id, loc_a.id)) == 3

    def test_reference_and_type_filters(self, ledger, history, tenant_id):
        by_ref = ledger.list_events(
            LedgerFilter(tenant_id=tenant_id, reference_type="SO", reference_id="SO-1")
        )
        assert [e.id for e in by_ref] == [history[1].id]
        assert ledger.count(LedgerFilter(tenant_id=tenant_id, event_type=TxnType.RECEIPT)) == 1

    def test_time_window_and_limit(self, ledger, history, tenant_id):
        window = LedgerFilter(
            tenant_id=tenant_id,
            created_from=history[1].created_at,
            created_to=history[2].created_at + timedelta(seconds=1),
        )
        assert [e.id for e in ledger.list_events(window)] == [history[1].id, history[2].id]
        assert len(ledger.list_events(LedgerFilter(tenant_id=tenant_id, limit=2))) == 2

    def test_canonical_hash_detects_changes(self, ledger, session, post, history, tenant_id, item, loc_a):
        digest = ledger.canonical_hash(tenant_id)
        assert ledger.verify_canonical_hash(tenant_id, digest)
        assert ledger.canonical_hash(tenant_id) == digest

        post("RECEIPT", item, 1, to_location_id=loc_a.id)
        assert not ledger.verify_canonical_hash(tenant_id, digest)

    def test_empty_tenant_hash_is_stable(self, ledger, foreign_master):
        assert ledger.canonical_hash(foreign_master.tenant_id) == ledger.canonical_hash(
            foreign_master.tenant_id
        )
