"""
Module: inventory_kernel.selectors.balance_selector
Responsibility: Read-side balance queries and ledger reconciliation.
    Listings go through the in-process BalanceCache (read-through, may be
    momentarily stale); ``reconcile`` always reads the database.
Architecture position: Kernel > Selectors.

Invariants enforced:
    - Nothing here is ever used to decide a write.
    - ``reconcile`` reports every (item, location) pair whose balance row
      differs from the signed sum of its ledger rows, including ledger pairs
      that have no balance row at all.

Audit relevance:
    An empty ``reconcile`` result is the proof that the materialized
    balances are a faithful projection of the ledger.
"""

from __future__ import annotations

from decimal import Decimal
from uuid import UUID

from sqlalchemy import func, select, union_all
from sqlalchemy.orm import Session

from inventory_kernel.db.types import round_qty
from inventory_kernel.domain.dtos import BalanceDrift, BalanceRecord
from inventory_kernel.domain.transactions import TxnType
from inventory_kernel.models.balance import InventoryBalance
from inventory_kernel.models.event import InventoryEvent
from inventory_kernel.selectors.base import BaseSelector
from inventory_kernel.services.cache import BalanceCache, default_balance_cache


class BalanceSelector(BaseSelector):
    """Balance listings and ledger/balance reconciliation."""

    def __init__(self, session: Session, cache: BalanceCache | None = None):
        super().__init__(session)
        self._cache = cache if cache is not None else default_balance_cache

    def get_balance(
        self, tenant_id: UUID, item_id: UUID, location_id: UUID
    ) -> BalanceRecord | None:
        key = (tenant_id, item_id, location_id)
        hit, cached = self._cache.get(key)
        if hit:
            return cached
        row = self.session.execute(
            select(InventoryBalance).where(
                InventoryBalance.tenant_id == tenant_id,
                InventoryBalance.item_id == item_id,
                InventoryBalance.location_id == location_id,
            )
        ).scalar_one_or_none()
        record = BalanceRecord.from_model(row) if row is not None else None
        self._cache.put(key, record)
        return record

    def on_hand(self, tenant_id: UUID, item_id: UUID, location_id: UUID) -> Decimal:
        record = self.get_balance(tenant_id, item_id, location_id)
        return record.qty_base if record is not None else Decimal("0")

    def list_balances(
        self,
        tenant_id: UUID,
        site_id: UUID,
        item_id: UUID | None = None,
        include_zero: bool = False,
    ) -> tuple[BalanceRecord, ...]:
        """Balances at a site, ordered by item then location."""
        key = (tenant_id, site_id, item_id)
        records = self._cache.get_listing(key)
        if records is None:
            stmt = select(InventoryBalance).where(
                InventoryBalance.tenant_id == tenant_id,
                InventoryBalance.site_id == site_id,
            )
            if item_id is not None:
                stmt = stmt.where(InventoryBalance.item_id == item_id)
            stmt = stmt.order_by(InventoryBalance.item_id, InventoryBalance.location_id)
            records = tuple(
                BalanceRecord.from_model(row) for row in self.session.execute(stmt).scalars()
            )
            self._cache.put_listing(key, records)
        if include_zero:
            return records
        return tuple(r for r in records if r.qty_base != 0)

    def site_total(self, tenant_id: UUID, site_id: UUID, item_id: UUID) -> Decimal:
        total = self.session.execute(
            select(func.coalesce(func.sum(InventoryBalance.qty_base), 0)).where(
                InventoryBalance.tenant_id == tenant_id,
                InventoryBalance.site_id == site_id,
                InventoryBalance.item_id == item_id,
            )
        ).scalar_one()
        return round_qty(Decimal(str(total)))

    def ledger_sums(self, tenant_id: UUID) -> dict[tuple[UUID, UUID], Decimal]:
        """Signed ledger sum per (item, location), COUNT rows excluded."""
        inbound = select(
            InventoryEvent.item_id.label("item_id"),
            InventoryEvent.to_location_id.label("location_id"),
            InventoryEvent.qty_base.label("delta"),
        ).where(
            InventoryEvent.tenant_id == tenant_id,
            InventoryEvent.to_location_id.is_not(None),
            InventoryEvent.event_type != TxnType.COUNT.value,
        )
        outbound = select(
            InventoryEvent.item_id.label("item_id"),
            InventoryEvent.from_location_id.label("location_id"),
            (-InventoryEvent.qty_base).label("delta"),
        ).where(
            InventoryEvent.tenant_id == tenant_id,
            InventoryEvent.from_location_id.is_not(None),
            InventoryEvent.event_type != TxnType.COUNT.value,
        )
        movements = union_all(inbound, outbound).subquery()
        rows = self.session.execute(
            select(
                movements.c.item_id,
                movements.c.location_id,
                func.sum(movements.c.delta),
            ).group_by(movements.c.item_id, movements.c.location_id)
        ).all()
        return {
            (UUID(str(item_id)), UUID(str(location_id))): round_qty(Decimal(str(total)))
            for item_id, location_id, total in rows
        }

    def reconcile(self, tenant_id: UUID) -> list[BalanceDrift]:
        """
        Compare every balance against its ledger-derived sum.

        Returns:
            One BalanceDrift per disagreeing pair, ordered by item then
            location.  Empty when balances and ledger agree.
        """
        ledger = self.ledger_sums(tenant_id)
        balances = {
            (row.item_id, row.location_id): row.qty_base
            for row in self.session.execute(
                select(InventoryBalance).where(InventoryBalance.tenant_id == tenant_id)
            ).scalars()
        }

        drift = []
        for item_id, location_id in sorted(
            set(ledger) | set(balances), key=lambda k: (str(k[0]), str(k[1]))
        ):
            balance_qty = balances.get((item_id, location_id), Decimal("0"))
            ledger_qty = ledger.get((item_id, location_id), Decimal("0"))
            if round_qty(balance_qty) != ledger_qty:
                drift.append(
                    BalanceDrift(
                        item_id=item_id,
                        location_id=location_id,
                        balance_qty=balance_qty,
                        ledger_qty=ledger_qty,
                    )
                )
        return drift
