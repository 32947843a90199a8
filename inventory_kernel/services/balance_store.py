"""
BalanceStore -- Row-locked read-modify-write of materialized balances.

Responsibility:
    Reads the balance row for (tenant, item, location) under a row lock,
    applies a signed delta, enforces the non-negative invariant, and creates
    the row on first touch.  The row's ``version`` column is SQLAlchemy's
    optimistic-lock counter, bumped on every UPDATE.

Architecture position:
    Kernel > Services.  Called only by TransactionEngine inside its atomic
    scope.  Never commits.

Invariants enforced:
    - Balances change only through ``apply_delta``.
    - A decrement that would leave qty_base < 0 raises
      InsufficientBalanceError unless negative inventory is allowed.
    - site_id on the row is the location's site.
    - first_receipt_at is None whenever qty_base <= 0, so FIFO/LIFO age
      restarts when an emptied location is restocked.

Failure modes:
    - InsufficientBalanceError (validation, never retried).
    - IntegrityError on a racing first insert, StaleDataError on a lost
      version race: both classified as storage conflicts by run_atomic.
"""

from __future__ import annotations

from decimal import Decimal
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.orm import Session

from inventory_kernel.domain.clock import Clock, SystemClock
from inventory_kernel.exceptions import InsufficientBalanceError
from inventory_kernel.logging_config import get_logger
from inventory_kernel.models.balance import InventoryBalance
from inventory_kernel.services.base import BaseService

logger = get_logger("services.balance_store")


class BalanceStore(BaseService):
    """
    Write-side access to InventoryBalance rows.

    Contract:
        ``get_for_update`` always re-reads from the database
        (populate_existing), so a retried attempt never acts on a stale
        identity-map copy.
    """

    def __init__(self, session: Session, clock: Clock | None = None):
        super().__init__(session)
        self._clock = clock or SystemClock()

    def get_for_update(
        self, tenant_id: UUID, item_id: UUID, location_id: UUID
    ) -> InventoryBalance | None:
        return self.session.execute(
            select(InventoryBalance)
            .where(
                InventoryBalance.tenant_id == tenant_id,
                InventoryBalance.item_id == item_id,
                InventoryBalance.location_id == location_id,
            )
            .with_for_update()
            .execution_options(populate_existing=True)
        ).scalar_one_or_none()

    def apply_delta(
        self,
        tenant_id: UUID,
        item_id: UUID,
        location_id: UUID,
        site_id: UUID,
        delta: Decimal,
        *,
        allow_negative: bool = False,
    ) -> InventoryBalance:
        """
        Add ``delta`` to the balance, creating the row if needed.

        Raises:
            InsufficientBalanceError: result < 0 and ``allow_negative`` is False.
        """
        now = self._clock.now()
        balance = self.get_for_update(tenant_id, item_id, location_id)
        current = balance.qty_base if balance is not None else Decimal("0")
        new_qty = current + delta

        if new_qty < 0 and not allow_negative:
            logger.info(
                "balance_decrease_rejected",
                extra={
                    "item_id": str(item_id),
                    "location_id": str(location_id),
                    "available": str(current),
                    "requested": str(-delta),
                },
            )
            raise InsufficientBalanceError(
                item_id=str(item_id),
                location_id=str(location_id),
                available=current,
                requested=-delta,
            )

        if balance is None:
            balance = InventoryBalance(
                tenant_id=tenant_id,
                item_id=item_id,
                location_id=location_id,
                site_id=site_id,
                qty_base=new_qty,
                updated_at=now,
            )
            self.session.add(balance)
        else:
            balance.qty_base = new_qty
            balance.updated_at = now

        # Stock age restarts once a location is emptied.
        if new_qty <= 0:
            balance.first_receipt_at = None
        elif balance.first_receipt_at is None:
            balance.first_receipt_at = now

        self.session.flush()
        return balance

    def on_hand(self, tenant_id: UUID, item_id: UUID, location_id: UUID) -> Decimal:
        """Committed on-hand quantity (zero when no row exists)."""
        qty = self.session.execute(
            select(InventoryBalance.qty_base).where(
                InventoryBalance.tenant_id == tenant_id,
                InventoryBalance.item_id == item_id,
                InventoryBalance.location_id == location_id,
            )
        ).scalar_one_or_none()
        return qty if qty is not None else Decimal("0")
