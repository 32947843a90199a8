"""
EventLedger -- Append-only inventory event ledger.

Responsibility:
    Appends InventoryEvent rows and answers ledger questions: the events for
    an (item, location) pair in ledger order, the signed delta sum that a
    balance must equal, and filtered listings.

Architecture position:
    Kernel > Services.  ``append`` runs inside the transaction engine's
    atomic scope; the read methods are shared with LedgerSelector and
    BalanceSelector.reconcile().

Invariants enforced:
    - qty_base > 0 on every row (also a CHECK constraint).
    - Location shape per event type (re-checked here so no code path can
      bypass it).
    - Rows are never updated or deleted (ORM listeners in db/immutability).
    - Ledger order is (created_at, id).

Failure modes:
    - InvalidTransactionError if an event with an impossible shape reaches
      append().
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal
from uuid import UUID

from sqlalchemy import Select, case, func, or_, select

from inventory_kernel.db.types import round_qty
from inventory_kernel.domain.transactions import TxnType
from inventory_kernel.exceptions import InvalidQuantityError, InvalidTransactionError
from inventory_kernel.logging_config import get_logger
from inventory_kernel.models.event import InventoryEvent
from inventory_kernel.services.base import BaseService

logger = get_logger("services.event_ledger")


@dataclass(frozen=True)
class LedgerFilter:
    """Optional filters for ledger listings.  None means unfiltered."""

    tenant_id: UUID
    item_id: UUID | None = None
    location_id: UUID | None = None
    site_id: UUID | None = None
    lot_id: UUID | None = None
    event_type: TxnType | None = None
    reference_type: str | None = None
    reference_id: str | None = None
    created_from: datetime | None = None
    created_to: datetime | None = None
    limit: int | None = None


def ledger_query(filters: LedgerFilter) -> Select:
    """Build the SELECT for a ledger listing in ledger order."""
    stmt = select(InventoryEvent).where(InventoryEvent.tenant_id == filters.tenant_id)
    if filters.item_id is not None:
        stmt = stmt.where(InventoryEvent.item_id == filters.item_id)
    if filters.location_id is not None:
        stmt = stmt.where(
            or_(
                InventoryEvent.from_location_id == filters.location_id,
                InventoryEvent.to_location_id == filters.location_id,
            )
        )
    if filters.site_id is not None:
        stmt = stmt.where(InventoryEvent.site_id == filters.site_id)
    if filters.lot_id is not None:
        stmt = stmt.where(InventoryEvent.lot_id == filters.lot_id)
    if filters.event_type is not None:
        stmt = stmt.where(InventoryEvent.event_type == TxnType(filters.event_type).value)
    if filters.reference_type is not None:
        stmt = stmt.where(InventoryEvent.reference_type == filters.reference_type)
    if filters.reference_id is not None:
        stmt = stmt.where(InventoryEvent.reference_id == filters.reference_id)
    if filters.created_from is not None:
        stmt = stmt.where(InventoryEvent.created_at >= filters.created_from)
    if filters.created_to is not None:
        stmt = stmt.where(InventoryEvent.created_at < filters.created_to)
    stmt = stmt.order_by(InventoryEvent.created_at, InventoryEvent.id)
    if filters.limit is not None:
        stmt = stmt.limit(filters.limit)
    return stmt


def _check_shape(event: InventoryEvent) -> None:
    kind = TxnType(event.event_type)
    src, dst = event.from_location_id, event.to_location_id

    if event.qty_base is None or event.qty_base <= 0:
        raise InvalidQuantityError(str(event.qty_base), "ledger quantity must be positive")

    match kind:
        case TxnType.RECEIPT:
            ok = dst is not None and src is None
        case TxnType.ISSUE:
            ok = src is not None and dst is None
        case TxnType.MOVE | TxnType.TRANSFER:
            ok = src is not None and dst is not None and src != dst
        case TxnType.ADJUST:
            if event.adjust_direction == "INCREASE":
                ok = dst is not None and src is None
            elif event.adjust_direction == "DECREASE":
                ok = src is not None and dst is None and event.reason_code_id is not None
            else:
                ok = False
        case TxnType.COUNT:
            ok = (src is None) != (dst is None)

    if not ok:
        raise InvalidTransactionError(kind.value, "ledger row has an invalid location shape")


class EventLedger(BaseService):
    """Append and read inventory events."""

    def append(self, event: InventoryEvent) -> InventoryEvent:
        """Validate and persist one ledger row (flush only)."""
        _check_shape(event)
        self.session.add(event)
        self.session.flush()
        logger.debug(
            "ledger_event_appended",
            extra={
                "event_id": str(event.id),
                "event_type": TxnType(event.event_type).value,
                "item_id": str(event.item_id),
                "qty_base": str(event.qty_base),
            },
        )
        return event

    def events_for(
        self, tenant_id: UUID, item_id: UUID, location_id: UUID
    ) -> list[InventoryEvent]:
        """Every event touching (item, location), in ledger order."""
        return list(
            self.session.execute(
                ledger_query(
                    LedgerFilter(tenant_id=tenant_id, item_id=item_id, location_id=location_id)
                )
            ).scalars()
        )

    def signed_delta_sum(self, tenant_id: UUID, item_id: UUID, location_id: UUID) -> Decimal:
        """
        Balance implied by the ledger for (item, location).

        Inbound rows add, outbound rows subtract, COUNT rows contribute zero.
        """
        signed = case(
            (InventoryEvent.to_location_id == location_id, InventoryEvent.qty_base),
            else_=-InventoryEvent.qty_base,
        )
        total = self.session.execute(
            select(func.coalesce(func.sum(signed), 0)).where(
                InventoryEvent.tenant_id == tenant_id,
                InventoryEvent.item_id == item_id,
                InventoryEvent.event_type != TxnType.COUNT.value,
                or_(
                    InventoryEvent.from_location_id == location_id,
                    InventoryEvent.to_location_id == location_id,
                ),
            )
        ).scalar_one()
        return round_qty(Decimal(str(total)))

    def list_events(self, filters: LedgerFilter) -> list[InventoryEvent]:
        return list(self.session.execute(ledger_query(filters)).scalars())
