"""
FulfillmentService -- Allocate and issue a list of demand lines.

Responsibility:
    For each demand line (item, site, quantity) resolves supply through
    AllocationService and issues every allocated line, so a pick list is
    turned into ledger rows in one call.

Architecture position:
    Services -- stateful orchestration over engines + kernel.

Invariants enforced:
    - Each demand line is one atomic unit: allocation and all of its ISSUE
      rows happen in one scope, so the allocation is re-read on every retry.
    - A line with ``allow_partial`` issues whatever supply exists and is
      reported PARTIAL; otherwise a shortfall fails the line and issues
      nothing.

Failure modes:
    - Per line: any InventoryKernelError becomes a FAILED outcome.
"""

from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass
from decimal import Decimal
from uuid import UUID

from sqlalchemy.orm import Session

from inventory_engines.allocation import AllocationLine
from inventory_kernel.domain.actor import ActorContext
from inventory_kernel.domain.dtos import InventoryEventRecord
from inventory_kernel.domain.settings import AllocationStrategy, TenantInventorySettings
from inventory_kernel.domain.transactions import InventoryTxnRequest, TxnType
from inventory_kernel.exceptions import InsufficientSupplyError, InventoryKernelError
from inventory_kernel.logging_config import LogContext, get_logger
from inventory_kernel.services.allocation_service import AllocationService
from inventory_kernel.services.transaction_engine import TransactionEngine
from inventory_kernel.services.uom_service import UomService
from inventory_services.batch import BatchResult, LineOutcome, LineStatus

logger = get_logger("services.fulfillment")


@dataclass(frozen=True)
class DemandLine:
    """One requested quantity of an item at a site."""

    item_id: UUID
    site_id: UUID
    quantity: Decimal
    uom: str | None = None  # None means base units
    strategy: AllocationStrategy | None = None
    allow_partial: bool = False
    reference_type: str | None = None
    reference_id: str | None = None
    key: str | None = None


@dataclass(frozen=True)
class _Issued:
    requested: Decimal
    events: tuple[InventoryEventRecord, ...]
    short: bool


class FulfillmentService:
    """
    Bulk allocate-and-issue.

    Contract:
        Returns one LineOutcome per demand in submission order.  Outcome
        keys default to the demand's reference id, else its index.
    """

    def __init__(self, engine: TransactionEngine):
        self._engine = engine

    def allocate_and_issue(
        self,
        actor: ActorContext,
        demands: Sequence[DemandLine],
        settings: TenantInventorySettings | None = None,
    ) -> BatchResult:
        settings = settings or TenantInventorySettings()
        outcomes = []
        with LogContext.bind(tenant_id=actor.tenant_id, actor_id=actor.user_id):
            for index, demand in enumerate(demands):
                outcomes.append(self._fulfill(index, demand, actor, settings))

            result = BatchResult(operation="allocate_and_issue", outcomes=tuple(outcomes))
            logger.info(
                "fulfillment_completed",
                extra={
                    "status": result.status.value,
                    "total": result.total,
                    "succeeded": result.succeeded,
                    "partial": result.partial,
                    "failed": result.failed,
                },
            )
        return result

    def _fulfill(
        self,
        index: int,
        demand: DemandLine,
        actor: ActorContext,
        settings: TenantInventorySettings,
    ) -> LineOutcome:
        key = demand.key or demand.reference_id or str(index)

        def work(session: Session) -> _Issued:
            requested = demand.quantity
            if demand.uom is not None:
                requested = UomService(session).normalize(
                    actor.tenant_id, demand.item_id, demand.quantity, demand.uom
                )
            lines, short = self._allocate(session, actor, demand, settings)
            item = UomService(session).get_item(actor.tenant_id, demand.item_id)
            events = tuple(
                InventoryEventRecord.from_model(
                    self._engine.apply_in_session(
                        session,
                        InventoryTxnRequest(
                            txn_type=TxnType.ISSUE,
                            item_id=demand.item_id,
                            qty=line.quantity,
                            uom=item.base_uom,
                            from_location_id=line.location_id,
                            lot_id=line.lot_id,
                            serial_numbers=line.serial_numbers,
                            reference_type=demand.reference_type,
                            reference_id=demand.reference_id,
                        ),
                        actor,
                        settings,
                    )
                )
                for line in lines
            )
            return _Issued(requested=requested, events=events, short=short)

        try:
            issued = self._engine.run_atomic(
                work, operation="allocate_and_issue", settings=settings
            )
        except InventoryKernelError as exc:
            logger.warning(
                "fulfillment_line_failed",
                extra={"line_key": key, "item_id": str(demand.item_id), "error_code": exc.code},
            )
            return LineOutcome.failure(index, key, exc)

        self._engine.notify_committed(issued.events)
        return LineOutcome(
            index=index,
            key=key,
            status=LineStatus.PARTIAL if issued.short else LineStatus.SUCCEEDED,
            requested_qty_base=issued.requested,
            applied_qty_base=sum((e.qty_base for e in issued.events), Decimal("0")),
            events=issued.events,
        )

    def _allocate(
        self,
        session: Session,
        actor: ActorContext,
        demand: DemandLine,
        settings: TenantInventorySettings,
    ) -> tuple[tuple[AllocationLine, ...], bool]:
        try:
            plan = AllocationService(session, clock=self._engine.clock).allocate(
                actor,
                item_id=demand.item_id,
                site_id=demand.site_id,
                quantity=demand.quantity,
                uom=demand.uom,
                strategy=demand.strategy,
                settings=settings,
            )
        except InsufficientSupplyError as exc:
            if not demand.allow_partial or not exc.partial_lines:
                raise
            return exc.partial_lines, True
        return plan.lines, False
