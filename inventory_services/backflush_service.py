"""
BackflushService -- Consume BOM components for a completed production quantity.

Responsibility:
    Scales each BOM component by the produced quantity (with scrap
    allowance) through ``inventory_engines.backflush``, then issues every
    component from the line-side location.  Lot- or serial-tracked
    components are first allocated among the lots/serials at that location
    with the tenant's default strategy, one ISSUE per allocated line.

Architecture position:
    Services -- stateful orchestration over engines + kernel.

Invariants enforced:
    - Each component is one atomic unit: all of its ISSUE rows commit or
      none do.  A failed component never blocks the others.
    - Every ISSUE row carries reference_type PRODUCTION_ORDER and the
      production order id.

Failure modes:
    - InvalidQuantityError for a non-positive produced or BOM base quantity
      is raised before anything is written.
    - Per component: any InventoryKernelError (insufficient balance or
      supply, unknown UOM, storage conflict...) becomes a FAILED outcome
      carrying the error code.
"""

from __future__ import annotations

from collections.abc import Sequence
from decimal import Decimal
from uuid import UUID

from sqlalchemy.orm import Session

from inventory_engines.backflush import BomComponent, ComponentRequirement, calculate_requirements
from inventory_kernel.domain.actor import ActorContext
from inventory_kernel.domain.dtos import InventoryEventRecord
from inventory_kernel.domain.settings import TenantInventorySettings
from inventory_kernel.domain.transactions import InventoryTxnRequest, TxnType
from inventory_kernel.exceptions import InventoryKernelError
from inventory_kernel.logging_config import LogContext, get_logger
from inventory_kernel.services.allocation_service import AllocationService
from inventory_kernel.services.transaction_engine import TransactionEngine
from inventory_kernel.services.uom_service import UomService
from inventory_services.batch import BatchResult, LineOutcome, LineStatus

logger = get_logger("services.backflush")

PRODUCTION_ORDER_REFERENCE = "PRODUCTION_ORDER"


class BackflushService:
    """
    Backflushes component consumption for a production order.

    Contract:
        ``backflush`` returns one LineOutcome per non-zero requirement, in
        BOM order, keyed by the component item id.

    Non-goals:
        - Does not receive the finished good; callers post that RECEIPT.
        - Does not hold BOM structure; components are passed in.
    """

    def __init__(self, engine: TransactionEngine):
        self._engine = engine

    def backflush(
        self,
        actor: ActorContext,
        *,
        production_order_id: str,
        qty_produced: Decimal,
        components: Sequence[BomComponent],
        from_location_id: UUID,
        bom_base_qty: Decimal = Decimal("1"),
        settings: TenantInventorySettings | None = None,
    ) -> BatchResult:
        settings = settings or TenantInventorySettings()
        requirements = calculate_requirements(
            qty_produced=qty_produced,
            bom_base_qty=bom_base_qty,
            components=components,
        )

        outcomes = []
        with LogContext.bind(tenant_id=actor.tenant_id, actor_id=actor.user_id):
            for index, requirement in enumerate(requirements):
                outcomes.append(
                    self._consume(
                        index,
                        requirement,
                        actor,
                        production_order_id,
                        from_location_id,
                        settings,
                    )
                )

            result = BatchResult(operation="backflush", outcomes=tuple(outcomes))
            logger.info(
                "backflush_completed",
                extra={
                    "production_order_id": production_order_id,
                    "qty_produced": str(qty_produced),
                    "status": result.status.value,
                    "succeeded": result.succeeded,
                    "failed": result.failed,
                },
            )
        return result

    def _consume(
        self,
        index: int,
        requirement: ComponentRequirement,
        actor: ActorContext,
        production_order_id: str,
        from_location_id: UUID,
        settings: TenantInventorySettings,
    ) -> LineOutcome:
        key = str(requirement.item_id)

        def work(session: Session) -> tuple[Decimal, tuple[InventoryEventRecord, ...]]:
            requests = self.plan_issues(
                session, actor, requirement, production_order_id, from_location_id, settings
            )
            qty_base = UomService(session).normalize(
                actor.tenant_id, requirement.item_id, requirement.qty, requirement.uom
            )
            events = tuple(
                InventoryEventRecord.from_model(
                    self._engine.apply_in_session(session, request, actor, settings)
                )
                for request in requests
            )
            return qty_base, events

        try:
            requested, events = self._engine.run_atomic(
                work, operation="backflush_component", settings=settings
            )
        except InventoryKernelError as exc:
            logger.warning(
                "backflush_component_failed",
                extra={
                    "production_order_id": production_order_id,
                    "item_id": key,
                    "error_code": exc.code,
                },
            )
            return LineOutcome.failure(index, key, exc)

        self._engine.notify_committed(events)
        return LineOutcome(
            index=index,
            key=key,
            status=LineStatus.SUCCEEDED,
            requested_qty_base=requested,
            applied_qty_base=sum((e.qty_base for e in events), Decimal("0")),
            events=events,
        )

    def plan_issues(
        self,
        session: Session,
        actor: ActorContext,
        requirement: ComponentRequirement,
        production_order_id: str,
        from_location_id: UUID,
        settings: TenantInventorySettings,
    ) -> list[InventoryTxnRequest]:
        """ISSUE requests covering one requirement; allocates tracked items."""
        uom = UomService(session)
        item = uom.get_item(actor.tenant_id, requirement.item_id)

        if not (item.lot_tracked or item.serial_tracked):
            return [
                InventoryTxnRequest(
                    txn_type=TxnType.ISSUE,
                    item_id=item.id,
                    qty=requirement.qty,
                    uom=requirement.uom,
                    from_location_id=from_location_id,
                    reference_type=PRODUCTION_ORDER_REFERENCE,
                    reference_id=production_order_id,
                )
            ]

        location = TransactionEngine.load_location(session, actor, from_location_id)
        plan = AllocationService(session, clock=self._engine.clock).allocate(
            actor,
            item_id=item.id,
            site_id=location.site_id,
            quantity=requirement.qty,
            uom=requirement.uom,
            settings=settings,
            location_ids=[from_location_id],
        )
        return [
            InventoryTxnRequest(
                txn_type=TxnType.ISSUE,
                item_id=item.id,
                qty=line.quantity,
                uom=item.base_uom,
                from_location_id=line.location_id,
                lot_id=line.lot_id,
                serial_numbers=line.serial_numbers,
                reference_type=PRODUCTION_ORDER_REFERENCE,
                reference_id=production_order_id,
            )
            for line in plan.lines
        ]
