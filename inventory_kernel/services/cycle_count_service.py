"""
CycleCountService -- Physical count workflow.

Responsibility:
    Creates counts with one PENDING line per balance in scope, snapshots
    expected quantities when the count starts, records counted quantities,
    and turns approved variances into ADJUST transactions.

Architecture position:
    Kernel > Services -- imperative shell.  Each operation runs in its own
    atomic scope; ledger rows are written through
    TransactionEngine.apply_in_session so the line and its event commit
    together.

Invariants enforced:
    - Count: SCHEDULED -> IN_PROGRESS -> COMPLETED, or -> CANCELLED.
    - Line: PENDING -> COUNTED, once.  Variance = counted - expected is
      computed at that transition and frozen (ORM listener).
    - Recording a count never changes balances.  A non-zero variance
      appends an informational COUNT row (to-location for a surplus,
      from-location for a shortage).
    - Balances change only on an approved variance, through ADJUST.
    - A count completes only when no line is PENDING.

Failure modes:
    - CycleCountNotFoundError, CycleCountLineNotFoundError,
      SiteNotFoundError, TenantMismatchError, SiteAccessDeniedError.
    - InvalidStateTransitionError on any lifecycle violation.
    - MissingReasonCodeError when approving a shortage without a reason.
"""

from __future__ import annotations

from collections.abc import Iterable
from decimal import Decimal
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.orm import Session

from inventory_kernel.domain.actor import ActorContext
from inventory_kernel.domain.clock import Clock
from inventory_kernel.domain.cycle_count_lifecycle import (
    CountLineStatus,
    CycleCountStatus,
    VarianceApproval,
    check_count_transition,
    check_variance_decision,
    record_line_count,
)
from inventory_kernel.domain.dtos import (
    CycleCountLineRecord,
    CycleCountRecord,
    InventoryEventRecord,
)
from inventory_kernel.domain.settings import TenantInventorySettings
from inventory_kernel.domain.transactions import (
    DECREASE,
    INCREASE,
    InventoryTxnRequest,
    TxnType,
    parse_quantity,
)
from inventory_kernel.exceptions import (
    CycleCountLineNotFoundError,
    CycleCountNotFoundError,
    InvalidStateTransitionError,
    SiteNotFoundError,
)
from inventory_kernel.logging_config import LogContext, get_logger
from inventory_kernel.models.balance import InventoryBalance
from inventory_kernel.models.cycle_count import CycleCount, CycleCountLine
from inventory_kernel.models.item import Item
from inventory_kernel.models.location import Site
from inventory_kernel.services.balance_store import BalanceStore
from inventory_kernel.services.transaction_engine import TransactionEngine

logger = get_logger("services.cycle_count")

CYCLE_COUNT_REFERENCE = "CYCLE_COUNT"


class CycleCountService:
    """Cycle count lifecycle over the transaction engine."""

    def __init__(self, engine: TransactionEngine, clock: Clock | None = None):
        self._engine = engine
        self._session_factory = engine.session_factory
        self._clock = clock or engine.clock

    def _run(self, actor, operation, work, settings=None):
        settings = settings or TenantInventorySettings()
        with LogContext.bind(tenant_id=actor.tenant_id, actor_id=actor.user_id):
            return self._engine.run_atomic(
                work,
                operation=operation,
                settings=settings,
            )

    # -------------------------------------------------------------------------
    # Count header
    # -------------------------------------------------------------------------

    def create_count(
        self,
        actor: ActorContext,
        *,
        site_id: UUID,
        name: str,
        location_ids: Iterable[UUID] | None = None,
        item_ids: Iterable[UUID] | None = None,
    ) -> CycleCountRecord:
        """Create a SCHEDULED count with a PENDING line per balance in scope."""
        location_filter = list(location_ids) if location_ids is not None else None
        item_filter = list(item_ids) if item_ids is not None else None

        def work(session: Session) -> CycleCountRecord:
            site = session.get(Site, site_id)
            if site is None:
                raise SiteNotFoundError(str(site_id))
            actor.require_tenant(site.tenant_id, "Site", site_id)
            actor.require_site(site_id)

            stmt = select(InventoryBalance).where(
                InventoryBalance.tenant_id == actor.tenant_id,
                InventoryBalance.site_id == site_id,
            )
            if location_filter is not None:
                stmt = stmt.where(InventoryBalance.location_id.in_(location_filter))
            if item_filter is not None:
                stmt = stmt.where(InventoryBalance.item_id.in_(item_filter))
            balances = sorted(
                session.execute(stmt).scalars(),
                key=lambda b: (str(b.location_id), str(b.item_id)),
            )

            count = CycleCount(
                tenant_id=actor.tenant_id,
                site_id=site_id,
                name=name,
                status=CycleCountStatus.SCHEDULED.value,
                created_by_user_id=actor.user_id,
            )
            for line_no, balance in enumerate(balances, start=1):
                count.lines.append(
                    CycleCountLine(
                        line_no=line_no,
                        item_id=balance.item_id,
                        location_id=balance.location_id,
                        expected_qty_base=Decimal("0"),
                        status=CountLineStatus.PENDING.value,
                        approval_status=VarianceApproval.NONE.value,
                    )
                )
            session.add(count)
            session.flush()
            return CycleCountRecord.from_model(count)

        record = self._run(actor, "create_cycle_count", work)
        logger.info(
            "cycle_count_created",
            extra={"cycle_count_id": str(record.id), "lines": len(record.lines)},
        )
        return record

    def start_count(self, actor: ActorContext, count_id: UUID) -> CycleCountRecord:
        """SCHEDULED -> IN_PROGRESS; snapshot expected quantities."""

        def work(session: Session) -> CycleCountRecord:
            count = self._lock_count(session, actor, count_id)
            check_count_transition(count.id, count.status, CycleCountStatus.IN_PROGRESS)
            store = BalanceStore(session, self._clock)
            for line in count.lines:
                line.expected_qty_base = store.on_hand(
                    actor.tenant_id, line.item_id, line.location_id
                )
            count.status = CycleCountStatus.IN_PROGRESS.value
            count.started_at = self._clock.now()
            session.flush()
            return CycleCountRecord.from_model(count)

        record = self._run(actor, "start_cycle_count", work)
        logger.info("cycle_count_started", extra={"cycle_count_id": str(count_id)})
        return record

    def complete_count(self, actor: ActorContext, count_id: UUID) -> CycleCountRecord:
        """IN_PROGRESS -> COMPLETED.  Every line must be COUNTED."""

        def work(session: Session) -> CycleCountRecord:
            count = self._lock_count(session, actor, count_id)
            check_count_transition(count.id, count.status, CycleCountStatus.COMPLETED)
            if any(
                CountLineStatus(line.status) == CountLineStatus.PENDING for line in count.lines
            ):
                raise InvalidStateTransitionError(
                    "CycleCount",
                    str(count.id),
                    CycleCountStatus(count.status).value,
                    CycleCountStatus.COMPLETED.value,
                )
            count.status = CycleCountStatus.COMPLETED.value
            count.completed_at = self._clock.now()
            session.flush()
            return CycleCountRecord.from_model(count)

        record = self._run(actor, "complete_cycle_count", work)
        logger.info("cycle_count_completed", extra={"cycle_count_id": str(count_id)})
        return record

    def cancel_count(self, actor: ActorContext, count_id: UUID) -> CycleCountRecord:
        def work(session: Session) -> CycleCountRecord:
            count = self._lock_count(session, actor, count_id)
            check_count_transition(count.id, count.status, CycleCountStatus.CANCELLED)
            count.status = CycleCountStatus.CANCELLED.value
            count.completed_at = self._clock.now()
            session.flush()
            return CycleCountRecord.from_model(count)

        record = self._run(actor, "cancel_cycle_count", work)
        logger.info("cycle_count_cancelled", extra={"cycle_count_id": str(count_id)})
        return record

    def get_count(self, actor: ActorContext, count_id: UUID) -> CycleCountRecord:
        with self._session_factory() as session:
            count = session.get(CycleCount, count_id)
            if count is None:
                raise CycleCountNotFoundError(str(count_id))
            actor.require_tenant(count.tenant_id, "Cycle count", count_id)
            return CycleCountRecord.from_model(count)

    # -------------------------------------------------------------------------
    # Lines
    # -------------------------------------------------------------------------

    def record_count(
        self,
        actor: ActorContext,
        line_id: UUID,
        counted_qty_base: Decimal | int | str,
        *,
        settings: TenantInventorySettings | None = None,
    ) -> CycleCountLineRecord:
        """
        Record the counted base quantity for a PENDING line.

        A non-zero variance appends an informational COUNT ledger row; the
        balance is left unchanged until the variance is approved.
        """
        settings = settings or TenantInventorySettings()
        counted = parse_quantity(counted_qty_base)
        committed: list[InventoryEventRecord] = []

        def work(session: Session) -> CycleCountLineRecord:
            committed.clear()
            line, count = self._lock_line(session, actor, line_id)
            variance = record_line_count(
                line.id, count.status, line.status, line.expected_qty_base, counted
            )

            if variance != 0:
                item = session.get(Item, line.item_id)
                request = InventoryTxnRequest(
                    txn_type=TxnType.COUNT,
                    item_id=line.item_id,
                    qty=abs(variance),
                    uom=item.base_uom,
                    to_location_id=line.location_id if variance > 0 else None,
                    from_location_id=line.location_id if variance < 0 else None,
                    reference_type=CYCLE_COUNT_REFERENCE,
                    reference_id=str(count.id),
                    notes=f"cycle count line {line.line_no}",
                )
                event = self._engine.apply_in_session(session, request, actor, settings)
                line.count_event_id = event.id
                committed.append(InventoryEventRecord.from_model(event))

            line.counted_qty_base = counted
            line.variance_qty_base = variance
            line.status = CountLineStatus.COUNTED.value
            line.counted_by_user_id = actor.user_id
            line.counted_at = self._clock.now()
            session.flush()
            return CycleCountLineRecord.from_model(line)

        record = self._run(actor, "record_cycle_count", work, settings)
        self._engine.notify_committed(committed)
        logger.info(
            "cycle_count_line_counted",
            extra={
                "line_id": str(line_id),
                "counted_qty_base": str(record.counted_qty_base),
                "variance_qty_base": str(record.variance_qty_base),
            },
        )
        return record

    def approve_variance(
        self,
        actor: ActorContext,
        line_id: UUID,
        approved: bool,
        *,
        reason_code_id: UUID | None = None,
        lot_id: UUID | None = None,
        serial_numbers: tuple[str, ...] = (),
        settings: TenantInventorySettings | None = None,
    ) -> CycleCountLineRecord:
        """
        Approve or reject a counted line's variance.

        Approval of a non-zero variance posts ADJUST INCREASE (surplus) or
        ADJUST DECREASE with ``reason_code_id`` (shortage) and links the
        event to the line.
        """
        settings = settings or TenantInventorySettings()
        target = VarianceApproval.APPROVED if approved else VarianceApproval.REJECTED
        committed: list[InventoryEventRecord] = []

        def work(session: Session) -> CycleCountLineRecord:
            committed.clear()
            line, count = self._lock_line(session, actor, line_id)
            if CycleCountStatus(count.status) not in (
                CycleCountStatus.IN_PROGRESS,
                CycleCountStatus.COMPLETED,
            ):
                raise InvalidStateTransitionError(
                    "CycleCountLine variance",
                    str(line.id),
                    VarianceApproval(line.approval_status).value,
                    target.value,
                )
            check_variance_decision(line.id, line.status, line.approval_status, target)

            variance = line.variance_qty_base or Decimal("0")
            if approved and variance != 0:
                item = session.get(Item, line.item_id)
                surplus = variance > 0
                request = InventoryTxnRequest(
                    txn_type=TxnType.ADJUST,
                    item_id=line.item_id,
                    qty=abs(variance),
                    uom=item.base_uom,
                    direction=INCREASE if surplus else DECREASE,
                    to_location_id=line.location_id if surplus else None,
                    from_location_id=None if surplus else line.location_id,
                    reason_code_id=reason_code_id,
                    reference_type=CYCLE_COUNT_REFERENCE,
                    reference_id=str(count.id),
                    lot_id=lot_id,
                    serial_numbers=serial_numbers,
                    notes=f"cycle count variance, line {line.line_no}",
                )
                event = self._engine.apply_in_session(session, request, actor, settings)
                line.adjustment_event_id = event.id
                committed.append(InventoryEventRecord.from_model(event))

            line.approval_status = target.value
            line.approved_by_user_id = actor.user_id
            session.flush()
            return CycleCountLineRecord.from_model(line)

        record = self._run(actor, "approve_cycle_count_variance", work, settings)
        self._engine.notify_committed(committed)
        logger.info(
            "cycle_count_variance_decided",
            extra={
                "line_id": str(line_id),
                "approval_status": target.value,
                "adjustment_event_id": str(record.adjustment_event_id)
                if record.adjustment_event_id
                else None,
            },
        )
        return record

    # -------------------------------------------------------------------------
    # Loading
    # -------------------------------------------------------------------------

    @staticmethod
    def _lock_count(session: Session, actor: ActorContext, count_id: UUID) -> CycleCount:
        count = session.execute(
            select(CycleCount)
            .where(CycleCount.id == count_id)
            .with_for_update()
            .execution_options(populate_existing=True)
        ).scalar_one_or_none()
        if count is None:
            raise CycleCountNotFoundError(str(count_id))
        actor.require_tenant(count.tenant_id, "Cycle count", count_id)
        actor.require_site(count.site_id)
        return count

    @staticmethod
    def _lock_line(
        session: Session, actor: ActorContext, line_id: UUID
    ) -> tuple[CycleCountLine, CycleCount]:
        line = session.execute(
            select(CycleCountLine)
            .where(CycleCountLine.id == line_id)
            .with_for_update()
            .execution_options(populate_existing=True)
        ).scalar_one_or_none()
        if line is None:
            raise CycleCountLineNotFoundError(str(line_id))
        count = session.get(CycleCount, line.cycle_count_id)
        actor.require_tenant(count.tenant_id, "Cycle count line", line_id)
        actor.require_site(count.site_id)
        return line, count
