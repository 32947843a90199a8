"""
LotService -- Lot receipt, holds, QC, expiry and traceability.

Responsibility:
    Creates lots together with their RECEIPT in one atomic scope, drives the
    lot state machine (quarantine, release, QC result, expiry), runs the
    expiry sweep, and answers lot queries (expiring soon, history, trace).

Architecture position:
    Kernel > Services -- imperative shell.  Writes go through ``run_atomic``;
    stock movements go through TransactionEngine.apply_in_session so the lot
    row, ledger row, balance and lot history commit together.

Invariants enforced:
    - Every status change is checked against the lot state machine.
    - A lot with QC FAILED cannot be released.
    - Every change appends a LotHistory row.
    - Lot numbers are unique per (tenant, item).

Failure modes:
    - LotNotFoundError, TenantMismatchError, SiteAccessDeniedError.
    - InvalidStateTransitionError on an illegal status or QC change.
    - MissingReasonCodeError when a hold needs a reason and none is given.
    - InvalidTransactionError on a duplicate lot number or an item that is
      not lot-tracked.

Audit relevance:
    ``lot_history`` and ``trace_lot`` reconstruct the full life of a lot for
    recall investigations.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date, timedelta
from decimal import Decimal
from uuid import UUID, uuid4

from sqlalchemy import select
from sqlalchemy.orm import Session

from inventory_kernel.domain.actor import ActorContext
from inventory_kernel.domain.clock import Clock
from inventory_kernel.domain.dtos import InventoryEventRecord, LotHistoryRecord, LotRecord
from inventory_kernel.domain.lot_lifecycle import (
    LotStatus,
    QcStatus,
    check_lot_transition,
    check_qc_transition,
    initial_lot_status,
    status_after_qc,
)
from inventory_kernel.domain.settings import TenantInventorySettings
from inventory_kernel.domain.transactions import InventoryTxnRequest, TxnType
from inventory_kernel.exceptions import (
    InvalidStateTransitionError,
    InvalidTransactionError,
    InventoryKernelError,
    LotNotFoundError,
    MissingReasonCodeError,
)
from inventory_kernel.logging_config import LogContext, get_logger
from inventory_kernel.models.lot import Lot, LotHistory
from inventory_kernel.services.audit_annotator import HOLD_REASON_TYPES, AuditAnnotator
from inventory_kernel.services.event_ledger import EventLedger, LedgerFilter
from inventory_kernel.services.transaction_engine import TransactionEngine, lock_lot

logger = get_logger("services.lot")

ACTIVE_LOT_STATUSES = (LotStatus.AVAILABLE.value, LotStatus.QUARANTINE.value)


@dataclass(frozen=True)
class LotReceipt:
    """A newly created lot and the RECEIPT that brought it in."""

    lot: LotRecord
    event: InventoryEventRecord


@dataclass(frozen=True)
class ExpiryRunResult:
    """Outcome of one expiry sweep.  Each lot is processed independently."""

    as_of: date
    expired: tuple[UUID, ...] = ()
    failed: tuple[tuple[UUID, str], ...] = ()

    @property
    def total(self) -> int:
        return len(self.expired) + len(self.failed)


class LotService:
    """
    Lot lifecycle operations.

    Contract:
        Every mutating method runs in its own atomic scope and returns
        frozen records.  ``settings`` defaults to TenantInventorySettings().
    """

    def __init__(self, engine: TransactionEngine, clock: Clock | None = None):
        self._engine = engine
        self._session_factory = engine.session_factory
        self._clock = clock or engine.clock

    # -------------------------------------------------------------------------
    # Receipt
    # -------------------------------------------------------------------------

    def receive_lot(
        self,
        actor: ActorContext,
        *,
        item_id: UUID,
        lot_number: str,
        qty: Decimal,
        uom: str,
        to_location_id: UUID,
        settings: TenantInventorySettings | None = None,
        expiration_date: date | None = None,
        manufacturing_date: date | None = None,
        supplier_id: UUID | None = None,
        supplier_lot_number: str | None = None,
        reference_type: str | None = None,
        reference_id: str | None = None,
        serial_numbers: tuple[str, ...] = (),
        notes: str | None = None,
    ) -> LotReceipt:
        """
        Create a lot and receive its full produced quantity.

        The lot starts QUARANTINE when ``settings.quarantine_received_lots``
        is set, AVAILABLE otherwise.  Without an explicit expiration date,
        the item's shelf life (if any) is added to the receipt date.
        """
        settings = settings or TenantInventorySettings()
        lot_id = uuid4()
        request = InventoryTxnRequest(
            txn_type=TxnType.RECEIPT,
            item_id=item_id,
            qty=qty,
            uom=uom,
            to_location_id=to_location_id,
            lot_id=lot_id,
            reference_type=reference_type,
            reference_id=reference_id,
            serial_numbers=serial_numbers,
            notes=notes,
        )

        def work(session: Session) -> LotReceipt:
            prepared = self._engine.prepare(session, request, actor)
            duplicate = session.execute(
                select(Lot.id).where(
                    Lot.tenant_id == actor.tenant_id,
                    Lot.item_id == item_id,
                    Lot.lot_number == lot_number,
                )
            ).scalar_one_or_none()
            if duplicate is not None:
                raise InvalidTransactionError(
                    TxnType.RECEIPT.value, f"lot number {lot_number} already exists for this item"
                )

            now = self._clock.now()
            expiry = expiration_date
            if expiry is None and prepared.item.shelf_life_days:
                expiry = now.date() + timedelta(days=prepared.item.shelf_life_days)

            lot = Lot(
                id=lot_id,
                tenant_id=actor.tenant_id,
                item_id=item_id,
                lot_number=lot_number,
                site_id=prepared.to_location.site_id,
                location_id=to_location_id,
                qty_produced=prepared.qty_base,
                qty_available=Decimal("0"),
                status=initial_lot_status(settings.quarantine_received_lots).value,
                qc_status=QcStatus.PENDING.value,
                received_at=now,
                expiration_date=expiry,
                manufacturing_date=manufacturing_date,
                supplier_id=supplier_id,
                supplier_lot_number=supplier_lot_number,
            )
            session.add(lot)
            session.flush()

            event = self._engine.execute(session, prepared, actor, settings)
            return LotReceipt(
                lot=LotRecord.from_model(lot),
                event=InventoryEventRecord.from_model(event),
            )

        with LogContext.bind(tenant_id=actor.tenant_id, actor_id=actor.user_id):
            receipt = self._engine.run_atomic(
                work,
                operation="receive_lot",
                settings=settings,
            )
            self._engine.notify_committed([receipt.event])
            logger.info(
                "lot_received",
                extra={
                    "lot_id": str(receipt.lot.id),
                    "lot_number": lot_number,
                    "item_id": str(item_id),
                    "qty_base": str(receipt.lot.qty_produced),
                    "status": receipt.lot.status.value,
                },
            )
        return receipt

    # -------------------------------------------------------------------------
    # Status changes
    # -------------------------------------------------------------------------

    def quarantine_lot(
        self,
        actor: ActorContext,
        lot_id: UUID,
        reason_code_id: UUID | None = None,
        *,
        settings: TenantInventorySettings | None = None,
        notes: str | None = None,
    ) -> LotRecord:
        """Place a lot on hold.  A HOLD reason code is required by default."""
        settings = settings or TenantInventorySettings()
        if reason_code_id is None and settings.require_reason_for_lot_hold:
            raise MissingReasonCodeError("lot quarantine")

        def change(session: Session, lot: Lot) -> str:
            if reason_code_id is not None:
                AuditAnnotator(session).validate_reason_code(
                    actor.tenant_id, reason_code_id, HOLD_REASON_TYPES
                )
            check_lot_transition(lot.id, lot.status, LotStatus.QUARANTINE)
            lot.status = LotStatus.QUARANTINE.value
            lot.hold_reason_code_id = reason_code_id
            return "QUARANTINED"

        return self._change_status(actor, lot_id, change, settings, notes)

    def release_lot(
        self,
        actor: ActorContext,
        lot_id: UUID,
        *,
        settings: TenantInventorySettings | None = None,
        notes: str | None = None,
    ) -> LotRecord:
        """Return a quarantined lot to AVAILABLE.  Refused while QC is FAILED."""

        def change(session: Session, lot: Lot) -> str:
            check_lot_transition(lot.id, lot.status, LotStatus.AVAILABLE)
            if QcStatus(lot.qc_status) == QcStatus.FAILED:
                raise InvalidStateTransitionError(
                    "Lot", str(lot.id), LotStatus(lot.status).value, LotStatus.AVAILABLE.value
                )
            lot.status = LotStatus.AVAILABLE.value
            lot.hold_reason_code_id = None
            return "RELEASED"

        return self._change_status(actor, lot_id, change, settings, notes)

    def record_qc_result(
        self,
        actor: ActorContext,
        lot_id: UUID,
        result: QcStatus | str,
        *,
        settings: TenantInventorySettings | None = None,
        notes: str | None = None,
    ) -> LotRecord:
        """Record a QC outcome.  FAILED moves an AVAILABLE lot to QUARANTINE."""
        result = QcStatus(result)

        def change(session: Session, lot: Lot) -> str:
            check_qc_transition(lot.id, lot.qc_status, result)
            target = status_after_qc(lot.status, result)
            if target != LotStatus(lot.status):
                check_lot_transition(lot.id, lot.status, target)
                lot.status = target.value
            lot.qc_status = result.value
            return f"QC_{result.value}"

        return self._change_status(actor, lot_id, change, settings, notes)

    def expire_lot(
        self,
        actor: ActorContext,
        lot_id: UUID,
        *,
        settings: TenantInventorySettings | None = None,
        notes: str | None = None,
    ) -> LotRecord:
        """Mark a lot EXPIRED.  Its stock stays on hand but is never allocated."""

        def change(session: Session, lot: Lot) -> str:
            check_lot_transition(lot.id, lot.status, LotStatus.EXPIRED)
            lot.status = LotStatus.EXPIRED.value
            return "EXPIRED"

        return self._change_status(actor, lot_id, change, settings, notes)

    def _change_status(self, actor, lot_id, change, settings, notes) -> LotRecord:
        settings = settings or TenantInventorySettings()

        def work(session: Session) -> LotRecord:
            lot = lock_lot(session, lot_id)
            if lot is None:
                raise LotNotFoundError(str(lot_id))
            actor.require_tenant(lot.tenant_id, "Lot", lot_id)
            actor.require_site(lot.site_id)

            status_before = LotStatus(lot.status).value
            history_type = change(session, lot)
            session.add(
                LotHistory(
                    lot_id=lot.id,
                    tenant_id=lot.tenant_id,
                    event_type=history_type,
                    qty_before=lot.qty_available,
                    qty_after=lot.qty_available,
                    qty_changed=Decimal("0"),
                    status_before=status_before,
                    status_after=LotStatus(lot.status).value,
                    user_id=actor.user_id,
                    created_at=self._clock.now(),
                    notes=notes,
                )
            )
            session.flush()
            return LotRecord.from_model(lot)

        with LogContext.bind(tenant_id=actor.tenant_id, actor_id=actor.user_id):
            record = self._engine.run_atomic(
                work,
                operation="lot_status_change",
                settings=settings,
            )
            logger.info(
                "lot_status_changed",
                extra={
                    "lot_id": str(record.id),
                    "status": record.status.value,
                    "qc_status": record.qc_status.value,
                },
            )
        return record

    # -------------------------------------------------------------------------
    # Expiry
    # -------------------------------------------------------------------------

    def process_expired_lots(
        self,
        actor: ActorContext,
        as_of: date | None = None,
        *,
        settings: TenantInventorySettings | None = None,
    ) -> ExpiryRunResult:
        """
        Expire every active lot whose expiration date is before ``as_of``.

        Each lot is expired in its own scope; a failure is recorded in the
        result and does not stop the sweep.
        """
        as_of = as_of or self._clock.today()
        with self._session_factory() as session:
            lot_ids = list(
                session.execute(
                    select(Lot.id)
                    .where(
                        Lot.tenant_id == actor.tenant_id,
                        Lot.status.in_(ACTIVE_LOT_STATUSES),
                        Lot.expiration_date.is_not(None),
                        Lot.expiration_date < as_of,
                    )
                    .order_by(Lot.expiration_date, Lot.lot_number)
                ).scalars()
            )

        expired: list[UUID] = []
        failed: list[tuple[UUID, str]] = []
        for lot_id in lot_ids:
            try:
                self.expire_lot(actor, lot_id, settings=settings, notes="expiry sweep")
            except InventoryKernelError as exc:
                logger.warning(
                    "lot_expiry_failed",
                    extra={"lot_id": str(lot_id), "error_code": exc.code},
                )
                failed.append((lot_id, exc.code))
            else:
                expired.append(lot_id)

        logger.info(
            "lot_expiry_sweep_completed",
            extra={
                "as_of": as_of.isoformat(),
                "expired": len(expired),
                "failed": len(failed),
            },
        )
        return ExpiryRunResult(as_of=as_of, expired=tuple(expired), failed=tuple(failed))

    # -------------------------------------------------------------------------
    # Queries
    # -------------------------------------------------------------------------

    def get_lot(self, actor: ActorContext, lot_id: UUID) -> LotRecord:
        with self._session_factory() as session:
            return LotRecord.from_model(self._load(session, actor, lot_id))

    def get_expiring_lots(
        self,
        actor: ActorContext,
        days: int | None = None,
        *,
        settings: TenantInventorySettings | None = None,
        as_of: date | None = None,
    ) -> list[LotRecord]:
        """Active lots expiring within ``days`` (default: the tenant setting)."""
        settings = settings or TenantInventorySettings()
        days = settings.expiring_soon_days if days is None else days
        as_of = as_of or self._clock.today()
        with self._session_factory() as session:
            lots = session.execute(
                select(Lot)
                .where(
                    Lot.tenant_id == actor.tenant_id,
                    Lot.status.in_(ACTIVE_LOT_STATUSES),
                    Lot.expiration_date >= as_of,
                    Lot.expiration_date <= as_of + timedelta(days=days),
                )
                .order_by(Lot.expiration_date, Lot.lot_number)
            ).scalars()
            return [LotRecord.from_model(lot) for lot in lots]

    def lot_history(self, actor: ActorContext, lot_id: UUID) -> list[LotHistoryRecord]:
        with self._session_factory() as session:
            self._load(session, actor, lot_id)
            rows = session.execute(
                select(LotHistory)
                .where(LotHistory.lot_id == lot_id)
                .order_by(LotHistory.created_at, LotHistory.id)
            ).scalars()
            return [LotHistoryRecord.from_model(row) for row in rows]

    def trace_lot(self, actor: ActorContext, lot_id: UUID) -> list[InventoryEventRecord]:
        """Every ledger event that carried the lot, in ledger order."""
        with self._session_factory() as session:
            self._load(session, actor, lot_id)
            events = EventLedger(session).list_events(
                LedgerFilter(tenant_id=actor.tenant_id, lot_id=lot_id)
            )
            return [InventoryEventRecord.from_model(event) for event in events]

    @staticmethod
    def _load(session: Session, actor: ActorContext, lot_id: UUID) -> Lot:
        lot = session.get(Lot, lot_id)
        if lot is None:
            raise LotNotFoundError(str(lot_id))
        actor.require_tenant(lot.tenant_id, "Lot", lot_id)
        return lot
