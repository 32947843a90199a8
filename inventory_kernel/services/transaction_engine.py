"""
TransactionEngine -- Apply typed inventory transactions atomically.

Responsibility:
    The single write path for stock.  For one InventoryTxnRequest it
    authorizes the actor, normalizes the quantity to the item's base unit,
    validates the transaction shape, then in one atomic scope locks and
    updates the affected balance rows, appends the immutable ledger row and
    writes the lot, lot history and serial side effects.

Architecture position:
    Kernel > Services -- imperative shell.  Opens its own scopes through
    ``run_atomic``; ``apply_in_session`` lets LotService and
    CycleCountService compose a transaction with their own writes inside
    one scope.

Invariants enforced:
    - Ledger and balances commit together or not at all; a MOVE/TRANSFER
      updates both locations or neither.
    - After every commit, balance(item, location) equals the signed sum of
      its ledger rows.
    - Balances never go negative unless the tenant allows it.
    - Lot qty_available stays within [0, qty_produced] and only ISSUE-class
      rows carrying the lot decrement it.
    - Balance rows are locked in location_id order so two writers touching
      the same pair of locations cannot deadlock each other.

Failure modes:
    - Validation, not-found and authorization errors are raised inside the
      first attempt before any row is written, and never retried.
    - StorageConflictError once ``settings.max_write_retries`` retries of a
      contended write are exhausted.

Audit relevance:
    Every ledger row carries the actor, correlation id, workcell and device.
    ``inventory_event_applied`` is logged after commit for every event.
"""

from __future__ import annotations

import time
from collections.abc import Callable, Iterable
from dataclasses import dataclass
from decimal import Decimal
from typing import TypeVar
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.orm import Session, sessionmaker

from inventory_engines.uom import canonical_uom
from inventory_kernel.domain.actor import ActorContext
from inventory_kernel.domain.clock import Clock, SystemClock
from inventory_kernel.domain.dtos import InventoryEventRecord
from inventory_kernel.domain.lot_lifecycle import (
    TERMINAL_LOT_STATUSES,
    LotStatus,
    check_lot_transition,
    is_allocatable,
)
from inventory_kernel.domain.settings import TenantInventorySettings
from inventory_kernel.domain.transactions import (
    Decrease,
    Increase,
    InventoryTxnRequest,
    TxnType,
    compute_deltas,
    validate_shape,
)
from inventory_kernel.exceptions import (
    InsufficientBalanceError,
    InvalidQuantityError,
    InvalidTransactionError,
    LocationNotFoundError,
    LotNotAvailableError,
    LotNotFoundError,
    SerialNumberError,
)
from inventory_kernel.logging_config import LogContext, get_logger
from inventory_kernel.models.event import InventoryEvent
from inventory_kernel.models.item import Item
from inventory_kernel.models.location import Location
from inventory_kernel.models.lot import Lot, LotHistory
from inventory_kernel.models.serial import SerialNumber, SerialStatus
from inventory_kernel.services.atomic import run_atomic
from inventory_kernel.services.audit_annotator import AuditAnnotator
from inventory_kernel.services.balance_store import BalanceStore
from inventory_kernel.services.cache import BalanceCache, default_balance_cache
from inventory_kernel.services.event_ledger import EventLedger
from inventory_kernel.services.uom_service import UomService

logger = get_logger("services.transaction_engine")

T = TypeVar("T")


@dataclass(frozen=True)
class PreparedTxn:
    """A request that passed every check that needs no lock."""

    request: InventoryTxnRequest
    item: Item
    qty_base: Decimal
    from_location: Location | None
    to_location: Location | None

    @property
    def site_id(self) -> UUID:
        location = self.from_location or self.to_location
        return location.site_id


def lock_lot(session: Session, lot_id: UUID) -> Lot | None:
    return session.execute(
        select(Lot)
        .where(Lot.id == lot_id)
        .with_for_update()
        .execution_options(populate_existing=True)
    ).scalar_one_or_none()


class TransactionEngine:
    """
    Applies inventory transactions.

    Contract:
        ``apply`` returns the committed ledger row as an InventoryEventRecord.
        Settings are passed per call; the engine reads no global config.

    Guarantees:
        - Reads current committed balances on every attempt; the balance
          cache is only invalidated, never consulted.

    Non-goals:
        - Does not allocate.  Callers choose lots (AllocationService) and
          submit one transaction per line.
    """

    def __init__(
        self,
        session_factory: sessionmaker[Session],
        clock: Clock | None = None,
        cache: BalanceCache | None = None,
        sleep: Callable[[float], None] = time.sleep,
    ):
        self._session_factory = session_factory
        self._clock = clock or SystemClock()
        self._cache = cache if cache is not None else default_balance_cache
        self._sleep = sleep

    @property
    def clock(self) -> Clock:
        return self._clock

    @property
    def session_factory(self) -> sessionmaker[Session]:
        return self._session_factory

    # -------------------------------------------------------------------------
    # Public entry points
    # -------------------------------------------------------------------------

    def apply(
        self,
        request: InventoryTxnRequest,
        actor: ActorContext,
        settings: TenantInventorySettings | None = None,
    ) -> InventoryEventRecord:
        """
        Apply one transaction in its own atomic scope.

        Raises:
            ValidationError, NotFoundError, AuthorizationError subclasses on
            bad input; StorageConflictError when contention outlasts retries.
        """
        settings = settings or TenantInventorySettings()

        def work(session: Session) -> InventoryEventRecord:
            event = self.apply_in_session(session, request, actor, settings)
            return InventoryEventRecord.from_model(event)

        with LogContext.bind(tenant_id=actor.tenant_id, actor_id=actor.user_id):
            record = self.run_atomic(
                work, operation=f"apply_{request.txn_type.value.lower()}", settings=settings
            )
            self.notify_committed([record])
        return record

    def run_atomic(
        self,
        work: Callable[[Session], T],
        *,
        operation: str,
        settings: TenantInventorySettings,
    ) -> T:
        """Run ``work`` in a fresh scope with this engine's retry policy."""
        return run_atomic(
            self._session_factory,
            work,
            operation=operation,
            max_retries=settings.max_write_retries,
            backoff_seconds=settings.retry_backoff_seconds,
            sleep=self._sleep,
        )

    def apply_in_session(
        self,
        session: Session,
        request: InventoryTxnRequest,
        actor: ActorContext,
        settings: TenantInventorySettings,
    ) -> InventoryEvent:
        """
        Validate and write one transaction inside the caller's scope.

        The caller owns commit/rollback and must call ``notify_committed``
        after its scope commits.
        """
        prepared = self.prepare(session, request, actor)
        return self.execute(session, prepared, actor, settings)

    def notify_committed(self, records: Iterable[InventoryEventRecord]) -> None:
        """Invalidate cached balances and log each committed event."""
        for record in records:
            for location_id in (record.from_location_id, record.to_location_id):
                if location_id is not None:
                    self._cache.invalidate(record.tenant_id, record.item_id, location_id)
            logger.info(
                "inventory_event_applied",
                extra={
                    "event_id": str(record.id),
                    "event_type": record.event_type.value,
                    "item_id": str(record.item_id),
                    "site_id": str(record.site_id),
                    "from_location_id": str(record.from_location_id)
                    if record.from_location_id
                    else None,
                    "to_location_id": str(record.to_location_id)
                    if record.to_location_id
                    else None,
                    "qty_base": str(record.qty_base),
                    "lot_id": str(record.lot_id) if record.lot_id else None,
                },
            )

    # -------------------------------------------------------------------------
    # Validation
    # -------------------------------------------------------------------------

    def prepare(
        self, session: Session, request: InventoryTxnRequest, actor: ActorContext
    ) -> PreparedTxn:
        """Authorize, normalize and validate without writing anything."""
        validate_shape(request)
        kind = request.txn_type.value

        uom = UomService(session)
        item = uom.get_item(actor.tenant_id, request.item_id)
        if not item.is_active and request.txn_type != TxnType.COUNT:
            raise InvalidTransactionError(kind, f"item {item.id} is inactive")

        from_location = self.load_location(session, actor, request.from_location_id)
        to_location = self.load_location(session, actor, request.to_location_id)
        if to_location is not None and not to_location.is_active:
            raise InvalidTransactionError(kind, f"location {to_location.id} is inactive")
        if (
            request.txn_type == TxnType.MOVE
            and from_location.site_id != to_location.site_id
        ):
            raise InvalidTransactionError(
                kind, "MOVE requires both locations in the same site; use TRANSFER"
            )

        qty_base = uom.normalize(actor.tenant_id, item.id, request.qty, request.uom)

        if request.txn_type != TxnType.COUNT:
            if item.lot_tracked and request.lot_id is None:
                raise InvalidTransactionError(kind, "lot_id is required for a lot-tracked item")
            if not item.lot_tracked and request.lot_id is not None:
                raise InvalidTransactionError(kind, "item is not lot-tracked")
            self._check_serial_shape(item, request, qty_base)

        AuditAnnotator(session).validate_request(actor.tenant_id, request)

        return PreparedTxn(
            request=request,
            item=item,
            qty_base=qty_base,
            from_location=from_location,
            to_location=to_location,
        )

    @staticmethod
    def load_location(
        session: Session, actor: ActorContext, location_id: UUID | None
    ) -> Location | None:
        if location_id is None:
            return None
        location = session.get(Location, location_id)
        if location is None:
            raise LocationNotFoundError(str(location_id))
        actor.require_tenant(location.tenant_id, "Location", location_id)
        actor.require_site(location.site_id)
        return location

    @staticmethod
    def _check_serial_shape(
        item: Item, request: InventoryTxnRequest, qty_base: Decimal
    ) -> None:
        serials = request.serial_numbers
        if not item.serial_tracked:
            if serials:
                raise SerialNumberError(str(item.id), "item is not serial-tracked")
            return
        if qty_base != qty_base.to_integral_value():
            raise InvalidQuantityError(qty_base, "serial-tracked quantities must be whole units")
        if len(set(serials)) != len(serials):
            raise SerialNumberError(str(item.id), "serial numbers must be unique")
        if len(serials) != int(qty_base):
            raise SerialNumberError(
                str(item.id),
                f"{len(serials)} serial numbers given for a quantity of {int(qty_base)}",
            )

    # -------------------------------------------------------------------------
    # Write
    # -------------------------------------------------------------------------

    def execute(
        self,
        session: Session,
        prepared: PreparedTxn,
        actor: ActorContext,
        settings: TenantInventorySettings,
    ) -> InventoryEvent:
        request = prepared.request
        now = self._clock.now()

        lot = None
        if request.lot_id is not None:
            lot = lock_lot(session, request.lot_id)
            if lot is None:
                raise LotNotFoundError(str(request.lot_id))
            actor.require_tenant(lot.tenant_id, "Lot", lot.id)
            if lot.item_id != prepared.item.id:
                raise LotNotAvailableError(str(lot.id), "lot belongs to a different item")
            self._check_lot(lot, prepared)

        store = BalanceStore(session, self._clock)
        deltas = sorted(
            compute_deltas(request, prepared.qty_base), key=lambda d: str(d.location_id)
        )
        sites = {
            loc.id: loc.site_id
            for loc in (prepared.from_location, prepared.to_location)
            if loc is not None
        }
        for delta in deltas:
            store.apply_delta(
                actor.tenant_id,
                prepared.item.id,
                delta.location_id,
                sites[delta.location_id],
                delta.delta,
                allow_negative=settings.allow_negative_inventory,
            )

        event = InventoryEvent(
            tenant_id=actor.tenant_id,
            site_id=prepared.site_id,
            event_type=request.txn_type.value,
            item_id=prepared.item.id,
            from_location_id=request.from_location_id,
            to_location_id=request.to_location_id,
            qty_entered=request.qty,
            uom_entered=canonical_uom(request.uom),
            qty_base=prepared.qty_base,
            adjust_direction=request.direction.value if request.direction else None,
            reference_type=request.reference_type,
            reference_id=request.reference_id,
            reason_code_id=request.reason_code_id,
            lot_id=request.lot_id,
            serial_numbers=sorted(request.serial_numbers) or None,
            created_at=now,
        )
        AuditAnnotator.stamp(event, actor, request)
        EventLedger(session).append(event)

        if lot is not None and request.txn_type != TxnType.COUNT:
            self._update_lot(session, lot, prepared, event, actor)
        if prepared.item.serial_tracked and request.txn_type != TxnType.COUNT:
            self._update_serials(session, prepared, actor)

        session.flush()
        return event

    def _check_lot(self, lot: Lot, prepared: PreparedTxn) -> None:
        request = prepared.request
        lot_id = str(lot.id)
        status = LotStatus(lot.status)
        today = self._clock.today()

        match request.txn_type:
            case TxnType.ISSUE | TxnType.MOVE | TxnType.TRANSFER:
                if not is_allocatable(lot.status, lot.qc_status):
                    raise LotNotAvailableError(
                        lot_id, f"lot is {status.value} with QC {lot.qc_status}"
                    )
                if lot.is_expired(today):
                    raise LotNotAvailableError(lot_id, "lot is past its expiration date")
                if lot.location_id != request.from_location_id:
                    raise LotNotAvailableError(lot_id, "lot is not at the source location")
                if request.txn_type == TxnType.ISSUE:
                    self._check_lot_quantity(lot, prepared)
                elif prepared.qty_base != lot.qty_available:
                    raise InvalidQuantityError(
                        prepared.qty_base,
                        f"a lot moves with its full available quantity {lot.qty_available}",
                    )
            case TxnType.ADJUST if isinstance(request.direction, Decrease):
                if status not in (LotStatus.AVAILABLE, LotStatus.QUARANTINE):
                    raise LotNotAvailableError(lot_id, f"lot is {status.value}")
                if lot.location_id != request.from_location_id:
                    raise LotNotAvailableError(lot_id, "lot is not at the source location")
                self._check_lot_quantity(lot, prepared)
            case TxnType.RECEIPT | TxnType.ADJUST:
                if status in TERMINAL_LOT_STATUSES:
                    raise LotNotAvailableError(lot_id, f"lot is {status.value}")
                if lot.location_id != request.to_location_id:
                    raise LotNotAvailableError(
                        lot_id, "lot is not at the destination location"
                    )
                if lot.qty_available + prepared.qty_base > lot.qty_produced:
                    raise InvalidQuantityError(
                        prepared.qty_base,
                        f"lot available quantity would exceed produced {lot.qty_produced}",
                    )
            case TxnType.COUNT:
                pass

    @staticmethod
    def _check_lot_quantity(lot: Lot, prepared: PreparedTxn) -> None:
        if lot.qty_available < prepared.qty_base:
            raise InsufficientBalanceError(
                item_id=str(lot.item_id),
                location_id=str(lot.location_id),
                available=lot.qty_available,
                requested=prepared.qty_base,
            )

    def _update_lot(
        self,
        session: Session,
        lot: Lot,
        prepared: PreparedTxn,
        event: InventoryEvent,
        actor: ActorContext,
    ) -> None:
        request = prepared.request
        qty_before = lot.qty_available
        status_before = LotStatus(lot.status)
        changed = Decimal("0")

        match request.txn_type:
            case TxnType.ISSUE:
                history_type = "ISSUED"
                changed = -prepared.qty_base
            case TxnType.ADJUST if isinstance(request.direction, Decrease):
                history_type = "ADJUSTED"
                changed = -prepared.qty_base
            case TxnType.ADJUST if isinstance(request.direction, Increase):
                history_type = "ADJUSTED"
                changed = prepared.qty_base
            case TxnType.RECEIPT:
                history_type = "RECEIVED"
                changed = prepared.qty_base
            case TxnType.MOVE | TxnType.TRANSFER:
                history_type = "MOVED"
                lot.location_id = prepared.to_location.id
                lot.site_id = prepared.to_location.site_id

        lot.qty_available = qty_before + changed
        if lot.qty_available == 0 and changed < 0:
            check_lot_transition(lot.id, status_before, LotStatus.CONSUMED)
            lot.status = LotStatus.CONSUMED.value

        session.add(
            LotHistory(
                lot_id=lot.id,
                tenant_id=lot.tenant_id,
                event_type=history_type,
                qty_before=qty_before,
                qty_after=lot.qty_available,
                qty_changed=changed,
                status_before=status_before.value,
                status_after=LotStatus(lot.status).value,
                inventory_event_id=event.id,
                user_id=actor.user_id,
                created_at=event.created_at,
                notes=request.notes,
            )
        )

    @staticmethod
    def _update_serials(session: Session, prepared: PreparedTxn, actor: ActorContext) -> None:
        request = prepared.request
        item_id = prepared.item.id
        rows = {
            row.serial_number: row
            for row in session.execute(
                select(SerialNumber)
                .where(
                    SerialNumber.tenant_id == actor.tenant_id,
                    SerialNumber.item_id == item_id,
                    SerialNumber.serial_number.in_(request.serial_numbers),
                )
                .with_for_update()
                .execution_options(populate_existing=True)
            ).scalars()
        }

        inbound = request.txn_type == TxnType.RECEIPT or (
            request.txn_type == TxnType.ADJUST and isinstance(request.direction, Increase)
        )
        for serial in sorted(request.serial_numbers):
            row = rows.get(serial)
            if inbound:
                if row is None:
                    session.add(
                        SerialNumber(
                            tenant_id=actor.tenant_id,
                            item_id=item_id,
                            serial_number=serial,
                            lot_id=request.lot_id,
                            location_id=request.to_location_id,
                            status=SerialStatus.AVAILABLE.value,
                        )
                    )
                    continue
                if SerialStatus(row.status) == SerialStatus.AVAILABLE:
                    raise SerialNumberError(str(item_id), f"serial {serial} is already in stock")
                row.status = SerialStatus.AVAILABLE.value
                row.location_id = request.to_location_id
                row.lot_id = request.lot_id
                continue

            if (
                row is None
                or SerialStatus(row.status) != SerialStatus.AVAILABLE
                or row.location_id != request.from_location_id
            ):
                raise SerialNumberError(
                    str(item_id), f"serial {serial} is not available at the source location"
                )
            if request.lot_id is not None and row.lot_id != request.lot_id:
                raise SerialNumberError(str(item_id), f"serial {serial} is not in lot {request.lot_id}")

            match request.txn_type:
                case TxnType.ISSUE:
                    row.status = SerialStatus.ISSUED.value
                case TxnType.ADJUST:
                    row.status = SerialStatus.SCRAPPED.value
                case TxnType.MOVE | TxnType.TRANSFER:
                    row.location_id = request.to_location_id


def apply_inventory_txn(
    session_factory: sessionmaker[Session],
    request: InventoryTxnRequest,
    actor: ActorContext,
    settings: TenantInventorySettings | None = None,
    clock: Clock | None = None,
) -> InventoryEventRecord:
    """Convenience wrapper: apply one transaction with a throwaway engine."""
    return TransactionEngine(session_factory, clock=clock).apply(request, actor, settings)


__all__ = [
    "PreparedTxn",
    "TransactionEngine",
    "apply_inventory_txn",
    "lock_lot",
]
