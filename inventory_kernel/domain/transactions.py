"""
Inventory transactions -- Typed requests and pure delta computation.

Responsibility:
    Defines the transaction vocabulary (TxnType, the Increase | Decrease
    adjust direction), the immutable InventoryTxnRequest accepted by the
    transaction engine, structural shape validation per type, and the pure
    mapping from a validated transaction to per-location balance deltas.

Architecture position:
    Kernel > Domain -- pure functional core, zero I/O.

Invariants enforced:
    - Ledger quantities are always positive; direction is carried by the
      transaction type plus from/to, never by sign.
    - MOVE/TRANSFER name two distinct locations; RECEIPT only a destination;
      ISSUE only a source; ADJUST exactly one location (destination for
      Increase, source for Decrease); COUNT exactly one location.
    - ADJUST Decrease always carries a reason code.

Failure modes:
    - InvalidQuantityError for non-positive quantities.
    - InvalidTransactionError for any shape violation.
    - MissingReasonCodeError for ADJUST Decrease without a reason code.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from decimal import Decimal
from enum import Enum
from typing import ClassVar
from uuid import UUID

from inventory_kernel.db.types import to_decimal
from inventory_kernel.exceptions import (
    InvalidQuantityError,
    InvalidTransactionError,
    MissingReasonCodeError,
)


def parse_quantity(value: Decimal | int | str) -> Decimal:
    """Coerce caller input to Decimal, raising InvalidQuantityError on bad input."""
    try:
        return to_decimal(value)
    except (TypeError, ValueError) as exc:
        raise InvalidQuantityError(str(value), str(exc)) from exc


class TxnType(str, Enum):
    """Kinds of inventory event recorded in the ledger."""

    RECEIPT = "RECEIPT"
    MOVE = "MOVE"
    TRANSFER = "TRANSFER"
    ISSUE = "ISSUE"
    ADJUST = "ADJUST"
    COUNT = "COUNT"


@dataclass(frozen=True, slots=True)
class Increase:
    """ADJUST direction: add stock at the destination location."""

    value: ClassVar[str] = "INCREASE"


@dataclass(frozen=True, slots=True)
class Decrease:
    """ADJUST direction: remove stock at the source location.  Needs a reason code."""

    value: ClassVar[str] = "DECREASE"


AdjustDirection = Increase | Decrease

INCREASE = Increase()
DECREASE = Decrease()


def direction_from_value(value: str | None) -> AdjustDirection | None:
    """Rebuild the tagged direction from its persisted string form."""
    match value:
        case None:
            return None
        case "INCREASE":
            return INCREASE
        case "DECREASE":
            return DECREASE
        case _:
            raise ValueError(f"Unknown adjust direction: {value}")


@dataclass(frozen=True, slots=True)
class InventoryTxnRequest:
    """
    One inventory transaction as submitted by a caller.

    Contract:
        Quantities are entered in any UOM with a path to the item's base UOM;
        the engine normalizes before touching balances.  ``serial_numbers``
        is required for serial-tracked items and must list exactly the
        quantity moved.
    """

    txn_type: TxnType
    item_id: UUID
    qty: Decimal
    uom: str
    from_location_id: UUID | None = None
    to_location_id: UUID | None = None
    direction: AdjustDirection | None = None
    reason_code_id: UUID | None = None
    reference_type: str | None = None
    reference_id: str | None = None
    lot_id: UUID | None = None
    serial_numbers: tuple[str, ...] = field(default_factory=tuple)
    workcell_id: UUID | None = None
    device_id: str | None = None
    notes: str | None = None

    def __post_init__(self) -> None:
        object.__setattr__(self, "txn_type", TxnType(self.txn_type))
        object.__setattr__(self, "qty", parse_quantity(self.qty))
        if not isinstance(self.serial_numbers, tuple):
            object.__setattr__(self, "serial_numbers", tuple(self.serial_numbers))

    @property
    def location_ids(self) -> tuple[UUID, ...]:
        return tuple(
            loc for loc in (self.from_location_id, self.to_location_id) if loc is not None
        )

    @property
    def is_issue_class(self) -> bool:
        """ISSUE and ADJUST Decrease consume stock (and lot quantity)."""
        return self.txn_type == TxnType.ISSUE or (
            self.txn_type == TxnType.ADJUST and isinstance(self.direction, Decrease)
        )


@dataclass(frozen=True, slots=True)
class BalanceDelta:
    """Signed base-quantity change at one location."""

    location_id: UUID
    delta: Decimal


def validate_shape(request: InventoryTxnRequest) -> None:
    """
    Check the structural shape of a transaction for its type.

    Runs before any storage access.

    Raises:
        InvalidQuantityError, InvalidTransactionError, MissingReasonCodeError.
    """
    if not request.qty.is_finite() or request.qty <= 0:
        raise InvalidQuantityError(request.qty)
    if not request.uom or not request.uom.strip():
        raise InvalidTransactionError(request.txn_type.value, "uom is required")

    src, dst = request.from_location_id, request.to_location_id
    kind = request.txn_type.value

    match request.txn_type:
        case TxnType.RECEIPT:
            if dst is None:
                raise InvalidTransactionError(kind, "to_location_id is required")
            if src is not None:
                raise InvalidTransactionError(kind, "from_location_id must be absent")
        case TxnType.ISSUE:
            if src is None:
                raise InvalidTransactionError(kind, "from_location_id is required")
            if dst is not None:
                raise InvalidTransactionError(kind, "to_location_id must be absent")
        case TxnType.MOVE | TxnType.TRANSFER:
            if src is None or dst is None:
                raise InvalidTransactionError(
                    kind, "from_location_id and to_location_id are required"
                )
            if src == dst:
                raise InvalidTransactionError(kind, "locations must be distinct")
        case TxnType.ADJUST:
            match request.direction:
                case Increase():
                    if dst is None or src is not None:
                        raise InvalidTransactionError(
                            kind, "INCREASE requires to_location_id only"
                        )
                case Decrease():
                    if src is None or dst is not None:
                        raise InvalidTransactionError(
                            kind, "DECREASE requires from_location_id only"
                        )
                    if request.reason_code_id is None:
                        raise MissingReasonCodeError("ADJUST DECREASE")
                case _:
                    raise InvalidTransactionError(kind, "direction is required")
        case TxnType.COUNT:
            if (src is None) == (dst is None):
                raise InvalidTransactionError(kind, "exactly one location is required")

    if request.direction is not None and request.txn_type not in (
        TxnType.ADJUST,
        TxnType.COUNT,
    ):
        raise InvalidTransactionError(kind, "direction applies to ADJUST only")


def compute_deltas(request: InventoryTxnRequest, qty_base: Decimal) -> tuple[BalanceDelta, ...]:
    """
    Map a shape-valid transaction to the balance deltas it implies.

    COUNT is informational and yields no deltas.
    """
    src, dst = request.from_location_id, request.to_location_id

    match request.txn_type:
        case TxnType.RECEIPT:
            return (BalanceDelta(dst, qty_base),)
        case TxnType.ISSUE:
            return (BalanceDelta(src, -qty_base),)
        case TxnType.MOVE | TxnType.TRANSFER:
            return (BalanceDelta(src, -qty_base), BalanceDelta(dst, qty_base))
        case TxnType.ADJUST:
            if isinstance(request.direction, Increase):
                return (BalanceDelta(dst, qty_base),)
            return (BalanceDelta(src, -qty_base),)
        case TxnType.COUNT:
            return ()
    raise InvalidTransactionError(str(request.txn_type), "unsupported transaction type")


def signed_delta(
    txn_type: TxnType | str,
    qty_base: Decimal,
    location_id: UUID,
    from_location_id: UUID | None,
    to_location_id: UUID | None,
) -> Decimal:
    """Signed effect of one ledger row on the balance at ``location_id``."""
    if TxnType(txn_type) == TxnType.COUNT:
        return Decimal("0")
    delta = Decimal("0")
    if to_location_id == location_id:
        delta += qty_base
    if from_location_id == location_id:
        delta -= qty_base
    return delta
