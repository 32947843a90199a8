"""
Module: inventory_engines.allocation
Responsibility:
    Resolve an outbound demand quantity into (lot, location, quantity) lines
    under FIFO, LIFO or FEFO, by ordering supply candidates and consuming
    them greedily.

Architecture position:
    Engines -- pure calculation layer, zero I/O.  The kernel's
    AllocationService gathers candidates (lots, untracked balance remainder,
    serial numbers) and calls AllocationEngine.allocate().

Invariants enforced:
    - The returned lines sum exactly to the requested quantity, or the call
      raises InsufficientSupplyError carrying the partial lines.
    - FIFO: receipt timestamp ascending; LIFO: descending; FEFO: expiration
      ascending with no-expiry candidates last.  Candidates without the sort
      key go last under every strategy.
    - Ties break by location_id, then lot number (lot-less last), so results
      are deterministic.
    - Advisory only: allocation never mutates supply.

Failure modes:
    - InvalidQuantityError for non-positive quantities, or a non-integral
      quantity under serial tracking.
    - InsufficientSupplyError when supply runs out.

Usage:
    engine = AllocationEngine()
    plan = engine.allocate(
        item_id=item_id,
        site_id=site_id,
        quantity=Decimal("120"),
        strategy=AllocationStrategy.FIFO,
        candidates=candidates,
    )
"""

from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass, field
from datetime import date, datetime
from decimal import Decimal
from uuid import UUID

from inventory_engines.tracer import traced_engine
from inventory_kernel.domain.settings import AllocationStrategy
from inventory_kernel.exceptions import InsufficientSupplyError, InvalidQuantityError
from inventory_kernel.logging_config import get_logger

logger = get_logger("engines.allocation")


@dataclass(frozen=True, slots=True)
class SupplyCandidate:
    """
    One source of available stock.

    Contract:
        ``lot_id`` is None for untracked stock (the part of a balance not
        attributed to any lot).  ``serial_numbers`` is populated only for
        serial-tracked candidates and then ``available`` equals its length.
    """

    location_id: UUID
    available: Decimal
    lot_id: UUID | None = None
    lot_number: str | None = None
    received_at: datetime | None = None
    expiration_date: date | None = None
    serial_numbers: tuple[str, ...] = ()


@dataclass(frozen=True, slots=True)
class AllocationLine:
    """Quantity to take from one candidate."""

    lot_id: UUID | None
    location_id: UUID
    quantity: Decimal
    lot_number: str | None = None
    serial_numbers: tuple[str, ...] = ()


@dataclass(frozen=True)
class AllocationPlan:
    """
    Complete allocation result.

    Guarantees:
        - ``total_allocated == requested``.
    """

    item_id: UUID
    site_id: UUID
    strategy: AllocationStrategy
    requested: Decimal
    lines: tuple[AllocationLine, ...] = field(default_factory=tuple)

    @property
    def total_allocated(self) -> Decimal:
        return sum((line.quantity for line in self.lines), Decimal("0"))


def _tiebreak(candidate: SupplyCandidate) -> tuple:
    return (
        str(candidate.location_id),
        candidate.lot_number is None,
        candidate.lot_number or "",
    )


def order_candidates(
    candidates: Sequence[SupplyCandidate],
    strategy: AllocationStrategy,
) -> list[SupplyCandidate]:
    """
    Order candidates for greedy consumption.

    Sorting is done in two stable passes: tiebreak first, then the primary
    key, so equal primary keys keep tiebreak order under both directions.
    """
    ordered = sorted(candidates, key=_tiebreak)

    match AllocationStrategy(strategy):
        case AllocationStrategy.FIFO | AllocationStrategy.LIFO:
            keyed = [c for c in ordered if c.received_at is not None]
            unkeyed = [c for c in ordered if c.received_at is None]
            keyed.sort(
                key=lambda c: c.received_at,
                reverse=strategy == AllocationStrategy.LIFO,
            )
        case AllocationStrategy.FEFO:
            keyed = [c for c in ordered if c.expiration_date is not None]
            unkeyed = [c for c in ordered if c.expiration_date is None]
            keyed.sort(key=lambda c: c.expiration_date)
        case _:
            raise ValueError(f"Unknown allocation strategy: {strategy}")

    return keyed + unkeyed


class AllocationEngine:
    """
    Greedy allocator over ordered supply candidates.

    Contract:
        Pure and deterministic: identical candidates and parameters always
        yield identical lines.
    Non-goals:
        - Does not read storage or reserve stock; execution re-validates
          every line at write time.
    """

    @traced_engine("allocation", "1.0", fingerprint_fields=("quantity", "strategy"))
    def allocate(
        self,
        *,
        item_id: UUID,
        site_id: UUID,
        quantity: Decimal,
        strategy: AllocationStrategy,
        candidates: Sequence[SupplyCandidate],
        require_lot_tracking: bool = False,
        require_serial_tracking: bool = False,
    ) -> AllocationPlan:
        """
        Allocate ``quantity`` across candidates.

        Raises:
            InvalidQuantityError: quantity not positive, or not integral under
                serial tracking.
            InsufficientSupplyError: supply cannot cover quantity.
        """
        if not quantity.is_finite() or quantity <= 0:
            raise InvalidQuantityError(quantity)
        if require_serial_tracking and quantity != quantity.to_integral_value():
            raise InvalidQuantityError(
                quantity, "serial-tracked quantities must be whole units"
            )

        eligible = [
            c
            for c in candidates
            if c.available > 0
            and not (require_lot_tracking and c.lot_id is None)
            and not (require_serial_tracking and not c.serial_numbers)
        ]

        remaining = quantity
        lines: list[AllocationLine] = []
        for candidate in order_candidates(eligible, strategy):
            if remaining <= 0:
                break
            take = min(candidate.available, remaining)
            serials: tuple[str, ...] = ()
            if require_serial_tracking:
                serials = tuple(sorted(candidate.serial_numbers))[: int(take)]
            lines.append(
                AllocationLine(
                    lot_id=candidate.lot_id,
                    location_id=candidate.location_id,
                    quantity=take,
                    lot_number=candidate.lot_number,
                    serial_numbers=serials,
                )
            )
            remaining -= take

        if remaining > 0:
            allocated = quantity - remaining
            logger.info(
                "allocation_insufficient_supply",
                extra={
                    "item_id": str(item_id),
                    "site_id": str(site_id),
                    "requested": str(quantity),
                    "allocated": str(allocated),
                    "strategy": AllocationStrategy(strategy).value,
                },
            )
            raise InsufficientSupplyError(
                item_id=str(item_id),
                site_id=str(site_id),
                requested=quantity,
                available=allocated,
                partial_lines=tuple(lines),
            )

        return AllocationPlan(
            item_id=item_id,
            site_id=site_id,
            strategy=AllocationStrategy(strategy),
            requested=quantity,
            lines=tuple(lines),
        )
