"""
AllocationService -- Gather supply candidates and resolve an allocation.

Responsibility:
    Reads the supply of one item at one site (allocatable lots, the untracked
    remainder of each balance, or available serial numbers) and hands it to
    ``inventory_engines.allocation.AllocationEngine``.

Architecture position:
    Kernel > Services.  Read-only: never writes, never reserves.  Callers
    submit ISSUE or TRANSFER transactions per returned line, which the
    transaction engine re-validates at write time.

Invariants enforced:
    - Lot candidates are AVAILABLE, not QC-failed, not expired as of the
      allocation date, and have qty_available > 0.
    - Untracked remainder = balance - qty_available of every lot at that
      location (whatever the lot status), so stock held in quarantined or
      expired lots is never offered as lot-less supply.

Failure modes:
    - SiteNotFoundError, ItemNotFoundError, TenantMismatchError,
      SiteAccessDeniedError.
    - InsufficientSupplyError (with partial lines) from the engine.
"""

from __future__ import annotations

from collections import defaultdict
from collections.abc import Collection
from datetime import date
from decimal import Decimal
from uuid import UUID

from sqlalchemy import func, or_, select
from sqlalchemy.orm import Session

from inventory_engines.allocation import AllocationEngine, AllocationPlan, SupplyCandidate
from inventory_kernel.domain.actor import ActorContext
from inventory_kernel.domain.clock import Clock, SystemClock
from inventory_kernel.domain.lot_lifecycle import LotStatus, QcStatus, is_allocatable
from inventory_kernel.domain.settings import AllocationStrategy, TenantInventorySettings
from inventory_kernel.exceptions import SiteAccessDeniedError, SiteNotFoundError
from inventory_kernel.logging_config import get_logger
from inventory_kernel.models.balance import InventoryBalance
from inventory_kernel.models.location import Location, Site
from inventory_kernel.models.lot import Lot
from inventory_kernel.models.serial import SerialNumber, SerialStatus
from inventory_kernel.services.base import BaseService
from inventory_kernel.services.uom_service import UomService

logger = get_logger("services.allocation")


class AllocationService(BaseService):
    """
    Advisory allocation over committed supply.

    Contract:
        Unless overridden, the strategy is the tenant's default and lot /
        serial tracking requirements follow the item's own flags.
    """

    def __init__(
        self,
        session: Session,
        clock: Clock | None = None,
        engine: AllocationEngine | None = None,
    ):
        super().__init__(session)
        self._clock = clock or SystemClock()
        self._engine = engine or AllocationEngine()

    def allocate(
        self,
        actor: ActorContext,
        *,
        item_id: UUID,
        site_id: UUID,
        quantity: Decimal,
        uom: str | None = None,
        strategy: AllocationStrategy | str | None = None,
        require_lot_tracking: bool | None = None,
        require_serial_tracking: bool | None = None,
        settings: TenantInventorySettings | None = None,
        as_of: date | None = None,
        location_ids: Collection[UUID] | None = None,
    ) -> AllocationPlan:
        """
        Resolve ``quantity`` of an item at a site into allocation lines.

        Quantities in the returned plan are base units.  ``location_ids``
        restricts supply to those locations (e.g. a line-side WIP location).
        """
        settings = settings or TenantInventorySettings()
        self._check_site(actor, site_id)

        uom_service = UomService(self.session)
        item = uom_service.get_item(actor.tenant_id, item_id)
        qty_base = quantity
        if uom is not None:
            qty_base = uom_service.normalize(actor.tenant_id, item_id, quantity, uom)

        strategy = AllocationStrategy(strategy or settings.default_allocation_strategy)
        lot_required = item.lot_tracked if require_lot_tracking is None else require_lot_tracking
        serial_required = (
            item.serial_tracked if require_serial_tracking is None else require_serial_tracking
        )
        as_of = as_of or self._clock.today()

        if serial_required:
            candidates = self.serial_candidates(actor.tenant_id, item_id, site_id, as_of)
        else:
            candidates = self.lot_candidates(actor.tenant_id, item_id, site_id, as_of)
            candidates += self.untracked_candidates(actor.tenant_id, item_id, site_id)
        if location_ids is not None:
            allowed = set(location_ids)
            candidates = [c for c in candidates if c.location_id in allowed]

        logger.debug(
            "allocation_candidates_loaded",
            extra={
                "item_id": str(item_id),
                "site_id": str(site_id),
                "candidates": len(candidates),
                "strategy": strategy.value,
            },
        )

        return self._engine.allocate(
            item_id=item_id,
            site_id=site_id,
            quantity=qty_base,
            strategy=strategy,
            candidates=candidates,
            require_lot_tracking=lot_required,
            require_serial_tracking=serial_required,
        )

    def _check_site(self, actor: ActorContext, site_id: UUID) -> None:
        site = self.session.get(Site, site_id)
        if site is None:
            raise SiteNotFoundError(str(site_id))
        actor.require_tenant(site.tenant_id, "Site", site_id)
        if not actor.can_access_site(site_id):
            raise SiteAccessDeniedError(str(site_id), str(actor.user_id))

    # -------------------------------------------------------------------------
    # Candidate builders
    # -------------------------------------------------------------------------

    def lot_candidates(
        self, tenant_id: UUID, item_id: UUID, site_id: UUID, as_of: date
    ) -> list[SupplyCandidate]:
        lots = self.session.execute(
            select(Lot).where(
                Lot.tenant_id == tenant_id,
                Lot.item_id == item_id,
                Lot.site_id == site_id,
                Lot.status == LotStatus.AVAILABLE.value,
                Lot.qc_status != QcStatus.FAILED.value,
                Lot.qty_available > 0,
                or_(Lot.expiration_date.is_(None), Lot.expiration_date >= as_of),
            )
        ).scalars()
        return [
            SupplyCandidate(
                location_id=lot.location_id,
                available=lot.qty_available,
                lot_id=lot.id,
                lot_number=lot.lot_number,
                received_at=lot.received_at,
                expiration_date=lot.expiration_date,
            )
            for lot in lots
        ]

    def untracked_candidates(
        self, tenant_id: UUID, item_id: UUID, site_id: UUID
    ) -> list[SupplyCandidate]:
        lot_totals = dict(
            self.session.execute(
                select(Lot.location_id, func.sum(Lot.qty_available))
                .where(
                    Lot.tenant_id == tenant_id,
                    Lot.item_id == item_id,
                    Lot.site_id == site_id,
                )
                .group_by(Lot.location_id)
            ).all()
        )
        balances = self.session.execute(
            select(InventoryBalance).where(
                InventoryBalance.tenant_id == tenant_id,
                InventoryBalance.item_id == item_id,
                InventoryBalance.site_id == site_id,
            )
        ).scalars()

        candidates = []
        for balance in balances:
            in_lots = Decimal(str(lot_totals.get(balance.location_id) or 0))
            remainder = balance.qty_base - in_lots
            if remainder > 0:
                candidates.append(
                    SupplyCandidate(
                        location_id=balance.location_id,
                        available=remainder,
                        received_at=balance.first_receipt_at,
                    )
                )
        return candidates

    def serial_candidates(
        self, tenant_id: UUID, item_id: UUID, site_id: UUID, as_of: date
    ) -> list[SupplyCandidate]:
        rows = self.session.execute(
            select(SerialNumber)
            .join(Location, Location.id == SerialNumber.location_id)
            .where(
                SerialNumber.tenant_id == tenant_id,
                SerialNumber.item_id == item_id,
                SerialNumber.status == SerialStatus.AVAILABLE.value,
                Location.site_id == site_id,
            )
        ).scalars()

        groups: dict[tuple[UUID | None, UUID], list[str]] = defaultdict(list)
        for row in rows:
            groups[(row.lot_id, row.location_id)].append(row.serial_number)

        first_receipts = {
            balance.location_id: balance.first_receipt_at
            for balance in self.session.execute(
                select(InventoryBalance).where(
                    InventoryBalance.tenant_id == tenant_id,
                    InventoryBalance.item_id == item_id,
                    InventoryBalance.site_id == site_id,
                )
            ).scalars()
        }

        candidates = []
        for (lot_id, location_id), serials in groups.items():
            lot = self.session.get(Lot, lot_id) if lot_id is not None else None
            if lot is not None and (
                not is_allocatable(lot.status, lot.qc_status) or lot.is_expired(as_of)
            ):
                continue
            candidates.append(
                SupplyCandidate(
                    location_id=location_id,
                    available=Decimal(len(serials)),
                    lot_id=lot_id,
                    lot_number=lot.lot_number if lot is not None else None,
                    received_at=lot.received_at if lot is not None else first_receipts.get(location_id),
                    expiration_date=lot.expiration_date if lot is not None else None,
                    serial_numbers=tuple(sorted(serials)),
                )
            )
        return candidates
