"""
Module: inventory_kernel.selectors.ledger_selector
Responsibility: Read-only ledger queries: filtered event listings, the
    per-pair event history, and a canonical hash of the ledger for tamper
    detection.
Architecture position: Kernel > Selectors.

Invariants enforced:
    - Ledger order is (created_at, id).
    - canonical_hash() is deterministic: the same ledger rows always give
      the same digest, whatever the query or dict ordering.
"""

from __future__ import annotations

import hashlib
import json
from uuid import UUID

from inventory_kernel.domain.dtos import InventoryEventRecord
from inventory_kernel.selectors.base import BaseSelector
from inventory_kernel.services.event_ledger import EventLedger, LedgerFilter


class LedgerSelector(BaseSelector):
    """Event ledger listings."""

    def list_events(self, filters: LedgerFilter) -> list[InventoryEventRecord]:
        events = EventLedger(self.session).list_events(filters)
        return [InventoryEventRecord.from_model(event) for event in events]

    def events_for(
        self, tenant_id: UUID, item_id: UUID, location_id: UUID
    ) -> list[InventoryEventRecord]:
        events = EventLedger(self.session).events_for(tenant_id, item_id, location_id)
        return [InventoryEventRecord.from_model(event) for event in events]

    def count(self, filters: LedgerFilter) -> int:
        return len(EventLedger(self.session).list_events(filters))

    def canonical_hash(self, tenant_id: UUID) -> str:
        """
        SHA-256 over every ledger row of the tenant in ledger order.

        Store the digest after a reconciliation; a later mismatch means a row
        was altered or removed outside the kernel.
        """
        hasher = hashlib.sha256()
        for event in EventLedger(self.session).list_events(LedgerFilter(tenant_id=tenant_id)):
            line = {
                "id": str(event.id),
                "event_type": str(event.event_type),
                "item_id": str(event.item_id),
                "from_location_id": str(event.from_location_id or ""),
                "to_location_id": str(event.to_location_id or ""),
                "qty_base": str(event.qty_base),
                "lot_id": str(event.lot_id or ""),
                "serial_numbers": list(event.serial_list),
                "created_at": event.created_at.isoformat(),
            }
            hasher.update(json.dumps(line, sort_keys=True, separators=(",", ":")).encode("utf-8"))
            hasher.update(b"\n")
        return hasher.hexdigest()

    def verify_canonical_hash(self, tenant_id: UUID, expected_hash: str) -> bool:
        return self.canonical_hash(tenant_id) == expected_hash
