"""
BalanceCache -- In-process read-through cache for balance listings.

Responsibility:
    Holds recently read balance records for listing selectors.  The
    transaction engine invalidates touched keys after every commit.

Invariants enforced:
    - Never read by the transaction engine, the balance store or the
      allocation resolver.  Writes always act on committed rows.
    - Invalidation drops the (tenant, item, location) key and every cached
      site listing of that tenant.
"""

from __future__ import annotations

import threading
from uuid import UUID

from inventory_kernel.domain.dtos import BalanceRecord

BalanceKey = tuple[UUID, UUID, UUID]
ListingKey = tuple[UUID, UUID, UUID | None]


class BalanceCache:
    """Thread-safe dict cache keyed by (tenant, item, location)."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._balances: dict[BalanceKey, BalanceRecord | None] = {}
        self._listings: dict[ListingKey, tuple[BalanceRecord, ...]] = {}

    def get(self, key: BalanceKey) -> tuple[bool, BalanceRecord | None]:
        with self._lock:
            if key in self._balances:
                return True, self._balances[key]
            return False, None

    def put(self, key: BalanceKey, record: BalanceRecord | None) -> None:
        with self._lock:
            self._balances[key] = record

    def get_listing(self, key: ListingKey) -> tuple[BalanceRecord, ...] | None:
        with self._lock:
            return self._listings.get(key)

    def put_listing(self, key: ListingKey, records: tuple[BalanceRecord, ...]) -> None:
        with self._lock:
            self._listings[key] = records

    def invalidate(self, tenant_id: UUID, item_id: UUID, location_id: UUID) -> None:
        with self._lock:
            self._balances.pop((tenant_id, item_id, location_id), None)
            for listing_key in [k for k in self._listings if k[0] == tenant_id]:
                del self._listings[listing_key]

    def clear(self) -> None:
        with self._lock:
            self._balances.clear()
            self._listings.clear()

    def __len__(self) -> int:
        with self._lock:
            return len(self._balances) + len(self._listings)


default_balance_cache = BalanceCache()
