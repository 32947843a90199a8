"""Services for the inventory kernel (write side)."""

from inventory_kernel.services.allocation_service import AllocationService
from inventory_kernel.services.atomic import is_storage_conflict, run_atomic
from inventory_kernel.services.audit_annotator import AuditAnnotator
from inventory_kernel.services.balance_store import BalanceStore
from inventory_kernel.services.cache import BalanceCache, default_balance_cache
from inventory_kernel.services.cycle_count_service import CycleCountService
from inventory_kernel.services.event_ledger import EventLedger, LedgerFilter
from inventory_kernel.services.lot_service import ExpiryRunResult, LotReceipt, LotService
from inventory_kernel.services.transaction_engine import (
    TransactionEngine,
    apply_inventory_txn,
)
from inventory_kernel.services.uom_service import UomService

__all__ = [
    "AllocationService",
    "AuditAnnotator",
    "BalanceCache",
    "BalanceStore",
    "CycleCountService",
    "EventLedger",
    "ExpiryRunResult",
    "LedgerFilter",
    "LotReceipt",
    "LotService",
    "TransactionEngine",
    "UomService",
    "apply_inventory_txn",
    "default_balance_cache",
    "is_storage_conflict",
    "run_atomic",
]
