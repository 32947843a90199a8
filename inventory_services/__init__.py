"""
inventory_services -- Bulk orchestration over the inventory kernel.

Responsibility:
    Multi-transaction operations (backflush of BOM components, bulk
    allocate-and-issue) that compose inventory_engines with the kernel
    TransactionEngine and report a per-unit BatchResult.

Architecture position:
    Services -- depends on inventory_kernel and inventory_engines; neither
    of those may import from this package.
"""

from inventory_services.backflush_service import PRODUCTION_ORDER_REFERENCE, BackflushService
from inventory_services.batch import BatchResult, BatchStatus, LineOutcome, LineStatus
from inventory_services.fulfillment_service import DemandLine, FulfillmentService

__all__ = [
    "PRODUCTION_ORDER_REFERENCE",
    "BackflushService",
    "BatchResult",
    "BatchStatus",
    "DemandLine",
    "FulfillmentService",
    "LineOutcome",
    "LineStatus",
]
