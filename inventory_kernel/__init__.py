"""
Inventory Kernel

An append-only inventory ledger with a materialized balance projection:
- Typed inventory transactions applied atomically
- Ledger/balance consistency under concurrent writers
- Lot and serial tracking with FIFO/LIFO/FEFO allocation
- Base unit-of-measure normalization
- Reason-coded, actor-stamped audit trail
"""

__version__ = "0.1.0"
