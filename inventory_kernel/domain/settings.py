"""
Tenant inventory settings (``inventory_kernel.domain.settings``).

Responsibility
--------------
Frozen dataclass carrying every per-tenant knob the transaction engine and
the lot / allocation services read.  ``inventory_config`` builds it from
YAML; the kernel only receives it.  Settings are passed explicitly into
each call, never looked up from global state.

Invariants enforced
-------------------
* Every field is validated at construction; invalid values raise
  ``ConfigurationError`` naming the offending field.
* Instances are immutable and hashable.
"""

from __future__ import annotations

from dataclasses import asdict, dataclass
from decimal import Decimal
from enum import Enum
from typing import Any

from inventory_kernel.exceptions import ConfigurationError


class AllocationStrategy(str, Enum):
    """Lot selection policy for outbound demand."""

    FIFO = "FIFO"  # Oldest receipt first
    LIFO = "LIFO"  # Newest receipt first
    FEFO = "FEFO"  # Earliest expiration first


@dataclass(frozen=True)
class TenantInventorySettings:
    """
    Per-tenant inventory behaviour.

    Field defaults are the conservative choice: negative stock refused,
    FIFO issue, three write retries.
    """

    allow_negative_inventory: bool = False
    default_allocation_strategy: AllocationStrategy = AllocationStrategy.FIFO
    max_write_retries: int = 3
    retry_backoff_seconds: Decimal = Decimal("0.05")
    quarantine_received_lots: bool = False
    expiring_soon_days: int = 30
    require_reason_for_lot_hold: bool = True

    def __post_init__(self) -> None:
        for name in (
            "allow_negative_inventory",
            "quarantine_received_lots",
            "require_reason_for_lot_hold",
        ):
            if not isinstance(getattr(self, name), bool):
                raise ConfigurationError(name, "must be true or false")

        strategy = self.default_allocation_strategy
        try:
            if not isinstance(strategy, AllocationStrategy):
                strategy = AllocationStrategy(str(strategy).strip().upper())
        except ValueError as exc:
            raise ConfigurationError(
                "default_allocation_strategy",
                f"must be one of {[s.value for s in AllocationStrategy]}",
            ) from exc
        object.__setattr__(self, "default_allocation_strategy", strategy)

        if isinstance(self.max_write_retries, bool) or not isinstance(self.max_write_retries, int):
            raise ConfigurationError("max_write_retries", "must be an integer")
        if not 0 <= self.max_write_retries <= 10:
            raise ConfigurationError("max_write_retries", "must be between 0 and 10")

        try:
            backoff = Decimal(str(self.retry_backoff_seconds))
        except ArithmeticError as exc:
            raise ConfigurationError("retry_backoff_seconds", "must be a number") from exc
        if not backoff.is_finite() or backoff < 0:
            raise ConfigurationError("retry_backoff_seconds", "must be zero or positive")
        object.__setattr__(self, "retry_backoff_seconds", backoff)

        if isinstance(self.expiring_soon_days, bool) or not isinstance(self.expiring_soon_days, int):
            raise ConfigurationError("expiring_soon_days", "must be an integer")
        if self.expiring_soon_days < 0:
            raise ConfigurationError("expiring_soon_days", "cannot be negative")

    @classmethod
    def field_names(cls) -> frozenset[str]:
        return frozenset(cls.__dataclass_fields__)

    def to_dict(self) -> dict[str, Any]:
        data = asdict(self)
        data["default_allocation_strategy"] = self.default_allocation_strategy.value
        data["retry_backoff_seconds"] = str(self.retry_backoff_seconds)
        return data
