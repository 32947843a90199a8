"""
Typed Exception Hierarchy for the Inventory Kernel.

===============================================================================
WHY TYPED EXCEPTIONS
===============================================================================

HTTP handlers sitting on top of the kernel translate errors into status codes
and JSON bodies. They must never parse message strings to do so:

    try:
        engine.apply(request, actor, settings)
    except InsufficientBalanceError as e:
        return {"error": e.code, "available": e.available, "requested": e.requested}

Every exception:
  1. Has a TYPED class (catch by type, not message)
  2. Has a CODE class attribute (machine-readable, API-safe)
  3. Carries structured DATA as attributes
  4. Declares whether it is RETRYABLE

===============================================================================
EXCEPTION HIERARCHY
===============================================================================

    InventoryKernelError (base)
    |
    +-- ValidationError                     never retried, surfaced verbatim
    |   +-- InvalidTransactionError
    |   +-- InvalidQuantityError
    |   +-- InvalidUomError
    |   +-- InsufficientBalanceError
    |   +-- InsufficientSupplyError
    |   +-- MissingReasonCodeError
    |   +-- InvalidReasonCodeError
    |   +-- LotNotAvailableError
    |   +-- SerialNumberError
    |
    +-- NotFoundError                       fatal for the request
    |   +-- ItemNotFoundError
    |   +-- LocationNotFoundError
    |   +-- SiteNotFoundError
    |   +-- LotNotFoundError
    |   +-- ReasonCodeNotFoundError
    |   +-- CycleCountNotFoundError
    |   +-- CycleCountLineNotFoundError
    |
    +-- AuthorizationError                  fatal for the request
    |   +-- TenantMismatchError
    |   +-- SiteAccessDeniedError
    |
    +-- StateError
    |   +-- InvalidStateTransitionError
    |
    +-- ConsistencyError
    |   +-- StorageConflictError            retried by the engine
    |
    +-- ImmutabilityError
    |   +-- ImmutabilityViolationError
    |
    +-- ConfigurationError

===============================================================================
ERROR CODES - QUICK REFERENCE
===============================================================================

Category      | Code                       | HTTP | When Raised
--------------|----------------------------|------|------------------------------------
Validation    | INVALID_TRANSACTION        | 400  | Locations missing/extra/equal, bad shape
              | INVALID_QUANTITY           | 400  | Quantity <= 0 or not integral for serials
              | INVALID_UOM                | 400  | No conversion path to base UOM
              | INSUFFICIENT_BALANCE       | 400  | Decrease would drive balance negative
              | INSUFFICIENT_SUPPLY        | 207  | Allocation short (partial lines attached)
              | MISSING_REASON_CODE        | 400  | ADJUST DECREASE / lot hold without reason
              | INVALID_REASON_CODE        | 400  | Reason code inactive
              | LOT_NOT_AVAILABLE          | 400  | Lot quarantined/expired/consumed/elsewhere
              | SERIAL_NUMBER_INVALID      | 400  | Serial list does not match the movement
--------------|----------------------------|------|------------------------------------
Not found     | ITEM_NOT_FOUND ...         | 404  | Referenced row absent
--------------|----------------------------|------|------------------------------------
Authorization | TENANT_MISMATCH            | 404  | Cross-tenant access (existence hidden)
              | SITE_ACCESS_DENIED         | 403  | Actor lacks the site
--------------|----------------------------|------|------------------------------------
State         | INVALID_STATE_TRANSITION   | 409  | Lot / count state machine violation
--------------|----------------------------|------|------------------------------------
Consistency   | STORAGE_CONFLICT           | 500  | Contention persisted after retries
--------------|----------------------------|------|------------------------------------
Immutability  | IMMUTABILITY_VIOLATION     | 500  | Ledger/history row update or delete

===============================================================================
DESIGN DECISIONS
===============================================================================

1. Messages are written for humans and never embed driver or SQL text.
   StorageConflictError keeps the driver exception only as ``__cause__``.

2. ``http_status`` lives on the class so handlers need a single lookup
   (``http_status_for``); InsufficientSupplyError overrides it per instance
   because a partial allocation is a 207, an empty one a 400.
"""

from __future__ import annotations

from decimal import Decimal
from typing import Any


class InventoryKernelError(Exception):
    """
    Base exception for all inventory kernel errors.

    All subclasses define a ``code`` class attribute for machine-readable
    error identification.
    """

    code: str = "INVENTORY_KERNEL_ERROR"
    http_status: int = 500
    retryable: bool = False


# Validation errors


class ValidationError(InventoryKernelError):
    """Caller input is invalid or violates a business invariant."""

    code: str = "VALIDATION_ERROR"
    http_status: int = 400


class InvalidTransactionError(ValidationError):
    """Transaction shape is invalid for its type."""

    code: str = "INVALID_TRANSACTION"

    def __init__(self, txn_type: str, reason: str):
        self.txn_type = txn_type
        self.reason = reason
        super().__init__(f"Invalid {txn_type} transaction: {reason}")


class InvalidQuantityError(ValidationError):
    """Quantity is not positive (or not integral where it must be)."""

    code: str = "INVALID_QUANTITY"

    def __init__(self, quantity: Decimal | str, reason: str = "must be positive"):
        self.quantity = str(quantity)
        self.reason = reason
        super().__init__(f"Invalid quantity {quantity}: {reason}")


class InvalidUomError(ValidationError):
    """No conversion path exists between the entered UOM and the base UOM."""

    code: str = "INVALID_UOM"

    def __init__(self, item_id: str, uom: str, base_uom: str):
        self.item_id = item_id
        self.uom = uom
        self.base_uom = base_uom
        super().__init__(
            f"No conversion from {uom} to base unit {base_uom} for item {item_id}"
        )


class InsufficientBalanceError(ValidationError):
    """A decrease would drive the on-hand balance below zero."""

    code: str = "INSUFFICIENT_BALANCE"

    def __init__(
        self,
        item_id: str,
        location_id: str,
        available: Decimal,
        requested: Decimal,
    ):
        self.item_id = item_id
        self.location_id = location_id
        self.available = available
        self.requested = requested
        super().__init__(
            f"Insufficient balance for item {item_id} at location {location_id}: "
            f"available {available}, requested {requested}"
        )


class InsufficientSupplyError(ValidationError):
    """
    Allocation could not cover the requested quantity.

    The partial allocation computed before supply ran out is attached as
    ``partial_lines`` so callers can offer a partial fulfillment.
    """

    code: str = "INSUFFICIENT_SUPPLY"

    def __init__(
        self,
        item_id: str,
        site_id: str,
        requested: Decimal,
        available: Decimal,
        partial_lines: tuple[Any, ...] = (),
    ):
        self.item_id = item_id
        self.site_id = site_id
        self.requested = requested
        self.available = available
        self.shortfall = requested - available
        self.partial_lines = tuple(partial_lines)
        self.http_status = 207 if self.partial_lines else 400
        super().__init__(
            f"Insufficient supply for item {item_id} at site {site_id}: "
            f"requested {requested}, available {available}, short by {self.shortfall}"
        )


class MissingReasonCodeError(ValidationError):
    """A reason code is required for this operation."""

    code: str = "MISSING_REASON_CODE"

    def __init__(self, operation: str):
        self.operation = operation
        super().__init__(f"A reason code is required for {operation}")


class InvalidReasonCodeError(ValidationError):
    """Reason code exists but cannot be used."""

    code: str = "INVALID_REASON_CODE"

    def __init__(self, reason_code_id: str, reason: str):
        self.reason_code_id = reason_code_id
        self.reason = reason
        super().__init__(f"Reason code {reason_code_id} cannot be used: {reason}")


class LotNotAvailableError(ValidationError):
    """Lot cannot take part in the requested movement."""

    code: str = "LOT_NOT_AVAILABLE"

    def __init__(self, lot_id: str, reason: str):
        self.lot_id = lot_id
        self.reason = reason
        super().__init__(f"Lot {lot_id} not available: {reason}")


class SerialNumberError(ValidationError):
    """Serial numbers supplied do not match the movement."""

    code: str = "SERIAL_NUMBER_INVALID"

    def __init__(self, item_id: str, reason: str):
        self.item_id = item_id
        self.reason = reason
        super().__init__(f"Serial numbers invalid for item {item_id}: {reason}")


# Not-found errors


class NotFoundError(InventoryKernelError):
    """Base exception for missing resources."""

    code: str = "NOT_FOUND"
    http_status: int = 404

    entity_type: str = "Resource"

    def __init__(self, entity_id: str):
        self.entity_id = str(entity_id)
        super().__init__(f"{self.entity_type} not found: {entity_id}")


class ItemNotFoundError(NotFoundError):
    code: str = "ITEM_NOT_FOUND"
    entity_type = "Item"


class LocationNotFoundError(NotFoundError):
    code: str = "LOCATION_NOT_FOUND"
    entity_type = "Location"


class SiteNotFoundError(NotFoundError):
    code: str = "SITE_NOT_FOUND"
    entity_type = "Site"


class LotNotFoundError(NotFoundError):
    code: str = "LOT_NOT_FOUND"
    entity_type = "Lot"


class ReasonCodeNotFoundError(NotFoundError):
    code: str = "REASON_CODE_NOT_FOUND"
    entity_type = "Reason code"


class CycleCountNotFoundError(NotFoundError):
    code: str = "CYCLE_COUNT_NOT_FOUND"
    entity_type = "Cycle count"


class CycleCountLineNotFoundError(NotFoundError):
    code: str = "CYCLE_COUNT_LINE_NOT_FOUND"
    entity_type = "Cycle count line"


# Authorization errors


class AuthorizationError(InventoryKernelError):
    """Base exception for tenant/site access violations."""

    code: str = "AUTHORIZATION_ERROR"
    http_status: int = 403


class TenantMismatchError(AuthorizationError):
    """
    Actor tried to touch a resource owned by another tenant.

    Mapped to 404 so the existence of other tenants' rows is not revealed.
    """

    code: str = "TENANT_MISMATCH"
    http_status: int = 404

    def __init__(self, entity_type: str, entity_id: str):
        self.entity_type = entity_type
        self.entity_id = str(entity_id)
        super().__init__(f"{entity_type} not found: {entity_id}")


class SiteAccessDeniedError(AuthorizationError):
    """Actor is not a member of the site."""

    code: str = "SITE_ACCESS_DENIED"

    def __init__(self, site_id: str, user_id: str):
        self.site_id = str(site_id)
        self.user_id = str(user_id)
        super().__init__(f"User {user_id} has no access to site {site_id}")


# State machine errors


class StateError(InventoryKernelError):
    """Base exception for lifecycle violations."""

    code: str = "STATE_ERROR"
    http_status: int = 409


class InvalidStateTransitionError(StateError):
    """Requested transition is not permitted from the current state."""

    code: str = "INVALID_STATE_TRANSITION"

    def __init__(self, entity_type: str, entity_id: str, from_state: str, to_state: str):
        self.entity_type = entity_type
        self.entity_id = str(entity_id)
        self.from_state = from_state
        self.to_state = to_state
        super().__init__(
            f"{entity_type} {entity_id} cannot transition from {from_state} to {to_state}"
        )


# Consistency errors


class ConsistencyError(InventoryKernelError):
    """Base exception for concurrent-modification problems."""

    code: str = "CONSISTENCY_ERROR"


class StorageConflictError(ConsistencyError):
    """
    Concurrent modification detected during the atomic write.

    Raised internally on each conflicting attempt; surfaced to callers only
    when the bounded retry budget is exhausted.
    """

    code: str = "STORAGE_CONFLICT"
    retryable: bool = True

    def __init__(self, operation: str, attempts: int = 1):
        self.operation = operation
        self.attempts = attempts
        super().__init__(
            f"Concurrent modification during {operation} "
            f"(attempts: {attempts}); please retry"
        )


# Immutability errors


class ImmutabilityError(InventoryKernelError):
    """Base exception for immutability violations."""

    code: str = "IMMUTABILITY_ERROR"


class ImmutabilityViolationError(ImmutabilityError):
    """Attempted to modify or delete an append-only record."""

    code: str = "IMMUTABILITY_VIOLATION"

    def __init__(self, entity_type: str, entity_id: str, reason: str):
        self.entity_type = entity_type
        self.entity_id = str(entity_id)
        self.reason = reason
        super().__init__(
            f"Immutability violation on {entity_type} {entity_id}: {reason}"
        )


class ConfigurationError(InventoryKernelError):
    """Tenant configuration is invalid."""

    code: str = "CONFIGURATION_ERROR"

    def __init__(self, field: str, reason: str):
        self.field = field
        self.reason = reason
        super().__init__(f"Invalid configuration for '{field}': {reason}")


# Handler helpers


def http_status_for(exc: BaseException) -> int:
    """HTTP status a handler should use for ``exc`` (500 for unknown errors)."""
    if isinstance(exc, InventoryKernelError):
        return exc.http_status
    return 500


def error_payload(exc: BaseException) -> dict[str, Any]:
    """Stable JSON body for an error. Unknown errors expose no internals."""
    if isinstance(exc, InventoryKernelError):
        return {
            "code": exc.code,
            "message": str(exc),
            "retryable": exc.retryable,
        }
    return {
        "code": InventoryKernelError.code,
        "message": "Internal error",
        "retryable": False,
    }
