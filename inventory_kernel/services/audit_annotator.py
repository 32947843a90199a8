"""
AuditAnnotator -- Reason code checks and audit stamping for ledger rows.

Responsibility:
    Enforces the reason-code requirement (ADJUST DECREASE, lot holds),
    validates reason codes against the tenant and their intended use, and
    stamps actor, correlation id, workcell, device and notes onto every
    ledger row before it is appended.

Architecture position:
    Kernel > Services.  Called by TransactionEngine (preflight and write)
    and LotService (quarantine).

Invariants enforced:
    - ADJUST DECREASE always carries an active, same-tenant reason code of
      type ADJUST or SCRAP.
    - correlation_id on a ledger row is the LogContext correlation id of the
      request that wrote it.

Failure modes:
    - MissingReasonCodeError, ReasonCodeNotFoundError, TenantMismatchError,
      InvalidReasonCodeError.
"""

from __future__ import annotations

from collections.abc import Iterable
from uuid import UUID

from inventory_kernel.domain.actor import ActorContext
from inventory_kernel.domain.transactions import Decrease, InventoryTxnRequest, TxnType
from inventory_kernel.exceptions import (
    InvalidReasonCodeError,
    MissingReasonCodeError,
    ReasonCodeNotFoundError,
    TenantMismatchError,
)
from inventory_kernel.logging_config import LogContext
from inventory_kernel.models.event import InventoryEvent
from inventory_kernel.models.reason_code import ReasonCode, ReasonType
from inventory_kernel.services.base import BaseService

ADJUST_REASON_TYPES = frozenset({ReasonType.ADJUST, ReasonType.SCRAP})
HOLD_REASON_TYPES = frozenset({ReasonType.HOLD})


class AuditAnnotator(BaseService):
    """Reason-code gatekeeper and audit stamper."""

    @staticmethod
    def enforce_reason_requirement(request: InventoryTxnRequest) -> None:
        if (
            request.txn_type == TxnType.ADJUST
            and isinstance(request.direction, Decrease)
            and request.reason_code_id is None
        ):
            raise MissingReasonCodeError("ADJUST DECREASE")

    def validate_reason_code(
        self,
        tenant_id: UUID,
        reason_code_id: UUID,
        allowed_types: Iterable[ReasonType] | None = None,
    ) -> ReasonCode:
        """
        Load a reason code and check it can be used here.

        Raises:
            ReasonCodeNotFoundError: no such code.
            TenantMismatchError: code belongs to another tenant.
            InvalidReasonCodeError: code inactive or of the wrong type.
        """
        reason = self.session.get(ReasonCode, reason_code_id)
        if reason is None:
            raise ReasonCodeNotFoundError(str(reason_code_id))
        if reason.tenant_id != tenant_id:
            raise TenantMismatchError("Reason code", str(reason_code_id))
        if not reason.is_active:
            raise InvalidReasonCodeError(str(reason_code_id), "reason code is inactive")
        if allowed_types is not None:
            allowed = frozenset(ReasonType(t) for t in allowed_types)
            if ReasonType(reason.reason_type) not in allowed:
                raise InvalidReasonCodeError(
                    str(reason_code_id),
                    f"type {ReasonType(reason.reason_type).value} not allowed here",
                )
        return reason

    def validate_request(self, tenant_id: UUID, request: InventoryTxnRequest) -> None:
        """Reason-code checks for one transaction request."""
        self.enforce_reason_requirement(request)
        if request.reason_code_id is None:
            return
        allowed = None
        if request.txn_type == TxnType.ADJUST and isinstance(request.direction, Decrease):
            allowed = ADJUST_REASON_TYPES
        self.validate_reason_code(tenant_id, request.reason_code_id, allowed)

    @staticmethod
    def stamp(
        event: InventoryEvent, actor: ActorContext, request: InventoryTxnRequest
    ) -> InventoryEvent:
        event.created_by_user_id = actor.user_id
        event.correlation_id = LogContext.get("correlation_id")
        event.workcell_id = request.workcell_id
        event.device_id = request.device_id
        event.notes = request.notes
        return event
