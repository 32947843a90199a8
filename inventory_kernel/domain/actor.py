"""
Actor -- Acting user context and tenant/site authorization.

Responsibility:
    Carries the identity of the user performing a write (user, tenant, role,
    site memberships) and answers the tenant/site access questions every
    write path asks before touching the transaction engine.

Architecture position:
    Kernel > Domain -- pure, zero I/O.  Authentication and tenant resolution
    happen upstream; the kernel receives an already-resolved ActorContext.

Failure modes:
    - TenantMismatchError when a resource belongs to another tenant
      (surfaced as 404 so existence is not revealed).
    - SiteAccessDeniedError when the actor is not a member of the site.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from uuid import UUID

from inventory_kernel.exceptions import SiteAccessDeniedError, TenantMismatchError


class ActorRole(str, Enum):
    """Coarse role of the acting user."""

    ADMIN = "admin"
    SUPERVISOR = "supervisor"
    OPERATOR = "operator"
    VIEWER = "viewer"


@dataclass(frozen=True, slots=True)
class ActorContext:
    """
    Resolved identity of the user performing an operation.

    Contract:
        ADMIN actors may act on every site of their tenant; every other role
        is limited to ``site_ids``.  VIEWER actors may read but never write.
    """

    user_id: UUID
    tenant_id: UUID
    role: ActorRole = ActorRole.OPERATOR
    site_ids: frozenset[UUID] = field(default_factory=frozenset)

    def __post_init__(self) -> None:
        if not isinstance(self.site_ids, frozenset):
            object.__setattr__(self, "site_ids", frozenset(self.site_ids))

    def can_access_site(self, site_id: UUID) -> bool:
        if self.role == ActorRole.ADMIN:
            return True
        return site_id in self.site_ids

    def require_tenant(self, tenant_id: UUID, entity_type: str, entity_id: UUID) -> None:
        """Raise TenantMismatchError unless the entity belongs to the actor's tenant."""
        if tenant_id != self.tenant_id:
            raise TenantMismatchError(entity_type, str(entity_id))

    def require_site(self, site_id: UUID) -> None:
        """Raise SiteAccessDeniedError unless the actor may write at the site."""
        if self.role == ActorRole.VIEWER or not self.can_access_site(site_id):
            raise SiteAccessDeniedError(str(site_id), str(self.user_id))
