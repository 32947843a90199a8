"""
Module: inventory_kernel.selectors.base
Responsibility: Abstract base class for read-only query selectors.
Architecture position: Kernel > Selectors.  May import from models/,
    domain/dtos and the read helpers of services/.  Selectors NEVER create,
    modify, or delete data.

Invariants enforced:
    - Read-only access: no session.add(), delete(), flush() or commit().
    - DTO return convention: selectors return frozen records, never live
      ORM instances.
    - Session ownership: the caller owns the session and its scope.
"""

from abc import ABC

from sqlalchemy.orm import Session


class BaseSelector(ABC):
    """
    Abstract base class for all selectors.

    Contract:
        Selectors accept a Session from the caller, perform read-only
        queries, and return frozen records or computed results.
    """

    def __init__(self, session: Session):
        self.session = session
