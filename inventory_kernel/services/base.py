"""
BaseService -- abstract base for session-bound kernel services.

Responsibility:
    Common constructor and session-handling contract for every service that
    works inside a caller's transaction.  Subclasses use ``session.flush()``,
    never ``session.commit()``.

Architecture position:
    Kernel > Services -- imperative shell infrastructure.

Invariants enforced:
    - Transaction boundaries belong to the caller.  The only components
      that open and commit scopes are the transaction engine (through
      ``run_atomic``) and the lot / cycle count services built on it.

Failure modes:
    - A subclass that commits breaks the all-or-nothing write of ledger row,
      balance rows and lot side effects.
"""

from abc import ABC

from sqlalchemy.orm import Session


class BaseService(ABC):
    """
    Abstract base class for flush-only kernel services.

    Contract:
        Accepts a SQLAlchemy ``Session`` from the caller and persists changes
        with ``session.flush()`` inside the active transaction.

    Non-goals:
        - Does NOT manage transaction lifecycle (commit/rollback).
        - Does NOT provide read-only listing; that belongs in selectors/.
    """

    def __init__(self, session: Session):
        self.session = session
