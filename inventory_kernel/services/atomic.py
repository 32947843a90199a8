"""
Atomic write scope with bounded conflict retry.

Responsibility:
    ``run_atomic`` executes one unit of work inside a fresh ``session_scope``
    and retries it when the storage layer reports contention: a lost
    optimistic-lock race (StaleDataError), a unique-key race on a first
    insert, or a deadlock / serialization / locked-database failure.
    Every attempt starts from a new session, so balances are re-read.

Architecture position:
    Kernel > Services.  Used by TransactionEngine, LotService and
    CycleCountService.  Imports db.engine for session_scope.

Invariants enforced:
    - At most ``1 + max_retries`` attempts.
    - Backoff doubles per attempt: backoff, 2 x backoff, 4 x backoff ...
    - Anything that is not a storage conflict propagates unchanged on the
      first attempt (validation errors are never retried).

Failure modes:
    - StorageConflictError(operation, attempts) once retries are exhausted.
      The driver exception is kept only as ``__cause__``.
"""

from __future__ import annotations

import time
from collections.abc import Callable
from decimal import Decimal
from typing import TypeVar

from sqlalchemy.exc import IntegrityError, OperationalError
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.orm.exc import StaleDataError

from inventory_kernel.db.engine import session_scope
from inventory_kernel.exceptions import StorageConflictError
from inventory_kernel.logging_config import get_logger

logger = get_logger("services.atomic")

T = TypeVar("T")

_UNIQUE_VIOLATION = "23505"
_CONFLICT_PGCODES = frozenset({"40001", "40P01", "55P03"})
_CONFLICT_MESSAGES = ("database is locked", "deadlock", "could not serialize")


def _pgcode(exc: BaseException) -> str | None:
    orig = getattr(exc, "orig", None)
    return getattr(orig, "pgcode", None)


def is_storage_conflict(exc: BaseException) -> bool:
    """True if ``exc`` signals contention that a fresh attempt may resolve."""
    if isinstance(exc, (StaleDataError, StorageConflictError)):
        return True
    if isinstance(exc, IntegrityError):
        if _pgcode(exc) == _UNIQUE_VIOLATION:
            return True
        return "unique" in str(exc.orig).lower()
    if isinstance(exc, OperationalError):
        if _pgcode(exc) in _CONFLICT_PGCODES:
            return True
        message = str(exc.orig).lower()
        return any(fragment in message for fragment in _CONFLICT_MESSAGES)
    return False


def run_atomic(
    session_factory: sessionmaker[Session],
    work: Callable[[Session], T],
    *,
    operation: str,
    max_retries: int = 3,
    backoff_seconds: Decimal | float = Decimal("0.05"),
    sleep: Callable[[float], None] = time.sleep,
) -> T:
    """
    Run ``work(session)`` in its own committed scope, retrying on conflict.

    ``work`` must build any return value from ORM rows before it returns:
    the session is closed once the scope exits.

    Raises:
        StorageConflictError: contention persisted across every attempt.
        Exception: any non-conflict error raised by ``work``, unchanged.
    """
    attempts = 1 + max_retries
    backoff = float(backoff_seconds)

    for attempt in range(1, attempts + 1):
        try:
            with session_scope(session_factory) as session:
                return work(session)
        except (StaleDataError, IntegrityError, OperationalError, StorageConflictError) as exc:
            if not is_storage_conflict(exc):
                raise
            if attempt == attempts:
                logger.warning(
                    "storage_conflict_exhausted",
                    extra={"operation": operation, "attempts": attempts},
                )
                raise StorageConflictError(operation, attempts) from exc
            delay = backoff * (2 ** (attempt - 1))
            logger.info(
                "storage_conflict_retry",
                extra={
                    "operation": operation,
                    "attempt": attempt,
                    "max_attempts": attempts,
                    "delay_seconds": delay,
                    "error_type": type(exc).__name__,
                },
            )
            if delay > 0:
                sleep(delay)

    raise AssertionError("unreachable")  # pragma: no cover
