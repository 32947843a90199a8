"""
Module: inventory_kernel.db.types
Responsibility: Annotated type aliases and quantity helpers.  Centralizes
    precision and rounding so every model, engine and service uses identical
    quantity semantics.
Architecture position: Kernel > DB.  May be imported by models/, domain/,
    services/, selectors/ and inventory_engines.  MUST NOT import from any of
    those layers.

Invariants enforced:
    - Base quantities use Decimal with 9 decimal places, rounded HALF_UP.
      round_qty() is the ONLY sanctioned rounding function for quantities.
    - No floats anywhere in quantity arithmetic.
"""

from decimal import Decimal, InvalidOperation, ROUND_HALF_UP
from typing import Annotated

from sqlalchemy import Numeric, String

# Base-unit quantity: 38 digits total, 9 decimal places
Qty = Annotated[Decimal, Numeric(38, 9)]

# Conversion factor between two units of measure
Factor = Annotated[Decimal, Numeric(38, 18)]

# Unit of measure code ("EA", "KG", "FT")
UomCode = Annotated[str, String(20)]

# Short identifier strings
ShortCode = Annotated[str, String(50)]

# Long free text
LongText = Annotated[str, String(4000)]


QTY_DECIMAL_PLACES = 9
QTY_QUANTUM = Decimal(1).scaleb(-QTY_DECIMAL_PLACES)
DEFAULT_ROUNDING = ROUND_HALF_UP

# Relative tolerance for UOM round-trips (A -> base -> A)
QTY_TOLERANCE = Decimal("0.000001")


def to_decimal(value: Decimal | int | str) -> Decimal:
    """
    Coerce a quantity input to Decimal.

    Floats are rejected outright: they cannot represent most decimal
    quantities exactly.

    Raises:
        TypeError: If value is a float, bool or other non-quantity type.
        ValueError: If value does not parse as a finite decimal.
    """
    if isinstance(value, (bool, float)) or not isinstance(value, (Decimal, int, str)):
        raise TypeError(f"quantity must be Decimal, int or str, not {type(value).__name__}")
    if isinstance(value, Decimal):
        result = value
    else:
        try:
            result = Decimal(value)
        except InvalidOperation as exc:
            raise ValueError(f"not a decimal number: {value!r}") from exc
    if not result.is_finite():
        raise ValueError(f"quantity must be finite, not {value!r}")
    return result


def round_qty(value: Decimal) -> Decimal:
    """Round a base quantity to 9 decimal places, HALF_UP."""
    return value.quantize(QTY_QUANTUM, rounding=DEFAULT_ROUNDING)


def qty_close(a: Decimal, b: Decimal, tolerance: Decimal = QTY_TOLERANCE) -> bool:
    """True if a and b agree within a relative tolerance (absolute near zero)."""
    scale = max(abs(a), abs(b), Decimal(1))
    return abs(a - b) <= tolerance * scale
