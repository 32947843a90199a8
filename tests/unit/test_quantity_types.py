"""Tests for quantity coercion and rounding (inventory_kernel.db.types)."""

from decimal import Decimal

import pytest

from inventory_kernel.db.types import QTY_QUANTUM, qty_close, round_qty, to_decimal


class TestToDecimal:
    def test_accepts_decimal_int_and_str(self):
        assert to_decimal(Decimal("1.5")) == Decimal("1.5")
        assert to_decimal(3) == Decimal("3")
        assert to_decimal("0.25") == Decimal("0.25")

    @pytest.mark.parametrize("value", [1.5, True, False])
    def test_rejects_float_and_bool(self, value):
        with pytest.raises(TypeError):
            to_decimal(value)

    @pytest.mark.parametrize("value", ["abc", "", "1.2.3", "NaN", "-Infinity"])
    def test_rejects_non_numeric_and_non_finite(self, value):
        with pytest.raises(ValueError):
            to_decimal(value)


class TestRoundQty:
    def test_nine_decimal_places(self):
        assert round_qty(Decimal("1") / Decimal("3")) == Decimal("0.333333333")
        assert QTY_QUANTUM == Decimal("0.000000001")

    def test_half_up(self):
        assert round_qty(Decimal("0.0000000005")) == Decimal("0.000000001")
        assert round_qty(Decimal("0.0000000004")) == Decimal("0")

    def test_qty_close_within_tolerance(self):
        assert qty_close(Decimal("12"), Decimal("12.0000000001"))
        assert not qty_close(Decimal("12"), Decimal("12.1"))
