"""Monetary rounding and minor-unit storage helpers."""

from decimal import Decimal

import pytest

from ledger_kernel.db.types import (
    ZERO,
    MinorUnits,
    money_from_int,
    round_money,
    to_decimal,
)
from ledger_kernel.domain.dtos import LineSpec


class TestRoundMoney:
    def test_half_up_at_two_places(self):
        assert round_money(Decimal("10.005")) == Decimal("10.01")
        assert round_money(Decimal("10.004")) == Decimal("10.00")

    def test_negative_half_rounds_away_from_zero(self):
        assert round_money(Decimal("-2.345")) == Decimal("-2.35")

    def test_accepts_strings_and_ints(self):
        assert round_money("12.3") == Decimal("12.30")
        assert round_money(7) == Decimal("7.00")

    def test_rate_precision(self):
        assert round_money(Decimal("15.12345"), 4) == Decimal("15.1235")

    def test_zero_constant_has_two_places(self):
        assert ZERO == Decimal("0")
        assert ZERO.as_tuple().exponent == -2


class TestToDecimal:
    def test_float_goes_through_repr(self):
        assert to_decimal(0.1) == Decimal("0.1")

    def test_garbage_raises_value_error(self):
        with pytest.raises(ValueError):
            to_decimal("ten dollars")


class TestMinorUnits:
    def test_money_from_int(self):
        assert money_from_int(1050) == Decimal("10.50")
        assert money_from_int(-1) == Decimal("-0.01")

    def test_bind_and_result_round_trip_through_cents(self):
        column_type = MinorUnits()
        stored = column_type.process_bind_param(Decimal("1150.00"), None)
        assert stored == 115000
        assert column_type.process_result_value(stored, None) == Decimal("1150.00")

    def test_bind_rounds_sub_cent_input(self):
        assert MinorUnits().process_bind_param(Decimal("0.125"), None) == 13

    def test_none_passes_through(self):
        column_type = MinorUnits()
        assert column_type.process_bind_param(None, None) is None
        assert column_type.process_result_value(None, None) is None


class TestLineSpec:
    def test_amounts_keep_given_precision(self):
        line = LineSpec("1000", debit="99.999")
        assert line.debit == Decimal("99.999")
        assert line.credit == ZERO

    def test_dr_and_cr_helpers(self):
        assert LineSpec.dr("1000", Decimal("5")).debit == Decimal("5.00")
        assert LineSpec.cr("4000", Decimal("5"), "sale").credit == Decimal("5.00")
