"""
Module: ledger_kernel.db.types
Responsibility: Column types and helpers for exact monetary arithmetic.
    Centralizes precision and rounding so that every model and service uses
    identical definitions.
Architecture position: Kernel > DB.  May be imported by every kernel layer.
    MUST NOT import from any of them.

Invariants enforced:
    - No floats anywhere.  Amounts are Decimal in Python and scaled integers
      in the database (cents for money, ten-thousandths for rates and
      quantities), so sums and equality checks are exact on every backend.
    - round_money() is the only sanctioned rounding function for monetary
      values: two decimal places, ROUND_HALF_UP.

Failure modes:
    - ValueError when a value cannot be converted to Decimal, or when a
      non-finite Decimal (NaN, Infinity) is bound to a column.
"""

from decimal import ROUND_HALF_UP, Decimal, InvalidOperation
from enum import Enum
from typing import Any

from sqlalchemy import BigInteger, Enum as SAEnum
from sqlalchemy.types import TypeDecorator

MONEY_DECIMAL_PLACES = 2
RATE_DECIMAL_PLACES = 4
DEFAULT_ROUNDING = ROUND_HALF_UP

ZERO = Decimal("0.00")


def to_decimal(value: Any) -> Decimal:
    """Convert int, str or Decimal input to Decimal (floats go through str)."""
    if isinstance(value, Decimal):
        return value
    if isinstance(value, float):
        value = repr(value)
    try:
        return Decimal(value)
    except (InvalidOperation, TypeError) as exc:
        raise ValueError(f"Not a decimal amount: {value!r}") from exc


def round_money(
    value: Any,
    decimal_places: int = MONEY_DECIMAL_PLACES,
    rounding: str = DEFAULT_ROUNDING,
) -> Decimal:
    """
    Round a monetary value to the given number of decimal places.

    Preconditions: value is convertible by to_decimal().
    Postconditions: Returns a Decimal quantized to ``decimal_places``.
    """
    quantum = Decimal(1).scaleb(-decimal_places)
    return to_decimal(value).quantize(quantum, rounding=rounding)


def money_from_int(value: int, decimal_places: int = MONEY_DECIMAL_PLACES) -> Decimal:
    """
    Create a money value from minor units.

    Example:
        money_from_int(1050) -> Decimal("10.50")
    """
    return Decimal(value).scaleb(-decimal_places).quantize(
        Decimal(1).scaleb(-decimal_places)
    )


class ScaledDecimal(TypeDecorator):
    """
    Decimal stored as a BigInteger scaled by 10**places.

    Contract:
        Binds Decimal/int/str values rounded half-up to ``places`` decimals
        and loads them back as Decimal with exactly ``places`` decimals.
        SUM() over the column keeps the type, so aggregates come back as
        Decimal too.
    """

    impl = BigInteger
    cache_ok = True

    def __init__(self, places: int = MONEY_DECIMAL_PLACES):
        super().__init__()
        self.places = places

    def process_bind_param(self, value, dialect):
        if value is None:
            return None
        amount = to_decimal(value)
        if not amount.is_finite():
            raise ValueError(f"Non-finite amount cannot be stored: {value!r}")
        return int(round_money(amount, self.places).scaleb(self.places))

    def process_result_value(self, value, dialect):
        if value is None:
            return None
        return money_from_int(int(value), self.places)


class MinorUnits(ScaledDecimal):
    """Money column: Decimal with two places stored as integer cents."""

    cache_ok = True

    def __init__(self):
        super().__init__(MONEY_DECIMAL_PLACES)


class RateUnits(ScaledDecimal):
    """Rate or quantity column: four decimal places."""

    cache_ok = True

    def __init__(self):
        super().__init__(RATE_DECIMAL_PLACES)


def enum_type(enum_cls: type[Enum], length: int = 20) -> SAEnum:
    """String-backed enum column storing member values, loading members."""
    return SAEnum(
        enum_cls,
        native_enum=False,
        length=length,
        values_callable=lambda members: [m.value for m in members],
        validate_strings=True,
    )
