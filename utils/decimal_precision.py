"""
Decimal Precision Utilities for Payment Amounts
Amounts enter as decimal strings and are stored as integer minor units only
"""

import logging
from decimal import Decimal, InvalidOperation, ROUND_HALF_UP, getcontext
from typing import Union

logger = logging.getLogger(__name__)

# Set global decimal precision for financial calculations
getcontext().prec = 28


class MonetaryDecimal:
    """Enforces Decimal-only monetary conversions"""

    MINOR_UNIT_PRECISION = Decimal("0.01")  # 2 decimal places
    MINOR_UNITS_PER_MAJOR = Decimal("100")

    @classmethod
    def to_decimal(cls, value: Union[str, int, Decimal]) -> Decimal:
        """Convert to Decimal; floats are refused to avoid representation drift"""
        if isinstance(value, bool) or isinstance(value, float):
            raise TypeError(f"Monetary values must not be {type(value).__name__}")
        if isinstance(value, Decimal):
            decimal_value = value
        else:
            try:
                decimal_value = Decimal(str(value).strip())
            except InvalidOperation as e:
                raise ValueError(f"Not a decimal amount: {value!r}") from e
        if not decimal_value.is_finite():
            raise ValueError(f"Not a finite amount: {value!r}")
        return decimal_value

    @classmethod
    def to_minor_units(cls, amount: Union[str, int, Decimal]) -> int:
        """Scale by 100 and round half-up to the nearest integer"""
        decimal_amount = cls.to_decimal(amount)
        scaled = (decimal_amount * cls.MINOR_UNITS_PER_MAJOR).quantize(Decimal("1"), rounding=ROUND_HALF_UP)
        return int(scaled)

    @classmethod
    def from_minor_units(cls, minor_units: int) -> Decimal:
        """Inverse of to_minor_units, for display only"""
        return (Decimal(minor_units) / cls.MINOR_UNITS_PER_MAJOR).quantize(cls.MINOR_UNIT_PRECISION)

    @classmethod
    def format_amount(cls, minor_units: int, currency: str) -> str:
        """Format for logs and display"""
        return f"{cls.from_minor_units(minor_units):,.2f} {currency}"
