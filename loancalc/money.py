"""
Decimal Money Helpers

Proper Decimal precision for rupee amounts. NEVER uses float for monetary
values; every amount is rounded half-up to paise.
"""

from decimal import Decimal, ROUND_DOWN, ROUND_HALF_UP, InvalidOperation, getcontext

from .errors import InvalidInputError

# High precision for intermediate products
getcontext().prec = 28

CENT = Decimal('0.01')
ZERO = Decimal('0')
HUNDRED = Decimal('100')

# 18% GST on fees and penalties
GST_RATE = Decimal('0.18')


def to_decimal(value, field_name: str = "amount") -> Decimal:
    """
    Convert a number or numeric string to Decimal without going through float
    
    Args:
        value: int, str, Decimal or float
        field_name: Name used in the error message
        
    Returns:
        Decimal value
        
    Raises:
        InvalidInputError: If the value is not numeric
    """
    if isinstance(value, Decimal):
        result = value
    elif isinstance(value, bool) or value is None:
        raise InvalidInputError(f"{field_name} must be numeric, got {value!r}")
    else:
        try:
            result = Decimal(str(value))
        except InvalidOperation:
            raise InvalidInputError(f"{field_name} must be numeric, got {value!r}")
    
    if not result.is_finite():
        raise InvalidInputError(f"{field_name} must be finite, got {value!r}")
    return result


def optional_decimal(value, field_name: str = "amount"):
    """to_decimal that passes None through"""
    if value is None or value == "":
        return None
    return to_decimal(value, field_name)


def round2(value) -> Decimal:
    """Round to 2 decimal places, half up"""
    if not isinstance(value, Decimal):
        value = to_decimal(value)
    return value.quantize(CENT, rounding=ROUND_HALF_UP)


def gst_on(amount: Decimal, rate: Decimal = GST_RATE) -> Decimal:
    """GST on an amount, rounded to paise"""
    return round2(amount * rate)


def require_non_negative(value: Decimal, field_name: str) -> Decimal:
    """Reject negative amounts instead of clamping them"""
    if value < ZERO:
        raise InvalidInputError(f"{field_name} cannot be negative: {value}")
    return value



def split_evenly(amount, parts: int) -> list:
    """
    Split an amount into equal shares, each floored to paise

    The rounding remainder goes to the last share, so the shares always add
    up to the amount.
    """
    amount = to_decimal(amount)
    if parts < 1:
        raise InvalidInputError("Cannot split an amount into fewer than one part")
    share = (amount / parts).quantize(CENT, rounding=ROUND_DOWN)
    return [share] * (parts - 1) + [round2(amount - share * (parts - 1))]
