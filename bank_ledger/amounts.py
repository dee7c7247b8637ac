"""
Fixed-Point Amount Helpers

Monetary values are Decimal quantized to a fixed number of places with
ROUND_HALF_UP. Binary floats are rejected outright, and text amounts must
be plain digits: an optional sign and currency symbol, thousands commas in
their proper places, and an optional decimal part.
"""

from decimal import Decimal, InvalidOperation, ROUND_HALF_UP, getcontext
from typing import Union
import re

from .errors import InvalidAmountError

# High precision for intermediate sums
getcontext().prec = 28

DEFAULT_PRECISION = 2

ZERO = Decimal('0')

AmountLike = Union[Decimal, int, str]

CURRENCY_SYMBOLS = "$€£¥"

# 1250, 1,250, 1,250.50, 1250.5
_GROUPED_AMOUNT = re.compile(r'^(\d{1,3}(,\d{3})+|\d+)(\.\d+)?$')
# 10,5 and 10,50 (comma as the decimal mark)
_DECIMAL_COMMA_AMOUNT = re.compile(r'^\d+,\d{1,2}$')


def quantize_amount(value: Decimal, precision: int = DEFAULT_PRECISION) -> Decimal:
    """
    Round to the ledger's fixed number of decimal places

    Raises:
        InvalidAmountError: value has too many digits to be held exactly
    """
    try:
        return value.quantize(Decimal('0.1') ** precision, rounding=ROUND_HALF_UP)
    except InvalidOperation:
        raise InvalidAmountError(value, "Amount out of range")


def parse_amount(value: AmountLike, precision: int = DEFAULT_PRECISION) -> Decimal:
    """
    Convert caller input to a quantized Decimal.

    Accepts Decimal, int, or a string such as "1,250.50" or "$10".
    Does not check the sign; see require_positive.

    Raises:
        InvalidAmountError: for floats, booleans, non-finite, malformed or
            out-of-range input
    """
    if isinstance(value, bool) or isinstance(value, float):
        raise InvalidAmountError(value, "Floating point amounts are not accepted")

    if isinstance(value, Decimal):
        amount = value
    elif isinstance(value, int):
        amount = Decimal(value)
    elif isinstance(value, str):
        amount = _decimal_from_string(value)
    else:
        raise InvalidAmountError(value, "Unsupported amount type")

    if not amount.is_finite():
        raise InvalidAmountError(value, "Amount must be a finite number")

    return quantize_amount(amount, precision)


def require_positive(value: AmountLike, precision: int = DEFAULT_PRECISION) -> Decimal:
    """Parse an amount and reject anything that is not strictly positive"""
    amount = parse_amount(value, precision)
    if amount <= ZERO:
        raise InvalidAmountError(value)
    return amount


def format_amount(value: Decimal, precision: int = DEFAULT_PRECISION) -> str:
    """Format for display, e.g. 1,250.50"""
    return f"{quantize_amount(value, precision):,.{precision}f}"


def _decimal_from_string(value: str) -> Decimal:
    text = value.strip()

    # Sign may sit either side of the currency symbol: -$5 or $-5
    sign = ""
    if text[:1] in ("+", "-"):
        sign, text = text[0], text[1:].lstrip()
    if text[:1] and text[0] in CURRENCY_SYMBOLS:
        text = text[1:].lstrip()
    if not sign and text[:1] in ("+", "-"):
        sign, text = text[0], text[1:]

    if _GROUPED_AMOUNT.match(text):
        digits = text.replace(",", "")
    elif _DECIMAL_COMMA_AMOUNT.match(text):
        digits = text.replace(",", ".")
    else:
        raise InvalidAmountError(value, "Amount is not a number")

    return Decimal(sign + digits)
