"""
Numeric parsers: integers and fixed-point decimals.

Only plain notation is accepted. Thousands separators, currency symbols,
exponents and fractional integers are rejected rather than guessed at.
"""

import re
from decimal import ROUND_HALF_UP, Decimal, InvalidOperation

from .base_parser import BaseParser, ParseResult

INTEGER_PATTERN = re.compile(r"^[+-]?\d+$")
DECIMAL_PATTERN = re.compile(r"^[+-]?(\d+(\.\d*)?|\.\d+)$")

INT32_MIN = -(2 ** 31)
INT32_MAX = 2 ** 31 - 1

CENT = Decimal("0.01")


class IntegerParser(BaseParser):
    """
    Parses a 32-bit integer.

    Parameters:
    - min / max: optional storage bounds (default: signed 32-bit range)
    """

    def _parse(self, text: str) -> ParseResult:
        if not INTEGER_PATTERN.match(text):
            return ParseResult.failure(f"'{text}' is not an integer")

        value = int(text)
        lower = self.parameters.get("min", INT32_MIN)
        upper = self.parameters.get("max", INT32_MAX)
        if value < lower or value > upper:
            return ParseResult.failure(f"{value} is outside [{lower}, {upper}]")

        return ParseResult.success(value)

    @property
    def type_name(self) -> str:
        return "integer"


class DecimalParser(BaseParser):
    """
    Parses a DECIMAL(p, 2) amount.

    Values are quantised to two places (half-up). Magnitudes that do not
    fit ``digits`` total digits fail.

    Parameters:
    - digits: total precision including the two scale digits (default: 12)
    """

    def _parse(self, text: str) -> ParseResult:
        if not DECIMAL_PATTERN.match(text):
            return ParseResult.failure(f"'{text}' is not a decimal amount")

        try:
            value = Decimal(text).quantize(CENT, rounding=ROUND_HALF_UP)
        except InvalidOperation:
            return ParseResult.failure(f"'{text}' is not a decimal amount")

        digits = self.parameters.get("digits", 12)
        limit = Decimal(10) ** (digits - 2)
        if abs(value) >= limit:
            return ParseResult.failure(f"{value} does not fit DECIMAL({digits},2)")

        return ParseResult.success(value)

    @property
    def type_name(self) -> str:
        return "decimal"
