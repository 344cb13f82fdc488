"""
Base parser interface for all field types.

All parsers inherit from BaseParser and implement _parse(). Parsers never
raise on bad input: absence or malformed text yields a failed ParseResult.
"""

from abc import ABC, abstractmethod
from typing import Any

from pydantic import BaseModel


class ParseResult(BaseModel):
    """
    Outcome of parsing one raw value.

    Attributes:
        value: Typed value, None on failure (or for a legitimately blank optional string)
        ok: Whether parsing succeeded
        error: Failure description when ok is False
    """

    value: Any = None
    ok: bool
    error: str | None = None

    @classmethod
    def success(cls, value: Any) -> "ParseResult":
        return cls(value=value, ok=True)

    @classmethod
    def failure(cls, error: str) -> "ParseResult":
        return cls(value=None, ok=False, error=error)

    class Config:
        frozen = True


class BaseParser(ABC):
    """
    Abstract base class for all field parsers.

    Each parser converts a single raw (string) value into one target type.
    """

    def __init__(self, parameters: dict[str, Any] | None = None):
        """
        Initialize parser.

        Args:
            parameters: Type-specific parameters (e.g., digits for decimals)
        """
        self.parameters = parameters or {}

    def parse(self, raw_value: str | None) -> ParseResult:
        """
        Parse a raw value.

        Blank input (None, empty or whitespace) fails with "value is missing";
        any unexpected error inside a parser is converted to a failure.

        Args:
            raw_value: The raw string value, or None when absent

        Returns:
            ParseResult with the typed value or the failure reason
        """
        if raw_value is None:
            return ParseResult.failure("value is missing")

        text = str(raw_value).strip()
        if text == "":
            return ParseResult.failure("value is missing")

        try:
            return self._parse(text)
        except (ValueError, TypeError, ArithmeticError) as e:
            return ParseResult.failure(f"cannot parse '{text}' as {self.type_name}: {e}")

    @abstractmethod
    def _parse(self, text: str) -> ParseResult:
        """
        Parse trimmed, non-blank text.

        Args:
            text: Trimmed input text

        Returns:
            ParseResult
        """
        pass

    @property
    @abstractmethod
    def type_name(self) -> str:
        """Return the target type identifier."""
        pass

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}(params={self.parameters})"
