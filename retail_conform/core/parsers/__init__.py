"""
Field parsers.

Provides one parser per target type (string, identifier, integer, decimal,
date, datetime) and the ``parse`` entry point used by the rule engine.
"""

from typing import Any

from .base_parser import BaseParser, ParseResult
from .date_parser import DateParser, DateTimeParser, parse_datetime_text, to_date
from .numeric_parser import DecimalParser, IntegerParser
from .text_parser import IdentifierParser, StringParser

PARSER_REGISTRY: dict[str, type[BaseParser]] = {
    "string": StringParser,
    "identifier": IdentifierParser,
    "integer": IntegerParser,
    "decimal": DecimalParser,
    "date": DateParser,
    "datetime": DateTimeParser,
}


def get_parser(target_type: str, parameters: dict[str, Any] | None = None) -> BaseParser:
    """
    Instantiate the parser for a target type.

    Args:
        target_type: One of the PARSER_REGISTRY keys
        parameters: Type-specific parameters

    Returns:
        Parser instance

    Raises:
        ValueError: If the target type is unknown
    """
    parser_class = PARSER_REGISTRY.get(target_type)
    if parser_class is None:
        raise ValueError(f"Unsupported target type: {target_type}")
    return parser_class(parameters)


def parse(raw_value: str | None, target_type: str) -> tuple[Any, bool]:
    """
    Parse a raw value into ``target_type``.

    Never raises for bad input: absence or malformed text returns
    ``(None, False)``.

    Args:
        raw_value: Raw string value or None
        target_type: One of the PARSER_REGISTRY keys

    Returns:
        Tuple of (typed value or None, ok)
    """
    result = get_parser(target_type).parse(raw_value)
    return result.value, result.ok


__all__ = [
    "BaseParser",
    "ParseResult",
    "StringParser",
    "IdentifierParser",
    "IntegerParser",
    "DecimalParser",
    "DateParser",
    "DateTimeParser",
    "PARSER_REGISTRY",
    "get_parser",
    "parse",
    "parse_datetime_text",
    "to_date",
]
