"""
Text parsers: free strings and identifiers.
"""

from .base_parser import BaseParser, ParseResult


class StringParser(BaseParser):
    """
    Trims a free-text value.

    Blank text is a successful parse to None: optional attributes such as
    customer_id or traffic_source are legitimately empty.
    """

    def parse(self, raw_value: str | None) -> ParseResult:
        if raw_value is None or str(raw_value).strip() == "":
            return ParseResult.success(None)
        return self._parse(str(raw_value).strip())

    def _parse(self, text: str) -> ParseResult:
        max_length = self.parameters.get("max_length")
        if max_length is not None and len(text) > max_length:
            return ParseResult.failure(f"value exceeds {max_length} characters")
        return ParseResult.success(text)

    @property
    def type_name(self) -> str:
        return "string"


class IdentifierParser(BaseParser):
    """
    Parses a business identifier (transaction_id, order_id, return_id).

    Identifiers are trimmed and must be non-blank.
    """

    def _parse(self, text: str) -> ParseResult:
        max_length = self.parameters.get("max_length", 50)
        if len(text) > max_length:
            return ParseResult.failure(f"identifier exceeds {max_length} characters")
        return ParseResult.success(text)

    @property
    def type_name(self) -> str:
        return "identifier"
