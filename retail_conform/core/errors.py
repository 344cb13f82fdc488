"""
Exception hierarchy for the conformance engine.

Data-quality problems never raise: they become quality flags on the
record. Only configuration mistakes and catastrophic failures (schema
mismatch, storage unavailable, a table rebuild that could not complete)
surface as exceptions and abort the run.
"""


class ConformanceError(Exception):
    """Base exception for all conformance engine failures."""


class RuleConfigError(ConformanceError):
    """Raised when a field rule table or vocabulary is invalid."""


class SchemaMismatchError(ConformanceError):
    """Raised when a raw batch is missing columns its dataset declares."""

    def __init__(self, dataset: str, missing_columns: list[str]):
        self.dataset = dataset
        self.missing_columns = missing_columns
        super().__init__(
            f"[{dataset}] batch is missing declared columns: {', '.join(missing_columns)}"
        )


class StorageUnavailableError(ConformanceError):
    """Raised when the conformed table store cannot be reached."""


class TableRebuildError(ConformanceError):
    """Raised when a truncate-and-rebuild of a table fails and was rolled back."""

    def __init__(self, table: str, message: str):
        self.table = table
        self.message = message
        super().__init__(f"Rebuild of table '{table}' failed: {message}")
