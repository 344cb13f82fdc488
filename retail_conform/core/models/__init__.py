"""
Core data models for the retail conformance engine.

All models use Pydantic for runtime validation and type safety.
"""

from .clean_record import CleanRecord
from .dimension import DateDimensionRow, ProductDimensionRow, StoreDimensionRow
from .fact import (
    EcomOrderFact,
    FactRow,
    InventorySnapshotFact,
    PosTransactionFact,
    QuarantinedFact,
    ReturnFact,
    SalesItemFact,
)
from .quality_flag import IssueCategory, QualityFlag, QualityIssue
from .raw_record import Provenance, RawBatch, RawRecord

__all__ = [
    "Provenance",
    "RawRecord",
    "RawBatch",
    "QualityFlag",
    "QualityIssue",
    "IssueCategory",
    "CleanRecord",
    "DateDimensionRow",
    "ProductDimensionRow",
    "StoreDimensionRow",
    "FactRow",
    "PosTransactionFact",
    "EcomOrderFact",
    "SalesItemFact",
    "ReturnFact",
    "InventorySnapshotFact",
    "QuarantinedFact",
]
