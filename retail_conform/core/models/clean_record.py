"""
CleanRecord model representing a typed, normalized, flagged source row.
"""

import json
from typing import Any

from pydantic import BaseModel, Field

from .quality_flag import QualityFlag, QualityIssue
from .raw_record import Provenance


class CleanRecord(BaseModel):
    """
    Typed and flagged counterpart of exactly one RawRecord.

    Clean records are never dropped: a record with malformed fields keeps
    null values and carries flags. Only records marked ``current`` by
    deduplication are eligible for dimensions and facts.

    Attributes:
        dataset: Source dataset name
        sequence: Ingestion sequence inherited from the raw record
        natural_key: Business key tuple, None when any component failed to parse
        values: Typed and normalized field values (None on parse failure)
        source_values: Source-reported values superseded by recomputation (audit only)
        flags: Set of quality flags
        issues: Per-field detail behind the flags
        current: Whether this record survived deduplication for its key
        provenance: Batch id, arrival timestamp and source file
    """

    dataset: str
    sequence: int
    natural_key: tuple[Any, ...] | None = None
    values: dict[str, Any] = Field(default_factory=dict)
    source_values: dict[str, Any] = Field(default_factory=dict)
    flags: frozenset[QualityFlag] = frozenset()
    issues: tuple[QualityIssue, ...] = ()
    current: bool = False
    provenance: Provenance

    def get(self, field_name: str) -> Any:
        """Return a typed field value, None when absent or unparseable."""
        return self.values.get(field_name)

    def has_flag(self, flag: QualityFlag) -> bool:
        return flag in self.flags

    def to_row(self) -> dict[str, Any]:
        """
        Flatten the record for storage in its clean-layer table.

        Returns:
            Dictionary with JSON-compatible audit columns
        """
        return {
            "sequence": self.sequence,
            "natural_key": json.dumps(list(self.natural_key), default=str)
            if self.natural_key is not None else None,
            "data": json.dumps(self.values, default=str, sort_keys=True),
            "source_values": json.dumps(self.source_values, default=str, sort_keys=True),
            "flags": sorted(flag.value for flag in self.flags),
            "issues": json.dumps(
                [issue.model_dump(mode="json") for issue in self.issues],
                default=str,
            ),
            "is_current": self.current,
            "batch_id": self.provenance.batch_id,
            "arrival_timestamp": self.provenance.arrival_timestamp,
            "source_file": self.provenance.source_file,
        }

    class Config:
        frozen = True
        json_schema_extra = {
            "example": {
                "dataset": "pos_items",
                "sequence": 3,
                "natural_key": ["T100", 501],
                "values": {
                    "transaction_id": "T100",
                    "product_id": 501,
                    "quantity": 3,
                    "unit_price": "9.99",
                    "calculated_line_total": "29.97"
                },
                "source_values": {"line_total": "40.00"},
                "flags": ["RECONCILIATION_MISMATCH"],
                "current": True
            }
        }
