"""
RawRecord and RawBatch models representing landed, untyped source rows.
"""

from datetime import datetime, timezone
from typing import Any, Iterable, Mapping

from pydantic import BaseModel, Field, field_validator


class Provenance(BaseModel):
    """
    Where and when a record arrived.

    Attributes:
        batch_id: Load batch identifier
        arrival_timestamp: When the record was landed (naive values are taken as UTC)
        source_file: Originating file name
    """

    batch_id: str = Field(..., min_length=1)
    arrival_timestamp: datetime
    source_file: str | None = None

    @field_validator("arrival_timestamp")
    @classmethod
    def ensure_timezone(cls, v: datetime) -> datetime:
        """Attach UTC to naive timestamps so ordering never mixes naive and aware values."""
        if v.tzinfo is None:
            return v.replace(tzinfo=timezone.utc)
        return v

    class Config:
        frozen = True


class RawRecord(BaseModel):
    """
    A landed source row: attribute name to string-or-absent, plus provenance.

    Immutable once landed.

    Attributes:
        dataset: Source dataset name (e.g. "pos_transactions")
        sequence: Stable ingestion sequence number within the batch
        values: Ordered attribute mapping, values are strings or None
        provenance: Batch id, arrival timestamp and source file
    """

    dataset: str
    sequence: int = Field(..., ge=0)
    values: dict[str, str | None]
    provenance: Provenance

    def get(self, field_name: str) -> str | None:
        """Return the raw value of a field, None when absent."""
        return self.values.get(field_name)

    class Config:
        frozen = True
        json_schema_extra = {
            "example": {
                "dataset": "pos_transactions",
                "sequence": 0,
                "values": {
                    "transaction_id": "T100",
                    "store_id": " 12 ",
                    "total_amount": "49.90"
                },
                "provenance": {
                    "batch_id": "batch_20250101_001",
                    "arrival_timestamp": "2025-01-01T06:00:00Z",
                    "source_file": "pos_transactions_raw.csv"
                }
            }
        }


class RawBatch(BaseModel):
    """
    A batch of raw records for one dataset.

    Attributes:
        dataset: Source dataset name
        batch_id: Load batch identifier
        columns: Column names present in the landed extract
        records: Raw records in ingestion order
    """

    dataset: str
    batch_id: str
    columns: tuple[str, ...]
    records: list[RawRecord] = Field(default_factory=list)

    def __len__(self) -> int:
        return len(self.records)

    @classmethod
    def from_rows(
        cls,
        dataset: str,
        rows: Iterable[Mapping[str, Any]],
        batch_id: str,
        arrival_timestamp: datetime | None = None,
        source_file: str | None = None,
        columns: Iterable[str] | None = None,
    ) -> "RawBatch":
        """
        Build a batch from plain row mappings, assigning ingestion sequences.

        Non-string values are stringified so the raw layer stays untyped.

        Args:
            dataset: Source dataset name
            rows: Row mappings in ingestion order
            batch_id: Load batch identifier
            arrival_timestamp: Shared arrival timestamp (defaults to now, UTC)
            source_file: Originating file name
            columns: Explicit column list (defaults to the union of row keys)

        Returns:
            RawBatch with one RawRecord per row
        """
        arrival = arrival_timestamp or datetime.now(timezone.utc)
        provenance = Provenance(
            batch_id=batch_id,
            arrival_timestamp=arrival,
            source_file=source_file,
        )

        records = []
        seen_columns: dict[str, None] = {}
        for sequence, row in enumerate(rows):
            values = {
                key: (None if value is None else str(value))
                for key, value in row.items()
            }
            for key in values:
                seen_columns.setdefault(key, None)
            records.append(
                RawRecord(
                    dataset=dataset,
                    sequence=sequence,
                    values=values,
                    provenance=provenance,
                )
            )

        return cls(
            dataset=dataset,
            batch_id=batch_id,
            columns=tuple(columns) if columns is not None else tuple(seen_columns),
            records=records,
        )
