"""
Conformed fact row models and the quarantine model for rejected candidates.

Each fact model declares its grain: the minimal tuple of columns that must
be unique across the fact table.
"""

import json
from datetime import datetime
from decimal import Decimal
from typing import Any, ClassVar, Literal

from pydantic import BaseModel, Field

from .quality_flag import QualityFlag
from .raw_record import Provenance


class FactRow(BaseModel):
    """
    Base class for fact rows.

    Attributes:
        batch_id: Batch the source record arrived in
        source_file: File the source record came from
        load_timestamp: Arrival timestamp of the source record
    """

    GRAIN: ClassVar[tuple[str, ...]] = ()

    batch_id: str
    source_file: str | None = None
    load_timestamp: datetime

    @property
    def grain_key(self) -> tuple[Any, ...]:
        """Return the grain tuple of this row."""
        return tuple(getattr(self, column) for column in self.GRAIN)

    def to_row(self) -> dict[str, Any]:
        """Return the row as a column mapping for its fact table."""
        return self.model_dump()

    class Config:
        frozen = True


class PosTransactionFact(FactRow):
    """In-store revenue event. Grain: one row per POS transaction."""

    GRAIN: ClassVar[tuple[str, ...]] = ("transaction_id",)

    transaction_id: str
    store_sk: int
    date_sk: int
    cashier_id: str | None = None
    customer_id: str | None = None
    payment_method: str | None = None
    total_amount: Decimal | None = None
    discount_amount: Decimal
    tax_amount: Decimal
    net_revenue: Decimal | None = None


class EcomOrderFact(FactRow):
    """Online order-level revenue event. Grain: one row per e-commerce order."""

    GRAIN: ClassVar[tuple[str, ...]] = ("order_id",)

    order_id: str
    date_sk: int
    customer_id: str | None = None
    order_status: str | None = None
    channel: str | None = None
    device_type: str | None = None
    traffic_source: str | None = None
    total_amount: Decimal | None = None
    discount_amount: Decimal
    shipping_cost: Decimal
    net_revenue: Decimal | None = None


class SalesItemFact(FactRow):
    """
    Unified POS and e-commerce line-level sale.

    Grain: source system, transaction, product and day. ``store_sk`` is
    stored but is not part of the grain; it is null for e-commerce rows.
    """

    GRAIN: ClassVar[tuple[str, ...]] = ("source_system", "transaction_id", "product_sk", "date_sk")

    source_system: Literal["POS", "ECOM"]
    transaction_id: str
    product_sk: int
    store_sk: int | None = None
    date_sk: int
    quantity: int | None = None
    unit_price: Decimal | None = None
    line_revenue: Decimal | None = None


class ReturnFact(FactRow):
    """Return event. Grain: one row per return_id."""

    GRAIN: ClassVar[tuple[str, ...]] = ("return_id",)

    return_id: str
    transaction_id: str | None = None
    product_sk: int
    store_sk: int | None = None
    date_sk: int
    quantity_returned: int | None = None
    refund_amount: Decimal | None = None
    return_reason: str | None = None
    return_channel: str | None = None


class InventorySnapshotFact(FactRow):
    """Point-in-time stock position. Grain: product, store and snapshot day."""

    GRAIN: ClassVar[tuple[str, ...]] = ("product_sk", "store_sk", "date_sk")

    product_sk: int
    store_sk: int
    date_sk: int
    beginning_inventory: int | None = None
    ending_inventory: int | None = None
    inventory_value: Decimal | None = None
    safety_stock: int | None = None
    stock_status: str | None = None
    inventory_delta: int | None = None
    below_safety_stock: bool = False


class QuarantinedFact(BaseModel):
    """
    A current clean record that could not become a fact row.

    The record stays in the clean layer; this entry explains why it is
    missing from its fact table.

    Attributes:
        fact_table: Fact table the candidate was headed for
        dataset: Source dataset of the clean record
        natural_key: Natural key of the clean record
        sequence: Ingestion sequence of the clean record
        flags: Record flags plus the quarantine flag
        reasons: One message per unresolved reference or conflict
        provenance: Provenance of the clean record
    """

    fact_table: str
    dataset: str
    natural_key: tuple[Any, ...] | None = None
    sequence: int
    flags: frozenset[QualityFlag]
    reasons: tuple[str, ...] = Field(..., min_length=1)
    provenance: Provenance

    def to_row(self) -> dict[str, Any]:
        """Flatten the entry for the fact_quarantine table."""
        return {
            "fact_table": self.fact_table,
            "dataset": self.dataset,
            "natural_key": json.dumps(list(self.natural_key), default=str)
            if self.natural_key is not None else None,
            "sequence": self.sequence,
            "flags": sorted(flag.value for flag in self.flags),
            "reasons": list(self.reasons),
            "batch_id": self.provenance.batch_id,
            "arrival_timestamp": self.provenance.arrival_timestamp,
            "source_file": self.provenance.source_file,
        }

    class Config:
        frozen = True
        json_schema_extra = {
            "example": {
                "fact_table": "fact_sales_items",
                "dataset": "pos_items",
                "natural_key": ["T100", 999],
                "sequence": 7,
                "flags": ["UNRESOLVED_REFERENCE"],
                "reasons": ["product_id=999 not found in dim_product"]
            }
        }
