"""
Fact assembly: current clean records to grain-protected fact rows.

A candidate whose mandatory dimension references do not all resolve is
quarantined with the reasons, never dropped. A candidate whose grain is
already taken is quarantined as a grain conflict. Output rows are sorted
by grain so that identical input yields identical tables.
"""

from collections import Counter
from datetime import date, datetime
from typing import Any, Callable

from pydantic import BaseModel, Field

from retail_conform.core.models import (
    CleanRecord,
    EcomOrderFact,
    FactRow,
    InventorySnapshotFact,
    PosTransactionFact,
    QualityFlag,
    QuarantinedFact,
    ReturnFact,
    SalesItemFact,
)
from retail_conform.observability.logger import get_logger

from .date_dimension import DateDimension
from .dimension_resolver import DimensionResolver
from .grain import GrainIndex

logger = get_logger(__name__)

FACT_POS_TRANSACTIONS = "fact_pos_transactions"
FACT_ECOM_ORDERS = "fact_ecom_orders"
FACT_SALES_ITEMS = "fact_sales_items"
FACT_RETURNS = "fact_returns"
FACT_INVENTORY_SNAPSHOTS = "fact_inventory_snapshots"

FACT_TABLES = (
    FACT_POS_TRANSACTIONS,
    FACT_ECOM_ORDERS,
    FACT_SALES_ITEMS,
    FACT_RETURNS,
    FACT_INVENTORY_SNAPSHOTS,
)

CandidateBuilder = Callable[[CleanRecord, list[str]], FactRow | None]


class FactAssemblyResult(BaseModel):
    """
    Fact rows per fact table plus the quarantined candidates.
    """

    facts: dict[str, list[FactRow]] = Field(default_factory=dict)
    quarantined: list[QuarantinedFact] = Field(default_factory=list)

    def quarantine_counts(self, fact_table: str) -> dict[str, int]:
        """Count quarantined candidates of a table by quarantine flag."""
        counts: Counter = Counter()
        for entry in self.quarantined:
            if entry.fact_table != fact_table:
                continue
            if QualityFlag.GRAIN_CONFLICT in entry.flags:
                counts[QualityFlag.GRAIN_CONFLICT.value] += 1
            else:
                counts[QualityFlag.UNRESOLVED_REFERENCE.value] += 1
        return dict(counts)


def _arrival_order(record: CleanRecord) -> tuple[Any, ...]:
    return (record.provenance.arrival_timestamp, record.sequence)


def _grain_sort_key(row: FactRow) -> tuple[Any, ...]:
    return tuple((component is None, component) for component in row.grain_key)


class FactAssembler:
    """
    Derives the five fact tables from current clean records.

    Mandatory references:
    - POS transactions: store, date
    - E-commerce orders: date
    - Sales items: header transaction/order, product, date, and store for POS
    - Returns: product, date (store optional, through the POS transaction)
    - Inventory snapshots: product, store, date
    """

    def __init__(self, products: DimensionResolver, stores: DimensionResolver, dates: DateDimension):
        """
        Initialize the assembler over built dimensions.

        Args:
            products: Built product dimension
            stores: Built store dimension
            dates: Calendar dimension
        """
        self.products = products
        self.stores = stores
        self.dates = dates
        self._pos_headers: dict[Any, CleanRecord] = {}
        self._ecom_headers: dict[Any, CleanRecord] = {}

    def assemble(self, clean_records: dict[str, list[CleanRecord]]) -> FactAssemblyResult:
        """
        Assemble all fact tables.

        Args:
            clean_records: Clean records keyed by dataset name

        Returns:
            FactAssemblyResult
        """
        current = {
            dataset: sorted((r for r in records if r.current), key=_arrival_order)
            for dataset, records in clean_records.items()
        }
        self._pos_headers = {r.get("transaction_id"): r for r in current.get("pos_transactions", [])}
        self._ecom_headers = {r.get("order_id"): r for r in current.get("ecom_orders", [])}

        result = FactAssemblyResult()
        plan: list[tuple[str, list[tuple[list[CleanRecord], CandidateBuilder]]]] = [
            (FACT_POS_TRANSACTIONS, [(current.get("pos_transactions", []), self._pos_transaction)]),
            (FACT_ECOM_ORDERS, [(current.get("ecom_orders", []), self._ecom_order)]),
            (FACT_SALES_ITEMS, [
                (current.get("pos_items", []), self._pos_sales_item),
                (current.get("ecom_items", []), self._ecom_sales_item),
            ]),
            (FACT_RETURNS, [(current.get("returns", []), self._return)]),
            (FACT_INVENTORY_SNAPSHOTS, [(current.get("inventory_snapshots", []), self._inventory_snapshot)]),
        ]

        for fact_table, sources in plan:
            rows, quarantined = self._assemble_table(fact_table, sources)
            result.facts[fact_table] = rows
            result.quarantined.extend(quarantined)
            logger.info(
                f"Assembled {fact_table}: {len(rows)} rows, {len(quarantined)} quarantined",
                extra={"fact_table": fact_table},
            )

        return result

    def _assemble_table(
        self,
        fact_table: str,
        sources: list[tuple[list[CleanRecord], CandidateBuilder]],
    ) -> tuple[list[FactRow], list[QuarantinedFact]]:
        index = GrainIndex(fact_table)
        rows: list[FactRow] = []
        quarantined: list[QuarantinedFact] = []

        for records, build in sources:
            for record in records:
                reasons: list[str] = []
                row = build(record, reasons)
                if reasons or row is None:
                    quarantined.append(
                        self._quarantine(fact_table, record, QualityFlag.UNRESOLVED_REFERENCE, reasons)
                    )
                    continue

                owner = index.claim(row.grain_key, (record.dataset, record.sequence))
                if owner is not None:
                    reason = (
                        f"grain {list(row.grain_key)} already held by "
                        f"{owner[0]} sequence {owner[1]}"
                    )
                    quarantined.append(
                        self._quarantine(fact_table, record, QualityFlag.GRAIN_CONFLICT, [reason])
                    )
                    continue

                rows.append(row)

        rows.sort(key=_grain_sort_key)
        return rows, quarantined

    @staticmethod
    def _quarantine(
        fact_table: str,
        record: CleanRecord,
        flag: QualityFlag,
        reasons: list[str],
    ) -> QuarantinedFact:
        return QuarantinedFact(
            fact_table=fact_table,
            dataset=record.dataset,
            natural_key=record.natural_key,
            sequence=record.sequence,
            flags=record.flags | {flag},
            reasons=tuple(reasons) or (f"{flag.value} for {record.dataset} sequence {record.sequence}",),
            provenance=record.provenance,
        )

    # Reference resolution helpers

    def _product_sk(self, record: CleanRecord, reasons: list[str]) -> int | None:
        return self._require(self.products, "product_id", record.get("product_id"), reasons)

    def _store_sk(self, store_id: Any, reasons: list[str]) -> int | None:
        return self._require(self.stores, "store_id", store_id, reasons)

    @staticmethod
    def _require(resolver: DimensionResolver, field_name: str, value: Any, reasons: list[str]) -> int | None:
        surrogate_key = resolver.resolve(value)
        if surrogate_key is None:
            if value is None:
                reasons.append(f"{field_name} is missing")
            else:
                reasons.append(f"{field_name}={value} not found in {resolver.config.name}")
        return surrogate_key

    def _date_sk(self, field_name: str, value: date | datetime | None, reasons: list[str]) -> int | None:
        date_sk = self.dates.resolve(value)
        if date_sk is None:
            if value is None:
                reasons.append(f"{field_name} is missing")
            else:
                reasons.append(f"{field_name}={value} not found in dim_date")
        return date_sk

    @staticmethod
    def _lineage(record: CleanRecord) -> dict[str, Any]:
        return {
            "batch_id": record.provenance.batch_id,
            "source_file": record.provenance.source_file,
            "load_timestamp": record.provenance.arrival_timestamp,
        }

    # Candidate builders

    def _pos_transaction(self, record: CleanRecord, reasons: list[str]) -> FactRow | None:
        store_sk = self._store_sk(record.get("store_id"), reasons)
        date_sk = self._date_sk("transaction_timestamp", record.get("transaction_timestamp"), reasons)
        if reasons:
            return None
        return PosTransactionFact(
            transaction_id=record.get("transaction_id"),
            store_sk=store_sk,
            date_sk=date_sk,
            cashier_id=record.get("cashier_id"),
            customer_id=record.get("customer_id"),
            payment_method=record.get("payment_method"),
            total_amount=record.get("total_amount"),
            discount_amount=record.get("discount_amount"),
            tax_amount=record.get("tax_amount"),
            net_revenue=record.get("net_revenue"),
            **self._lineage(record),
        )

    def _ecom_order(self, record: CleanRecord, reasons: list[str]) -> FactRow | None:
        date_sk = self._date_sk("order_timestamp", record.get("order_timestamp"), reasons)
        if reasons:
            return None
        return EcomOrderFact(
            order_id=record.get("order_id"),
            date_sk=date_sk,
            customer_id=record.get("customer_id"),
            order_status=record.get("order_status"),
            channel=record.get("channel"),
            device_type=record.get("device_type"),
            traffic_source=record.get("traffic_source"),
            total_amount=record.get("total_amount"),
            discount_amount=record.get("discount_amount"),
            shipping_cost=record.get("shipping_cost"),
            net_revenue=record.get("net_revenue"),
            **self._lineage(record),
        )

    def _pos_sales_item(self, record: CleanRecord, reasons: list[str]) -> FactRow | None:
        transaction_id = record.get("transaction_id")
        product_sk = self._product_sk(record, reasons)

        header = self._pos_headers.get(transaction_id)
        if header is None:
            reasons.append(f"transaction_id={transaction_id} not found in pos_transactions")
            return None

        store_sk = self._store_sk(header.get("store_id"), reasons)
        date_sk = self._date_sk("transaction_timestamp", header.get("transaction_timestamp"), reasons)
        if reasons:
            return None
        return SalesItemFact(
            source_system="POS",
            transaction_id=transaction_id,
            product_sk=product_sk,
            store_sk=store_sk,
            date_sk=date_sk,
            quantity=record.get("quantity"),
            unit_price=record.get("unit_price"),
            line_revenue=record.get("calculated_line_total"),
            **self._lineage(record),
        )

    def _ecom_sales_item(self, record: CleanRecord, reasons: list[str]) -> FactRow | None:
        order_id = record.get("order_id")
        product_sk = self._product_sk(record, reasons)

        header = self._ecom_headers.get(order_id)
        if header is None:
            reasons.append(f"order_id={order_id} not found in ecom_orders")
            return None

        date_sk = self._date_sk("order_timestamp", header.get("order_timestamp"), reasons)
        if reasons:
            return None
        return SalesItemFact(
            source_system="ECOM",
            transaction_id=order_id,
            product_sk=product_sk,
            store_sk=None,
            date_sk=date_sk,
            quantity=record.get("quantity"),
            unit_price=record.get("unit_price"),
            line_revenue=record.get("calculated_line_total"),
            **self._lineage(record),
        )

    def _return(self, record: CleanRecord, reasons: list[str]) -> FactRow | None:
        product_sk = self._product_sk(record, reasons)
        date_sk = self._date_sk("return_date", record.get("return_date"), reasons)
        if reasons:
            return None

        # Store is optional: only returns of known POS transactions carry one
        header = self._pos_headers.get(record.get("transaction_id"))
        store_sk = self.stores.resolve(header.get("store_id")) if header is not None else None

        return ReturnFact(
            return_id=record.get("return_id"),
            transaction_id=record.get("transaction_id"),
            product_sk=product_sk,
            store_sk=store_sk,
            date_sk=date_sk,
            quantity_returned=record.get("quantity_returned"),
            refund_amount=record.get("refund_amount"),
            return_reason=record.get("return_reason"),
            return_channel=record.get("return_channel"),
            **self._lineage(record),
        )

    def _inventory_snapshot(self, record: CleanRecord, reasons: list[str]) -> FactRow | None:
        product_sk = self._product_sk(record, reasons)
        store_sk = self._store_sk(record.get("store_id"), reasons)
        date_sk = self._date_sk("snapshot_date", record.get("snapshot_date"), reasons)
        if reasons:
            return None
        return InventorySnapshotFact(
            product_sk=product_sk,
            store_sk=store_sk,
            date_sk=date_sk,
            beginning_inventory=record.get("beginning_inventory"),
            ending_inventory=record.get("ending_inventory"),
            inventory_value=record.get("inventory_value"),
            safety_stock=record.get("safety_stock"),
            stock_status=record.get("stock_status"),
            inventory_delta=record.get("calculated_inventory_delta"),
            below_safety_stock=bool(record.get("below_safety_stock")),
            **self._lineage(record),
        )
