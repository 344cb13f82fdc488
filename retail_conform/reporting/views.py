"""
Read-only analytical projections over the conformed tables.

Every function takes table rows (column mappings, as returned by
``TableStore.read_table``) and returns new rows; nothing is written back.
Amounts are summed as Decimal and ratios are rounded half-up.
"""

from collections import defaultdict
from decimal import ROUND_HALF_UP, Decimal
from typing import Any, Iterable, Sequence

from retail_conform.core.models import QualityFlag
from retail_conform.dimensional.fact_assembler import (
    FACT_INVENTORY_SNAPSHOTS,
    FACT_POS_TRANSACTIONS,
    FACT_RETURNS,
    FACT_SALES_ITEMS,
)
from retail_conform.warehouse.schema_mgmt import CLEAN_TABLE_PREFIX, QUARANTINE_TABLE, clean_table_name
from retail_conform.warehouse.table_store import TableStore

Row = dict[str, Any]


def _sum(values: Iterable[Any]) -> Decimal:
    return sum((Decimal(value) for value in values if value is not None), Decimal(0))


def _round(value: Decimal, places: int) -> Decimal:
    return value.quantize(Decimal(1).scaleb(-places), rounding=ROUND_HALF_UP)


def _ratio(numerator: Any, denominator: Any, places: int) -> Decimal | None:
    if not denominator:
        return None
    return _round(Decimal(numerator) / Decimal(denominator), places)


def _index(rows: Iterable[Row], key: str) -> dict[Any, Row]:
    return {row[key]: row for row in rows}


def _unit_margin(product: Row | None) -> Decimal:
    if product is None or product.get("margin") is None:
        return Decimal(0)
    return Decimal(product["margin"])


def revenue_summary(sales_items: list[Row], products: list[Row]) -> list[Row]:
    """
    Revenue, units and margin per source system (POS vs ECOM).

    Args:
        sales_items: fact_sales_items rows
        products: dim_product rows

    Returns:
        One row per source system, sorted by source system
    """
    products_by_sk = _index(products, "product_sk")
    groups: dict[str, list[Row]] = defaultdict(list)
    for item in sales_items:
        groups[item["source_system"]].append(item)

    grand_total = _sum(item.get("line_revenue") for item in sales_items)

    summary = []
    for source_system in sorted(groups):
        items = groups[source_system]
        revenue = _sum(item.get("line_revenue") for item in items)
        margin = _sum(
            _unit_margin(products_by_sk.get(item["product_sk"])) * (item.get("quantity") or 0)
            for item in items
        )
        summary.append({
            "source_system": source_system,
            "total_transactions": len({item["transaction_id"] for item in items}),
            "total_units_sold": sum(item.get("quantity") or 0 for item in items),
            "total_revenue": _round(revenue, 2),
            "total_margin": _round(margin, 2),
            "revenue_share_pct": _ratio(revenue, grand_total, 4),
        })
    return summary


def kpi_overview(sales_items: list[Row], returns: list[Row], inventory: list[Row]) -> Row:
    """
    Enterprise KPI snapshot: always exactly one row.

    Returns:
        total_revenue, avg_order_value, units_sold, return_rate, inventory_turnover
    """
    total_revenue = _sum(item.get("line_revenue") for item in sales_items)
    transactions = len({(item["source_system"], item["transaction_id"]) for item in sales_items})
    units_sold = sum(item.get("quantity") or 0 for item in sales_items)
    units_returned = sum(ret.get("quantity_returned") or 0 for ret in returns)

    ending = [snap["ending_inventory"] for snap in inventory if snap.get("ending_inventory") is not None]
    avg_inventory = _sum(ending) / len(ending) if ending else None

    return {
        "total_revenue": _round(total_revenue, 2),
        "avg_order_value": _ratio(total_revenue, transactions, 2),
        "units_sold": units_sold,
        "return_rate": _ratio(units_returned, units_sold, 4),
        "inventory_turnover": _ratio(units_sold, avg_inventory, 2),
    }


def daily_revenue(sales_items: list[Row], dates: list[Row]) -> list[Row]:
    """Revenue trend per calendar day and source system."""
    dates_by_sk = _index(dates, "date_sk")
    groups: dict[tuple[int, str], list[Row]] = defaultdict(list)
    for item in sales_items:
        groups[(item["date_sk"], item["source_system"])].append(item)

    rows = []
    for (date_sk, source_system) in sorted(groups):
        items = groups[(date_sk, source_system)]
        day = dates_by_sk.get(date_sk, {})
        rows.append({
            "full_date": day.get("full_date"),
            "year_num": day.get("year_num"),
            "month_num": day.get("month_num"),
            "month_name": day.get("month_name"),
            "source_system": source_system,
            "total_transactions": len({item["transaction_id"] for item in items}),
            "units_sold": sum(item.get("quantity") or 0 for item in items),
            "daily_revenue": _round(_sum(item.get("line_revenue") for item in items), 2),
        })
    return rows


def product_performance(sales_items: list[Row], products: list[Row]) -> list[Row]:
    """
    Units, revenue and margin per product, highest revenue first.

    Loss-making products (negative margin) appear with a negative total margin.
    """
    groups: dict[int, list[Row]] = defaultdict(list)
    for item in sales_items:
        groups[item["product_sk"]].append(item)

    rows = []
    for product in products:
        items = groups.get(product["product_sk"], [])
        if not items:
            continue
        revenue = _sum(item.get("line_revenue") for item in items)
        margin = _sum(_unit_margin(product) * (item.get("quantity") or 0) for item in items)
        prices = [item["unit_price"] for item in items if item.get("unit_price") is not None]
        rows.append({
            "product_id": product["product_id"],
            "product_name": product.get("product_name"),
            "category": product.get("category"),
            "subcategory": product.get("subcategory"),
            "brand": product.get("brand"),
            "units_sold": sum(item.get("quantity") or 0 for item in items),
            "total_revenue": _round(revenue, 2),
            "avg_selling_price": _ratio(_sum(prices), len(prices), 2),
            "total_margin": _round(margin, 2),
            "gross_margin_pct": _ratio(margin, revenue, 4),
        })
    rows.sort(key=lambda row: (-row["total_revenue"], row["product_id"]))
    return rows


def category_performance(sales_items: list[Row], products: list[Row]) -> list[Row]:
    """
    Units, revenue, margin and revenue share per category and subcategory.

    Args:
        sales_items: fact_sales_items rows
        products: dim_product rows

    Returns:
        One row per category / subcategory, sorted by category then subcategory
    """
    products_by_sk = _index(products, "product_sk")
    groups: dict[tuple[str, str], list[tuple[Row, Row]]] = defaultdict(list)
    for item in sales_items:
        product = products_by_sk.get(item["product_sk"])
        if product is None:
            continue
        key = (product.get("category") or "", product.get("subcategory") or "")
        groups[key].append((item, product))

    grand_total = _sum(item.get("line_revenue") for item in sales_items)

    rows = []
    for category, subcategory in sorted(groups):
        pairs = groups[(category, subcategory)]
        revenue = _sum(item.get("line_revenue") for item, _ in pairs)
        margin = _sum(_unit_margin(product) * (item.get("quantity") or 0) for item, product in pairs)
        rows.append({
            "category": category or None,
            "subcategory": subcategory or None,
            "units_sold": sum(item.get("quantity") or 0 for item, _ in pairs),
            "category_revenue": _round(revenue, 2),
            "category_gross_margin_pct": _ratio(margin, revenue, 4),
            "category_revenue_share": _ratio(revenue, grand_total, 4),
        })
    return rows


def store_performance(pos_transactions: list[Row], stores: list[Row]) -> list[Row]:
    """In-store transactions and net revenue per store, highest revenue first."""
    groups: dict[int, list[Row]] = defaultdict(list)
    for txn in pos_transactions:
        groups[txn["store_sk"]].append(txn)

    rows = []
    for store in stores:
        txns = groups.get(store["store_sk"], [])
        if not txns:
            continue
        revenue = _sum(txn.get("net_revenue") for txn in txns)
        count = len({txn["transaction_id"] for txn in txns})
        rows.append({
            "store_id": store["store_id"],
            "store_name": store.get("store_name"),
            "region": store.get("region"),
            "total_transactions": count,
            "total_revenue": _round(revenue, 2),
            "avg_transaction_value": _ratio(revenue, count, 2),
        })
    rows.sort(key=lambda row: (-row["total_revenue"], row["store_id"]))
    return rows


def inventory_at_risk(
    inventory: list[Row],
    products: list[Row],
    stores: list[Row],
    dates: list[Row],
) -> list[Row]:
    """
    Inventory positions that are out of stock or below safety stock.

    Returns:
        Rows sorted by date, store and product
    """
    products_by_sk = _index(products, "product_sk")
    stores_by_sk = _index(stores, "store_sk")
    dates_by_sk = _index(dates, "date_sk")

    rows = []
    for snap in inventory:
        ending = snap.get("ending_inventory")
        safety_stock = snap.get("safety_stock")
        is_stock_out = ending == 0
        is_below = bool(snap.get("below_safety_stock")) or (
            ending is not None and safety_stock is not None and ending < safety_stock
        )
        if not (is_stock_out or is_below):
            continue
        rows.append({
            "full_date": dates_by_sk.get(snap["date_sk"], {}).get("full_date"),
            "store_id": stores_by_sk.get(snap["store_sk"], {}).get("store_id"),
            "product_id": products_by_sk.get(snap["product_sk"], {}).get("product_id"),
            "beginning_inventory": snap.get("beginning_inventory"),
            "ending_inventory": ending,
            "safety_stock": safety_stock,
            "stock_status": snap.get("stock_status"),
            "inventory_value": snap.get("inventory_value"),
            "is_stock_out": is_stock_out,
            "is_below_safety_stock": is_below,
        })
    rows.sort(key=lambda row: (str(row["full_date"]), row["store_id"] or 0, row["product_id"] or 0))
    return rows


def inventory_turnover(sales_items: list[Row], inventory: list[Row], products: list[Row]) -> list[Row]:
    """
    Units sold over average ending inventory, per product.

    Only products with both sales and inventory positions are listed. The
    ratio is None when the average inventory is zero.
    """
    units_sold: dict[int, int] = defaultdict(int)
    for item in sales_items:
        units_sold[item["product_sk"]] += item.get("quantity") or 0

    ending: dict[int, list[int]] = defaultdict(list)
    for snap in inventory:
        if snap.get("ending_inventory") is not None:
            ending[snap["product_sk"]].append(snap["ending_inventory"])

    rows = []
    for product in products:
        product_sk = product["product_sk"]
        if product_sk not in units_sold or not ending.get(product_sk):
            continue
        avg_inventory = _sum(ending[product_sk]) / len(ending[product_sk])
        rows.append({
            "product_id": product["product_id"],
            "product_name": product.get("product_name"),
            "total_units_sold": units_sold[product_sk],
            "avg_inventory_units": _round(avg_inventory, 2),
            "inventory_turnover_ratio": _ratio(units_sold[product_sk], avg_inventory, 2),
        })
    rows.sort(key=lambda row: row["product_id"])
    return rows


def returns_summary(returns: list[Row], sales_items: list[Row], products: list[Row]) -> list[Row]:
    """Returns, refunds and return rate per product, most returned units first."""
    units_sold: dict[int, int] = defaultdict(int)
    for item in sales_items:
        units_sold[item["product_sk"]] += item.get("quantity") or 0

    groups: dict[int, list[Row]] = defaultdict(list)
    for ret in returns:
        groups[ret["product_sk"]].append(ret)

    rows = []
    for product in products:
        product_returns = groups.get(product["product_sk"], [])
        if not product_returns:
            continue
        units_returned = sum(ret.get("quantity_returned") or 0 for ret in product_returns)
        rows.append({
            "product_id": product["product_id"],
            "product_name": product.get("product_name"),
            "total_returns": len(product_returns),
            "units_returned": units_returned,
            "total_refund_amount": _round(_sum(ret.get("refund_amount") for ret in product_returns), 2),
            "return_rate": _ratio(units_returned, units_sold.get(product["product_sk"]), 4),
        })
    rows.sort(key=lambda row: (-row["units_returned"], row["product_id"]))
    return rows


def data_quality_summary(clean_tables: dict[str, list[Row]], quarantine: list[Row]) -> Row:
    """
    Flag counts per dataset and quarantine counts per fact table.

    Args:
        clean_tables: Clean-layer rows keyed by table or dataset name
        quarantine: fact_quarantine rows

    Returns:
        {"datasets": [...], "quarantine": [...]}
    """
    datasets = []
    for name in sorted(clean_tables):
        rows = clean_tables[name]
        flag_counts: dict[str, int] = defaultdict(int)
        for row in rows:
            for flag in row.get("flags") or []:
                flag_counts[flag] += 1
        datasets.append({
            "dataset": name.removeprefix(CLEAN_TABLE_PREFIX),
            "total_records": len(rows),
            "current_records": sum(1 for row in rows if row.get("is_current")),
            "flagged_records": sum(1 for row in rows if row.get("flags")),
            "duplicate_records": flag_counts.get(QualityFlag.DUPLICATE_RECORD.value, 0),
            "flag_counts": dict(sorted(flag_counts.items())),
        })

    quarantine_counts: dict[tuple[str, str], int] = defaultdict(int)
    for row in quarantine:
        flags = row.get("flags") or []
        reason = (
            QualityFlag.GRAIN_CONFLICT.value
            if QualityFlag.GRAIN_CONFLICT.value in flags
            else QualityFlag.UNRESOLVED_REFERENCE.value
        )
        quarantine_counts[(row["fact_table"], reason)] += 1

    return {
        "datasets": datasets,
        "quarantine": [
            {"fact_table": fact_table, "reason": reason, "count": count}
            for (fact_table, reason), count in sorted(quarantine_counts.items())
        ],
    }


REPORT_NAMES = (
    "revenue_summary",
    "kpi_overview",
    "daily_revenue",
    "product_performance",
    "category_performance",
    "store_performance",
    "inventory_at_risk",
    "inventory_turnover",
    "returns_summary",
    "data_quality",
)


def build_report(store: TableStore, name: str, datasets: Sequence[str] = ()) -> Row | list[Row]:
    """
    Compute a named report from the tables held by a store.

    Args:
        store: Table store holding a completed run
        name: One of REPORT_NAMES
        datasets: Datasets whose clean tables feed the data_quality report

    Returns:
        Report rows (kpi_overview and data_quality return a single mapping)

    Raises:
        ValueError: If the report name is unknown
    """
    if name == "revenue_summary":
        return revenue_summary(store.read_table(FACT_SALES_ITEMS), store.read_table("dim_product"))
    if name == "kpi_overview":
        return kpi_overview(
            store.read_table(FACT_SALES_ITEMS),
            store.read_table(FACT_RETURNS),
            store.read_table(FACT_INVENTORY_SNAPSHOTS),
        )
    if name == "daily_revenue":
        return daily_revenue(store.read_table(FACT_SALES_ITEMS), store.read_table("dim_date"))
    if name == "product_performance":
        return product_performance(store.read_table(FACT_SALES_ITEMS), store.read_table("dim_product"))
    if name == "category_performance":
        return category_performance(store.read_table(FACT_SALES_ITEMS), store.read_table("dim_product"))
    if name == "store_performance":
        return store_performance(store.read_table(FACT_POS_TRANSACTIONS), store.read_table("dim_store"))
    if name == "inventory_at_risk":
        return inventory_at_risk(
            store.read_table(FACT_INVENTORY_SNAPSHOTS),
            store.read_table("dim_product"),
            store.read_table("dim_store"),
            store.read_table("dim_date"),
        )
    if name == "inventory_turnover":
        return inventory_turnover(
            store.read_table(FACT_SALES_ITEMS),
            store.read_table(FACT_INVENTORY_SNAPSHOTS),
            store.read_table("dim_product"),
        )
    if name == "returns_summary":
        return returns_summary(
            store.read_table(FACT_RETURNS),
            store.read_table(FACT_SALES_ITEMS),
            store.read_table("dim_product"),
        )
    if name == "data_quality":
        clean_tables = {
            dataset: store.read_table(clean_table_name(dataset)) for dataset in datasets
        }
        return data_quality_summary(clean_tables, store.read_table(QUARANTINE_TABLE))
    raise ValueError(f"Unknown report: {name}. Available: {', '.join(REPORT_NAMES)}")
