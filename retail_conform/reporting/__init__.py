"""
Analytical projections over the conformed tables.
"""

from .views import (
    REPORT_NAMES,
    build_report,
    category_performance,
    daily_revenue,
    data_quality_summary,
    inventory_at_risk,
    inventory_turnover,
    kpi_overview,
    product_performance,
    returns_summary,
    revenue_summary,
    store_performance,
)

__all__ = [
    "REPORT_NAMES",
    "build_report",
    "revenue_summary",
    "kpi_overview",
    "daily_revenue",
    "product_performance",
    "category_performance",
    "store_performance",
    "inventory_at_risk",
    "inventory_turnover",
    "returns_summary",
    "data_quality_summary",
]
