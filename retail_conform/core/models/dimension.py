"""
Conformed dimension row models (date, product, store).
"""

from datetime import date, datetime
from decimal import Decimal

from pydantic import BaseModel, Field


class DateDimensionRow(BaseModel):
    """
    Calendar dimension row. Grain: one row per calendar date.

    The surrogate key is the smart integer YYYYMMDD.
    """

    date_sk: int
    full_date: date
    year_num: int
    quarter_num: int = Field(..., ge=1, le=4)
    month_num: int = Field(..., ge=1, le=12)
    month_name: str
    day_num: int
    day_name: str
    is_weekend: bool

    class Config:
        frozen = True


class ProductDimensionRow(BaseModel):
    """
    Product master dimension row. Grain: one row per product_id.

    Attributes:
        product_sk: Surrogate key (stable across reloads, never reused)
        product_id: Natural key
        margin: price - cost, may be negative (loss-making SKUs stay visible)
        load_timestamp, source_file, batch_id: provenance of the promoted record
    """

    product_sk: int
    product_id: int
    sku: str | None = None
    product_name: str | None = None
    category: str | None = None
    subcategory: str | None = None
    brand: str | None = None
    cost: Decimal | None = None
    price: Decimal | None = None
    margin: Decimal | None = None
    season: str | None = None
    launch_date: date | None = None
    status: str | None = None
    load_timestamp: datetime
    source_file: str | None = None
    batch_id: str

    class Config:
        frozen = True


class StoreDimensionRow(BaseModel):
    """
    Store / location dimension row. Grain: one row per store_id.
    """

    store_sk: int
    store_id: int
    store_name: str | None = None
    store_type: str | None = None
    region: str | None = None
    address: str | None = None
    opening_date: date | None = None
    manager_id: str | None = None
    load_timestamp: datetime
    source_file: str | None = None
    batch_id: str

    class Config:
        frozen = True
