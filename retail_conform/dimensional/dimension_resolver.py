"""
Dimension resolution: current clean records to dimension rows with
stable surrogate keys.
"""

from typing import Any, Iterable

from pydantic import BaseModel

from retail_conform.core.models import CleanRecord, ProductDimensionRow, StoreDimensionRow
from retail_conform.observability.logger import get_logger

from .registry import SurrogateKeyRegistry

logger = get_logger(__name__)


class DimensionConfig(BaseModel):
    """
    Describes how a dataset becomes a dimension.

    Attributes:
        name: Dimension table name
        dataset: Source dataset of the dimension
        natural_key_field: Natural key column
        surrogate_key_field: Surrogate key column
        attributes: Clean-record fields copied onto the row
        row_model: Row model class
    """

    name: str
    dataset: str
    natural_key_field: str
    surrogate_key_field: str
    attributes: tuple[str, ...]
    row_model: type[BaseModel]


PRODUCT_DIMENSION = DimensionConfig(
    name="dim_product",
    dataset="products",
    natural_key_field="product_id",
    surrogate_key_field="product_sk",
    attributes=(
        "sku", "product_name", "category", "subcategory", "brand",
        "cost", "price", "margin", "season", "launch_date", "status",
    ),
    row_model=ProductDimensionRow,
)

STORE_DIMENSION = DimensionConfig(
    name="dim_store",
    dataset="stores",
    natural_key_field="store_id",
    surrogate_key_field="store_sk",
    attributes=("store_name", "store_type", "region", "address", "opening_date", "manager_id"),
    row_model=StoreDimensionRow,
)


def _as_key(natural_key: Any) -> tuple[Any, ...]:
    return natural_key if isinstance(natural_key, tuple) else (natural_key,)


class DimensionResolver:
    """
    Builds one dimension and resolves natural keys against it.

    Only current clean records with a resolved natural key are promoted.
    Existing surrogate keys are reused and their attributes overwritten;
    natural keys seen for the first time get new keys from the registry.
    """

    def __init__(self, config: DimensionConfig, registry: SurrogateKeyRegistry):
        """
        Initialize the resolver.

        Args:
            config: Dimension description
            registry: Surrogate key registry shared by all dimensions
        """
        self.config = config
        self.registry = registry
        self._resolved: dict[tuple[Any, ...], int] = {}
        self.rows: list[BaseModel] = []

    def load(self, clean_records: Iterable[CleanRecord]) -> list[BaseModel]:
        """
        Build the dimension from clean records.

        Args:
            clean_records: Clean records of the dimension's dataset

        Returns:
            Dimension rows sorted by surrogate key
        """
        eligible = {
            record.natural_key: record
            for record in clean_records
            if record.current and record.natural_key is not None
        }

        surrogate_keys = self.registry.assign(self.config.name, eligible.keys())

        rows = []
        for natural_key, record in eligible.items():
            rows.append(self._build_row(surrogate_keys[natural_key], natural_key, record))
        rows.sort(key=lambda row: getattr(row, self.config.surrogate_key_field))

        self._resolved = surrogate_keys
        self.rows = rows
        logger.info(
            f"Built {self.config.name} with {len(rows)} rows",
            extra={"dimension": self.config.name},
        )
        return rows

    def _build_row(self, surrogate_key: int, natural_key: tuple[Any, ...], record: CleanRecord) -> BaseModel:
        attributes = {name: record.get(name) for name in self.config.attributes}
        return self.config.row_model(
            **{
                self.config.surrogate_key_field: surrogate_key,
                self.config.natural_key_field: natural_key[0],
            },
            **attributes,
            load_timestamp=record.provenance.arrival_timestamp,
            source_file=record.provenance.source_file,
            batch_id=record.provenance.batch_id,
        )

    def resolve(self, natural_key: Any) -> int | None:
        """
        Resolve a natural key to its surrogate key.

        Args:
            natural_key: Scalar or tuple natural key

        Returns:
            Surrogate key, or None when the key is absent from this build
        """
        if natural_key is None:
            return None
        return self._resolved.get(_as_key(natural_key))
