"""
Persistent surrogate key registry.

Maps each dimension's natural keys to integer surrogate keys. Once
assigned, a surrogate key never changes and is never handed out again,
even when its natural key disappears from a later build.
"""

import json
from typing import Any, Hashable, Iterable

from retail_conform.observability.logger import get_logger

logger = get_logger(__name__)


def _sort_key(natural_key: tuple[Any, ...]) -> tuple[Any, ...]:
    """Order natural keys deterministically even when component types differ."""
    return tuple((type(component).__name__, component) for component in natural_key)


class SurrogateKeyRegistry:
    """
    Natural key to surrogate key map per dimension, with a high-water mark.

    The registry is persisted as ``surrogate_key_map`` rows (dimension,
    JSON-encoded natural key, surrogate key) through the table store.
    """

    TABLE_NAME = "surrogate_key_map"

    def __init__(self):
        self._keys: dict[str, dict[tuple[Any, ...], int]] = {}
        self._high_water: dict[str, int] = {}

    def lookup(self, dimension: str, natural_key: tuple[Any, ...]) -> int | None:
        """Return the surrogate key already assigned to a natural key, if any."""
        return self._keys.get(dimension, {}).get(natural_key)

    def high_water_mark(self, dimension: str) -> int:
        """Return the greatest surrogate key ever assigned for a dimension (0 if none)."""
        return self._high_water.get(dimension, 0)

    def assign(self, dimension: str, natural_keys: Iterable[tuple[Any, ...]]) -> dict[tuple[Any, ...], int]:
        """
        Return surrogate keys for natural keys, allocating new ones as needed.

        New keys are allocated above the high-water mark in natural-key
        order so that the same input always produces the same keys.

        Args:
            dimension: Dimension name (e.g. "dim_product")
            natural_keys: Natural keys present in the current build

        Returns:
            Mapping of each natural key to its surrogate key
        """
        keys = self._keys.setdefault(dimension, {})
        requested = list(dict.fromkeys(natural_keys))

        new_keys = sorted((key for key in requested if key not in keys), key=_sort_key)
        next_key = self.high_water_mark(dimension)
        for natural_key in new_keys:
            next_key += 1
            keys[natural_key] = next_key
        if new_keys:
            self._high_water[dimension] = next_key
            logger.debug(f"Allocated {len(new_keys)} surrogate keys for {dimension}")

        return {key: keys[key] for key in requested}

    def to_rows(self) -> list[dict[str, Any]]:
        """
        Serialize the registry for storage.

        Returns:
            Rows sorted by dimension and surrogate key
        """
        rows = []
        for dimension in sorted(self._keys):
            entries = sorted(self._keys[dimension].items(), key=lambda item: item[1])
            for natural_key, surrogate_key in entries:
                rows.append({
                    "dimension": dimension,
                    "natural_key": json.dumps(list(natural_key), default=str),
                    "surrogate_key": surrogate_key,
                })
        return rows

    @classmethod
    def from_rows(cls, rows: Iterable[dict[str, Any]]) -> "SurrogateKeyRegistry":
        """
        Rebuild a registry from stored rows.

        Args:
            rows: Rows as produced by ``to_rows``

        Returns:
            SurrogateKeyRegistry

        Raises:
            ValueError: If two natural keys share a surrogate key
        """
        registry = cls()
        assigned: dict[str, set[int]] = {}
        for row in rows:
            dimension = row["dimension"]
            natural_key = tuple(json.loads(row["natural_key"]))
            surrogate_key = int(row["surrogate_key"])

            keys = registry._keys.setdefault(dimension, {})
            seen = assigned.setdefault(dimension, set())
            if surrogate_key in seen or natural_key in keys:
                raise ValueError(f"Duplicate registry entry for {dimension}: {natural_key} -> {surrogate_key}")
            seen.add(surrogate_key)
            keys[natural_key] = surrogate_key
            registry._high_water[dimension] = max(registry.high_water_mark(dimension), surrogate_key)
        return registry

    def __len__(self) -> int:
        return sum(len(keys) for keys in self._keys.values())

    def __contains__(self, item: tuple[str, Hashable]) -> bool:
        dimension, natural_key = item
        return natural_key in self._keys.get(dimension, {})
