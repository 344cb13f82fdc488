"""
Dimensional model: surrogate keys, dimensions and grain-protected facts.
"""

from .date_dimension import DateDimension, smart_key
from .dimension_resolver import (
    PRODUCT_DIMENSION,
    STORE_DIMENSION,
    DimensionConfig,
    DimensionResolver,
)
from .fact_assembler import FACT_TABLES, FactAssembler, FactAssemblyResult
from .grain import GrainIndex
from .registry import SurrogateKeyRegistry

__all__ = [
    "SurrogateKeyRegistry",
    "DimensionConfig",
    "DimensionResolver",
    "PRODUCT_DIMENSION",
    "STORE_DIMENSION",
    "DateDimension",
    "smart_key",
    "GrainIndex",
    "FactAssembler",
    "FactAssemblyResult",
    "FACT_TABLES",
]
