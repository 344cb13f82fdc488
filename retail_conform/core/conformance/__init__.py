"""
Conformance engine and per-dataset derivations.
"""

from .derivations import DERIVATIONS, Derivation, derive
from .engine import ConformanceEngine, ConformanceResult, ConformanceSummary

__all__ = [
    "ConformanceEngine",
    "ConformanceResult",
    "ConformanceSummary",
    "Derivation",
    "DERIVATIONS",
    "derive",
]
