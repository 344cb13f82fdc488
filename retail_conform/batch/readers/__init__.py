"""
Landing-file readers.
"""

from .raw_batch_reader import RawBatchReader

__all__ = ["RawBatchReader"]
