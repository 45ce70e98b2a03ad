"""
Table Storage Module
"""
from .tables import (
    InMemoryTableStore,
    LayerSnapshot,
    ParquetTableStore,
    TableStore,
    create_store,
)

__all__ = [
    "InMemoryTableStore",
    "LayerSnapshot",
    "ParquetTableStore",
    "TableStore",
    "create_store",
]
