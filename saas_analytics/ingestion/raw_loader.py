"""
Raw Data Loader

Reads raw entity files into the Raw layer exactly as delivered: every column
is kept as a string so that type coercion happens in one place, the Cleaner.
"""

from pathlib import Path
from typing import Dict, Optional, Sequence, Union

import polars as pl
import structlog

from saas_analytics.config import get_settings
from saas_analytics.exceptions import TableNotFoundError
from saas_analytics.storage import LayerSnapshot, TableStore
from saas_analytics.transformation.schemas import Entity

logger = structlog.get_logger(__name__)


def read_raw_csv(path: Union[str, Path], delimiter: str = ",", encoding: str = "utf-8") -> pl.DataFrame:
    """Read a CSV file with every column as Utf8 and no null-value guessing"""
    return pl.read_csv(
        path,
        separator=delimiter,
        encoding=encoding,
        infer_schema=False,
        null_values=None,
        missing_utf8_is_empty_string=True,
    )


def load_raw_directory(
    directory: Optional[Union[str, Path]] = None,
    entities: Optional[Sequence[Entity]] = None,
    version: int = 1,
) -> LayerSnapshot:
    """
    Load <entity>.csv files from a directory into a raw snapshot.

    Args:
        directory: Directory holding the raw CSV files (defaults to settings)
        entities: Entities to load (defaults to all five)
        version: Version stamped on the snapshot

    Returns:
        Raw LayerSnapshot keyed by entity name
    """
    directory = Path(directory or get_settings().storage.raw_path)
    entities = list(entities or Entity)
    tables: Dict[str, pl.DataFrame] = {}

    for entity in entities:
        path = directory / f"{entity.value}.csv"
        if not path.exists():
            raise TableNotFoundError("raw", entity.value)
        tables[entity.value] = read_raw_csv(path)
        logger.info(f"Read {len(tables[entity.value])} raw rows", entity=entity.value, file=str(path))

    return LayerSnapshot(layer="raw", version=version, tables=tables)


def load_raw_tables(
    store: TableStore,
    schema: Optional[str] = None,
    version: int = 1,
) -> LayerSnapshot:
    """Read every entity table from the raw schema of a store"""
    schema = schema or get_settings().pipeline.raw_schema
    return store.read_snapshot(schema, tables=[e.value for e in Entity], version=version)
