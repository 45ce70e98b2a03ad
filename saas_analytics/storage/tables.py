"""
Table Storage

Full-table stores keyed by (schema, table) and immutable layer snapshots.

Stores expose replace-all writes and full reads only. A write replaces one
table atomically; there is no atomicity across tables.
"""

import os
import threading
from dataclasses import dataclass, field
from datetime import datetime, timezone
from pathlib import Path
from types import MappingProxyType
from typing import Dict, Iterator, List, Mapping, Optional, Tuple, Union

import polars as pl
import structlog

from saas_analytics.config import StorageBackend, get_settings
from saas_analytics.exceptions import TableNotFoundError

logger = structlog.get_logger(__name__)


@dataclass(frozen=True)
class LayerSnapshot:
    """
    An immutable, versioned set of tables for one layer (raw, clean, fact).

    Stages consume one snapshot and produce the next; the version records
    which upstream snapshot a layer was derived from.
    """
    layer: str
    version: int
    tables: Mapping[str, pl.DataFrame]
    created_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    def __post_init__(self):
        object.__setattr__(self, "tables", MappingProxyType(dict(self.tables)))

    def __getitem__(self, table: str) -> pl.DataFrame:
        if table not in self.tables:
            raise TableNotFoundError(self.layer, table)
        return self.tables[table]

    def __contains__(self, table: object) -> bool:
        return table in self.tables

    def __iter__(self) -> Iterator[str]:
        return iter(self.tables)

    def row_counts(self) -> Dict[str, int]:
        return {name: len(df) for name, df in self.tables.items()}

    def derive(self, layer: str, tables: Mapping[str, pl.DataFrame]) -> "LayerSnapshot":
        """Snapshot for the next layer, carrying this snapshot's version forward"""
        return LayerSnapshot(layer=layer, version=self.version, tables=tables)


class TableStore:
    """Base class for full-table stores"""

    def write(self, schema: str, table: str, df: pl.DataFrame) -> None:
        raise NotImplementedError

    def read(self, schema: str, table: str) -> pl.DataFrame:
        raise NotImplementedError

    def list_tables(self) -> List[Tuple[str, str]]:
        raise NotImplementedError

    def exists(self, schema: str, table: str) -> bool:
        return (schema, table) in self.list_tables()

    def row_count(self, schema: str, table: str) -> int:
        return len(self.read(schema, table))

    def write_snapshot(self, schema: str, snapshot: LayerSnapshot) -> None:
        """Replace every table of a snapshot under the given schema"""
        for table, df in snapshot.tables.items():
            self.write(schema, table, df)
        logger.info(
            f"Persisted {len(snapshot.tables)} tables to schema '{schema}'",
            version=snapshot.version,
        )

    def read_snapshot(
        self,
        schema: str,
        tables: Optional[List[str]] = None,
        version: int = 0,
    ) -> LayerSnapshot:
        """Read tables of a schema back into a snapshot"""
        names = tables or [t for s, t in self.list_tables() if s == schema]
        return LayerSnapshot(
            layer=schema,
            version=version,
            tables={name: self.read(schema, name) for name in names},
        )


class InMemoryTableStore(TableStore):
    """Thread-safe dictionary-backed store"""

    def __init__(self):
        self._tables: Dict[Tuple[str, str], pl.DataFrame] = {}
        self._lock = threading.Lock()

    def write(self, schema: str, table: str, df: pl.DataFrame) -> None:
        with self._lock:
            self._tables[(schema, table)] = df.clone()

    def read(self, schema: str, table: str) -> pl.DataFrame:
        with self._lock:
            if (schema, table) not in self._tables:
                raise TableNotFoundError(schema, table)
            return self._tables[(schema, table)].clone()

    def list_tables(self) -> List[Tuple[str, str]]:
        with self._lock:
            return sorted(self._tables)

    def row_count(self, schema: str, table: str) -> int:
        with self._lock:
            if (schema, table) not in self._tables:
                raise TableNotFoundError(schema, table)
            return self._tables[(schema, table)].height


class ParquetTableStore(TableStore):
    """
    One parquet file per table at <root>/<schema>/<table>.parquet.

    Writes go to a temporary file that replaces the target in one rename.
    """

    def __init__(self, root: Union[str, Path]):
        self.root = Path(root)
        self.root.mkdir(parents=True, exist_ok=True)

    def _path(self, schema: str, table: str) -> Path:
        return self.root / schema / f"{table}.parquet"

    def write(self, schema: str, table: str, df: pl.DataFrame) -> None:
        target = self._path(schema, table)
        target.parent.mkdir(parents=True, exist_ok=True)
        tmp = target.with_suffix(".parquet.tmp")

        try:
            df.write_parquet(tmp)
            os.replace(tmp, target)
        except Exception:
            tmp.unlink(missing_ok=True)
            raise
        logger.debug(f"Written {len(df)} rows to {target}")

    def read(self, schema: str, table: str) -> pl.DataFrame:
        path = self._path(schema, table)
        if not path.exists():
            raise TableNotFoundError(schema, table)
        return pl.read_parquet(path)

    def list_tables(self) -> List[Tuple[str, str]]:
        return sorted(
            (path.parent.name, path.stem)
            for path in self.root.glob("*/*.parquet")
        )

    def exists(self, schema: str, table: str) -> bool:
        return self._path(schema, table).exists()

    def row_count(self, schema: str, table: str) -> int:
        path = self._path(schema, table)
        if not path.exists():
            raise TableNotFoundError(schema, table)
        return pl.scan_parquet(path).select(pl.len()).collect().item()


def create_store(backend: Optional[StorageBackend] = None) -> TableStore:
    """Create the configured table store"""
    storage = get_settings().storage
    backend = StorageBackend(backend or storage.backend)

    if backend == StorageBackend.PARQUET:
        return ParquetTableStore(storage.warehouse_path)
    return InMemoryTableStore()
