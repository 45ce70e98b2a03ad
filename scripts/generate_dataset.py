"""
SaaS Raw Dataset Generator

Writes messy raw CSVs for all five entities, then runs the pipeline over them
into a parquet warehouse so the output can be inspected.
"""

import sys
from pathlib import Path

from saas_analytics.config.logging import configure_logging
from saas_analytics.data import RawDataGenerator, save_raw_csv
from saas_analytics.ingestion import load_raw_directory
from saas_analytics.storage import ParquetTableStore
from saas_analytics.transformation.transformers import run_pipeline

OUTPUT_DIR = Path(__file__).parent.parent / "data"


def main(n_accounts: int = 2000) -> int:
    configure_logging()

    raw_dir = OUTPUT_DIR / "raw"
    data = RawDataGenerator(seed=42, messiness=0.05).generate_all(
        n_accounts=n_accounts,
        n_tickets=n_accounts * 2,
    )
    save_raw_csv(data, str(raw_dir))

    result = run_pipeline(
        load_raw_directory(raw_dir),
        store=ParquetTableStore(OUTPUT_DIR / "warehouse"),
    )

    for name, rows in result.facts.row_counts().items():
        print(f"  {name}: {rows:,} rows")

    return 0 if result.passed else 1


if __name__ == "__main__":
    sys.exit(main(int(sys.argv[1]) if len(sys.argv) > 1 else 2000))
