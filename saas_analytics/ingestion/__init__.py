"""
Data Ingestion Module
"""
from .raw_loader import load_raw_directory, load_raw_tables, read_raw_csv

__all__ = [
    "load_raw_directory",
    "load_raw_tables",
    "read_raw_csv",
]
