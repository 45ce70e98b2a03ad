"""Synthetic raw data for development and tests"""
from .generators import RawDataGenerator, save_raw_csv

__all__ = ["RawDataGenerator", "save_raw_csv"]
