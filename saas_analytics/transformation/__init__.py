"""
Data Transformation Module

The pipeline orchestrator lives in `saas_analytics.transformation.transformers`
and is imported from there.
"""
from .cleaners import CleaningStats, DataCleaner, clean_dataframe
from .enrichers import DerivedFieldCalculator
from .facts import FactBuilder
from .metrics import ActiveSubscriptionRule, MetricsEngine
from .schemas import Entity, FactTable, Priority

__all__ = [
    "CleaningStats",
    "DataCleaner",
    "clean_dataframe",
    "DerivedFieldCalculator",
    "FactBuilder",
    "ActiveSubscriptionRule",
    "MetricsEngine",
    "Entity",
    "FactTable",
    "Priority",
]
