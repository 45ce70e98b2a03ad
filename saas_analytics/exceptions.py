"""Domain-specific exceptions for the SaaS analytics pipeline.

Transformation stages never raise for bad data: unparseable values become
null. These exceptions are raised only at the edges (configuration, storage
reads, raw input shape).
"""


class SaaSAnalyticsError(Exception):
    """Base exception for all pipeline errors."""

    pass


class ConfigError(SaaSAnalyticsError):
    """Raised when pipeline configuration is invalid or incomplete."""

    pass


class TableNotFoundError(SaaSAnalyticsError):
    """Raised when a table is read from a store that does not hold it."""

    def __init__(self, schema: str, table: str):
        self.schema = schema
        self.table = table
        super().__init__(f"Table not found: {schema}.{table}")
