"""
Data Cleaning Module

Raw-to-Clean transformations for SaaS entity records.
Handles:
- Whitespace trimming
- Blank-to-null normalization of nullable fields
- Strict calendar-date parsing
- Integer, currency and boolean coercion
- Categorical standardization (uppercasing, tagged priority)

Every coercion failure becomes null. Rows and columns are never dropped.
"""

from dataclasses import dataclass
from typing import Any, Callable, Dict, List, Optional, Sequence, Tuple, Union

import polars as pl
import structlog

from saas_analytics.config import get_settings
from .schemas import ENTITY_SCHEMAS, PRIORITY_DTYPE, Entity, EntitySchema, Priority

logger = structlog.get_logger(__name__)

TRUE_VALUES = ["true", "t", "1", "yes", "y"]
FALSE_VALUES = ["false", "f", "0", "no", "n"]


@dataclass
class CleaningStats:
    """Statistics from cleaning operations"""
    entity: str
    total_rows: int
    rows_after_cleaning: int
    blanks_nulled: int
    parse_failures: int
    case_corrections: int
    missing_columns: int = 0


class DataCleaner:
    """
    Raw-layer cleaner producing the typed Clean layer.

    The input frame is never mutated; every step returns a new frame.

    Example:
        cleaner = DataCleaner()
        accounts_clean, stats = cleaner.clean(raw_accounts, Entity.ACCOUNTS)
    """

    def __init__(self, date_formats: Optional[Sequence[str]] = None):
        self.date_formats = list(date_formats or get_settings().pipeline.date_formats)
        self._cleaning_rules: Dict[str, Callable] = {}
        self._register_default_rules()

    def _register_default_rules(self) -> None:
        """Register default cleaning rules"""
        self._cleaning_rules = {
            "trim_strings": self._trim_strings,
            "blank_to_null": self._blank_to_null,
            "standardize_dates": self._standardize_dates,
            "cast_integers": self._cast_integers,
            "normalize_currency": self._normalize_currency,
            "cast_booleans": self._cast_booleans,
            "normalize_case": self._normalize_case,
            "tag_priority": self._tag_priority,
        }

    def register_rule(self, name: str, func: Callable) -> None:
        """Register a custom cleaning rule"""
        self._cleaning_rules[name] = func

    def apply_rule(self, df: pl.DataFrame, name: str, *args: Any, **kwargs: Any) -> pl.DataFrame:
        """Apply a registered rule by name"""
        if name not in self._cleaning_rules:
            raise KeyError(f"Unknown cleaning rule: {name}")
        return self._cleaning_rules[name](df, *args, **kwargs)

    def _as_strings(self, df: pl.DataFrame, columns: Sequence[str]) -> pl.DataFrame:
        """Cast declared columns to Utf8 so every rule sees raw text"""
        casts = [
            pl.col(col).cast(pl.Utf8)
            for col in columns
            if col in df.columns and df.schema[col] != pl.Utf8
        ]
        return df.with_columns(casts) if casts else df

    def _ensure_columns(self, df: pl.DataFrame, schema: EntitySchema) -> Tuple[pl.DataFrame, int]:
        """Add declared columns missing from the raw frame as all-null"""
        missing = [col for col in schema.columns if col not in df.columns]
        if missing:
            logger.warning(
                "Raw table missing declared columns",
                entity=schema.entity.value,
                columns=missing,
            )
            df = df.with_columns([pl.lit(None, dtype=pl.Utf8).alias(col) for col in missing])
        return df, len(missing)

    def _trim_strings(self, df: pl.DataFrame, columns: Optional[List[str]] = None) -> pl.DataFrame:
        """Trim whitespace from string columns"""
        string_cols = columns or [
            col for col, dtype in zip(df.columns, df.dtypes)
            if dtype == pl.Utf8
        ]

        return df.with_columns([
            pl.col(col).str.strip_chars().alias(col)
            for col in string_cols
            if col in df.columns
        ])

    def _blank_to_null(self, df: pl.DataFrame, columns: Sequence[str]) -> pl.DataFrame:
        """Replace empty strings with null in nullable text columns"""
        return df.with_columns([
            pl.when(pl.col(col).str.len_chars() == 0)
            .then(None)
            .otherwise(pl.col(col))
            .alias(col)
            for col in columns
            if col in df.columns
        ])

    def _standardize_dates(
        self,
        df: pl.DataFrame,
        date_columns: Sequence[str],
        formats: Optional[Sequence[str]] = None,
    ) -> pl.DataFrame:
        """
        Parse date columns strictly against the accepted formats.

        A value matching none of the formats, including impossible calendar
        dates and blanks, becomes null.
        """
        formats = list(formats or self.date_formats)
        exprs = []
        for col in date_columns:
            if col not in df.columns:
                continue
            attempts = [
                pl.col(col).str.to_date(fmt, strict=False, exact=True)
                for fmt in formats
            ]
            exprs.append(pl.coalesce(attempts).alias(col))

        return df.with_columns(exprs) if exprs else df

    def _cast_integers(self, df: pl.DataFrame, columns: Sequence[str]) -> pl.DataFrame:
        """Cast integral numeric text to Int64; anything else becomes null"""
        exprs = []
        for col in columns:
            if col not in df.columns:
                continue
            number = pl.col(col).str.replace_all(",", "").cast(pl.Float64, strict=False)
            exprs.append(
                pl.when(number.is_finite() & (number == number.round(0)))
                .then(number.cast(pl.Int64, strict=False))
                .otherwise(None)
                .alias(col)
            )

        return df.with_columns(exprs) if exprs else df

    def _normalize_currency(self, df: pl.DataFrame, amount_columns: Sequence[str]) -> pl.DataFrame:
        """Normalize currency values (remove symbols, convert to float)"""
        return df.with_columns([
            pl.col(col)
            .str.replace_all(r"[$€£¥,]", "")
            .str.strip_chars()
            .cast(pl.Float64, strict=False)
            .fill_nan(None)
            .alias(col)
            for col in amount_columns
            if col in df.columns
        ])

    def _cast_booleans(self, df: pl.DataFrame, columns: Sequence[str]) -> pl.DataFrame:
        """Map common true/false spellings to Boolean, unknown spellings to null"""
        exprs = []
        for col in columns:
            if col not in df.columns:
                continue
            lowered = pl.col(col).str.to_lowercase()
            exprs.append(
                pl.when(lowered.is_in(TRUE_VALUES))
                .then(pl.lit(True))
                .when(lowered.is_in(FALSE_VALUES))
                .then(pl.lit(False))
                .otherwise(pl.lit(None, dtype=pl.Boolean))
                .alias(col)
            )

        return df.with_columns(exprs) if exprs else df

    def _normalize_case(
        self,
        df: pl.DataFrame,
        columns: Sequence[str],
        case: str = "upper",
    ) -> pl.DataFrame:
        """Normalize string case"""
        for col in columns:
            if col in df.columns:
                if case == "lower":
                    df = df.with_columns(pl.col(col).str.to_lowercase().alias(col))
                elif case == "upper":
                    df = df.with_columns(pl.col(col).str.to_uppercase().alias(col))
                elif case == "title":
                    df = df.with_columns(pl.col(col).str.to_titlecase().alias(col))

        return df

    def _tag_priority(self, df: pl.DataFrame, column: str = "priority") -> pl.DataFrame:
        """Derive the enumerated priority_level from uppercased priority text"""
        if column not in df.columns:
            return df

        return df.with_columns(
            pl.when(pl.col(column).is_in(Priority.known()))
            .then(pl.col(column))
            .otherwise(pl.lit(Priority.UNKNOWN.value))
            .cast(PRIORITY_DTYPE)
            .alias("priority_level")
        )

    def clean(
        self,
        df: pl.DataFrame,
        entity: Union[Entity, str],
    ) -> Tuple[pl.DataFrame, CleaningStats]:
        """
        Clean one raw entity table.

        Args:
            df: Raw, all-string entity table
            entity: Which entity the table holds

        Returns:
            Tuple of (clean DataFrame, CleaningStats)
        """
        schema = ENTITY_SCHEMAS[Entity(entity)]
        total_rows = len(df)

        df, missing = self._ensure_columns(df, schema)
        df = self._as_strings(df, schema.columns)
        df = self._trim_strings(df, schema.columns)

        nulls_before_blank = _null_counts(df, schema.nullable_columns)
        df = self._blank_to_null(df, schema.nullable_columns)
        blanks_nulled = _sum_increase(nulls_before_blank, _null_counts(df, schema.nullable_columns))

        typed_columns = (
            schema.date_columns
            + schema.int_columns
            + schema.decimal_columns
            + schema.bool_columns
        )
        nulls_before_parse = _null_counts(df, typed_columns)
        df = self._standardize_dates(df, schema.date_columns)
        df = self._cast_integers(df, schema.int_columns)
        df = self._normalize_currency(df, schema.decimal_columns)
        df = self._cast_booleans(df, schema.bool_columns)
        parse_failures = _sum_increase(nulls_before_parse, _null_counts(df, typed_columns))

        before_case = df.select([c for c in schema.upper_columns if c in df.columns])
        df = self._normalize_case(df, schema.upper_columns, "upper")
        case_corrections = sum(
            int((before_case[col] != df[col]).sum() or 0) for col in before_case.columns
        )

        if schema.entity == Entity.SUPPORT_TICKETS:
            df = self._tag_priority(df)

        stats = CleaningStats(
            entity=schema.entity.value,
            total_rows=total_rows,
            rows_after_cleaning=len(df),
            blanks_nulled=blanks_nulled,
            parse_failures=parse_failures,
            case_corrections=case_corrections,
            missing_columns=missing,
        )

        if parse_failures:
            logger.info(
                f"{parse_failures} values failed type coercion and were nulled",
                entity=schema.entity.value,
            )

        return df, stats

    def clean_accounts(self, df: pl.DataFrame) -> pl.DataFrame:
        """Apply account-specific cleaning transformations"""
        return self.clean(df, Entity.ACCOUNTS)[0]

    def clean_subscriptions(self, df: pl.DataFrame) -> pl.DataFrame:
        """Apply subscription-specific cleaning transformations"""
        return self.clean(df, Entity.SUBSCRIPTIONS)[0]

    def clean_feature_usage(self, df: pl.DataFrame) -> pl.DataFrame:
        """Apply feature-usage-specific cleaning transformations"""
        return self.clean(df, Entity.FEATURE_USAGE)[0]

    def clean_support_tickets(self, df: pl.DataFrame) -> pl.DataFrame:
        """Apply support-ticket-specific cleaning transformations"""
        return self.clean(df, Entity.SUPPORT_TICKETS)[0]

    def clean_churn_events(self, df: pl.DataFrame) -> pl.DataFrame:
        """Apply churn-event-specific cleaning transformations"""
        return self.clean(df, Entity.CHURN_EVENTS)[0]


def _null_counts(df: pl.DataFrame, columns: Sequence[str]) -> Dict[str, int]:
    return {col: df[col].null_count() for col in columns if col in df.columns}


def _sum_increase(before: Dict[str, int], after: Dict[str, int]) -> int:
    return sum(after[col] - before[col] for col in before)


def clean_dataframe(
    df: pl.DataFrame,
    entity: Union[Entity, str],
) -> pl.DataFrame:
    """
    Convenience function to clean a raw entity table.

    Args:
        df: Raw DataFrame
        entity: "accounts", "subscriptions", "feature_usage",
            "support_tickets" or "churn_events"

    Returns:
        Cleaned DataFrame
    """
    return DataCleaner().clean(df, entity)[0]
