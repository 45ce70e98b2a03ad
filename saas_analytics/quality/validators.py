"""
Data Validation Module

Rule-based quality checks over Clean-layer tables.

Features:
- Null and uniqueness checks on identifiers
- Categorical checks (uppercase text, allowed values)
- Type checks (date columns hold dates)
- Range checks (negative durations flagged as warnings)
- Orphan references (subscriptions and tickets pointing at unknown accounts)

Checks report; they never modify or reject data.
"""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Callable, Dict, List, Optional

import polars as pl
import structlog

from saas_analytics.transformation.schemas import ENTITY_SCHEMAS, Entity, Priority

logger = structlog.get_logger(__name__)


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class ValidationSeverity(str, Enum):
    """Severity levels for validation failures"""
    ERROR = "error"  # Run should not be published
    WARNING = "warning"  # Data-quality signal, run continues
    INFO = "info"


class ValidationStatus(str, Enum):
    """Overall validation status"""
    PASSED = "passed"
    FAILED = "failed"
    PARTIAL = "partial"


@dataclass
class ValidationCheck:
    """Single validation check result"""
    name: str
    passed: bool
    severity: ValidationSeverity
    message: str
    details: Optional[Dict[str, Any]] = None
    failed_rows: int = 0
    total_rows: int = 0


@dataclass
class ValidationResult:
    """Complete validation suite result"""
    status: ValidationStatus
    total_checks: int
    passed_checks: int
    failed_checks: int
    warning_count: int
    checks: List[ValidationCheck] = field(default_factory=list)
    started_at: datetime = field(default_factory=utcnow)
    completed_at: Optional[datetime] = None

    @property
    def success_rate(self) -> float:
        """Percentage of passed checks"""
        if self.total_checks == 0:
            return 100.0
        return (self.passed_checks / self.total_checks) * 100


def summarize_checks(
    checks: List[ValidationCheck],
    started_at: datetime,
    strict_mode: bool = False,
) -> ValidationResult:
    """Fold individual check results into a ValidationResult"""
    failed = [c for c in checks if not c.passed]
    errors = sum(1 for c in failed if c.severity == ValidationSeverity.ERROR)
    warnings = sum(1 for c in failed if c.severity == ValidationSeverity.WARNING)

    if errors or (warnings and strict_mode):
        status = ValidationStatus.FAILED
    elif warnings:
        status = ValidationStatus.PARTIAL
    else:
        status = ValidationStatus.PASSED

    return ValidationResult(
        status=status,
        total_checks=len(checks),
        passed_checks=len(checks) - len(failed),
        failed_checks=errors,
        warning_count=warnings,
        checks=checks,
        started_at=started_at,
        completed_at=utcnow(),
    )


Check = Callable[[pl.DataFrame], ValidationCheck]


class DataValidator:
    """
    Chainable suite of column checks.

    Most checks count violating rows with a polars expression; a check
    passes when that count is zero. Nulls never count as violations except
    in the not-null check.

    Example:
        result = (
            DataValidator()
            .add_not_null_check("account_id")
            .add_uppercase_check("plan_tier")
            .validate(df)
        )
    """

    def __init__(self, strict_mode: bool = False):
        self.strict_mode = strict_mode  # Warnings fail the suite
        self._checks: List[Check] = []

    def reset(self) -> None:
        self._checks = []

    def _add_violation_check(
        self,
        name: str,
        column: str,
        violation: Callable[[pl.Expr], pl.Expr],
        describe: str,
        severity: ValidationSeverity,
        details: Optional[Dict[str, Any]] = None,
    ) -> "DataValidator":
        """Register a check failing on rows where violation(col) is true"""
        def check(df: pl.DataFrame) -> ValidationCheck:
            if column not in df.columns:
                return ValidationCheck(
                    name=name,
                    passed=False,
                    severity=severity,
                    message=f"Column '{column}' not found",
                )

            violations = df.select(violation(pl.col(column)).fill_null(False).sum()).item()
            return ValidationCheck(
                name=name,
                passed=violations == 0,
                severity=severity,
                message=f"{violations} rows of '{column}' {describe}",
                details={**(details or {}), "violations": violations},
                failed_rows=violations,
                total_rows=df.height,
            )

        self._checks.append(check)
        return self

    def add_not_null_check(
        self,
        column: str,
        severity: ValidationSeverity = ValidationSeverity.ERROR,
    ) -> "DataValidator":
        return self._add_violation_check(
            f"not_null_{column}", column, lambda c: c.is_null(), "are null", severity,
        )

    def add_unique_check(
        self,
        column: str,
        severity: ValidationSeverity = ValidationSeverity.ERROR,
    ) -> "DataValidator":
        """Rows beyond the first occurrence of a value count as duplicates"""
        def check(df: pl.DataFrame) -> ValidationCheck:
            if column not in df.columns:
                return ValidationCheck(
                    name=f"unique_{column}",
                    passed=False,
                    severity=severity,
                    message=f"Column '{column}' not found",
                )

            duplicates = df.height - df[column].n_unique()
            return ValidationCheck(
                name=f"unique_{column}",
                passed=duplicates == 0,
                severity=severity,
                message=f"{duplicates} duplicate values in '{column}'",
                details={"duplicate_count": duplicates},
                failed_rows=duplicates,
                total_rows=df.height,
            )

        self._checks.append(check)
        return self

    def add_range_check(
        self,
        column: str,
        min_value: Optional[float] = None,
        max_value: Optional[float] = None,
        severity: ValidationSeverity = ValidationSeverity.ERROR,
    ) -> "DataValidator":
        """Values outside [min_value, max_value]; an open bound is unchecked"""
        def out_of_range(c: pl.Expr) -> pl.Expr:
            below = c < min_value if min_value is not None else pl.lit(False)
            above = c > max_value if max_value is not None else pl.lit(False)
            return below | above

        return self._add_violation_check(
            f"range_{column}",
            column,
            out_of_range,
            f"fall outside [{min_value}, {max_value}]",
            severity,
            {"min": min_value, "max": max_value},
        )

    def add_enum_check(
        self,
        column: str,
        allowed_values: List[Any],
        severity: ValidationSeverity = ValidationSeverity.ERROR,
    ) -> "DataValidator":
        return self._add_violation_check(
            f"enum_{column}",
            column,
            lambda c: ~c.cast(pl.Utf8).is_in(allowed_values),
            f"are not one of {allowed_values}",
            severity,
            {"allowed_values": allowed_values},
        )

    def add_uppercase_check(
        self,
        column: str,
        severity: ValidationSeverity = ValidationSeverity.ERROR,
    ) -> "DataValidator":
        return self._add_violation_check(
            f"uppercase_{column}",
            column,
            lambda c: c != c.str.to_uppercase(),
            "are not uppercase",
            severity,
        )

    def add_reference_check(
        self,
        column: str,
        reference: pl.Series,
        severity: ValidationSeverity = ValidationSeverity.WARNING,
    ) -> "DataValidator":
        """Non-null values of column that do not appear in reference"""
        known = reference.drop_nulls().unique().to_list()
        return self._add_violation_check(
            f"reference_{column}",
            column,
            lambda c: ~c.is_in(known),
            f"reference an unknown {reference.name}",
            severity,
        )

    def add_dtype_check(
        self,
        column: str,
        dtype: pl.DataType,
        severity: ValidationSeverity = ValidationSeverity.ERROR,
    ) -> "DataValidator":
        def check(df: pl.DataFrame) -> ValidationCheck:
            actual = df.schema.get(column)
            return ValidationCheck(
                name=f"dtype_{column}",
                passed=actual == dtype,
                severity=severity,
                message=f"Column '{column}' is {actual}, expected {dtype}",
                details={"expected": str(dtype), "actual": str(actual)},
                total_rows=df.height,
            )

        self._checks.append(check)
        return self

    def add_custom_check(
        self,
        name: str,
        check_func: Callable[[pl.DataFrame], bool],
        message_on_fail: str,
        severity: ValidationSeverity = ValidationSeverity.ERROR,
    ) -> "DataValidator":
        """Register an arbitrary frame-level predicate"""
        def check(df: pl.DataFrame) -> ValidationCheck:
            try:
                passed = bool(check_func(df))
            except Exception as e:
                return ValidationCheck(
                    name=name,
                    passed=False,
                    severity=severity,
                    message=f"Check raised an error: {e}",
                )
            return ValidationCheck(
                name=name,
                passed=passed,
                severity=severity,
                message="Check passed" if passed else message_on_fail,
                total_rows=df.height,
            )

        self._checks.append(check)
        return self

    def validate(self, df: pl.DataFrame) -> ValidationResult:
        """Run every registered check against df"""
        started_at = utcnow()
        checks = [check(df) for check in self._checks]

        for c in checks:
            if not c.passed:
                logger.warning(
                    f"Validation failed: {c.name}",
                    message=c.message,
                    severity=c.severity.value,
                )

        return summarize_checks(checks, started_at, self.strict_mode)


def _base_validator(entity: Entity, unique_key: bool = True) -> DataValidator:
    """Key checks plus a Date dtype check for every declared date column"""
    schema = ENTITY_SCHEMAS[entity]
    validator = DataValidator().add_not_null_check(
        schema.primary_key,
        severity=ValidationSeverity.ERROR if unique_key else ValidationSeverity.WARNING,
    )
    if unique_key:
        validator.add_unique_check(schema.primary_key)
    for col in schema.date_columns:
        validator.add_dtype_check(col, pl.Date)
    return validator


def create_accounts_validator() -> DataValidator:
    return (
        _base_validator(Entity.ACCOUNTS)
        .add_uppercase_check("plan_tier")
        .add_range_check("seats", min_value=0, severity=ValidationSeverity.WARNING)
        .add_not_null_check("churn_flag_calc")
    )


def create_subscriptions_validator(accounts: Optional[pl.DataFrame] = None) -> DataValidator:
    validator = (
        _base_validator(Entity.SUBSCRIPTIONS)
        .add_uppercase_check("plan_name")
        .add_range_check("monthly_recurring_revenue", min_value=0, severity=ValidationSeverity.WARNING)
        .add_range_check("subscription_days", min_value=0, severity=ValidationSeverity.WARNING)
    )
    if accounts is not None:
        validator.add_reference_check("account_id", accounts["account_id"])
    return validator


def create_feature_usage_validator() -> DataValidator:
    return (
        _base_validator(Entity.FEATURE_USAGE)
        .add_range_check("usage_count", min_value=0, severity=ValidationSeverity.WARNING)
    )


def create_support_tickets_validator(accounts: Optional[pl.DataFrame] = None) -> DataValidator:
    validator = (
        _base_validator(Entity.SUPPORT_TICKETS)
        .add_uppercase_check("priority")
        .add_enum_check("priority", Priority.known(), severity=ValidationSeverity.WARNING)
        .add_range_check("resolution_days", min_value=0, severity=ValidationSeverity.WARNING)
        .add_range_check("satisfaction_score", min_value=1, max_value=5, severity=ValidationSeverity.WARNING)
    )
    if accounts is not None:
        validator.add_reference_check("account_id", accounts["account_id"])
    return validator


def create_churn_events_validator() -> DataValidator:
    # Keyed by account, but one account may churn more than once
    return (
        _base_validator(Entity.CHURN_EVENTS, unique_key=False)
        .add_range_check("refund_amount_usd", min_value=0, severity=ValidationSeverity.WARNING)
    )


def validate_clean_layer(clean: Dict[str, pl.DataFrame]) -> Dict[str, ValidationResult]:
    """
    Run the pre-built validator for every Clean table present.

    Reference checks against accounts run only when the accounts table is
    part of the layer.
    """
    accounts = clean.get(Entity.ACCOUNTS.value)
    validators = {
        Entity.ACCOUNTS: create_accounts_validator(),
        Entity.SUBSCRIPTIONS: create_subscriptions_validator(accounts),
        Entity.FEATURE_USAGE: create_feature_usage_validator(),
        Entity.SUPPORT_TICKETS: create_support_tickets_validator(accounts),
        Entity.CHURN_EVENTS: create_churn_events_validator(),
    }

    results = {
        entity.value: validator.validate(clean[entity.value])
        for entity, validator in validators.items()
        if entity.value in clean
    }

    logger.info(
        "Clean layer validated",
        status={name: r.status.value for name, r in results.items()},
    )
    return results
