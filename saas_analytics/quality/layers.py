"""
Layer Validation

Post-run health checks over a table store: confirms every expected Clean and
Fact table exists and reports its row count. Row counts are compared where the
layer contract fixes them:
- each Clean table has exactly as many rows as its Raw table
- account_fact has one row per Clean account
- support_vs_churn_fact has at most two rows

Read-only: the validator never writes to the store. Discrepancies are reported
to the caller, not corrected.
"""

from dataclasses import dataclass, field
from typing import Dict, List, Optional, Tuple

import structlog

from saas_analytics.config import get_settings
from saas_analytics.storage import TableStore
from saas_analytics.transformation.schemas import Entity, FactTable
from .validators import (
    ValidationCheck,
    ValidationResult,
    ValidationSeverity,
    ValidationStatus,
    utcnow,
    summarize_checks,
)

logger = structlog.get_logger(__name__)


@dataclass
class TableStatus:
    """Existence and size of one table"""
    schema: str
    table: str
    exists: bool
    row_count: Optional[int] = None

    @property
    def qualified_name(self) -> str:
        return f"{self.schema}.{self.table}"


@dataclass
class LayerValidationReport:
    """Tables inspected plus the checks run over them"""
    tables: List[TableStatus] = field(default_factory=list)
    result: Optional[ValidationResult] = None

    @property
    def status(self) -> ValidationStatus:
        return self.result.status if self.result else ValidationStatus.PASSED

    @property
    def passed(self) -> bool:
        return self.status == ValidationStatus.PASSED

    @property
    def discrepancies(self) -> List[ValidationCheck]:
        return [c for c in self.result.checks if not c.passed] if self.result else []

    def row_counts(self) -> Dict[str, Optional[int]]:
        return {t.qualified_name: t.row_count for t in self.tables}


class LayerValidator:
    """
    Checks that a pipeline run left complete Clean and Fact layers behind.

    Example:
        report = LayerValidator(store).validate(raw_counts=raw.row_counts())
        if not report.passed:
            for check in report.discrepancies:
                print(check.message)
    """

    def __init__(
        self,
        store: TableStore,
        raw_schema: Optional[str] = None,
        clean_schema: Optional[str] = None,
        fact_schema: Optional[str] = None,
    ):
        pipeline = get_settings().pipeline
        self.store = store
        self.raw_schema = raw_schema or pipeline.raw_schema
        self.clean_schema = clean_schema or pipeline.clean_schema
        self.fact_schema = fact_schema or pipeline.fact_schema

    def expected_tables(self) -> List[Tuple[str, str]]:
        """(schema, table) pairs a complete run must produce"""
        return (
            [(self.clean_schema, e.value) for e in Entity]
            + [(self.fact_schema, f.value) for f in FactTable]
        )

    def list_tables(self) -> List[Tuple[str, str]]:
        """(schema, table) pairs currently in the store"""
        return self.store.list_tables()

    def _raw_counts_from_store(self) -> Dict[str, int]:
        present = set(self.store.list_tables())
        return {
            e.value: self.store.row_count(self.raw_schema, e.value)
            for e in Entity
            if (self.raw_schema, e.value) in present
        }

    def validate(self, raw_counts: Optional[Dict[str, int]] = None) -> LayerValidationReport:
        """
        Inspect the store and report on every expected table.

        Args:
            raw_counts: Raw row counts per entity; read from the store's raw
                schema when omitted

        Returns:
            LayerValidationReport
        """
        started_at = utcnow()
        present = set(self.store.list_tables())
        raw_counts = raw_counts if raw_counts is not None else self._raw_counts_from_store()

        statuses: List[TableStatus] = []
        checks: List[ValidationCheck] = []

        for schema, table in self.expected_tables():
            exists = (schema, table) in present
            row_count = self.store.row_count(schema, table) if exists else None
            status = TableStatus(schema=schema, table=table, exists=exists, row_count=row_count)
            statuses.append(status)

            checks.append(ValidationCheck(
                name=f"exists_{schema}_{table}",
                passed=exists,
                severity=ValidationSeverity.ERROR,
                message=f"Table {status.qualified_name} has {row_count} rows" if exists else f"Table {status.qualified_name} is missing",
                details={"row_count": row_count},
                total_rows=row_count or 0,
            ))

        counts = {(s.schema, s.table): s.row_count for s in statuses}

        for entity in Entity:
            expected = raw_counts.get(entity.value)
            actual = counts.get((self.clean_schema, entity.value))
            if expected is None or actual is None:
                continue
            checks.append(_count_check(
                f"row_count_{entity.value}",
                f"{self.clean_schema}.{entity.value}",
                actual,
                expected,
            ))

        accounts = counts.get((self.clean_schema, Entity.ACCOUNTS.value))
        account_fact = counts.get((self.fact_schema, FactTable.ACCOUNT_FACT.value))
        if accounts is not None and account_fact is not None:
            checks.append(_count_check(
                "row_count_account_fact",
                f"{self.fact_schema}.{FactTable.ACCOUNT_FACT.value}",
                account_fact,
                accounts,
            ))

        support_vs_churn = counts.get((self.fact_schema, FactTable.SUPPORT_VS_CHURN_FACT.value))
        if support_vs_churn is not None:
            checks.append(ValidationCheck(
                name="row_count_support_vs_churn_fact",
                passed=support_vs_churn <= 2,
                severity=ValidationSeverity.ERROR,
                message=f"support_vs_churn_fact has {support_vs_churn} groups (at most 2 expected)",
                details={"row_count": support_vs_churn},
                total_rows=support_vs_churn,
            ))

        report = LayerValidationReport(
            tables=statuses,
            result=summarize_checks(checks, started_at),
        )

        if report.passed:
            logger.info("Layer validation passed", tables=len(statuses))
        else:
            logger.warning(
                "Layer validation found discrepancies",
                discrepancies=[c.name for c in report.discrepancies],
            )

        return report


def _count_check(name: str, table: str, actual: int, expected: int) -> ValidationCheck:
    passed = actual == expected
    return ValidationCheck(
        name=name,
        passed=passed,
        severity=ValidationSeverity.ERROR,
        message=f"{table} has {actual} rows" if passed else f"{table} has {actual} rows, expected {expected}",
        details={"expected": expected, "actual": actual},
        failed_rows=abs(actual - expected),
        total_rows=actual,
    )
