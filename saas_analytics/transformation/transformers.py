"""
Pipeline Orchestrator

Runs the staged Raw -> Clean -> Derived -> Fact/Metric pipeline and persists
each layer as full-table replacements.

Stages run strictly in order. Within the cleaning stage the five entities are
independent and are cleaned concurrently.
"""

import asyncio
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Dict, List, Optional, Tuple

import polars as pl
import structlog

from saas_analytics.config import PipelineSettings, get_settings
from saas_analytics.config.logging import run_context
from saas_analytics.quality.layers import LayerValidationReport, LayerValidator
from saas_analytics.quality.validators import ValidationResult, validate_clean_layer
from saas_analytics.storage import InMemoryTableStore, LayerSnapshot, TableStore
from .cleaners import CleaningStats, DataCleaner
from .enrichers import DerivedFieldCalculator
from .facts import FactBuilder
from .metrics import ActiveSubscriptionRule, MetricsEngine
from .schemas import Entity

logger = structlog.get_logger(__name__)


class PipelineStage(str, Enum):
    """Pipeline stages, in execution order"""
    CLEAN = "clean"
    DERIVE = "derive"
    FACTS = "facts"
    METRICS = "metrics"
    PERSIST = "persist"
    VALIDATE = "validate"


@dataclass
class StageResult:
    """Timing and output sizes of one stage"""
    stage: PipelineStage
    started_at: datetime
    completed_at: datetime
    row_counts: Dict[str, int] = field(default_factory=dict)

    @property
    def duration_seconds(self) -> float:
        return (self.completed_at - self.started_at).total_seconds()


@dataclass
class PipelineResult:
    """Result of a full pipeline run"""
    raw: LayerSnapshot
    clean: LayerSnapshot
    facts: LayerSnapshot
    cleaning_stats: Dict[str, CleaningStats] = field(default_factory=dict)
    quality: Dict[str, ValidationResult] = field(default_factory=dict)
    validation: Optional[LayerValidationReport] = None
    stages: List[StageResult] = field(default_factory=list)

    @property
    def duration_seconds(self) -> float:
        return sum(s.duration_seconds for s in self.stages)

    @property
    def passed(self) -> bool:
        return self.validation is None or self.validation.passed


def _now() -> datetime:
    return datetime.now(timezone.utc)


class SaaSPipeline:
    """
    Staged transformation pipeline.

    Example:
        pipeline = SaaSPipeline(store=InMemoryTableStore())
        result = await pipeline.run(raw_snapshot)
    """

    def __init__(
        self,
        store: Optional[TableStore] = None,
        settings: Optional[PipelineSettings] = None,
        active_rule: Optional[ActiveSubscriptionRule] = None,
        enable_validation: bool = True,
    ):
        self.settings = settings or get_settings().pipeline
        self.store = store if store is not None else InMemoryTableStore()
        self.enable_validation = enable_validation

        self.cleaner = DataCleaner(date_formats=self.settings.date_formats)
        self.calculator = DerivedFieldCalculator()
        self.fact_builder = FactBuilder()
        self.metrics_engine = MetricsEngine(
            active_rule
            or ActiveSubscriptionRule(
                predicate=self.settings.active_predicate,
                as_of_date=self.settings.as_of_date,
            )
        )

    async def clean_layer(
        self,
        raw: LayerSnapshot,
    ) -> Tuple[LayerSnapshot, Dict[str, CleaningStats]]:
        """Clean every entity concurrently, bounded by max_workers"""
        semaphore = asyncio.Semaphore(self.settings.max_workers)

        async def clean_one(entity: Entity) -> Tuple[str, pl.DataFrame, CleaningStats]:
            async with semaphore:
                df, stats = await asyncio.to_thread(self.cleaner.clean, raw[entity.value], entity)
            return entity.value, df, stats

        cleaned = await asyncio.gather(*(clean_one(entity) for entity in Entity))

        tables = {name: df for name, df, _ in cleaned}
        stats = {name: s for name, _, s in cleaned}
        return raw.derive("clean", tables), stats

    def derive_layer(self, clean: LayerSnapshot) -> LayerSnapshot:
        """Add derived fields; needs the complete Clean layer"""
        return clean.derive("clean", self.calculator.derive(dict(clean.tables)))

    def fact_layer(self, clean: LayerSnapshot) -> Tuple[LayerSnapshot, List[StageResult]]:
        """Build fact tables then metric tables from the derived Clean layer"""
        tables = dict(clean.tables)

        started_at = _now()
        facts = self.fact_builder.build(tables)
        facts_stage = StageResult(PipelineStage.FACTS, started_at, _now(), _counts(facts))

        started_at = _now()
        metrics = self.metrics_engine.compute(tables)
        metrics_stage = StageResult(PipelineStage.METRICS, started_at, _now(), _counts(metrics))

        return clean.derive("fact", {**facts, **metrics}), [facts_stage, metrics_stage]

    def persist(self, clean: LayerSnapshot, facts: LayerSnapshot) -> None:
        """Replace every Clean and Fact table in the store"""
        self.store.write_snapshot(self.settings.clean_schema, clean)
        self.store.write_snapshot(self.settings.fact_schema, facts)

    def validate(self, raw: LayerSnapshot) -> LayerValidationReport:
        """Read-only post-run health check against the store"""
        validator = LayerValidator(
            self.store,
            raw_schema=self.settings.raw_schema,
            clean_schema=self.settings.clean_schema,
            fact_schema=self.settings.fact_schema,
        )
        return validator.validate(raw_counts=raw.row_counts())

    async def run(self, raw: LayerSnapshot) -> PipelineResult:
        """
        Run the full pipeline over a raw snapshot.

        Pipeline:
        1. Clean all entities (concurrently)
        2. Derive computed fields
        3. Build fact tables and metric tables
        4. Persist Clean and Fact layers
        5. Validate the store (optional)
        """
        with run_context(snapshot_version=raw.version):
            return await self._run(raw)

    async def _run(self, raw: LayerSnapshot) -> PipelineResult:
        logger.info(
            "Starting pipeline run",
            version=raw.version,
            raw_rows=raw.row_counts(),
        )
        stages: List[StageResult] = []

        started_at = _now()
        clean, cleaning_stats = await self.clean_layer(raw)
        stages.append(StageResult(PipelineStage.CLEAN, started_at, _now(), clean.row_counts()))

        started_at = _now()
        clean = self.derive_layer(clean)
        stages.append(StageResult(PipelineStage.DERIVE, started_at, _now(), clean.row_counts()))

        facts, fact_stages = self.fact_layer(clean)
        stages.extend(fact_stages)

        started_at = _now()
        self.persist(clean, facts)
        stages.append(StageResult(PipelineStage.PERSIST, started_at, _now()))

        quality: Dict[str, ValidationResult] = {}
        validation = None
        if self.enable_validation:
            started_at = _now()
            quality = validate_clean_layer(dict(clean.tables))
            validation = self.validate(raw)
            stages.append(StageResult(PipelineStage.VALIDATE, started_at, _now()))

        result = PipelineResult(
            raw=raw,
            clean=clean,
            facts=facts,
            cleaning_stats=cleaning_stats,
            quality=quality,
            validation=validation,
            stages=stages,
        )

        logger.info(
            f"Pipeline run complete in {result.duration_seconds:.2f}s",
            version=raw.version,
            fact_rows=facts.row_counts(),
            validation=validation.status.value if validation else "skipped",
        )

        return result


def _counts(tables: Dict[str, pl.DataFrame]) -> Dict[str, int]:
    return {name: len(df) for name, df in tables.items()}


def run_pipeline(
    raw: LayerSnapshot,
    store: Optional[TableStore] = None,
    **kwargs,
) -> PipelineResult:
    """
    Convenience function to run the pipeline synchronously.

    Args:
        raw: Raw snapshot keyed by entity name
        store: Table store receiving the Clean and Fact layers
        **kwargs: Additional SaaSPipeline parameters

    Returns:
        PipelineResult
    """
    return asyncio.run(SaaSPipeline(store=store, **kwargs).run(raw))
