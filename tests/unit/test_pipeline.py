"""
Unit Tests - Pipeline Orchestration
"""
from datetime import date

import pytest
import polars as pl
import structlog
from polars.testing import assert_frame_equal

from saas_analytics.config import ActivePredicate, PipelineSettings
from saas_analytics.data import RawDataGenerator
from saas_analytics.quality.validators import ValidationStatus
from saas_analytics.storage import InMemoryTableStore, LayerSnapshot, ParquetTableStore
from saas_analytics.transformation.schemas import ENTITY_SCHEMAS, Entity, FactTable
from saas_analytics.transformation.transformers import (
    PipelineStage,
    SaaSPipeline,
    run_pipeline,
)


class TestSaaSPipeline:
    """Tests for SaaSPipeline"""

    @pytest.mark.asyncio
    async def test_run(self, raw_snapshot, memory_store, pipeline_settings):
        """A full run persists every Clean and Fact table"""
        pipeline = SaaSPipeline(store=memory_store, settings=pipeline_settings)

        result = await pipeline.run(raw_snapshot)

        assert result.passed
        assert result.clean.version == result.facts.version == 1
        assert set(result.clean) == {e.value for e in Entity}
        assert set(result.facts) == {f.value for f in FactTable}
        assert [s.stage for s in result.stages] == list(PipelineStage)
        assert ("fact", "account_fact") in memory_store.list_tables()

    @pytest.mark.asyncio
    async def test_clean_layer_is_concurrent_per_entity(self, raw_snapshot, pipeline_settings):
        """Test cleaning stats are reported per entity"""
        pipeline = SaaSPipeline(settings=pipeline_settings)

        clean, stats = await pipeline.clean_layer(raw_snapshot)

        assert clean.layer == "clean"
        assert set(stats) == {e.value for e in Entity}
        assert stats["accounts"].parse_failures == 3

    @pytest.mark.asyncio
    async def test_run_keeps_caller_log_context(self, raw_snapshot, pipeline_settings):
        """Context bound before a run is still bound after it"""
        structlog.contextvars.bind_contextvars(job="nightly")
        try:
            await SaaSPipeline(settings=pipeline_settings).run(raw_snapshot)

            assert structlog.contextvars.get_contextvars() == {"job": "nightly"}
        finally:
            structlog.contextvars.clear_contextvars()

    def test_row_counts_preserved(self, raw_snapshot, pipeline_settings):
        """Every Clean table keeps the raw row count"""
        result = run_pipeline(raw_snapshot, settings=pipeline_settings)

        assert result.clean.row_counts() == raw_snapshot.row_counts()
        assert len(result.facts["account_fact"]) == len(raw_snapshot["accounts"])
        assert len(result.facts["support_vs_churn_fact"]) <= 2

    def test_idempotent(self, raw_snapshot, pipeline_settings):
        """Two runs over unchanged input produce identical tables"""
        first = InMemoryTableStore()
        second = InMemoryTableStore()

        run_pipeline(raw_snapshot, store=first, settings=pipeline_settings)
        run_pipeline(raw_snapshot, store=second, settings=pipeline_settings)
        run_pipeline(raw_snapshot, store=second, settings=pipeline_settings)

        assert first.list_tables() == second.list_tables()
        for schema, table in first.list_tables():
            assert_frame_equal(first.read(schema, table), second.read(schema, table))

    def test_idempotent_parquet_bytes(self, raw_snapshot, pipeline_settings, tmp_path):
        """Reruns write byte-identical parquet files"""
        first = ParquetTableStore(tmp_path / "first")
        second = ParquetTableStore(tmp_path / "second")

        run_pipeline(raw_snapshot, store=first, settings=pipeline_settings)
        run_pipeline(raw_snapshot, store=second, settings=pipeline_settings)

        for schema, table in first.list_tables():
            assert (
                (first.root / schema / f"{table}.parquet").read_bytes()
                == (second.root / schema / f"{table}.parquet").read_bytes()
            )

    def test_case_invariant(self, raw_snapshot, pipeline_settings):
        """Categorical text is null or uppercase after a run"""
        result = run_pipeline(raw_snapshot, settings=pipeline_settings)

        for table, column in [
            ("accounts", "plan_tier"),
            ("subscriptions", "plan_name"),
            ("support_tickets", "priority"),
        ]:
            values = result.clean[table][column].drop_nulls().to_list()
            assert all(v == v.upper() for v in values)

    def test_date_robustness(self, raw_snapshot, pipeline_settings):
        """Blank and malformed signup dates are null, not errors"""
        result = run_pipeline(raw_snapshot, settings=pipeline_settings)

        accounts = result.clean["accounts"]
        assert accounts.schema["signup_date"] == pl.Date
        assert accounts["signup_date"].to_list() == [date(2024, 1, 15), None, None]

    def test_new_churn_event_flips_flag(self, raw_snapshot, pipeline_settings):
        """Adding a churn event for A1 marks it churned on the next run"""
        before = run_pipeline(raw_snapshot, settings=pipeline_settings)

        events = raw_snapshot["churn_events"]
        extra = pl.DataFrame({
            "account_id": ["A1"],
            "churn_date": ["2024-06-01"],
            "reason_code": ["budget"],
            "refund_amount_usd": ["0"],
        })
        tables = dict(raw_snapshot.tables)
        tables["churn_events"] = pl.concat([events, extra])
        after = run_pipeline(
            LayerSnapshot(layer="raw", version=2, tables=tables),
            settings=pipeline_settings,
        )

        def flag(result, account_id):
            fact = result.facts["account_fact"]
            return fact.filter(pl.col("account_id") == account_id)["churn_flag_calc"].item()

        assert flag(before, "A1") is False
        assert flag(after, "A1") is True
        assert after.facts.version == 2

    def test_as_of_predicate_from_settings(self, raw_snapshot):
        """The active rule follows pipeline settings"""
        settings = PipelineSettings(
            active_predicate=ActivePredicate.AS_OF,
            as_of_date=date(2024, 2, 15),
        )

        result = run_pipeline(raw_snapshot, settings=settings)

        mrr = result.facts["mrr_by_plan_fact"]
        assert mrr["total_mrr"].to_list() == pytest.approx([150.0])

    def test_partial_run_detected(self, raw_snapshot, pipeline_settings, memory_store):
        """Validation against a store missing a table reports a discrepancy"""
        pipeline = SaaSPipeline(store=memory_store, settings=pipeline_settings)
        run_pipeline(raw_snapshot, store=memory_store, settings=pipeline_settings)

        damaged = InMemoryTableStore()
        for schema, table in memory_store.list_tables():
            if table != "support_fact":
                damaged.write(schema, table, memory_store.read(schema, table))
        pipeline.store = damaged

        report = pipeline.validate(raw_snapshot)

        assert report.status == ValidationStatus.FAILED
        assert [c.name for c in report.discrepancies] == ["exists_fact_support_fact"]

    def test_validation_can_be_disabled(self, raw_snapshot, pipeline_settings):
        """Test skipping the validation stage"""
        result = run_pipeline(raw_snapshot, settings=pipeline_settings, enable_validation=False)

        assert result.validation is None
        assert result.quality == {}
        assert PipelineStage.VALIDATE not in [s.stage for s in result.stages]


class TestGeneratedData:
    """Runs the pipeline over generated messy data"""

    def test_generated_dataset_runs_clean(self, pipeline_settings):
        """Generated raw data survives the full pipeline without errors"""
        data = RawDataGenerator(seed=7, messiness=0.2).generate_all(
            n_accounts=50,
            n_tickets=80,
            usage_days=5,
        )
        raw = LayerSnapshot(layer="raw", version=1, tables=data)

        result = run_pipeline(raw, settings=pipeline_settings)

        assert result.passed
        assert result.clean.row_counts() == raw.row_counts()
        assert len(result.facts["account_fact"]) == 50
        for entity_result in result.quality.values():
            assert entity_result.failed_checks == 0

    def test_generator_is_deterministic(self):
        """Same seed, same data"""
        first = RawDataGenerator(seed=3).generate_all(n_accounts=10, n_tickets=10, usage_days=2)
        second = RawDataGenerator(seed=3).generate_all(n_accounts=10, n_tickets=10, usage_days=2)

        for name in first:
            assert_frame_equal(first[name], second[name])

    def test_invalid_messiness(self):
        with pytest.raises(ValueError):
            RawDataGenerator(messiness=1.5)

    def test_generated_columns_match_entity_schemas(self):
        """Generated tables carry exactly the declared raw columns"""
        data = RawDataGenerator(seed=5).generate_all(n_accounts=10, n_tickets=10, usage_days=2)

        for entity, schema in ENTITY_SCHEMAS.items():
            assert set(data[entity.value].columns) == set(schema.columns), entity.value
