"""
Test Suite Configuration
"""
import pytest
from typing import Dict

import polars as pl

from saas_analytics.config import PipelineSettings, Settings
from saas_analytics.storage import InMemoryTableStore, LayerSnapshot


@pytest.fixture(scope="session")
def test_settings() -> Settings:
    """Create test settings"""
    return Settings(
        app_env="testing",
        debug=True,
    )


@pytest.fixture
def pipeline_settings() -> PipelineSettings:
    """Pipeline settings with the default open-ended active rule"""
    return PipelineSettings(max_workers=2)


@pytest.fixture
def memory_store() -> InMemoryTableStore:
    """Empty in-memory table store"""
    return InMemoryTableStore()


@pytest.fixture
def raw_accounts_df() -> pl.DataFrame:
    """Raw accounts; A3 is the only account with churn events"""
    return pl.DataFrame({
        "account_id": ["A1", "A2", "A3"],
        "account_name": [" Acme ", "", "Globex"],
        "industry": ["FinTech", "EdTech", "DevTools"],
        "country": ["US", "UK", "DE"],
        "signup_date": ["2024-01-15", "", "not-a-date"],
        "referral_source": ["ads", "", "partner"],
        "plan_tier": ["pro", "Basic", ""],
        "seats": ["10", "5", "abc"],
        "is_trial": ["false", "true", "no"],
        "churn_flag": ["false", "false", "true"],
    })


@pytest.fixture
def raw_subscriptions_df() -> pl.DataFrame:
    """Raw subscriptions; A2 has none and A9 does not exist"""
    return pl.DataFrame({
        "subscription_id": ["S1", "S2", "S3", "S4"],
        "account_id": ["A1", "A1", "A3", "A9"],
        "plan_name": ["pro", " Pro ", "basic", "Enterprise"],
        "start_date": ["2024-01-01", "2024-01-01", "2024-02-01", "2024-05-01"],
        "end_date": ["", "2024-03-01", "2024-01-22", ""],
        "monthly_recurring_revenue": ["100", "$50.00", "30", "500"],
    })


@pytest.fixture
def raw_feature_usage_df() -> pl.DataFrame:
    """Raw feature usage; X has three observations, Y has one"""
    return pl.DataFrame({
        "usage_id": ["U1", "U2", "U3", "U4"],
        "usage_date": ["2024-03-01", "2024-03-02", "2024-03-03", "2024-03-01"],
        "feature_name": ["X", "X", "X", "Y"],
        "usage_count": ["10", "20", "30", "7"],
    })


@pytest.fixture
def raw_support_tickets_df() -> pl.DataFrame:
    """Raw support tickets with inconsistent priority labels"""
    return pl.DataFrame({
        "ticket_id": ["T1", "T2", "T3", "T4", "T5"],
        "account_id": ["A1", "A1", "A1", "A3", "A3"],
        "created_date": ["2024-02-01", "2024-02-02", "2024-02-03", "2024-03-01", "2024-03-02"],
        "resolved_date": ["2024-02-04", "", "2024-02-03", "2024-03-11", "2024-03-04"],
        "satisfaction_score": ["5", "", "3", "1", "2"],
        "priority": ["HIGH", "high", "", "Low", "urgent"],
    })


@pytest.fixture
def raw_churn_events_df() -> pl.DataFrame:
    """Raw churn events; one has no usable churn date"""
    return pl.DataFrame({
        "account_id": ["A3", "A3", "A3"],
        "churn_date": ["2024-04-15", "2024-04-20", ""],
        "reason_code": ["pricing", "pricing", "support"],
        "refund_amount_usd": ["$120.00", "0", "10"],
    })


@pytest.fixture
def raw_tables(
    raw_accounts_df,
    raw_subscriptions_df,
    raw_feature_usage_df,
    raw_support_tickets_df,
    raw_churn_events_df,
) -> Dict[str, pl.DataFrame]:
    """All five raw entity tables keyed by entity name"""
    return {
        "accounts": raw_accounts_df,
        "subscriptions": raw_subscriptions_df,
        "feature_usage": raw_feature_usage_df,
        "support_tickets": raw_support_tickets_df,
        "churn_events": raw_churn_events_df,
    }


@pytest.fixture
def raw_snapshot(raw_tables) -> LayerSnapshot:
    """Raw layer snapshot, version 1"""
    return LayerSnapshot(layer="raw", version=1, tables=raw_tables)


@pytest.fixture
def clean_tables(raw_tables) -> Dict[str, pl.DataFrame]:
    """Clean layer with derived fields, built from the raw fixtures"""
    from saas_analytics.transformation import DataCleaner, DerivedFieldCalculator

    cleaner = DataCleaner(date_formats=["%Y-%m-%d"])
    clean = {name: cleaner.clean(df, name)[0] for name, df in raw_tables.items()}
    return DerivedFieldCalculator().derive(clean)
