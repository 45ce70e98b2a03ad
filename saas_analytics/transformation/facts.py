"""
Fact Table Builder

Per-account and per-feature fact tables aggregated from the Clean layer
(with derived fields already present).

Aggregation rules:
- counts and sums over an empty group are 0
- means ignore nulls and are null when nothing qualifies
"""

from typing import Dict

import polars as pl
import structlog

from .schemas import Entity, FactTable, Priority

logger = structlog.get_logger(__name__)


class FactBuilder:
    """
    Builds AccountFact, SupportFact and FeatureUsageFact.

    Output rows are sorted by group key so that repeated runs over the same
    Clean layer produce identical tables.
    """

    def build_account_fact(
        self,
        accounts: pl.DataFrame,
        subscriptions: pl.DataFrame,
    ) -> pl.DataFrame:
        """
        One row per account with its subscription rollup.

        Accounts without subscriptions are kept with zero counts and MRR.
        """
        per_account = subscriptions.group_by("account_id").agg([
            pl.len().cast(pl.Int64).alias("total_subscriptions"),
            pl.col("monthly_recurring_revenue").sum().alias("total_mrr"),
            pl.col("subscription_days").mean().alias("avg_subscription_days"),
        ])

        fact = (
            accounts.select(["account_id", "account_name", "plan_tier", "churn_flag_calc"])
            .join(per_account, on="account_id", how="left")
            .with_columns([
                pl.col("total_subscriptions").fill_null(0).cast(pl.Int64),
                pl.col("total_mrr").fill_null(0.0).cast(pl.Float64),
                pl.col("avg_subscription_days").cast(pl.Float64),
            ])
            .sort("account_id", nulls_last=True, maintain_order=True)
        )

        logger.info(f"Built account_fact with {len(fact)} rows")
        return fact

    def build_support_fact(self, tickets: pl.DataFrame) -> pl.DataFrame:
        """One row per account_id having at least one ticket"""
        fact = (
            tickets.filter(pl.col("account_id").is_not_null())
            .group_by("account_id")
            .agg([
                pl.len().cast(pl.Int64).alias("total_tickets"),
                pl.col("resolution_days").mean().alias("avg_resolution_days"),
                pl.col("satisfaction_score").mean().alias("avg_satisfaction_score"),
                _priority_count(Priority.HIGH).alias("high_priority_tickets"),
                _priority_count(Priority.MEDIUM).alias("medium_priority_tickets"),
                _priority_count(Priority.LOW).alias("low_priority_tickets"),
            ])
            .sort("account_id")
        )

        logger.info(f"Built support_fact with {len(fact)} rows")
        return fact

    def build_feature_usage_fact(self, usage: pl.DataFrame) -> pl.DataFrame:
        """Total usage per (feature_name, usage_date)"""
        fact = (
            usage.group_by(["feature_name", "usage_date"])
            .agg(pl.col("usage_count").sum().cast(pl.Int64).alias("total_usage"))
            .sort(["feature_name", "usage_date"], nulls_last=True)
        )

        logger.info(f"Built feature_usage_fact with {len(fact)} rows")
        return fact

    def build(self, clean: Dict[str, pl.DataFrame]) -> Dict[str, pl.DataFrame]:
        """Build every fact table from a complete, derived Clean layer"""
        return {
            FactTable.ACCOUNT_FACT.value: self.build_account_fact(
                clean[Entity.ACCOUNTS.value],
                clean[Entity.SUBSCRIPTIONS.value],
            ),
            FactTable.SUPPORT_FACT.value: self.build_support_fact(
                clean[Entity.SUPPORT_TICKETS.value],
            ),
            FactTable.FEATURE_USAGE_FACT.value: self.build_feature_usage_fact(
                clean[Entity.FEATURE_USAGE.value],
            ),
        }


def _priority_count(priority: Priority) -> pl.Expr:
    return (pl.col("priority_level") == priority.value).sum().cast(pl.Int64)
