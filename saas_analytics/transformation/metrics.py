"""
SaaS Metrics Engine

Cross-cutting metric tables answering specific business questions:
- Monthly churn (distinct churned accounts per month)
- MRR by plan tier over currently active subscriptions
- Average subscription length before churn by plan tier
- Support load and quality for churned vs retained accounts
- Feature usage volatility

Each metric is an independent, order-insensitive aggregation over the Clean
layer. Nothing here mutates its inputs.
"""

from dataclasses import dataclass
from datetime import date
from typing import Dict, Optional

import polars as pl
import structlog

from saas_analytics.config import ActivePredicate, get_settings
from saas_analytics.exceptions import ConfigError
from .schemas import Entity, FactTable

logger = structlog.get_logger(__name__)


@dataclass(frozen=True)
class ActiveSubscriptionRule:
    """
    Which subscriptions count as currently active.

    The source data carries no activity flag, so the rule is configuration:
    - open_ended: end_date is null
    - as_of: end_date is null or end_date >= as_of_date
    - all: every subscription

    TODO: confirm the production rule with the revenue reporting owners; the
    default is open_ended until then.
    """
    predicate: ActivePredicate = ActivePredicate.OPEN_ENDED
    as_of_date: Optional[date] = None

    def __post_init__(self):
        if self.predicate == ActivePredicate.AS_OF and self.as_of_date is None:
            raise ConfigError("as_of_date is required for the as_of active predicate")

    @classmethod
    def from_settings(cls) -> "ActiveSubscriptionRule":
        pipeline = get_settings().pipeline
        return cls(predicate=pipeline.active_predicate, as_of_date=pipeline.as_of_date)

    def expression(self) -> pl.Expr:
        """Boolean filter expression over a subscriptions frame"""
        if self.predicate == ActivePredicate.ALL:
            return pl.lit(True)
        if self.predicate == ActivePredicate.AS_OF:
            return pl.col("end_date").is_null() | (pl.col("end_date") >= pl.lit(self.as_of_date))
        return pl.col("end_date").is_null()


class MetricsEngine:
    """
    Computes the five SaaS metric tables.

    Example:
        engine = MetricsEngine(ActiveSubscriptionRule(ActivePredicate.AS_OF, date(2024, 6, 30)))
        metrics = engine.compute(clean)
    """

    def __init__(self, active_rule: Optional[ActiveSubscriptionRule] = None):
        self.active_rule = active_rule or ActiveSubscriptionRule.from_settings()

    def monthly_churn(self, churn_events: pl.DataFrame) -> pl.DataFrame:
        """Distinct churned accounts per churn month; undated events are excluded"""
        return (
            churn_events.filter(pl.col("churn_date").is_not_null())
            .with_columns(pl.col("churn_date").dt.truncate("1mo").alias("churn_month"))
            .group_by("churn_month")
            .agg(
                pl.col("account_id").drop_nulls().n_unique().cast(pl.Int64).alias("churned_accounts")
            )
            .sort("churn_month")
        )

    def mrr_by_plan(self, subscriptions: pl.DataFrame, accounts: pl.DataFrame) -> pl.DataFrame:
        """Total MRR of active subscriptions grouped by the owning account's plan tier"""
        return (
            subscriptions.filter(self.active_rule.expression())
            .join(accounts.select(["account_id", "plan_tier"]), on="account_id", how="inner")
            .group_by("plan_tier")
            .agg([
                pl.len().cast(pl.Int64).alias("active_subscriptions"),
                pl.col("monthly_recurring_revenue").sum().cast(pl.Float64).alias("total_mrr"),
            ])
            .sort("plan_tier", nulls_last=True)
        )

    def churn_duration(self, subscriptions: pl.DataFrame, accounts: pl.DataFrame) -> pl.DataFrame:
        """Mean subscription length of churned accounts by plan tier"""
        return (
            subscriptions.filter(pl.col("subscription_days").is_not_null())
            .join(
                accounts.filter(pl.col("churn_flag_calc")).select(["account_id", "plan_tier"]),
                on="account_id",
                how="inner",
            )
            .group_by("plan_tier")
            .agg([
                pl.len().cast(pl.Int64).alias("churned_subscriptions"),
                pl.col("subscription_days").mean().alias("avg_days_before_churn"),
            ])
            .sort("plan_tier", nulls_last=True)
        )

    def support_vs_churn(self, accounts: pl.DataFrame, tickets: pl.DataFrame) -> pl.DataFrame:
        """
        Ticket volume and quality split by churn_flag_calc.

        Accounts are left-joined to tickets: an account without tickets
        still counts toward `accounts` but adds nothing to `total_tickets`.
        Every joined ticket row counts, whether or not its ticket_id is set.
        """
        ticket_rows = tickets.select(["account_id", "resolution_days", "satisfaction_score"]).with_columns(
            pl.lit(1).alias("_ticket")
        )
        return (
            accounts.select(["account_id", "churn_flag_calc"])
            .join(
                ticket_rows,
                on="account_id",
                how="left",
            )
            .group_by("churn_flag_calc")
            .agg([
                pl.col("account_id").drop_nulls().n_unique().cast(pl.Int64).alias("accounts"),
                pl.col("_ticket").count().cast(pl.Int64).alias("total_tickets"),
                pl.col("resolution_days").mean().alias("avg_resolution_days"),
                pl.col("satisfaction_score").mean().alias("avg_satisfaction"),
            ])
            .sort("churn_flag_calc")
        )

    def feature_volatility(self, usage: pl.DataFrame) -> pl.DataFrame:
        """Mean and sample standard deviation of usage_count per feature"""
        observations = pl.col("usage_count").count()
        return (
            usage.group_by("feature_name")
            .agg([
                observations.cast(pl.Int64).alias("observations"),
                pl.col("usage_count").mean().alias("avg_daily_usage"),
                pl.when(observations >= 2)
                .then(pl.col("usage_count").std(ddof=1))
                .otherwise(None)
                .alias("usage_volatility"),
            ])
            .sort("feature_name", nulls_last=True)
        )

    def compute(self, clean: Dict[str, pl.DataFrame]) -> Dict[str, pl.DataFrame]:
        """Compute every metric table from a complete, derived Clean layer"""
        accounts = clean[Entity.ACCOUNTS.value]
        subscriptions = clean[Entity.SUBSCRIPTIONS.value]

        metrics = {
            FactTable.MONTHLY_CHURN_FACT.value: self.monthly_churn(clean[Entity.CHURN_EVENTS.value]),
            FactTable.MRR_BY_PLAN_FACT.value: self.mrr_by_plan(subscriptions, accounts),
            FactTable.CHURN_DURATION_FACT.value: self.churn_duration(subscriptions, accounts),
            FactTable.SUPPORT_VS_CHURN_FACT.value: self.support_vs_churn(
                accounts, clean[Entity.SUPPORT_TICKETS.value]
            ),
            FactTable.FEATURE_VOLATILITY_FACT.value: self.feature_volatility(
                clean[Entity.FEATURE_USAGE.value]
            ),
        }

        logger.info(
            "Metrics computed",
            active_predicate=self.active_rule.predicate.value,
            tables={name: len(df) for name, df in metrics.items()},
        )
        return metrics
