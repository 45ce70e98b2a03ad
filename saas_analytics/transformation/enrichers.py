"""
Derived Field Module

Computes Clean-layer fields that depend on other fields or other tables:
- Subscription duration in days
- Ticket resolution time in days
- Account churn flag by churn-event membership

Durations are passed through as computed; a negative value is a data-quality
signal for downstream checks and is never clamped.
"""

from typing import Dict

import polars as pl
import structlog

from .schemas import Entity

logger = structlog.get_logger(__name__)


class DerivedFieldCalculator:
    """
    Adds derived columns to Clean-layer tables.

    churn_flag_calc is a function of the churn-event set passed in, not a
    stored fact: every call rebuilds the index of churned account ids.

    Example:
        calculator = DerivedFieldCalculator()
        clean = calculator.derive(clean)
    """

    @staticmethod
    def _day_difference(df: pl.DataFrame, start_col: str, end_col: str, alias: str) -> pl.DataFrame:
        """Calendar-day difference end - start; null when either side is null"""
        return df.with_columns(
            (pl.col(end_col) - pl.col(start_col)).dt.total_days().cast(pl.Int64).alias(alias)
        )

    def add_subscription_days(self, subscriptions: pl.DataFrame) -> pl.DataFrame:
        """subscription_days = end_date - start_date"""
        df = self._day_difference(subscriptions, "start_date", "end_date", "subscription_days")

        negative = df.filter(pl.col("subscription_days") < 0).height
        if negative:
            logger.warning("Subscriptions ending before they start", count=negative)

        return df

    def add_resolution_days(self, tickets: pl.DataFrame) -> pl.DataFrame:
        """resolution_days = resolved_date - created_date"""
        df = self._day_difference(tickets, "created_date", "resolved_date", "resolution_days")

        negative = df.filter(pl.col("resolution_days") < 0).height
        if negative:
            logger.warning("Tickets resolved before they were created", count=negative)

        return df

    @staticmethod
    def churned_account_index(churn_events: pl.DataFrame) -> pl.Series:
        """Distinct, non-null account ids present in the churn-event set"""
        return (
            churn_events["account_id"]
            .drop_nulls()
            .unique()
            .sort()
            .alias("account_id")
        )

    def add_churn_flag_calc(
        self,
        accounts: pl.DataFrame,
        churn_events: pl.DataFrame,
    ) -> pl.DataFrame:
        """
        churn_flag_calc = account_id appears in any churn event.

        Membership is not date-bounded: any churn event qualifies.
        """
        index = self.churned_account_index(churn_events)

        return accounts.with_columns(
            pl.col("account_id")
            .is_in(index.to_list())
            .fill_null(False)
            .alias("churn_flag_calc")
        )

    def churn_flag_mismatches(self, accounts: pl.DataFrame) -> pl.DataFrame:
        """
        Accounts whose source-provided churn_flag disagrees with churn_flag_calc.

        Accounts with a null source flag are not counted as disagreeing.
        """
        return accounts.filter(
            pl.col("churn_flag").is_not_null()
            & (pl.col("churn_flag") != pl.col("churn_flag_calc"))
        ).select(["account_id", "churn_flag", "churn_flag_calc"])

    def derive(self, clean: Dict[str, pl.DataFrame]) -> Dict[str, pl.DataFrame]:
        """
        Derive every computed field over a complete set of Clean tables.

        Args:
            clean: Clean tables keyed by entity name

        Returns:
            New mapping with derived columns added; untouched tables are reused
        """
        derived = dict(clean)
        derived[Entity.SUBSCRIPTIONS.value] = self.add_subscription_days(
            clean[Entity.SUBSCRIPTIONS.value]
        )
        derived[Entity.SUPPORT_TICKETS.value] = self.add_resolution_days(
            clean[Entity.SUPPORT_TICKETS.value]
        )
        derived[Entity.ACCOUNTS.value] = self.add_churn_flag_calc(
            clean[Entity.ACCOUNTS.value],
            clean[Entity.CHURN_EVENTS.value],
        )

        mismatches = self.churn_flag_mismatches(derived[Entity.ACCOUNTS.value]).height
        if mismatches:
            logger.info(
                "Source churn_flag disagrees with churn-event membership",
                accounts=mismatches,
            )

        return derived
