"""
Unit Tests - Derived Fields
"""
import warnings
from datetime import date

import polars as pl

from saas_analytics.transformation.enrichers import DerivedFieldCalculator


class TestDurations:
    """Tests for day-difference fields"""

    def test_subscription_days(self):
        """Test subscription length in calendar days"""
        df = pl.DataFrame({
            "subscription_id": ["S1", "S2"],
            "start_date": [date(2024, 1, 1), date(2024, 1, 1)],
            "end_date": [date(2024, 3, 1), None],
        })

        result = DerivedFieldCalculator().add_subscription_days(df)

        assert result["subscription_days"].to_list() == [60, None]

    def test_negative_duration_not_clamped(self):
        """End before start yields a negative duration"""
        df = pl.DataFrame({
            "start_date": [date(2024, 2, 1)],
            "end_date": [date(2024, 1, 22)],
        })

        result = DerivedFieldCalculator().add_subscription_days(df)

        assert result["subscription_days"].to_list() == [-10]

    def test_resolution_days(self):
        """Unresolved tickets have null resolution_days"""
        df = pl.DataFrame({
            "created_date": [date(2024, 2, 1), date(2024, 2, 2), None],
            "resolved_date": [date(2024, 2, 4), None, date(2024, 2, 5)],
        })

        result = DerivedFieldCalculator().add_resolution_days(df)

        assert result["resolution_days"].to_list() == [3, None, None]


class TestChurnFlag:
    """Tests for churn_flag_calc"""

    def test_churn_flag_calc_is_membership(self):
        """True iff the account appears in any churn event"""
        accounts = pl.DataFrame({"account_id": ["A1", "A2", "A3"]})
        churn_events = pl.DataFrame({
            "account_id": ["A3", "A3", None],
            "churn_date": [date(2024, 4, 15), None, date(2024, 5, 1)],
        })

        result = DerivedFieldCalculator().add_churn_flag_calc(accounts, churn_events)

        assert result["churn_flag_calc"].to_list() == [False, False, True]

    def test_churn_flag_calc_with_no_events(self):
        """An empty churn-event set marks nobody as churned"""
        accounts = pl.DataFrame({"account_id": ["A1", None]})
        churn_events = pl.DataFrame(schema={"account_id": pl.Utf8})

        result = DerivedFieldCalculator().add_churn_flag_calc(accounts, churn_events)

        assert result["churn_flag_calc"].to_list() == [False, False]

    def test_membership_raises_no_deprecation_warning(self):
        """Membership is computed against a plain list of churned ids"""
        accounts = pl.DataFrame({"account_id": ["A1", "A2"]})
        churn_events = pl.DataFrame({"account_id": ["A2"]})

        with warnings.catch_warnings():
            warnings.simplefilter("error", DeprecationWarning)
            result = DerivedFieldCalculator().add_churn_flag_calc(accounts, churn_events)

        assert result["churn_flag_calc"].to_list() == [False, True]

    def test_new_churn_event_flips_flag(self):
        """Recomputing after a new churn event flips the account"""
        calculator = DerivedFieldCalculator()
        accounts = pl.DataFrame({"account_id": ["A1", "A2"]})
        events = pl.DataFrame({"account_id": ["A2"]})

        before = calculator.add_churn_flag_calc(accounts, events)
        after = calculator.add_churn_flag_calc(
            accounts,
            pl.concat([events, pl.DataFrame({"account_id": ["A1"]})]),
        )

        assert before["churn_flag_calc"].to_list() == [False, True]
        assert after["churn_flag_calc"].to_list() == [True, True]

    def test_churned_account_index(self):
        """Index holds distinct, sorted, non-null ids"""
        events = pl.DataFrame({"account_id": ["A3", None, "A1", "A3"]})

        index = DerivedFieldCalculator.churned_account_index(events)

        assert index.to_list() == ["A1", "A3"]

    def test_churn_flag_mismatches(self):
        """Source flags that disagree with membership are reported"""
        accounts = pl.DataFrame({
            "account_id": ["A1", "A2", "A3"],
            "churn_flag": [True, None, False],
            "churn_flag_calc": [False, True, False],
        })

        result = DerivedFieldCalculator().churn_flag_mismatches(accounts)

        assert result["account_id"].to_list() == ["A1"]


class TestDerive:
    """Tests for deriving over a whole Clean layer"""

    def test_derive_adds_all_fields(self, clean_tables):
        """Every derived column is present after derive"""
        assert "subscription_days" in clean_tables["subscriptions"].columns
        assert "resolution_days" in clean_tables["support_tickets"].columns
        assert "churn_flag_calc" in clean_tables["accounts"].columns

    def test_null_end_date_gives_null_days(self, clean_tables):
        """Null end_date propagates to null subscription_days"""
        subs = clean_tables["subscriptions"]

        open_ended = subs.filter(pl.col("end_date").is_null())

        assert open_ended["subscription_days"].null_count() == len(open_ended)

    def test_churn_consistency(self, clean_tables):
        """churn_flag_calc matches churn-event membership for every account"""
        churned = set(clean_tables["churn_events"]["account_id"].drop_nulls().to_list())

        for account_id, flag in clean_tables["accounts"].select(
            ["account_id", "churn_flag_calc"]
        ).iter_rows():
            assert flag == (account_id in churned)
