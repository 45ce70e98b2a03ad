"""
Synthetic Data Generator

Generates messy raw SaaS records for development runs and pipeline tests.
Includes:
- Accounts with mixed-case plan tiers and assorted boolean spellings
- Subscriptions with open-ended and closed date ranges
- Daily feature usage
- Support tickets with inconsistent priority labels
- Churn events for a subset of accounts

Every column is emitted as a string, the way raw extracts arrive. A fraction
of values is deliberately corrupted (blanks, padded whitespace, malformed
dates, currency symbols) so the Cleaner has something to clean.
"""

import random
import uuid
from datetime import date, timedelta
from pathlib import Path
from typing import Dict, List, Optional

import numpy as np
import polars as pl
import structlog
from faker import Faker

from saas_analytics.config import get_settings
from saas_analytics.transformation.schemas import Entity

logger = structlog.get_logger(__name__)


# =============================================================================
# CONFIGURATION
# =============================================================================

INDUSTRIES = ["FinTech", "HealthTech", "EdTech", "Cybersecurity", "DevTools", "Retail"]
COUNTRIES = ["US", "UK", "CA", "DE", "FR", "AU", "IN"]
REFERRAL_SOURCES = ["organic", "ads", "partner", "event", "other"]

PLAN_TIERS = [
    ("Basic", 0.45, 29.0),
    ("Pro", 0.35, 99.0),
    ("Enterprise", 0.20, 499.0),
]

FEATURES = [
    "dashboard", "reports", "api_access", "alerts", "integrations",
    "exports", "sso", "audit_log", "workflows", "ai_assist",
]

PRIORITY_LABELS = ["high", "HIGH", " High ", "medium", "Medium", "low", "LOW", "urgent", ""]

CHURN_REASONS = ["pricing", "support", "features", "competitor", "budget", "unknown"]

# Tickets occasionally reference an account missing from the accounts extract
ORPHAN_ACCOUNT_ID = "A-00000"

TRUE_SPELLINGS = ["True", "true", "1", "yes", "Y"]
FALSE_SPELLINGS = ["False", "false", "0", "no", "N"]


# =============================================================================
# GENERATOR
# =============================================================================

class RawDataGenerator:
    """
    Generate a complete, internally consistent raw dataset.

    Example:
        raw = RawDataGenerator(seed=7).generate_all(n_accounts=200)
        raw["accounts"].write_csv("accounts.csv")
    """

    def __init__(
        self,
        seed: int = 42,
        messiness: float = 0.05,
        start_date: Optional[date] = None,
        end_date: Optional[date] = None,
    ):
        if not 0.0 <= messiness <= 1.0:
            raise ValueError("messiness must be between 0 and 1")

        self.messiness = messiness
        self.end_date = end_date or date(2024, 12, 31)
        self.start_date = start_date or self.end_date - timedelta(days=730)

        self.random = random.Random(seed)
        self.rng = np.random.default_rng(seed)
        self.fake = Faker()
        self.fake.seed_instance(seed)

    # -------------------------------------------------------------------------
    # Corruption helpers
    # -------------------------------------------------------------------------

    def _messy(self) -> bool:
        return self.random.random() < self.messiness

    def _maybe_blank(self, value: str) -> str:
        return "" if self._messy() else value

    def _maybe_padded(self, value: str) -> str:
        return f"  {value} " if self._messy() else value

    def _format_date(self, value: date) -> str:
        if not self._messy():
            return value.isoformat()
        return self.random.choice([
            "",
            value.strftime("%m/%d/%Y"),
            f"{value.year}-02-30",
            "not a date",
        ])

    def _format_money(self, value: float) -> str:
        if self._messy():
            return f"${value:,.2f}"
        return f"{value:.2f}"

    def _format_bool(self, value: bool) -> str:
        if self._messy():
            return self.random.choice(["", "maybe"])
        return self.random.choice(TRUE_SPELLINGS if value else FALSE_SPELLINGS)

    def _random_date(self, start: date, end: date) -> date:
        span = max((end - start).days, 0)
        return start + timedelta(days=int(self.rng.integers(0, span + 1)))

    # -------------------------------------------------------------------------
    # Entities
    # -------------------------------------------------------------------------

    def generate_accounts(self, n: int = 500, churn_rate: float = 0.2) -> pl.DataFrame:
        """Generate n accounts; roughly churn_rate of them carry churn_flag"""
        tiers = self.rng.choice(
            [t[0] for t in PLAN_TIERS],
            size=n,
            p=[t[1] for t in PLAN_TIERS],
        )
        churned = self.rng.random(n) < churn_rate
        seats = self.rng.integers(1, 250, size=n)

        rows = []
        for i in range(n):
            tier = str(tiers[i])
            rows.append({
                "account_id": f"A-{i + 1:05d}",
                "account_name": self._maybe_blank(self._maybe_padded(self.fake.company())),
                "industry": self.random.choice(INDUSTRIES),
                "country": self.random.choice(COUNTRIES),
                "signup_date": self._format_date(self._random_date(self.start_date, self.end_date)),
                "referral_source": self._maybe_blank(self.random.choice(REFERRAL_SOURCES)),
                "plan_tier": self._maybe_blank(self.random.choice([tier, tier.lower(), tier.upper()])),
                "seats": "" if self._messy() else str(int(seats[i])),
                "is_trial": self._format_bool(self.random.random() < 0.1),
                "churn_flag": self._format_bool(bool(churned[i])),
            })

        return pl.DataFrame(rows)

    def generate_subscriptions(self, accounts: pl.DataFrame, per_account: int = 2) -> pl.DataFrame:
        """Generate up to per_account subscriptions for each account"""
        prices = {t[0].upper(): t[2] for t in PLAN_TIERS}
        rows = []

        for account_id in accounts["account_id"].to_list():
            for _ in range(int(self.rng.integers(1, per_account + 1))):
                plan = self.random.choice([t[0] for t in PLAN_TIERS])
                start = self._random_date(self.start_date, self.end_date)
                open_ended = self.random.random() < 0.6
                end = None if open_ended else self._random_date(start, self.end_date)
                mrr = round(prices[plan.upper()] * float(self.rng.uniform(0.8, 1.5)), 2)

                rows.append({
                    "subscription_id": str(uuid.UUID(int=self.random.getrandbits(128))),
                    "account_id": account_id,
                    "plan_name": self._maybe_padded(self.random.choice([plan, plan.lower()])),
                    "start_date": self._format_date(start),
                    "end_date": "" if end is None else self._format_date(end),
                    "monthly_recurring_revenue": self._format_money(mrr),
                })

        return pl.DataFrame(rows)

    def generate_feature_usage(self, days: int = 30) -> pl.DataFrame:
        """Generate daily usage per feature over the last `days` days"""
        rows = []

        for day_offset in range(days):
            usage_date = self.end_date - timedelta(days=day_offset)
            for feature in FEATURES:
                # Poisson counts give realistic day-to-day volatility
                count = int(self.rng.poisson(lam=20 + 5 * FEATURES.index(feature)))
                rows.append({
                    "usage_id": f"U-{len(rows) + 1:07d}",
                    "usage_date": self._format_date(usage_date),
                    "feature_name": self._maybe_padded(feature),
                    "usage_count": "" if self._messy() else str(count),
                })

        return pl.DataFrame(rows)

    def generate_support_tickets(self, accounts: pl.DataFrame, n: int = 1000) -> pl.DataFrame:
        """Generate n support tickets spread across accounts"""
        account_ids = accounts["account_id"].to_list()
        scores = self.rng.choice([1, 2, 3, 4, 5], size=n, p=[0.05, 0.10, 0.25, 0.35, 0.25])
        rows = []

        for i in range(n):
            created = self._random_date(self.start_date, self.end_date)
            resolved = None if self.random.random() < 0.1 else created + timedelta(
                days=int(self.rng.exponential(3.0))
            )
            rows.append({
                "ticket_id": f"T-{i + 1:06d}",
                "account_id": ORPHAN_ACCOUNT_ID if self._messy() else self.random.choice(account_ids),
                "created_date": self._format_date(created),
                "resolved_date": "" if resolved is None else self._format_date(resolved),
                "satisfaction_score": "" if self._messy() else str(int(scores[i])),
                "priority": self.random.choice(PRIORITY_LABELS),
            })

        return pl.DataFrame(rows)

    def generate_churn_events(self, accounts: pl.DataFrame) -> pl.DataFrame:
        """One churn event per flagged account, plus a few the flag missed"""
        rows = []

        for account_id, flag in accounts.select(["account_id", "churn_flag"]).iter_rows():
            flagged = flag.strip().lower() in ("true", "1", "yes", "y")
            # Source flags drift from the event log; keep a small share of mismatches
            if flagged == (self.random.random() < 0.97):
                churn_date = self._random_date(self.start_date, self.end_date)
                rows.append({
                    "account_id": account_id,
                    "churn_date": self._format_date(churn_date),
                    "reason_code": self._maybe_padded(self.random.choice(CHURN_REASONS)),
                    "refund_amount_usd": self._format_money(round(float(self.rng.uniform(0, 200)), 2)),
                })

        if not rows:
            return pl.DataFrame(
                schema={c: pl.Utf8 for c in ["account_id", "churn_date", "reason_code", "refund_amount_usd"]}
            )
        return pl.DataFrame(rows)

    def generate_all(
        self,
        n_accounts: int = 500,
        n_tickets: int = 1000,
        usage_days: int = 30,
    ) -> Dict[str, pl.DataFrame]:
        """Generate all five raw entities"""
        logger.info("Generating synthetic SaaS data", accounts=n_accounts, tickets=n_tickets)

        accounts = self.generate_accounts(n_accounts)
        subscriptions = self.generate_subscriptions(accounts)

        return {
            Entity.ACCOUNTS.value: accounts,
            Entity.SUBSCRIPTIONS.value: subscriptions,
            Entity.FEATURE_USAGE.value: self.generate_feature_usage(days=usage_days),
            Entity.SUPPORT_TICKETS.value: self.generate_support_tickets(accounts, n=n_tickets),
            Entity.CHURN_EVENTS.value: self.generate_churn_events(accounts),
        }


def save_raw_csv(data: Dict[str, pl.DataFrame], output_dir: Optional[str] = None) -> List[Path]:
    """Write each raw table to <output_dir>/<entity>.csv"""
    directory = Path(output_dir or get_settings().storage.raw_path)
    directory.mkdir(parents=True, exist_ok=True)

    paths = []
    for name, df in data.items():
        path = directory / f"{name}.csv"
        df.write_csv(path)
        logger.info(f"Saved {name}: {len(df)} rows", path=str(path))
        paths.append(path)

    return paths
