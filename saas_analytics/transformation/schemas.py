"""
Entity Schemas

Column roles for the five SaaS entities. The Cleaner reads these to decide
how each raw string column is coerced; everything else in the pipeline refers
to entities and tables by the names defined here.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, List, Tuple

import polars as pl


class Priority(str, Enum):
    """Support ticket priority after categorical standardization"""
    HIGH = "HIGH"
    MEDIUM = "MEDIUM"
    LOW = "LOW"
    UNKNOWN = "UNKNOWN"

    @classmethod
    def known(cls) -> List[str]:
        return [p.value for p in cls if p is not cls.UNKNOWN]


PRIORITY_DTYPE = pl.Enum([p.value for p in Priority])


class Entity(str, Enum):
    """Raw/Clean entity table names"""
    ACCOUNTS = "accounts"
    SUBSCRIPTIONS = "subscriptions"
    FEATURE_USAGE = "feature_usage"
    SUPPORT_TICKETS = "support_tickets"
    CHURN_EVENTS = "churn_events"


class FactTable(str, Enum):
    """Fact and metric table names"""
    ACCOUNT_FACT = "account_fact"
    SUPPORT_FACT = "support_fact"
    FEATURE_USAGE_FACT = "feature_usage_fact"
    MONTHLY_CHURN_FACT = "monthly_churn_fact"
    MRR_BY_PLAN_FACT = "mrr_by_plan_fact"
    CHURN_DURATION_FACT = "churn_duration_fact"
    SUPPORT_VS_CHURN_FACT = "support_vs_churn_fact"
    FEATURE_VOLATILITY_FACT = "feature_volatility_fact"


@dataclass(frozen=True)
class EntitySchema:
    """Column roles for one entity"""
    entity: Entity
    primary_key: str
    text_columns: Tuple[str, ...] = ()
    date_columns: Tuple[str, ...] = ()
    int_columns: Tuple[str, ...] = ()
    decimal_columns: Tuple[str, ...] = ()
    bool_columns: Tuple[str, ...] = ()
    nullable_columns: Tuple[str, ...] = ()
    upper_columns: Tuple[str, ...] = ()
    derived_columns: Tuple[str, ...] = field(default=())

    @property
    def columns(self) -> List[str]:
        """Declared raw columns, in declaration order"""
        ordered = (
            (self.primary_key,)
            + self.text_columns
            + self.date_columns
            + self.int_columns
            + self.decimal_columns
            + self.bool_columns
        )
        return list(dict.fromkeys(ordered))


ACCOUNTS = EntitySchema(
    entity=Entity.ACCOUNTS,
    primary_key="account_id",
    text_columns=("account_name", "industry", "country", "referral_source", "plan_tier"),
    date_columns=("signup_date",),
    int_columns=("seats",),
    bool_columns=("is_trial", "churn_flag"),
    nullable_columns=("account_name", "referral_source", "plan_tier"),
    upper_columns=("plan_tier",),
    derived_columns=("churn_flag_calc",),
)

SUBSCRIPTIONS = EntitySchema(
    entity=Entity.SUBSCRIPTIONS,
    primary_key="subscription_id",
    text_columns=("account_id", "plan_name"),
    date_columns=("start_date", "end_date"),
    decimal_columns=("monthly_recurring_revenue",),
    nullable_columns=("end_date",),
    upper_columns=("plan_name",),
    derived_columns=("subscription_days",),
)

FEATURE_USAGE = EntitySchema(
    entity=Entity.FEATURE_USAGE,
    primary_key="usage_id",
    text_columns=("feature_name",),
    date_columns=("usage_date",),
    int_columns=("usage_count",),
)

SUPPORT_TICKETS = EntitySchema(
    entity=Entity.SUPPORT_TICKETS,
    primary_key="ticket_id",
    text_columns=("account_id", "priority"),
    date_columns=("created_date", "resolved_date"),
    int_columns=("satisfaction_score",),
    nullable_columns=("priority", "satisfaction_score"),
    upper_columns=("priority",),
    derived_columns=("priority_level", "resolution_days"),
)

# Churn events carry no identity of their own beyond the account they close.
CHURN_EVENTS = EntitySchema(
    entity=Entity.CHURN_EVENTS,
    primary_key="account_id",
    text_columns=("reason_code",),
    date_columns=("churn_date",),
    decimal_columns=("refund_amount_usd",),
)

ENTITY_SCHEMAS: Dict[Entity, EntitySchema] = {
    schema.entity: schema
    for schema in (ACCOUNTS, SUBSCRIPTIONS, FEATURE_USAGE, SUPPORT_TICKETS, CHURN_EVENTS)
}
