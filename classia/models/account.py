"""
classia/models/account.py

Account model: the billable entity owning quota and subscription state.
"""

from datetime import datetime
from enum import Enum
from typing import Optional
from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel


class PlanTier(str, Enum):
    FREE = "free"
    PRO = "pro"
    INSTITUTIONAL = "institutional"


class SubscriptionStatus(str, Enum):
    NONE = "none"
    ACTIVE = "active"


class Account(BaseModel):
    """
    Snapshot of one account row.

    `subscription_status == active` only means something while
    `subscription_end` is in the future; use the entitlement engine to derive
    the effective plan instead of reading these fields directly.
    """
    model_config = ConfigDict(frozen=True, alias_generator=to_camel, populate_by_name=True)

    id: str
    email: str
    name: str
    plan_tier: PlanTier = PlanTier.FREE
    quota_used: int = 0
    subscription_status: SubscriptionStatus = SubscriptionStatus.NONE
    subscription_plan: Optional[PlanTier] = None
    subscription_start: Optional[datetime] = None
    subscription_end: Optional[datetime] = None
    external_customer_id: Optional[str] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None
