"""
classia/features/entitlements/service.py

Entitlement & quota engine.

Handles:
- Effective plan derivation from the subscription window (lazy expiry)
- Quota limit, remaining allowance and alert level
- Fresh per-request evaluation (nothing here is cached)

Expiry is never persisted: an `active` subscription whose window has closed
is simply evaluated as free. Every caller goes through `evaluate` so there is
one rule for what "subscribed" means.
"""

from dataclasses import dataclass
from datetime import datetime, timezone
from enum import Enum
from typing import Optional, Any, Dict
import logging

from classia.core.config import settings
from classia.features.accounts.service import get_account
from classia.models.account import Account, PlanTier, SubscriptionStatus


logger = logging.getLogger(__name__)

# Alert thresholds on used/limit, highest first
ALERT_THRESHOLDS = (
    (1.0, "blocked"),
    (0.8, "warning"),
    (0.6, "info"),
)


class AlertLevel(str, Enum):
    NONE = "none"
    INFO = "info"
    WARNING = "warning"
    BLOCKED = "blocked"


@dataclass(frozen=True)
class Entitlement:
    plan: PlanTier
    limit: Optional[int]  # None = unbounded
    used: int
    remaining: Optional[int]  # None = unbounded
    blocked: bool
    alert: AlertLevel

    def to_dict(self) -> Dict[str, Any]:
        return {
            "plan": self.plan.value,
            "limit": self.limit,
            "used": self.used,
            "remaining": self.remaining,
            "blocked": self.blocked,
            "alert": self.alert.value,
        }


def _normalize_now(now: Optional[Any]) -> datetime:
    if now is None:
        return datetime.now(timezone.utc)
    if getattr(now, "tzinfo", None) is None:
        return now.replace(tzinfo=timezone.utc)
    return now


def plan_limit(plan: PlanTier) -> Optional[int]:
    """Quota limit for a plan; None means unbounded."""
    if plan == PlanTier.INSTITUTIONAL:
        return None
    if plan == PlanTier.PRO:
        return settings.PRO_TIER_LIMIT
    return settings.FREE_TIER_LIMIT


def effective_plan(account: Account, now: Optional[datetime] = None) -> PlanTier:
    """Plan in force at `now`: the subscribed plan while its window is open, else free."""
    normalized_now = _normalize_now(now)
    if (
        account.subscription_status == SubscriptionStatus.ACTIVE
        and account.subscription_plan is not None
        and account.subscription_end is not None
        and _normalize_now(account.subscription_end) > normalized_now
    ):
        return account.subscription_plan
    return PlanTier.FREE


def alert_level(used: int, limit: Optional[int]) -> AlertLevel:
    if limit is None:
        return AlertLevel.NONE
    if limit <= 0:
        return AlertLevel.BLOCKED
    ratio = used / limit
    for threshold, level in ALERT_THRESHOLDS:
        if ratio >= threshold:
            return AlertLevel(level)
    return AlertLevel.NONE


def evaluate(account: Account, now: Optional[datetime] = None) -> Entitlement:
    """Derive the entitlement of `account` at `now`. Pure and deterministic."""
    plan = effective_plan(account, now)
    limit = plan_limit(plan)
    used = account.quota_used

    if limit is None:
        return Entitlement(
            plan=plan,
            limit=None,
            used=used,
            remaining=None,
            blocked=False,
            alert=AlertLevel.NONE,
        )

    return Entitlement(
        plan=plan,
        limit=limit,
        used=used,
        remaining=max(0, limit - used),
        blocked=used >= limit,
        alert=alert_level(used, limit),
    )


def get_entitlement(account_id: str, now: Optional[datetime] = None) -> Entitlement:
    """Read the account and evaluate it fresh."""
    entitlement = evaluate(get_account(account_id), now)
    if entitlement.alert != AlertLevel.NONE:
        logger.info(
            "[entitlement] quota alert",
            extra={
                "account_id": account_id,
                "plan": entitlement.plan.value,
                "limit": entitlement.limit,
                "used": entitlement.used,
                "alert": entitlement.alert.value,
            },
        )
    return entitlement
