"""
Admin operations: usage statistics and quota reset.

Every mutating call is audited with a structured log line naming the actor.
"""
from datetime import datetime, timezone
from typing import Any, Dict, Optional

from sqlalchemy import select, func

from classia.core.database import get_db_session, accounts, exam_artifacts
from classia.core.logging import log_event
from classia.features.accounts.service import reset_quota
from classia.models.account import Account


def get_usage_stats(now: Optional[datetime] = None) -> Dict[str, Any]:
    """
    Usage counters across all accounts.

    Returns:
        {
            "total_exams": int,
            "exams_today": int,         # since 00:00 UTC of `now`
            "active_accounts": int,     # accounts with quota_used > 0
            "computed_at": str,
        }
    """
    now = now or datetime.now(timezone.utc)
    if now.tzinfo is None:
        now = now.replace(tzinfo=timezone.utc)
    day_start = now.replace(hour=0, minute=0, second=0, microsecond=0)

    with get_db_session() as session:
        total = session.execute(select(func.count()).select_from(exam_artifacts)).scalar_one()
        today = session.execute(
            select(func.count())
            .select_from(exam_artifacts)
            .where(exam_artifacts.c.created_at >= day_start)
        ).scalar_one()
        active = session.execute(
            select(func.count()).select_from(accounts).where(accounts.c.quota_used > 0)
        ).scalar_one()

    return {
        "total_exams": total,
        "exams_today": today,
        "active_accounts": active,
        "computed_at": now.isoformat(),
    }


def admin_reset_quota(account_id: str, actor_id: str) -> Account:
    account = reset_quota(account_id)
    log_event(
        "info",
        "admin.quota.reset",
        account_id=account_id,
        event_type="admin_action",
        extra={"actor": actor_id},
    )
    return account
