"""
Account domain service.
- create_account(account_id, name, email)
- get_account(account_id)
- set_external_customer_id(account_id, customer_id)
- reset_quota(account_id)
- list_artifacts(account_id) / get_artifact(account_id, artifact_id)
"""

from datetime import datetime, timezone
import logging
from typing import List, Optional
from sqlalchemy import select, insert, update
from sqlalchemy.exc import IntegrityError

from classia.core.database import get_db_session, accounts, exam_artifacts
from classia.core.errors import NotFoundError, ValidationError
from classia.models.account import Account
from classia.models.exam import ExamArtifact


logger = logging.getLogger(__name__)


def row_to_account(row) -> Account:
    return Account(
        id=row.id,
        email=row.email,
        name=row.name,
        plan_tier=row.plan_tier,
        quota_used=row.quota_used,
        subscription_status=row.subscription_status,
        subscription_plan=row.subscription_plan,
        subscription_start=row.subscription_start,
        subscription_end=row.subscription_end,
        external_customer_id=row.external_customer_id,
        created_at=row.created_at,
        updated_at=row.updated_at,
    )


def find_account(account_id: str) -> Optional[Account]:
    with get_db_session() as session:
        row = session.execute(select(accounts).where(accounts.c.id == account_id)).first()
        return row_to_account(row) if row else None


def get_account(account_id: str) -> Account:
    account = find_account(account_id)
    if account is None:
        raise NotFoundError(f"Account {account_id} not found")
    return account


def create_account(account_id: str, name: str, email: str) -> Account:
    """Signup. Idempotent: an existing account is returned unchanged."""
    if not name or not name.strip():
        raise ValidationError("name is required")
    if not email or "@" not in email:
        raise ValidationError("email is invalid")

    existing = find_account(account_id)
    if existing:
        return existing

    now = datetime.now(timezone.utc)
    try:
        with get_db_session() as session:
            session.execute(
                insert(accounts).values(
                    id=account_id,
                    name=name.strip(),
                    email=email.strip().lower(),
                    plan_tier="free",
                    quota_used=0,
                    subscription_status="none",
                    created_at=now,
                    updated_at=now,
                )
            )
    except IntegrityError:
        # Concurrent signup for the same id won the insert
        return get_account(account_id)

    logger.info("[accounts] created", extra={"account_id": account_id})
    return get_account(account_id)


def set_external_customer_id(account_id: str, customer_id: str) -> str:
    """
    Store the payment processor customer id if none is stored yet.

    Returns the id that is stored afterwards. When another request stored one
    first, that value is kept and returned; it is never overwritten.
    """
    with get_db_session() as session:
        result = session.execute(
            update(accounts)
            .where(accounts.c.id == account_id)
            .where(accounts.c.external_customer_id.is_(None))
            .values(external_customer_id=customer_id, updated_at=datetime.now(timezone.utc))
        )
        if result.rowcount == 1:
            return customer_id

        stored = session.execute(
            select(accounts.c.external_customer_id).where(accounts.c.id == account_id)
        ).first()

    if stored is None:
        raise NotFoundError(f"Account {account_id} not found")
    logger.warning(
        "[accounts] external customer id already set, keeping stored value",
        extra={"account_id": account_id},
    )
    return stored.external_customer_id


def reset_quota(account_id: str) -> Account:
    """Administrative reset of the usage counter."""
    with get_db_session() as session:
        result = session.execute(
            update(accounts)
            .where(accounts.c.id == account_id)
            .values(quota_used=0, updated_at=datetime.now(timezone.utc))
        )
        if result.rowcount != 1:
            raise NotFoundError(f"Account {account_id} not found")
    return get_account(account_id)


def row_to_artifact(row) -> ExamArtifact:
    return ExamArtifact(
        id=row.id,
        account_id=row.account_id,
        title=row.title,
        theme=row.theme,
        grade=row.grade,
        question_count=row.question_count,
        type=row.type,
        content=row.content,
        created_at=row.created_at,
    )


def list_artifacts(account_id: str, limit: int = 50) -> List[ExamArtifact]:
    """Caller's artifacts, newest first."""
    with get_db_session() as session:
        rows = session.execute(
            select(exam_artifacts)
            .where(exam_artifacts.c.account_id == account_id)
            .order_by(exam_artifacts.c.created_at.desc(), exam_artifacts.c.id)
            .limit(limit)
        ).fetchall()
        return [row_to_artifact(row) for row in rows]


def get_artifact(account_id: str, artifact_id: str) -> ExamArtifact:
    """One artifact owned by `account_id`; another account's artifact is reported as missing."""
    with get_db_session() as session:
        row = session.execute(
            select(exam_artifacts)
            .where(exam_artifacts.c.id == artifact_id)
            .where(exam_artifacts.c.account_id == account_id)
        ).first()
    if row is None:
        raise NotFoundError(f"Exam {artifact_id} not found")
    return row_to_artifact(row)
