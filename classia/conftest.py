# classia/conftest.py
import os
import pytest
from datetime import datetime, timezone

# Settings are read at import time; pin a deterministic test configuration first
os.environ["ENV"] = "test"
os.environ["CONFIG_STRICT"] = "false"
os.environ["ALLOW_HEADER_AUTH"] = "true"
os.environ["AUTH_JWT_SECRET"] = "test-jwt-secret"
os.environ["ADMIN_KEY"] = "test-admin-key"
os.environ["GROQ_API_KEY"] = "test-groq-key"
os.environ["ASAAS_API_KEY"] = "test-asaas-key"
os.environ["ASAAS_WEBHOOK_TOKEN"] = "test-webhook-token"
os.environ["WEBHOOK_AUTH_MODE"] = "token"
os.environ["WEBHOOK_HMAC_SECRET"] = "test-hmac-secret"
os.environ["FREE_TIER_LIMIT"] = "10"
os.environ["PRO_TIER_LIMIT"] = "100"
os.environ.pop("TEST_DATABASE_URL", None)


@pytest.fixture(scope="function", autouse=True)
def sqlite_db(tmp_path):
    """
    Fresh SQLite database file per test.

    A file (not :memory:) so worker threads in concurrency tests share it.
    """
    from classia.core.database import init_engine, create_all_tables, get_engine

    url = f"sqlite:///{tmp_path / 'test.db'}"
    os.environ["DATABASE_URL"] = url
    init_engine(url)
    create_all_tables()
    yield url
    get_engine().dispose()


@pytest.fixture
def make_account():
    """Insert an account row directly, with any column overridden."""
    from sqlalchemy import insert
    from classia.core.database import get_db_session, accounts
    from classia.features.accounts.service import get_account

    def _make(account_id: str = "acc-1", **fields):
        now = datetime.now(timezone.utc)
        values = {
            "id": account_id,
            "email": f"{account_id}@escola.test",
            "name": f"Professor {account_id}",
            "plan_tier": "free",
            "quota_used": 0,
            "subscription_status": "none",
            "created_at": now,
            "updated_at": now,
        }
        values.update(fields)
        with get_db_session() as session:
            session.execute(insert(accounts).values(**values))
        return get_account(account_id)

    return _make


@pytest.fixture
def make_transaction():
    """Insert a pending transaction for an existing account."""
    import uuid
    from decimal import Decimal
    from sqlalchemy import insert
    from classia.core.database import get_db_session, transactions

    def _make(account_id: str, payment_id: str = "pay_123", plan: str = "pro", **fields):
        now = datetime.now(timezone.utc)
        values = {
            "id": str(uuid.uuid4()),
            "account_id": account_id,
            "external_payment_id": payment_id,
            "plan": plan,
            "amount": Decimal("29.90") if plan == "pro" else Decimal("99.90"),
            "status": "pending",
            "external_reference": f"{account_id}:{plan}:0",
            "created_at": now,
            "updated_at": now,
        }
        values.update(fields)
        with get_db_session() as session:
            session.execute(insert(transactions).values(**values))
        return values["id"]

    return _make
