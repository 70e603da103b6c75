"""
classia/models/transaction.py

Transaction model: one payment attempt at the payment processor.
"""

from datetime import datetime
from decimal import Decimal
from typing import Optional
from pydantic import BaseModel, ConfigDict


class Transaction(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: str
    account_id: str
    external_payment_id: str
    plan: str
    amount: Decimal
    status: str
    external_reference: Optional[str] = None
    applied_event_key: Optional[str] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None
