"""
Account API routes.

- POST /v1/account: signup for the authenticated caller
- GET  /v1/account: account snapshot plus current entitlement
"""
from typing import Any, Dict
from fastapi import APIRouter, Depends
from pydantic import BaseModel, Field

from classia.core.auth import get_current_account_id
from classia.features.accounts.service import create_account, get_account
from classia.features.entitlements.service import evaluate


router = APIRouter(prefix="/v1/account", tags=["account"])


class SignupRequest(BaseModel):
    name: str = Field(..., min_length=1, max_length=200)
    email: str = Field(..., min_length=3, max_length=320)


def _account_payload(account) -> Dict[str, Any]:
    return {
        "account": account.model_dump(mode="json", by_alias=True),
        "entitlement": evaluate(account).to_dict(),
    }


@router.post("")
def signup(body: SignupRequest, account_id: str = Depends(get_current_account_id)):
    """Create the caller's account; returns the existing one on repeat."""
    account = create_account(account_id, body.name, body.email)
    return _account_payload(account)


@router.get("")
def read_account(account_id: str = Depends(get_current_account_id)):
    return _account_payload(get_account(account_id))
