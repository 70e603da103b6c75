"""
Billing API routes.

- POST /v1/billing/checkout: Create a PIX payment for a plan
- POST /v1/billing/webhook: Handle Asaas payment notifications
"""
from fastapi import APIRouter, Depends, Request
from pydantic import BaseModel
from starlette.concurrency import run_in_threadpool

from classia.core.auth import get_current_account_id
from classia.features.billing.service import start_checkout, process_webhook_event


router = APIRouter(prefix="/v1/billing", tags=["billing"])


class CheckoutRequest(BaseModel):
    """Request to start a checkout."""
    plan: str


@router.post("/checkout")
def create_checkout(body: CheckoutRequest, account_id: str = Depends(get_current_account_id)):
    """
    Returns:
        {"paymentId", "paymentUrl", "qrCode", "status", "plan", "amount"}

    Errors:
        400: Unknown plan
        401: Missing caller identity
        500: Payment processor error
    """
    return start_checkout(account_id, body.plan).to_dict()


@router.post("/webhook")
async def billing_webhook(request: Request):
    """
    Handle Asaas payment notifications.

    The raw body is read before parsing so the sender can be verified
    against exactly what was sent.

    Errors:
        403: Sender not verified
        400: Malformed body or unknown event
        404: Unknown payment id
    """
    body = await request.body()
    outcome = await run_in_threadpool(process_webhook_event, request.headers, body)
    return {
        "success": True,
        "applied": outcome.applied,
        "duplicate": outcome.duplicate,
        "event": outcome.event_type,
    }
