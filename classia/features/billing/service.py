"""
Billing service orchestrator.

Coordinates:
- Checkout (remote customer + PIX payment + pending transaction)
- Webhook processing (sender verification, delivery ledger, subscription activation)

All Asaas-specific code is in asaas_provider.py.
"""
import hashlib
import json
import uuid
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from decimal import Decimal
from typing import Any, Dict, Mapping, Optional

from pydantic import BaseModel, ConfigDict, Field, ValidationError as PydanticValidationError
from pydantic.alias_generators import to_camel
from sqlalchemy import select, insert, update
from sqlalchemy.exc import IntegrityError

from classia.core.config import settings
from classia.core.database import (
    get_db_session,
    supports_row_locks,
    accounts,
    transactions,
    billing_events,
)
from classia.core.errors import NotFoundError, ValidationError, WebhookAuthError
from classia.core.logging import log_event
from classia.features.accounts.service import get_account, set_external_customer_id
from classia.features.billing.asaas_provider import AsaasProvider
from classia.features.billing.provider import BillingProvider
from classia.features.billing.signature import get_verifier
from classia.models.transaction import Transaction


@dataclass(frozen=True)
class Plan:
    id: str
    name: str
    price: Decimal


PLANS: Dict[str, Plan] = {
    "pro": Plan(id="pro", name="Plano Pro", price=Decimal("29.90")),
    "institutional": Plan(id="institutional", name="Plano Institucional", price=Decimal("99.90")),
}

KNOWN_EVENTS = frozenset({
    "PAYMENT_CREATED",
    "PAYMENT_UPDATED",
    "PAYMENT_CONFIRMED",
    "PAYMENT_RECEIVED",
    "PAYMENT_OVERDUE",
    "PAYMENT_DELETED",
    "PAYMENT_RESTORED",
    "PAYMENT_REFUNDED",
})
CONFIRM_EVENTS = frozenset({"PAYMENT_CONFIRMED", "PAYMENT_RECEIVED"})
CONFIRM_STATUSES = frozenset({"CONFIRMED", "RECEIVED"})


def get_provider() -> BillingProvider:
    return AsaasProvider()


@dataclass(frozen=True)
class CheckoutResult:
    payment_id: str
    payment_url: Optional[str]
    qr_code: Optional[str]
    status: str
    plan: str
    amount: Decimal

    def to_dict(self) -> Dict[str, Any]:
        return {
            "paymentId": self.payment_id,
            "paymentUrl": self.payment_url,
            "qrCode": self.qr_code,
            "status": self.status,
            "plan": self.plan,
            "amount": float(self.amount),
        }


def _utc(now: Optional[datetime]) -> datetime:
    if now is None:
        return datetime.now(timezone.utc)
    if now.tzinfo is None:
        return now.replace(tzinfo=timezone.utc)
    return now


def start_checkout(
    account_id: str,
    plan: str,
    *,
    now: Optional[datetime] = None,
    provider: Optional[BillingProvider] = None,
) -> CheckoutResult:
    """
    Start a PIX checkout for a subscription plan.

    The remote customer id is stored on the account before the payment is
    created, so a retried checkout reuses it instead of creating a duplicate.

    Raises:
        ValidationError: Unknown plan
        NotFoundError: Unknown account
        GatewayError: Payment processor failure (not retried)
    """
    selected = PLANS.get(plan)
    if selected is None:
        raise ValidationError(f"Unknown plan: {plan}", details={"plan": plan})

    account = get_account(account_id)
    provider = provider or get_provider()
    now = _utc(now)

    customer_id = account.external_customer_id
    if not customer_id:
        remote = provider.create_customer(account.name, account.email, account_id)
        customer_id = set_external_customer_id(account_id, remote.id)

    external_reference = f"{account_id}:{selected.id}:{int(now.timestamp() * 1000)}"
    intent = provider.create_payment(
        customer_id=customer_id,
        value=selected.price,
        description=f"Assinatura {selected.name} - Class IA",
        due_date=(now + timedelta(days=1)).date(),
        external_reference=external_reference,
    )

    with get_db_session() as session:
        session.execute(
            insert(transactions).values(
                id=str(uuid.uuid4()),
                account_id=account_id,
                external_payment_id=intent.id,
                plan=selected.id,
                amount=selected.price,
                status="pending",
                external_reference=external_reference,
                created_at=now,
                updated_at=now,
            )
        )

    log_event(
        "info",
        "billing.checkout.created",
        account_id=account_id,
        event_type="checkout",
        extra={"plan": selected.id, "payment_id": intent.id},
    )

    return CheckoutResult(
        payment_id=intent.id,
        payment_url=intent.invoice_url,
        qr_code=intent.qr_code,
        status=intent.status,
        plan=selected.id,
        amount=selected.price,
    )


class PaymentPayload(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    id: str = Field(min_length=1)
    status: str = Field(min_length=1)
    customer: str = Field(min_length=1)
    value: float
    due_date: str = Field(min_length=1)
    description: Optional[str] = None
    external_reference: Optional[str] = None


class PaymentEventPayload(BaseModel):
    """Asaas payment notification body."""
    id: Optional[str] = None
    event: str = Field(min_length=1)
    payment: PaymentPayload

    def event_key(self) -> str:
        if self.id:
            return self.id
        return f"{self.event}:{self.payment.id}:{self.payment.status.upper()}"

    def is_confirmation(self) -> bool:
        return self.event in CONFIRM_EVENTS or self.payment.status.upper() in CONFIRM_STATUSES

    def is_overdue(self) -> bool:
        return self.event == "PAYMENT_OVERDUE" or self.payment.status.upper() == "OVERDUE"


@dataclass(frozen=True)
class WebhookOutcome:
    event_key: str
    event_type: str
    payment_id: str
    status: str
    applied: bool = False
    duplicate: bool = False
    account_id: Optional[str] = None


def _header(headers: Mapping[str, str], name: str) -> Optional[str]:
    value = headers.get(name)
    if value is not None:
        return value
    for key, candidate in headers.items():
        if key.lower() == name:
            return candidate
    return None


def parse_payment_event(body: bytes) -> PaymentEventPayload:
    """Strictly parse a notification body; malformed or unknown events raise ValidationError."""
    try:
        data = json.loads(body)
    except (ValueError, UnicodeDecodeError) as exc:
        raise ValidationError("Webhook body is not valid JSON") from exc
    if not isinstance(data, dict):
        raise ValidationError("Webhook body must be a JSON object")

    try:
        payload = PaymentEventPayload.model_validate(data)
    except PydanticValidationError as exc:
        raise ValidationError(
            "Malformed payment event",
            details={"errors": exc.errors(include_url=False, include_context=False)},
        ) from exc

    if payload.event not in KNOWN_EVENTS:
        raise ValidationError(f"Unknown event: {payload.event}", details={"event": payload.event})
    return payload


def _record_event(payload: PaymentEventPayload, body: bytes) -> bool:
    """
    Record the delivery in the ledger.

    Returns False when the event was already processed (or is being recorded
    by a concurrent delivery), True when this delivery should be applied.
    """
    event_key = payload.event_key()
    with get_db_session() as session:
        existing = session.execute(
            select(billing_events.c.processed).where(billing_events.c.event_key == event_key)
        ).first()
        if existing is not None:
            # A failed earlier attempt is retried; applied_event_key keeps it idempotent
            return not existing.processed

    try:
        with get_db_session() as session:
            session.execute(
                insert(billing_events).values(
                    event_key=event_key,
                    event_type=payload.event,
                    external_payment_id=payload.payment.id,
                    payload_hash=hashlib.sha256(body).hexdigest(),
                    received_at=datetime.now(timezone.utc),
                    processed=False,
                )
            )
    except IntegrityError:
        # Race condition: another delivery already inserted this event
        return False
    return True


def row_to_transaction(row) -> Transaction:
    return Transaction(
        id=row.id,
        account_id=row.account_id,
        external_payment_id=row.external_payment_id,
        plan=row.plan,
        amount=row.amount,
        status=row.status,
        external_reference=row.external_reference,
        applied_event_key=row.applied_event_key,
        created_at=row.created_at,
        updated_at=row.updated_at,
    )


def get_transaction(payment_id: str) -> Transaction:
    with get_db_session() as session:
        row = session.execute(
            select(transactions).where(transactions.c.external_payment_id == payment_id)
        ).first()
    if row is None:
        raise NotFoundError(f"Transaction for payment {payment_id} not found")
    return row_to_transaction(row)


def _apply_event(payload: PaymentEventPayload, now: datetime) -> WebhookOutcome:
    event_key = payload.event_key()
    status = payload.payment.status.lower()
    applied = False

    with get_db_session() as session:
        query = select(transactions).where(transactions.c.external_payment_id == payload.payment.id)
        if supports_row_locks():
            query = query.with_for_update()
        row = session.execute(query).first()
        if row is None:
            raise NotFoundError(
                f"Transaction for payment {payload.payment.id} not found",
                details={"payment_id": payload.payment.id},
            )
        tx = row_to_transaction(row)

        session.execute(
            update(transactions)
            .where(transactions.c.id == tx.id)
            .values(status=status, updated_at=now)
        )

        if payload.is_confirmation():
            claimed = session.execute(
                update(transactions)
                .where(transactions.c.id == tx.id)
                .where(transactions.c.applied_event_key.is_(None))
                .values(applied_event_key=event_key)
            )
            if claimed.rowcount == 1:
                session.execute(
                    update(accounts)
                    .where(accounts.c.id == tx.account_id)
                    .values(
                        subscription_status="active",
                        subscription_plan=tx.plan,
                        plan_tier=tx.plan,
                        subscription_start=now,
                        subscription_end=now + timedelta(days=settings.SUBSCRIPTION_PERIOD_DAYS),
                        updated_at=now,
                    )
                )
                applied = True
            else:
                log_event(
                    "info",
                    "billing.webhook.already_applied",
                    account_id=tx.account_id,
                    event_type=payload.event,
                    extra={"payment_id": payload.payment.id, "applied_event_key": tx.applied_event_key},
                )
        elif payload.is_overdue():
            log_event(
                "warning",
                "billing.payment.overdue",
                account_id=tx.account_id,
                event_type=payload.event,
                extra={"payment_id": payload.payment.id},
            )

    return WebhookOutcome(
        event_key=event_key,
        event_type=payload.event,
        payment_id=payload.payment.id,
        status=status,
        applied=applied,
        account_id=tx.account_id,
    )


def process_webhook_event(
    headers: Mapping[str, str],
    body: bytes,
    *,
    now: Optional[datetime] = None,
) -> WebhookOutcome:
    """
    Process a payment notification (idempotent).

    1. Verify the sender
    2. Parse strictly
    3. Record in the delivery ledger (skip if already processed)
    4. Apply transaction status and subscription activation
    5. Mark as processed

    Raises:
        WebhookAuthError: Sender not verified
        ValidationError: Malformed body or unknown event
        NotFoundError: Unknown payment id
    """
    verifier = get_verifier()
    if not verifier.verify(body, _header(headers, verifier.header_name)):
        log_event("warning", "billing.webhook.rejected", error_code="forbidden",
                  extra={"header": verifier.header_name})
        raise WebhookAuthError("Webhook sender could not be verified")

    payload = parse_payment_event(body)
    event_key = payload.event_key()
    now = _utc(now)

    if not _record_event(payload, body):
        log_event("info", "billing.webhook.duplicate", event_type=payload.event,
                  extra={"event_key": event_key})
        return WebhookOutcome(
            event_key=event_key,
            event_type=payload.event,
            payment_id=payload.payment.id,
            status=payload.payment.status.lower(),
            duplicate=True,
        )

    try:
        outcome = _apply_event(payload, now)
    except Exception as e:
        with get_db_session() as session:
            session.execute(
                update(billing_events)
                .where(billing_events.c.event_key == event_key)
                .values(error=str(e)[:1000])
            )
        raise

    with get_db_session() as session:
        session.execute(
            update(billing_events)
            .where(billing_events.c.event_key == event_key)
            .values(processed=True, processed_at=datetime.now(timezone.utc), error=None)
        )

    log_event(
        "info",
        "billing.webhook.processed",
        account_id=outcome.account_id,
        event_type=payload.event,
        extra={"payment_id": outcome.payment_id, "status": outcome.status, "applied": outcome.applied},
    )
    return outcome
